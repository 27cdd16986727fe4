"""
IPCam App - publishes each configured IP camera as a node with image and latency outputs
"""
from typing import Optional

import aiohttp
from loguru import logger

from ipcam.config import IPCamConfig
from ipcam.config_handler import ConfigChangeHandler
from ipcam.nodes import (
    ATTR_DESCRIPTION,
    ATTR_FILENAME,
    ATTR_LOGIN_NAME,
    ATTR_PASSWORD,
    ATTR_POLL_INTERVAL,
    ATTR_URL,
    DATA_TYPE_INT,
    DATA_TYPE_STRING,
    DEFAULT_OUTPUT_INSTANCE,
    MAX_POLL_INTERVAL,
    MIN_POLL_INTERVAL,
    NODE_TYPE_CAMERA,
    OUTPUT_TYPE_IMAGE,
    OUTPUT_TYPE_LATENCY,
    ConfigAttr,
)
from ipcam.poller import CameraPoller, PollResult
from ipcam.publisher import Publisher
from ipcam.scheduler import PollScheduler


class IPCamApp:
    def __init__(self, config: IPCamConfig, pub: Publisher, session: aiohttp.ClientSession):
        self.config = config
        self.pub = pub
        self.poller = CameraPoller(
            pub,
            session,
            image_folder=config.image_folder,
            fetch_timeout=config.fetch_timeout,
        )
        self.scheduler = PollScheduler(
            pub,
            self.poll_camera,
            default_interval=config.poll_interval,
            start_immediately=config.start_immediately,
            allow_overlap=config.allow_overlap,
        )
        self.config_handler = ConfigChangeHandler(pub)

        self.create_cameras_from_config()
        pub.set_poll_handler(config.tick_interval, self.scheduler.tick)
        pub.set_config_handler(self.config_handler.handle_config_command)

    def create_cameras_from_config(self):
        """Create a camera node with configuration attributes and outputs for each configured camera."""
        pub = self.pub
        cameras = self.config.cameras
        logger.info(f"Loading {len(cameras)} cameras from config")

        for cam_id, cam in cameras.items():
            pub.create_node(cam_id, NODE_TYPE_CAMERA)
            pub.set_node_attr(cam_id, {ATTR_DESCRIPTION: cam.description})

            pub.update_node_config(cam_id, ATTR_URL, ConfigAttr(
                data_type=DATA_TYPE_STRING,
                description="Camera URL, for example http://images.drivebc.ca/bchighwaycam/pub/cameras/2.jpg",
                default=cam.url,
            ))
            # credentials are secret so they are left out of discovery
            pub.update_node_config(cam_id, ATTR_LOGIN_NAME, ConfigAttr(
                data_type=DATA_TYPE_STRING,
                description="Camera login name",
                default=cam.login_name,
                secret=True,
            ))
            pub.update_node_config(cam_id, ATTR_PASSWORD, ConfigAttr(
                data_type=DATA_TYPE_STRING,
                description="Camera password",
                default=cam.password,
                secret=True,
            ))
            interval = cam.poll_interval or self.config.poll_interval
            interval = min(max(interval, MIN_POLL_INTERVAL), MAX_POLL_INTERVAL)
            pub.update_node_config(cam_id, ATTR_POLL_INTERVAL, ConfigAttr(
                data_type=DATA_TYPE_INT,
                description="Camera poll interval in seconds",
                default=str(interval),
                min=MIN_POLL_INTERVAL,
                max=MAX_POLL_INTERVAL,
            ))
            pub.update_node_config(cam_id, ATTR_FILENAME, ConfigAttr(
                data_type=DATA_TYPE_STRING,
                description="Save the camera image to this file in the image folder",
                default=cam.filename,
            ))

            pub.new_output(cam_id, OUTPUT_TYPE_IMAGE, DEFAULT_OUTPUT_INSTANCE)
            pub.new_output(cam_id, OUTPUT_TYPE_LATENCY, DEFAULT_OUTPUT_INSTANCE)

    async def poll_camera(self, node) -> PollResult:
        return await self.poller.poll_camera(node)

    def start(self):
        self.pub.start()

    def stop(self):
        self.pub.stop()

    async def poll_now(self, node_id: str) -> Optional[PollResult]:
        """Poll a single camera immediately, outside the schedule."""
        node = self.pub.get_node(node_id)
        if node is None:
            return None
        return await self.poll_camera(node)
