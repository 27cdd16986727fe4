"""
Camera Poller - fetch a camera image and publish it with its latency
"""
import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiohttp
from loguru import logger

from ipcam.errors import FetchError, ImageSaveError, IPCamError, PollError
from ipcam.fetcher import DEFAULT_FETCH_TIMEOUT, read_image, safe_url
from ipcam.nodes import (
    ATTR_FILENAME,
    ATTR_LOGIN_NAME,
    ATTR_PASSWORD,
    ATTR_URL,
    DEFAULT_OUTPUT_INSTANCE,
    OUTPUT_TYPE_IMAGE,
    OUTPUT_TYPE_LATENCY,
    RUN_STATE_ERROR,
    RUN_STATE_READY,
    STATUS_LATENCY_MSEC,
    Node,
)


@dataclass
class PollResult:
    node_id: str
    image: Optional[bytes] = None
    latency_ms: Optional[int] = None
    error: Optional[IPCamError] = None

    @property
    def ok(self) -> bool:
        return self.image is not None and self.error is None


class CameraPoller:
    def __init__(
        self,
        publisher,
        session: aiohttp.ClientSession,
        image_folder: str = ".",
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
    ):
        self.pub = publisher
        self.session = session
        self.image_folder = Path(image_folder)
        self.fetch_timeout = fetch_timeout

    async def save_image(self, filename: str, image: bytes) -> Path:
        """
        Write the image to the image folder. Blocking I/O runs in the default executor.

        The filename can be changed remotely, so the resolved path must stay
        inside the image folder. Anything else is refused without writing.
        """
        root = self.image_folder.resolve()
        file_path = (root / filename).resolve()
        if file_path == root or not file_path.is_relative_to(root):
            raise ImageSaveError(str(file_path), ValueError(f"path is outside the image folder {root}"))
        logger.debug(f"save_image: Saving image to file {file_path}")
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, file_path.write_bytes, image)
        except OSError as e:
            raise ImageSaveError(str(file_path), e) from e
        return file_path

    async def poll_camera(self, node: Node) -> PollResult:
        """
        Poll a camera and publish its image.

        On success the latency is updated, the image is saved when a filename is
        configured, the image is published raw and unsigned so third parties can
        use it directly, and the run state is set to ready. A failed save is
        returned in the result but does not affect publication or run state.

        On failure the run state is set to error and latency is left untouched.
        """
        pub = self.pub
        node_id = node.node_id
        url = pub.get_node_config_string(node_id, ATTR_URL, "")
        login_name = pub.get_node_config_string(node_id, ATTR_LOGIN_NAME, "")
        password = pub.get_node_config_string(node_id, ATTR_PASSWORD, "")
        logger.info(f"poll_camera: Polling camera {node_id} image from {safe_url(url)}")

        try:
            image, latency_ms = await read_image(self.session, url, login_name, password, self.fetch_timeout)
        except FetchError as e:
            msg = f"Unable to get image from camera {node_id}: {e}"
            pub.update_node_error_status(node_id, RUN_STATE_ERROR, msg)
            return PollResult(node_id=node_id, error=PollError(node_id, msg, e))

        result = PollResult(node_id=node_id, image=image, latency_ms=latency_ms)
        pub.update_node_status(node_id, {STATUS_LATENCY_MSEC: str(latency_ms)})
        pub.update_output_value(node_id, OUTPUT_TYPE_LATENCY, DEFAULT_OUTPUT_INSTANCE, latency_ms)

        filename = pub.get_node_config_string(node_id, ATTR_FILENAME, "")
        if filename:
            try:
                await self.save_image(filename, image)
            except ImageSaveError as e:
                logger.error(f"poll_camera: {e}")
                result.error = e

        output = pub.get_output(node_id, OUTPUT_TYPE_IMAGE, DEFAULT_OUTPUT_INSTANCE)
        pub.publish_raw(output, False, image)

        pub.update_node_error_status(node_id, RUN_STATE_READY, "")
        return result
