"""
Unit tests for configuration loading and the IPCamApp wiring.
"""
import asyncio
import os
import tempfile
import unittest
from unittest.mock import patch

import aiohttp

from support import JPEG_BYTES, CameraServer, make_publisher, published

from ipcam.app import IPCamApp
from ipcam.config import CameraConfig, IPCamConfig, load_config
from ipcam.errors import ConfigError
from ipcam.nodes import (
    ATTR_DESCRIPTION,
    ATTR_LOGIN_NAME,
    ATTR_PASSWORD,
    ATTR_POLL_INTERVAL,
    ATTR_URL,
    OUTPUT_TYPE_IMAGE,
    OUTPUT_TYPE_LATENCY,
    RUN_STATE_READY,
)

CONFIG_YAML = """
publisherId: test-pub
imageFolder: /var/tmp
pollInterval: 300
mqtt:
  broker: mosquitto
  port: 1884
cameras:
  Snowshed-east:
    url: http://images.drivebc.ca/bchighwaycam/pub/cameras/2.jpg
    pollInterval: 60
    description: Snowshed east
  LaSilla:
    url: http://cam.example/lasilla.jpg
    loginName: admin
    password: hunter2
"""


class TestLoadConfig(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.env = patch.dict(os.environ, {}, clear=False)
        self.env.start()
        for key in ("MQTT_BROKER", "MQTT_PORT", "MQTT_USER", "MQTT_PASS", "IPCAM_IMAGE_FOLDER", "LOG_LEVEL", "IPCAM_CONFIG"):
            os.environ.pop(key, None)

    def tearDown(self):
        self.env.stop()
        self.tmp.cleanup()

    def _write(self, text: str) -> str:
        path = os.path.join(self.tmp.name, "ipcam.yaml")
        with open(path, "w") as f:
            f.write(text)
        return path

    def test_load_yaml(self):
        config = load_config(self._write(CONFIG_YAML))
        self.assertEqual(config.publisher_id, "test-pub")
        self.assertEqual(config.image_folder, "/var/tmp")
        self.assertEqual(config.mqtt.broker, "mosquitto")
        self.assertEqual(config.mqtt.port, 1884)
        self.assertEqual(set(config.cameras), {"Snowshed-east", "LaSilla"})
        self.assertEqual(config.cameras["Snowshed-east"].poll_interval, 60)
        self.assertIsNone(config.cameras["LaSilla"].poll_interval)
        self.assertEqual(config.cameras["LaSilla"].login_name, "admin")

    def test_env_overrides(self):
        os.environ.update({"MQTT_BROKER": "broker.lan", "MQTT_PORT": "8883", "IPCAM_IMAGE_FOLDER": "/images"})
        config = load_config(self._write(CONFIG_YAML))
        self.assertEqual(config.mqtt.broker, "broker.lan")
        self.assertEqual(config.mqtt.port, 8883)
        self.assertEqual(config.image_folder, "/images")

    def test_missing_file_uses_defaults(self):
        config = load_config(os.path.join(self.tmp.name, "missing.yaml"))
        self.assertEqual(config.publisher_id, "ipcam")
        self.assertEqual(config.poll_interval, 600)
        self.assertEqual(config.cameras, {})

    def test_invalid_yaml(self):
        with self.assertRaises(ConfigError):
            load_config(self._write("cameras: [unclosed"))

    def test_invalid_schema(self):
        with self.assertRaises(ConfigError):
            load_config(self._write("cameras:\n  cam1:\n    pollInterval: often\n"))

    def test_malformed_port_env(self):
        os.environ["MQTT_PORT"] = "mqtt"
        with self.assertRaises(ConfigError):
            load_config(self._write(CONFIG_YAML))


class TestIPCamApp(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.camera = CameraServer()
        await self.camera.start()
        self.session = aiohttp.ClientSession()
        self.pub = make_publisher()

    async def asyncTearDown(self):
        await self.session.close()
        await self.camera.close()

    def _config(self, **kwargs) -> IPCamConfig:
        cameras = {
            "Snowshed-east": CameraConfig(url=self.camera.url("/image.jpg"), poll_interval=60, description="Snowshed east"),
            "LaSilla": CameraConfig(url=self.camera.url("/image.jpg"), login_name="admin", password="hunter2"),
            "Kelowna": CameraConfig(url=self.camera.url("/image.jpg"), poll_interval=1),
        }
        return IPCamConfig(cameras=cameras, poll_interval=300, **kwargs)

    async def test_creates_camera_nodes(self):
        IPCamApp(self._config(), self.pub, self.session)

        self.assertEqual({n.node_id for n in self.pub.get_nodes()}, {"Snowshed-east", "LaSilla", "Kelowna"})
        self.assertEqual(self.pub.get_node_attr("Snowshed-east", ATTR_DESCRIPTION), "Snowshed east")
        self.assertEqual(self.pub.get_node_config_string("Snowshed-east", ATTR_URL), self.camera.url("/image.jpg"))
        self.assertEqual(self.pub.get_node_config_int("Snowshed-east", ATTR_POLL_INTERVAL, 0), 60)
        # falls back to the application poll interval
        self.assertEqual(self.pub.get_node_config_int("LaSilla", ATTR_POLL_INTERVAL, 0), 300)
        # clamped to the minimum
        self.assertEqual(self.pub.get_node_config_int("Kelowna", ATTR_POLL_INTERVAL, 0), 5)
        self.assertEqual(self.pub.get_node_config_string("LaSilla", ATTR_LOGIN_NAME), "admin")
        for cam_id in ("Snowshed-east", "LaSilla", "Kelowna"):
            self.assertIsNotNone(self.pub.get_output(cam_id, OUTPUT_TYPE_IMAGE))
            self.assertIsNotNone(self.pub.get_output(cam_id, OUTPUT_TYPE_LATENCY))

    async def test_credentials_are_secret(self):
        IPCamApp(self._config(), self.pub, self.session)
        discovery = self.pub.registry.node_discovery("LaSilla")
        self.assertTrue(discovery["config"][ATTR_LOGIN_NAME]["secret"])
        self.assertTrue(discovery["config"][ATTR_PASSWORD]["secret"])
        self.assertNotIn("hunter2", str(discovery))

    async def test_poll_now(self):
        app = IPCamApp(self._config(), self.pub, self.session)
        result = await app.poll_now("Snowshed-east")
        self.assertEqual(result.image, JPEG_BYTES)
        self.assertIsNone(await app.poll_now("unknown"))

    async def test_runs_polls_on_tick(self):
        app = IPCamApp(self._config(tick_interval=0.02), self.pub, self.session)
        app.start()
        await asyncio.sleep(0.3)
        app.stop()
        await app.scheduler.drain()

        for cam_id in ("Snowshed-east", "LaSilla", "Kelowna"):
            self.assertEqual(self.pub.get_node(cam_id).run_state, RUN_STATE_READY)
            self.assertIsNotNone(self.pub.get_output_value(cam_id, OUTPUT_TYPE_LATENCY))
            payloads = published(self.pub, f"ipcam/ipcam-test/{cam_id}/image/0/$raw")
            self.assertTrue(payloads)
            self.assertTrue(all(p == JPEG_BYTES for p in payloads))

    async def test_configure_command_reaches_registry(self):
        app = IPCamApp(self._config(), self.pub, self.session)
        self.pub.handle_configure("Kelowna", {ATTR_POLL_INTERVAL: "33"})
        self.assertEqual(self.pub.get_node_config_int("Kelowna", ATTR_POLL_INTERVAL, 0), 33)
        self.assertEqual(app.scheduler.poll_interval("Kelowna"), 33)


if __name__ == "__main__":
    unittest.main()
