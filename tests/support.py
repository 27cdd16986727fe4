"""
Shared test fixtures: a local camera HTTP server and a publisher with a mock MQTT client.
"""
import asyncio
import os
import sys
from unittest.mock import MagicMock

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import aiohttp
import paho.mqtt.client as mqtt
from aiohttp import web
from aiohttp.test_utils import TestServer

from ipcam.publisher import Publisher

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"snowshed-east" * 64 + b"\xff\xd9"
LOGIN = "admin"
PASSWORD = "hunter2"


class CameraServer:
    """aiohttp server that serves a fake camera image on a few URLs."""

    def __init__(self):
        self.requests = 0
        app = web.Application()
        app.router.add_get("/image.jpg", self._image)
        app.router.add_get("/secure.jpg", self._secure)
        app.router.add_get("/slow.jpg", self._slow)
        app.router.add_get("/broken.jpg", self._broken)
        self.server = TestServer(app)

    async def start(self):
        await self.server.start_server()

    async def close(self):
        await self.server.close()

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))

    async def _image(self, request):
        self.requests += 1
        # keep latency measurable on a loopback connection
        await asyncio.sleep(0.01)
        return web.Response(body=JPEG_BYTES, content_type="image/jpeg")

    async def _secure(self, request):
        self.requests += 1
        if request.headers.get("Authorization") != aiohttp.BasicAuth(LOGIN, PASSWORD).encode():
            return web.Response(status=401, reason="Unauthorized")
        await asyncio.sleep(0.01)
        return web.Response(body=JPEG_BYTES, content_type="image/jpeg")

    async def _slow(self, request):
        await asyncio.sleep(1)
        return web.Response(body=JPEG_BYTES, content_type="image/jpeg")

    async def _broken(self, request):
        # announce more bytes than are sent, then drop the connection
        resp = web.StreamResponse(headers={"Content-Length": "100000"})
        await resp.prepare(request)
        await resp.write(JPEG_BYTES[:10])
        request.transport.close()
        return resp


def make_publisher(publisher_id: str = "ipcam-test", **kwargs) -> Publisher:
    client = MagicMock()
    client.publish.return_value.rc = mqtt.MQTT_ERR_SUCCESS
    return Publisher(publisher_id, client=client, **kwargs)


def published(pub: Publisher, topic: str) -> list:
    """Payloads published on topic, oldest first."""
    return [c.args[1] for c in pub.client.publish.call_args_list if c.args[0] == topic]
