"""
IPCam Service
Polls IP cameras and publishes their images over MQTT
"""
import argparse
import asyncio
import signal

import aiohttp
from loguru import logger

from ipcam.app import IPCamApp
from ipcam.config import load_config, setup_logging
from ipcam.errors import ConfigError
from ipcam.publisher import Publisher


async def run(config_path: str = None):
    try:
        config = load_config(config_path)
    except ConfigError as e:
        logger.error(f"Failed to load configuration: {e}")
        return 1
    setup_logging(config.log_level)
    logger.info("=== IPCam Service Starting ===")

    pub = Publisher(
        config.publisher_id,
        domain=config.domain,
        broker=config.mqtt.broker,
        port=config.mqtt.port,
        username=config.mqtt.username,
        password=config.mqtt.password,
        signing_key=config.signing_key,
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: fall back to KeyboardInterrupt
            pass

    async with aiohttp.ClientSession() as session:
        app = IPCamApp(config, pub, session)
        app.start()
        logger.info("=== IPCam Service Ready ===")
        await stop_event.wait()
        logger.info("Shutting down...")
        app.stop()
    return 0


def main():
    parser = argparse.ArgumentParser(prog="ipcam", description="Poll IP cameras and publish their images")
    parser.add_argument("--config", help="path to ipcam.yaml (default: $IPCAM_CONFIG or config/ipcam.yaml)")
    args = parser.parse_args()
    try:
        return asyncio.run(run(args.config))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
