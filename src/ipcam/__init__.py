"""
ipcam - poll IP cameras and publish their images over MQTT.
"""
from ipcam.app import IPCamApp
from ipcam.config import IPCamConfig, CameraConfig, load_config
from ipcam.poller import CameraPoller, PollResult
from ipcam.publisher import Publisher
from ipcam.registry import NodeRegistry
from ipcam.scheduler import PollScheduler

__all__ = [
    "IPCamApp",
    "IPCamConfig",
    "CameraConfig",
    "load_config",
    "CameraPoller",
    "PollResult",
    "Publisher",
    "NodeRegistry",
    "PollScheduler",
]
