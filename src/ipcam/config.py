"""
Configuration - ipcam.yaml with environment overrides
"""
import os
import sys
from pathlib import Path
from typing import Dict, Optional

import yaml
from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ipcam.errors import ConfigError
from ipcam.fetcher import DEFAULT_FETCH_TIMEOUT
from ipcam.nodes import DEFAULT_POLL_INTERVAL

APP_ID = "ipcam"
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "ipcam.yaml"


class CameraConfig(BaseModel):
    """One camera entry under 'cameras'."""
    model_config = ConfigDict(populate_by_name=True)

    url: str = ""
    login_name: str = Field(default="", alias="loginName")
    password: str = ""
    poll_interval: Optional[int] = Field(default=None, alias="pollInterval")
    description: str = ""
    filename: str = ""


class MqttConfig(BaseModel):
    broker: str = "localhost"
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None


class IPCamConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    publisher_id: str = Field(default=APP_ID, alias="publisherId")
    domain: str = APP_ID
    image_folder: str = Field(default=".", alias="imageFolder")
    poll_interval: int = Field(default=DEFAULT_POLL_INTERVAL, alias="pollInterval")
    fetch_timeout: float = Field(default=DEFAULT_FETCH_TIMEOUT, alias="fetchTimeout")
    tick_interval: float = Field(default=1.0, alias="tickInterval")
    start_immediately: bool = Field(default=True, alias="startImmediately")
    allow_overlap: bool = Field(default=False, alias="allowOverlap")
    signing_key: Optional[str] = Field(default=None, alias="signingKey")
    log_level: str = Field(default="INFO", alias="logLevel")
    mqtt: MqttConfig = Field(default_factory=MqttConfig)
    cameras: Dict[str, CameraConfig] = Field(default_factory=dict)


def load_config(path: Optional[str] = None) -> IPCamConfig:
    """
    Load the application configuration.

    The file is IPCAM_CONFIG, or config/ipcam.yaml when unset. A missing file
    yields the defaults without cameras. Environment variables (also read from
    a .env file) override the broker settings, image folder and log level.

    Raises:
        ConfigError: the file is not valid YAML or doesn't match the schema
    """
    load_dotenv()
    config_path = Path(path or os.getenv("IPCAM_CONFIG") or DEFAULT_CONFIG_PATH)

    data = {}
    if config_path.exists():
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
        logger.info(f"Loaded configuration from {config_path}")
    else:
        logger.warning(f"Configuration file {config_path} not found, using defaults")

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration {config_path} must be a mapping")
    try:
        config = IPCamConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e

    # env vars override YAML config for Docker
    config.mqtt.broker = os.getenv("MQTT_BROKER", config.mqtt.broker)
    port = os.getenv("MQTT_PORT")
    if port is not None:
        try:
            config.mqtt.port = int(port)
        except ValueError as e:
            raise ConfigError(f"MQTT_PORT must be an integer, got '{port}'") from e
    config.mqtt.username = os.getenv("MQTT_USER", config.mqtt.username)
    config.mqtt.password = os.getenv("MQTT_PASS", config.mqtt.password)
    config.image_folder = os.getenv("IPCAM_IMAGE_FOLDER", config.image_folder)
    config.log_level = os.getenv("LOG_LEVEL", config.log_level)
    if not config.publisher_id:
        config.publisher_id = APP_ID
    return config


def setup_logging(level: str = "INFO"):
    """Replace loguru's default sink with one at the configured level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="{time:YYYY-MM-DD HH:mm:ss} - {name} - {level} - {message}",
    )
