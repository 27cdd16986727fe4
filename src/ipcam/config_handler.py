"""
Config Change Handler - apply configuration commands to camera nodes
"""
from typing import Any, Dict

from loguru import logger

from ipcam.nodes import ATTR_LOGIN_NAME, ATTR_PASSWORD

_SECRET_ATTRS = {ATTR_LOGIN_NAME, ATTR_PASSWORD}


class ConfigChangeHandler:
    """
    Forwards configuration requests into the registry.

    Validation is left to the registry. Changes take effect on the next poll
    of the camera.
    """

    def __init__(self, publisher):
        self.pub = publisher

    def handle_config_command(self, node_id: str, attrs: Dict[str, Any]) -> Dict[str, Any]:
        attrs = attrs or {}
        shown = {k: ("***" if k in _SECRET_ATTRS else v) for k, v in attrs.items()}
        logger.info(f"handle_config_command: {node_id} {shown}")

        if self.pub.get_node(node_id) is None:
            logger.warning(f"handle_config_command: unknown camera {node_id}, ignored")
            return attrs

        self.pub.update_node_config_values(node_id, attrs)
        return attrs
