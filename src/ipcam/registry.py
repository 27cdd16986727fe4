"""
Node Registry - thread-safe store of camera nodes, configuration and outputs
"""
import threading
from typing import Any, Dict, List, Optional

from loguru import logger

from ipcam.nodes import (
    DATA_TYPE_INT,
    DEFAULT_OUTPUT_INSTANCE,
    RUN_STATE_ERROR,
    RUN_STATE_READY,
    ConfigAttr,
    Node,
    Output,
    OutputValue,
)


class NodeRegistry:
    """
    Holds nodes, their configuration attributes, status and output values.

    All access goes through a lock because configuration commands arrive on
    the MQTT network thread while polls run on the asyncio loop.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._nodes: Dict[str, Node] = {}
        self._outputs: Dict[str, Output] = {}
        self._values: Dict[str, OutputValue] = {}

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------
    def create_node(self, node_id: str, node_type: str) -> Node:
        """Create a node. An existing node with the same id is returned as is."""
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                node = Node(node_id=node_id, node_type=node_type)
                self._nodes[node_id] = node
            return node

    def get_node(self, node_id: str) -> Optional[Node]:
        with self._lock:
            return self._nodes.get(node_id)

    def get_nodes(self) -> List[Node]:
        with self._lock:
            return list(self._nodes.values())

    def set_node_attr(self, node_id: str, attrs: Dict[str, str]) -> bool:
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                return False
            node.attr.update({k: str(v) for k, v in attrs.items()})
            return True

    def get_node_attr(self, node_id: str, name: str) -> str:
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                return ""
            return node.attr.get(name, "")

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def update_node_config(self, node_id: str, name: str, config: ConfigAttr) -> bool:
        """Define (or redefine) a configuration attribute, keeping any current value."""
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                return False
            existing = node.config.get(name)
            if existing is not None and config.value is None:
                config.value = existing.value
            node.config[name] = config
            return True

    def get_node_config_string(self, node_id: str, name: str, default: str = "") -> str:
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None or name not in node.config:
                return default
            value = node.config[name].effective
        if value is None or value == "":
            return default
        return value

    def get_node_config_int(self, node_id: str, name: str, default: int = 0) -> int:
        value = self.get_node_config_string(node_id, name, "")
        if value == "":
            return default
        try:
            return int(value)
        except ValueError:
            return default

    def update_node_config_values(self, node_id: str, attrs: Dict[str, Any]) -> Dict[str, str]:
        """
        Apply configuration values to a node.

        Integer attributes are parsed and clamped to their min/max. Values that
        don't parse and attributes the node doesn't define are skipped.

        Returns:
            Dict[str, str]: the values that were applied
        """
        applied: Dict[str, str] = {}
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                logger.warning(f"update_node_config_values: unknown node {node_id}")
                return applied

            for name, raw in (attrs or {}).items():
                config = node.config.get(name)
                if config is None:
                    logger.warning(f"update_node_config_values: node {node_id} has no config '{name}'")
                    continue
                if config.data_type == DATA_TYPE_INT:
                    try:
                        number = int(str(raw).strip())
                    except ValueError:
                        logger.warning(f"update_node_config_values: {node_id}.{name} rejected non-integer value")
                        continue
                    if config.min is not None and number < config.min:
                        number = config.min
                    if config.max is not None and number > config.max:
                        number = config.max
                    value = str(number)
                else:
                    value = "" if raw is None else str(raw)
                config.value = value
                applied[name] = value
        return applied

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def update_node_status(self, node_id: str, status: Dict[str, str]) -> bool:
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                return False
            node.status.update({k: str(v) for k, v in status.items()})
            return True

    def update_node_error_status(self, node_id: str, run_state: str, message: str = "") -> bool:
        if run_state not in (RUN_STATE_READY, RUN_STATE_ERROR):
            raise ValueError(f"Invalid run state '{run_state}'")
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                return False
            node.run_state = run_state
            node.error_message = message or ""
            return True

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------
    def new_output(self, node_id: str, output_type: str, instance: str = DEFAULT_OUTPUT_INSTANCE) -> Output:
        output = Output(node_id=node_id, output_type=output_type, instance=instance)
        with self._lock:
            return self._outputs.setdefault(output.output_id, output)

    def get_output(self, node_id: str, output_type: str, instance: str = DEFAULT_OUTPUT_INSTANCE) -> Optional[Output]:
        with self._lock:
            return self._outputs.get(Output(node_id, output_type, instance).output_id)

    def update_output_value(self, node_id: str, output_type: str, instance: str, value: Any) -> bool:
        output_id = Output(node_id, output_type, instance).output_id
        with self._lock:
            if output_id not in self._outputs:
                return False
            self._values[output_id] = OutputValue(value=str(value))
            return True

    def get_output_value(self, node_id: str, output_type: str, instance: str = DEFAULT_OUTPUT_INSTANCE) -> Optional[OutputValue]:
        with self._lock:
            return self._values.get(Output(node_id, output_type, instance).output_id)

    def node_discovery(self, node_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                return None
            return node.to_discovery()
