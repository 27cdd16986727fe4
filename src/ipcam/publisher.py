"""
Publisher - MQTT publication of camera nodes, outputs and raw images
"""
import asyncio
import base64
import hashlib
import hmac
import json
import time
from typing import Any, Callable, Dict, List, Optional

import paho.mqtt.client as mqtt
from loguru import logger

from ipcam.nodes import ConfigAttr, Node, Output, OutputValue, DEFAULT_OUTPUT_INSTANCE
from ipcam.registry import NodeRegistry

ConfigHandler = Callable[[str, Dict[str, Any]], Dict[str, Any]]
PollHandler = Callable[[], None]


class Publisher:
    """
    Node registry with MQTT publication.

    Topics:
        <domain>/<publisher>/<node>/$node                       discovery (retained)
        <domain>/<publisher>/<node>/<type>/<instance>/$value    output value
        <domain>/<publisher>/<node>/<type>/<instance>/$raw      raw output payload
        <domain>/<publisher>/<node>/$configure                  incoming config command
    """

    def __init__(
        self,
        publisher_id: str,
        domain: str = "ipcam",
        broker: str = "localhost",
        port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        signing_key: Optional[str] = None,
        registry: Optional[NodeRegistry] = None,
        client=None,
    ):
        self.publisher_id = publisher_id
        self.domain = domain
        self.broker = broker
        self.port = port
        self.registry = registry or NodeRegistry()
        self._signing_key = signing_key

        self.client = client or mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        if username:
            self.client.username_pw_set(username, password)
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message

        self._config_handler: Optional[ConfigHandler] = None
        self._poll_handler: Optional[PollHandler] = None
        self._poll_interval = 1.0
        self._poll_task: Optional[asyncio.Task] = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self.is_running = False

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------
    def node_topic(self, node_id: str, suffix: str) -> str:
        return f"{self.domain}/{self.publisher_id}/{node_id}/{suffix}"

    def output_topic(self, output: Output, suffix: str) -> str:
        return f"{self.domain}/{self.publisher_id}/{output.node_id}/{output.output_type}/{output.instance}/{suffix}"

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------
    def set_config_handler(self, handler: ConfigHandler):
        """Handler for $configure commands: handler(node_id, attrs) -> accepted attrs."""
        self._config_handler = handler

    def set_poll_handler(self, interval: float, handler: PollHandler):
        """Call handler() every interval seconds while the publisher runs."""
        self._poll_interval = interval
        self._poll_handler = handler

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self):
        """Connect to the broker and start the poll loop. Must run inside the event loop."""
        if self.is_running:
            return
        self._loop = asyncio.get_running_loop()
        logger.info(f"Publisher {self.publisher_id} connecting to {self.broker}:{self.port}")
        self.client.connect_async(self.broker, self.port, 60)
        self.client.loop_start()
        self.is_running = True
        if self._poll_handler is not None:
            self._poll_task = self._loop.create_task(self._run_poll_loop())

    def stop(self):
        if not self.is_running:
            return
        self.is_running = False
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        self.client.disconnect()
        self.client.loop_stop()
        logger.info(f"Publisher {self.publisher_id} stopped")

    async def _run_poll_loop(self):
        logger.info(f"Starting poll loop (every {self._poll_interval}s)")
        while self.is_running:
            start_time = time.monotonic()
            try:
                self._poll_handler()
            except Exception as e:
                logger.error(f"Poll handler failed: {e}")
            elapsed = time.monotonic() - start_time
            await asyncio.sleep(max(0, self._poll_interval - elapsed))

    # ------------------------------------------------------------------
    # MQTT callbacks (network thread)
    # ------------------------------------------------------------------
    def _on_connect(self, client, userdata, flags, rc, properties=None):
        logger.info(f"Connected to MQTT Broker with result code {rc}")
        client.subscribe(f"{self.domain}/{self.publisher_id}/+/$configure")
        if self._loop:
            self._loop.call_soon_threadsafe(self.publish_discovery)
        else:
            self.publish_discovery()

    def _on_message(self, client, userdata, msg):
        parts = msg.topic.split("/")
        if len(parts) != 4 or parts[3] != "$configure":
            return
        try:
            payload = json.loads(msg.payload.decode())
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning(f"Ignoring malformed configure message on {msg.topic}")
            return
        attrs = payload.get("attr", {}) if isinstance(payload, dict) else {}
        if not isinstance(attrs, dict):
            logger.warning(f"Ignoring configure message without attribute map on {msg.topic}")
            return

        if self._loop:
            self._loop.call_soon_threadsafe(self.handle_configure, parts[2], attrs)
        else:
            self.handle_configure(parts[2], attrs)

    def handle_configure(self, node_id: str, attrs: Dict[str, Any]):
        """Pass a configuration request to the config handler, or apply it when none is set."""
        if self._config_handler is not None:
            self._config_handler(node_id, attrs)
        else:
            self.update_node_config_values(node_id, attrs)

    # ------------------------------------------------------------------
    # Publication
    # ------------------------------------------------------------------
    def _publish(self, topic: str, payload, retain: bool = False) -> bool:
        result = self.client.publish(topic, payload, retain=retain)
        if result.rc == mqtt.MQTT_ERR_SUCCESS:
            logger.debug(f"Published to {topic}")
            return True
        logger.error(f"Failed to publish to {topic} (rc={result.rc})")
        return False

    def publish_node(self, node_id: str) -> bool:
        discovery = self.registry.node_discovery(node_id)
        if discovery is None:
            return False
        discovery["publisherId"] = self.publisher_id
        return self._publish(self.node_topic(node_id, "$node"), json.dumps(discovery), retain=True)

    def publish_discovery(self):
        for node in self.registry.get_nodes():
            self.publish_node(node.node_id)

    def publish_raw(self, output: Optional[Output], signed: bool, payload: bytes) -> bool:
        """
        Publish a raw output payload.

        Unsigned payloads are sent as-is so third parties can use them directly.
        Signed payloads are wrapped in a JSON envelope carrying an HMAC-SHA256
        signature over the base64 encoded payload.
        """
        if output is None:
            logger.error("publish_raw: no output to publish on")
            return False
        if isinstance(payload, str):
            payload = payload.encode()
        message = self._sign(payload) if signed else payload
        return self._publish(self.output_topic(output, "$raw"), message)

    def _sign(self, payload: bytes) -> str:
        if not self._signing_key:
            raise ValueError("Signed publication requires a signing key")
        encoded = base64.b64encode(payload).decode()
        signature = hmac.new(self._signing_key.encode(), encoded.encode(), hashlib.sha256).hexdigest()
        return json.dumps({
            "sender": self.publisher_id,
            "timestamp": time.time(),
            "payload": encoded,
            "signature": signature,
        })

    # ------------------------------------------------------------------
    # Registry operations with publication
    # ------------------------------------------------------------------
    def create_node(self, node_id: str, node_type: str) -> Node:
        return self.registry.create_node(node_id, node_type)

    def get_node(self, node_id: str) -> Optional[Node]:
        return self.registry.get_node(node_id)

    def get_nodes(self) -> List[Node]:
        return self.registry.get_nodes()

    def set_node_attr(self, node_id: str, attrs: Dict[str, str]) -> bool:
        return self.registry.set_node_attr(node_id, attrs)

    def get_node_attr(self, node_id: str, name: str) -> str:
        return self.registry.get_node_attr(node_id, name)

    def update_node_config(self, node_id: str, name: str, config: ConfigAttr) -> bool:
        return self.registry.update_node_config(node_id, name, config)

    def get_node_config_string(self, node_id: str, name: str, default: str = "") -> str:
        return self.registry.get_node_config_string(node_id, name, default)

    def get_node_config_int(self, node_id: str, name: str, default: int = 0) -> int:
        return self.registry.get_node_config_int(node_id, name, default)

    def update_node_config_values(self, node_id: str, attrs: Dict[str, Any]) -> Dict[str, str]:
        applied = self.registry.update_node_config_values(node_id, attrs)
        if applied and self.is_running:
            self.publish_node(node_id)
        return applied

    def update_node_status(self, node_id: str, status: Dict[str, str]) -> bool:
        node = self.registry.get_node(node_id)
        changed = node is not None and any(node.status.get(k) != str(v) for k, v in status.items())
        updated = self.registry.update_node_status(node_id, status)
        if changed and self.is_running:
            self.publish_node(node_id)
        return updated

    def update_node_error_status(self, node_id: str, run_state: str, message: str = "") -> bool:
        node = self.registry.get_node(node_id)
        changed = node is not None and (node.run_state != run_state or node.error_message != message)
        updated = self.registry.update_node_error_status(node_id, run_state, message)
        if changed and self.is_running:
            self.publish_node(node_id)
        return updated

    def new_output(self, node_id: str, output_type: str, instance: str = DEFAULT_OUTPUT_INSTANCE) -> Output:
        return self.registry.new_output(node_id, output_type, instance)

    def get_output(self, node_id: str, output_type: str, instance: str = DEFAULT_OUTPUT_INSTANCE) -> Optional[Output]:
        return self.registry.get_output(node_id, output_type, instance)

    def get_output_value(self, node_id: str, output_type: str, instance: str = DEFAULT_OUTPUT_INSTANCE) -> Optional[OutputValue]:
        return self.registry.get_output_value(node_id, output_type, instance)

    def update_output_value(self, node_id: str, output_type: str, instance: str, value: Any) -> bool:
        if not self.registry.update_output_value(node_id, output_type, instance, value):
            logger.warning(f"update_output_value: node {node_id} has no {output_type} output")
            return False
        output = self.registry.get_output(node_id, output_type, instance)
        return self._publish(self.output_topic(output, "$value"), str(value))
