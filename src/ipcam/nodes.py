"""
Node data classes - cameras, their configuration attributes and outputs
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import time

# Node types
NODE_TYPE_CAMERA = "camera"

# Configuration attribute names
ATTR_URL = "url"
ATTR_LOGIN_NAME = "loginName"
ATTR_PASSWORD = "password"
ATTR_POLL_INTERVAL = "pollInterval"
ATTR_FILENAME = "filename"
ATTR_DESCRIPTION = "description"

# Status keys
STATUS_LATENCY_MSEC = "latencyMSec"
STATUS_LAST_ERROR = "lastError"
STATUS_RUN_STATE = "runState"

# Run states
RUN_STATE_READY = "ready"
RUN_STATE_ERROR = "error"

# Output types
OUTPUT_TYPE_IMAGE = "image"
OUTPUT_TYPE_LATENCY = "latency"
DEFAULT_OUTPUT_INSTANCE = "0"

# Data types
DATA_TYPE_STRING = "string"
DATA_TYPE_INT = "int"

# Poll interval bounds in seconds
MIN_POLL_INTERVAL = 5
MAX_POLL_INTERVAL = 3600
DEFAULT_POLL_INTERVAL = 600


@dataclass
class ConfigAttr:
    """A configurable node attribute. Secret values are never published."""
    data_type: str = DATA_TYPE_STRING
    description: str = ""
    default: str = ""
    value: Optional[str] = None
    secret: bool = False
    min: Optional[int] = None
    max: Optional[int] = None

    @property
    def effective(self) -> str:
        return self.value if self.value is not None else self.default

    def to_discovery(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "dataType": self.data_type,
            "description": self.description,
            "secret": self.secret,
        }
        if self.min is not None:
            data["min"] = self.min
        if self.max is not None:
            data["max"] = self.max
        if not self.secret:
            data["default"] = self.default
            data["value"] = self.effective
        return data


@dataclass
class Output:
    node_id: str
    output_type: str
    instance: str = DEFAULT_OUTPUT_INSTANCE

    @property
    def output_id(self) -> str:
        return f"{self.node_id}.{self.output_type}.{self.instance}"


@dataclass
class OutputValue:
    value: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class Node:
    node_id: str
    node_type: str = NODE_TYPE_CAMERA
    attr: Dict[str, str] = field(default_factory=dict)
    config: Dict[str, ConfigAttr] = field(default_factory=dict)
    status: Dict[str, str] = field(default_factory=dict)
    run_state: str = RUN_STATE_READY
    error_message: str = ""

    def to_discovery(self) -> Dict[str, Any]:
        """Discovery representation. Secret configuration values are left out."""
        return {
            "nodeId": self.node_id,
            "nodeType": self.node_type,
            "attr": dict(self.attr),
            "config": {name: cfg.to_discovery() for name, cfg in self.config.items()},
            "status": dict(self.status),
            "runState": self.run_state,
            "errorMessage": self.error_message,
        }
