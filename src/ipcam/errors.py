"""
Exception hierarchy for the camera poller.
"""


class IPCamError(Exception):
    """Base class for all ipcam errors."""


class ConfigError(IPCamError):
    """The configuration file is malformed."""


class FetchError(IPCamError):
    """Downloading a camera image failed."""

    def __init__(self, url: str, message: str):
        super().__init__(message)
        self.url = url


class CameraConnectionError(FetchError):
    """DNS, TCP, TLS or timeout failure before a response was received."""


class CameraHTTPError(FetchError):
    """The camera answered with a non-2xx status."""

    def __init__(self, url: str, status: int, reason: str = ""):
        super().__init__(url, f"{status} {reason}".strip())
        self.status = status
        self.reason = reason


class CameraReadError(FetchError):
    """The response body could not be read completely."""


class PollError(IPCamError):
    """A poll of a single camera failed. Wraps the underlying FetchError."""

    def __init__(self, node_id: str, message: str, cause: Exception = None):
        super().__init__(message)
        self.node_id = node_id
        self.cause = cause


class ImageSaveError(IPCamError):
    """Writing the polled image to the image folder failed."""

    def __init__(self, path: str, cause: Exception):
        super().__init__(f"Unable to save image to {path}: {cause}")
        self.path = path
        self.cause = cause
