"""
Fetcher - download a camera image over HTTP(S)
"""
import asyncio
import time
from typing import Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

import aiohttp
from loguru import logger

from ipcam.errors import CameraConnectionError, CameraHTTPError, CameraReadError

DEFAULT_FETCH_TIMEOUT = 30.0


def safe_url(url: str) -> str:
    """URL without user:password@ so it can be logged."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<invalid url>"
    if "@" not in parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


async def read_image(
    session: aiohttp.ClientSession,
    url: str,
    login: str = "",
    password: str = "",
    timeout: float = DEFAULT_FETCH_TIMEOUT,
) -> Tuple[bytes, int]:
    """
    Download the image at url.

    Args:
        session: shared HTTP session
        url: camera image URL
        login: basic auth login name. Empty for an unauthenticated request
        password: basic auth password
        timeout: total seconds allowed for request and body read

    Returns:
        (image, latency_ms): image bytes and the download time rounded to whole milliseconds

    Raises:
        CameraConnectionError: the request could not be sent or timed out
        CameraHTTPError: the camera responded with a non-2xx status
        CameraReadError: the response body could not be read
    """
    shown = safe_url(url)
    logger.debug(f"read_image: Reading camera image from URL {shown}")
    if not url:
        raise CameraConnectionError(url, "No camera URL configured")

    auth: Optional[aiohttp.BasicAuth] = None
    if login:
        auth = aiohttp.BasicAuth(login, password or "")

    start_time = time.perf_counter()
    try:
        async with session.get(url, auth=auth, timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
            if not 200 <= resp.status <= 299:
                logger.error(f"read_image: Failed opening URL {shown}: {resp.status} {resp.reason}")
                raise CameraHTTPError(url, resp.status, resp.reason or "")
            try:
                image = await resp.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error(f"read_image: Error reading camera image from {shown}: {e}")
                raise CameraReadError(url, f"Error reading image: {str(e) or type(e).__name__}") from e
    except (CameraHTTPError, CameraReadError):
        raise
    except asyncio.TimeoutError as e:
        logger.error(f"read_image: Timeout opening URL {shown}")
        raise CameraConnectionError(url, f"Timeout after {timeout}s") from e
    except (aiohttp.ClientError, ValueError) as e:
        # ValueError covers malformed URLs rejected by yarl
        logger.error(f"read_image: Error opening URL {shown}: {e}")
        raise CameraConnectionError(url, str(e) or type(e).__name__) from e

    # a loopback fetch can finish in under half a millisecond
    latency_ms = max(1, round((time.perf_counter() - start_time) * 1000))
    return image, latency_ms
