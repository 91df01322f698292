"""
Handles the low-level streaming of audio bytes over HTTP into a local file.
"""

import asyncio
import logging
import os
from typing import Callable, Optional

import aiofiles
import aiohttp

from hifi_cli.exceptions import FilesystemFailure, NetworkFailure

log = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


def create_download_session(limit_per_host: int = 8) -> aiohttp.ClientSession:
    """Builds the aiohttp session used for audio transfers."""
    connector = aiohttp.TCPConnector(
        limit_per_host=limit_per_host,
        ttl_dns_cache=600,  # 10 minutes
        keepalive_timeout=30,
        enable_cleanup_closed=True,
    )
    # Audio files can be large, so only connect/read stalls time out
    timeout = aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=90)
    return aiohttp.ClientSession(connector=connector, timeout=timeout)


class Downloader:
    """Streams a URL to disk, reporting percentage progress as it goes."""

    CHUNK_SIZE = 262144  # 256 KB

    def __init__(self, session: aiohttp.ClientSession):
        self.session = session

    async def download_file(
        self,
        url: str,
        destination_path: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """
        Writes the response body to `destination_path` and returns the number
        of bytes received. Progress is bytes received over Content-Length
        times 100, or 0 when the length is unknown. A failed transfer leaves
        the partial file in place.

        Raises:
            NetworkFailure: on any HTTP or transport error.
            FilesystemFailure: the destination file cannot be opened or written.
        """
        bytes_downloaded = 0
        try:
            async with self.session.get(url, allow_redirects=True) as response:
                response.raise_for_status()
                total_size = int(response.headers.get("Content-Length", 0) or 0)

                async with aiofiles.open(destination_path, "wb") as f:
                    async for chunk in response.content.iter_chunked(self.CHUNK_SIZE):
                        await f.write(chunk)
                        bytes_downloaded += len(chunk)
                        if on_progress:
                            on_progress(
                                bytes_downloaded / total_size * 100 if total_size else 0
                            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.debug(
                f"Transfer of '{os.path.basename(destination_path)}' failed after "
                f"{bytes_downloaded} bytes: {e}"
            )
            raise NetworkFailure(f"Download failed: {e}") from e
        except OSError as e:
            log.debug(f"Could not write '{destination_path}': {e}")
            raise FilesystemFailure(
                f"Could not write '{os.path.basename(destination_path)}': {e}"
            ) from e

        return bytes_downloaded
