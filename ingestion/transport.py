"""
HTTP transport for registry artifacts.

The pipeline only needs to know whether a download worked and how large the
resulting file is; status codes and transfer details stay in this module's
log lines.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"


def partial_path(dest: Path) -> Path:
    return dest.with_name(dest.name + PARTIAL_SUFFIX)


class HttpTransport:
    """
    Stream a URL to a local file.

    The body is written to `<dest>.part` and renamed to `dest` only after the
    transfer completed with HTTP 200, so an interrupted download never sits
    under the final name.
    """

    def __init__(
        self,
        connect_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.connect_timeout = connect_timeout
        self._transport = transport

    async def download(
        self,
        url: str,
        dest: Path,
        timeout: float,
        params: Optional[dict] = None,
    ) -> Tuple[bool, int]:
        """
        Download `url` to `dest` within `timeout` seconds.

        Returns:
            Tuple of (success, size in bytes of what was received)
        """
        part = partial_path(dest)
        part.unlink(missing_ok=True)
        size = 0

        try:
            size = await asyncio.wait_for(self._stream(url, part, timeout, params), timeout)
        except asyncio.TimeoutError:
            logger.error(f" --> Download timed out after {timeout}s")
            size = part.stat().st_size if part.exists() else 0
            part.unlink(missing_ok=True)
            return False, size
        except httpx.HTTPStatusError as e:
            logger.error(f" --> Download failed (HTTP {e.response.status_code})")
            part.unlink(missing_ok=True)
            return False, 0
        except (httpx.HTTPError, OSError) as e:
            logger.error(f" --> Download failed ({type(e).__name__}: {e})")
            size = part.stat().st_size if part.exists() else 0
            part.unlink(missing_ok=True)
            return False, size

        part.replace(dest)
        return True, size

    async def _stream(self, url: str, part: Path, timeout: float, params: Optional[dict]) -> int:
        client_timeout = httpx.Timeout(timeout, connect=self.connect_timeout)
        size = 0
        async with httpx.AsyncClient(timeout=client_timeout, transport=self._transport) as client:
            async with client.stream(
                "GET",
                url,
                params=params,
                headers={"Accept": "application/octet-stream"},
            ) as response:
                if response.status_code != 200:
                    raise httpx.HTTPStatusError(
                        f"HTTP {response.status_code}",
                        request=response.request,
                        response=response,
                    )
                with open(part, "wb") as handle:
                    async for chunk in response.aiter_bytes():
                        handle.write(chunk)
                        size += len(chunk)
        return size
