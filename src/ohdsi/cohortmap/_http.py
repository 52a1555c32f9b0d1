import asyncio
import logging
from typing import Any, Optional

import aiohttp
import orjson

from ._config import REQUEST_TIMEOUT_SECONDS
from ._exceptions import TransportError

logger = logging.getLogger(__name__)


class AuthenticatedFetch:
    """GET requests against the GIS service, carrying the caller's credential.

    The bearer token is injected at construction time. Every request also
    carries an ``Action-Location`` header naming the view it originates from.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        action_location: str = "",
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self._token = token
        self._action_location = action_location
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Action-Location": str(self._action_location)}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def query(self, url: str) -> Any:
        """Fetch ``url`` and parse the JSON body.

        Args:
            url: Absolute URL to request.

        Returns:
            The decoded JSON payload.

        Raises:
            TransportError: If the request fails, the status is not 2xx, or the
                body is not valid JSON.
        """
        logger.info("GET %s", url)
        try:
            async with aiohttp.ClientSession(timeout=self._timeout, headers=self.headers) as session:
                async with session.get(url) as resp:
                    resp.raise_for_status()
                    data = await resp.read()
        except aiohttp.ClientResponseError as e:
            raise TransportError(f"GIS service answered {e.status} for {url}", url, e.status) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Request to {url} failed: {e}", url) from e

        try:
            return orjson.loads(data)
        except orjson.JSONDecodeError as e:
            raise TransportError(f"Invalid JSON in response from {url}", url) from e

    async def check_status(self, url: str) -> bool:
        """Return whether ``url`` answers with status 200 exactly.

        Any other status (redirects, 4xx, 5xx) is ``False``.

        Raises:
            TransportError: If no response could be obtained.
        """
        logger.info("GET %s (status check)", url)
        try:
            async with aiohttp.ClientSession(timeout=self._timeout, headers=self.headers) as session:
                async with session.get(url, allow_redirects=False) as resp:
                    return resp.status == 200
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Request to {url} failed: {e}", url) from e
