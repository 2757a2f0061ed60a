"""Thin JSON client over a shared aiohttp session.

Every transport-level failure is converted into ``UpstreamError`` so that
adapters and the orchestrator only ever deal with the error taxonomy.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from .errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 8.0


class JsonHttpClient:
    """GET/POST helpers returning decoded JSON bodies."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self._session = session
        self._owns_session = session is None
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def get_json(
        self,
        provider: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return await self._request(provider, "GET", url, params=params, headers=headers)

    async def post_json(
        self,
        provider: str,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return await self._request(provider, "POST", url, json=payload, headers=headers)

    async def _request(self, provider: str, method: str, url: str, **kwargs) -> Any:
        session = await self._get_session()
        try:
            async with session.request(method, url, timeout=self.timeout, **kwargs) as resp:
                if resp.status < 200 or resp.status >= 300:
                    raise UpstreamError(
                        provider,
                        f"{provider} returned HTTP {resp.status}",
                        status=resp.status,
                    )
                body = await resp.read()
        except asyncio.TimeoutError:
            raise UpstreamError(provider, f"{provider} timed out after {self.timeout.total}s")
        except aiohttp.ClientError as e:
            raise UpstreamError(provider, f"{provider} request failed: {e}")

        # UnicodeDecodeError is a ValueError
        try:
            return json.loads(body.decode("utf-8"))
        except ValueError:
            logger.debug(f"{provider} sent non-JSON body: {body[:200]!r}")
            raise UpstreamError(provider, f"{provider} returned malformed JSON", status=resp.status)
