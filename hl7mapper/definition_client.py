# hl7mapper/definition_client.py

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

import httpx

from .config import USER_AGENT, Settings
from .definitions import SegmentDetail, parse_segment_detail, parse_segment_list
from .errors import ParseError, TransportError, UpstreamStatusError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "application/json",
}


class DefinitionClient:
    """
    Async reader for the HL7 v2 definition catalog.

    Transport failures and non-2xx responses are retried `retries` times with
    a fixed `retry_delay` between attempts. A payload that is not JSON (or not
    the expected shape) fails immediately with ParseError.
    """

    def __init__(
        self,
        base_url: str,
        *,
        retries: int = 4,
        retry_delay: float = 0.5,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.retries = retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "DefinitionClient":
        return cls(
            settings.base_url,
            retries=settings.retries,
            retry_delay=settings.retry_delay,
            timeout=settings.timeout,
            **kwargs,
        )

    def segments_url(self, version: str) -> str:
        return f"{self.base_url}/HL7v{version}/Segments"

    def segment_url(self, version: str, segment_id: str) -> str:
        return f"{self.segments_url(version)}/{quote(segment_id, safe='')}"

    async def fetch_json(self, url: str) -> Any:
        """
        GET `url` and decode the JSON body.

        Only the final failure is raised; intermediate ones are logged.
        """
        attempts = max(1, self.retries + 1)
        # One client per logical request, so it is never shared across event loops
        async with httpx.AsyncClient(
            headers=HEADERS, timeout=self.timeout, transport=self._transport
        ) as client:
            for attempt in range(1, attempts + 1):
                try:
                    logger.debug("Fetching %s (attempt %s/%s)", url, attempt, attempts)
                    response = await client.get(url)
                except httpx.RequestError as exc:
                    if attempt >= attempts:
                        raise TransportError(f"Failed request: {url}: {exc}", url=url) from exc
                    logger.warning("Fetch error for %s (attempt %s/%s): %s", url, attempt, attempts, exc)
                    await self._sleep(self.retry_delay)
                    continue

                if not response.is_success:
                    if attempt >= attempts:
                        raise UpstreamStatusError(response.status_code, url)
                    logger.warning(
                        "Status %s for %s (attempt %s/%s)",
                        response.status_code,
                        url,
                        attempt,
                        attempts,
                    )
                    await self._sleep(self.retry_delay)
                    continue

                try:
                    return response.json()
                except ValueError as exc:
                    raise ParseError(f"Invalid JSON from {url}: {exc}", url=url) from exc

    async def fetch_segments(self, version: str):
        url = self.segments_url(version)
        return parse_segment_list(await self.fetch_json(url), url=url)

    async def fetch_segment_detail(self, version: str, segment_id: str) -> SegmentDetail:
        url = self.segment_url(version, segment_id)
        return parse_segment_detail(segment_id, await self.fetch_json(url), url=url)
