"""Outbound HTTP calls to the rack: screenshots and lease status."""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

import aiohttp
from pydantic import ValidationError

from .errors import NetworkFailureError
from .models import LeaseStatus

LOGGER = logging.getLogger(__name__)

SCREENSHOT_PATH = "minion/rest/rack/{slot}/screenshot"
SCREENSHOT_PARAMS = {"resolution": "4CIF", "squarepixel": "0"}


class RackClient:
    def __init__(
        self,
        rack_url: str,
        capability_url: Optional[str] = None,
        request_timeout: float = 10.0,
        screenshot_timeout: float = 10.0,
    ) -> None:
        self.rack_url = rack_url if rack_url.endswith("/") else rack_url + "/"
        self.capability_url = capability_url
        self.request_timeout = request_timeout
        self.screenshot_timeout = screenshot_timeout

    def screenshot_url(self, slot: int | str) -> str:
        return self.rack_url + SCREENSHOT_PATH.format(slot=slot)

    async def fetch_screenshot(self, slot: int | str) -> bytes:
        """Fetch the current JPEG frame for a slot."""
        url = self.screenshot_url(slot)
        LOGGER.debug("Fetching screenshot for slot %s from %s", slot, url)
        timeout = aiohttp.ClientTimeout(total=self.screenshot_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, params=SCREENSHOT_PARAMS) as resp:
                    resp.raise_for_status()
                    return await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise NetworkFailureError(f"Failed to fetch screenshot for slot {slot}: {exc!r}") from exc

    async def fetch_lease_status(self) -> Dict[str, LeaseStatus]:
        """Fetch the capability document mapping group name to lease status."""
        if not self.capability_url:
            raise NetworkFailureError("Rack capability url is not configured")
        LOGGER.info("Capability url: %s", self.capability_url)
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.capability_url) as resp:
                    resp.raise_for_status()
                    payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise NetworkFailureError(f"Failed to fetch lease status: {exc!r}") from exc
        if not isinstance(payload, dict):
            raise NetworkFailureError("Lease status document must be a JSON object")
        statuses: Dict[str, LeaseStatus] = {}
        for group, raw in payload.items():
            if not isinstance(raw, dict):
                continue
            try:
                statuses[group] = LeaseStatus.model_validate(raw)
            except ValidationError as exc:
                LOGGER.warning("Ignoring malformed lease status for %s: %s", group, exc)
        return statuses
