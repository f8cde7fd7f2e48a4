"""Slot level URL generation on top of the mapping store and device registry."""
from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from .device_registry import DeviceRegistry
from .devices import VideoDevice
from .errors import InvalidArgumentError, NotFoundError, UnsupportedError
from .mapping_store import MappingStore

LOGGER = logging.getLogger(__name__)

API_PATH = re.compile(r"/video/rest/(.*)/slot/([0-9]+)/(.*)")


def slot_from_path(path: str) -> int:
    """Extract the slot number from a legacy ``/video/rest/.../slot/<n>/...`` path."""
    LOGGER.info("Retrieving slot information from the path %s", path)
    match = API_PATH.fullmatch(path)
    if match is None:
        raise NotFoundError("Invalid API path")
    return int(match.group(2))


class VideoService:
    def __init__(self, store: MappingStore, registry: DeviceRegistry) -> None:
        self.store = store
        self.registry = registry

    def resolve(self, slot: int | str) -> Tuple[VideoDevice, int]:
        """Return the strategy and outlet serving a slot.

        Raises NotFoundError for unmapped slots, InvalidArgumentError when the
        mapped device is missing from the document and UnsupportedError when
        the device type has no strategy.
        """
        device_id, outlet = self.store.resolve(str(slot))
        if self.store.find_device(device_id) is None:
            LOGGER.info("Video device is not configured for the slot %s", slot)
            raise InvalidArgumentError("Video device not configured")
        strategy = self.registry.get(device_id)
        if strategy is None:
            raise UnsupportedError(f"No video strategy available for device {device_id}")
        return strategy, outlet

    def snapshot_url(
        self,
        slot: int | str,
        resolution: Optional[str] = None,
        codec: Optional[str] = None,
        square_pixel: Optional[str] = None,
        use_ssl: bool = True,
        is_local: bool = False,
    ) -> str:
        strategy, outlet = self.resolve(slot)
        return strategy.snapshot_url(outlet, resolution, codec, square_pixel, use_ssl, is_local)

    def snapshot_url_for_path(self, path: str, **params) -> str:
        return self.snapshot_url(slot_from_path(path), **params)

    def video_url(
        self,
        slot: int | str,
        resolution: Optional[str] = None,
        codec: Optional[str] = None,
        square_pixel: Optional[str] = None,
        fps: Optional[str] = None,
        use_ssl: bool = True,
        is_local: bool = False,
        is_rtsp: bool = False,
    ) -> str:
        strategy, outlet = self.resolve(slot)
        return strategy.video_url(outlet, resolution, codec, square_pixel, fps, use_ssl, is_local, is_rtsp)

    def supported_resolutions(self, slot: int | str) -> List[str]:
        strategy, _ = self.resolve(slot)
        return strategy.supported_resolutions()
