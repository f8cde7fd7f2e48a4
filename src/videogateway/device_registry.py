"""Device id to video strategy registry."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Optional, Set, Type

from .devices import DEFAULT_PROBE_TIMEOUT, AxisVideoDevice, HanwhaVideoDevice, VideoDevice
from .models import MappingDocument, VideoType

LOGGER = logging.getLogger(__name__)

STRATEGIES: Dict[VideoType, Type[VideoDevice]] = {
    VideoType.AXIS_P7216: AxisVideoDevice,
    VideoType.AXIS_FA54: AxisVideoDevice,
    VideoType.HANWHA_SPE_1620: HanwhaVideoDevice,
}


@dataclass
class DeviceRegistry:
    devices: Dict[int, VideoDevice] = field(default_factory=dict)
    unsupported: Set[int] = field(default_factory=set)
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    @classmethod
    def from_document(
        cls, document: MappingDocument, probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    ) -> "DeviceRegistry":
        devices, unsupported = cls._build(document, probe_timeout)
        return cls(devices=devices, unsupported=unsupported, probe_timeout=probe_timeout)

    @staticmethod
    def _build(document: MappingDocument, probe_timeout: float) -> tuple[Dict[int, VideoDevice], Set[int]]:
        LOGGER.info("Initialising video devices")
        devices: Dict[int, VideoDevice] = {}
        unsupported: Set[int] = set()
        for device in document.devices:
            strategy_cls = STRATEGIES.get(device.video_type)
            if strategy_cls is None:
                LOGGER.info("No video strategy for device %s of type %r", device.id, device.type)
                unsupported.add(device.id)
                continue
            devices[device.id] = strategy_cls.from_device(device, document, probe_timeout=probe_timeout)
        return devices, unsupported

    def get(self, device_id: int) -> Optional[VideoDevice]:
        return self.devices.get(device_id)

    def is_unsupported(self, device_id: int) -> bool:
        return device_id in self.unsupported

    def list_ids(self) -> list[int]:
        return sorted(self.devices.keys())

    def rebuild(self, document: MappingDocument) -> None:
        devices, unsupported = self._build(document, self.probe_timeout)
        with self._lock:
            self.devices = devices
            self.unsupported = unsupported
        LOGGER.info("Video device registry rebuilt with %d devices", len(devices))
