"""Consolidated rack video health: device probes, lease status and screen checks."""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

import numpy as np

from .classifier import FrameClassifier, decode_frame
from .device_registry import DeviceRegistry
from .errors import GatewayError, UnsupportedError
from .mapping_store import MappingStore
from .models import Device, HealthReport, HealthStatusBean, LeaseStatus, ScreenVerdict
from .rack_client import RackClient

LOGGER = logging.getLogger(__name__)

DEFAULT_LEASE_GROUPS = ("VID", "MTR")


class HealthAggregator:
    def __init__(
        self,
        store: MappingStore,
        registry: DeviceRegistry,
        rack: RackClient,
        classifier: Optional[FrameClassifier] = None,
        max_concurrent_probes: int = 16,
        lease_groups: Sequence[str] = DEFAULT_LEASE_GROUPS,
        build_version: str = "development",
    ) -> None:
        self.store = store
        self.registry = registry
        self.rack = rack
        self.classifier = classifier or FrameClassifier()
        self.max_concurrent_probes = max_concurrent_probes
        self.lease_groups = list(lease_groups)
        self.build_version = build_version

    async def lease_status(self) -> LeaseStatus:
        """Fold the configured lease groups into one status.

        Raises NetworkFailureError when the capability document cannot be fetched.
        """
        statuses = await self.rack.fetch_lease_status()
        aggregate = LeaseStatus(is_healthy=True)
        comments: List[str] = []
        for group in self.lease_groups:
            status = statuses.get(group)
            if status is None:
                continue
            LOGGER.info("Processing lease status for %s: %s", group, status)
            aggregate.metadata.extend(status.metadata)
            if status.is_healthy is False:
                aggregate.is_healthy = False
            if status.comment is not None:
                comments.append(status.comment)
        aggregate.comment = "".join(comments)
        return aggregate

    async def device_reports(self) -> List[HealthReport]:
        loop = asyncio.get_running_loop()
        devices = await loop.run_in_executor(None, self.store.list_devices)
        semaphore = asyncio.Semaphore(self.max_concurrent_probes)

        async def bounded(device: Device) -> HealthReport:
            async with semaphore:
                return await self._probe_device(device)

        return list(await asyncio.gather(*(bounded(device) for device in devices)))

    async def _probe_device(self, device: Device) -> HealthReport:
        strategy = self.registry.get(device.id)
        if strategy is None:
            host = device.internal_ip or ""
            return HealthReport(
                host=host,
                entity=f"DEVICE{device.id}",
                is_healthy=False,
                remarks=f"No video strategy for device {device.id} of type {device.type!r}",
            )
        try:
            return await strategy.probe_health()
        except UnsupportedError as exc:
            LOGGER.info("Health probe unsupported for device %s: %s", device.id, exc)
            remarks = exc.message
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Health probe failed for device %s", device.id)
            remarks = str(exc)
        return HealthReport(
            host=strategy.internal_ip,
            entity=f"VID{strategy.internal_ip[-2:]}",
            is_healthy=False,
            remarks=remarks,
        )

    async def video_health(self) -> HealthStatusBean:
        """Lease status and device probes merged into a single best-effort report."""
        bean = HealthStatusBean(is_healthy=True, version={"MS_VERSION": self.build_version})
        lease_result, reports = await asyncio.gather(
            self.lease_status(),
            self.device_reports(),
            return_exceptions=True,
        )
        if isinstance(reports, BaseException):
            LOGGER.error("Device health fan-out failed: %s", reports)
            bean.is_healthy = False
            bean.remarks = str(reports)
        else:
            bean.hw_devices_health_status = reports
            if not all(report.is_healthy for report in reports):
                bean.is_healthy = False
        if isinstance(lease_result, BaseException):
            LOGGER.error("Failed to fetch lease details: %s", lease_result)
            bean.is_healthy = False
            bean.remarks = f"Failed to fetch details of lease {lease_result}"
        else:
            bean.lease_health_status = lease_result
            if lease_result.is_healthy is False:
                bean.is_healthy = False
        LOGGER.info("The video health is %s", bean.is_healthy)
        return bean

    async def screen_status(self, slot: int | str) -> HealthReport:
        """Classify what the slot's screen is currently showing."""
        report = HealthReport(host=self.rack.screenshot_url(slot), entity=f"SLOT{slot}")
        loop = asyncio.get_running_loop()

        async def fetch_frame() -> np.ndarray:
            data = await self.rack.fetch_screenshot(slot)
            # Decoding is CPU bound; keep it off the event loop
            return await loop.run_in_executor(None, decode_frame, data)

        try:
            image = await fetch_frame()
            verdict = await self.classifier.classify(image, fetch_frame)
        except GatewayError as exc:
            LOGGER.warning("Screen status for slot %s failed: %s", slot, exc)
            report.is_healthy = False
            report.remarks = exc.message
            return report
        report.is_healthy = verdict is ScreenVerdict.NORMAL
        report.remarks = f"Observed the screen to be {verdict.value}"
        return report
