"""Vendor specific video device strategies: URL synthesis and health probes."""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import requests

from .errors import UnsupportedError
from .models import Device, HealthReport, MappingDocument

LOGGER = logging.getLogger(__name__)

DEFAULT_INTERNAL_SUBNET = "192.168.100."
DEFAULT_INTERNAL_PORT = "80"
DEFAULT_PROBE_TIMEOUT = 5.0

# Canonical frame sizes to the resolution tokens the encoders understand
CANONICAL_RESOLUTIONS = {
    "704x480": "4CIF",
    "704x576": "4CIF",
    "720x480": "D1",
    "720x576": "D1",
    "704x240": "2CIF",
    "704x288": "2CIF",
    "352x240": "CIF",
    "352x288": "CIF",
    "176x120": "QCIF",
    "176x144": "QCIF",
}


def map_resolution(resolution: str) -> str:
    """Map a WxH resolution to its canonical token; unknown values pass through."""
    return CANONICAL_RESOLUTIONS.get(resolution, resolution)


def _is_set(value: Optional[str]) -> bool:
    return value is not None and bool(str(value).strip())


@dataclass(frozen=True)
class VideoDevice(ABC):
    """Immutable URL-synthesis strategy for one physical video encoder."""

    internal_ip: Optional[str]
    internal_port: Optional[str]
    nat_port: str
    nat_ssl_port: str
    nat_rtsp_port: str
    rack_host: Optional[str] = None
    rack_ip: Optional[str] = None
    use_proxy: bool = False
    proxy_base_url: Optional[str] = None
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT

    SUPPORTED_RESOLUTIONS = ("704x480", "720x480", "1024x768", "1920x1080")

    def __post_init__(self) -> None:
        if not _is_set(self.internal_ip):
            object.__setattr__(self, "internal_ip", DEFAULT_INTERNAL_SUBNET + str(self.nat_port)[-2:])
        if not _is_set(self.internal_port):
            object.__setattr__(self, "internal_port", DEFAULT_INTERNAL_PORT)

    @classmethod
    def from_device(
        cls,
        device: Device,
        document: MappingDocument,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> "VideoDevice":
        return cls(
            internal_ip=device.internal_ip,
            internal_port=device.internal_port,
            nat_port=device.nat_port,
            nat_ssl_port=device.nat_ssl_port,
            nat_rtsp_port=device.nat_rtsp_port,
            rack_host=document.rack_host,
            rack_ip=document.rack_ip,
            use_proxy=document.use_proxy,
            proxy_base_url=document.proxy_base_url,
            probe_timeout=probe_timeout,
        )

    @property
    @abstractmethod
    def vendor(self) -> str:
        """Return the vendor family name."""

    @abstractmethod
    def snapshot_url(
        self,
        outlet: int,
        resolution: Optional[str] = None,
        codec: Optional[str] = None,
        square_pixel: Optional[str] = None,
        use_ssl: bool = True,
        is_local: bool = False,
    ) -> str:
        """Build the still image URL for an outlet."""

    @abstractmethod
    def video_url(
        self,
        outlet: int,
        resolution: Optional[str] = None,
        codec: Optional[str] = None,
        square_pixel: Optional[str] = None,
        fps: Optional[str] = None,
        use_ssl: bool = True,
        is_local: bool = False,
        is_rtsp: bool = False,
    ) -> str:
        """Build the live stream URL for an outlet."""

    @abstractmethod
    async def probe_health(self) -> HealthReport:
        """Check that the encoder answers on its internal address."""

    def supported_resolutions(self) -> List[str]:
        return list(self.SUPPORTED_RESOLUTIONS)

    def base_url(self, use_ssl: bool, is_local: bool) -> str:
        """Pick scheme and host: local, proxied SSL, SSL, proxied, then plain NAT."""
        proxy = self.proxy_base_url or ""
        host = self.rack_host or ""
        if is_local:
            return f"http://{self.internal_ip}:{self.internal_port}"
        if use_ssl and self.use_proxy:
            return f"https://{proxy}{host}/video/{self.nat_ssl_port}"
        if use_ssl:
            return f"https://{host}:{self.nat_ssl_port}"
        if self.use_proxy:
            return f"http://{proxy}{host}/video/{self.nat_port}"
        return f"http://{host}:{self.nat_port}"

    def rtsp_base_url(self) -> str:
        return f"rtsp://{self.rack_host or ''}:{self.nat_rtsp_port}"


class AxisVideoDevice(VideoDevice):
    """Axis P7216 / FA54 encoders; outlets map to ``camera=<outlet>``."""

    PROBE_PATH = "/axis-cgi/jpg/image.cgi?camera=1"

    @property
    def vendor(self) -> str:
        return "axis"

    def snapshot_url(self, outlet, resolution=None, codec=None, square_pixel=None,
                     use_ssl=True, is_local=False) -> str:
        url = f"{self.base_url(use_ssl, is_local)}/axis-cgi/jpg/image.cgi?camera={outlet}"
        if _is_set(square_pixel):
            url += f"&squarepixel={square_pixel}"
        if _is_set(resolution):
            url += f"&resolution={map_resolution(resolution)}"
        if _is_set(codec):
            url += f"&videocodec={codec}"
        return url

    def video_url(self, outlet, resolution=None, codec=None, square_pixel=None, fps=None,
                  use_ssl=True, is_local=False, is_rtsp=False) -> str:
        if is_rtsp:
            url = f"{self.rtsp_base_url()}/axis-media/media.amp?camera={outlet}"
        else:
            url = f"{self.base_url(use_ssl, is_local)}/mjpg/video.mjpg?camera={outlet}"
        if _is_set(fps):
            url += f"&fps={fps}"
        if _is_set(square_pixel):
            url += f"&squarepixel={square_pixel}"
        if _is_set(resolution):
            url += f"&resolution={map_resolution(resolution)}"
        if _is_set(codec):
            url += f"&videocodec={codec}"
        return url

    async def probe_health(self) -> HealthReport:
        report = HealthReport(host=self.internal_ip, entity=f"VID{self.internal_ip[-2:]}")
        url = f"http://{self.internal_ip}{self.PROBE_PATH}"
        LOGGER.info("The Axis video url is %s", url)
        loop = asyncio.get_running_loop()
        try:
            # requests is blocking; keep it off the event loop
            await loop.run_in_executor(None, self._fetch, url)
        except requests.RequestException as exc:
            LOGGER.warning("Axis probe failed for %s: %s", self.internal_ip, exc)
            report.is_healthy = False
            report.remarks = str(exc)
            return report
        report.is_healthy = True
        return report

    def _fetch(self, url: str) -> bytes:
        response = requests.get(url, timeout=self.probe_timeout)
        response.raise_for_status()
        return response.content


class HanwhaVideoDevice(VideoDevice):
    """Hanwha SPE-1620 encoders; channels are zero based (``Channel=<outlet-1>``)."""

    STREAM_RESOLUTIONS = {"4CIF": "704x480"}

    @property
    def vendor(self) -> str:
        return "hanwha"

    def snapshot_url(self, outlet, resolution=None, codec=None, square_pixel=None,
                     use_ssl=True, is_local=False) -> str:
        return (
            f"{self.base_url(use_ssl, is_local)}"
            f"/stw-cgi/video.cgi?msubmenu=snapshot&action=view&Profile=1&Channel={outlet - 1}"
        )

    def video_url(self, outlet, resolution=None, codec=None, square_pixel=None, fps=None,
                  use_ssl=True, is_local=False, is_rtsp=False) -> str:
        base = self.rtsp_base_url() if is_rtsp else self.base_url(use_ssl, is_local)
        url = f"{base}/stw-cgi/video.cgi?msubmenu=stream&action=view&Profile=1&Channel={outlet - 1}"
        if _is_set(fps):
            url += f"&FrameRate={fps}"
        if _is_set(resolution):
            url += f"&Resolution={self.STREAM_RESOLUTIONS.get(resolution, resolution)}"
        url += f"&CodecType={codec if _is_set(codec) else 'MJPEG'}"
        return url

    async def probe_health(self) -> HealthReport:
        raise UnsupportedError("Operation not supported for hanwha video device")
