"""Data models for the slot mapping document and health reports."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

UNMAPPED = "N/A"


class VideoType(str, Enum):
    AXIS_P7216 = "Axis.P7216"
    AXIS_FA54 = "Axis.FA54"
    HANWHA_SPE_1620 = "Hanwha.SPE-1620"
    UNKNOWN = "Unknown"

    @classmethod
    def find(cls, label: Optional[str]) -> "VideoType":
        for video_type in cls:
            if video_type is not cls.UNKNOWN and video_type.value == label:
                return video_type
        return cls.UNKNOWN

    @property
    def is_axis(self) -> bool:
        return self in (VideoType.AXIS_P7216, VideoType.AXIS_FA54)

    @property
    def is_hanwha(self) -> bool:
        return self is VideoType.HANWHA_SPE_1620


class ScreenVerdict(str, Enum):
    BLACK = "Black"
    BLUE = "Blue"
    GREEN = "Green"
    NORMAL = "Normal"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Device(_CamelModel):
    model_config = ConfigDict(frozen=True)

    id: int
    internal_ip: Optional[str] = None
    internal_port: Optional[str] = None
    nat_port: str = ""
    nat_ssl_port: str = Field(default="", alias="natSSLPort")
    nat_rtsp_port: str = Field(default="", alias="natRTSPPort")
    type: Optional[str] = None
    max_port: int = 0

    @property
    def video_type(self) -> VideoType:
        return VideoType.find(self.type)


class MappingDocument(_CamelModel):
    slots: Dict[str, str] = Field(default_factory=dict)
    devices: List[Device] = Field(default_factory=list)
    rack_host: Optional[str] = None
    rack_ip: Optional[str] = None
    use_proxy: bool = False
    proxy_base_url: Optional[str] = None

    def device_by_id(self, device_id: int) -> Optional[Device]:
        for device in self.devices:
            if device.id == device_id:
                return device
        return None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class HealthReport(_CamelModel):
    host: str = ""
    entity: str = ""
    is_healthy: bool = False
    remarks: Optional[str] = None


class LeaseStatus(_CamelModel):
    is_healthy: Optional[bool] = None
    comment: Optional[str] = None
    metadata: List[Any] = Field(default_factory=list)

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class HealthStatusBean(_CamelModel):
    is_healthy: bool = True
    hw_devices_health_status: List[HealthReport] = Field(default_factory=list)
    lease_health_status: Optional[LeaseStatus] = None
    remarks: Optional[str] = None
    version: Dict[str, str] = Field(default_factory=dict)
