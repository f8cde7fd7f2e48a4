"""Configuration loading for the rack video gateway."""
from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


def _load_yaml(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)


class MappingSettings(BaseModel):
    file: str = "config/slot-mappings.json"


class RackSettings(BaseModel):
    url: str = Field(default="http://localhost:8080/", description="Rack base URL serving screenshots")
    capability_url: Optional[str] = Field(default=None, description="Lease status document endpoint")
    request_timeout: float = Field(default=10.0, gt=0)
    screenshot_timeout: float = Field(default=10.0, gt=0)

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        safe = value.strip()
        if not safe:
            raise ValueError("Rack url cannot be empty")
        return safe


class HealthSettings(BaseModel):
    settle_seconds: float = Field(default=5.0, ge=0, description="Delay before the frozen-frame resample")
    max_concurrent_probes: int = Field(default=16, ge=1)
    probe_timeout: float = Field(default=5.0, gt=0)
    lease_groups: List[str] = Field(default_factory=lambda: ["VID", "MTR"])


class RegistrySettings(BaseModel):
    # Strategies are fixed at startup unless this is enabled
    rebuild_on_mapping_change: bool = False


class GeneralSettings(BaseModel):
    logs_root: str = "logs"
    build_version_env: str = "BUILD_VERSION"

    def build_version(self) -> str:
        return os.environ.get(self.build_version_env, "") or "development"


class RuntimeConfig(BaseModel):
    general: GeneralSettings = GeneralSettings()
    server: ServerSettings = ServerSettings()
    mapping: MappingSettings = MappingSettings()
    rack: RackSettings = RackSettings()
    health: HealthSettings = HealthSettings()
    registry: RegistrySettings = RegistrySettings()


def load_runtime_config(path: str | Path) -> RuntimeConfig:
    """Load YAML configuration into strongly typed settings."""
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    raw = _load_yaml(cfg_path)
    return RuntimeConfig.model_validate(raw)
