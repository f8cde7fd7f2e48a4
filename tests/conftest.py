from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List

import cv2
import numpy as np
import pytest

from videogateway.errors import NetworkFailureError
from videogateway.mapping_store import MappingStore
from videogateway.models import LeaseStatus
from videogateway.rack_client import RackClient

AXIS_ID = 1
HANWHA_ID = 12
UNKNOWN_ID = 7


def make_document() -> dict:
    return {
        "slots": {"1": "1:1", "2": "1:16", "7": "12:3", "9": "N/A"},
        "devices": [
            {
                "id": AXIS_ID,
                "internalIp": "192.168.100.11",
                "internalPort": "80",
                "natPort": "8011",
                "natSSLPort": "8411",
                "natRTSPPort": "5511",
                "type": "Axis.P7216",
                "maxPort": 16,
            },
            {
                "id": HANWHA_ID,
                "internalIp": "",
                "internalPort": "",
                "natPort": "8012",
                "natSSLPort": "8412",
                "natRTSPPort": "5512",
                "type": "Hanwha.SPE-1620",
                "maxPort": 4,
            },
            {
                "id": UNKNOWN_ID,
                "natPort": "8017",
                "natSSLPort": "8417",
                "natRTSPPort": "5517",
                "type": "Bosch.VIP-X1",
                "maxPort": 2,
            },
        ],
        "rackHost": "rack01.example.net",
        "rackIp": "10.0.0.15",
        "useProxy": False,
        "proxyBaseUrl": "",
    }


@pytest.fixture
def document_dict() -> dict:
    return make_document()


@pytest.fixture
def mapping_path(tmp_path: Path, document_dict: dict) -> Path:
    path = tmp_path / "slot-mappings.json"
    path.write_text(json.dumps(document_dict, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def store(mapping_path: Path) -> MappingStore:
    return MappingStore(mapping_path)


def solid_frame(rgb, width: int = 704, height: int = 480) -> np.ndarray:
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[:, :] = rgb
    return frame


def encode_png(rgb_frame: np.ndarray) -> bytes:
    """PNG keeps exact pixel values, unlike JPEG."""
    ok, buffer = cv2.imencode(".png", cv2.cvtColor(rgb_frame, cv2.COLOR_RGB2BGR))
    assert ok
    return buffer.tobytes()


class FakeRack(RackClient):
    """Serves canned lease statuses and queued screenshots."""

    def __init__(self, leases=None, frames: List[bytes] = (), lease_error=None) -> None:
        super().__init__("http://rack:9090/", capability_url="http://rack:9090/capability")
        self.leases: Dict[str, LeaseStatus] = leases or {}
        self.frames = list(frames)
        self.lease_error = lease_error
        self.screenshot_calls = 0

    async def fetch_lease_status(self):
        if self.lease_error is not None:
            raise self.lease_error
        return self.leases

    async def fetch_screenshot(self, slot):
        self.screenshot_calls += 1
        if not self.frames:
            raise NetworkFailureError(f"Failed to fetch screenshot for slot {slot}: timeout")
        return self.frames.pop(0)
