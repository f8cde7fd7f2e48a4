"""Screen health classification from still frames.

A frame is sampled over its central window (the inner two thirds on both
axes, which keeps bezels and on-screen overlays out of the count) and each
pixel is bucketed as black, blue, green or other. Mostly-blue frames are the
encoder's signal-loss screen, mostly-green frames are a washed-out decoder,
and mostly-black frames are either a dead feed or dark content that is
still moving; those are resolved by sampling a second frame after a settle
delay and looking for any pixel that changed.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import cv2
import numpy as np

from .errors import InvalidArgumentError
from .models import ScreenVerdict

LOGGER = logging.getLogger(__name__)

FrameFetcher = Callable[[], Awaitable[np.ndarray]]

DARK_CHANNEL_MAX = 35
BLUE_MIN = 200
BLACK_PERCENT = 95
BLUE_PERCENT = 95
GREEN_PERCENT = 50
GREEN_CERTAIN_PERCENT = 85
GREEN_WASH_PERCENT = 70
FROZEN_PIXEL_DELTA = 6
DEFAULT_SETTLE_SECONDS = 5.0


@dataclass
class WindowStats:
    black: int
    blue: int
    green: int
    other: int
    sampled: int

    def percent(self, count: int) -> int:
        return count * 100 // self.sampled

    @property
    def black_percent(self) -> int:
        return self.percent(self.black)

    @property
    def blue_percent(self) -> int:
        return self.percent(self.blue)

    @property
    def green_percent(self) -> int:
        return self.percent(self.green)


def decode_frame(data: bytes) -> np.ndarray:
    """Decode JPEG (or any OpenCV readable) bytes into an RGB array."""
    buffer = np.frombuffer(data, dtype=np.uint8)
    if buffer.size == 0:
        raise InvalidArgumentError("Empty image buffer")
    bgr = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if bgr is None:
        raise InvalidArgumentError("Could not decode image data")
    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)


def central_window(image: np.ndarray) -> np.ndarray:
    height, width = image.shape[:2]
    if width == 0 or height == 0:
        raise InvalidArgumentError("Image has no pixels")
    x0, y0 = width // 3, height // 3
    return image[y0:height - y0, x0:width - x0]


def _channels(image: np.ndarray):
    return image[..., 0], image[..., 1], image[..., 2]


def sample_window(image: np.ndarray) -> WindowStats:
    window = central_window(image)
    red, green, blue = _channels(window)
    dark_rg = (red <= DARK_CHANNEL_MAX) & (green <= DARK_CHANNEL_MAX)
    blue_count = int(np.count_nonzero(dark_rg & (blue > BLUE_MIN)))
    black_count = int(np.count_nonzero(dark_rg & (blue <= DARK_CHANNEL_MAX)))
    green_count = int(np.count_nonzero(~dark_rg & (blue < 10) & (red < 10) & (green > 40)))
    sampled = int(red.size)
    return WindowStats(
        black=black_count,
        blue=blue_count,
        green=green_count,
        other=sampled - black_count - blue_count - green_count,
        sampled=sampled,
    )


def green_wash_percent(image: np.ndarray) -> int:
    """Share of the whole frame (not just the window) that reads as green."""
    red, green, blue = _channels(image)
    mask = (
        ((blue < 10) & (red < 10) & (green > 40))
        | ((blue < 60) & (green > 150))
        | ((blue < 40) & (red < 40) & (green > 100))
    )
    return int(np.count_nonzero(mask)) * 100 // int(red.size)


def frames_differ(first: np.ndarray, second: np.ndarray) -> bool:
    """True if any window pixel moved by more than the summed channel delta."""
    if first.shape[:2] != second.shape[:2]:
        return True
    delta = np.abs(
        central_window(first).astype(np.int16) - central_window(second).astype(np.int16)
    ).sum(axis=2)
    return bool(np.any(delta > FROZEN_PIXEL_DELTA))


class FrameClassifier:
    def __init__(self, settle_seconds: float = DEFAULT_SETTLE_SECONDS) -> None:
        self.settle_seconds = settle_seconds

    def first_pass(self, image: np.ndarray) -> Optional[ScreenVerdict]:
        """Verdict from a single frame, or None when a second sample is needed."""
        stats = sample_window(image)
        LOGGER.debug(
            "Window stats black=%d%% blue=%d%% green=%d%% (%d px)",
            stats.black_percent, stats.blue_percent, stats.green_percent, stats.sampled,
        )
        if stats.black_percent > BLACK_PERCENT:
            return None
        if stats.blue_percent > BLUE_PERCENT:
            return ScreenVerdict.BLUE
        if stats.green_percent > GREEN_PERCENT:
            if stats.green_percent < GREEN_CERTAIN_PERCENT:
                if green_wash_percent(image) > GREEN_WASH_PERCENT:
                    return ScreenVerdict.GREEN
                return ScreenVerdict.NORMAL
            return ScreenVerdict.GREEN
        return ScreenVerdict.NORMAL

    async def classify(self, image: np.ndarray, fetch_next: FrameFetcher) -> ScreenVerdict:
        verdict = self.first_pass(image)
        if verdict is not None:
            return verdict
        return await self.confirm_black(image, fetch_next)

    async def classify_bytes(self, data: bytes, fetch_next: FrameFetcher) -> ScreenVerdict:
        return await self.classify(decode_frame(data), fetch_next)

    async def confirm_black(self, image: np.ndarray, fetch_next: FrameFetcher) -> ScreenVerdict:
        """Resample after the settle delay; an unchanged dark window is a dead feed."""
        await asyncio.sleep(self.settle_seconds)
        next_frame = await fetch_next()
        if next_frame.shape[:2] != image.shape[:2]:
            LOGGER.info("Frame size changed between samples, assuming live video")
            return ScreenVerdict.NORMAL
        if frames_differ(image, next_frame):
            return ScreenVerdict.NORMAL
        return ScreenVerdict.BLACK
