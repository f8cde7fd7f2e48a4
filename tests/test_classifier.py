from __future__ import annotations

import numpy as np
import pytest

from conftest import encode_png, solid_frame
from videogateway.classifier import (
    FrameClassifier,
    central_window,
    decode_frame,
    frames_differ,
    green_wash_percent,
    sample_window,
)
from videogateway.errors import InvalidArgumentError
from videogateway.models import ScreenVerdict

BLACK = (0, 0, 0)
BLUE = (0, 0, 255)
GREEN = (0, 220, 0)
GREY = (128, 128, 128)


def fetch_from(*frames):
    queue = list(frames)
    calls = []

    async def fetch_next():
        calls.append(len(calls))
        return queue.pop(0)

    fetch_next.calls = calls
    return fetch_next


@pytest.fixture
def classifier() -> FrameClassifier:
    return FrameClassifier(settle_seconds=0)


def test_central_window_is_inner_two_thirds():
    frame = np.zeros((480, 704, 3), dtype=np.uint8)
    window = central_window(frame)
    assert window.shape[:2] == (480 - 2 * 160, 704 - 2 * 234)


def test_decode_frame_returns_rgb():
    frame = solid_frame((10, 20, 250), width=30, height=30)
    decoded = decode_frame(encode_png(frame))
    assert tuple(decoded[15, 15]) == (10, 20, 250)


@pytest.mark.parametrize("data", [b"", b"not an image"])
def test_decode_rejects_bad_buffers(data):
    with pytest.raises(InvalidArgumentError):
        decode_frame(data)


def test_sample_window_buckets():
    frame = solid_frame(GREY)
    frame[200:280, 300:400] = BLUE
    stats = sample_window(frame)
    assert stats.sampled == 160 * 236
    assert stats.blue == 80 * 100
    assert stats.black == 0
    assert stats.other == stats.sampled - stats.blue


@pytest.mark.asyncio
async def test_frozen_black_frame_is_black(classifier):
    frame = solid_frame(BLACK)
    fetch_next = fetch_from(frame.copy())
    assert await classifier.classify(frame, fetch_next) is ScreenVerdict.BLACK
    assert fetch_next.calls == [0]


@pytest.mark.asyncio
async def test_dark_frame_that_changes_is_normal(classifier):
    first = solid_frame(BLACK)
    second = solid_frame((3, 3, 3))
    assert await classifier.classify(first, fetch_from(second)) is ScreenVerdict.NORMAL


@pytest.mark.asyncio
async def test_small_delta_still_counts_as_frozen(classifier):
    first = solid_frame(BLACK)
    second = solid_frame((2, 2, 2))
    assert await classifier.classify(first, fetch_from(second)) is ScreenVerdict.BLACK


@pytest.mark.asyncio
async def test_dark_frame_with_new_dimensions_is_normal(classifier):
    first = solid_frame(BLACK)
    second = solid_frame(BLACK, width=352, height=240)
    assert await classifier.classify(first, fetch_from(second)) is ScreenVerdict.NORMAL


@pytest.mark.asyncio
async def test_blue_screen(classifier):
    fetch_next = fetch_from()
    assert await classifier.classify(solid_frame(BLUE), fetch_next) is ScreenVerdict.BLUE
    assert fetch_next.calls == []


@pytest.mark.asyncio
async def test_mostly_green_window_is_green(classifier):
    frame = solid_frame(GREY)
    window = frame[160:320, 234:470]
    window[:144, :] = GREEN  # 90% of the window rows
    assert sample_window(frame).green_percent == 90
    assert await classifier.classify(frame, fetch_from()) is ScreenVerdict.GREEN


@pytest.mark.asyncio
async def test_green_window_checks_full_frame_wash(classifier):
    # 60% green in the window, whole frame green washed
    frame = solid_frame((0, 200, 30))
    window = frame[160:320, 234:470]
    window[:96, :] = GREEN
    window[96:, :] = GREY
    assert 50 < sample_window(frame).green_percent < 85
    assert green_wash_percent(frame) > 70
    assert await classifier.classify(frame, fetch_from()) is ScreenVerdict.GREEN


@pytest.mark.asyncio
async def test_green_window_without_full_frame_wash_is_normal(classifier):
    frame = solid_frame(GREY)
    window = frame[160:320, 234:470]
    window[:96, :] = GREEN
    assert green_wash_percent(frame) <= 70
    assert await classifier.classify(frame, fetch_from()) is ScreenVerdict.NORMAL


@pytest.mark.asyncio
async def test_ordinary_content_is_normal(classifier):
    rng = np.random.default_rng(7)
    frame = rng.integers(0, 256, size=(480, 704, 3), dtype=np.uint8)
    assert await classifier.classify(frame, fetch_from()) is ScreenVerdict.NORMAL


@pytest.mark.asyncio
async def test_classification_is_deterministic(classifier):
    data = encode_png(solid_frame(BLUE))
    verdicts = {await classifier.classify_bytes(data, fetch_from()) for _ in range(3)}
    assert verdicts == {ScreenVerdict.BLUE}


def test_frames_differ_threshold():
    base = solid_frame(BLACK)
    moved = base.copy()
    moved[240, 352] = (3, 2, 2)
    assert frames_differ(base, moved)
    moved[240, 352] = (2, 2, 2)
    assert not frames_differ(base, moved)
    # Changes outside the window are ignored
    border = base.copy()
    border[0, 0] = (255, 255, 255)
    assert not frames_differ(base, border)
