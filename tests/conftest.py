from __future__ import annotations

from collections import deque
from typing import Iterable, Optional

import numpy as np
import pytest

from sc_position_ocr.config import LoopConfig
from sc_position_ocr.ocr_tools import RecognitionResult
from sc_position_ocr.vision.screen_capture import EMPTY_FRAME, WindowRegion

VARIANTS_PER_LINE = 4


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeFrameSource:
    """Serves queued frames, then repeats the fallback frame."""

    def __init__(self, frames: Iterable[Optional[np.ndarray]] = (), fallback: Optional[np.ndarray] = None) -> None:
        self.frames = deque(frames)
        self.fallback = fallback if fallback is not None else EMPTY_FRAME
        self.captured: list[WindowRegion] = []
        self.closed = False

    def capture(self, region: WindowRegion) -> np.ndarray:
        self.captured.append(region)
        if self.frames:
            frame = self.frames.popleft()
            if isinstance(frame, Exception):
                raise frame
            return frame
        return self.fallback

    def close(self) -> None:
        self.closed = True


class LineRecognizer:
    """Answers every variant of the top line with one text and of the bottom line with another.

    Each tick reads four top variants followed by four bottom variants; the
    script advances one (top, bottom) pair per tick and repeats the last pair.
    """

    def __init__(self, script: list[tuple[str, str]]) -> None:
        self.script = script
        self.calls = 0

    def __call__(self, image: np.ndarray) -> RecognitionResult:
        tick, position = divmod(self.calls, VARIANTS_PER_LINE * 2)
        self.calls += 1
        top, bottom = self.script[min(tick, len(self.script) - 1)]
        return RecognitionResult.from_text(top if position < VARIANTS_PER_LINE else bottom)


def make_frame(rows: int = 40, cols: int = 200) -> np.ndarray:
    frame = np.zeros((rows, cols, 3), dtype=np.uint8)
    frame[rows // 4 : rows // 2, 10 : cols - 10] = 255
    return frame


@pytest.fixture
def loop_settings() -> LoopConfig:
    return LoopConfig(
        tick_rate=60,
        stale_after=2.0,
        snapshot_after=5.0,
        snapshot_rewind=3.0,
        empty_frame_backoff=0.01,
        log_interval=1.0,
        probe_on_start=False,
    )


@pytest.fixture
def region() -> WindowRegion:
    return WindowRegion(left=100, top=50, width=400, height=60)
