from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import mss
import numpy as np
from mss.exception import ScreenShotError

from sc_position_ocr.calibration import FractionalRoi

logger = logging.getLogger(__name__)

MIN_WINDOW_SIZE = 100
EMPTY_FRAME = np.empty((0, 0, 3), dtype=np.uint8)


@dataclass(frozen=True)
class WindowRegion:
    left: int
    top: int
    width: int
    height: int


def is_empty_frame(frame: Optional[np.ndarray]) -> bool:
    return frame is None or frame.size == 0


def absolute_roi(window: WindowRegion, roi: FractionalRoi) -> WindowRegion:
    """Convert a fractional ROI to absolute screen pixels inside a window region."""
    return WindowRegion(
        left=window.left + int(window.width * roi.left),
        top=window.top + int(window.height * roi.top),
        width=max(1, int(window.width * roi.width)),
        height=max(1, int(window.height * roi.height)),
    )


def roi_to_fractional(window: WindowRegion, roi: tuple[int, int, int, int]) -> FractionalRoi:
    """Convert a window-relative pixel box (x, y, w, h) into fractions of the window."""
    x, y, width, height = roi
    return FractionalRoi(
        left=x / window.width,
        top=y / window.height,
        width=width / window.width,
        height=height / window.height,
    )


def crop_by_fractions(frame: np.ndarray, roi: FractionalRoi) -> np.ndarray:
    rows, cols = frame.shape[:2]
    x = int(cols * roi.left)
    y = int(rows * roi.top)
    width = min(max(1, int(cols * roi.width)), cols - x)
    height = min(max(1, int(rows * roi.height)), rows - y)
    if width <= 0 or height <= 0:
        return EMPTY_FRAME
    return frame[y : y + height, x : x + width]


def _pick_largest(candidates: Sequence[WindowRegion]) -> Optional[WindowRegion]:
    usable = [r for r in candidates if r.width > MIN_WINDOW_SIZE and r.height > MIN_WINDOW_SIZE]
    if not usable:
        return None
    return max(usable, key=lambda r: r.width * r.height)


def _matches(title: str, hints: Sequence[str]) -> bool:
    lowered = title.lower()
    return any(hint in lowered for hint in hints)


def _find_windows_quartz(hints: Sequence[str]) -> list[WindowRegion]:
    try:
        import Quartz
    except ImportError as exc:  # pragma: no cover - platform dependency
        raise RuntimeError(
            "Quartz is required on macOS. Install pyobjc with `pip install pyobjc-framework-Quartz`."
        ) from exc
    current_pid = os.getpid()
    options = Quartz.kCGWindowListOptionOnScreenOnly | Quartz.kCGWindowListExcludeDesktopElements
    found: list[WindowRegion] = []
    for window in Quartz.CGWindowListCopyWindowInfo(options, Quartz.kCGNullWindowID):
        if window.get("kCGWindowOwnerPID") == current_pid:
            continue
        window_title = window.get("kCGWindowName", "") or ""
        owner_name = window.get("kCGWindowOwnerName", "") or ""
        if _matches(window_title, hints) or _matches(owner_name, hints):
            bounds = window.get("kCGWindowBounds", {})
            found.append(
                WindowRegion(
                    left=int(bounds.get("X", 0)),
                    top=int(bounds.get("Y", 0)),
                    width=int(bounds.get("Width", 0)),
                    height=int(bounds.get("Height", 0)),
                )
            )
    return found


def _find_windows_win32(hints: Sequence[str]) -> list[WindowRegion]:
    try:
        import win32gui
    except ImportError as exc:  # pragma: no cover - platform dependency
        raise RuntimeError("pywin32 is required on Windows. Install with `pip install pywin32`.") from exc
    found: list[WindowRegion] = []

    def callback(hwnd: int, _extra: object) -> bool:
        if not win32gui.IsWindowVisible(hwnd):
            return True
        title = win32gui.GetWindowText(hwnd)
        if title and _matches(title, hints):
            left, top, right, bottom = win32gui.GetWindowRect(hwnd)
            found.append(WindowRegion(left=left, top=top, width=right - left, height=bottom - top))
        return True

    win32gui.EnumWindows(callback, None)
    return found


def _run(command: list[str]) -> str:
    result = subprocess.run(command, capture_output=True, text=True, check=False, timeout=5)
    return result.stdout


def _parse_xdotool_geometry(output: str) -> WindowRegion:
    values: dict[str, int] = {}
    for line in output.splitlines():
        key, _, value = line.partition("=")
        if key in ("X", "Y", "WIDTH", "HEIGHT"):
            try:
                values[key] = int(value)
            except ValueError:
                continue
    return WindowRegion(
        left=values.get("X", 0),
        top=values.get("Y", 0),
        width=values.get("WIDTH", 0),
        height=values.get("HEIGHT", 0),
    )


def _find_windows_xdotool(hints: Sequence[str]) -> list[WindowRegion]:
    if shutil.which("xdotool") is None:
        raise RuntimeError("xdotool is required on Linux to locate the game window.")
    found: list[WindowRegion] = []
    seen: set[str] = set()
    for hint in hints:
        for window_id in _run(["xdotool", "search", "--onlyvisible", "--name", hint]).split():
            if window_id in seen:
                continue
            seen.add(window_id)
            found.append(_parse_xdotool_geometry(_run(["xdotool", "getwindowgeometry", "--shell", window_id])))
    return found


def platform_window_finder() -> Callable[[Sequence[str]], list[WindowRegion]]:
    if sys.platform == "darwin":
        return _find_windows_quartz
    if sys.platform == "win32":
        return _find_windows_win32
    return _find_windows_xdotool


class WindowLocator:
    """Finds the game window; the platform backend is picked once at construction."""

    def __init__(
        self,
        title_hints: Sequence[str],
        finder: Optional[Callable[[Sequence[str]], list[WindowRegion]]] = None,
    ) -> None:
        self._hints = tuple(hint.lower() for hint in title_hints)
        self._finder = finder or platform_window_finder()
        self._last_error: Optional[str] = None

    def try_locate(self) -> Optional[WindowRegion]:
        try:
            region = _pick_largest(self._finder(self._hints))
        except (RuntimeError, OSError, subprocess.SubprocessError) as exc:
            if str(exc) != self._last_error:
                logger.warning("Window lookup failed: %s", exc)
                self._last_error = str(exc)
            return None
        self._last_error = None
        return region

    def await_locate(
        self,
        poll_interval_ms: int = 400,
        stop_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> WindowRegion:
        deadline = None if timeout is None else time.monotonic() + timeout
        stop_event = stop_event or threading.Event()
        while True:
            region = self.try_locate()
            if region is not None:
                return region
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError(f"No window matching {list(self._hints)} within {timeout:.1f}s.")
            if stop_event.wait(poll_interval_ms / 1000.0):
                raise TimeoutError("Window lookup cancelled.")


class MssFrameSource:
    """Screen-rectangle capture using MSS; returns EMPTY_FRAME instead of raising."""

    def __init__(self) -> None:
        self._local = threading.local()

    def _sct(self):
        # MSS handles are bound to the thread that created them.
        sct = getattr(self._local, "sct", None)
        if sct is None:
            sct = mss.mss()
            self._local.sct = sct
        return sct

    def capture(self, region: WindowRegion) -> np.ndarray:
        if region.width <= 0 or region.height <= 0:
            return EMPTY_FRAME
        monitor = {
            "left": region.left,
            "top": region.top,
            "width": region.width,
            "height": region.height,
        }
        try:
            screenshot = self._sct().grab(monitor)
        except ScreenShotError as exc:
            logger.debug("Capture of %s failed: %s", region, exc)
            return EMPTY_FRAME
        frame = np.array(screenshot)[:, :, :3]  # BGRA -> BGR
        return np.ascontiguousarray(frame)

    def close(self) -> None:
        sct = getattr(self._local, "sct", None)
        if sct is not None:
            sct.close()
            self._local.sct = None
