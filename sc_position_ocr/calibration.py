"""Persisted fractional ROI describing where the HUD telemetry sits in the game window."""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)

MIN_EXTENT = 1e-4


@dataclass(frozen=True)
class FractionalRoi:
    left: float
    top: float
    width: float
    height: float


# Small strip in the top-right corner of the window.
DEFAULT_ROI = FractionalRoi(left=0.70, top=0.04, width=0.28, height=0.06)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_roi(roi: FractionalRoi) -> FractionalRoi:
    # Origin leaves room for the minimum extent; the extent never crosses the far edge.
    left = _clamp(roi.left, 0.0, 1.0 - MIN_EXTENT)
    top = _clamp(roi.top, 0.0, 1.0 - MIN_EXTENT)
    width = min(max(roi.width, MIN_EXTENT), 1.0 - left)
    height = min(max(roi.height, MIN_EXTENT), 1.0 - top)
    return FractionalRoi(left=left, top=top, width=width, height=height)


def roi_from_mapping(data: Mapping[str, Any]) -> FractionalRoi:
    """Build a clamped ROI from a decoded record; raises on missing or non-numeric fields."""
    return clamp_roi(
        FractionalRoi(
            left=float(data["left"]),
            top=float(data["top"]),
            width=float(data["width"]),
            height=float(data["height"]),
        )
    )


def format_roi(roi: FractionalRoi) -> str:
    return (
        f"FractionalRoi(left={roi.left:.4f}, top={roi.top:.4f}, "
        f"width={roi.width:.4f}, height={roi.height:.4f})"
    )


class CalibrationStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def load_or_default(self) -> FractionalRoi:
        with self._lock:
            if not self.path.exists():
                logger.info("No calibration at %s, using default ROI.", self.path)
                return DEFAULT_ROI
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
                if not isinstance(data, Mapping):
                    raise ValueError("calibration record is not an object")
                return roi_from_mapping(data)
            except (OSError, ValueError, KeyError, TypeError) as exc:
                logger.warning("Calibration at %s unreadable (%s), using default ROI.", self.path, exc)
                return DEFAULT_ROI

    def save(self, roi: FractionalRoi) -> FractionalRoi:
        roi = clamp_roi(roi)
        payload = json.dumps(asdict(roi), indent=2, sort_keys=True)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.path)
        logger.info("Saved calibration %s to %s.", format_roi(roi), self.path)
        return roi
