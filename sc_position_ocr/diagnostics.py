from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)


def to_pil(image: np.ndarray) -> Image.Image:
    if image.ndim == 2:
        return Image.fromarray(image)
    if image.shape[2] == 1:
        return Image.fromarray(image[:, :, 0])
    return Image.fromarray(np.ascontiguousarray(image[:, :, 2::-1]))  # BGR(A) -> RGB


def trim_for_log(text: str, limit: int = 160) -> str:
    if not text:
        return ""
    flat = text.replace("\r", " ").replace("\n", " ")
    if len(flat) <= limit:
        return flat
    return flat[:limit] + "…"


def _save(image: np.ndarray, path: Path) -> bool:
    if image.size == 0:
        return False
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        to_pil(image).save(path)
    except (OSError, ValueError) as exc:
        logger.warning("Could not write %s: %s", path, exc)
        return False
    return True


def write_stale_snapshot(
    debug_dir: Path,
    top: np.ndarray,
    bottom: np.ndarray,
    when: Optional[float] = None,
) -> tuple[Path, Path]:
    stamp = time.strftime("%H%M%S", time.localtime(when))
    top_path = debug_dir / f"stale_top_{stamp}.png"
    bottom_path = debug_dir / f"stale_bot_{stamp}.png"
    if _save(top, top_path) and _save(bottom, bottom_path):
        logger.info("Saved stale debug: %s / %s", top_path, bottom_path)
    return top_path, bottom_path


def write_probe_frame(debug_dir: Path, frame: np.ndarray) -> Path:
    path = debug_dir / "roi_raw.png"
    if _save(frame, path):
        logger.info("Saved start-up ROI capture to %s", path)
    return path


def write_roi_preview(debug_dir: Path, crop: np.ndarray) -> Path:
    path = debug_dir / "roi_preview.png"
    if _save(crop, path):
        logger.info("Saved calibrated ROI preview to %s", path)
    return path
