"""Preprocessing variants for one HUD line.

No single binarization survives every HUD background (bloom, starfield clutter,
brightness swings), so each line is recognized under several strategies and the
best-scoring result wins. Every variant is derived from the same upscaled gray
image; none depends on another's output.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional

import cv2
import numpy as np

TAG_ENHANCE_A = "enhanceA"
TAG_ENHANCE_B = "enhanceB"
TAG_ENHANCE_C = "enhanceC"
TAG_PLAIN = "plain"
VARIANT_TAGS = (TAG_ENHANCE_A, TAG_ENHANCE_B, TAG_ENHANCE_C, TAG_PLAIN)

DEFAULT_MIN_HEIGHT = 80
DEFAULT_MAX_HEIGHT = 140


@dataclass(frozen=True)
class Variant:
    tag: str
    image: np.ndarray


def to_gray(crop: np.ndarray) -> np.ndarray:
    if crop.ndim == 2:
        return crop.copy()
    channels = crop.shape[2]
    if channels == 1:
        return crop[:, :, 0].copy()
    if channels == 4:
        return cv2.cvtColor(crop, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(crop, cv2.COLOR_BGR2GRAY)


def target_height(
    rows: int,
    min_height: int = DEFAULT_MIN_HEIGHT,
    max_height: int = DEFAULT_MAX_HEIGHT,
) -> int:
    return min(max_height, max(min_height, rows * 2))


def upscale_to(gray: np.ndarray, height: int) -> np.ndarray:
    rows, cols = gray.shape[:2]
    if rows >= height:
        return gray.copy()
    scale = height / float(rows)
    width = max(1, int(round(cols * scale)))
    return cv2.resize(gray, (width, height), interpolation=cv2.INTER_CUBIC)


def equalize(gray: np.ndarray) -> np.ndarray:
    clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
    return clahe.apply(gray)


def white_top_hat(gray: np.ndarray, width: int = 25, height: int = 3) -> np.ndarray:
    # Drops slowly varying bright background, keeps small bright glyphs.
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (width, height))
    return cv2.morphologyEx(gray, cv2.MORPH_TOPHAT, kernel)


def otsu(gray: np.ndarray) -> np.ndarray:
    blurred = cv2.GaussianBlur(gray, (3, 3), 0)
    _, thresholded = cv2.threshold(blurred, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return thresholded


def adaptive(gray: np.ndarray) -> np.ndarray:
    return cv2.adaptiveThreshold(
        gray,
        255,
        cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
        cv2.THRESH_BINARY,
        31,
        2,
    )


def close_thin(binary: np.ndarray) -> np.ndarray:
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (2, 1))
    return cv2.morphologyEx(binary, cv2.MORPH_CLOSE, kernel)


def ensure_dark_text(binary: np.ndarray) -> np.ndarray:
    """Tesseract prefers dark glyphs on a light page."""
    if float(np.mean(binary)) < 128:
        return cv2.bitwise_not(binary)
    return binary.copy()


def iter_variants(crop: np.ndarray, min_height: Optional[int] = None) -> Iterator[Variant]:
    """Yield the variants one at a time, each built only when the consumer asks for it."""
    gray0 = to_gray(crop)
    if min_height is None:
        min_height = target_height(gray0.shape[0])
    gray = upscale_to(gray0, min_height)

    yield Variant(TAG_ENHANCE_A, ensure_dark_text(close_thin(otsu(equalize(gray)))))
    yield Variant(TAG_ENHANCE_B, ensure_dark_text(close_thin(adaptive(white_top_hat(gray)))))
    yield Variant(TAG_ENHANCE_C, ensure_dark_text(close_thin(adaptive(equalize(gray)))))
    yield Variant(TAG_PLAIN, gray.copy())


def generate_variants(crop: np.ndarray, min_height: Optional[int] = None) -> list[Variant]:
    return list(iter_variants(crop, min_height))
