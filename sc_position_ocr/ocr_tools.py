from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import numpy as np
import pytesseract
from PIL import Image

from sc_position_ocr.config import OcrConfig
from sc_position_ocr.position_parser import format_for_display, parse_all
from sc_position_ocr.vision.variants import (
    DEFAULT_MAX_HEIGHT,
    DEFAULT_MIN_HEIGHT,
    Variant,
    iter_variants,
    target_height,
)

logger = logging.getLogger(__name__)


class RecognizerInitError(RuntimeError):
    """Tesseract or its language data is unavailable; raised before a session starts."""


class RecognitionStatus(enum.Enum):
    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(frozen=True)
class RecognitionResult:
    status: RecognitionStatus
    text: str = ""
    error: Optional[str] = None

    @classmethod
    def from_text(cls, text: Optional[str]) -> "RecognitionResult":
        if not text or not text.strip():
            return cls(RecognitionStatus.EMPTY)
        return cls(RecognitionStatus.OK, text)

    @classmethod
    def failed(cls, error: object) -> "RecognitionResult":
        return cls(RecognitionStatus.FAILED, "", str(error))


Recognize = Callable[[np.ndarray], RecognitionResult]


@dataclass(frozen=True)
class Candidate:
    tag: str = ""
    raw_text: str = ""
    display: str = ""
    record_count: int = 0


EMPTY_CANDIDATE = Candidate()


def tesseract_config(settings: OcrConfig) -> str:
    config = (
        f"--psm {settings.psm} --oem {settings.oem} "
        f"-c tessedit_char_whitelist={settings.whitelist} "
        "-c preserve_interword_spaces=1 "
        "-c tessedit_do_invert=1"
    )
    if settings.tessdata_dir is not None:
        config = f'--tessdata-dir "{settings.tessdata_dir}" {config}'
    return config


class TesseractRecognizer:
    def __init__(self, settings: OcrConfig) -> None:
        self.settings = settings
        self._config = tesseract_config(settings)

    def recognize(self, image: np.ndarray) -> RecognitionResult:
        try:
            text = pytesseract.image_to_string(
                Image.fromarray(image),
                lang=self.settings.lang,
                config=self._config,
                timeout=self.settings.timeout,
            )
        except (pytesseract.TesseractError, RuntimeError, OSError, ValueError) as exc:
            logger.debug("Recognizer failed: %s", exc)
            return RecognitionResult.failed(exc)
        return RecognitionResult.from_text(text)

    __call__ = recognize


def create_recognizer(settings: OcrConfig) -> TesseractRecognizer:
    if settings.tesseract_cmd:
        pytesseract.pytesseract.tesseract_cmd = settings.tesseract_cmd
    try:
        version = pytesseract.get_tesseract_version()
    except (pytesseract.TesseractNotFoundError, OSError) as exc:
        raise RecognizerInitError("tesseract binary not found; install tesseract-ocr") from exc

    lang_config = ""
    if settings.tessdata_dir is not None:
        if not settings.tessdata_dir.is_dir():
            raise RecognizerInitError(f"tessdata missing at {settings.tessdata_dir}")
        lang_config = f'--tessdata-dir "{settings.tessdata_dir}"'
    try:
        langs = pytesseract.get_languages(config=lang_config)
    except (pytesseract.TesseractError, RuntimeError, OSError) as exc:
        raise RecognizerInitError(f"could not list tesseract languages: {exc}") from exc
    if settings.lang not in langs:
        raise RecognizerInitError(
            f"language '{settings.lang}' not installed (tessdata='{settings.tessdata_dir}', available={langs})"
        )

    logger.info(
        "Tesseract %s ready: tessdata='%s', langs=%d, psm=%d, oem=%d",
        version, settings.tessdata_dir or "default", len(langs), settings.psm, settings.oem,
    )
    return TesseractRecognizer(settings)


def select_best(variants: Iterable[Variant], recognize: Recognize) -> Candidate:
    """Best-of-N: more parsed records wins, then longer raw text; ties keep the earlier variant."""
    best = EMPTY_CANDIDATE
    best_key = (-1, -1)
    for variant in variants:
        result = recognize(variant.image)
        if result.status is RecognitionStatus.FAILED:
            logger.debug("Variant %s: recognizer failed (%s)", variant.tag, result.error)
        text = result.text
        records = parse_all(text)
        key = (len(records), len(text))
        if key > best_key:
            best_key = key
            best = Candidate(
                tag=variant.tag,
                raw_text=text,
                display=format_for_display(records),
                record_count=len(records),
            )
        # Release this image before the next variant is built.
        del variant, result
    return best


def read_subregion(
    crop: np.ndarray,
    recognize: Recognize,
    min_height: int = DEFAULT_MIN_HEIGHT,
    max_height: int = DEFAULT_MAX_HEIGHT,
) -> Candidate:
    if crop.size == 0:
        return EMPTY_CANDIDATE
    height = target_height(crop.shape[0], min_height, max_height)
    return select_best(iter_variants(crop, height), recognize)
