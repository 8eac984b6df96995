from pathlib import Path

import numpy as np
import pytesseract
import pytest
from PIL import Image

from sc_position_ocr.config import HUD_WHITELIST, OcrConfig
from sc_position_ocr.ocr_tools import (
    EMPTY_CANDIDATE,
    RecognitionResult,
    RecognitionStatus,
    RecognizerInitError,
    TesseractRecognizer,
    create_recognizer,
    read_subregion,
    select_best,
    tesseract_config,
)
from sc_position_ocr.vision.variants import Variant

RECORD = "Zone: A Pos: 1m 2m 3m"


def _settings(**overrides) -> OcrConfig:
    values = dict(
        lang="eng",
        psm=7,
        oem=3,
        whitelist=HUD_WHITELIST,
        tessdata_dir=None,
        tesseract_cmd=None,
        timeout=0.0,
        min_height=80,
        max_height=140,
    )
    values.update(overrides)
    return OcrConfig(**values)


def _variants(*tags: str) -> list[Variant]:
    return [Variant(tag, np.zeros((4, 4), dtype=np.uint8)) for tag in tags]


class Scripted:
    def __init__(self, *results: RecognitionResult) -> None:
        self.results = list(results)
        self.seen: list[np.ndarray] = []

    def __call__(self, image: np.ndarray) -> RecognitionResult:
        self.seen.append(image)
        return self.results.pop(0)


def test_parsed_record_beats_longer_noise():
    recognize = Scripted(RecognitionResult.from_text("x" * 200), RecognitionResult.from_text(RECORD))
    best = select_best(_variants("enhanceA", "enhanceB"), recognize)
    assert best.tag == "enhanceB"
    assert best.record_count == 1
    assert best.raw_text == RECORD
    assert best.display == "Zone: A  Pos: 1 m 2 m 3 m"


def test_more_records_win_over_fewer():
    two = f"{RECORD} {RECORD}"
    recognize = Scripted(RecognitionResult.from_text(RECORD + " padding padding"), RecognitionResult.from_text(two))
    best = select_best(_variants("a", "b"), recognize)
    assert best.tag == "b" and best.record_count == 2


def test_longer_text_breaks_equal_record_counts():
    recognize = Scripted(
        RecognitionResult.from_text("noise"),
        RecognitionResult.from_text("more noise"),
        RecognitionResult.from_text("tiny"),
    )
    best = select_best(_variants("a", "b", "c"), recognize)
    assert best.tag == "b"
    assert best.display == ""


def test_ties_keep_the_earlier_variant():
    recognize = Scripted(*(RecognitionResult.from_text(RECORD) for _ in range(4)))
    best = select_best(_variants("enhanceA", "enhanceB", "enhanceC", "plain"), recognize)
    assert best.tag == "enhanceA"


def test_failures_count_as_empty_text():
    recognize = Scripted(
        RecognitionResult.failed("engine crashed"),
        RecognitionResult.from_text(RECORD),
        RecognitionResult.failed("again"),
    )
    best = select_best(_variants("a", "b", "c"), recognize)
    assert best.tag == "b"


def test_all_failures_give_blank_candidate():
    recognize = Scripted(RecognitionResult.failed("x"), RecognitionResult(RecognitionStatus.EMPTY))
    best = select_best(_variants("a", "b"), recognize)
    assert best.raw_text == "" and best.display == "" and best.record_count == 0


def test_no_variants_gives_empty_candidate():
    assert select_best([], Scripted()) is EMPTY_CANDIDATE


def test_read_subregion_runs_all_four_variants_in_order():
    recognize = Scripted(*(RecognitionResult.from_text("") for _ in range(4)))
    crop = np.zeros((20, 60, 3), dtype=np.uint8)
    read_subregion(crop, recognize)
    assert len(recognize.seen) == 4
    assert all(image.ndim == 2 and image.shape[0] == 80 for image in recognize.seen)


def test_read_subregion_of_empty_crop_skips_recognition():
    recognize = Scripted()
    assert read_subregion(np.empty((0, 10, 3), dtype=np.uint8), recognize) is EMPTY_CANDIDATE
    assert recognize.seen == []


def test_recognition_result_from_text():
    assert RecognitionResult.from_text(None).status is RecognitionStatus.EMPTY
    assert RecognitionResult.from_text(" \n").text == ""
    ok = RecognitionResult.from_text("Zone")
    assert ok.status is RecognitionStatus.OK and ok.text == "Zone"


def test_tesseract_config_contains_engine_settings(tmp_path):
    config = tesseract_config(_settings(tessdata_dir=tmp_path))
    assert "--psm 7" in config and "--oem 3" in config
    assert f"tessedit_char_whitelist={HUD_WHITELIST}" in config
    assert "preserve_interword_spaces=1" in config
    assert config.startswith(f'--tessdata-dir "{tmp_path}"')


def test_recognizer_hands_pil_image_to_tesseract(monkeypatch):
    calls = {}

    def fake_image_to_string(image, lang=None, config="", timeout=0, **kwargs):
        calls.update(image=image, lang=lang, config=config, timeout=timeout)
        return RECORD + "\n\x0c"

    monkeypatch.setattr(pytesseract, "image_to_string", fake_image_to_string)
    result = TesseractRecognizer(_settings()).recognize(np.zeros((8, 8), dtype=np.uint8))
    assert result.status is RecognitionStatus.OK
    assert result.text.startswith(RECORD)
    assert isinstance(calls["image"], Image.Image)
    assert calls["lang"] == "eng"


def test_recognizer_failure_is_a_value(monkeypatch):
    def boom(*args, **kwargs):
        raise pytesseract.TesseractError(1, "bad image")

    monkeypatch.setattr(pytesseract, "image_to_string", boom)
    result = TesseractRecognizer(_settings()).recognize(np.zeros((8, 8), dtype=np.uint8))
    assert result.status is RecognitionStatus.FAILED
    assert result.text == ""
    assert result.error


def test_recognizer_timeout_is_a_value(monkeypatch):
    def slow(*args, **kwargs):
        raise RuntimeError("Tesseract process timeout")

    monkeypatch.setattr(pytesseract, "image_to_string", slow)
    result = TesseractRecognizer(_settings(timeout=0.5)).recognize(np.zeros((8, 8), dtype=np.uint8))
    assert result.status is RecognitionStatus.FAILED


def test_create_recognizer_requires_binary(monkeypatch):
    def missing():
        raise pytesseract.TesseractNotFoundError()

    monkeypatch.setattr(pytesseract, "get_tesseract_version", missing)
    with pytest.raises(RecognizerInitError):
        create_recognizer(_settings())


def test_create_recognizer_requires_language(monkeypatch):
    monkeypatch.setattr(pytesseract, "get_tesseract_version", lambda: "5.3.0")
    monkeypatch.setattr(pytesseract, "get_languages", lambda config="": ["osd"])
    with pytest.raises(RecognizerInitError, match="eng"):
        create_recognizer(_settings())


def test_create_recognizer_requires_tessdata_dir(monkeypatch, tmp_path):
    monkeypatch.setattr(pytesseract, "get_tesseract_version", lambda: "5.3.0")
    with pytest.raises(RecognizerInitError, match="tessdata missing"):
        create_recognizer(_settings(tessdata_dir=Path(tmp_path / "nope")))


def test_create_recognizer_success(monkeypatch):
    monkeypatch.setattr(pytesseract, "get_tesseract_version", lambda: "5.3.0")
    monkeypatch.setattr(pytesseract, "get_languages", lambda config="": ["eng", "osd"])
    recognizer = create_recognizer(_settings())
    assert isinstance(recognizer, TesseractRecognizer)


def test_variants_are_pulled_one_at_a_time():
    pulled = []

    def lazy_variants():
        for tag in ("enhanceA", "enhanceB", "enhanceC", "plain"):
            pulled.append(tag)
            yield Variant(tag, np.zeros((4, 4), dtype=np.uint8))

    outstanding = []

    def recognize(image):
        outstanding.append(len(pulled))
        return RecognitionResult.from_text("")

    select_best(lazy_variants(), recognize)
    assert outstanding == [1, 2, 3, 4]
