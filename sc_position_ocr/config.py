from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import tomllib


class ConfigError(ValueError):
    """The config file exists but cannot be read or decoded."""


HUD_WHITELIST = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ:_-+.,"
DEFAULT_TITLE_HINTS = ("star citizen", "star citizen ptu", "star citizen evocati", "sc alpha")


@dataclass(frozen=True)
class WindowConfig:
    title_hints: tuple[str, ...]
    poll_interval_ms: int
    locate_timeout: float


@dataclass(frozen=True)
class OcrConfig:
    lang: str
    psm: int
    oem: int
    whitelist: str
    tessdata_dir: Optional[Path]
    tesseract_cmd: Optional[str]
    timeout: float
    min_height: int
    max_height: int


@dataclass(frozen=True)
class LoopConfig:
    tick_rate: int
    stale_after: float
    snapshot_after: float
    snapshot_rewind: float
    empty_frame_backoff: float
    log_interval: float
    probe_on_start: bool


@dataclass(frozen=True)
class PathsConfig:
    data_dir: Path
    calibration_file: Path
    debug_dir: Path
    log_file: Path


@dataclass(frozen=True)
class AppConfig:
    window: WindowConfig
    ocr: OcrConfig
    loop: LoopConfig
    paths: PathsConfig


def default_data_dir() -> Path:
    override = os.environ.get("SC_POSITION_OCR_HOME")
    if override:
        return Path(override).expanduser()
    if sys.platform == "win32" and os.environ.get("APPDATA"):
        return Path(os.environ["APPDATA"]) / "sc-position-ocr"
    return Path.home() / ".config" / "sc-position-ocr"


DEFAULT_CONFIG_PATH = default_data_dir() / "config.toml"


def clamp_tick_rate(value: Any) -> int:
    return min(60, max(1, _maybe_int(value, 10)))


def load_config(path: Optional[Path] = None) -> AppConfig:
    config_path = path or DEFAULT_CONFIG_PATH
    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            data = tomllib.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
            raise ConfigError(f"{config_path}: {exc}") from exc

    def section(*keys: str) -> Mapping[str, Any]:
        current: Mapping[str, Any] = data
        for key in keys:
            value = current.get(key, {})
            if not isinstance(value, Mapping):
                return {}
            current = value
        return current

    window_section = section("window")
    hints = window_section.get("title_hints", DEFAULT_TITLE_HINTS)
    if isinstance(hints, str):
        hints = (hints,)
    window = WindowConfig(
        title_hints=tuple(str(hint).lower() for hint in hints) or DEFAULT_TITLE_HINTS,
        poll_interval_ms=max(1, _maybe_int(window_section.get("poll_interval_ms"), 400)),
        locate_timeout=_maybe_float(window_section.get("locate_timeout"), 10.0),
    )

    ocr_section = section("ocr")
    tessdata_dir = ocr_section.get("tessdata_dir")
    min_height = max(1, _maybe_int(ocr_section.get("min_height"), 80))
    ocr = OcrConfig(
        lang=str(ocr_section.get("lang", "eng")),
        psm=_maybe_int(ocr_section.get("psm"), 7),
        oem=_maybe_int(ocr_section.get("oem"), 3),
        whitelist=str(ocr_section.get("whitelist", HUD_WHITELIST)),
        tessdata_dir=Path(tessdata_dir).expanduser() if tessdata_dir else None,
        tesseract_cmd=ocr_section.get("tesseract_cmd") or None,
        timeout=max(0.0, _maybe_float(ocr_section.get("timeout"), 0.0)),
        min_height=min_height,
        max_height=max(min_height, _maybe_int(ocr_section.get("max_height"), 140)),
    )

    loop_section = section("loop")
    loop = LoopConfig(
        tick_rate=clamp_tick_rate(loop_section.get("tick_rate", 10)),
        stale_after=_maybe_float(loop_section.get("stale_after"), 2.0),
        snapshot_after=_maybe_float(loop_section.get("snapshot_after"), 5.0),
        snapshot_rewind=_maybe_float(loop_section.get("snapshot_rewind"), 3.0),
        empty_frame_backoff=_maybe_float(loop_section.get("empty_frame_backoff"), 0.2),
        log_interval=_maybe_float(loop_section.get("log_interval"), 1.0),
        probe_on_start=_maybe_bool(loop_section.get("probe_on_start"), True),
    )

    paths_section = section("paths")
    data_dir = Path(paths_section.get("data_dir", default_data_dir())).expanduser()
    paths = PathsConfig(
        data_dir=data_dir,
        calibration_file=Path(paths_section.get("calibration_file", data_dir / "roi.json")),
        debug_dir=Path(paths_section.get("debug_dir", data_dir)),
        log_file=Path(paths_section.get("log_file", data_dir / "app.log")),
    )

    return AppConfig(window=window, ocr=ocr, loop=loop, paths=paths)


def _maybe_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _maybe_float(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _maybe_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "on", "1"):
            return True
        if lowered in ("false", "no", "off", "0"):
            return False
    return default
