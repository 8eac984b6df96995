from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

import cv2

from sc_position_ocr.calibration import CalibrationStore, format_roi
from sc_position_ocr.config import DEFAULT_CONFIG_PATH, AppConfig, ConfigError, clamp_tick_rate, load_config
from sc_position_ocr.diagnostics import write_roi_preview
from sc_position_ocr.hud_readout import Publication, start_session
from sc_position_ocr.mailbox import LatestMailbox
from sc_position_ocr.ocr_tools import RecognizerInitError
from sc_position_ocr.vision.screen_capture import (
    MssFrameSource,
    WindowLocator,
    WindowRegion,
    crop_by_fractions,
    is_empty_frame,
    roi_to_fractional,
)

logger = logging.getLogger(__name__)


def configure_logging(log_file: Path, debug: bool) -> None:
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s.%(msecs)03d  %(name)s  %(message)s", datefmt="%H:%M:%S")
    )
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if debug else logging.WARNING)
    console.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    root.addHandler(file_handler)
    root.addHandler(console)


def render_status_line(publication: Optional[Publication], status: Optional[str] = None) -> str:
    """Last reading on one line; `status` replaces the publication's own status when given."""
    lines = publication.text.splitlines() if publication is not None else []
    text = " | ".join(line for line in lines if line.strip()) or "--"
    if status is None and publication is not None:
        status = publication.status
    return f"{text}  [{status or ''}]"


def apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    if getattr(args, "tick_rate", None) is not None:
        config = replace(config, loop=replace(config.loop, tick_rate=clamp_tick_rate(args.tick_rate)))
    if getattr(args, "title", None):
        config = replace(config, window=replace(config.window, title_hints=(args.title.lower(),)))
    return config


def run_readout(config: AppConfig) -> int:
    locator = WindowLocator(config.window.title_hints)
    frame_source = MssFrameSource()
    mailbox: LatestMailbox[Publication] = LatestMailbox()
    print(f"Locating game window matching {list(config.window.title_hints)}...", flush=True)
    try:
        session = start_session(config, locator, frame_source, mailbox)
    except TimeoutError as exc:
        print(f"Could not find the game window: {exc}", file=sys.stderr)
        return 1
    except RecognizerInitError as exc:
        print(f"OCR engine unavailable: {exc}", file=sys.stderr)
        return 2

    print(f"Reading HUD region {session.region}. Press Ctrl+C to stop.", flush=True)
    last: Optional[Publication] = None
    try:
        while session.running:
            publication = mailbox.wait(timeout=0.5)
            if publication is not None:
                last = publication
                line = render_status_line(publication)
            else:
                # Nothing published: the worker status says why (e.g. region not visible).
                line = render_status_line(last, session.status)
            print(f"\r{line:<100}", end="", flush=True)
    except KeyboardInterrupt:
        print("\nStopping HUD reader.")
    finally:
        session.stop()
        frame_source.close()
    return 0


def run_calibration(config: AppConfig) -> int:
    locator = WindowLocator(config.window.title_hints)
    store = CalibrationStore(config.paths.calibration_file)
    try:
        window = locator.await_locate(
            poll_interval_ms=config.window.poll_interval_ms,
            timeout=config.window.locate_timeout,
        )
    except TimeoutError as exc:
        print(f"Could not find the game window: {exc}", file=sys.stderr)
        return 1

    frame_source = MssFrameSource()
    try:
        frame = frame_source.capture(window)
    finally:
        frame_source.close()
    if is_empty_frame(frame):
        print("Window capture failed; is the game visible?", file=sys.stderr)
        return 1

    current = store.load_or_default()
    print(f"Current ROI: {format_roi(current)}")
    print("Drag a box around the zone/position lines, then press Enter (c to cancel).")
    selection = cv2.selectROI("Select HUD ROI", frame, showCrosshair=True, fromCenter=False)
    cv2.destroyWindow("Select HUD ROI")
    x, y, w, h = (int(value) for value in selection)
    if w <= 0 or h <= 0:
        print("Selection cancelled; calibration unchanged.")
        return 0
    local = WindowRegion(left=0, top=0, width=window.width, height=window.height)
    saved = store.save(roi_to_fractional(local, (x, y, w, h)))
    print(f"Saved ROI: {format_roi(saved)} -> {store.path}")
    preview = write_roi_preview(config.paths.debug_dir, crop_by_fractions(frame, saved))
    print(f"Preview of the stored region: {preview}")
    return 0


def show_roi(config: AppConfig) -> int:
    store = CalibrationStore(config.paths.calibration_file)
    print(f"{store.path}: {format_roi(store.load_or_default())}")
    return 0


def _common_options(defaults: bool) -> argparse.ArgumentParser:
    # Subcommands repeat the global options; SUPPRESS keeps a value given before the subcommand.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH if defaults else argparse.SUPPRESS,
        help="Path to a TOML config file (defaults are used when it does not exist).",
    )
    common.add_argument(
        "--title",
        default=None if defaults else argparse.SUPPRESS,
        help="Window title hint to match instead of the built-in Star Citizen titles.",
    )
    common.add_argument(
        "--debug",
        action="store_true",
        default=False if defaults else argparse.SUPPRESS,
        help="Verbose logging, including raw OCR text about once per second.",
    )
    return common


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Read zone and position telemetry from the Star Citizen HUD using Tesseract OCR.",
        parents=[_common_options(defaults=True)],
    )
    shared = [_common_options(defaults=False)]
    subparsers = parser.add_subparsers(dest="command")
    run_parser = subparsers.add_parser("run", parents=shared, help="Continuously read the HUD (default).")
    run_parser.add_argument(
        "--tick-rate",
        type=int,
        help="Reads per second (clamped to 1-60).",
    )
    subparsers.add_parser("calibrate", parents=shared, help="Select the HUD region on a window capture.")
    subparsers.add_parser("show-roi", parents=shared, help="Print the stored HUD region.")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        config = apply_overrides(load_config(args.config), args)
    except ConfigError as exc:
        print(f"Bad config file: {exc}", file=sys.stderr)
        return 2
    configure_logging(config.paths.log_file, args.debug)
    logger.info("Starting '%s' with config %s", args.command or "run", args.config)
    if args.command == "calibrate":
        return run_calibration(config)
    if args.command == "show-roi":
        return show_roi(config)
    return run_readout(config)


if __name__ == "__main__":
    sys.exit(main())
