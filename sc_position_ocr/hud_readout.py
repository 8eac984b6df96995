from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

import numpy as np

from sc_position_ocr.calibration import CalibrationStore, format_roi
from sc_position_ocr.config import AppConfig, LoopConfig, OcrConfig, clamp_tick_rate
from sc_position_ocr.diagnostics import trim_for_log, write_probe_frame, write_stale_snapshot
from sc_position_ocr.mailbox import LatestMailbox
from sc_position_ocr.ocr_tools import Candidate, Recognize, TesseractRecognizer, create_recognizer, read_subregion
from sc_position_ocr.output_gate import OutputGate
from sc_position_ocr.position_parser import combine_lines
from sc_position_ocr.vision.screen_capture import WindowLocator, WindowRegion, absolute_roi, is_empty_frame
from sc_position_ocr.vision.variants import DEFAULT_MAX_HEIGHT, DEFAULT_MIN_HEIGHT

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    def capture(self, region: WindowRegion) -> np.ndarray: ...


@dataclass(frozen=True)
class Publication:
    text: str
    stale: bool
    tick_rate: int
    status: str


@dataclass(frozen=True)
class TickResult:
    top: Candidate
    bottom: Candidate
    combined: str


def split_frame(frame: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Bisect at the midline: the HUD shows zone/position on two stacked lines."""
    mid = max(1, frame.shape[0] // 2)
    return frame[:mid], frame[mid:]


def read_frame(
    frame: np.ndarray,
    recognize: Recognize,
    min_height: int = DEFAULT_MIN_HEIGHT,
    max_height: int = DEFAULT_MAX_HEIGHT,
) -> TickResult:
    return read_halves(*split_frame(frame), recognize, min_height, max_height)


def read_halves(
    top: np.ndarray,
    bottom: np.ndarray,
    recognize: Recognize,
    min_height: int = DEFAULT_MIN_HEIGHT,
    max_height: int = DEFAULT_MAX_HEIGHT,
) -> TickResult:
    top_best = read_subregion(top, recognize, min_height, max_height)
    bottom_best = read_subregion(bottom, recognize, min_height, max_height)
    return TickResult(
        top=top_best,
        bottom=bottom_best,
        combined=combine_lines(top_best.display, bottom_best.display),
    )


def format_status(tick_rate: int, stale: bool) -> str:
    return f"Running @ {tick_rate} Hz{' (stale)' if stale else ''}"


class ReadoutSession:
    """One background worker reading the HUD region at the configured rate."""

    def __init__(
        self,
        frame_source: FrameSource,
        region: WindowRegion,
        recognize: Recognize,
        mailbox: LatestMailbox[Publication],
        settings: LoopConfig,
        min_height: int = DEFAULT_MIN_HEIGHT,
        max_height: int = DEFAULT_MAX_HEIGHT,
        debug_dir: Optional[Path] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._frame_source = frame_source
        self._region = region
        self._recognize = recognize
        self._mailbox = mailbox
        self._settings = settings
        self._min_height = min_height
        self._max_height = max_height
        self._debug_dir = debug_dir
        self._clock = clock
        # Read by the worker every tick without a lock; a write lands on the next tick.
        self._tick_rate = clamp_tick_rate(settings.tick_rate)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_log = 0.0
        self.status = "Stopped"

    @property
    def region(self) -> WindowRegion:
        return self._region

    @property
    def tick_rate(self) -> int:
        return self._tick_rate

    @tick_rate.setter
    def tick_rate(self, value: int) -> None:
        self._tick_rate = clamp_tick_rate(value)

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop.is_set()

    def new_gate(self) -> OutputGate:
        return OutputGate(
            started_at=self._clock(),
            stale_after=self._settings.stale_after,
            snapshot_after=self._settings.snapshot_after,
            snapshot_rewind=self._settings.snapshot_rewind,
        )

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        gate = self.new_gate()
        self.status = "Starting..."
        self._thread = threading.Thread(target=self._run, args=(gate,), name="hud-readout", daemon=True)
        self._thread.start()
        logger.info("Readout started for %s at %d Hz.", self._region, self._tick_rate)

    def stop(self, timeout: float = 1.0) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout=timeout)
        self.status = "Stopped"
        logger.info("Readout stopped.")

    def probe(self) -> Optional[TickResult]:
        """One-shot capture + read used at start-up to leave a trace in the log and debug dir."""
        frame = self._frame_source.capture(self._region)
        if is_empty_frame(frame):
            logger.info("Probe capture of %s returned no pixels.", self._region)
            return None
        if self._debug_dir is not None:
            write_probe_frame(self._debug_dir, frame)
        result = read_frame(frame, self._recognize, self._min_height, self._max_height)
        logger.info("Probe TOP raw: '%s'", trim_for_log(result.top.raw_text))
        logger.info("Probe BOT raw: '%s'", trim_for_log(result.bottom.raw_text))
        logger.info("Probe parsed: '%s'", trim_for_log(result.combined))
        return result

    def run_tick(self, gate: OutputGate) -> Optional[Publication]:
        """Capture and read one frame; None means the capture failed and nothing changed."""
        frame = self._frame_source.capture(self._region)
        if is_empty_frame(frame):
            return None
        top, bottom = split_frame(frame)
        result = read_halves(top, bottom, self._recognize, self._min_height, self._max_height)
        now = self._clock()
        decision = gate.update(result.combined, now)
        if decision.snapshot_due and self._debug_dir is not None:
            write_stale_snapshot(self._debug_dir, top, bottom)
        self._log_tick(result, now)
        tick_rate = self._tick_rate
        return Publication(
            text=decision.text,
            stale=decision.stale,
            tick_rate=tick_rate,
            status=format_status(tick_rate, decision.stale),
        )

    def _log_tick(self, result: TickResult, now: float) -> None:
        if now - self._last_log < self._settings.log_interval:
            return
        self._last_log = now
        logger.debug("Tick TOP [%s]: '%s'", result.top.tag, trim_for_log(result.top.raw_text))
        logger.debug("Tick BOT [%s]: '%s'", result.bottom.tag, trim_for_log(result.bottom.raw_text))

    def _run(self, gate: OutputGate) -> None:
        try:
            while not self._stop.is_set():
                tick_rate = self._tick_rate
                try:
                    publication = self.run_tick(gate)
                except Exception:
                    logger.exception("OCR tick failed; continuing.")
                    self._stop.wait(self._settings.empty_frame_backoff)
                    continue
                if publication is None:
                    self.status = "Region not visible."
                    self._stop.wait(self._settings.empty_frame_backoff)
                    continue
                if self._stop.is_set():
                    break
                self.status = publication.status
                self._mailbox.put(publication)
                self._stop.wait(1.0 / tick_rate)
        finally:
            close = getattr(self._frame_source, "close", None)
            if close is not None:
                close()


def start_session(
    config: AppConfig,
    locator: WindowLocator,
    frame_source: FrameSource,
    mailbox: LatestMailbox[Publication],
    store: Optional[CalibrationStore] = None,
    recognizer_factory: Callable[[OcrConfig], TesseractRecognizer] = create_recognizer,
    stop_event: Optional[threading.Event] = None,
) -> ReadoutSession:
    """Locate the window, resolve the ROI, build the engine, then start the worker.

    Engine failures raise RecognizerInitError here, before any loop runs.
    """
    window = locator.await_locate(
        poll_interval_ms=config.window.poll_interval_ms,
        stop_event=stop_event,
        timeout=config.window.locate_timeout,
    )
    logger.info(
        "Found game window: L=%d T=%d W=%d H=%d",
        window.left, window.top, window.width, window.height,
    )
    store = store or CalibrationStore(config.paths.calibration_file)
    roi = store.load_or_default()
    region = absolute_roi(window, roi)
    logger.info("ROI %s -> absolute %s", format_roi(roi), region)

    recognizer = recognizer_factory(config.ocr)
    session = ReadoutSession(
        frame_source=frame_source,
        region=region,
        recognize=recognizer.recognize,
        mailbox=mailbox,
        settings=config.loop,
        min_height=config.ocr.min_height,
        max_height=config.ocr.max_height,
        debug_dir=config.paths.debug_dir,
    )
    if config.loop.probe_on_start:
        session.probe()
    session.start()
    return session
