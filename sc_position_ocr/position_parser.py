"""Zone/position extraction from noisy HUD OCR text."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Iterable

UNICODE_MINUS = "−"
KM_DISPLAY_THRESHOLD_M = 10000.0

_NUMBER = r"-?\d+(?:[.,]\d+)?"
_UNIT = r"k?m"

# Tolerates ":" or ";", missing "o"/"e" in the markers, flexible whitespace and
# stray punctuation between the three components. Separators are lazy so a
# leading "-" stays with the following number.
POSITION_PATTERN = re.compile(
    r"Zo?ne?\s*[:;]\s*(?P<zone>.+?)\s+"
    r"Po?s\s*[:;]\s*"
    rf"(?P<x>{_NUMBER})\s*(?P<ux>{_UNIT})\W+?"
    rf"(?P<y>{_NUMBER})\s*(?P<uy>{_UNIT})\W+?"
    rf"(?P<z>{_NUMBER})\s*(?P<uz>{_UNIT})\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ParsedRecord:
    zone: str
    x: float
    y: float
    z: float
    raw: str


def _clean(text: str) -> str:
    if not text or not text.strip():
        return ""
    return text.replace(UNICODE_MINUS, "-")


def to_meters(value: str, unit: str) -> float:
    try:
        number = float(value.replace(",", "."))
    except ValueError:
        return math.nan
    if unit.strip().lower() == "km":
        return number * 1000.0
    return number


def parse_all(text: str) -> list[ParsedRecord]:
    """Every zone/position record in document order; never raises."""
    cleaned = _clean(text)
    if not cleaned:
        return []
    records: list[ParsedRecord] = []
    for match in POSITION_PATTERN.finditer(cleaned):
        x = to_meters(match.group("x"), match.group("ux"))
        y = to_meters(match.group("y"), match.group("uy"))
        z = to_meters(match.group("z"), match.group("uz"))
        if not all(math.isfinite(axis) for axis in (x, y, z)):
            continue
        records.append(
            ParsedRecord(zone=match.group("zone").strip(), x=x, y=y, z=z, raw=match.group(0))
        )
    return records


def pretty_axis(meters: float) -> tuple[str, str]:
    if abs(meters) >= KM_DISPLAY_THRESHOLD_M:
        return format_number(meters / 1000.0), "km"
    return format_number(meters), "m"


def format_number(value: float) -> str:
    # Up to three decimals, trailing zeros dropped.
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    if text == "-0":
        return "0"
    return text


def format_for_display(records: Iterable[ParsedRecord]) -> str:
    best = next(iter(records), None)
    if best is None:
        return ""
    px, ux = pretty_axis(best.x)
    py, uy = pretty_axis(best.y)
    pz, uz = pretty_axis(best.z)
    return f"Zone: {best.zone}  Pos: {px} {ux} {py} {uy} {pz} {uz}"


def combine_lines(top: str, bottom: str) -> str:
    top_blank = not top or not top.strip()
    bottom_blank = not bottom or not bottom.strip()
    if top_blank and bottom_blank:
        return ""
    if top_blank:
        return bottom
    if bottom_blank:
        return top
    return f"{top}\n{bottom}"
