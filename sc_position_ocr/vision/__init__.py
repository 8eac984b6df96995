"""Screen capture and OCR preprocessing for the HUD region."""

from sc_position_ocr.vision.screen_capture import (
    EMPTY_FRAME,
    MssFrameSource,
    WindowLocator,
    WindowRegion,
    absolute_roi,
    crop_by_fractions,
    is_empty_frame,
    roi_to_fractional,
)
from sc_position_ocr.vision.variants import (
    VARIANT_TAGS,
    Variant,
    generate_variants,
    iter_variants,
    target_height,
    upscale_to,
)

__all__ = [
    "EMPTY_FRAME",
    "MssFrameSource",
    "WindowLocator",
    "WindowRegion",
    "absolute_roi",
    "crop_by_fractions",
    "is_empty_frame",
    "roi_to_fractional",
    "VARIANT_TAGS",
    "Variant",
    "generate_variants",
    "iter_variants",
    "target_height",
    "upscale_to",
]
