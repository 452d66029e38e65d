"""
Watermark placement.

Images get concrete pixel offsets. Videos get ffmpeg overlay expressions in
terms of the main (W, H) and overlay (w, h) sizes, because the filter graph
only knows the frame sizes when it runs.

Offsets are not clamped: a watermark larger than its container yields
negative offsets and the compositing step clips it.
"""

import math
from typing import NamedTuple, Optional

PADDING = 20

TOP_LEFT = "top-left"
TOP_CENTER = "top-center"
TOP_RIGHT = "top-right"
CENTER = "center"
BOTTOM_LEFT = "bottom-left"
BOTTOM_CENTER = "bottom-center"
BOTTOM_RIGHT = "bottom-right"

ANCHORS = (
    TOP_LEFT,
    TOP_CENTER,
    TOP_RIGHT,
    CENTER,
    BOTTOM_LEFT,
    BOTTOM_CENTER,
    BOTTOM_RIGHT,
)

DEFAULT_ANCHOR = BOTTOM_RIGHT


class Offset(NamedTuple):
    top: int
    left: int


class OverlayPosition(NamedTuple):
    x: str
    y: str

    @property
    def overlay(self) -> str:
        """Value for ffmpeg's `overlay=` filter option."""
        return f"{self.x}:{self.y}"


def normalize_anchor(anchor: Optional[str]) -> str:
    """Return a known anchor name; anything unrecognized becomes bottom-right."""
    if isinstance(anchor, str):
        candidate = anchor.strip().lower()
        if candidate in ANCHORS:
            return candidate
    return DEFAULT_ANCHOR


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def resolve_offset(
    container_width: int,
    container_height: int,
    watermark_width: int,
    watermark_height: int,
    anchor: Optional[str],
    padding: int = PADDING,
) -> Offset:
    """Top-left pixel offset of the watermark inside the container."""
    centered_left = round_half_up((container_width - watermark_width) / 2)
    centered_top = round_half_up((container_height - watermark_height) / 2)
    right = container_width - watermark_width - padding
    bottom = container_height - watermark_height - padding

    offsets = {
        TOP_LEFT: Offset(padding, padding),
        TOP_CENTER: Offset(padding, centered_left),
        TOP_RIGHT: Offset(padding, right),
        CENTER: Offset(centered_top, centered_left),
        BOTTOM_LEFT: Offset(bottom, padding),
        BOTTOM_CENTER: Offset(bottom, centered_left),
        BOTTOM_RIGHT: Offset(bottom, right),
    }
    return offsets[normalize_anchor(anchor)]


def resolve_expression(anchor: Optional[str], padding: int = PADDING) -> OverlayPosition:
    """Symbolic overlay position for an ffmpeg filter graph."""
    expressions = {
        TOP_LEFT: OverlayPosition(f"{padding}", f"{padding}"),
        TOP_CENTER: OverlayPosition("(W-w)/2", f"{padding}"),
        TOP_RIGHT: OverlayPosition(f"W-w-{padding}", f"{padding}"),
        CENTER: OverlayPosition("(W-w)/2", "(H-h)/2"),
        BOTTOM_LEFT: OverlayPosition(f"{padding}", f"H-h-{padding}"),
        BOTTOM_CENTER: OverlayPosition("(W-w)/2", f"H-h-{padding}"),
        BOTTOM_RIGHT: OverlayPosition(f"W-w-{padding}", f"H-h-{padding}"),
    }
    return expressions[normalize_anchor(anchor)]
