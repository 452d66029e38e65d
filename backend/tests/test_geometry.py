"""
Tests for watermark placement.

Run with: python -m pytest backend/tests/test_geometry.py -v
"""

import math

import pytest

from backend.app.core.watermark.geometry import (
    ANCHORS,
    PADDING,
    Offset,
    normalize_anchor,
    resolve_expression,
    resolve_offset,
)

SIZES = [
    (1000, 800, 100, 100),
    (1920, 1080, 384, 216),
    (641, 479, 33, 17),
    (50, 40, 200, 120),  # watermark larger than the container
    (1, 1, 1, 1),
]


def half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def expected(anchor, W, H, w, h):
    p = PADDING
    table = {
        "top-left": (p, p),
        "top-center": (p, half_up((W - w) / 2)),
        "top-right": (p, W - w - p),
        "center": (half_up((H - h) / 2), half_up((W - w) / 2)),
        "bottom-left": (H - h - p, p),
        "bottom-center": (H - h - p, half_up((W - w) / 2)),
        "bottom-right": (H - h - p, W - w - p),
    }
    return Offset(*table[anchor])


@pytest.mark.parametrize("anchor", ANCHORS)
@pytest.mark.parametrize("W,H,w,h", SIZES)
def test_offsets_match_formula_table(anchor, W, H, w, h):
    assert resolve_offset(W, H, w, h, anchor) == expected(anchor, W, H, w, h)


@pytest.mark.parametrize("anchor", ["", "middle", "TOP-LEFTISH", None, 42])
def test_unknown_anchor_is_bottom_right(anchor):
    assert resolve_offset(1000, 800, 100, 50, anchor) == resolve_offset(1000, 800, 100, 50, "bottom-right")
    assert resolve_expression(anchor) == resolve_expression("bottom-right")


def test_anchor_names_are_case_insensitive():
    assert normalize_anchor(" Top-Left ") == "top-left"


def test_offsets_are_not_clamped():
    offset = resolve_offset(50, 40, 200, 120, "bottom-right")
    assert offset == Offset(top=40 - 120 - 20, left=50 - 200 - 20)
    assert offset.top < 0 and offset.left < 0


def test_scenario_top_left():
    assert resolve_offset(1000, 800, 100, 100, "top-left") == Offset(top=20, left=20)


@pytest.mark.parametrize("anchor,overlay", [
    ("top-left", "20:20"),
    ("top-center", "(W-w)/2:20"),
    ("top-right", "W-w-20:20"),
    ("center", "(W-w)/2:(H-h)/2"),
    ("bottom-left", "20:H-h-20"),
    ("bottom-center", "(W-w)/2:H-h-20"),
    ("bottom-right", "W-w-20:H-h-20"),
])
def test_video_expressions(anchor, overlay):
    assert resolve_expression(anchor).overlay == overlay
