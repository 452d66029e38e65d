import pytest
from pydantic import ValidationError

from backend.app.core.models import WatermarkOptions


def test_defaults():
    options = WatermarkOptions()
    assert options.position == "bottom-right"
    assert options.opacity == 0.7
    assert options.scale == 0.2


@pytest.mark.parametrize("raw", [None, "", "abc", "nan", float("nan"), "inf"])
def test_non_numeric_values_fall_back(raw):
    options = WatermarkOptions(opacity=raw, scale=raw)
    assert options.opacity == 0.7
    assert options.scale == 0.2


def test_form_strings_are_parsed():
    options = WatermarkOptions(position="center", opacity="0.35", scale="0.5")
    assert options == WatermarkOptions(position="center", opacity=0.35, scale=0.5)


def test_zero_opacity_is_kept():
    assert WatermarkOptions(opacity="0").opacity == 0.0


def test_out_of_range_values_are_clamped():
    options = WatermarkOptions(opacity=3, scale=7)
    assert options.opacity == 1.0
    assert options.scale == 1.0
    assert WatermarkOptions(opacity=-1).opacity == 0.0
    assert WatermarkOptions(scale=0).scale == 0.2
    assert WatermarkOptions(scale=-0.5).scale == 0.2


def test_unknown_position_falls_back():
    assert WatermarkOptions(position="somewhere").position == "bottom-right"


def test_options_are_immutable():
    options = WatermarkOptions()
    with pytest.raises(ValidationError):
        options.opacity = 0.1
