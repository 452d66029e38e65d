"""
Domain types shared by the compositors, the pipeline and the batch manager.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from backend.app.core.watermark.geometry import DEFAULT_ANCHOR, normalize_anchor

DEFAULT_OPACITY = 0.7
DEFAULT_SCALE = 0.2


def _as_float(value: Any) -> Optional[float]:
    """Parse a form/JSON value into a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


class WatermarkOptions(BaseModel):
    """
    Placement options for one batch.

    Lenient by design of the upload form: missing or non-numeric values fall
    back to defaults and unknown positions resolve to bottom-right.
    """

    model_config = ConfigDict(frozen=True)

    position: str = DEFAULT_ANCHOR
    opacity: float = DEFAULT_OPACITY
    scale: float = DEFAULT_SCALE

    @field_validator("position", mode="before")
    @classmethod
    def _position(cls, value):
        return normalize_anchor(value)

    @field_validator("opacity", mode="before")
    @classmethod
    def _opacity(cls, value):
        number = _as_float(value)
        if number is None:
            return DEFAULT_OPACITY
        return min(1.0, max(0.0, number))

    @field_validator("scale", mode="before")
    @classmethod
    def _scale(cls, value):
        number = _as_float(value)
        if number is None or number <= 0:
            return DEFAULT_SCALE
        return min(1.0, number)


@dataclass(frozen=True)
class SourceFile:
    name: str
    content: bytes
    media_type: Optional[str] = None


@dataclass(frozen=True)
class ProcessedFile:
    name: str
    content: bytes


@dataclass(frozen=True)
class Watermark:
    """
    Watermark bytes, plus an on-disk copy once one has been written.

    `image` is the decoded RGBA watermark, shared read-only by every file
    of a batch so the bytes are decoded once.
    """
    content: bytes
    path: Optional[str] = None
    image: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class FileOutcome:
    """Result of one file: either `processed` or `error` is set."""
    name: str
    processed: Optional[ProcessedFile] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.processed is not None
