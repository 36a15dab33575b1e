from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path


class SkipReason(str, Enum):
    BAD_NAME = "bad_name"
    CAMERA_FILTERED = "camera_filtered"
    PROBE_FAILED = "probe_failed"
    PROBE_TIMEOUT = "probe_timeout"
    MALFORMED_OUTPUT = "malformed_output"
    MISSING_FIELDS = "missing_fields"
    TOO_SHORT = "too_short"


@dataclass(frozen=True)
class ClipMetadata:
    duration: float
    width: int
    height: int
    frame_rate: str | None
    has_audio: bool


@dataclass(frozen=True)
class ProbeFailure:
    path: Path
    reason: SkipReason
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.reason.value}: {self.detail}" if self.detail else self.reason.value


def parse_frame_rate(value: str | None) -> float:
    """
    Parse an ffprobe rational such as "30000/1001" to 29.97.

    Anything unparseable (including a zero denominator) gives NaN.
    """
    if not value:
        return math.nan
    top, sep, bottom = value.partition("/")
    if not sep:
        return math.nan
    try:
        num, den = int(top), int(bottom)
    except ValueError:
        return math.nan
    if den == 0:
        return math.nan
    return num / den


@dataclass
class ClipRecord:
    """
    One source clip: identity from the storage layout plus probed attributes.
    """

    path: Path
    capture_time: datetime
    duration: float = 0.0
    width: int = 0
    height: int = 0
    frame_rate: str | None = None
    has_audio: bool = False

    def __post_init__(self) -> None:
        self.path = Path(self.path)

    @classmethod
    def from_metadata(cls, path: Path, capture_time: datetime, meta: ClipMetadata) -> "ClipRecord":
        return cls(
            path=path,
            capture_time=capture_time,
            duration=meta.duration,
            width=meta.width,
            height=meta.height,
            frame_rate=meta.frame_rate,
            has_audio=meta.has_audio,
        )

    @property
    def calculated_frame_rate(self) -> float:
        return parse_frame_rate(self.frame_rate)

    def __str__(self) -> str:
        return (
            f"au={'y' if self.has_audio else 'n'},"
            f"di={self.width}x{self.height},"
            f"fr={self.calculated_frame_rate:.2f}fps,"
            f"ln={self.duration:.2f}s"
        )
