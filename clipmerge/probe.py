from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

from .config import EncoderConfig
from .ffmpeg import probe_command
from .records import ClipMetadata, ProbeFailure, SkipReason
from .runner import CommandError, CommandRunner, CommandTimeout

log = logging.getLogger(__name__)


def parse_probe_output(path: Path, raw: str) -> ClipMetadata | ProbeFailure:
    try:
        payload: Dict[str, Any] = json.loads(raw)
    except json.JSONDecodeError as exc:
        return ProbeFailure(path, SkipReason.MALFORMED_OUTPUT, str(exc))
    if not isinstance(payload, dict):
        return ProbeFailure(path, SkipReason.MALFORMED_OUTPUT, "top-level value is not an object")

    streams = payload.get("streams") or []
    fmt = payload.get("format") or {}
    if not isinstance(streams, list) or not isinstance(fmt, dict):
        return ProbeFailure(path, SkipReason.MALFORMED_OUTPUT, "unexpected streams/format layout")

    try:
        duration = float(fmt["duration"])
    except (KeyError, TypeError, ValueError):
        return ProbeFailure(path, SkipReason.MISSING_FIELDS, "no container duration")
    if duration < 0:
        return ProbeFailure(path, SkipReason.MALFORMED_OUTPUT, f"negative duration {duration}")

    video = next((s for s in streams if isinstance(s, dict) and s.get("codec_type") == "video"), None)
    if video is None:
        return ProbeFailure(path, SkipReason.MISSING_FIELDS, "no video stream")
    try:
        width = int(video["width"])
        height = int(video["height"])
    except (KeyError, TypeError, ValueError):
        return ProbeFailure(path, SkipReason.MISSING_FIELDS, "no video dimension")
    if width <= 0 or height <= 0:
        return ProbeFailure(path, SkipReason.MISSING_FIELDS, f"invalid dimension {width}x{height}")

    has_audio = any(isinstance(s, dict) and s.get("codec_type") == "audio" for s in streams)
    frame_rate = video.get("r_frame_rate")
    return ClipMetadata(
        duration=duration,
        width=width,
        height=height,
        frame_rate=str(frame_rate) if frame_rate is not None else None,
        has_audio=has_audio,
    )


class MetadataProbe:
    """
    Query ffprobe once per clip for duration, first video stream geometry,
    frame rate and audio presence.

    Problems with a single clip come back as ``ProbeFailure`` so the batch can
    carry on; ``CommandCancelled`` from the runner is left to propagate.
    """

    def __init__(self, runner: CommandRunner, cfg: EncoderConfig, min_duration: float = 0.0):
        self.runner = runner
        self.cfg = cfg
        self.min_duration = min_duration

    def probe(self, path: Path) -> ClipMetadata | ProbeFailure:
        cmd = probe_command(self.cfg.ffprobe, path)
        try:
            raw = self.runner.run(cmd, timeout=self.cfg.probe_timeout or None)
        except CommandTimeout as exc:
            return ProbeFailure(path, SkipReason.PROBE_TIMEOUT, str(exc))
        except CommandError as exc:
            return ProbeFailure(path, SkipReason.PROBE_FAILED, str(exc))

        result = parse_probe_output(path, raw)
        if isinstance(result, ProbeFailure):
            return result
        if self.min_duration > 0 and result.duration < self.min_duration:
            return ProbeFailure(
                path,
                SkipReason.TOO_SHORT,
                f"{result.duration:.2f}s < {self.min_duration:g}s",
            )
        log.debug("Probed %s: %s", path.name, result)
        return result
