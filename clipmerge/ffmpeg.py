from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

from .config import EncoderConfig

COMMON_FLAGS = ["-hide_banner", "-nostdin", "-loglevel", "error"]

# Mono 16 kHz silence, matching the camera's own AAC track.
SILENT_AUDIO_SOURCE = "anullsrc=r=16000:cl=mono:n=32"
AUDIO_ENCODE_ARGS = ["-c:a", "aac", "-ac", "1", "-b:a", "16k"]
TITLE_PIXEL_FORMAT = "yuvj420p"

CONCAT_WITH_AUDIO = "[0:v][0:a][1:v][1:a]concat=n=2:v=1:a=1[outv][outa]"
CONCAT_VIDEO_ONLY = "[0:v][1:v]concat=n=2:v=1:a=0[outv]"


def _fmt_number(value: float) -> str:
    return f"{value:g}"


class FFmpegCommand:
    """
    Ordered argument list for one encoder call.

    Tokens are kept separate from the start so paths with spaces or quotes
    never need shell escaping.
    """

    def __init__(self, executable: str = "ffmpeg"):
        self.executable = executable
        self._global: List[str] = list(COMMON_FLAGS)
        self._inputs: List[str] = []
        self._outputs: List[str] = []

    def overwrite(self, enabled: bool) -> "FFmpegCommand":
        self._global.append("-y" if enabled else "-n")
        return self

    def input(self, path: str | Path, *options: str) -> "FFmpegCommand":
        self._inputs.extend(options)
        self._inputs.extend(["-i", str(path)])
        return self

    def silent_audio_input(self) -> "FFmpegCommand":
        return self.input(SILENT_AUDIO_SOURCE, "-f", "lavfi")

    def option(self, *tokens: str) -> "FFmpegCommand":
        self._outputs.extend(tokens)
        return self

    def video_codec(self, cfg: EncoderConfig) -> "FFmpegCommand":
        self._outputs.extend(["-c:v", cfg.video_codec])
        if cfg.preset and cfg.preset.strip():
            self._outputs.extend(["-preset", cfg.preset.strip()])
        return self

    def encode_audio(self) -> "FFmpegCommand":
        self._outputs.extend(AUDIO_ENCODE_ARGS)
        return self

    def map(self, *specs: str) -> "FFmpegCommand":
        for spec in specs:
            self._outputs.extend(["-map", spec])
        return self

    def build(self, output: str | Path) -> List[str]:
        return [self.executable, *self._global, *self._inputs, *self._outputs, str(output)]


def probe_command(ffprobe: str, path: str | Path) -> List[str]:
    return [
        ffprobe,
        "-v",
        "error",
        "-show_entries",
        "format=duration:stream=codec_type,width,height,r_frame_rate",
        "-of",
        "json",
        str(path),
    ]


def title_clip_command(
    cfg: EncoderConfig,
    image: str | Path,
    output: str | Path,
    duration: int,
    use_audio: bool,
) -> List[str]:
    cmd = FFmpegCommand(cfg.ffmpeg).overwrite(True)
    cmd.input(image, "-loop", "1", "-f", "image2", "-framerate", _fmt_number(cfg.frame_rate))
    if use_audio:
        cmd.silent_audio_input()
    cmd.option("-t", str(duration))
    cmd.video_codec(cfg)
    if use_audio:
        cmd.encode_audio()
    cmd.option("-pix_fmt", TITLE_PIXEL_FORMAT)
    cmd.map("0:v")
    if use_audio:
        cmd.map("1:a").option("-shortest")
    return cmd.build(output)


def normalize_command(
    cfg: EncoderConfig,
    source: str | Path,
    output: str | Path,
    *,
    width: int,
    height: int,
    need_resize: bool,
    need_silence: bool,
    has_audio: bool,
) -> List[str]:
    cmd = FFmpegCommand(cfg.ffmpeg).overwrite(True).input(source)
    if need_silence:
        cmd.silent_audio_input()
    if need_resize:
        cmd.video_codec(cfg).option("-vf", f"scale={width}:{height}")
    else:
        cmd.option("-c:v", "copy")
    cmd.map("0:v:0")
    if need_silence:
        cmd.map("1:a:0").encode_audio().option("-shortest")
    elif has_audio:
        cmd.map("0:a:0").option("-c:a", "copy")
    else:
        cmd.option("-an")
    return cmd.build(output)


def combine_command(
    cfg: EncoderConfig,
    title: str | Path,
    source: str | Path,
    output: str | Path,
    use_audio: bool,
) -> List[str]:
    cmd = FFmpegCommand(cfg.ffmpeg).overwrite(True).input(title).input(source)
    if use_audio:
        cmd.option("-filter_complex", CONCAT_WITH_AUDIO).map("[outv]", "[outa]")
    else:
        cmd.option("-filter_complex", CONCAT_VIDEO_ONLY).map("[outv]")
    cmd.option("-r", _fmt_number(cfg.frame_rate))
    cmd.video_codec(cfg)
    if use_audio:
        cmd.encode_audio()
    return cmd.build(output)


def transcode_command(ffmpeg: str, source: str | Path, output: str | Path, overwrite: bool) -> List[str]:
    return FFmpegCommand(ffmpeg).overwrite(overwrite).input(source).option("-c", "copy").build(output)


def concat_command(ffmpeg: str, manifest: str | Path, output: str | Path, overwrite: bool) -> List[str]:
    return (
        FFmpegCommand(ffmpeg)
        .overwrite(overwrite)
        .input(manifest, "-f", "concat", "-safe", "0")
        .option("-c", "copy")
        .build(output)
    )


def manifest_text(names: Iterable[str]) -> str:
    """Concat demuxer list; single quotes inside names are closed, escaped and reopened."""
    lines = []
    for name in names:
        escaped = name.replace("'", "'\\''")
        lines.append(f"file '{escaped}'\n")
    return "".join(lines)
