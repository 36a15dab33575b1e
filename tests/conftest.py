"""Shared fixtures: a fake process runner and helpers for building clip trees."""

import json
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from clipmerge.config import Config, validate_config
from clipmerge.runner import CommandError
from clipmerge.state import CancelToken, RunContext


def probe_json(duration=10.0, width=1920, height=1080, audio=True, rate="30/1") -> str:
    streams = [{"codec_type": "video", "width": width, "height": height, "r_frame_rate": rate}]
    if audio:
        streams.append({"codec_type": "audio"})
    return json.dumps({"streams": streams, "format": {"duration": str(duration)}})


class FakeRunner:
    """
    Stands in for CommandRunner.

    ffprobe calls answer from ``probes`` (keyed by file name); ffmpeg calls
    create their output file inside ``cwd`` so later steps see real files.
    """

    def __init__(self, cancel: Optional[CancelToken] = None):
        self.cancel = cancel or CancelToken()
        self.calls: List[Dict] = []
        self.probes: Dict[str, str] = {}
        self.fail_when: Optional[Callable[[List[str]], bool]] = None
        self.on_call: Optional[Callable[["FakeRunner", List[str]], None]] = None
        self.manifests: List[str] = []

    @property
    def ffmpeg_calls(self) -> List[List[str]]:
        return [c["cmd"] for c in self.calls if Path(c["cmd"][0]).name.startswith("ffmpeg")]

    def run(self, cmd, cwd=None, timeout=None):
        cmd = [str(c) for c in cmd]
        self.calls.append({"cmd": cmd, "cwd": cwd, "timeout": timeout})
        if self.on_call is not None:
            self.on_call(self, cmd)
        if self.fail_when is not None and self.fail_when(cmd):
            raise CommandError(cmd, 1, "Conversion failed!")
        if Path(cmd[0]).name.startswith("ffprobe"):
            return self.probes.get(Path(cmd[-1]).name, probe_json())
        if "-f" in cmd and "concat" in cmd:
            manifest = cmd[cmd.index("-i", cmd.index("concat")) + 1]
            self.manifests.append((Path(cwd) / manifest).read_text(encoding="utf-8"))
        out = Path(cmd[-1])
        if cwd is not None and not out.is_absolute():
            out = Path(cwd) / out
        out.write_bytes(b"video")
        return ""


@pytest.fixture
def dirs(tmp_path):
    src = tmp_path / "clips"
    out = tmp_path / "out"
    src.mkdir()
    out.mkdir()
    return src, out


@pytest.fixture
def make_config(dirs):
    def _make(**overrides) -> Config:
        src, out = dirs
        sections = {k: overrides.pop(k) for k in ("encoder", "title", "filters") if k in overrides}
        cfg = Config(input_dir=src, output_dir=out, **overrides)
        for name, values in sections.items():
            for key, value in values.items():
                setattr(getattr(cfg, name), key, value)
        validate_config(cfg)
        return cfg

    return _make


@pytest.fixture
def make_ctx(make_config):
    def _make(**overrides) -> RunContext:
        return RunContext(config=make_config(**overrides))

    return _make


def touch_clip(root: Path, month: str, day: str, name: str) -> Path:
    path = root / month / day / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"clip")
    return path
