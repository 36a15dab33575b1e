#!/usr/bin/env python3
"""Preflight for clipmerge: Python modules, ffmpeg/ffprobe and the title font."""
from __future__ import annotations

import argparse
import importlib
import shutil
import subprocess
import sys
from pathlib import Path
from typing import List, Tuple

import yaml

REQUIRED_MODULES = ["PIL", "yaml", "tqdm"]


def _check_module(name: str) -> Tuple[bool, str]:
    try:
        module = importlib.import_module(name)
    except ImportError as exc:
        return False, f"{name}: missing ({exc})"
    return True, f"{name}: ok ({getattr(module, '__version__', 'unknown')})"


def _check_executable(name: str) -> Tuple[bool, str]:
    path = shutil.which(name)
    if path is None:
        return False, f"{name}: not found on PATH"
    try:
        proc = subprocess.run([path, "-version"], check=True, capture_output=True, text=True, timeout=10)
    except (OSError, subprocess.SubprocessError) as exc:
        return False, f"{name}: not runnable ({exc})"
    first_line = proc.stdout.splitlines()[0] if proc.stdout else "unknown version"
    return True, f"{name}: ok ({first_line})"


def _check_font(family: str) -> Tuple[bool, str]:
    from PIL import ImageFont

    for name in (family, f"{family}.ttf", "DejaVuSans.ttf"):
        try:
            ImageFont.truetype(name, 12)
        except OSError:
            continue
        return True, f"font {family!r}: ok ({name})"
    # not fatal: clipmerge falls back to Pillow's built-in font
    return True, f"font {family!r}: not found, Pillow's default font will be used"


def _executables(config: Path | None, ffmpeg: str | None, ffprobe: str | None) -> Tuple[str, str]:
    encoder = {}
    if config is not None:
        with config.open("r", encoding="utf-8") as f:
            encoder = (yaml.safe_load(f) or {}).get("encoder") or {}
    return ffmpeg or encoder.get("ffmpeg", "ffmpeg"), ffprobe or encoder.get("ffprobe", "ffprobe")


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check that clipmerge can run on this machine")
    parser.add_argument("--config", type=Path, default=None, help="clipmerge config.yaml to read executables from")
    parser.add_argument("--ffmpeg", default=None, help="ffmpeg executable (overrides the config)")
    parser.add_argument("--ffprobe", default=None, help="ffprobe executable (overrides the config)")
    parser.add_argument("--font-family", default="sans-serif", help="Title font to look up")
    return parser.parse_args(argv)


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv)
    checks = [_check_module(m) for m in REQUIRED_MODULES]
    for exe in _executables(args.config, args.ffmpeg, args.ffprobe):
        checks.append(_check_executable(exe))
    checks.append(_check_font(args.font_family))

    failures = 0
    for ok, msg in checks:
        print(msg)
        failures += 0 if ok else 1
    if failures:
        print(f"env check failed: {failures} requirement(s) missing")
        return 1
    print("env check passed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
