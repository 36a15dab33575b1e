from __future__ import annotations

import os
import re
import string
from dataclasses import dataclass
from datetime import date, datetime, time

# <root>/<yy-MM>/<yy-MM-dd>/<HH-mm-ss>_<camera>_<sequence>.mp4
MONTH_DIR_RE = re.compile(r"^\d{2}-\d{2}$")
DATE_DIR_RE = re.compile(r"^\d{2}-\d{2}-\d{2}$")
CAMERA_OFFSET = 9  # len("HH-mm-ss_")

DATE_TEMPLATE = "{camera}_{time:%Y-%m-%d}.mp4"
MONTH_TEMPLATE = "{camera}_{time:%Y-%m}.mp4"

_TEMPLATE_FIELDS = {"camera": "camera", "0": "camera", "time": "time", "1": "time"}


@dataclass(frozen=True)
class ClipName:
    time_of_day: time
    camera: str
    sequence: str


def _clip_name_re(extension: str) -> re.Pattern:
    # extension is matched case-insensitively
    return re.compile(r"^(\d{2})-(\d{2})-(\d{2})_(.+)_(\d+)(?i:" + re.escape(extension) + ")$")


_DEFAULT_CLIP_RE = _clip_name_re(".mp4")


def parse_month_dir(name: str) -> date | None:
    if not MONTH_DIR_RE.match(name):
        return None
    try:
        return datetime.strptime(name, "%y-%m").date()
    except ValueError:
        return None


def parse_date_dir(name: str) -> date | None:
    if not DATE_DIR_RE.match(name):
        return None
    try:
        return datetime.strptime(name, "%y-%m-%d").date()
    except ValueError:
        return None


def parse_clip_name(name: str, extension: str = ".mp4") -> ClipName | None:
    pattern = _DEFAULT_CLIP_RE if extension == ".mp4" else _clip_name_re(extension)
    m = pattern.match(name)
    if m is None:
        return None
    hour, minute, second = (int(g) for g in m.group(1, 2, 3))
    try:
        tod = time(hour, minute, second)
    except ValueError:
        return None
    camera = name[CAMERA_OFFSET : name.rindex("_")]
    return ClipName(time_of_day=tod, camera=camera, sequence=m.group(5))


def capture_time(day: date, clip: ClipName) -> datetime:
    return datetime.combine(day, clip.time_of_day)


class FileNameTemplate:
    """
    Output file name formatter with two slots: the camera name and the
    representative capture time of the group.

    Fields are ``{camera}`` (or ``{0}``) and ``{time}`` (or ``{1}``); the time
    field takes a strftime spec, e.g. ``{camera}_{time:%Y-%m-%d}.mp4``.
    The template is checked once on construction so a bad pattern fails before
    any clip is processed.
    """

    _SAMPLE_TIME = datetime(2000, 1, 2, 3, 4, 5)

    def __init__(self, template: str):
        self.template = template
        self._parts: list[tuple[str, str | None, str]] = []
        try:
            parsed = list(string.Formatter().parse(template))
        except ValueError as exc:
            raise ValueError(f"malformed template: {exc}") from exc
        seen = set()
        for literal, field_name, spec, conversion in parsed:
            if field_name is None:
                self._parts.append((literal, None, ""))
                continue
            if field_name not in _TEMPLATE_FIELDS:
                raise ValueError(f"unknown field {{{field_name}}}; use {{camera}} and {{time}}")
            if conversion:
                raise ValueError(f"conversion !{conversion} is not supported")
            if spec and ("{" in spec or "}" in spec):
                raise ValueError("nested fields are not supported")
            slot = _TEMPLATE_FIELDS[field_name]
            if slot == "camera" and spec:
                raise ValueError("the camera field takes no format spec")
            seen.add(slot)
            self._parts.append((literal, slot, spec or ""))
        if "camera" not in seen and "time" not in seen:
            raise ValueError("template must contain {camera} or {time}")

        sample = self.format("Camera", self._SAMPLE_TIME)
        if not sample.strip() or sample in {".", ".."}:
            raise ValueError("template yields an empty file name")
        if os.sep in sample or (os.altsep and os.altsep in sample):
            raise ValueError("template must not contain path separators")

    def format(self, camera: str, when: datetime) -> str:
        out = []
        for literal, slot, spec in self._parts:
            out.append(literal)
            if slot == "camera":
                out.append(camera)
            elif slot == "time":
                out.append(when.strftime(spec) if spec else when.isoformat(sep=" "))
        return "".join(out)

    def __repr__(self) -> str:
        return f"FileNameTemplate({self.template!r})"
