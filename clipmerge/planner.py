from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence, Tuple

from .naming import FileNameTemplate
from .records import ClipRecord


@dataclass(frozen=True)
class MergePlan:
    camera: str
    clips: Tuple[ClipRecord, ...]
    width: int
    height: int
    use_audio: bool
    name_time: datetime
    output_name: str

    def needs_silence(self, clip: ClipRecord) -> bool:
        return self.use_audio and not clip.has_audio

    def needs_resize(self, clip: ClipRecord) -> bool:
        return clip.width != self.width


def plan_group(camera: str, clips: Sequence[ClipRecord], template: FileNameTemplate) -> MergePlan:
    if not clips:
        raise ValueError(f"no clips to merge for camera {camera}")

    ordered = tuple(sorted(clips, key=lambda c: c.capture_time))
    width = height = 0
    use_audio = False
    name_time: datetime | None = None
    for clip in ordered:
        use_audio = use_audio or clip.has_audio
        # width and height move together so the target keeps one clip's aspect
        if clip.width > width:
            width, height = clip.width, clip.height
        if name_time is None:
            name_time = clip.capture_time

    return MergePlan(
        camera=camera,
        clips=ordered,
        width=width,
        height=height,
        use_audio=use_audio,
        name_time=name_time,
        output_name=template.format(camera, name_time),
    )
