from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Dict, List

from tqdm import tqdm

from .naming import capture_time, parse_clip_name
from .probe import MetadataProbe
from .records import ClipRecord, ProbeFailure, SkipReason
from .state import RunContext

log = logging.getLogger(__name__)


def list_clip_files(date_dir: Path, extension: str) -> List[Path]:
    return sorted(p for p in date_dir.iterdir() if p.is_file() and p.name.lower().endswith(extension.lower()))


class ClipCatalog:
    """
    Camera name -> clips found so far in the current grouping period.

    With month grouping the same catalog is fed every date directory of the
    month before it is handed to the merge stage and cleared.
    """

    def __init__(self, ctx: RunContext, probe: MetadataProbe):
        self.ctx = ctx
        self.probe = probe
        self._groups: Dict[str, List[ClipRecord]] = {}

    def __len__(self) -> int:
        return len(self._groups)

    def cameras(self) -> List[str]:
        return sorted(self._groups)

    def accepts_date(self, day: date) -> bool:
        filters = self.ctx.config.filters
        if filters.start_date is not None and day < filters.start_date:
            return False
        if filters.end_date is not None and day > filters.end_date:
            return False
        return True

    def discover(self, date_dir: Path, day: date) -> int:
        cfg = self.ctx.config
        pattern = cfg.filters.camera_pattern
        files = list_clip_files(date_dir, cfg.clip_extension)
        log.info("  Processing date directory: %s with %d clip(s)", date_dir.name, len(files))

        added = 0
        for clip_file in tqdm(files, desc=date_dir.name, unit="clip", leave=False, disable=self.ctx.quiet):
            name = parse_clip_name(clip_file.name, cfg.clip_extension)
            if name is None:
                log.debug("Skipping non-standard clip name: %s", clip_file)
                self.ctx.record_skip(SkipReason.BAD_NAME)
                continue
            if pattern is not None and not pattern.search(name.camera):
                log.debug("Filtered camera clip: %s of %s", name.camera, clip_file.name)
                self.ctx.record_skip(SkipReason.CAMERA_FILTERED)
                continue

            result = self.probe.probe(clip_file.resolve())
            if isinstance(result, ProbeFailure):
                log.info("    Ignored %s: %s", clip_file.name, result)
                self.ctx.record_skip(result.reason)
            else:
                record = ClipRecord.from_metadata(clip_file.resolve(), capture_time(day, name), result)
                log.info("    %s: %s", clip_file.name, record)
                self._groups.setdefault(name.camera, []).append(record)
                added += 1

            if self.ctx.cancelled:
                log.warning("Termination requested, stopping clip discovery in %s", date_dir.name)
                break

        log.info(
            "    Total %d camera(s) found on %s: %s",
            len(self._groups),
            date_dir.name,
            ", ".join(self.cameras()),
        )
        return added

    def groups(self) -> Dict[str, List[ClipRecord]]:
        # sorted() is stable, clips captured in the same second keep name order
        return {
            camera: sorted(self._groups[camera], key=lambda c: c.capture_time)
            for camera in self.cameras()
        }

    def clear(self) -> None:
        self._groups.clear()
