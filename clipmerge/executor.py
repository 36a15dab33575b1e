from __future__ import annotations

import logging
import shutil
import tempfile
from enum import Enum
from pathlib import Path
from typing import List

from . import ffmpeg
from .planner import MergePlan
from .records import ClipRecord
from .runner import CommandCancelled, CommandError, CommandRunner
from .state import RunContext
from .title import TitleRenderer

log = logging.getLogger(__name__)

WORKDIR_PREFIX = "_bcm-working-"
INTERMEDIATE_EXT = ".mkv"
MANIFEST_NAME = "_bcm-combine.txt"


class Stage(str, Enum):
    INIT = "init"
    TITLE = "title"
    NORMALIZE = "normalize"
    COMBINE = "combine"
    FINALIZE = "finalize"
    CLEANUP = "cleanup"


class MergeError(RuntimeError):
    def __init__(self, camera: str, stage: Stage, source: Path | None = None, detail: str = ""):
        self.camera = camera
        self.stage = stage
        self.source = source
        where = f" ({source.name})" if source is not None else ""
        message = f"Failed to merge clips for camera {camera} at {stage.value}{where}"
        super().__init__(f"{message}: {detail}" if detail else message)


class MergeCancelled(RuntimeError):
    def __init__(self, camera: str):
        self.camera = camera
        super().__init__(f"Merge cancelled for camera {camera}")


def _stem(index: int, clip: ClipRecord) -> str:
    return f"{index:04d}-{clip.capture_time:%y%m%d%H%M%S}"


class MergeExecutor:
    """
    Turn one MergePlan into a single output file.

    For every clip a title still is encoded to a short clip, the source is
    normalised when its size or audio differs from the group, and the two are
    concatenated. The combined clips are then copied (one clip) or
    concat-demuxed (several) into the output directory. All intermediates live
    in a private working directory that is removed however the merge ends.
    """

    def __init__(self, ctx: RunContext, runner: CommandRunner, renderer: TitleRenderer):
        self.ctx = ctx
        self.runner = runner
        self.renderer = renderer
        self.stage = Stage.INIT
        self._current_source: Path | None = None

    @property
    def output_dir(self) -> Path:
        return self.ctx.config.output_dir

    def merge(self, plan: MergePlan) -> Path:
        self.stage = Stage.INIT
        self._current_source = None
        output_path = self.output_dir / plan.output_name
        if output_path.exists() and not self.ctx.config.overwrite:
            raise MergeError(plan.camera, Stage.INIT, detail=f"output exists: {output_path} (use --overwrite)")

        log.info(
            "  Preparing intermediate clips for camera %s: %d file(s) with%s audio",
            plan.camera,
            len(plan.clips),
            "" if plan.use_audio else "out",
        )
        workdir: Path | None = None
        try:
            workdir = Path(tempfile.mkdtemp(prefix=WORKDIR_PREFIX, dir=self.output_dir))
            combined: List[str] = []
            for index, clip in enumerate(plan.clips):
                if self.ctx.cancelled:
                    raise MergeCancelled(plan.camera)
                combined.append(self._process_clip(plan, index, clip, workdir))
            self._finalize(plan, combined, workdir, output_path)
        except CommandCancelled as exc:
            raise MergeCancelled(plan.camera) from exc
        except CommandError as exc:
            raise MergeError(plan.camera, self.stage, self._current_source, str(exc)) from exc
        except OSError as exc:
            raise MergeError(plan.camera, self.stage, self._current_source, str(exc)) from exc
        finally:
            self.stage = Stage.CLEANUP
            if workdir is not None:
                shutil.rmtree(workdir, ignore_errors=True)

        log.info("      Video merged: %s", plan.output_name)
        return output_path

    def _run(self, cmd: List[str], workdir: Path) -> None:
        self.runner.run(cmd, cwd=workdir)

    def _process_clip(self, plan: MergePlan, index: int, clip: ClipRecord, workdir: Path) -> str:
        cfg = self.ctx.config
        stem = _stem(index, clip)
        self._current_source = clip.path

        self.stage = Stage.TITLE
        log.info("    Creating title clip for %s", clip.path.name)
        title_image = f"_bcm-title-{stem}.png"
        title_clip = f"_bcm-title-{stem}{INTERMEDIATE_EXT}"
        self.renderer.write(workdir / title_image, plan.camera, clip.capture_time, plan.width, plan.height)
        self._run(
            ffmpeg.title_clip_command(cfg.encoder, title_image, title_clip, cfg.title.duration, plan.use_audio),
            workdir,
        )

        source: str = str(clip.path)
        need_silence = plan.needs_silence(clip)
        need_resize = plan.needs_resize(clip)
        if need_silence or need_resize:
            self.stage = Stage.NORMALIZE
            log.info(
                "      Extra processing on source clip: silent=%s,resize=%s",
                "y" if need_silence else "n",
                "y" if need_resize else "n",
            )
            normalized = f"_bcm-source-{stem}{INTERMEDIATE_EXT}"
            self._run(
                ffmpeg.normalize_command(
                    cfg.encoder,
                    source,
                    normalized,
                    width=plan.width,
                    height=plan.height,
                    need_resize=need_resize,
                    need_silence=need_silence,
                    has_audio=clip.has_audio,
                ),
                workdir,
            )
            source = normalized

        self.stage = Stage.COMBINE
        combined = f"_bcm-combined-{stem}{INTERMEDIATE_EXT}"
        log.info("      Combining title with source clip: %s", combined)
        self._run(ffmpeg.combine_command(cfg.encoder, title_clip, source, combined, plan.use_audio), workdir)
        return combined

    def _finalize(self, plan: MergePlan, combined: List[str], workdir: Path, output_path: Path) -> None:
        cfg = self.ctx.config
        self.stage = Stage.FINALIZE
        self._current_source = None
        if len(combined) == 1:
            log.info("    Transcode the single clip as merged clip: %s", plan.output_name)
            cmd = ffmpeg.transcode_command(cfg.encoder.ffmpeg, combined[0], output_path.resolve(), cfg.overwrite)
        else:
            (workdir / MANIFEST_NAME).write_text(ffmpeg.manifest_text(combined), encoding="utf-8")
            log.info("    Merging %d file(s) to %s", len(combined), plan.output_name)
            cmd = ffmpeg.concat_command(cfg.encoder.ffmpeg, MANIFEST_NAME, output_path.resolve(), cfg.overwrite)
        self._run(cmd, workdir)
