from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, Tuple

from .catalog import ClipCatalog
from .executor import MergeCancelled, MergeExecutor
from .naming import parse_date_dir, parse_month_dir
from .planner import plan_group
from .probe import MetadataProbe
from .runner import CommandCancelled, CommandRunner
from .state import RunContext
from .title import TitleRenderer

log = logging.getLogger(__name__)


class RunStatus(str, Enum):
    SUCCESS = "success"
    INCOMPLETE = "incomplete"


@dataclass
class RunResult:
    status: RunStatus
    merged: int
    skipped: Dict[str, int] = field(default_factory=dict)


class _Stop(Exception):
    pass


def _month_end(month: date) -> date:
    if month.month == 12:
        return date(month.year + 1, 1, 1)
    return date(month.year, month.month + 1, 1)


def iter_month_dirs(root: Path) -> Iterator[Tuple[Path, date]]:
    for path in sorted(p for p in root.iterdir() if p.is_dir()):
        month = parse_month_dir(path.name)
        if month is None:
            log.debug("Skipping non-standard month directory: %s", path)
            continue
        yield path, month


def iter_date_dirs(month_dir: Path) -> Iterator[Tuple[Path, date]]:
    for path in sorted(p for p in month_dir.iterdir() if p.is_dir()):
        day = parse_date_dir(path.name)
        if day is None:
            log.debug("Skipping non-standard date directory: %s", path)
            continue
        yield path, day


class Orchestrator:
    def __init__(self, ctx: RunContext, probe: MetadataProbe, executor: MergeExecutor):
        self.ctx = ctx
        self.catalog = ClipCatalog(ctx, probe)
        self.executor = executor

    def _month_in_range(self, month: date) -> bool:
        filters = self.ctx.config.filters
        if filters.end_date is not None and month > filters.end_date:
            return False
        if filters.start_date is not None and _month_end(month) <= filters.start_date:
            return False
        return True

    def _check_cancel(self) -> None:
        if self.ctx.cancelled:
            raise _Stop()

    def _merge_catalog(self) -> None:
        cfg = self.ctx.config
        groups = self.catalog.groups()
        self.catalog.clear()
        for camera, clips in groups.items():
            self._check_cancel()
            plan = plan_group(camera, clips, cfg.name_template)
            try:
                self.executor.merge(plan)
            except MergeCancelled as exc:
                raise _Stop() from exc
            self.ctx.record_merge()

    def run(self) -> RunResult:
        cfg = self.ctx.config
        status = RunStatus.SUCCESS
        try:
            for month_dir, month in iter_month_dirs(cfg.input_dir):
                if not self._month_in_range(month):
                    log.debug("Month %s outside the date filter", month_dir.name)
                    continue
                log.info("Processing month directory: %s", month_dir.name)
                for date_dir, day in iter_date_dirs(month_dir):
                    if not self.catalog.accepts_date(day):
                        log.debug("Date %s outside the date filter", date_dir.name)
                        continue
                    try:
                        self.catalog.discover(date_dir, day)
                    except CommandCancelled as exc:
                        raise _Stop() from exc
                    self._check_cancel()
                    if not cfg.group_by_month:
                        self._merge_catalog()
                        self._check_cancel()
                if cfg.group_by_month:
                    self._merge_catalog()
                    self._check_cancel()
        except _Stop:
            status = RunStatus.INCOMPLETE
            self.catalog.clear()

        result = RunResult(status=status, merged=self.ctx.merged, skipped=dict(self.ctx.skipped))
        if status is RunStatus.SUCCESS:
            log.info("Finished! Total %d file(s) generated.", result.merged)
        else:
            log.warning("Terminated before completion; %d file(s) generated.", result.merged)
        if result.skipped:
            log.info("Skipped clips: %s", ", ".join(f"{k}={v}" for k, v in sorted(result.skipped.items())))
        return result


def run(
    ctx: RunContext,
    probe: MetadataProbe | None = None,
    executor: MergeExecutor | None = None,
) -> RunResult:
    cfg = ctx.config
    runner = CommandRunner(ctx.cancel)
    if probe is None:
        probe = MetadataProbe(runner, cfg.encoder, cfg.filters.min_duration)
    if executor is None:
        executor = MergeExecutor(ctx, runner, TitleRenderer.from_config(cfg.title))
    return Orchestrator(ctx, probe, executor).run()
