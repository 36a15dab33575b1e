from __future__ import annotations

import logging
import signal
import sys
from typing import List

from .config import ConfigError, apply_locale, load_config, parse_args
from .executor import MergeError
from .orchestrator import RunStatus, run
from .state import RunContext

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_MERGE_FAILED = 1
EXIT_CONFIG = 2
EXIT_INCOMPLETE = 130


def _configure_logging(quiet: bool, verbose: bool) -> None:
    level = logging.WARNING if quiet else (logging.DEBUG if verbose else logging.INFO)
    logging.basicConfig(level=level, format="[%(asctime)s] %(levelname)s %(message)s", force=True)


def _install_interrupt_handler(ctx: RunContext) -> None:
    def _on_interrupt(signum, frame) -> None:  # noqa: ARG001
        if not ctx.cancel.cancelled:
            log.warning("Termination key detected. Cleaning up...")
        ctx.cancel.cancel()

    signal.signal(signal.SIGINT, _on_interrupt)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _on_interrupt)


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(bool(args.quiet), bool(args.verbose))
    try:
        cfg = load_config(args)
        apply_locale(cfg.locale)
    except ConfigError as exc:
        log.error("%s", exc)
        return EXIT_CONFIG
    _configure_logging(cfg.quiet, cfg.verbose)
    if cfg.locale:
        log.info("Using locale: %s", cfg.locale)

    ctx = RunContext(config=cfg)
    _install_interrupt_handler(ctx)
    try:
        result = run(ctx)
    except MergeError as exc:
        cause = exc.__cause__
        log.error("%s", exc)
        if cause is not None and getattr(cause, "stderr", ""):
            log.error("Encoder output:\n%s", cause.stderr.strip())
        return EXIT_MERGE_FAILED

    if result.status is RunStatus.INCOMPLETE:
        return EXIT_INCOMPLETE
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
