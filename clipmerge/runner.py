from __future__ import annotations

import logging
import shlex
import subprocess
import time
from pathlib import Path
from typing import Sequence

from .state import CancelToken

log = logging.getLogger(__name__)

POLL_INTERVAL = 0.2
STDERR_TAIL_LINES = 20


class CommandError(RuntimeError):
    def __init__(self, cmd: Sequence[str], returncode: int | None, stderr: str = "", status: str | None = None):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        tail = "\n".join(stderr.strip().splitlines()[-STDERR_TAIL_LINES:])
        if status is None:
            status = "could not start" if returncode is None else f"exited with {returncode}"
        message = f"{Path(self.cmd[0]).name} {status}"
        super().__init__(f"{message}: {tail}" if tail else message)


class CommandTimeout(CommandError):
    def __init__(self, cmd: Sequence[str], timeout: float):
        self.timeout = timeout
        super().__init__(cmd, None, status=f"timed out after {timeout:g}s")


class CommandCancelled(RuntimeError):
    pass


class CommandRunner:
    """
    Run external commands one at a time, honouring a cancellation token.

    The process is polled while it runs; when the token is set it is
    terminated (then killed if it does not exit) and ``CommandCancelled`` is
    raised. Output is captured as text and stdout is returned.
    """

    def __init__(self, cancel: CancelToken | None = None, poll_interval: float = POLL_INTERVAL):
        self.cancel = cancel or CancelToken()
        self.poll_interval = poll_interval

    def run(self, cmd: Sequence[str], cwd: Path | None = None, timeout: float | None = None) -> str:
        if self.cancel.cancelled:
            raise CommandCancelled(f"cancelled before start: {cmd[0]}")
        log.debug("Running: %s", shlex.join(str(c) for c in cmd))
        try:
            proc = subprocess.Popen(
                [str(c) for c in cmd],
                cwd=str(cwd) if cwd else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                # keep terminal Ctrl+C away from the child; the token stops it
                start_new_session=True,
            )
        except OSError as exc:
            raise CommandError(cmd, None, str(exc)) from exc

        deadline = time.monotonic() + timeout if timeout else None
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                pass
            if self.cancel.cancelled:
                self._stop(proc)
                raise CommandCancelled(f"cancelled while running: {cmd[0]}")
            if deadline is not None and time.monotonic() >= deadline:
                proc.kill()
                proc.communicate()
                raise CommandTimeout(cmd, timeout)

        # a child killed by the same interrupt exits non-zero before the next poll
        if self.cancel.cancelled:
            raise CommandCancelled(f"cancelled while running: {cmd[0]}")
        if proc.returncode != 0:
            raise CommandError(cmd, proc.returncode, stderr or "")
        return stdout or ""

    @staticmethod
    def _stop(proc: subprocess.Popen) -> None:
        proc.terminate()
        try:
            proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()
