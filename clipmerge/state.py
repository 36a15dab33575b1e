from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass, field

from .config import Config
from .records import SkipReason


class CancelToken:
    """Cooperative cancellation flag shared by the traversal and the process runner."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        return self._event.wait(timeout)


@dataclass
class RunContext:
    config: Config
    cancel: CancelToken = field(default_factory=CancelToken)
    merged: int = 0
    skipped: Counter = field(default_factory=Counter)

    @property
    def quiet(self) -> bool:
        return self.config.quiet

    @property
    def cancelled(self) -> bool:
        return self.cancel.cancelled

    def record_merge(self) -> None:
        self.merged += 1

    def record_skip(self, reason: SkipReason) -> None:
        self.skipped[reason.value] += 1
