from __future__ import annotations

import logging
import signal
import threading
from typing import Dict, Iterable, Optional

from .supervisor import ServerSupervisor, SupervisedProcess

logger = logging.getLogger(__name__)


class ShutdownHandler:
    """Interrupt handler for the post-readiness wait.

    The handler body only stops the attached server and sets ``cancelled``;
    the orchestrator's ``wait()`` observes the token and returns. A lock that
    is acquired once and never released makes the body run at most once, so a
    second Ctrl+C (even one landing inside the first) is a no-op. After the
    first interrupt the signal stays ignored, also past ``restore()``, so the
    run can record its shutdown and exit 0.
    """

    def __init__(self, supervisor: ServerSupervisor, poll_sec: float = 0.5) -> None:
        self._supervisor = supervisor
        self._process: Optional[SupervisedProcess] = None
        self._fired = threading.Lock()
        self._previous: Dict[int, object] = {}
        self.poll_sec = max(0.05, float(poll_sec))
        self.cancelled = threading.Event()

    @property
    def fired(self) -> bool:
        return self._fired.locked()

    def attach(self, process: Optional[SupervisedProcess]) -> None:
        self._process = process

    def install(self, signals: Iterable[int] = (signal.SIGINT,)) -> None:
        for signum in signals:
            self._previous[int(signum)] = signal.signal(signum, self.handle)

    def restore(self) -> None:
        for signum, previous in self._previous.items():
            if self.fired:
                signal.signal(signum, signal.SIG_IGN)
            else:
                signal.signal(signum, previous)  # type: ignore[arg-type]
        self._previous.clear()

    def handle(self, signum: int = signal.SIGINT, frame: object = None) -> None:
        if not self._fired.acquire(blocking=False):
            return
        signal.signal(signum, signal.SIG_IGN)
        logger.info("Caught signal %s. Stopping QLever server...", signum)
        try:
            self._supervisor.stop(self._process)
        finally:
            logger.info("Exiting.")
            self.cancelled.set()

    def wait(self) -> None:
        while not self.cancelled.wait(self.poll_sec):
            pass
