from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Union

from .endpoint import ServiceEndpoint
from .errors import StartupFailure

logger = logging.getLogger(__name__)


@dataclass
class SupervisedProcess:
    process: Optional[subprocess.Popen]
    command: List[str]
    log_path: Path
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None

    def is_alive(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def as_dict(self) -> dict:
        return {
            "pid": self.pid,
            "command": " ".join(self.command),
            "log_path": str(self.log_path),
            "started_at_utc": self.started_at.isoformat(),
            "alive": self.is_alive(),
        }


def read_log(source: Union[SupervisedProcess, Path, str, None]) -> str:
    if source is None:
        return ""
    path = source.log_path if isinstance(source, SupervisedProcess) else Path(source)
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""


class ServerSupervisor:
    """Launches one QLever server detached from the terminal and stops it on request.

    Liveness is checked exactly once, ``grace_sec`` after launch, and only
    means "the process has not exited". Whether the server answers queries is
    the readiness probe's job.
    """

    def __init__(
        self,
        server_bin: Path,
        *,
        grace_sec: float = 2.0,
        stop_timeout_sec: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.server_bin = Path(server_bin)
        self.grace_sec = max(0.0, float(grace_sec))
        self.stop_timeout_sec = max(0.1, float(stop_timeout_sec))
        self._sleep = sleep

    def build_command(self, endpoint: ServiceEndpoint, index_basename: Path) -> List[str]:
        return [
            str(self.server_bin),
            "--index-basename",
            str(index_basename),
            "--port",
            str(endpoint.port),
        ]

    def start(self, endpoint: ServiceEndpoint, index_basename: Path, log_path: Path) -> SupervisedProcess:
        command = self.build_command(endpoint, index_basename)
        log_path = Path(log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info("Starting QLever server on port %s", endpoint.port)
        with log_path.open("wb") as log_file:
            try:
                process = subprocess.Popen(
                    command,
                    stdin=subprocess.DEVNULL,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
            except OSError as exc:
                raise StartupFailure(f"QLever server failed to launch: {exc}") from exc

        supervised = SupervisedProcess(process=process, command=command, log_path=log_path)
        try:
            self._sleep(self.grace_sec)
        except BaseException:
            # Interrupted before the caller holds the handle.
            self.stop(supervised)
            raise

        if not supervised.is_alive():
            log_text = read_log(supervised)
            logger.error("QLever server exited with code %s during startup", process.returncode)
            raise StartupFailure(
                f"QLever server failed to start (exit code {process.returncode})",
                log_text=log_text,
            )

        logger.info("QLever server running (PID %s)", supervised.pid)
        return supervised

    def stop(self, supervised: Optional[SupervisedProcess]) -> bool:
        if supervised is None or supervised.process is None:
            return False
        process = supervised.process
        if process.poll() is not None:
            return False

        try:
            process.terminate()
        except ProcessLookupError:
            return False
        try:
            process.wait(timeout=self.stop_timeout_sec)
        except subprocess.TimeoutExpired:
            logger.warning("QLever server (PID %s) ignored SIGTERM; killing", process.pid)
            try:
                process.kill()
            except ProcessLookupError:
                return True
            try:
                process.wait(timeout=self.stop_timeout_sec)
            except subprocess.TimeoutExpired:
                logger.warning("QLever server (PID %s) did not exit after SIGKILL", process.pid)
                return True
        logger.info("QLever server (PID %s) stopped", process.pid)
        return True
