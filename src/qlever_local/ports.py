from __future__ import annotations

import logging
import os
import socket
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import psutil


logger = logging.getLogger(__name__)


class PortProbe(ABC):
    """Process-table and socket lookups the conflict resolver depends on."""

    @abstractmethod
    def is_listening(self, port: int) -> bool:
        ...

    @abstractmethod
    def find_listener(self, port: int) -> Optional[int]:
        ...

    @abstractmethod
    def find_processes(self, pattern: str) -> List[int]:
        ...

    @abstractmethod
    def terminate(self, pid: int) -> bool:
        ...


class PsutilPortProbe(PortProbe):
    def __init__(self, host: str = "localhost", connect_timeout_sec: float = 1.0) -> None:
        self.host = host
        self.connect_timeout_sec = connect_timeout_sec

    def _listeners(self, port: int) -> Optional[list]:
        try:
            connections = psutil.net_connections(kind="inet")
        except (psutil.AccessDenied, PermissionError):
            # macOS refuses the connection table to unprivileged users.
            return None
        return [
            conn
            for conn in connections
            if conn.status == psutil.CONN_LISTEN and conn.laddr and conn.laddr.port == int(port)
        ]

    def _connectable(self, port: int) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.settimeout(self.connect_timeout_sec)
            return s.connect_ex((self.host, int(port))) == 0

    def is_listening(self, port: int) -> bool:
        listeners = self._listeners(port)
        if listeners is None:
            return self._connectable(port)
        return bool(listeners)

    def find_listener(self, port: int) -> Optional[int]:
        for conn in self._listeners(port) or []:
            if conn.pid:
                return int(conn.pid)
        return None

    def find_processes(self, pattern: str) -> List[int]:
        pattern = str(pattern or "").strip()
        if not pattern:
            return []
        pids: List[int] = []
        for proc in psutil.process_iter(["pid", "cmdline"]):
            # cmdline is None when access to the process is denied.
            cmdline = " ".join(proc.info.get("cmdline") or [])
            if pattern in cmdline and proc.pid != os.getpid():
                pids.append(int(proc.pid))
        return pids

    def terminate(self, pid: int) -> bool:
        try:
            psutil.Process(int(pid)).terminate()
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            logger.warning("Not allowed to terminate process %s", pid)
            return False
        return True


class PortConflictResolver:
    """Clears the target port of earlier server instances, once per run."""

    def __init__(
        self,
        probe: Optional[PortProbe] = None,
        *,
        settle_delay_sec: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.probe = probe or PsutilPortProbe()
        self.settle_delay_sec = max(0.0, float(settle_delay_sec))
        self._sleep = sleep

    def resolve(self, port: int, server_bin: str) -> List[int]:
        logger.info("Checking for existing QLever server on port %s", port)
        if not self.probe.is_listening(port):
            return []

        listener = self.probe.find_listener(port)
        logger.warning(
            "port %s already bound%s; killing existing QLever process",
            port,
            f" by pid {listener}" if listener else "",
        )

        signalled: List[int] = []
        for pid in self.probe.find_processes(str(server_bin)):
            if self.probe.terminate(pid):
                signalled.append(pid)
        if not signalled:
            logger.warning("No process matching %s was terminated", server_bin)

        self._sleep(self.settle_delay_sec)
        return signalled
