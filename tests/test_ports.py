from __future__ import annotations

import sys
import unittest
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import patch

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import psutil

from qlever_local.ports import PortConflictResolver, PortProbe, PsutilPortProbe


class _FakeProbe(PortProbe):
    def __init__(self, listening: bool, processes: Dict[int, str], listener: Optional[int] = None) -> None:
        self.listening = listening
        self.processes = dict(processes)
        self.listener = listener
        self.terminated: List[int] = []

    def is_listening(self, port: int) -> bool:
        return self.listening

    def find_listener(self, port: int) -> Optional[int]:
        return self.listener

    def find_processes(self, pattern: str) -> List[int]:
        return [pid for pid, cmdline in self.processes.items() if pattern in cmdline]

    def terminate(self, pid: int) -> bool:
        if pid not in self.processes:
            return False
        self.terminated.append(pid)
        self.processes.pop(pid)
        self.listening = False
        return True


class TestPortConflictResolver(unittest.TestCase):
    def test_free_port_is_noop(self) -> None:
        sleeps: List[float] = []
        probe = _FakeProbe(listening=False, processes={101: "/opt/qlever/build/ServerMain --port 7000"})
        resolver = PortConflictResolver(probe, settle_delay_sec=2.0, sleep=sleeps.append)

        self.assertEqual(resolver.resolve(7000, "/opt/qlever/build/ServerMain"), [])
        self.assertEqual(probe.terminated, [])
        self.assertEqual(sleeps, [])

    def test_bound_port_terminates_matching_servers_and_waits(self) -> None:
        sleeps: List[float] = []
        probe = _FakeProbe(
            listening=True,
            listener=101,
            processes={
                101: "/opt/qlever/build/ServerMain --index-basename data/index --port 7000",
                102: "/usr/bin/python3 unrelated.py",
            },
        )
        resolver = PortConflictResolver(probe, settle_delay_sec=2.0, sleep=sleeps.append)

        signalled = resolver.resolve(7000, "/opt/qlever/build/ServerMain")
        self.assertEqual(signalled, [101])
        self.assertEqual(probe.terminated, [101])
        self.assertIn(102, probe.processes)
        self.assertEqual(sleeps, [2.0])

    def test_conflict_is_logged_with_listener_pid(self) -> None:
        fake = _FakeProbe(
            listening=True,
            listener=101,
            processes={101: "/opt/qlever/build/ServerMain --port 7000"},
        )
        resolver = PortConflictResolver(fake, settle_delay_sec=0.0, sleep=lambda _: None)

        with self.assertLogs("qlever_local.ports", level="WARNING") as logs:
            resolver.resolve(7000, "/opt/qlever/build/ServerMain")
        self.assertIn("port 7000 already bound by pid 101; killing existing QLever process", "\n".join(logs.output))

    def test_foreign_listener_is_left_alone_after_single_attempt(self) -> None:
        sleeps: List[float] = []
        probe = _FakeProbe(listening=True, listener=555, processes={555: "nginx: master process"})
        resolver = PortConflictResolver(probe, settle_delay_sec=1.5, sleep=sleeps.append)

        self.assertEqual(resolver.resolve(7000, "/opt/qlever/build/ServerMain"), [])
        self.assertEqual(probe.terminated, [])
        self.assertEqual(sleeps, [1.5])


class TestPsutilPortProbe(unittest.TestCase):
    @patch("qlever_local.ports.psutil.net_connections")
    def test_access_denied_falls_back_to_connect(self, mock_connections) -> None:
        mock_connections.side_effect = psutil.AccessDenied()
        probe = PsutilPortProbe()
        with patch.object(PsutilPortProbe, "_connectable", return_value=True) as mock_connect:
            self.assertTrue(probe.is_listening(7000))
            mock_connect.assert_called_once_with(7000)
        self.assertIsNone(probe.find_listener(7000))

    def test_terminate_missing_process_returns_false(self) -> None:
        probe = PsutilPortProbe()
        with patch("qlever_local.ports.psutil.Process", side_effect=psutil.NoSuchProcess(999999)):
            self.assertFalse(probe.terminate(999999))

    def test_empty_pattern_matches_nothing(self) -> None:
        self.assertEqual(PsutilPortProbe().find_processes(""), [])


if __name__ == "__main__":
    unittest.main()
