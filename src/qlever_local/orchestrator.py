from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

from .artifacts import IndexArtifactSet, verify_index_artifacts
from .config import LauncherSettings
from .control_config import check_control_config
from .endpoint import ServiceEndpoint
from .errors import BuildFailure, LauncherError, ReadinessFailure
from .index_builder import build_index, ensure_control_checkout, write_sample_dataset
from .ports import PortConflictResolver, PsutilPortProbe
from .readiness import EXPECTED_RESPONSE_SHAPE, ReadinessProbe, ReadinessResult
from .shutdown import ShutdownHandler
from .supervisor import ServerSupervisor, SupervisedProcess, read_log

logger = logging.getLogger(__name__)


class LauncherState(str, Enum):
    BUILDING_INDEX = "building_index"
    INDEX_VERIFIED = "index_verified"
    PORT_CLEARED = "port_cleared"
    SERVER_STARTED = "server_started"
    READY = "ready"
    WAITING = "waiting"
    SHUT_DOWN = "shut_down"
    FAILED = "failed"


TRANSITIONS: Dict[Optional[LauncherState], set] = {
    None: {LauncherState.BUILDING_INDEX, LauncherState.FAILED},
    LauncherState.BUILDING_INDEX: {LauncherState.INDEX_VERIFIED, LauncherState.FAILED},
    LauncherState.INDEX_VERIFIED: {LauncherState.PORT_CLEARED, LauncherState.FAILED},
    LauncherState.PORT_CLEARED: {LauncherState.SERVER_STARTED, LauncherState.FAILED},
    LauncherState.SERVER_STARTED: {LauncherState.READY, LauncherState.FAILED},
    LauncherState.READY: {LauncherState.WAITING, LauncherState.FAILED},
    LauncherState.WAITING: {LauncherState.SHUT_DOWN, LauncherState.FAILED},
    LauncherState.SHUT_DOWN: set(),
    LauncherState.FAILED: set(),
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class LauncherContext:
    settings: LauncherSettings
    endpoint: ServiceEndpoint
    run_id: str = field(default_factory=lambda: f"RUN-{datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')}")
    state: Optional[LauncherState] = None
    history: List[Dict[str, str]] = field(default_factory=list)
    process: Optional[SupervisedProcess] = None
    artifacts: Optional[IndexArtifactSet] = None
    readiness: Optional[ReadinessResult] = None
    control_check: Dict[str, Any] = field(default_factory=dict)
    error: str = ""

    def transition(self, state: LauncherState) -> None:
        if state not in TRANSITIONS[self.state]:
            current = self.state.value if self.state else "start"
            raise ValueError(f"illegal launcher transition: {current} -> {state.value}")
        self.state = state
        self.history.append({"state": state.value, "at_utc": utc_now_iso()})
        logger.debug("launcher state -> %s", state.value)

    def as_status(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.state.value if self.state else "pending",
            "endpoint": self.endpoint.query_endpoint,
            "index_basename": str(self.settings.index_basename),
            "log_file": str(self.settings.log_file),
            "process": self.process.as_dict() if self.process else None,
            "artifacts": self.artifacts.as_dict() if self.artifacts else None,
            "readiness": self.readiness.as_dict() if self.readiness else None,
            "control_check": self.control_check,
            "history": list(self.history),
            "error": self.error,
            "updated_at_utc": utc_now_iso(),
        }


class LocalServiceOrchestrator:
    """Build the index, start QLever, prove it answers a query, then wait for Ctrl+C.

    ``run()`` returns the process exit status: 0 after a clean interrupt in
    the wait state, 1 on any launcher failure. A started server is always
    stopped before ``run()`` returns or raises, except in the success path
    where the interrupt handler has already stopped it.
    """

    def __init__(
        self,
        settings: LauncherSettings,
        *,
        supervisor: Optional[ServerSupervisor] = None,
        port_resolver: Optional[PortConflictResolver] = None,
        readiness_probe: Optional[ReadinessProbe] = None,
        shutdown: Optional[ShutdownHandler] = None,
        build: bool = True,
        write_sample: bool = True,
        clone_control: bool = True,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
    ) -> None:
        self.settings = settings
        self.supervisor = supervisor or ServerSupervisor(
            settings.server_bin,
            grace_sec=settings.grace_sec,
            stop_timeout_sec=settings.stop_timeout_sec,
        )
        self.port_resolver = port_resolver or PortConflictResolver(
            PsutilPortProbe(host=settings.host),
            settle_delay_sec=settings.port_settle_sec,
        )
        self.readiness_probe = readiness_probe or ReadinessProbe(timeout_sec=settings.probe_timeout_sec)
        self.shutdown = shutdown or ShutdownHandler(self.supervisor)
        self.build = build
        self.write_sample = write_sample
        self.clone_control = clone_control
        self.out = out or sys.stdout
        self.err = err or sys.stderr
        self.context = LauncherContext(settings=settings, endpoint=ServiceEndpoint.from_settings(settings))

    def _write_status(self) -> None:
        path = Path(self.settings.status_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(self.context.as_status(), f, ensure_ascii=True, indent=2)

    def _build_index(self) -> None:
        settings = self.settings
        if self.clone_control:
            ensure_control_checkout(settings.control_dir, settings.control_repo_url)
        if not self.build:
            logger.info("Skipping index build; reusing %s", settings.index_basename)
            return
        if self.write_sample:
            write_sample_dataset(settings.input_file)
        elif not Path(settings.input_file).exists():
            raise BuildFailure(f"Input dataset not found: {settings.input_file}")
        build_index(settings.index_builder_bin, settings.index_basename, settings.input_file)

    def _check_readiness(self) -> None:
        result = self.readiness_probe.check(self.context.endpoint)
        self.context.readiness = result
        if not result.succeeded:
            raise ReadinessFailure(f"Query failed: {result.error or 'unexpected response'}")
        logger.info("QLever responded successfully to test query")

    def _print_instructions(self) -> None:
        url = self.readiness_probe.url_for(self.context.endpoint)
        lines = [
            "",
            "Expected structure (JSON):",
            EXPECTED_RESPONSE_SHAPE,
            "",
            "You can now test in your browser:",
            f"   {url}",
            "",
            "Or use curl:",
            f"   curl '{url}'",
            "",
            "Waiting... Press Ctrl+C to stop the QLever server.",
        ]
        print("\n".join(lines), file=self.out, flush=True)

    def _dump_log(self, exc: LauncherError) -> None:
        log_text = exc.log_text or read_log(self.context.process)
        if not log_text:
            return
        print("Log output:", file=self.err)
        print(log_text.rstrip("\n"), file=self.err, flush=True)

    def _fail(self, exc: BaseException) -> None:
        ctx = self.context
        ctx.error = str(exc)
        if ctx.state not in (LauncherState.FAILED, LauncherState.SHUT_DOWN):
            ctx.transition(LauncherState.FAILED)
        self.supervisor.stop(ctx.process)
        self._write_status()

    def _run_stages(self) -> int:
        ctx = self.context
        settings = self.settings

        ctx.transition(LauncherState.BUILDING_INDEX)
        self._build_index()
        ctx.artifacts = verify_index_artifacts(settings.index_basename)
        ctx.transition(LauncherState.INDEX_VERIFIED)

        self.port_resolver.resolve(ctx.endpoint.port, str(settings.server_bin))
        ctx.transition(LauncherState.PORT_CLEARED)

        ctx.process = self.supervisor.start(ctx.endpoint, settings.index_basename, settings.log_file)
        self.shutdown.attach(ctx.process)
        ctx.transition(LauncherState.SERVER_STARTED)

        self._check_readiness()
        ctx.transition(LauncherState.READY)

        ctx.control_check = check_control_config(settings.control_query_script, ctx.endpoint)
        self._print_instructions()

        self.shutdown.install()
        try:
            ctx.transition(LauncherState.WAITING)
            self._write_status()
            self.shutdown.wait()
        finally:
            self.shutdown.restore()

        ctx.transition(LauncherState.SHUT_DOWN)
        self._write_status()
        return 0

    def run(self) -> int:
        try:
            return self._run_stages()
        except LauncherError as exc:
            logger.error("%s", exc)
            self._dump_log(exc)
            self._fail(exc)
            return exc.exit_code
        except BaseException as exc:
            self._fail(exc)
            raise


def run_local_service(settings: LauncherSettings, **kwargs: Any) -> int:
    return LocalServiceOrchestrator(settings, **kwargs).run()
