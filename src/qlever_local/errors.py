from __future__ import annotations


class LauncherError(RuntimeError):
    """Terminal failure of a launcher run. ``log_text`` holds captured process output."""

    exit_code = 1

    def __init__(self, message: str, *, log_text: str = "") -> None:
        super().__init__(message)
        self.log_text = log_text


class BuildFailure(LauncherError):
    pass


class PortConflict(LauncherError):
    """Target port held by another process.

    Reserved for callers that want to treat a busy port as fatal;
    ``PortConflictResolver`` logs the conflict and clears it instead.
    """


class StartupFailure(LauncherError):
    pass


class ReadinessFailure(LauncherError):
    pass
