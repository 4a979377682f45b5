from __future__ import annotations

import math
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[2]
QLEVER_DIR = PROJECT_ROOT / "qlever"
CONTROL_DIR = PROJECT_ROOT / "qlever-control"
DATA_DIR = PROJECT_ROOT / "data"
OUTPUT_DIR = DATA_DIR / "output"

INDEX_DIR = DATA_DIR / "minimal-index"
TTL_PATH = DATA_DIR / "minimal.ttl"
INDEX_BASENAME = INDEX_DIR / "index"
LOG_PATH = PROJECT_ROOT / "qlever.log"
LAUNCHER_STATUS_PATH = OUTPUT_DIR / "launcher_status.json"

SERVER_BIN_NAME = "ServerMain"
INDEX_BUILDER_BIN_NAME = "IndexBuilderMain"
CONTROL_QUERY_SCRIPT_NAME = "qlever-query.sh"
CONTROL_REPO_URL = "https://github.com/ad-freiburg/qlever-control.git"

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 7000
DEFAULT_QUERY_PATH = "/query"
DEFAULT_GRACE_SEC = 2.0
DEFAULT_PORT_SETTLE_SEC = 2.0
DEFAULT_PROBE_TIMEOUT_SEC = 10.0
DEFAULT_STOP_TIMEOUT_SEC = 5.0

ENV_PREFIX = "QLEVER_"

PROBE_QUERY = "SELECT ?s WHERE { ?s ?p ?o } LIMIT 1"


@dataclass(frozen=True)
class LauncherSettings:
    qlever_dir: Path = QLEVER_DIR
    control_dir: Path = CONTROL_DIR
    data_dir: Path = DATA_DIR
    input_file: Path = TTL_PATH
    index_dir: Path = INDEX_DIR
    log_file: Path = LOG_PATH
    status_path: Path = LAUNCHER_STATUS_PATH
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    query_path: str = DEFAULT_QUERY_PATH
    grace_sec: float = DEFAULT_GRACE_SEC
    port_settle_sec: float = DEFAULT_PORT_SETTLE_SEC
    probe_timeout_sec: float = DEFAULT_PROBE_TIMEOUT_SEC
    stop_timeout_sec: float = DEFAULT_STOP_TIMEOUT_SEC
    control_repo_url: str = CONTROL_REPO_URL
    server_bin_path: Optional[Path] = None
    index_builder_bin_path: Optional[Path] = None

    @property
    def index_basename(self) -> Path:
        return self.index_dir / "index"

    @property
    def server_bin(self) -> Path:
        return self.server_bin_path or self.qlever_dir / "build" / SERVER_BIN_NAME

    @property
    def index_builder_bin(self) -> Path:
        return self.index_builder_bin_path or self.qlever_dir / "build" / INDEX_BUILDER_BIN_NAME

    @property
    def control_query_script(self) -> Path:
        return self.control_dir / CONTROL_QUERY_SCRIPT_NAME


_PATH_KEYS = {
    "qlever_dir",
    "control_dir",
    "data_dir",
    "input_file",
    "index_dir",
    "log_file",
    "status_path",
    "server_bin_path",
    "index_builder_bin_path",
}
_FLOAT_KEYS = {
    "grace_sec": 0.0,
    "port_settle_sec": 0.0,
    "probe_timeout_sec": 0.5,
    "stop_timeout_sec": 0.1,
}
_STR_KEYS = {"host", "query_path", "control_repo_url"}

# Paths that live under data_dir unless configured on their own.
_DATA_DIR_PATHS = {
    "input_file": Path("minimal.ttl"),
    "index_dir": Path("minimal-index"),
    "status_path": Path("output") / "launcher_status.json",
}


def _safe_float(value: object, *, default: float, minimum: float) -> float:
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return max(minimum, default)
    if not math.isfinite(parsed):
        return max(minimum, default)
    return max(minimum, parsed)


def _safe_port(value: object, default: int) -> int:
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    if port < 1 or port > 65535:
        return default
    return port


def _load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        payload = yaml.safe_load(f)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError(f"launcher config format invalid: expected a mapping in {path}")
    launcher = payload.get("launcher", payload)
    if not isinstance(launcher, dict):
        raise ValueError(f"launcher config format invalid: `launcher` must be a mapping in {path}")
    return launcher


def _env_values(environ: Mapping[str, str]) -> Dict[str, str]:
    values: Dict[str, str] = {}
    keys = _PATH_KEYS | set(_FLOAT_KEYS) | _STR_KEYS | {"port"}
    for key in keys:
        raw = str(environ.get(f"{ENV_PREFIX}{key.upper()}", "") or "").strip()
        if raw:
            values[key] = raw
    return values


def _apply(settings: LauncherSettings, values: Mapping[str, Any], explicit: Optional[set] = None) -> LauncherSettings:
    changes: Dict[str, Any] = {}
    for key, value in values.items():
        if value is None:
            continue
        if key in _PATH_KEYS:
            raw = str(value).strip()
            if raw:
                path = Path(raw).expanduser()
                changes[key] = path if path.is_absolute() else PROJECT_ROOT / path
        elif key in _FLOAT_KEYS:
            changes[key] = _safe_float(value, default=getattr(settings, key), minimum=_FLOAT_KEYS[key])
        elif key == "port":
            changes[key] = _safe_port(value, settings.port)
        elif key in _STR_KEYS:
            raw = str(value).strip()
            if raw:
                changes[key] = raw
    if explicit is not None:
        explicit.update(changes)
    return replace(settings, **changes)


def _derive_data_paths(settings: LauncherSettings, explicit: set) -> LauncherSettings:
    if "data_dir" not in explicit:
        return settings
    changes = {key: settings.data_dir / rel for key, rel in _DATA_DIR_PATHS.items() if key not in explicit}
    return replace(settings, **changes)


def load_settings(
    config_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> LauncherSettings:
    """Resolve launcher settings.

    Precedence, lowest first: built-in defaults, the YAML file at
    ``config_path`` (either top-level keys or a ``launcher:`` mapping),
    ``QLEVER_*`` environment variables, then ``overrides``. Unparseable
    numbers fall back to the previous layer's value. When ``data_dir`` is
    set, ``input_file``, ``index_dir`` and ``status_path`` follow it unless
    one of the layers sets them directly.
    """
    explicit: set = set()
    settings = LauncherSettings()
    if config_path is not None:
        settings = _apply(settings, _load_yaml(Path(config_path)), explicit)
    settings = _apply(settings, _env_values(os.environ if environ is None else environ), explicit)
    if overrides:
        settings = _apply(settings, overrides, explicit)
    return _derive_data_paths(settings, explicit)
