#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from qlever_local.config import TTL_PATH, load_settings  # noqa: E402
from qlever_local.orchestrator import run_local_service  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Build a QLever index for a small Turtle dataset, start the server and keep it running until Ctrl+C."
    )
    parser.add_argument("--config", default="", help="Optional YAML file with launcher settings.")
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--qlever-dir", default="", help="QLever checkout containing build/ServerMain.")
    parser.add_argument("--input-file", default="", help="Use this Turtle file instead of the bundled sample dataset.")
    parser.add_argument("--grace-sec", type=float, default=None, help="Delay before the startup liveness check.")
    parser.add_argument("--skip-build", action="store_true", help="Reuse the existing index.")
    parser.add_argument("--skip-control-clone", action="store_true")
    parser.add_argument("--log-level", default=os.getenv("QLEVER_LOG_LEVEL", "INFO"))
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config_path = str(args.config or "").strip()
    settings = load_settings(
        config_path=Path(config_path) if config_path else None,
        overrides={
            "port": args.port,
            "qlever_dir": args.qlever_dir or None,
            "input_file": args.input_file or None,
            "grace_sec": args.grace_sec,
        },
    )
    return run_local_service(
        settings,
        build=not args.skip_build,
        write_sample=settings.input_file == settings.data_dir / TTL_PATH.name,
        clone_control=not args.skip_control_clone,
    )


if __name__ == "__main__":
    raise SystemExit(main())
