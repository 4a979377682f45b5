from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

from .endpoint import ServiceEndpoint

logger = logging.getLogger(__name__)


def check_control_config(path: Path, endpoint: ServiceEndpoint) -> Dict[str, Any]:
    """Check that the qlever-control query script targets the local server.

    Advisory only: the result is a ``pass``/``warn`` check record and the
    file is never modified.
    """
    path = Path(path)
    expected = endpoint.base_url
    check: Dict[str, Any] = {"id": "control_endpoint", "path": str(path), "expected": expected}

    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        check.update({"status": "warn", "detail": f"control script unreadable: {exc.__class__.__name__}"})
    else:
        if expected in text:
            check.update({"status": "pass", "detail": f"control script uses {endpoint.query_endpoint}"})
        else:
            check.update({"status": "warn", "detail": f"control script does not reference {expected}"})

    if check["status"] == "pass":
        logger.info("qlever-control is configured to use your local QLever server at %s", endpoint.query_endpoint)
    else:
        logger.warning(
            "qlever-control may be using the public QLever instance. "
            "Please check the file %s and make sure it contains %s",
            path,
            endpoint.query_endpoint,
        )
    return check
