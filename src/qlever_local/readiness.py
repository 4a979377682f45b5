from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from .config import DEFAULT_PROBE_TIMEOUT_SEC, PROBE_QUERY
from .endpoint import ServiceEndpoint

logger = logging.getLogger(__name__)

READY_MARKERS = ("results", "bindings")

EXPECTED_RESPONSE_SHAPE = """{
  "head": { "vars": ["s"] },
  "results": {
    "bindings": [
      { "s": { "type": "uri", "value": "http://example.org/alice" } }
    ]
  }
}"""


@dataclass
class ReadinessResult:
    succeeded: bool
    raw_body: str
    error: str = ""
    status_code: Optional[int] = None

    def as_dict(self) -> dict:
        return {
            "succeeded": self.succeeded,
            "status_code": self.status_code,
            "error": self.error,
            "body_preview": self.raw_body[:200],
        }


def body_looks_ready(body: str) -> bool:
    # Substring check only; the body is never parsed as JSON.
    text = str(body or "")
    return all(marker in text for marker in READY_MARKERS)


class ReadinessProbe:
    def __init__(self, timeout_sec: float = DEFAULT_PROBE_TIMEOUT_SEC, query: str = PROBE_QUERY) -> None:
        self.timeout_sec = max(0.5, float(timeout_sec))
        self.query = query

    def url_for(self, endpoint: ServiceEndpoint) -> str:
        return endpoint.query_url(self.query)

    def check(self, endpoint: ServiceEndpoint) -> ReadinessResult:
        url = self.url_for(endpoint)
        logger.info("Verifying QLever API response at %s", endpoint.query_endpoint)
        try:
            response = requests.get(url, timeout=self.timeout_sec)
        except requests.RequestException as exc:
            return ReadinessResult(succeeded=False, raw_body="", error=str(exc))

        body = response.text or ""
        if body_looks_ready(body):
            return ReadinessResult(succeeded=True, raw_body=body, status_code=response.status_code)
        return ReadinessResult(
            succeeded=False,
            raw_body=body,
            error="response lacks results/bindings",
            status_code=response.status_code,
        )
