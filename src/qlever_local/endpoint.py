from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote

from .config import DEFAULT_HOST, DEFAULT_QUERY_PATH, LauncherSettings


@dataclass(frozen=True)
class ServiceEndpoint:
    port: int
    host: str = DEFAULT_HOST
    query_path: str = DEFAULT_QUERY_PATH

    @classmethod
    def from_settings(cls, settings: LauncherSettings) -> "ServiceEndpoint":
        return cls(port=int(settings.port), host=settings.host, query_path=settings.query_path)

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def query_endpoint(self) -> str:
        path = "/" + str(self.query_path or "").lstrip("/")
        return f"{self.base_url}{path}"

    def query_url(self, query: str) -> str:
        # Variable markers ("?s") stay unescaped.
        return f"{self.query_endpoint}?query={quote(query, safe='?')}"
