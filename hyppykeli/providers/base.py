from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import requests
from requests import Response


logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """Base provider error."""


class NotFound(ProviderError):
    """Raised when the remote service reports the requested entity does not exist."""


class QueryFailed(ProviderError):
    """Raised on transport failures and non-success HTTP statuses."""


class MalformedDocument(ProviderError):
    """Raised when a response body cannot be parsed or lacks a required node."""


@dataclass
class RequestConfig:
    timeout: float = 10.0
    user_agent: str = "hyppykeli/1.0"


class QueryProvider:
    """Base class that adds a shared session and status classification for HTTP providers."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        request_config: Optional[RequestConfig] = None,
    ) -> None:
        self.request_config = request_config or RequestConfig()
        self.session = session or self._build_session(self.request_config)
        self._log = logging.getLogger(self.__class__.__name__)

    def _build_session(self, config: RequestConfig) -> requests.Session:
        session = requests.Session()
        session.headers.update({"User-Agent": config.user_agent})
        return session

    def _handle_response(self, response: Response) -> Response:
        if response.status_code == 404:
            self._log.info("Not found: %s", response.url)
            raise NotFound(response.url)
        if response.status_code >= 400:
            self._log.error("Provider returned %s: %s", response.status_code, response.text[:200])
            raise QueryFailed(f"HTTP {response.status_code}")
        return response

    def _request(self, method: str, url: str, **kwargs) -> Response:
        try:
            response = self.session.request(
                method,
                url,
                timeout=self.request_config.timeout,
                **kwargs,
            )
        except requests.Timeout as exc:
            self._log.error("Request timed out", exc_info=exc)
            raise QueryFailed("timeout") from exc
        except requests.RequestException as exc:
            self._log.error("Request failed", exc_info=exc)
            raise QueryFailed("request failed") from exc
        return self._handle_response(response)


__all__ = [
    "MalformedDocument",
    "NotFound",
    "ProviderError",
    "QueryFailed",
    "QueryProvider",
    "RequestConfig",
]
