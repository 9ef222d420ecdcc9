"""JSON-over-HTTP plumbing shared by the outbound service clients."""
from __future__ import annotations

import json
import logging
import socket
from typing import Any, Mapping, Optional
from urllib import error as urllib_error
from urllib import parse as urllib_parse
from urllib import request as urllib_request

from ..errors import AlreadyExistsError, ExternalServiceError, NotFoundError

logger = logging.getLogger(__name__)


class JSONServiceClient:
    """Sends JSON requests to one base URL with a per-call timeout.

    404 responses become :class:`NotFoundError` and 409 responses become
    :class:`AlreadyExistsError`; any other failure is an
    :class:`ExternalServiceError` naming the service.
    """

    def __init__(self, base_url: str, *, service: str, timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.service = service
        self.timeout = timeout

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    @staticmethod
    def quote(value: str) -> str:
        return urllib_parse.quote(str(value), safe="")

    def request(
        self,
        method: str,
        path: str,
        *,
        body: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        url = self.url_for(path)
        data = json.dumps(body, default=str).encode("utf-8") if body is not None else None
        request_headers = {"Accept": "application/json"}
        if data is not None:
            request_headers["Content-Type"] = "application/json"
        if headers:
            request_headers.update(headers)
        http_request = urllib_request.Request(url, data=data, headers=request_headers, method=method)

        try:
            with urllib_request.urlopen(http_request, timeout=self.timeout) as response:
                raw = response.read()
        except urllib_error.HTTPError as exc:
            self._raise_for_status(method, url, exc)
        except (urllib_error.URLError, socket.timeout, TimeoutError) as exc:
            logger.warning(
                "Service call failed",
                extra={"service": self.service, "method": method, "url": url, "error": str(exc)},
            )
            raise ExternalServiceError(
                f"{self.service} is unreachable", detail={"service": self.service}
            ) from exc

        if not raw:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning(
                "Service returned malformed JSON",
                extra={"service": self.service, "method": method, "url": url},
            )
            raise ExternalServiceError(
                f"{self.service} returned a malformed response", detail={"service": self.service}
            ) from exc

    def _raise_for_status(self, method: str, url: str, exc: urllib_error.HTTPError) -> None:
        message = _error_message(exc) or exc.reason or "request failed"
        logger.warning(
            "Service call rejected",
            extra={"service": self.service, "method": method, "url": url, "status": exc.code, "error": message},
        )
        detail = {"service": self.service, "status": exc.code}
        if exc.code == 404:
            raise NotFoundError(f"{self.service}: {message}", detail=detail) from exc
        if exc.code == 409:
            raise AlreadyExistsError(f"{self.service}: {message}", detail=detail) from exc
        raise ExternalServiceError(f"{self.service}: {message}", detail=detail) from exc


def _error_message(exc: urllib_error.HTTPError) -> Optional[str]:
    try:
        payload = json.loads(exc.read().decode("utf-8"))
    except (ValueError, UnicodeDecodeError, OSError, AttributeError):
        return None
    if isinstance(payload, dict):
        for key in ("message", "detail", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return None


__all__ = ["JSONServiceClient"]
