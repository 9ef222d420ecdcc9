"""Cluster orchestrator clients."""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol

from ...config import ServiceConfig
from .http import JSONServiceClient

logger = logging.getLogger(__name__)


class OrchestratorClient(Protocol):
    """Materializes volumes in the cluster."""

    def create_volume(self, namespace_id: str, spec: Mapping[str, Any]) -> None:
        ...

    def update_volume(self, namespace_id: str, spec: Mapping[str, Any], *, name: Optional[str] = None) -> None:
        ...

    def delete_volume(self, namespace_id: str, name: str) -> None:
        ...


class HTTPOrchestratorClient:
    def __init__(self, base_url: str, *, timeout: float = 10.0) -> None:
        self._http = JSONServiceClient(base_url, service="orchestrator", timeout=timeout)

    def _volumes_path(self, namespace_id: str) -> str:
        return f"/namespaces/{self._http.quote(namespace_id)}/volumes"

    def create_volume(self, namespace_id: str, spec: Mapping[str, Any]) -> None:
        logger.debug("Create volume in cluster", extra={"namespace_id": namespace_id, "label": spec.get("name")})
        self._http.request("POST", self._volumes_path(namespace_id), body=dict(spec))

    def update_volume(self, namespace_id: str, spec: Mapping[str, Any], *, name: Optional[str] = None) -> None:
        # ``name`` addresses the existing object when the spec renames it.
        current_name = name or str(spec["name"])
        logger.debug("Update volume in cluster", extra={"namespace_id": namespace_id, "label": current_name})
        self._http.request(
            "PUT",
            f"{self._volumes_path(namespace_id)}/{self._http.quote(current_name)}",
            body=dict(spec),
        )

    def delete_volume(self, namespace_id: str, name: str) -> None:
        logger.debug("Delete volume in cluster", extra={"namespace_id": namespace_id, "label": name})
        self._http.request("DELETE", f"{self._volumes_path(namespace_id)}/{self._http.quote(name)}")

    def __repr__(self) -> str:
        return f"HTTPOrchestratorClient(url={self._http.base_url})"


class DummyOrchestratorClient:
    """Orchestrator stand-in for debug mode; every call only logs."""

    def create_volume(self, namespace_id: str, spec: Mapping[str, Any]) -> None:
        logger.info("Dummy create volume", extra={"namespace_id": namespace_id, "label": spec.get("name")})

    def update_volume(self, namespace_id: str, spec: Mapping[str, Any], *, name: Optional[str] = None) -> None:
        logger.info("Dummy update volume", extra={"namespace_id": namespace_id, "label": spec.get("name")})

    def delete_volume(self, namespace_id: str, name: str) -> None:
        logger.info("Dummy delete volume", extra={"namespace_id": namespace_id, "label": name})

    def __repr__(self) -> str:
        return "DummyOrchestratorClient()"


def create_orchestrator_client(config: ServiceConfig) -> OrchestratorClient:
    """Return the orchestrator client matching ``config``."""

    if config.orchestrator_addr:
        return HTTPOrchestratorClient(config.orchestrator_addr, timeout=config.request_timeout_seconds)
    if config.is_debug:
        logger.warning("ORCHESTRATOR_ADDR not set, using dummy orchestrator client")
        return DummyOrchestratorClient()
    raise ValueError("ORCHESTRATOR_ADDR is required in release mode")


__all__ = [
    "DummyOrchestratorClient",
    "HTTPOrchestratorClient",
    "OrchestratorClient",
    "create_orchestrator_client",
]
