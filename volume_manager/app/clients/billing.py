"""Billing service clients."""
from __future__ import annotations

import logging
from typing import Dict, Protocol, Sequence

from ...config import ServiceConfig
from ..errors import InternalError, NotFoundError
from .http import JSONServiceClient
from .models import NamespaceTariff, SubscribeRequest, VolumeTariff

logger = logging.getLogger(__name__)


class BillingClient(Protocol):
    """Subscriptions and tariffs held by the billing service."""

    def subscribe(self, request: SubscribeRequest) -> None:
        ...

    def unsubscribe(self, resource_id: str) -> None:
        ...

    def massive_unsubscribe(self, resource_ids: Sequence[str]) -> None:
        ...

    def rename(self, resource_id: str, new_label: str) -> None:
        ...

    def get_volume_tariff(self, tariff_id: str) -> VolumeTariff:
        ...

    def get_tariff_for_namespace(self, namespace_id: str) -> NamespaceTariff:
        ...


class HTTPBillingClient:
    def __init__(self, base_url: str, *, timeout: float = 10.0) -> None:
        self._http = JSONServiceClient(base_url, service="billing", timeout=timeout)

    def subscribe(self, request: SubscribeRequest) -> None:
        logger.debug(
            "Subscribing",
            extra={"tariff_id": request.tariff_id, "resource_id": request.resource_id},
        )
        self._http.request("POST", "/isp/subscription", body=request.model_dump())

    def unsubscribe(self, resource_id: str) -> None:
        logger.debug("Unsubscribing", extra={"resource_id": resource_id})
        self._http.request("DELETE", f"/isp/subscription/{self._http.quote(resource_id)}")

    def massive_unsubscribe(self, resource_ids: Sequence[str]) -> None:
        if not resource_ids:
            return
        logger.debug("Massive unsubscribing", extra={"resource_ids": list(resource_ids)})
        self._http.request("DELETE", "/isp/subscription", body={"resources": list(resource_ids)})

    def rename(self, resource_id: str, new_label: str) -> None:
        logger.debug("Renaming resource", extra={"resource_id": resource_id, "new_label": new_label})
        self._http.request(
            "PUT",
            f"/resource/{self._http.quote(resource_id)}",
            body={"label": new_label},
        )

    def get_volume_tariff(self, tariff_id: str) -> VolumeTariff:
        payload = self._http.request("GET", f"/tariffs/volume/{self._http.quote(tariff_id)}")
        if not isinstance(payload, dict):
            raise InternalError(f"billing returned no tariff {tariff_id}")
        return VolumeTariff.model_validate(payload)

    def get_tariff_for_namespace(self, namespace_id: str) -> NamespaceTariff:
        payload = self._http.request("GET", f"/namespaces/{self._http.quote(namespace_id)}")
        if not isinstance(payload, dict):
            raise InternalError(f"billing returned no tariff for namespace {namespace_id}")
        return NamespaceTariff.model_validate(payload)

    def __repr__(self) -> str:
        return f"HTTPBillingClient(url={self._http.base_url})"


_DUMMY_VOLUME_TARIFFS: Dict[str, VolumeTariff] = {
    tariff.id: tariff
    for tariff in (
        VolumeTariff(id="15348470-e98f-4da0-8d2e-8c65e15d6eeb", label="volume-1", storage_limit=1),
        VolumeTariff(id="11a35f90-c343-4fc1-a966-381f75568036", label="volume-2", storage_limit=2),
    )
}

_DUMMY_NAMESPACE_TARIFF = NamespaceTariff(
    id="25d1d873-53ef-493f-9253-28f2f5ab5095",
    label="fake-ns-tariff",
    volume_size=10,
)


class DummyBillingClient:
    """Billing stand-in for debug mode: logs calls and serves built-in tariffs."""

    def subscribe(self, request: SubscribeRequest) -> None:
        logger.info(
            "Dummy subscribe",
            extra={"tariff_id": request.tariff_id, "resource_id": request.resource_id},
        )

    def unsubscribe(self, resource_id: str) -> None:
        logger.info("Dummy unsubscribe", extra={"resource_id": resource_id})

    def massive_unsubscribe(self, resource_ids: Sequence[str]) -> None:
        logger.info("Dummy massive unsubscribe", extra={"resource_ids": list(resource_ids)})

    def rename(self, resource_id: str, new_label: str) -> None:
        logger.info("Dummy rename", extra={"resource_id": resource_id, "new_label": new_label})

    def get_volume_tariff(self, tariff_id: str) -> VolumeTariff:
        tariff = _DUMMY_VOLUME_TARIFFS.get(tariff_id)
        if tariff is None:
            raise NotFoundError(f"tariff {tariff_id} not exists", detail={"tariff_id": tariff_id})
        return tariff

    def get_tariff_for_namespace(self, namespace_id: str) -> NamespaceTariff:
        return _DUMMY_NAMESPACE_TARIFF

    def __repr__(self) -> str:
        return "DummyBillingClient()"


def create_billing_client(config: ServiceConfig) -> BillingClient:
    """Return the billing client matching ``config``."""

    if config.billing_addr:
        return HTTPBillingClient(config.billing_addr, timeout=config.request_timeout_seconds)
    if config.is_debug:
        logger.warning("BILLING_ADDR not set, using dummy billing client")
        return DummyBillingClient()
    raise ValueError("BILLING_ADDR is required in release mode")


__all__ = [
    "BillingClient",
    "DummyBillingClient",
    "HTTPBillingClient",
    "create_billing_client",
]
