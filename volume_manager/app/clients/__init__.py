"""Outbound clients for the billing service and the cluster orchestrator."""

from .billing import BillingClient, DummyBillingClient, HTTPBillingClient, create_billing_client
from .models import NamespaceTariff, SubscribeRequest, VolumeTariff
from .orchestrator import (
    DummyOrchestratorClient,
    HTTPOrchestratorClient,
    OrchestratorClient,
    create_orchestrator_client,
)

__all__ = [
    "BillingClient",
    "DummyBillingClient",
    "DummyOrchestratorClient",
    "HTTPBillingClient",
    "HTTPOrchestratorClient",
    "NamespaceTariff",
    "OrchestratorClient",
    "SubscribeRequest",
    "VolumeTariff",
    "create_billing_client",
    "create_orchestrator_client",
]
