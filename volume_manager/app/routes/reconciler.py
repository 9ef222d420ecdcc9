"""Admin API routes for the provisioning reconciler."""
from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends

from ..volumes.service import Caller
from .dependencies import domain_errors, require_admin

router = APIRouter(prefix="/admin/reconciler", tags=["reconciler"])


@router.get("")
def reconciler_status(*, caller: Caller = Depends(require_admin)) -> Dict[str, object]:
    from ...reconciler import get_reconciler_metrics

    return get_reconciler_metrics()


@router.post("/sweep")
def run_sweep(*, caller: Caller = Depends(require_admin)) -> Dict[str, int]:
    """Run one reconciliation sweep immediately."""
    from ...reconciler import run_reconciliation

    with domain_errors():
        summary = run_reconciliation()
    return {
        "examined": summary.examined,
        "provisioned": summary.provisioned,
        "compensated": summary.compensated,
        "failed": summary.failed,
    }


__all__ = ["router"]
