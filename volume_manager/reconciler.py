"""Background scheduling for the provisioning reconciliation sweep."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from threading import Event, Lock, Thread
from typing import Dict, Optional

from volume_manager.app.services.volumes import get_reconciler
from volume_manager.app.volumes.reconciliation import ReconciliationSummary

logger = logging.getLogger(__name__)

_scheduler_lock = Lock()
_worker: Optional["_ReconcilerWorker"] = None

_RECONCILER_METRICS: Dict[str, object] = {
    "runs": 0,
    "examined": 0,
    "provisioned": 0,
    "compensated": 0,
    "failed": 0,
    "last_run_at": None,
    "last_success_at": None,
    "last_error": None,
}
_metrics_lock = Lock()


def _record_run_start(started_at: datetime) -> None:
    with _metrics_lock:
        _RECONCILER_METRICS["last_run_at"] = started_at
        _RECONCILER_METRICS["runs"] = int(_RECONCILER_METRICS["runs"]) + 1


def _record_run_success(completed_at: datetime, summary: ReconciliationSummary) -> None:
    with _metrics_lock:
        for key in ("examined", "provisioned", "compensated", "failed"):
            _RECONCILER_METRICS[key] = int(_RECONCILER_METRICS[key]) + getattr(summary, key)
        _RECONCILER_METRICS["last_success_at"] = completed_at
        _RECONCILER_METRICS["last_error"] = None


def _record_run_failure(error: Exception) -> None:
    with _metrics_lock:
        _RECONCILER_METRICS["last_error"] = f"{type(error).__name__}: {error}"


def run_reconciliation(*, now: Optional[datetime] = None) -> ReconciliationSummary:
    current_time = now or datetime.now(timezone.utc)
    if current_time.tzinfo is None:
        current_time = current_time.replace(tzinfo=timezone.utc)

    _record_run_start(current_time)
    try:
        summary = get_reconciler().sweep(current_time)
    except Exception as exc:
        _record_run_failure(exc)
        logger.exception("Provisioning sweep failed")
        raise
    _record_run_success(current_time, summary)
    return summary


class _ReconcilerWorker(Thread):
    def __init__(self, *, interval: float):
        super().__init__(daemon=True, name="volume-reconciler")
        self._interval = max(1.0, interval)
        self._stop_event = Event()

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:  # pragma: no cover - thread execution
        while not self._stop_event.wait(self._interval):
            try:
                run_reconciliation()
            except Exception:
                # Logged by run_reconciliation; keep the schedule going.
                continue


def start_reconciler(interval_seconds: float) -> bool:
    """Start the sweep worker; an interval of zero disables it."""

    global _worker

    if interval_seconds <= 0:
        logger.info("Provisioning reconciler disabled")
        return False
    with _scheduler_lock:
        if _worker is not None:
            return True
        _worker = _ReconcilerWorker(interval=interval_seconds)
        _worker.start()
        logger.info("Provisioning reconciler started", extra={"interval_seconds": interval_seconds})
        return True


def shutdown_reconciler() -> None:
    global _worker

    with _scheduler_lock:
        if _worker is None:
            return
        _worker.stop()
        _worker.join(timeout=1.0)
        _worker = None
        logger.info("Provisioning reconciler stopped")


def get_reconciler_metrics() -> Dict[str, object]:
    with _metrics_lock:
        snapshot = dict(_RECONCILER_METRICS)
    for key in ("last_run_at", "last_success_at"):
        value = snapshot.get(key)
        snapshot[key] = value.isoformat() if isinstance(value, datetime) else None
    snapshot["running"] = _worker is not None
    return snapshot


def _reset_metrics_for_testing() -> None:  # pragma: no cover - used in tests only
    with _metrics_lock:
        _RECONCILER_METRICS.update(
            {
                "runs": 0,
                "examined": 0,
                "provisioned": 0,
                "compensated": 0,
                "failed": 0,
                "last_run_at": None,
                "last_success_at": None,
                "last_error": None,
            }
        )


__all__ = [
    "get_reconciler_metrics",
    "run_reconciliation",
    "shutdown_reconciler",
    "start_reconciler",
]
