"""Scheduler integration for renewal reminders and orphaned-profile cleanup."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from threading import Event, Lock, Thread
from typing import Callable, Dict, Optional

from backend.app.config import get_billing_config
from backend.app.entitlements import (
    OrphanedProfileReconciler,
    ReconciliationReport,
    RenewalReminderJob,
    RenewalReminderReport,
)
from backend.app.services.entitlements import build_orphan_reconciler, build_renewal_reminder_job

logger = logging.getLogger(__name__)

RENEWAL_REMINDERS = "renewal_reminders"
ORPHAN_RECONCILIATION = "orphan_reconciliation"

_scheduler_lock = Lock()
_workers: Dict[str, "_JobWorker"] = {}


def _empty_metrics() -> Dict[str, object]:
    return {
        "runs": 0,
        "processed": 0,
        "failures": 0,
        "last_run_at": None,
        "last_success_at": None,
        "last_error": None,
    }


_JOB_METRICS: Dict[str, Dict[str, object]] = {
    RENEWAL_REMINDERS: _empty_metrics(),
    ORPHAN_RECONCILIATION: _empty_metrics(),
}
_metrics_lock = Lock()


def _record_run_start(name: str, started_at: datetime) -> None:
    with _metrics_lock:
        metrics = _JOB_METRICS[name]
        metrics["runs"] = int(metrics.get("runs", 0)) + 1
        metrics["last_run_at"] = started_at


def _record_run_success(name: str, completed_at: datetime, processed: int, failures: int) -> None:
    with _metrics_lock:
        metrics = _JOB_METRICS[name]
        metrics["processed"] = int(metrics.get("processed", 0)) + processed
        metrics["failures"] = int(metrics.get("failures", 0)) + failures
        metrics["last_success_at"] = completed_at
        metrics["last_error"] = None


def _record_run_failure(name: str, error: Exception) -> None:
    with _metrics_lock:
        metrics = _JOB_METRICS[name]
        metrics["failures"] = int(metrics.get("failures", 0)) + 1
        metrics["last_error"] = f"{type(error).__name__}: {error}"


def _current_time(now: Optional[datetime]) -> datetime:
    current_time = now or datetime.now(timezone.utc)
    if current_time.tzinfo is None:
        current_time = current_time.replace(tzinfo=timezone.utc)
    return current_time


def run_renewal_reminder_job(
    *,
    job: Optional[RenewalReminderJob] = None,
    window_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> RenewalReminderReport:
    current_time = _current_time(now)
    days = window_days if window_days is not None else get_billing_config().reminder_window_days
    _record_run_start(RENEWAL_REMINDERS, current_time)
    try:
        report = (job or build_renewal_reminder_job()).run(window_days=days)
    except Exception as exc:
        _record_run_failure(RENEWAL_REMINDERS, exc)
        logger.exception("Renewal reminder job failed", extra={"window_days": days})
        raise
    _record_run_success(
        RENEWAL_REMINDERS,
        current_time,
        processed=report.sent,
        failures=report.expiring_count - report.sent,
    )
    logger.info(
        "Renewal reminder job completed",
        extra={
            "window_days": report.window_days,
            "expiring": report.expiring_count,
            "sent": report.sent,
            "deactivated": report.deactivated,
        },
    )
    return report


def run_orphan_reconciliation_job(
    *,
    reconciler: Optional[OrphanedProfileReconciler] = None,
    now: Optional[datetime] = None,
) -> ReconciliationReport:
    current_time = _current_time(now)
    _record_run_start(ORPHAN_RECONCILIATION, current_time)
    try:
        report = (reconciler or build_orphan_reconciler()).run()
    except Exception as exc:
        _record_run_failure(ORPHAN_RECONCILIATION, exc)
        logger.exception("Orphaned profile reconciliation failed")
        raise
    _record_run_success(
        ORPHAN_RECONCILIATION,
        current_time,
        processed=report.confirmed + report.archived,
        failures=report.failed,
    )
    return report


class _JobWorker(Thread):
    def __init__(self, name: str, target: Callable[[], object], *, initial_delay: float, interval: float):
        super().__init__(name=f"job-{name}", daemon=True)
        self.job_name = name
        self._target = target
        self._initial_delay = max(0.0, initial_delay)
        self._interval = max(1.0, interval)
        self._stop_event = Event()

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:  # pragma: no cover - thread execution
        if self._stop_event.wait(self._initial_delay):
            return
        while not self._stop_event.is_set():
            try:
                self._target()
            except Exception:
                # Logged inside the job runner; keep the schedule going.
                pass
            if self._stop_event.wait(self._interval):
                break


def _seconds_until(hour: int, minute: int = 0) -> float:
    now = datetime.now(timezone.utc)
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return max((target - now).total_seconds(), 0.0)


def start_job_scheduler() -> None:
    with _scheduler_lock:
        if _workers:
            return
        reminder_delay = _seconds_until(8, 0)
        reconcile_interval = 60.0 * get_billing_config().orphan_profile_timeout_minutes
        _workers[RENEWAL_REMINDERS] = _JobWorker(
            RENEWAL_REMINDERS,
            run_renewal_reminder_job,
            initial_delay=reminder_delay,
            interval=24 * 60 * 60,
        )
        _workers[ORPHAN_RECONCILIATION] = _JobWorker(
            ORPHAN_RECONCILIATION,
            run_orphan_reconciliation_job,
            initial_delay=reconcile_interval,
            interval=reconcile_interval,
        )
        for worker in _workers.values():
            worker.start()
        logger.info(
            "Job scheduler started",
            extra={
                "reminder_initial_delay_seconds": round(reminder_delay, 2),
                "reconcile_interval_seconds": reconcile_interval,
            },
        )


def shutdown_job_scheduler() -> None:
    with _scheduler_lock:
        workers = list(_workers.values())
        for worker in workers:
            worker.stop()
        for worker in workers:
            worker.join(timeout=1.0)
        _workers.clear()
        logger.info("Job scheduler stopped")


def get_job_metrics() -> Dict[str, Dict[str, object]]:
    with _metrics_lock:
        snapshot: Dict[str, Dict[str, object]] = {}
        for key, value in _JOB_METRICS.items():
            snapshot[key] = {
                **value,
                "last_run_at": value["last_run_at"].isoformat() if value.get("last_run_at") else None,
                "last_success_at": value["last_success_at"].isoformat() if value.get("last_success_at") else None,
            }
        return snapshot


def _reset_metrics_for_testing() -> None:  # pragma: no cover - used in tests only
    with _metrics_lock:
        for metrics in _JOB_METRICS.values():
            metrics.update(_empty_metrics())


__all__ = [
    "get_job_metrics",
    "run_orphan_reconciliation_job",
    "run_renewal_reminder_job",
    "shutdown_job_scheduler",
    "start_job_scheduler",
]
