"""
recon_services.session_runner -- Config-driven reconciliation runs.

Responsibility:
    Build a ``ReconciliationEngine`` from a ``ReconciliationConfig`` and run
    one or many sessions with it.  Many sessions run in parallel on a
    thread pool; each run is independent because the engine holds no
    mutable state.

Architecture position:
    Services -- orchestration over engines.  Performs no I/O itself;
    snapshots arrive already fetched.

Failure modes:
    - A session whose run raises is recorded in ``SessionRunReport.errors``
      and logged; the other sessions still complete.
    - Duplicate session keys are rejected before any session runs.
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from collections import Counter
from dataclasses import dataclass, field
from uuid import uuid4

from recon_config.schema import ReconciliationConfig
from recon_engines.incidents import ClassifiedIncident, route_incidents
from recon_engines.pipeline import ReconciliationEngine
from recon_engines.types import ReconciliationResult, RoutingDecision, SessionSnapshot
from recon_kernel.exceptions import DuplicateSessionKeyError
from recon_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.session_runner")


@dataclass
class SessionRunReport:
    """Outcome of a multi-session run, keyed by session key."""

    run_id: str
    results: dict[str, ReconciliationResult] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.errors


def build_engine(config: ReconciliationConfig) -> ReconciliationEngine:
    """Engine with the configured thresholds and shipping owners."""
    return ReconciliationEngine(
        thresholds=config.thresholds,
        default_category=config.shipping,
    )


def reconcile_with_config(
    snapshot: SessionSnapshot,
    config: ReconciliationConfig,
) -> ReconciliationResult:
    """Reconcile one snapshot under ``config``."""
    return build_engine(config).reconcile(snapshot)


def route_config_incidents(
    incidents: Sequence[ClassifiedIncident],
    config: ReconciliationConfig,
) -> dict[str, RoutingDecision]:
    """Route incidents with the configured keyword rules and fallback owner."""
    return route_incidents(incidents, config.incident_rules, config.incident_fallback)


def reconcile_sessions(
    snapshots: Sequence[SessionSnapshot],
    config: ReconciliationConfig,
    max_workers: int | None = None,
) -> SessionRunReport:
    """
    Reconcile several sessions concurrently.

    Args:
        snapshots: One snapshot per session; session keys must be unique.
        config: Validated configuration shared by every run.
        max_workers: Thread pool size; defaults to
            ``config.recompute.max_workers``.

    Returns:
        SessionRunReport with a result or an error message per session.

    Raises:
        DuplicateSessionKeyError: if two snapshots share a session key;
            nothing is run.
    """
    duplicates = sorted(
        key for key, count in Counter(s.session_key for s in snapshots).items() if count > 1
    )
    if duplicates:
        raise DuplicateSessionKeyError(duplicates)

    engine = build_engine(config)
    report = SessionRunReport(run_id=str(uuid4()))
    workers = max_workers or config.recompute.max_workers

    logger.info("session_run_started", extra={
        "run_id": report.run_id,
        "session_count": len(snapshots),
        "max_workers": workers,
        "config_id": config.config_id,
    })

    def _run(snapshot: SessionSnapshot) -> ReconciliationResult:
        with LogContext.bind(run_id=report.run_id):
            return engine.reconcile(snapshot)

    if snapshots:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(_run, s): s.session_key for s in snapshots}
            for future in as_completed(futures):
                session_key = futures[future]
                try:
                    report.results[session_key] = future.result()
                except Exception as exc:
                    logger.exception("session_run_failed", extra={
                        "run_id": report.run_id,
                        "session_key": session_key,
                        "error": str(exc),
                    })
                    report.errors[session_key] = f"{type(exc).__name__}: {exc}"

    logger.info("session_run_completed", extra={
        "run_id": report.run_id,
        "succeeded": len(report.results),
        "failed": len(report.errors),
    })
    return report
