"""
recon_services -- Orchestration over the pure reconciliation engines.

Responsibility:
    Wires a validated ``ReconciliationConfig`` into engine calls, fans
    sessions out across worker threads, and re-runs reconciliation when a
    session's confirmations change.

Architecture position:
    Services -- may import recon_engines, recon_config and recon_kernel.
    Engines never import from here.

Usage:
    from recon_config import get_active_config
    from recon_services import reconcile_sessions, RecomputeScheduler

    config = get_active_config()
    report = reconcile_sessions(snapshots, config)
"""

from recon_services.scheduler import RecomputeScheduler
from recon_services.session_runner import (
    SessionRunReport,
    build_engine,
    reconcile_sessions,
    reconcile_with_config,
    route_config_incidents,
)

__all__ = [
    "RecomputeScheduler",
    "SessionRunReport",
    "build_engine",
    "reconcile_sessions",
    "reconcile_with_config",
    "route_config_incidents",
]
