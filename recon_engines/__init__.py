"""
Module: recon_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    reconciliation engines.  This is the canonical import surface for
    higher layers (recon_services, hosting processes).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import recon_kernel (logging, exceptions) and sibling modules.
    MUST NOT import recon_config or recon_services.

Invariants enforced:
    - Purity: engines never read the clock; timestamps arrive on records.
    - Determinism: identical inputs always produce identical outputs.
    - No global registries: thresholds and routing categories are passed
      in at call time.

Usage:
    from recon_engines import ReconciliationEngine, SessionSnapshot
    from recon_engines import route, RoutingCategory
"""

from recon_kernel.logging_config import get_logger

logger = get_logger("engines")

from recon_engines.aggregation import aggregate, presentation_order, summarize
from recon_engines.detectors import DETECTOR_CHAIN, DetectorThresholds, classify
from recon_engines.incidents import (
    ClassifiedIncident,
    IncidentCategoryRule,
    IncidentClassification,
    route_incident,
    route_incidents,
    select_incident_category,
)
from recon_engines.intake import IntakeOutcome, intake
from recon_engines.matching import MatchOutcome, match_records
from recon_engines.pipeline import ReconciliationEngine, reconcile_session
from recon_engines.routing import RoutingCategory, route, route_all, route_discrepancy
from recon_engines.scoring import clamp_confidence, coerce_severity, score
from recon_engines.types import (
    Discrepancy,
    DiscrepancyType,
    ExpectedRecord,
    MatchedTriple,
    RawFinding,
    ReceiptConfirmation,
    ReconciliationResult,
    ReconciliationSummary,
    RecordSource,
    RoutingDecision,
    RoutingDestination,
    ScanConfirmation,
    SessionSnapshot,
    Severity,
)

__all__ = [
    # Types
    "Discrepancy",
    "DiscrepancyType",
    "ExpectedRecord",
    "MatchedTriple",
    "RawFinding",
    "ReceiptConfirmation",
    "ReconciliationResult",
    "ReconciliationSummary",
    "RecordSource",
    "RoutingDecision",
    "RoutingDestination",
    "ScanConfirmation",
    "SessionSnapshot",
    "Severity",
    # Stages
    "IntakeOutcome",
    "intake",
    "MatchOutcome",
    "match_records",
    "DETECTOR_CHAIN",
    "DetectorThresholds",
    "classify",
    "clamp_confidence",
    "coerce_severity",
    "score",
    "aggregate",
    "presentation_order",
    "summarize",
    # Pipeline
    "ReconciliationEngine",
    "reconcile_session",
    # Routing
    "RoutingCategory",
    "route",
    "route_all",
    "route_discrepancy",
    # Incidents
    "ClassifiedIncident",
    "IncidentCategoryRule",
    "IncidentClassification",
    "route_incident",
    "route_incidents",
    "select_incident_category",
]
