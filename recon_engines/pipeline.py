"""
recon_engines.pipeline -- One reconciliation run over a session snapshot.

Responsibility:
    Chain the stages Intake -> Matcher -> Classifier -> Scorer ->
    Aggregator over an immutable ``SessionSnapshot`` and, when a routing
    category is supplied, route every resulting discrepancy.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Invoked by ``recon_services`` (session runner, recompute scheduler) or
    directly by a hosting process; it knows nothing about how or when it
    is triggered.

Invariants enforced:
    - Idempotence: two runs on the same snapshot produce equal results
      (no clock access, no randomness, deterministic ids and ordering).
    - Isolation: no module-level mutable state; thresholds and routing
      category are passed in per call, so sessions can run in parallel.

Usage:
    from recon_engines.pipeline import ReconciliationEngine

    engine = ReconciliationEngine(thresholds=DetectorThresholds())
    result = engine.reconcile(snapshot, category=shipping)
"""

from __future__ import annotations

from recon_engines.aggregation import aggregate
from recon_engines.detectors import DETECTOR_CHAIN, Detector, DetectorThresholds, classify
from recon_engines.intake import intake
from recon_engines.matching import match_records
from recon_engines.routing import RoutingCategory, route_all
from recon_engines.scoring import score_all
from recon_engines.tracer import traced_engine
from recon_engines.types import RawFinding, ReconciliationResult, SessionSnapshot
from recon_kernel.logging_config import LogContext, get_logger

logger = get_logger("engines.pipeline")


class ReconciliationEngine:
    """
    Three-way shipment reconciliation engine.

    Contract:
        Pure function of (snapshot, thresholds, category) -- no I/O, no
        shared mutable state.
    Guarantees:
        - Every valid expectation appears in exactly one triple.
        - ``summary.total_flagged <= summary.total_processed``.
        - Discrepancies are ordered (severity desc, identifier asc).
        - When a category is given, every discrepancy has a routing
          decision keyed by its id.
    Non-goals:
        - Does not fetch, persist or notify; the host owns I/O.
        - Does not cancel mid-run; a newer snapshot means a new run.
    """

    def __init__(
        self,
        thresholds: DetectorThresholds | None = None,
        default_category: RoutingCategory | None = None,
        chain: tuple[Detector, ...] = DETECTOR_CHAIN,
    ) -> None:
        self._thresholds = thresholds or DetectorThresholds()
        self._default_category = default_category
        self._chain = chain

    @property
    def thresholds(self) -> DetectorThresholds:
        return self._thresholds

    @traced_engine("reconciliation", "1.0", fingerprint_fields=("snapshot",))
    def reconcile(
        self,
        snapshot: SessionSnapshot,
        category: RoutingCategory | None = None,
    ) -> ReconciliationResult:
        """
        Reconcile one session snapshot.

        Args:
            snapshot: Already-fetched expectation, scan and receipt streams.
            category: Routing owner directory; falls back to the engine's
                default category.  With neither, routing is skipped.

        Returns:
            ReconciliationResult with triples, ordered discrepancies,
            summary counts and routing decisions.
        """
        category = category or self._default_category
        with LogContext.bind(session_key=snapshot.session_key):
            logger.info("reconciliation_started", extra={
                "expected_rows": len(snapshot.expected),
                "scan_rows": len(snapshot.scans),
                "receipt_rows": len(snapshot.receipts),
            })

            parsed = intake(snapshot.expected, snapshot.scans, snapshot.receipts)
            matched = match_records(parsed.expected, parsed.scans, parsed.receipts)

            findings: list[tuple[str, RawFinding]] = list(parsed.findings)
            findings.extend(matched.findings)
            for triple in matched.triples:
                for finding in classify(triple, self._thresholds, self._chain):
                    findings.append((triple.identifier, finding))

            scored = score_all(findings)
            ordered, summary = aggregate(matched.triples, scored)

            routing = route_all(ordered, category) if category is not None else {}

            logger.info("reconciliation_completed", extra={
                "total_processed": summary.total_processed,
                "total_flagged": summary.total_flagged,
                "discrepancy_count": len(ordered),
                "average_confidence": summary.average_confidence,
                "routed": bool(routing),
            })

        return ReconciliationResult(
            session_key=snapshot.session_key,
            triples=matched.triples,
            discrepancies=ordered,
            summary=summary,
            routing=routing,
        )


def reconcile_session(
    snapshot: SessionSnapshot,
    thresholds: DetectorThresholds | None = None,
    category: RoutingCategory | None = None,
) -> ReconciliationResult:
    """Convenience wrapper: one run with a fresh engine."""
    return ReconciliationEngine(thresholds=thresholds).reconcile(snapshot, category=category)
