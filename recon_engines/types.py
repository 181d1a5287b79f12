"""
recon_engines.types -- Pure domain types for shipment reconciliation.

Responsibility:
    Frozen dataclasses and enums shared by every engine stage: the three
    input record streams, matched triples, raw detector findings, scored
    discrepancies, routing decisions, and the aggregated run result.

Architecture position:
    Engines -- pure domain, zero I/O.

Invariants enforced:
    - Immutability: every record is a frozen dataclass; a run never mutates
      its input snapshot.
    - Severity is totally ordered (low < medium < high < critical) through
      ``Severity.rank``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


# =============================================================================
# Enums
# =============================================================================


class Severity(str, Enum):
    """Canonical severity tier of a discrepancy."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Ordinal rank, 1 (low) to 4 (critical)."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class DiscrepancyType(str, Enum):
    """Kind of disagreement detected between the record streams."""

    SHORTAGE = "shortage"
    OVERAGE = "overage"
    VARIANT_MISMATCH = "variant_mismatch"
    MISSING_SCAN = "missing_scan"
    MISSING_RECEIPT = "missing_receipt"
    LATE_CONFIRMATION = "late_confirmation"
    FORMAT_MISMATCH = "format_mismatch"
    DUPLICATE_CONFIRMATION = "duplicate_confirmation"
    UNEXPECTED_RECORD = "unexpected_record"
    DATA_QUALITY = "data_quality"
    RECEIVING_COUNT_MISMATCH = "receiving_count_mismatch"
    CONDITION_ISSUE = "condition_issue"


class RecordSource(str, Enum):
    """Input stream a record or finding originates from."""

    EXPECTED = "expected"
    SCAN = "scan"
    RECEIPT = "receipt"


class RoutingDestination(str, Enum):
    """Where a routed item goes next."""

    LOG_ONLY = "log_only"
    REVIEW = "review"
    ESCALATION = "escalation"


# =============================================================================
# Input records (populated by the host, consumed by the engine)
# =============================================================================


@dataclass(frozen=True)
class ExpectedRecord:
    """One planned shipment from the authoritative expectation list."""

    identifier: str
    timestamp: datetime
    counterparty: str
    destination: str
    expected_variant: str
    expected_quantity: int
    notes: str = ""


@dataclass(frozen=True)
class ScanConfirmation:
    """A barcode scan confirming what was observed for a shipment."""

    identifier: str
    observed_variant: str
    observed_quantity: int
    observer: str
    observed_at: datetime
    counterparty: str | None = None


@dataclass(frozen=True)
class ReceiptConfirmation:
    """A physical receipt confirmation for a shipment."""

    identifier: str
    received_quantity: int
    received_at: datetime
    receiver: str
    condition_notes: str = ""
    reconciled: bool = False
    counterparty: str | None = None
    destination: str | None = None


@dataclass(frozen=True)
class MatchedTriple:
    """One expectation plus at most one scan and one receipt.

    ``expected`` is None for the synthetic triple built around a
    confirmation whose identifier has no expectation.
    """

    identifier: str
    expected: ExpectedRecord | None = None
    scan: ScanConfirmation | None = None
    receipt: ReceiptConfirmation | None = None

    @property
    def is_unexpected(self) -> bool:
        return self.expected is None


# =============================================================================
# Findings and discrepancies
# =============================================================================


@dataclass(frozen=True)
class RawFinding:
    """Detector output before scoring.

    ``severity`` is a detector-internal token (enum member, string alias,
    or incident integer) and ``confidence`` may be any number; the scorer
    normalizes both.
    """

    type: DiscrepancyType
    severity: Any
    confidence: Any
    detail: str
    recommended_action: str
    source: RecordSource = RecordSource.EXPECTED
    ambiguous: bool = False


@dataclass(frozen=True)
class Discrepancy:
    """A scored, typed disagreement for one shipment identifier."""

    id: str
    identifier: str
    type: DiscrepancyType
    severity: Severity
    confidence: int
    detail: str
    recommended_action: str
    source: RecordSource = RecordSource.EXPECTED
    ambiguous: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "identifier": self.identifier,
            "type": self.type.value,
            "severity": self.severity.value,
            "confidence": self.confidence,
            "detail": self.detail,
            "recommended_action": self.recommended_action,
            "source": self.source.value,
            "ambiguous": self.ambiguous,
        }


@dataclass(frozen=True)
class RoutingDecision:
    """Destination, urgency and owner for one discrepancy or incident."""

    destination: RoutingDestination
    reason: str
    priority: int
    assigned_to: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "destination": self.destination.value,
            "reason": self.reason,
            "priority": self.priority,
            "assigned_to": self.assigned_to,
        }


# =============================================================================
# Run input and output
# =============================================================================


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable, already-fetched input for one reconciliation session.

    Each stream holds typed records or plain mappings as delivered by the
    upstream collaborator; mappings are parsed at intake.
    """

    session_key: str
    expected: tuple[ExpectedRecord | Mapping[str, Any], ...] = ()
    scans: tuple[ScanConfirmation | Mapping[str, Any], ...] = ()
    receipts: tuple[ReceiptConfirmation | Mapping[str, Any], ...] = ()


@dataclass(frozen=True)
class ReconciliationSummary:
    """Dashboard-level counts for one run."""

    total_processed: int
    total_flagged: int
    average_confidence: int
    clean_identifiers: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_processed": self.total_processed,
            "total_flagged": self.total_flagged,
            "average_confidence": self.average_confidence,
            "clean_identifiers": list(self.clean_identifiers),
        }


@dataclass(frozen=True)
class ReconciliationResult:
    """Complete output of one reconciliation run."""

    session_key: str
    triples: tuple[MatchedTriple, ...]
    discrepancies: tuple[Discrepancy, ...]
    summary: ReconciliationSummary
    routing: Mapping[str, RoutingDecision] = field(default_factory=dict)

    @property
    def total_processed(self) -> int:
        return self.summary.total_processed

    @property
    def total_flagged(self) -> int:
        return self.summary.total_flagged

    def for_identifier(self, identifier: str) -> tuple[Discrepancy, ...]:
        """Discrepancies referencing ``identifier``, in presentation order."""
        return tuple(d for d in self.discrepancies if d.identifier == identifier)

    def by_destination(self, destination: RoutingDestination) -> tuple[Discrepancy, ...]:
        """Discrepancies routed to ``destination``, in presentation order."""
        return tuple(
            d for d in self.discrepancies
            if d.id in self.routing and self.routing[d.id].destination == destination
        )
