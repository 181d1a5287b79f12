"""
recon_engines.matching -- Three-way shipment matcher.

Responsibility:
    Join the expectation list, scan confirmations and receipt
    confirmations by shipment identifier.  Attach at most one scan and one
    receipt to each expectation, surface later duplicates as
    ``duplicate_confirmation`` findings, and wrap confirmations with no
    expectation in synthetic triples carrying an ``unexpected_record``
    finding.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Second pipeline stage, after intake and before classification.

Invariants enforced:
    - Completeness: each ExpectedRecord appears in exactly one triple.
    - Conservation: no confirmation is dropped silently; every one is
      either attached, a duplicate finding, or part of an unexpected triple.
    - Authority: among confirmations sharing an identifier the earliest
      timestamp wins; ties keep input order.
    - Cost: hash indexing, O(n + m); no nested-loop comparison.
    - Determinism: triples follow expectation order, then unexpected
      identifiers in sorted order.

Failure modes:
    - None for validated input; a repeated expectation identifier is
      reported as a ``data_quality`` finding and the first one is kept.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass

from recon_engines.tracer import traced_engine
from recon_engines.types import (
    DiscrepancyType,
    ExpectedRecord,
    MatchedTriple,
    RawFinding,
    ReceiptConfirmation,
    RecordSource,
    ScanConfirmation,
    Severity,
)
from recon_kernel.logging_config import get_logger

logger = get_logger("engines.matching")


@dataclass(frozen=True)
class MatchOutcome:
    """Matched triples plus matching-stage findings keyed by identifier."""

    triples: tuple[MatchedTriple, ...]
    findings: tuple[tuple[str, RawFinding], ...]

    @property
    def expected_triples(self) -> tuple[MatchedTriple, ...]:
        return tuple(t for t in self.triples if not t.is_unexpected)

    @property
    def unexpected_triples(self) -> tuple[MatchedTriple, ...]:
        return tuple(t for t in self.triples if t.is_unexpected)


def _group_by_identifier(records: Sequence) -> dict[str, list]:
    grouped: dict[str, list] = defaultdict(list)
    for record in records:
        grouped[record.identifier].append(record)
    return grouped


def _split_authoritative(confirmations: list, timestamp_attr: str) -> tuple:
    """Earliest confirmation first; ``sorted`` is stable so ties keep input order."""
    ordered = sorted(confirmations, key=lambda c: getattr(c, timestamp_attr))
    return ordered[0], ordered[1:]


def _scan_duplicate_finding(
    authoritative: ScanConfirmation,
    duplicate: ScanConfirmation,
) -> RawFinding:
    disagrees = (
        duplicate.observed_quantity != authoritative.observed_quantity
        or duplicate.observed_variant != authoritative.observed_variant
    )
    detail = (
        f"Additional scan by {duplicate.observer} at "
        f"{duplicate.observed_at.isoformat()} ({duplicate.observed_quantity} x "
        f"{duplicate.observed_variant}); scan at "
        f"{authoritative.observed_at.isoformat()} is authoritative"
    )
    return RawFinding(
        type=DiscrepancyType.DUPLICATE_CONFIRMATION,
        severity=Severity.LOW,
        confidence=100,
        detail=detail,
        recommended_action=(
            "Confirm which scan count is correct" if disagrees
            else "Void the duplicate scan"
        ),
        source=RecordSource.SCAN,
        ambiguous=disagrees,
    )


def _receipt_duplicate_finding(
    authoritative: ReceiptConfirmation,
    duplicate: ReceiptConfirmation,
) -> RawFinding:
    disagrees = duplicate.received_quantity != authoritative.received_quantity
    detail = (
        f"Additional receipt by {duplicate.receiver} at "
        f"{duplicate.received_at.isoformat()} ({duplicate.received_quantity} units); "
        f"receipt at {authoritative.received_at.isoformat()} is authoritative"
    )
    return RawFinding(
        type=DiscrepancyType.DUPLICATE_CONFIRMATION,
        severity=Severity.LOW,
        confidence=100,
        detail=detail,
        recommended_action=(
            "Confirm which receiving count is correct" if disagrees
            else "Void the duplicate receipt"
        ),
        source=RecordSource.RECEIPT,
        ambiguous=disagrees,
    )


def _unexpected_finding(triple: MatchedTriple) -> RawFinding:
    sources = []
    if triple.scan is not None:
        sources.append(f"scan by {triple.scan.observer}")
    if triple.receipt is not None:
        sources.append(f"receipt by {triple.receipt.receiver}")
    return RawFinding(
        type=DiscrepancyType.UNEXPECTED_RECORD,
        severity=Severity.HIGH,
        confidence=100,
        detail=(
            f"Shipment {triple.identifier} has no planned order "
            f"({', '.join(sources)})"
        ),
        recommended_action="Identify the sender and reconcile against open orders",
        source=RecordSource.SCAN if triple.scan is not None else RecordSource.RECEIPT,
    )


@traced_engine("matching", "1.0", fingerprint_fields=("expected", "scans", "receipts"))
def match_records(
    expected: Sequence[ExpectedRecord],
    scans: Sequence[ScanConfirmation],
    receipts: Sequence[ReceiptConfirmation],
) -> MatchOutcome:
    """Attach confirmations to expectations by identifier.

    Args:
        expected: Validated expectation records for one session.
        scans: Validated scan confirmations.
        receipts: Validated receipt confirmations.

    Returns:
        MatchOutcome with every triple and the matching-stage findings
        (duplicate confirmations, unexpected records, repeated expectations).
    """
    findings: list[tuple[str, RawFinding]] = []

    index: dict[str, ExpectedRecord] = {}
    for record in expected:
        if record.identifier in index:
            findings.append((record.identifier, RawFinding(
                type=DiscrepancyType.DATA_QUALITY,
                severity=Severity.MEDIUM,
                confidence=100,
                detail=f"Expectation {record.identifier} listed more than once; first entry kept",
                recommended_action="Remove the repeated order line from the expectation list",
                source=RecordSource.EXPECTED,
            )))
            continue
        index[record.identifier] = record

    scans_by_id = _group_by_identifier(scans)
    receipts_by_id = _group_by_identifier(receipts)

    chosen_scan: dict[str, ScanConfirmation] = {}
    for identifier, group in scans_by_id.items():
        authoritative, duplicates = _split_authoritative(group, "observed_at")
        chosen_scan[identifier] = authoritative
        for dup in duplicates:
            findings.append((identifier, _scan_duplicate_finding(authoritative, dup)))

    chosen_receipt: dict[str, ReceiptConfirmation] = {}
    for identifier, group in receipts_by_id.items():
        authoritative, duplicates = _split_authoritative(group, "received_at")
        chosen_receipt[identifier] = authoritative
        for dup in duplicates:
            findings.append((identifier, _receipt_duplicate_finding(authoritative, dup)))

    triples: list[MatchedTriple] = [
        MatchedTriple(
            identifier=identifier,
            expected=record,
            scan=chosen_scan.get(identifier),
            receipt=chosen_receipt.get(identifier),
        )
        for identifier, record in index.items()
    ]

    unknown = sorted((set(chosen_scan) | set(chosen_receipt)) - set(index))
    for identifier in unknown:
        triple = MatchedTriple(
            identifier=identifier,
            scan=chosen_scan.get(identifier),
            receipt=chosen_receipt.get(identifier),
        )
        triples.append(triple)
        findings.append((identifier, _unexpected_finding(triple)))

    logger.info("match_completed", extra={
        "expected_count": len(index),
        "scan_count": len(scans),
        "receipt_count": len(receipts),
        "unexpected_count": len(unknown),
        "duplicate_count": sum(
            1 for _, f in findings if f.type == DiscrepancyType.DUPLICATE_CONFIRMATION
        ),
    })

    return MatchOutcome(triples=tuple(triples), findings=tuple(findings))
