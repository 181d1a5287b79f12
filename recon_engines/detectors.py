"""
recon_engines.detectors -- Ordered discrepancy detector chain.

Responsibility:
    Classify one matched triple by running a fixed, ordered chain of
    independent detectors.  Each detector inspects the triple and emits
    zero or one ``RawFinding``; several may fire on the same triple.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Third pipeline stage, after matching and before scoring.

Invariants enforced:
    - Order: ``DETECTOR_CHAIN`` order is fixed and detectors never
      suppress one another.
    - Totality: for any validated triple each detector returns a finding
      or None; nothing raises.
    - Exactness: quantity findings are exact Decimal arithmetic with
      confidence 100.

Detector summary:
    missing_scan / missing_receipt   medium, 100
    shortage / overage               low <5%, medium <20%, high >=20%,
                                     critical on total loss
    variant_mismatch                 high, confidence=similarity (related
                                     codes) or critical, 100 (unrelated)
    late_confirmation                medium, 100 (receipt after SLA window)
    format_mismatch                  low, 100 - edit distance %
    receiving_count_mismatch         medium, 85
    condition_issue                  medium, or high on rejection keywords
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import timedelta
from decimal import Decimal

from recon_engines.text import (
    distance_percent,
    normalize_text,
    same_variant_tokens,
    token_similarity,
    variant_tokens,
)
from recon_engines.types import (
    DiscrepancyType,
    MatchedTriple,
    RawFinding,
    RecordSource,
    Severity,
)
from recon_kernel.logging_config import get_logger

logger = get_logger("engines.detectors")


@dataclass(frozen=True)
class DetectorThresholds:
    """
    Tunable detector cutoffs.

    Immutable configuration passed into every classification call.
    Ratios are fractions of the expected quantity.  ``variant_aliases``
    maps vendor variant codes to internal ones; lookups ignore case and
    separators.
    """

    quantity_medium_ratio: Decimal = Decimal("0.05")
    quantity_high_ratio: Decimal = Decimal("0.20")
    variant_similarity_floor: int = 50
    sla_window: timedelta = timedelta(hours=24)
    receiving_count_confidence: int = 85
    good_condition_phrases: tuple[str, ...] = ("good", "good condition", "ok", "no damage")
    rejection_keywords: tuple[str, ...] = ("rejected", "reject", "refused", "destroyed")
    variant_aliases: Mapping[str, str] = field(default_factory=dict, hash=False)


Detector = Callable[[MatchedTriple, DetectorThresholds], RawFinding | None]


# =============================================================================
# 1. Missing confirmations
# =============================================================================


def detect_missing_scan(triple: MatchedTriple, thresholds: DetectorThresholds) -> RawFinding | None:
    if triple.scan is not None:
        return None
    return RawFinding(
        type=DiscrepancyType.MISSING_SCAN,
        severity=Severity.MEDIUM,
        confidence=100,
        detail=f"Shipment {triple.identifier} has no barcode scan on record",
        recommended_action="Locate the shipment and scan its barcodes",
        source=RecordSource.SCAN,
    )


def detect_missing_receipt(triple: MatchedTriple, thresholds: DetectorThresholds) -> RawFinding | None:
    if triple.receipt is not None:
        return None
    return RawFinding(
        type=DiscrepancyType.MISSING_RECEIPT,
        severity=Severity.MEDIUM,
        confidence=100,
        detail=f"Shipment {triple.identifier} has no receipt confirmation on record",
        recommended_action="Confirm physical receipt at the destination dock",
        source=RecordSource.RECEIPT,
    )


# =============================================================================
# 2. Quantity
# =============================================================================


def quantity_severity(expected_qty: int, delta: int, thresholds: DetectorThresholds) -> Severity:
    """Severity tier for a quantity delta (``expected - observed``)."""
    if expected_qty == 0:
        return Severity.HIGH
    if delta == expected_qty:
        return Severity.CRITICAL
    ratio = Decimal(abs(delta)) / Decimal(expected_qty)
    if ratio < thresholds.quantity_medium_ratio:
        return Severity.LOW
    if ratio < thresholds.quantity_high_ratio:
        return Severity.MEDIUM
    return Severity.HIGH


def detect_quantity(triple: MatchedTriple, thresholds: DetectorThresholds) -> RawFinding | None:
    if triple.scan is None or triple.expected is None:
        return None
    expected_qty = triple.expected.expected_quantity
    observed_qty = triple.scan.observed_quantity
    delta = expected_qty - observed_qty
    if delta == 0:
        return None

    severity = quantity_severity(expected_qty, delta, thresholds)
    if expected_qty:
        pct = (Decimal(abs(delta)) * 100 / Decimal(expected_qty)).quantize(Decimal("0.1"))
        pct_text = f" ({pct}%)"
    else:
        pct_text = ""

    if delta > 0:
        return RawFinding(
            type=DiscrepancyType.SHORTAGE,
            severity=severity,
            confidence=100,
            detail=(
                f"Expected {expected_qty} units, scanned {observed_qty}. "
                f"Shortage of {delta} units{pct_text}."
            ),
            recommended_action=(
                "Reject shipment and file a lost-goods claim" if severity == Severity.CRITICAL
                else "Approve adjusted invoice (short shipment)"
            ),
            source=RecordSource.SCAN,
        )
    return RawFinding(
        type=DiscrepancyType.OVERAGE,
        severity=severity,
        confidence=100,
        detail=(
            f"Expected {expected_qty} units, scanned {observed_qty}. "
            f"Overage of {-delta} units{pct_text}."
        ),
        recommended_action="Investigate overage before accepting extra stock",
        source=RecordSource.SCAN,
    )


# =============================================================================
# 3. Variant / identity
# =============================================================================


def resolve_variant(code: str, aliases: Mapping[str, str]) -> str:
    """Internal variant code for ``code``; unmapped codes are returned as-is."""
    if not aliases:
        return code
    key = variant_tokens(code)
    for vendor_code, internal_code in aliases.items():
        if variant_tokens(vendor_code) == key:
            return internal_code
    return code


def detect_variant(triple: MatchedTriple, thresholds: DetectorThresholds) -> RawFinding | None:
    if triple.scan is None or triple.expected is None:
        return None
    expected_variant = triple.expected.expected_variant
    observed_variant = triple.scan.observed_variant
    if expected_variant == observed_variant:
        return None
    expected_internal = resolve_variant(expected_variant, thresholds.variant_aliases)
    observed_internal = resolve_variant(observed_variant, thresholds.variant_aliases)
    if same_variant_tokens(expected_internal, observed_internal):
        return None

    similarity = token_similarity(expected_internal, observed_internal)
    if similarity >= thresholds.variant_similarity_floor:
        return RawFinding(
            type=DiscrepancyType.VARIANT_MISMATCH,
            severity=Severity.HIGH,
            confidence=similarity,
            detail=(
                f"Expected {expected_variant}, scanned {observed_variant}. "
                f"Same product family ({similarity}% token overlap), different variant."
            ),
            recommended_action="Hold shipment and confirm the variant with the vendor",
            source=RecordSource.SCAN,
            ambiguous=True,
        )
    return RawFinding(
        type=DiscrepancyType.VARIANT_MISMATCH,
        severity=Severity.CRITICAL,
        confidence=100,
        detail=(
            f"Expected {expected_variant}, scanned {observed_variant}. "
            f"Wrong product delivered ({similarity}% token overlap)."
        ),
        recommended_action="Reject shipment - wrong product received",
        source=RecordSource.SCAN,
    )


# =============================================================================
# 4. Timing
# =============================================================================


def detect_late_confirmation(triple: MatchedTriple, thresholds: DetectorThresholds) -> RawFinding | None:
    if triple.scan is None or triple.receipt is None:
        return None
    lag = triple.receipt.received_at - triple.scan.observed_at
    if lag <= thresholds.sla_window:
        return None
    hours = Decimal(lag.total_seconds()) / Decimal(3600)
    sla_hours = Decimal(thresholds.sla_window.total_seconds()) / Decimal(3600)
    return RawFinding(
        type=DiscrepancyType.LATE_CONFIRMATION,
        severity=Severity.MEDIUM,
        confidence=100,
        detail=(
            f"Receipt confirmed {hours.quantize(Decimal('0.1'))}h after scan; "
            f"SLA window is {sla_hours.normalize():f}h"
        ),
        recommended_action="Follow up with receiving on the confirmation delay",
        source=RecordSource.RECEIPT,
    )


# =============================================================================
# 5. Text normalization
# =============================================================================


def _text_pairs(triple: MatchedTriple) -> list[tuple[str, str, str]]:
    """``(field label, expected value, confirmed value)`` for comparable text.

    Variant codes that differ only in case or separators are compared here;
    any other variant difference belongs to the variant detector.
    """
    expected = triple.expected
    pairs: list[tuple[str, str, str]] = []
    if expected is None:
        return pairs
    if triple.scan is not None and triple.scan.counterparty:
        pairs.append(("scan counterparty", expected.counterparty, triple.scan.counterparty))
    if triple.receipt is not None and triple.receipt.counterparty:
        pairs.append(("receipt counterparty", expected.counterparty, triple.receipt.counterparty))
    if triple.receipt is not None and triple.receipt.destination:
        pairs.append(("receipt destination", expected.destination, triple.receipt.destination))
    if triple.scan is not None:
        expected_variant = expected.expected_variant
        observed_variant = triple.scan.observed_variant
        if expected_variant != observed_variant and same_variant_tokens(expected_variant, observed_variant):
            pairs.append(("scan variant", expected_variant, observed_variant))
    return pairs


def detect_format_mismatch(triple: MatchedTriple, thresholds: DetectorThresholds) -> RawFinding | None:
    differing: list[tuple[str, str, str, int]] = []
    for label, left, right in _text_pairs(triple):
        norm_left = normalize_text(left)
        norm_right = normalize_text(right)
        if norm_left == norm_right:
            continue
        differing.append((label, left, right, distance_percent(norm_left, norm_right)))

    if not differing:
        return None

    worst = max(d[3] for d in differing)
    described = "; ".join(f"{label}: '{left}' vs '{right}'" for label, left, right, _ in differing)
    return RawFinding(
        type=DiscrepancyType.FORMAT_MISMATCH,
        severity=Severity.LOW,
        confidence=100 - worst,
        detail=f"Text differs across sources ({described})",
        recommended_action="Standardize the record text in the source system",
        source=RecordSource.SCAN if differing[0][0].startswith("scan") else RecordSource.RECEIPT,
    )


# =============================================================================
# 6. Receiving count (scan vs receipt)
# =============================================================================


def detect_receiving_count(triple: MatchedTriple, thresholds: DetectorThresholds) -> RawFinding | None:
    if triple.scan is None or triple.receipt is None:
        return None
    scanned = triple.scan.observed_quantity
    received = triple.receipt.received_quantity
    if scanned == received:
        return None
    return RawFinding(
        type=DiscrepancyType.RECEIVING_COUNT_MISMATCH,
        severity=Severity.MEDIUM,
        confidence=thresholds.receiving_count_confidence,
        detail=(
            f"Scanned {scanned} units but receipt shows {received}. "
            f"Potential receiving error."
        ),
        recommended_action="Verify the receiving count",
        source=RecordSource.RECEIPT,
    )


# =============================================================================
# 7. Condition
# =============================================================================


def detect_condition(triple: MatchedTriple, thresholds: DetectorThresholds) -> RawFinding | None:
    if triple.receipt is None:
        return None
    notes = normalize_text(triple.receipt.condition_notes)
    if not notes or notes in {normalize_text(p) for p in thresholds.good_condition_phrases}:
        return None
    rejected = any(normalize_text(k) in notes for k in thresholds.rejection_keywords)
    return RawFinding(
        type=DiscrepancyType.CONDITION_ISSUE,
        severity=Severity.HIGH if rejected else Severity.MEDIUM,
        confidence=100,
        detail=triple.receipt.condition_notes.strip(),
        recommended_action="Review damage report and adjust invoice",
        source=RecordSource.RECEIPT,
    )


DETECTOR_CHAIN: tuple[Detector, ...] = (
    detect_missing_scan,
    detect_missing_receipt,
    detect_quantity,
    detect_variant,
    detect_late_confirmation,
    detect_format_mismatch,
    detect_receiving_count,
    detect_condition,
)


def _reopen(finding: RawFinding) -> RawFinding:
    action = finding.recommended_action
    return replace(
        finding,
        recommended_action=f"Reopen reconciled receipt; {action[:1].lower()}{action[1:]}",
    )


def classify(
    triple: MatchedTriple,
    thresholds: DetectorThresholds,
    chain: tuple[Detector, ...] = DETECTOR_CHAIN,
) -> list[RawFinding]:
    """Run every detector on one triple, in chain order.

    Synthetic triples (no expectation) are not classified; the matcher
    already reported them as unexpected records.
    """
    if triple.expected is None:
        return []

    findings: list[RawFinding] = []
    for detector in chain:
        finding = detector(triple, thresholds)
        if finding is not None:
            findings.append(finding)

    if findings and triple.receipt is not None and triple.receipt.reconciled:
        findings = [_reopen(f) for f in findings]

    if findings:
        logger.debug("triple_flagged", extra={
            "identifier": triple.identifier,
            "types": [f.type.value for f in findings],
        })
    return findings
