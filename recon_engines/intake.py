"""
recon_engines.intake -- Record parsing with partial-failure tolerance.

Responsibility:
    Turn the three upstream record streams (typed records or plain
    mappings) into validated, timezone-normalized frozen records.  A row
    with a missing or invalid required field is skipped and replaced by a
    ``data_quality`` finding; one bad row never blocks the rest of the run.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  First stage of the
    pipeline, ahead of the matcher.

Invariants enforced:
    - Totality: ``parse_*`` never raise for any row shape.
    - Timestamps are timezone-aware; naive values are read as UTC so
      detectors can subtract any two of them.
    - Quantities are non-negative integers.

Failure modes:
    - ``MalformedRecordError`` is raised by the per-row parsers and caught
      at this module's boundary, where it becomes a ``data_quality``
      finding (severity=medium, confidence=100).
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from recon_engines.types import (
    DiscrepancyType,
    ExpectedRecord,
    RawFinding,
    ReceiptConfirmation,
    RecordSource,
    ScanConfirmation,
    Severity,
)
from recon_kernel.exceptions import MalformedRecordError
from recon_kernel.logging_config import get_logger

logger = get_logger("engines.intake")

# Alternate column names accepted from upstream exports
_ALIASES: dict[str, tuple[str, ...]] = {
    "identifier": ("shipment_id", "id"),
    "timestamp": ("expected_at", "created_at"),
    "counterparty": ("vendor",),
    "expected_variant": ("expected_sku", "sku"),
    "expected_quantity": ("expected_qty",),
    "observed_variant": ("sku",),
    "observed_quantity": ("qty_scanned",),
    "observer": ("scanned_by",),
    "observed_at": ("scanned_at",),
    "received_quantity": ("received_qty",),
    "receiver": ("received_by",),
    "condition_notes": ("condition",),
}

_MISSING = object()


@dataclass(frozen=True)
class IntakeOutcome:
    """Validated records plus one data-quality finding per rejected row."""

    expected: tuple[ExpectedRecord, ...] = ()
    scans: tuple[ScanConfirmation, ...] = ()
    receipts: tuple[ReceiptConfirmation, ...] = ()
    findings: tuple[tuple[str, RawFinding], ...] = field(default_factory=tuple)


# =============================================================================
# Field coercion
# =============================================================================


def _lookup(row: Mapping[str, Any], name: str) -> Any:
    if name in row:
        return row[name]
    for alias in _ALIASES.get(name, ()):
        if alias in row:
            return row[alias]
    return _MISSING


def _required(row: Mapping[str, Any], name: str, stream: str) -> Any:
    value = _lookup(row, name)
    if value is _MISSING or value is None:
        raise MalformedRecordError(stream, name, "is missing", _readable_identifier(row))
    return value


def _optional(row: Mapping[str, Any], name: str, default: Any = None) -> Any:
    value = _lookup(row, name)
    return default if value is _MISSING or value is None else value


def _text(value: Any, stream: str, name: str, allow_blank: bool = False) -> str:
    if not isinstance(value, str):
        raise MalformedRecordError(stream, name, f"must be text, got {type(value).__name__}")
    if not allow_blank and not value.strip():
        raise MalformedRecordError(stream, name, "is blank")
    return value


def _quantity(value: Any, stream: str, name: str) -> int:
    if isinstance(value, bool):
        raise MalformedRecordError(stream, name, "must be a whole number, got bool")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise MalformedRecordError(stream, name, f"is not a number: {value!r}") from None
    if not number.is_finite() or number != number.to_integral_value():
        raise MalformedRecordError(stream, name, f"must be a whole number, got {value!r}")
    if number < 0:
        raise MalformedRecordError(stream, name, f"must not be negative, got {value!r}")
    return int(number)


def _timestamp(value: Any, stream: str, name: str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            raise MalformedRecordError(
                stream, name, f"is not an ISO-8601 timestamp: {value!r}",
            ) from None
    else:
        raise MalformedRecordError(stream, name, f"must be a timestamp, got {type(value).__name__}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "y")
    return bool(value)


def _readable_identifier(row: Any) -> str | None:
    if isinstance(row, Mapping):
        value = _lookup(row, "identifier")
    else:
        value = getattr(row, "identifier", None)
    if isinstance(value, str) and value.strip():
        return value
    return None


# =============================================================================
# Per-stream row parsers
# =============================================================================


def _as_mapping(row: Any) -> Mapping[str, Any]:
    if isinstance(row, Mapping):
        return row
    if dataclasses.is_dataclass(row) and not isinstance(row, type):
        return {f.name: getattr(row, f.name) for f in dataclasses.fields(row)}
    raise MalformedRecordError("unknown", "row", f"has unsupported type {type(row).__name__}")


def parse_expected_row(row: ExpectedRecord | Mapping[str, Any]) -> ExpectedRecord:
    """Validate one expectation row.  Raises ``MalformedRecordError``."""
    s = RecordSource.EXPECTED.value
    data = _as_mapping(row)
    return ExpectedRecord(
        identifier=_text(_required(data, "identifier", s), s, "identifier"),
        timestamp=_timestamp(_required(data, "timestamp", s), s, "timestamp"),
        counterparty=_text(_required(data, "counterparty", s), s, "counterparty"),
        destination=_text(_required(data, "destination", s), s, "destination"),
        expected_variant=_text(_required(data, "expected_variant", s), s, "expected_variant"),
        expected_quantity=_quantity(_required(data, "expected_quantity", s), s, "expected_quantity"),
        notes=_text(_optional(data, "notes", ""), s, "notes", allow_blank=True),
    )


def parse_scan_row(row: ScanConfirmation | Mapping[str, Any]) -> ScanConfirmation:
    """Validate one scan row.  Raises ``MalformedRecordError``."""
    s = RecordSource.SCAN.value
    data = _as_mapping(row)
    counterparty = _optional(data, "counterparty")
    return ScanConfirmation(
        identifier=_text(_required(data, "identifier", s), s, "identifier"),
        observed_variant=_text(_required(data, "observed_variant", s), s, "observed_variant"),
        observed_quantity=_quantity(_required(data, "observed_quantity", s), s, "observed_quantity"),
        observer=_text(_required(data, "observer", s), s, "observer"),
        observed_at=_timestamp(_required(data, "observed_at", s), s, "observed_at"),
        counterparty=None if counterparty is None else _text(counterparty, s, "counterparty", allow_blank=True),
    )


def parse_receipt_row(row: ReceiptConfirmation | Mapping[str, Any]) -> ReceiptConfirmation:
    """Validate one receipt row.  Raises ``MalformedRecordError``."""
    s = RecordSource.RECEIPT.value
    data = _as_mapping(row)
    counterparty = _optional(data, "counterparty")
    destination = _optional(data, "destination")
    return ReceiptConfirmation(
        identifier=_text(_required(data, "identifier", s), s, "identifier"),
        received_quantity=_quantity(_required(data, "received_quantity", s), s, "received_quantity"),
        received_at=_timestamp(_required(data, "received_at", s), s, "received_at"),
        receiver=_text(_required(data, "receiver", s), s, "receiver"),
        condition_notes=_text(_optional(data, "condition_notes", ""), s, "condition_notes", allow_blank=True),
        reconciled=_flag(_optional(data, "reconciled", False)),
        counterparty=None if counterparty is None else _text(counterparty, s, "counterparty", allow_blank=True),
        destination=None if destination is None else _text(destination, s, "destination", allow_blank=True),
    )


# =============================================================================
# Stream-level parsing
# =============================================================================


def data_quality_finding(source: RecordSource, error: MalformedRecordError) -> RawFinding:
    """Build the finding that stands in for a rejected row."""
    return RawFinding(
        type=DiscrepancyType.DATA_QUALITY,
        severity=Severity.MEDIUM,
        confidence=100,
        detail=f"{source.value} record skipped: field '{error.field}' {error.reason}",
        recommended_action="Correct the source record and re-run reconciliation",
        source=source,
    )


def _parse_stream(rows: Iterable[Any], source: RecordSource, parser) -> tuple[list, list]:
    parsed: list = []
    findings: list[tuple[str, RawFinding]] = []
    for index, row in enumerate(rows):
        try:
            parsed.append(parser(row))
        except MalformedRecordError as exc:
            identifier = _readable_identifier(row) or f"<{source.value}#{index}>"
            logger.warning("record_rejected", extra={
                "stream": source.value,
                "row_index": index,
                "identifier": identifier,
                "field": exc.field,
                "reason": exc.reason,
            })
            findings.append((identifier, data_quality_finding(source, exc)))
    return parsed, findings


def parse_expected(rows: Iterable[Any]) -> tuple[list[ExpectedRecord], list[tuple[str, RawFinding]]]:
    return _parse_stream(rows, RecordSource.EXPECTED, parse_expected_row)


def parse_scans(rows: Iterable[Any]) -> tuple[list[ScanConfirmation], list[tuple[str, RawFinding]]]:
    return _parse_stream(rows, RecordSource.SCAN, parse_scan_row)


def parse_receipts(rows: Iterable[Any]) -> tuple[list[ReceiptConfirmation], list[tuple[str, RawFinding]]]:
    return _parse_stream(rows, RecordSource.RECEIPT, parse_receipt_row)


def intake(
    expected: Iterable[Any],
    scans: Iterable[Any],
    receipts: Iterable[Any],
) -> IntakeOutcome:
    """Parse all three streams; rejected rows become data-quality findings."""
    exp, exp_findings = parse_expected(expected)
    scn, scn_findings = parse_scans(scans)
    rcp, rcp_findings = parse_receipts(receipts)
    return IntakeOutcome(
        expected=tuple(exp),
        scans=tuple(scn),
        receipts=tuple(rcp),
        findings=tuple(exp_findings + scn_findings + rcp_findings),
    )
