"""
Pytest fixtures for the shipment reconciliation test suite.

Provides:
- Record factories (expected rows, scans, receipts) with sensible defaults
- Routing category fixtures
- A structured log capture fixture
"""

import json
import logging
from datetime import UTC, datetime, timedelta
from io import StringIO

import pytest

from recon_engines.routing import RoutingCategory
from recon_engines.types import (
    ExpectedRecord,
    ReceiptConfirmation,
    ScanConfirmation,
    SessionSnapshot,
)
from recon_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

# Fixed reference instant; no test reads the clock
T0 = datetime(2025, 3, 10, 8, 0, tzinfo=UTC)


def make_expected(
    identifier: str = "SHP-1001",
    variant: str = "PET-WAVE-606-PINK",
    quantity: int = 48,
    counterparty: str = "Bloom Supply Co",
    destination: str = "Greenhouse A",
    timestamp: datetime = T0,
    notes: str = "",
) -> ExpectedRecord:
    return ExpectedRecord(
        identifier=identifier,
        timestamp=timestamp,
        counterparty=counterparty,
        destination=destination,
        expected_variant=variant,
        expected_quantity=quantity,
        notes=notes,
    )


def make_scan(
    identifier: str = "SHP-1001",
    variant: str = "PET-WAVE-606-PINK",
    quantity: int = 48,
    observer: str = "Dock Scanner 1",
    observed_at: datetime = T0 + timedelta(hours=2),
    counterparty: str | None = None,
) -> ScanConfirmation:
    return ScanConfirmation(
        identifier=identifier,
        observed_variant=variant,
        observed_quantity=quantity,
        observer=observer,
        observed_at=observed_at,
        counterparty=counterparty,
    )


def make_receipt(
    identifier: str = "SHP-1001",
    quantity: int = 48,
    received_at: datetime = T0 + timedelta(hours=4),
    receiver: str = "Maria Lopez",
    condition_notes: str = "Good condition",
    reconciled: bool = False,
    counterparty: str | None = None,
    destination: str | None = None,
) -> ReceiptConfirmation:
    return ReceiptConfirmation(
        identifier=identifier,
        received_quantity=quantity,
        received_at=received_at,
        receiver=receiver,
        condition_notes=condition_notes,
        reconciled=reconciled,
        counterparty=counterparty,
        destination=destination,
    )


def make_snapshot(
    session_key: str = "session-1",
    expected=(),
    scans=(),
    receipts=(),
) -> SessionSnapshot:
    return SessionSnapshot(
        session_key=session_key,
        expected=tuple(expected),
        scans=tuple(scans),
        receipts=tuple(receipts),
    )


@pytest.fixture
def shipping_category() -> RoutingCategory:
    return RoutingCategory(
        name="shipping",
        primary_contact="Receiving Manager",
        secondary_contact="Warehouse Supervisor",
        default_owner="Warehouse Supervisor",
    )


@pytest.fixture
def safety_category() -> RoutingCategory:
    return RoutingCategory(
        name="safety",
        primary_contact="Safety Team",
        secondary_contact="Safety Team",
        default_owner="Safety Team",
    )


@pytest.fixture
def maintenance_category() -> RoutingCategory:
    return RoutingCategory(
        name="maintenance",
        primary_contact="Maintenance Team",
        secondary_contact="Maintenance Team",
        default_owner="Maintenance Team",
    )


@pytest.fixture
def captured_logs():
    """Route recon_kernel logs to a buffer; yields a reader of parsed records."""
    reset_logging()
    LogContext.clear()
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    configure_logging(handler=handler, level=logging.DEBUG)

    def read() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield read
    LogContext.clear()
    reset_logging()
