"""
recon_engines.aggregation -- Run-level counts and presentation order.

Responsibility:
    Compute total-processed / total-flagged counts, the average confidence
    and the clean identifier list, and order the discrepancy list for
    display.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Final pipeline stage, after scoring.

Invariants enforced:
    - ``total_processed`` equals the number of expectation triples.
    - ``total_flagged`` counts expectation identifiers with at least one
      discrepancy, so it never exceeds ``total_processed``.  Unexpected
      records and unreadable rows do not count.
    - Order is (severity desc, identifier asc), ties in emission order.
      Downstream views show the "top" discrepancies by position, so the
      order is part of the output contract.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from recon_engines.types import Discrepancy, MatchedTriple, ReconciliationSummary


def presentation_order(discrepancies: Sequence[Discrepancy]) -> tuple[Discrepancy, ...]:
    """Sort by severity (highest first), then identifier; stable for ties."""
    return tuple(sorted(
        discrepancies,
        key=lambda d: (-d.severity.rank, d.identifier),
    ))


def average_confidence(discrepancies: Sequence[Discrepancy]) -> int:
    """Rounded mean confidence; 100 when nothing was flagged."""
    if not discrepancies:
        return 100
    total = sum((Decimal(d.confidence) for d in discrepancies), Decimal("0"))
    mean = total / Decimal(len(discrepancies))
    return int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def summarize(
    triples: Sequence[MatchedTriple],
    discrepancies: Sequence[Discrepancy],
) -> ReconciliationSummary:
    """Dashboard counts for one run."""
    expected_ids = [t.identifier for t in triples if not t.is_unexpected]
    expected_set = set(expected_ids)
    flagged = {d.identifier for d in discrepancies if d.identifier in expected_set}
    clean = tuple(sorted(expected_set - flagged))
    return ReconciliationSummary(
        total_processed=len(expected_ids),
        total_flagged=len(flagged),
        average_confidence=average_confidence(discrepancies),
        clean_identifiers=clean,
    )


def aggregate(
    triples: Sequence[MatchedTriple],
    discrepancies: Sequence[Discrepancy],
) -> tuple[tuple[Discrepancy, ...], ReconciliationSummary]:
    """Order the discrepancies and compute the run summary."""
    return presentation_order(discrepancies), summarize(triples, discrepancies)
