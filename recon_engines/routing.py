"""
recon_engines.routing -- Routing decision engine.

Responsibility:
    Decide where a flagged item goes next (log only, human review, or
    escalation), how urgently, and who owns it.  One function serves both
    shipment discrepancies and incident classifications; the caller
    supplies a ``RoutingCategory`` that names the owners.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no registry lookups.

Invariants enforced:
    - Fixed precedence, first match wins:
        1. critical            -> escalation, priority 1, primary contact
        2. high                -> escalation, priority 2, secondary contact
        3. ambiguous           -> review, priority 2
        4. confidence < 75     -> review, priority 3
        5. medium              -> review, priority 3, default owner
        6. low                 -> log_only, priority 4
        7. anything else       -> log_only, priority 5
    - Ambiguity outranks every rule below it: an ambiguous item never
      resolves to log_only.
    - Totality: ``route`` never raises; unmapped severities fall through
      to the log_only default so a decision always exists.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from recon_engines.scoring import coerce_severity, is_valid_confidence
from recon_engines.types import (
    Discrepancy,
    RoutingDecision,
    RoutingDestination,
    Severity,
)
from recon_kernel.logging_config import LogContext, get_logger

logger = get_logger("engines.routing")

REVIEW_CONFIDENCE_FLOOR = 75


@dataclass(frozen=True)
class RoutingCategory:
    """Owner directory for one kind of work (shipping, safety, ...)."""

    name: str
    primary_contact: str
    secondary_contact: str
    default_owner: str


def route(
    severity: Any,
    is_ambiguous: bool,
    confidence: Any,
    category: RoutingCategory | None,
) -> RoutingDecision:
    """Map severity, ambiguity, confidence and category to a decision.

    Args:
        severity: A ``Severity``, a severity name/alias, or an incident
            level 1-5.  Unmapped values take the log_only default.
        is_ambiguous: True when the classification itself is uncertain.
        confidence: 0-100 certainty; non-numeric values skip the
            low-confidence rule.
        category: Owner directory; None leaves owners unassigned.

    Returns:
        RoutingDecision (never raises).
    """
    tier = coerce_severity(severity)
    label = category.name if category is not None else "uncategorized"

    if tier == Severity.CRITICAL:
        return RoutingDecision(
            destination=RoutingDestination.ESCALATION,
            reason=f"Critical severity requires immediate {label} escalation",
            priority=1,
            assigned_to=category.primary_contact if category is not None else None,
        )

    if tier == Severity.HIGH:
        return RoutingDecision(
            destination=RoutingDestination.ESCALATION,
            reason=f"High severity requires urgent {label} intervention",
            priority=2,
            assigned_to=category.secondary_contact if category is not None else None,
        )

    if is_ambiguous is True:
        return RoutingDecision(
            destination=RoutingDestination.REVIEW,
            reason="Ambiguous classification requires human judgment and verification",
            priority=2,
        )

    if is_valid_confidence(confidence) and confidence < REVIEW_CONFIDENCE_FLOOR:
        return RoutingDecision(
            destination=RoutingDestination.REVIEW,
            reason=f"Low confidence ({confidence}%) - human verification recommended",
            priority=3,
        )

    if tier == Severity.MEDIUM:
        return RoutingDecision(
            destination=RoutingDestination.REVIEW,
            reason=f"Moderate severity requires {label} review and prioritization",
            priority=3,
            assigned_to=category.default_owner if category is not None else None,
        )

    if tier == Severity.LOW:
        return RoutingDecision(
            destination=RoutingDestination.LOG_ONLY,
            reason="Minor severity logged for tracking and pattern analysis",
            priority=4,
        )

    return RoutingDecision(
        destination=RoutingDestination.LOG_ONLY,
        reason="Logged for record keeping",
        priority=5,
    )


def route_discrepancy(
    discrepancy: Discrepancy,
    category: RoutingCategory | None,
) -> RoutingDecision:
    """Route one scored discrepancy."""
    return route(
        discrepancy.severity,
        discrepancy.ambiguous,
        discrepancy.confidence,
        category,
    )


def route_all(
    discrepancies: Iterable[Discrepancy],
    category: RoutingCategory | None,
) -> dict[str, RoutingDecision]:
    """Route every discrepancy; returns decisions keyed by discrepancy id."""
    decisions: dict[str, RoutingDecision] = {}
    counts: dict[str, int] = {}
    with LogContext.bind(category=category.name if category is not None else None):
        for discrepancy in discrepancies:
            decision = route_discrepancy(discrepancy, category)
            decisions[discrepancy.id] = decision
            counts[decision.destination.value] = counts.get(decision.destination.value, 0) + 1

        logger.info("routing_completed", extra={
            "routed_count": len(decisions),
            "by_destination": counts,
        })
    return decisions
