"""
recon_engines.incidents -- Incident classification routing.

Responsibility:
    Route classified incident reports (equipment failures, pest sightings,
    spills, ...) through the same ``route`` function used for shipment
    discrepancies.  The only incident-specific logic is choosing the
    owner directory (``RoutingCategory``) from the incident type.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Classification itself (photo analysis, human intake) happens upstream;
    this module receives its result.

Invariants enforced:
    - ``route`` is reused unmodified; incidents differ from discrepancies
      only in the category passed in.
    - Category selection is deterministic: rules are tried in the order
      given, first keyword hit wins, else the fallback category.
    - Totality: ``route_incident`` never raises.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from recon_engines.routing import RoutingCategory, route
from recon_engines.types import RoutingDecision
from recon_kernel.logging_config import LogContext, get_logger

logger = get_logger("engines.incidents")


class IncidentClassification(str, Enum):
    """Upstream verdict on an incident report."""

    INCIDENT = "incident"
    FALSE_POSITIVE = "false_positive"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class ClassifiedIncident:
    """One incident report after classification.

    ``severity`` is the 1-5 incident scale (1 minimal, 5 critical).
    """

    incident_id: str
    incident_type: str
    severity: Any
    confidence: Any
    classification: IncidentClassification = IncidentClassification.INCIDENT
    location: str = ""
    description: str = ""

    @property
    def is_ambiguous(self) -> bool:
        return self.classification == IncidentClassification.AMBIGUOUS


@dataclass(frozen=True)
class IncidentCategoryRule:
    """Keywords that send an incident type to a routing category."""

    keywords: tuple[str, ...]
    category: RoutingCategory

    def matches(self, incident_type: str) -> bool:
        lowered = incident_type.lower()
        return any(k.lower() in lowered for k in self.keywords)


def select_incident_category(
    incident_type: str,
    rules: Sequence[IncidentCategoryRule],
    fallback: RoutingCategory | None,
) -> RoutingCategory | None:
    """First rule whose keyword occurs in ``incident_type``, else ``fallback``."""
    text = incident_type if isinstance(incident_type, str) else ""
    for rule in rules:
        if rule.matches(text):
            return rule.category
    return fallback


def route_incident(
    incident: ClassifiedIncident,
    rules: Sequence[IncidentCategoryRule],
    fallback: RoutingCategory | None,
) -> RoutingDecision:
    """Route one classified incident through the shared routing policy."""
    category = select_incident_category(incident.incident_type, rules, fallback)
    decision = route(
        incident.severity,
        incident.is_ambiguous,
        incident.confidence,
        category,
    )
    with LogContext.bind(category=category.name if category is not None else None):
        logger.info("incident_routed", extra={
            "incident_id": incident.incident_id,
            "incident_type": incident.incident_type,
            "destination": decision.destination.value,
            "priority": decision.priority,
            "assigned_to": decision.assigned_to,
        })
    return decision


def route_incidents(
    incidents: Sequence[ClassifiedIncident],
    rules: Sequence[IncidentCategoryRule],
    fallback: RoutingCategory | None,
) -> dict[str, RoutingDecision]:
    """Route a batch of incidents; decisions keyed by incident id."""
    return {
        incident.incident_id: route_incident(incident, rules, fallback)
        for incident in incidents
    }
