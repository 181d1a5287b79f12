"""
ReconciliationConfig schema.

Defines the human-authored, reviewable configuration for the
reconciliation engines.  YAML files are parsed into these types by the
loader, checked by the validator, and handed out by
``recon_config.get_active_config()``.

The engine-facing value objects (``DetectorThresholds``,
``RoutingCategory``, ``IncidentCategoryRule``) are owned by
``recon_engines``; this schema only composes them.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from recon_engines.detectors import DetectorThresholds
from recon_engines.incidents import IncidentCategoryRule
from recon_engines.routing import RoutingCategory


@dataclass(frozen=True)
class RecomputeSettings:
    """How the host re-runs reconciliation when confirmations change."""

    debounce_seconds: float = 2.0
    max_workers: int = 4


@dataclass(frozen=True)
class ReconciliationConfig:
    """Complete, validated reconciliation configuration."""

    config_id: str
    version: int
    thresholds: DetectorThresholds
    categories: tuple[RoutingCategory, ...]
    shipment_category: str
    incident_rules: tuple[IncidentCategoryRule, ...] = ()
    incident_fallback_category: str | None = None
    recompute: RecomputeSettings = field(default_factory=RecomputeSettings)
    checksum: str = ""

    def category(self, name: str) -> RoutingCategory | None:
        """Routing category by name, or None."""
        for category in self.categories:
            if category.name == name:
                return category
        return None

    @property
    def shipping(self) -> RoutingCategory | None:
        """Category used for shipment discrepancies."""
        return self.category(self.shipment_category)

    @property
    def incident_fallback(self) -> RoutingCategory | None:
        if self.incident_fallback_category is None:
            return None
        return self.category(self.incident_fallback_category)
