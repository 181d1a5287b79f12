"""
Configuration Validator (``recon_config.validator``).

Responsibility
--------------
Validates a parsed ``ReconciliationConfig`` before it is handed to the
engines, so threshold mistakes surface at load time rather than as odd
severities mid-run.

Invariants enforced
-------------------
* Quantity ratios satisfy ``0 < medium_ratio < high_ratio <= 1``.
* Variant similarity floor and receiving-count confidence lie in [0, 100].
* SLA window is positive.
* Category names are unique; the shipment category and the incident
  fallback category are declared.
* Recompute settings: debounce >= 0, at least one worker.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``) -> configuration
  MUST NOT be used.
* Validation warnings -> usable, but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal

from recon_config.schema import ReconciliationConfig


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: ReconciliationConfig) -> ConfigValidationResult:
    """Validate thresholds, routing categories and recompute settings."""
    result = ConfigValidationResult()
    _validate_thresholds(config, result)
    _validate_categories(config, result)
    _validate_recompute(config, result)
    return result


def _validate_thresholds(config: ReconciliationConfig, result: ConfigValidationResult) -> None:
    t = config.thresholds
    if not (Decimal("0") < t.quantity_medium_ratio < t.quantity_high_ratio <= Decimal("1")):
        result.add_error(
            "quantity ratios must satisfy 0 < medium_ratio < high_ratio <= 1 "
            f"(got {t.quantity_medium_ratio}, {t.quantity_high_ratio})"
        )
    if not 0 <= t.variant_similarity_floor <= 100:
        result.add_error(
            f"variant similarity_floor must be within 0-100 (got {t.variant_similarity_floor})"
        )
    if t.sla_window <= timedelta(0):
        result.add_error(f"sla_window must be positive (got {t.sla_window})")
    if not 0 <= t.receiving_count_confidence <= 100:
        result.add_error(
            "receiving_count_confidence must be within 0-100 "
            f"(got {t.receiving_count_confidence})"
        )
    if not t.rejection_keywords:
        result.add_warning("no condition rejection keywords configured")
    for vendor, internal in t.variant_aliases.items():
        if not vendor.strip() or not internal.strip():
            result.add_error(f"variant alias has a blank code ({vendor!r} -> {internal!r})")
        elif vendor == internal:
            result.add_warning(f"variant alias {vendor!r} maps to itself")


def _validate_categories(config: ReconciliationConfig, result: ConfigValidationResult) -> None:
    names = [c.name for c in config.categories]
    seen: set[str] = set()
    for name in names:
        if name in seen:
            result.add_error(f"duplicate routing category '{name}'")
        seen.add(name)

    for category in config.categories:
        for attr in ("primary_contact", "secondary_contact", "default_owner"):
            if not getattr(category, attr).strip():
                result.add_error(f"category '{category.name}' has blank {attr}")

    if config.shipment_category not in seen:
        result.add_error(
            f"shipment_category '{config.shipment_category}' is not a declared category"
        )
    if (
        config.incident_fallback_category is not None
        and config.incident_fallback_category not in seen
    ):
        result.add_error(
            f"incident fallback_category '{config.incident_fallback_category}' "
            "is not a declared category"
        )
    if not config.incident_rules:
        result.add_warning("no incident routing rules; every incident uses the fallback")

    for rule in config.incident_rules:
        if not rule.keywords:
            result.add_warning(
                f"incident rule for '{rule.category.name}' has no keywords and never matches"
            )


def _validate_recompute(config: ReconciliationConfig, result: ConfigValidationResult) -> None:
    if config.recompute.debounce_seconds < 0:
        result.add_error(
            f"recompute debounce_seconds must be >= 0 (got {config.recompute.debounce_seconds})"
        )
    if config.recompute.max_workers < 1:
        result.add_error(
            f"recompute max_workers must be >= 1 (got {config.recompute.max_workers})"
        )
