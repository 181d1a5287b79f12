"""
Configuration Loader (``recon_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the typed
``recon_config.schema`` dataclasses.  Runtime callers go through
``recon_config.get_active_config()``; this module is the parsing layer
underneath it.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass.
* Ratios are parsed as ``Decimal`` from their string form; floats never
  reach threshold comparisons.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``ConfigNotFoundError``.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unparseable numbers/durations  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from recon_config.schema import ReconciliationConfig, RecomputeSettings
from recon_engines.detectors import DetectorThresholds
from recon_engines.incidents import IncidentCategoryRule
from recon_engines.routing import RoutingCategory
from recon_kernel.exceptions import ConfigNotFoundError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        ConfigNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    if not path.is_file():
        raise ConfigNotFoundError(str(path))
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any) -> Decimal:
    """Parse a Decimal from a YAML scalar via its string form."""
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Cannot parse decimal from {value!r}") from None


def parse_duration(data: Any) -> timedelta:
    """Parse a duration given as ``{hours: n, minutes: n}`` or bare hours."""
    if isinstance(data, dict):
        return timedelta(
            days=float(data.get("days", 0)),
            hours=float(data.get("hours", 0)),
            minutes=float(data.get("minutes", 0)),
        )
    if isinstance(data, (int, float)) and not isinstance(data, bool):
        return timedelta(hours=data)
    raise ValueError(f"Cannot parse duration from {data!r}")


def parse_thresholds(data: dict[str, Any]) -> DetectorThresholds:
    """Parse detector thresholds; absent keys keep engine defaults."""
    defaults = DetectorThresholds()
    quantity = data.get("quantity", {})
    variant = data.get("variant", {})
    condition = data.get("condition", {})
    return DetectorThresholds(
        quantity_medium_ratio=parse_decimal(
            quantity.get("medium_ratio", defaults.quantity_medium_ratio)
        ),
        quantity_high_ratio=parse_decimal(
            quantity.get("high_ratio", defaults.quantity_high_ratio)
        ),
        variant_similarity_floor=int(
            variant.get("similarity_floor", defaults.variant_similarity_floor)
        ),
        sla_window=(
            parse_duration(data["sla_window"]) if "sla_window" in data
            else defaults.sla_window
        ),
        receiving_count_confidence=int(
            data.get("receiving_count_confidence", defaults.receiving_count_confidence)
        ),
        good_condition_phrases=tuple(
            condition.get("good_phrases", defaults.good_condition_phrases)
        ),
        rejection_keywords=tuple(
            condition.get("rejection_keywords", defaults.rejection_keywords)
        ),
        variant_aliases={
            str(vendor): str(internal)
            for vendor, internal in (variant.get("aliases") or {}).items()
        },
    )


def parse_category(data: dict[str, Any]) -> RoutingCategory:
    """
    Parse a ``RoutingCategory`` from a dict.

    Raises:
        KeyError: if ``name``, ``primary_contact`` or ``secondary_contact``
            is missing.
    """
    return RoutingCategory(
        name=data["name"],
        primary_contact=data["primary_contact"],
        secondary_contact=data["secondary_contact"],
        default_owner=data.get("default_owner", data["secondary_contact"]),
    )


def parse_incident_rules(
    data: list[dict[str, Any]],
    categories: dict[str, RoutingCategory],
) -> tuple[IncidentCategoryRule, ...]:
    """Parse keyword rules; each names a category declared in ``categories``."""
    rules: list[IncidentCategoryRule] = []
    for item in data:
        name = item["category"]
        if name not in categories:
            raise KeyError(f"Incident rule references unknown category '{name}'")
        rules.append(IncidentCategoryRule(
            keywords=tuple(item.get("keywords", ())),
            category=categories[name],
        ))
    return tuple(rules)


def parse_recompute(data: dict[str, Any]) -> RecomputeSettings:
    defaults = RecomputeSettings()
    return RecomputeSettings(
        debounce_seconds=float(data.get("debounce_seconds", defaults.debounce_seconds)),
        max_workers=int(data.get("max_workers", defaults.max_workers)),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 over the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_config(data: dict[str, Any]) -> ReconciliationConfig:
    """
    Parse a full ``ReconciliationConfig`` from a loaded YAML document.

    Raises:
        KeyError: if ``config_id``, ``categories`` or
            ``routing.shipment_category`` is missing.
        ValueError: if a number or duration cannot be parsed.
    """
    categories = tuple(parse_category(c) for c in data["categories"])
    by_name = {c.name: c for c in categories}
    routing = data.get("routing", {})
    incidents = data.get("incidents", {})
    return ReconciliationConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        thresholds=parse_thresholds(data.get("thresholds", {})),
        categories=categories,
        shipment_category=routing["shipment_category"],
        incident_rules=parse_incident_rules(incidents.get("rules", []), by_name),
        incident_fallback_category=incidents.get("fallback_category"),
        recompute=parse_recompute(data.get("recompute", {})),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> ReconciliationConfig:
    """Load and parse a configuration file (no validation)."""
    return parse_config(load_yaml_file(path))
