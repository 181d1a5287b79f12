"""
recon_engines.scoring -- Severity and confidence normalization.

Responsibility:
    Turn detector-internal ``RawFinding`` output into a canonical
    ``Discrepancy``: map severity tokens onto the four tiers, clamp
    confidence into [0, 100], and assign a deterministic discrepancy id.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Totality: every finding gets a defined severity and confidence; an
      unmapped severity token becomes MEDIUM, never an "unknown" tier.
    - Finality: scoring output is never downgraded later in the run.
    - Determinism: ids derive from identifier, type and ordinal only.
"""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation
from typing import Any

from recon_engines.types import Discrepancy, RawFinding, Severity
from recon_kernel.logging_config import get_logger

logger = get_logger("engines.scoring")

# Fallback tier for severity tokens nothing maps
UNMAPPED_SEVERITY = Severity.MEDIUM

_SEVERITY_ALIASES: dict[str, Severity] = {
    "low": Severity.LOW,
    "info": Severity.LOW,
    "minor": Severity.LOW,
    "minimal": Severity.LOW,
    "medium": Severity.MEDIUM,
    "moderate": Severity.MEDIUM,
    "warning": Severity.MEDIUM,
    "high": Severity.HIGH,
    "error": Severity.HIGH,
    "major": Severity.HIGH,
    "critical": Severity.CRITICAL,
    "severe": Severity.CRITICAL,
    "blocker": Severity.CRITICAL,
}


def incident_severity_tier(level: int) -> Severity | None:
    """Map a 1-5 incident severity onto a tier.

    5 -> critical, 4 -> high, 3 -> medium, 1-2 -> low; anything else None.
    """
    if level >= 6 or level <= 0:
        return None
    if level == 5:
        return Severity.CRITICAL
    if level == 4:
        return Severity.HIGH
    if level == 3:
        return Severity.MEDIUM
    return Severity.LOW


def coerce_severity(token: Any) -> Severity | None:
    """Map any severity token onto a canonical tier, or None if unmapped.

    Accepts ``Severity`` members, case-insensitive names and aliases
    (``"warning"``, ``"error"``, ...), and integer incident levels 1-5.
    Never raises.
    """
    if isinstance(token, Severity):
        return token
    if isinstance(token, bool):
        return None
    if isinstance(token, int):
        return incident_severity_tier(token)
    if isinstance(token, str):
        key = token.strip().lower()
        if key.isdigit():
            return incident_severity_tier(int(key))
        return _SEVERITY_ALIASES.get(key)
    return None


def clamp_confidence(value: Any) -> int:
    """Clamp a confidence value into an integer in [0, 100].

    Non-numeric and NaN values clamp to 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return 0
    if number.is_nan():
        return 0
    if number.is_infinite():
        return 100 if number > 0 else 0
    clamped = max(Decimal("0"), min(Decimal("100"), number))
    return int(clamped.to_integral_value())


def is_valid_confidence(value: Any) -> bool:
    """True if ``value`` is a real number (not bool, not NaN)."""
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, Decimal)):
        return not (isinstance(value, Decimal) and value.is_nan())
    if isinstance(value, float):
        return not math.isnan(value)
    return False


def discrepancy_id(identifier: str, finding: RawFinding, ordinal: int = 0) -> str:
    """Deterministic discrepancy id: ``disc-<identifier>-<type>[-<n>]``."""
    base = f"disc-{identifier}-{finding.type.value}"
    return base if ordinal == 0 else f"{base}-{ordinal + 1}"


def score(finding: RawFinding, identifier: str, ordinal: int = 0) -> Discrepancy:
    """Normalize one raw finding into a final ``Discrepancy``."""
    severity = coerce_severity(finding.severity)
    if severity is None:
        logger.warning("severity_token_unmapped", extra={
            "identifier": identifier,
            "discrepancy_type": finding.type.value,
            "token": repr(finding.severity),
            "fallback": UNMAPPED_SEVERITY.value,
        })
        severity = UNMAPPED_SEVERITY

    return Discrepancy(
        id=discrepancy_id(identifier, finding, ordinal),
        identifier=identifier,
        type=finding.type,
        severity=severity,
        confidence=clamp_confidence(finding.confidence),
        detail=finding.detail,
        recommended_action=finding.recommended_action,
        source=finding.source,
        ambiguous=finding.ambiguous,
    )


def score_all(
    findings: list[tuple[str, RawFinding]],
) -> list[Discrepancy]:
    """Score ``(identifier, finding)`` pairs in emission order.

    Ordinals are assigned per ``(identifier, type)`` so repeated findings
    (e.g. several duplicate confirmations) get distinct ids.
    """
    seen: dict[tuple[str, str], int] = {}
    scored: list[Discrepancy] = []
    for identifier, finding in findings:
        key = (identifier, finding.type.value)
        ordinal = seen.get(key, 0)
        seen[key] = ordinal + 1
        scored.append(score(finding, identifier, ordinal))
    return scored
