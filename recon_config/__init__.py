"""
recon_config -- single public entrypoint for reconciliation configuration.

Responsibility:
    Provides the way to obtain configuration at runtime through
    ``get_active_config()``.  Engines never read files or environment
    variables; they receive thresholds and routing categories from the
    ``ReconciliationConfig`` returned here.

Architecture position:
    Configuration -- YAML-driven, validated at load time.
    Sits above ``recon_engines`` (whose value objects it composes) and
    below ``recon_services``.  Engines MUST NEVER import from
    ``recon_config``.

Invariants enforced:
    - Load-time validation: a configuration with errors is never returned.
    - Deterministic identity: the same YAML always yields the same checksum.

Failure modes:
    - ``ConfigNotFoundError`` -- configuration file does not exist.
    - ``ConfigValidationError`` -- parse or validation failures.
    - ``yaml.YAMLError`` -- malformed YAML.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``RECON_CONFIG_TRACE`` log entry with config_id, version, checksum and
    category count, tying each run to the configuration that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from recon_config.loader import load_yaml_file, parse_config
from recon_config.schema import ReconciliationConfig, RecomputeSettings
from recon_config.validator import ConfigValidationResult, validate_configuration
from recon_kernel.exceptions import ConfigValidationError

_logger = logging.getLogger("recon_kernel.config")

# Bundled default configuration
DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | None = None) -> ReconciliationConfig:
    """The public configuration entrypoint.

    Args:
        path: YAML file to load; defaults to the bundled configuration.

    Returns:
        A parsed, validated ``ReconciliationConfig``.

    Raises:
        ConfigNotFoundError: if the file does not exist.
        ConfigValidationError: if required keys are missing, values cannot
            be parsed, or validation reports errors.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    data = load_yaml_file(source)

    try:
        config = parse_config(data)
    except (KeyError, ValueError, TypeError) as exc:
        raise ConfigValidationError([f"parse error: {exc}"], source=str(source)) from exc

    validation = validate_configuration(config)
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={
            "config_id": config.config_id,
            "warning": warning,
        })
    if not validation.is_valid:
        raise ConfigValidationError(validation.errors, source=str(source))

    _logger.info("RECON_CONFIG_TRACE", extra={
        "trace_type": "RECON_CONFIG_TRACE",
        "config_id": config.config_id,
        "config_version": config.version,
        "checksum": config.checksum,
        "category_count": len(config.categories),
        "incident_rule_count": len(config.incident_rules),
        "source": str(source),
    })
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ConfigValidationResult",
    "ReconciliationConfig",
    "RecomputeSettings",
    "get_active_config",
    "validate_configuration",
]
