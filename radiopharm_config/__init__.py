"""
radiopharm_config -- single public entrypoint for core configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``CoreConfiguration`` with
    the approval workflow definitions and runtime settings.  YAML loading
    is internal tooling and never exposed to callers.

Architecture position:
    Configuration -- YAML-driven, validated at load time.
    This package sits above ``radiopharm_kernel`` and below
    ``radiopharm_services``.  The kernel MUST NEVER import from
    ``radiopharm_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Load-time validation: step contiguity, trigger uniqueness, known
      roles and statuses.
    - Deterministic checksum: same YAML content always produces the same
      ``CoreConfiguration.checksum``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration directory or one of its
      fragments is missing.
    - ``ValueError`` -- parse or validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``RADIOPHARM_CONFIG_TRACE`` log entry containing the config id,
    version, checksum and workflow count.  This ties every approval
    request back to the configuration version that created it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from radiopharm_config.loader import load_configuration
from radiopharm_config.schema import CoreConfiguration, RuntimeSettings
from radiopharm_config.validator import ConfigValidationResult, validate_configuration

_logger = logging.getLogger("radiopharm_kernel.config")

# Default configuration set directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets" / "default"


def get_active_config(config_dir: Path | None = None) -> CoreConfiguration:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned ``CoreConfiguration`` has passed validation.
        - A ``RADIOPHARM_CONFIG_TRACE`` log entry is emitted on every
          successful call; validation warnings are logged alongside.

    Non-goals:
        - Does NOT cache configurations across calls.
        - Does NOT write definitions to the database; the services layer
          syncs them through ``WorkflowDefinitionService.sync_from_config``.

    Args:
        config_dir: Override path to a configuration set directory.
            Defaults to radiopharm_config/sets/default/.

    Raises:
        FileNotFoundError: If the directory or a fragment is missing.
        ValueError: If parsing or validation fails.
    """
    set_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    if not set_dir.is_dir():
        raise FileNotFoundError(f"Configuration set directory not found: {set_dir}")

    config = load_configuration(set_dir)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning(
            "config_validation_warning",
            extra={"config_set_id": config.config_id, "warning": warning},
        )

    _logger.info(
        "RADIOPHARM_CONFIG_TRACE",
        extra={
            "trace_type": "RADIOPHARM_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "workflow_count": len(config.workflows),
            "active_workflow_count": len(config.active_workflows()),
            "notification_max_workers": config.notification_max_workers,
        },
    )

    return config


__all__ = [
    "ConfigValidationResult",
    "CoreConfiguration",
    "RuntimeSettings",
    "get_active_config",
    "validate_configuration",
]
