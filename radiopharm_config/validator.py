"""
Configuration Validator (``radiopharm_config.validator``).

Responsibility
--------------
Validates a parsed ``CoreConfiguration`` before it is handed out, so that
the services layer never sees an ambiguous or malformed workflow set.

Architecture position
---------------------
**Config layer** -- load-time validation.  Called by
``radiopharm_config.get_active_config()`` after parsing.

Invariants enforced
-------------------
* Workflow name uniqueness.
* Step orders contiguous from 1.
* At most one active workflow per (entity kind, trigger status).
* Runtime settings within range (at least one notification worker,
  non-negative overage).

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``)  -> configuration
  MUST NOT be used.
* Validation warnings  -> configuration is usable but should be reviewed
  (an active workflow with no steps never creates requests).
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from radiopharm_config.schema import CoreConfiguration


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
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


def validate_configuration(config: CoreConfiguration) -> ConfigValidationResult:
    """Validate a configuration; never raises."""
    result = ConfigValidationResult()
    _validate_workflows(config, result)
    _validate_settings(config, result)
    return result


def _validate_workflows(config: CoreConfiguration, result: ConfigValidationResult) -> None:
    for name, count in Counter(w.name for w in config.workflows).items():
        if count > 1:
            result.add_error(f"Workflow '{name}' is defined {count} times")

    triggers: dict[tuple[str, str | None], str] = {}
    for workflow in config.workflows:
        orders = [s.step_order for s in workflow.steps]
        if orders != list(range(1, len(orders) + 1)):
            result.add_error(
                f"Workflow '{workflow.name}': step orders must be contiguous "
                f"from 1, got {orders}"
            )
        if not workflow.steps:
            result.add_warning(f"Workflow '{workflow.name}' has no steps")

        if not workflow.is_active:
            continue
        key = (workflow.entity_kind.value, workflow.trigger_status)
        if key in triggers:
            result.add_error(
                f"Workflows '{triggers[key]}' and '{workflow.name}' are both "
                f"active for {key[0]}/{key[1]}"
            )
        else:
            triggers[key] = workflow.name


def _validate_settings(config: CoreConfiguration, result: ConfigValidationResult) -> None:
    settings = config.settings
    if settings.notification_max_workers < 1:
        result.add_error(
            f"notification_max_workers must be >= 1, got {settings.notification_max_workers}"
        )
    if settings.default_overage_percent < 0:
        result.add_error(
            f"default_overage_percent must be >= 0, got {settings.default_overage_percent}"
        )
    if settings.sqlite_busy_timeout <= 0:
        result.add_error(
            f"sqlite_busy_timeout must be > 0, got {settings.sqlite_busy_timeout}"
        )
