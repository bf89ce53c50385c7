"""
Configuration Loader (``radiopharm_config.loader``).

Responsibility
--------------
Loads the YAML fragment files of a configuration set and parses them into
typed ``radiopharm_config.schema`` instances.  This is internal tooling;
the single public entry point for runtime config is
``radiopharm_config.get_active_config()``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on the kernel's
domain types only; never on engines or services.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Roles and statuses are parsed into their closed enums, so an unknown
  role name or trigger status fails here.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys in parsed dict  -> ``KeyError`` propagates.
* Unknown role, entity kind or status  -> ``ValueError``.

Audit relevance
---------------
``compute_checksum`` lets an auditor verify that the active configuration
matches a known, version-controlled baseline.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from radiopharm_config.schema import CoreConfiguration, RuntimeSettings
from radiopharm_kernel.domain.approval import WorkflowDefinition, WorkflowStep
from radiopharm_kernel.domain.status import BatchStatus, EntityKind, OrderStatus, Role
from radiopharm_kernel.utils.hashing import hash_payload

SETTINGS_FILE = "settings.yaml"
WORKFLOWS_FILE = "workflows.yaml"

_STATUS_ENUMS = {
    EntityKind.ORDER: OrderStatus,
    EntityKind.BATCH: BatchStatus,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: top level must be a mapping, got {type(data).__name__}")
    return data


def parse_role(value: Any) -> Role:
    """Parse a role by display name ("QC Analyst") or member name ("QC_ANALYST")."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        pass
    if isinstance(value, str) and value in Role.__members__:
        return Role[value]
    raise ValueError(f"Unknown role {value!r}")


def parse_entity_kind(value: Any) -> EntityKind:
    try:
        return EntityKind(str(value).upper())
    except ValueError:
        raise ValueError(f"Unknown entity kind {value!r}") from None


def parse_trigger_status(kind: EntityKind, value: Any) -> str | None:
    """Return the canonical status value, or None for a manual-only workflow."""
    if value is None:
        return None
    enum = _STATUS_ENUMS[kind]
    try:
        return enum(str(value).upper()).value
    except ValueError:
        raise ValueError(f"Unknown {kind.value} status {value!r}") from None


def parse_step(data: dict[str, Any], position: int) -> WorkflowStep:
    """
    Parse a ``WorkflowStep``.  ``step_order`` defaults to the 1-based
    position in the list; an explicit value is kept as written so the
    validator can reject gaps.
    """
    return WorkflowStep(
        step_order=int(data.get("step_order", position)),
        step_name=data["name"],
        approver_role=parse_role(data["approver_role"]),
    )


def parse_workflow(data: dict[str, Any]) -> WorkflowDefinition:
    """
    Parse a ``WorkflowDefinition`` from a dict.

    Required keys: ``name``, ``entity_kind``, ``steps``.
    """
    kind = parse_entity_kind(data["entity_kind"])
    steps = tuple(
        parse_step(step, position)
        for position, step in enumerate(data["steps"] or (), start=1)
    )
    return WorkflowDefinition(
        name=data["name"],
        entity_kind=kind,
        trigger_status=parse_trigger_status(kind, data.get("trigger_status")),
        steps=steps,
        is_active=bool(data.get("is_active", True)),
        description=data.get("description", "") or "",
    )


def parse_settings(data: dict[str, Any]) -> RuntimeSettings:
    defaults = RuntimeSettings()
    return RuntimeSettings(
        notification_max_workers=int(
            data.get("notification_max_workers", defaults.notification_max_workers)
        ),
        default_overage_percent=float(
            data.get("default_overage_percent", defaults.default_overage_percent)
        ),
        database_url=data.get("database_url", defaults.database_url),
        sqlite_busy_timeout=float(
            data.get("sqlite_busy_timeout", defaults.sqlite_busy_timeout)
        ),
    )


def load_configuration(config_dir: Path) -> CoreConfiguration:
    """
    Load and parse one configuration set directory.

    The directory holds ``settings.yaml`` (identity and runtime settings)
    and ``workflows.yaml`` (a ``workflows`` list).  Validation is the
    caller's job.
    """
    settings_raw = load_yaml_file(config_dir / SETTINGS_FILE)
    workflows_raw = load_yaml_file(config_dir / WORKFLOWS_FILE)

    workflows = tuple(parse_workflow(w) for w in workflows_raw.get("workflows") or ())

    return CoreConfiguration(
        config_id=settings_raw["config_id"],
        version=int(settings_raw.get("version", 1)),
        settings=parse_settings(settings_raw.get("settings") or {}),
        workflows=workflows,
        checksum=compute_checksum({"settings": settings_raw, "workflows": workflows_raw}),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of the canonical JSON serialization.

    Identical ``data`` always produces identical checksums, independent of
    key order or YAML formatting.
    """
    return hash_payload(data)
