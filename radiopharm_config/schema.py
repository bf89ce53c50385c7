"""
CoreConfiguration schema.

Defines the typed shape of the radiopharm core configuration.  YAML
fragments are parsed into these types by the loader and checked by the
validator before ``get_active_config()`` hands them out.

Workflow definitions are parsed straight into the kernel's
``WorkflowDefinition`` DTOs so that services never see raw YAML.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from radiopharm_kernel.domain.approval import WorkflowDefinition

# ---------------------------------------------------------------------------
# Runtime settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuntimeSettings:
    """Process-level knobs for the services layer."""

    notification_max_workers: int = 8
    default_overage_percent: float = 0.0
    database_url: str | None = None
    sqlite_busy_timeout: float = 30.0


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CoreConfiguration:
    """
    The complete, validated configuration for one deployment.

    Contract
    --------
    * ``checksum`` is the SHA-256 of the canonical JSON of the source
      fragments; identical YAML content always yields the same checksum.
    * ``workflows`` holds at most one active definition per
      (entity kind, trigger status).
    """

    config_id: str
    version: int
    settings: RuntimeSettings = field(default_factory=RuntimeSettings)
    workflows: tuple[WorkflowDefinition, ...] = ()
    checksum: str = ""

    @property
    def notification_max_workers(self) -> int:
        return self.settings.notification_max_workers

    @property
    def default_overage_percent(self) -> float:
        return self.settings.default_overage_percent

    @property
    def database_url(self) -> str | None:
        return self.settings.database_url

    def active_workflows(self) -> tuple[WorkflowDefinition, ...]:
        return tuple(w for w in self.workflows if w.is_active)
