"""
Module: radiopharm_kernel.models.workflow
Responsibility: ORM persistence for approval workflow definitions and their
    ordered steps.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one ACTIVE definition per (entity_kind, trigger_status):
      partial unique index on both PostgreSQL and SQLite.
    - UNIQUE(workflow_id, step_order) on steps.
    - Steps are immutable once written; only ``is_active`` on the definition
      may change (deactivation).

Failure modes:
    - IntegrityError on a second active definition for the same trigger.
    - ImmutabilityViolationError on step UPDATE/DELETE.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from radiopharm_kernel.db.base import Base, UUIDString
from radiopharm_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from radiopharm_kernel.domain.approval import WorkflowDefinition


class WorkflowDefinitionModel(Base):
    """Persistent workflow definition.

    Contract:
        Read-only at runtime apart from deactivation.  A definition with no
        steps may exist; triggering it creates nothing.
    """

    __tablename__ = "workflow_definitions"

    __table_args__ = (
        Index(
            "ix_workflow_definitions_active_trigger",
            "entity_kind", "trigger_status",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    entity_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    trigger_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    steps: Mapped[list["WorkflowStepModel"]] = relationship(
        "WorkflowStepModel",
        back_populates="workflow",
        order_by="WorkflowStepModel.step_order",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<WorkflowDefinition {self.name} "
            f"{self.entity_kind}/{self.trigger_status} active={self.is_active}>"
        )

    def to_dto(self) -> WorkflowDefinition:
        """Convert ORM model to frozen domain DTO."""
        from radiopharm_kernel.domain.approval import (
            WorkflowDefinition as WorkflowDefinitionDTO,
            WorkflowStep,
        )
        from radiopharm_kernel.domain.status import EntityKind, Role

        return WorkflowDefinitionDTO(
            workflow_id=self.id,
            name=self.name,
            description=self.description,
            entity_kind=EntityKind(self.entity_kind),
            trigger_status=self.trigger_status,
            is_active=self.is_active,
            steps=tuple(
                WorkflowStep(
                    step_order=s.step_order,
                    step_name=s.step_name,
                    approver_role=Role(s.approver_role),
                )
                for s in self.steps
            ),
        )

    @classmethod
    def from_dto(cls, dto: WorkflowDefinition) -> WorkflowDefinitionModel:
        """Create ORM model (with its steps) from domain DTO."""
        model = cls(
            name=dto.name,
            description=dto.description,
            entity_kind=dto.entity_kind.value,
            trigger_status=dto.trigger_status,
            is_active=dto.is_active,
        )
        if dto.workflow_id is not None:
            model.id = dto.workflow_id
        model.steps = [
            WorkflowStepModel(
                step_order=s.step_order,
                step_name=s.step_name,
                approver_role=s.approver_role.value,
            )
            for s in dto.steps
        ]
        return model


class WorkflowStepModel(Base):
    """One ordered step of a workflow definition. Immutable."""

    __tablename__ = "workflow_steps"

    __table_args__ = (
        UniqueConstraint(
            "workflow_id", "step_order",
            name="uq_workflow_steps_order",
        ),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_definitions.id"),
        nullable=False,
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str] = mapped_column(String(200), nullable=False)
    approver_role: Mapped[str] = mapped_column(String(50), nullable=False)

    workflow: Mapped["WorkflowDefinitionModel"] = relationship(
        "WorkflowDefinitionModel",
        back_populates="steps",
    )

    def __repr__(self) -> str:
        return f"<WorkflowStep {self.step_order} {self.step_name} ({self.approver_role})>"


@event.listens_for(WorkflowStepModel, "before_update")
def prevent_step_update(mapper, connection, target):
    """Prevent updates to workflow steps."""
    raise ImmutabilityViolationError(
        entity_type="WorkflowStep",
        entity_id=str(target.id),
        reason="Workflow steps are immutable -- register a new definition instead",
    )


@event.listens_for(WorkflowStepModel, "before_delete")
def prevent_step_delete(mapper, connection, target):
    """Prevent deletion of workflow steps."""
    raise ImmutabilityViolationError(
        entity_type="WorkflowStep",
        entity_id=str(target.id),
        reason="Workflow steps are immutable -- cannot delete",
    )
