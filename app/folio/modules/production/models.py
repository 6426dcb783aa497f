from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.folio.models import Base

if TYPE_CHECKING:
    from app.folio.modules.contacts.models import Contact
    from app.folio.modules.titles.models import Title


class ProductionProject(Base):
    __tablename__ = "production_projects"
    __table_args__ = (
        Index("idx_production_projects_tenant", "tenant_id"),
        Index("idx_production_projects_title", "title_id"),
        Index("idx_production_projects_stage", "tenant_id", "workflow_stage"),
        Index("idx_production_projects_target_date", "target_publication_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    title_id: Mapped[int] = mapped_column(ForeignKey("titles.id", ondelete="RESTRICT"), nullable=False)

    target_publication_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")  # draft, in-progress, completed, cancelled

    # Kanban position
    workflow_stage: Mapped[str] = mapped_column(String(32), nullable=False, default="manuscript_received")
    stage_entered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    # [{"from": ..., "to": ..., "timestamp": iso, "user_id": int}, ...]
    workflow_stage_history: Mapped[list | None] = mapped_column(JSON, nullable=True)

    manuscript_file_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    manuscript_file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    manuscript_file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    manuscript_uploaded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Soft delete
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    deleted_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    title: Mapped["Title"] = relationship("Title", lazy="selectin")
    tasks: Mapped[list["ProductionTask"]] = relationship(
        "ProductionTask",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ProductionTask.id",
    )
    proofs: Mapped[list["ProofFile"]] = relationship(
        "ProofFile",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ProofFile.version.desc()",
    )

    @property
    def live_tasks(self) -> list["ProductionTask"]:
        return [t for t in self.tasks if t.deleted_at is None]

    @property
    def live_proofs(self) -> list["ProofFile"]:
        return [p for p in self.proofs if p.deleted_at is None]


class ProductionTask(Base):
    __tablename__ = "production_tasks"
    __table_args__ = (
        Index("idx_production_tasks_project", "project_id"),
        Index("idx_production_tasks_vendor", "vendor_id"),
        Index("idx_production_tasks_due_date", "due_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    project_id: Mapped[int] = mapped_column(ForeignKey("production_projects.id", ondelete="CASCADE"), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    task_type: Mapped[str] = mapped_column(String(20), nullable=False, default="other")  # editing, design, proofing, printing, other
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending, in-progress, completed, cancelled
    vendor_id: Mapped[int | None] = mapped_column(ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    project: Mapped[ProductionProject] = relationship("ProductionProject", back_populates="tasks")
    vendor: Mapped["Contact | None"] = relationship("Contact", foreign_keys=[vendor_id], lazy="selectin")


class ProofFile(Base):
    __tablename__ = "proof_files"
    __table_args__ = (
        UniqueConstraint("project_id", "version", name="uq_proof_files_project_version"),
        Index("idx_proof_files_project", "project_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    project_id: Mapped[int] = mapped_column(ForeignKey("production_projects.id", ondelete="CASCADE"), nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    file_key: Mapped[str] = mapped_column(String(512), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(128), nullable=False, default="application/pdf")
    sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    uploaded_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    approval_status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")  # pending, approved, corrections_requested
    approval_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    approved_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    deleted_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    project: Mapped[ProductionProject] = relationship("ProductionProject", back_populates="proofs")
