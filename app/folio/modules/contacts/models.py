from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.folio.models import Base


class Contact(Base):
    """
    A person or organisation the publisher deals with. What a contact *is*
    (author, customer, vendor, distributor) lives in ContactRole rows.
    """

    __tablename__ = "contacts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_contacts_tenant_email"),
        Index("idx_contacts_tenant", "tenant_id"),
        Index("idx_contacts_tenant_status", "tenant_id", "status"),
        Index("idx_contacts_name", "last_name", "first_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)

    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    address_line1: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address_line2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True, default="USA")

    tax_id: Mapped[str | None] = mapped_column(String(50), nullable=True)  # free-form legacy field
    payment_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)  # discriminated by "method"
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")  # active, inactive

    # Set when the contact can sign in to the author portal
    portal_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True
    )

    # Tax information (TIN is only ever stored encrypted)
    tin_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    tin_type: Mapped[str | None] = mapped_column(String(10), nullable=True)  # ssn, ein
    tin_last_four: Mapped[str | None] = mapped_column(String(4), nullable=True)
    is_us_based: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    w9_received: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    w9_received_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    roles: Mapped[list["ContactRole"]] = relationship(
        "ContactRole",
        back_populates="contact",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ContactRole.assigned_at",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def role(self, role: str) -> "ContactRole | None":
        for r in self.roles:
            if r.role == role:
                return r
        return None

    def has_role(self, role: str) -> bool:
        return self.role(role) is not None


class ContactRole(Base):
    __tablename__ = "contact_roles"
    __table_args__ = (
        UniqueConstraint("contact_id", "role", name="uq_contact_roles_contact_role"),
        Index("idx_contact_roles_role", "role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    contact_id: Mapped[int] = mapped_column(ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # author, customer, vendor, distributor
    role_specific_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    assigned_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    contact: Mapped[Contact] = relationship("Contact", back_populates="roles")
