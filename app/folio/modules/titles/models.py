from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.folio.models import Base

if TYPE_CHECKING:
    from app.folio.modules.contacts.models import Contact


class Title(Base):
    __tablename__ = "titles"
    __table_args__ = (
        UniqueConstraint("tenant_id", "isbn13", name="uq_titles_tenant_isbn13"),
        Index("idx_titles_tenant", "tenant_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)

    name: Mapped[str] = mapped_column(String(500), nullable=False)
    isbn13: Mapped[str | None] = mapped_column(String(13), nullable=True)  # digits only
    author_contact_id: Mapped[int | None] = mapped_column(ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    author: Mapped["Contact | None"] = relationship("Contact", foreign_keys=[author_contact_id], lazy="selectin")
