"""Sales documents (invoices, quotes, orders, ...)."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import Date, Float, ForeignKey, Numeric, String, Text, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from aris.db.base import Base
from aris.db.types import JSONType, utcnow


class SalesDocument(Base):
    __tablename__ = "sales_documents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    document_type: Mapped[str] = mapped_column(String(30), nullable=False)
    number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    document_date: Mapped[date | None] = mapped_column("date", Date, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
    )
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    total_amount: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), default=0, server_default=text("0"), nullable=False
    )
    tax_amount: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), default=0, server_default=text("0"), nullable=False
    )
    currency: Mapped[str] = mapped_column(
        String(3), default="EUR", server_default=text("'EUR'"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(30), default="draft", server_default=text("'draft'"), nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict] = mapped_column("metadata", JSONType, default=dict, nullable=False)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    items: Mapped[list["SalesDocumentItem"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="SalesDocumentItem.position",
    )


class SalesDocumentItem(Base):
    __tablename__ = "sales_document_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("sales_documents.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    position: Mapped[int] = mapped_column(default=0, server_default=text("0"), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[float] = mapped_column(Float, default=1, nullable=False)
    unit_price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    tax_rate: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    discount: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    total_price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)

    document: Mapped["SalesDocument"] = relationship(back_populates="items")
