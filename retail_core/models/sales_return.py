import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Text, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from retail_core.database import Base
from retail_core.db_types import UUIDType, MoneyType, QuantityType, RateType

if TYPE_CHECKING:
    from retail_core.models.sale import Sale, SaleLine


class ReturnStatus(str, Enum):
    """Return status. COMPLETED and CANCELLED are terminal."""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RefundMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    BANK_TRANSFER = "BANK_TRANSFER"
    STORE_CREDIT = "STORE_CREDIT"
    ORIGINAL_PAYMENT = "ORIGINAL_PAYMENT"


class SalesReturn(Base):
    """
    Customer return against a completed sale.

    Created PENDING without touching stock; stock comes back only when the
    return is processed.
    """
    __tablename__ = "sales_returns"
    __table_args__ = (
        Index('ix_sales_return_sale_status', 'sale_id', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    return_number: Mapped[str] = mapped_column(
        String(40),
        unique=True,
        nullable=False,
        index=True
    )
    sale_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("sales.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    return_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    reason: Mapped[str] = mapped_column(String(200), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(30),
        default="PENDING",
        nullable=False,
        index=True,
        comment="PENDING, COMPLETED, CANCELLED"
    )

    # Totals (refund_amount == sum of line totals)
    subtotal: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0.00"), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0.00"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0.00"), nullable=False)
    refund_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0.00"), nullable=False)

    # Refund
    refund_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    refund_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Audit
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    processed_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    sale: Mapped["Sale"] = relationship("Sale", back_populates="returns")
    lines: Mapped[List["ReturnLine"]] = relationship(
        "ReturnLine",
        back_populates="sales_return",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<SalesReturn(return_number='{self.return_number}', status='{self.status}')>"


class ReturnLine(Base):
    """Returned quantity of one sale line, priced with a prorated discount."""
    __tablename__ = "sales_return_lines"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_return_line_quantity_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    return_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("sales_returns.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sale_line_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("sale_lines.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False
    )
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(RateType, default=Decimal("0.00"), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0.00"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0.00"), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    condition_note: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Relationships
    sales_return: Mapped["SalesReturn"] = relationship("SalesReturn", back_populates="lines")
    sale_line: Mapped["SaleLine"] = relationship("SaleLine")

    def __repr__(self) -> str:
        return f"<ReturnLine(product='{self.product_name}', qty={self.quantity})>"
