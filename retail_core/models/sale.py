import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import (
    String, Boolean, DateTime, ForeignKey, Integer, Text, Index, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from retail_core.database import Base
from retail_core.db_types import UUIDType, MoneyType, QuantityType, RateType

if TYPE_CHECKING:
    from retail_core.models.customer import Customer
    from retail_core.models.product import Product
    from retail_core.models.sales_return import SalesReturn


class SaleStatus(str, Enum):
    """Sale status enumeration."""
    PENDING = "PENDING"                    # Transient, never committed
    PENDING_APPROVAL = "PENDING_APPROVAL"  # Payment adjustment awaiting manager
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, Enum):
    """Payment method enumeration."""
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    STORE_CREDIT = "STORE_CREDIT"


class AdjustmentType(str, Enum):
    """Classification of a received-vs-calculated payment gap."""
    CUSTOMER_CONVENIENCE = "CUSTOMER_CONVENIENCE"
    CASH_SHORTAGE = "CASH_SHORTAGE"
    SYSTEM_ERROR = "SYSTEM_ERROR"
    MANAGER_DISCRETION = "MANAGER_DISCRETION"


# Statuses from which a sale may still be cancelled
CANCELLABLE_STATUSES = (SaleStatus.COMPLETED.value, SaleStatus.PENDING_APPROVAL.value)


class Sale(Base):
    """
    Point-of-sale transaction.

    Totals are frozen at creation. Afterwards only status, payment and
    audit fields change.
    """
    __tablename__ = "sales"
    __table_args__ = (
        Index('ix_sale_status_date', 'status', 'sale_date'),
        Index('ix_sale_customer_date', 'customer_id', 'sale_date'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    invoice_number: Mapped[str] = mapped_column(
        String(40),
        unique=True,
        nullable=False,
        index=True
    )
    sale_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Customer (optional, walk-in sales carry name/phone only)
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True
    )
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Payment
    payment_method: Mapped[str] = mapped_column(
        String(30),
        default="CASH",
        nullable=False,
        comment="CASH, CARD, UPI, BANK_TRANSFER, CHEQUE, STORE_CREDIT"
    )
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(
        String(30),
        default="PENDING",
        nullable=False,
        index=True,
        comment="PENDING, PENDING_APPROVAL, COMPLETED, CANCELLED"
    )

    # Totals
    subtotal: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0.00"), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0.00"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0.00"), nullable=False)
    calculated_total: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0.00"), nullable=False)

    # Payment reconciliation
    amount_received: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)
    payment_adjustment: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False,
        comment="amount_received - calculated_total"
    )
    adjustment_type: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
        comment="CUSTOMER_CONVENIENCE, CASH_SHORTAGE, SYSTEM_ERROR, MANAGER_DISCRETION"
    )
    adjustment_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    final_total: Mapped[Optional[Decimal]] = mapped_column(
        MoneyType,
        nullable=True,
        comment="Null while a payment adjustment awaits approval"
    )

    # Audit
    processed_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    customer: Mapped[Optional["Customer"]] = relationship("Customer", back_populates="sales")
    lines: Mapped[List["SaleLine"]] = relationship(
        "SaleLine",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleLine.line_number"
    )
    returns: Mapped[List["SalesReturn"]] = relationship(
        "SalesReturn",
        back_populates="sale",
        order_by="SalesReturn.return_date"
    )

    @property
    def is_cancellable(self) -> bool:
        return self.status in CANCELLABLE_STATUSES

    def __repr__(self) -> str:
        return f"<Sale(invoice_number='{self.invoice_number}', status='{self.status}')>"


class SaleLine(Base):
    """
    Line of a sale.

    discount_amount is the single stored discount; the percentage is derived.
    returned_quantity only moves through conditional UPDATEs.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sale_line_quantity_positive"),
        CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= quantity",
            name="ck_sale_line_returned_within_sold"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    sale_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("sales.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Product snapshot
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    unit_of_measure: Mapped[str] = mapped_column(String(20), default="PIECE", nullable=False)

    quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(RateType, default=Decimal("0.00"), nullable=False)

    discount_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0.00"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0.00"), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    returned_quantity: Mapped[Decimal] = mapped_column(
        QuantityType,
        default=Decimal("0"),
        nullable=False
    )

    # Relationships
    sale: Mapped["Sale"] = relationship("Sale", back_populates="lines")
    product: Mapped["Product"] = relationship("Product")

    @property
    def subtotal(self) -> Decimal:
        return (self.unit_price * self.quantity).quantize(Decimal("0.01"))

    @property
    def discount_percentage(self) -> Decimal:
        subtotal = self.subtotal
        if not subtotal:
            return Decimal("0.00")
        return (self.discount_amount / subtotal * 100).quantize(Decimal("0.01"))

    @property
    def returnable_quantity(self) -> Decimal:
        return self.quantity - (self.returned_quantity or Decimal("0"))

    def __repr__(self) -> str:
        return f"<SaleLine(product='{self.product_name}', qty={self.quantity})>"
