import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from retail_core.database import Base
from retail_core.db_types import UUIDType, MoneyType, QuantityType, RateType


class Product(Base):
    """
    Product catalog record.

    stock_quantity is written only by the InventoryLedger, always through a
    single conditional UPDATE so it can never go negative.
    """
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_product_stock_non_negative"),
        CheckConstraint("unit_price >= 0", name="ck_product_unit_price_non_negative"),
        CheckConstraint("tax_rate >= 0", name="ck_product_tax_rate_non_negative"),
        Index("ix_product_active_name", "is_active", "name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    sku: Mapped[Optional[str]] = mapped_column(String(50), unique=True, nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    unit_of_measure: Mapped[str] = mapped_column(
        String(20),
        default="PIECE",
        nullable=False,
        comment="PIECE, METER, KG, etc."
    )

    # Stock (fractional units supported)
    stock_quantity: Mapped[Decimal] = mapped_column(
        QuantityType,
        default=Decimal("0"),
        nullable=False
    )

    # Pricing
    unit_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    purchase_price: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False
    )
    tax_rate: Mapped[Decimal] = mapped_column(
        RateType,
        default=Decimal("5.00"),
        nullable=False,
        comment="Tax percentage applied on the post-discount amount"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

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

    def __repr__(self) -> str:
        return f"<Product(name='{self.name}', stock={self.stock_quantity})>"
