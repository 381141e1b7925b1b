import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from retail_core.database import Base
from retail_core.db_types import UUIDType, MoneyType

if TYPE_CHECKING:
    from retail_core.models.sale import Sale


class Customer(Base):
    """
    Customer record.

    total_orders / total_purchases / last_purchase_date are denormalized
    counters bumped when a sale is created. They are not recomputed when a
    sale is later cancelled or its payment adjusted.
    """
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Denormalized aggregates
    total_orders: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_purchases: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False
    )
    last_purchase_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    sales: Mapped[List["Sale"]] = relationship("Sale", back_populates="customer")

    def __repr__(self) -> str:
        return f"<Customer(name='{self.name}', orders={self.total_orders})>"
