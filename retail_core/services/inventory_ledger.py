"""
Inventory Ledger.

Sole writer of Product.stock_quantity. Prevents overselling by reserving
stock with a single compare-and-decrement UPDATE:

    UPDATE products SET stock_quantity = ROUND(stock_quantity - :q, 3)
    WHERE id = :id AND is_active AND ROUND(stock_quantity - :q, 3) >= 0

Two concurrent callers can never both pass the check for the last units,
and stock can never go negative. The ledger never commits; it runs inside
the caller's transaction.
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from retail_core.core.exceptions import InsufficientStockError, NotFoundError, ValidationError
from retail_core.db_types import round_quantity
from retail_core.models.product import Product
from retail_core.services.pricing_engine import to_decimal, to_quantity

logger = logging.getLogger(__name__)


@dataclass
class StockMovement:
    """Result of a successful reserve/release."""
    product_id: uuid.UUID
    quantity: Decimal
    direction: str  # OUT or IN


class InventoryLedger:
    """Atomic stock reservation and release."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _validate_quantity(quantity: Any) -> Decimal:
        qty = to_quantity(to_decimal(quantity, "quantity"))
        if qty <= 0:
            raise ValidationError(
                f"Quantity must be greater than zero, got {qty}",
                errors={"quantity": "must be > 0"},
            )
        return qty

    async def reserve(self, product_id: uuid.UUID, quantity: Any) -> StockMovement:
        """
        Decrement stock if at least ``quantity`` is available.

        Raises:
            NotFoundError: product does not exist
            ValidationError: product inactive or quantity not positive
            InsufficientStockError: not enough stock
        """
        qty = self._validate_quantity(quantity)

        result = await self.db.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.is_active == True,  # noqa: E712
                round_quantity(Product.stock_quantity - qty) >= 0,
            )
            .values(stock_quantity=round_quantity(Product.stock_quantity - qty))
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 1:
            logger.debug(f"Reserved {qty} of product {product_id}")
            return StockMovement(product_id=product_id, quantity=qty, direction="OUT")

        # Nothing matched: read once to explain why
        row = (await self.db.execute(
            select(Product.name, Product.is_active, Product.stock_quantity)
            .where(Product.id == product_id)
        )).first()

        if row is None:
            raise NotFoundError("Product", product_id)
        if not row.is_active:
            raise ValidationError(
                f"Product {row.name} is not active",
                errors={str(product_id): "product is inactive"},
                product_id=product_id,
            )

        logger.warning(
            f"Insufficient stock for {row.name}: available {row.stock_quantity}, requested {qty}"
        )
        raise InsufficientStockError(
            product_id=product_id,
            product_name=row.name,
            available=row.stock_quantity,
            requested=qty,
        )

    async def release(self, product_id: uuid.UUID, quantity: Any) -> StockMovement:
        """Return ``quantity`` units to stock (completed return or cancelled sale)."""
        qty = self._validate_quantity(quantity)

        result = await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=round_quantity(Product.stock_quantity + qty))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFoundError("Product", product_id)

        logger.debug(f"Released {qty} of product {product_id}")
        return StockMovement(product_id=product_id, quantity=qty, direction="IN")

    async def get_available(self, product_id: uuid.UUID) -> Decimal:
        """Current stock as seen by this transaction."""
        available = (await self.db.execute(
            select(Product.stock_quantity).where(Product.id == product_id)
        )).scalar_one_or_none()
        if available is None:
            raise NotFoundError("Product", product_id)
        return available
