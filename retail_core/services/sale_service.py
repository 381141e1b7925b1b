"""
Sale Service: creates and cancels point-of-sale transactions.

create_sale runs as one unit of work:
    1. validate input (payment method falls back to the configured default)
    2. reserve stock for every line through the InventoryLedger
    3. price every line through the PricingEngine
    4. allocate the invoice number
    5. persist sale and lines
    6. bump the customer's denormalized aggregates
    7. commit

Any failure rolls the whole session back, so stock, sale rows and customer
aggregates stay untouched.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from retail_core.config import Settings, settings as default_settings
from retail_core.core.enum_utils import get_enum_value, parse_enum
from retail_core.core.exceptions import (
    ConflictError,
    DocumentNumberConflictError,
    NotFoundError,
    RetailCoreError,
    StateError,
    ValidationError,
)
from retail_core.db_types import round_money
from retail_core.models.customer import Customer
from retail_core.models.product import Product
from retail_core.models.sale import Sale, SaleLine, SaleStatus, PaymentMethod, CANCELLABLE_STATUSES
from retail_core.models.sales_return import SalesReturn, ReturnStatus
from retail_core.schemas.sale import SaleCreate
from retail_core.services.document_number_service import DocumentNumberAllocator
from retail_core.services.inventory_ledger import InventoryLedger
from retail_core.services.pricing_engine import PricingEngine

logger = logging.getLogger(__name__)


class SaleService:
    """Service for sale creation, lookup and cancellation."""

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or default_settings
        self.ledger = InventoryLedger(db)
        self.pricing = PricingEngine()
        self.numbers = DocumentNumberAllocator(db, self.settings)

    # ==================== READ ====================

    async def get_sale(self, sale_id: uuid.UUID) -> Sale:
        """Get sale with lines; raises NotFoundError."""
        stmt = (
            select(Sale)
            .options(selectinload(Sale.lines))
            .where(Sale.id == sale_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        sale = result.scalar_one_or_none()
        if not sale:
            raise NotFoundError("Sale", sale_id)
        return sale

    async def get_sale_by_invoice_number(self, invoice_number: str) -> Optional[Sale]:
        stmt = (
            select(Sale)
            .options(selectinload(Sale.lines))
            .where(Sale.invoice_number == invoice_number)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_returnable_quantities(self, sale_id: uuid.UUID) -> Dict[uuid.UUID, Decimal]:
        """Remaining returnable quantity per sale line."""
        sale = await self.get_sale(sale_id)
        return {line.id: line.returnable_quantity for line in sale.lines}

    # ==================== CREATE ====================

    def _resolve_payment_method(self, value: Optional[str]) -> str:
        method = parse_enum(PaymentMethod, value)
        if method is None:
            logger.warning(
                f"Invalid or missing payment method {value!r}, "
                f"defaulting to {self.settings.DEFAULT_PAYMENT_METHOD}"
            )
            return self.settings.DEFAULT_PAYMENT_METHOD
        return get_enum_value(method)

    async def _get_customer(self, customer_id: uuid.UUID) -> Customer:
        result = await self.db.execute(select(Customer).where(Customer.id == customer_id))
        customer = result.scalar_one_or_none()
        if not customer:
            raise NotFoundError("Customer", customer_id)
        return customer

    async def create_sale(self, data: SaleCreate, created_by: Optional[str] = None) -> Sale:
        """
        Create a completed sale, reserving stock for every line.

        Raises:
            ValidationError: no lines, inactive product, bad pricing input
            NotFoundError: unknown product or customer
            InsufficientStockError: a line asks for more than is on hand
            DocumentNumberConflictError: invoice number taken at commit
        """
        invoice_number = None
        try:
            if not data.lines:
                raise ValidationError(
                    "Sale must contain at least one line",
                    errors={"lines": "at least one line is required"},
                )

            payment_method = self._resolve_payment_method(data.payment_method)

            customer = None
            if data.customer_id:
                customer = await self._get_customer(data.customer_id)

            # Reserve first; a failure here aborts the whole sale
            for line_data in data.lines:
                await self.ledger.reserve(line_data.product_id, line_data.quantity)

            priced_lines = []
            for line_number, line_data in enumerate(data.lines, start=1):
                product = (await self.db.execute(
                    select(Product).where(Product.id == line_data.product_id)
                )).scalar_one()

                unit_price = line_data.unit_price if line_data.unit_price is not None else product.unit_price
                pricing = self.pricing.compute_line(
                    unit_price=unit_price,
                    quantity=line_data.quantity,
                    tax_rate=product.tax_rate,
                    discount_percentage=line_data.discount_percentage,
                    discount_amount=line_data.discount_amount,
                )
                priced_lines.append((line_number, product, pricing))

            totals = self.pricing.summarize(pricing for _, _, pricing in priced_lines)

            sale_date = datetime.now(timezone.utc)
            invoice_number = await self.numbers.allocate("INVOICE", on_date=sale_date.date())

            sale = Sale(
                invoice_number=invoice_number,
                sale_date=sale_date,
                customer_id=customer.id if customer else None,
                customer_name=data.customer_name or (customer.name if customer else None),
                customer_phone=data.customer_phone or (customer.phone if customer else None),
                payment_method=payment_method,
                payment_reference=data.payment_reference,
                status=SaleStatus.COMPLETED.value,
                subtotal=totals.subtotal,
                discount_amount=totals.discount_amount,
                tax_amount=totals.tax_amount,
                calculated_total=totals.total,
                payment_adjustment=Decimal("0.00"),
                requires_approval=False,
                processed_by=created_by,
                notes=data.notes,
            )
            for line_number, product, pricing in priced_lines:
                sale.lines.append(SaleLine(
                    line_number=line_number,
                    product_id=product.id,
                    product_name=product.name,
                    unit_of_measure=product.unit_of_measure,
                    quantity=pricing.quantity,
                    unit_price=pricing.unit_price,
                    tax_rate=pricing.tax_rate,
                    discount_amount=pricing.discount_amount,
                    tax_amount=pricing.tax_amount,
                    line_total=pricing.line_total,
                    returned_quantity=Decimal("0"),
                ))

            self.db.add(sale)
            await self.db.flush()

            if customer:
                await self.db.execute(
                    update(Customer)
                    .where(Customer.id == customer.id)
                    .values(
                        total_orders=Customer.total_orders + 1,
                        total_purchases=round_money(Customer.total_purchases + totals.total),
                        last_purchase_date=sale_date,
                    )
                    .execution_options(synchronize_session=False)
                )

            await self.db.commit()
            logger.info(
                f"Sale {invoice_number} created: {len(priced_lines)} lines, total {totals.total}"
            )
            return await self.get_sale(sale.id)

        except RetailCoreError as e:
            await self.db.rollback()
            logger.warning(f"Sale rejected: {e.message}")
            raise
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(f"Database integrity error creating sale: {e}")
            if invoice_number and "invoice_number" in str(e.orig):
                raise DocumentNumberConflictError(invoice_number) from e
            raise ConflictError("Sale creation failed: conflicting data") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error creating sale: {e}")
            raise
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Unexpected error creating sale: {e}")
            raise

    # ==================== CANCEL ====================

    async def _count_active_returns(self, sale_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(SalesReturn.id)).where(
                SalesReturn.sale_id == sale_id,
                SalesReturn.status != ReturnStatus.CANCELLED.value,
            )
        )
        return result.scalar_one()

    async def cancel_sale(
        self,
        sale_id: uuid.UUID,
        reason: str,
        cancelled_by: Optional[str] = None,
    ) -> Sale:
        """
        Cancel a sale that has no returns and put its stock back.

        Customer aggregates are left as they are.
        """
        try:
            sale = await self.get_sale(sale_id)

            if not sale.is_cancellable:
                raise StateError("Sale", sale_id, sale.status, CANCELLABLE_STATUSES, action="cancel")

            has_returned_lines = any(line.returned_quantity > 0 for line in sale.lines)
            if has_returned_lines or await self._count_active_returns(sale_id):
                raise StateError(
                    "Sale", sale_id, sale.status, "a sale without returns", action="cancel"
                )

            result = await self.db.execute(
                update(Sale)
                .where(Sale.id == sale_id, Sale.status.in_(CANCELLABLE_STATUSES))
                .values(
                    status=SaleStatus.CANCELLED.value,
                    cancelled_at=datetime.now(timezone.utc),
                    cancelled_by=cancelled_by,
                    cancellation_reason=reason,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                current = (await self.db.execute(
                    select(Sale.status).where(Sale.id == sale_id)
                )).scalar_one()
                raise StateError("Sale", sale_id, current, CANCELLABLE_STATUSES, action="cancel")

            for line in sale.lines:
                await self.ledger.release(line.product_id, line.quantity)

            await self.db.commit()
            logger.info(f"Sale {sale.invoice_number} cancelled by {cancelled_by}: {reason}")
            return await self.get_sale(sale_id)

        except RetailCoreError as e:
            await self.db.rollback()
            logger.warning(f"Sale cancellation rejected: {e.message}")
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error cancelling sale {sale_id}: {e}")
            raise
