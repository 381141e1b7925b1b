"""
Return Service: partial returns against completed sales.

Lifecycle:
    PENDING ──process──> COMPLETED   (stock released, refund recorded)
       └────cancel────> CANCELLED   (returned quantities given back to the sale lines)

Creating a return reserves the returned quantity on each sale line with a
conditional UPDATE (ROUND(quantity - returned_quantity - q, 3) >= 0) but does not touch
stock. Stock comes back only when the return is processed. Status moves
through compare-and-set UPDATEs, so two concurrent processors cannot both win.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
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
from retail_core.db_types import round_quantity
from retail_core.models.sale import Sale, SaleLine, SaleStatus
from retail_core.models.sales_return import SalesReturn, ReturnLine, ReturnStatus, RefundMethod
from retail_core.schemas.sales_return import ReturnCreate
from retail_core.services.document_number_service import DocumentNumberAllocator
from retail_core.services.inventory_ledger import InventoryLedger
from retail_core.services.pricing_engine import PricingEngine, to_decimal, to_quantity

logger = logging.getLogger(__name__)


RETURNABLE_SALE_STATUSES = (SaleStatus.COMPLETED.value, SaleStatus.PENDING_APPROVAL.value)


@dataclass
class ReturnableLine:
    """A sale line with quantity still available to return."""
    sale_line_id: uuid.UUID
    product_id: uuid.UUID
    product_name: str
    quantity: Decimal
    returned_quantity: Decimal
    returnable_quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    discount_amount: Decimal
    discount_percentage: Decimal


class ReturnService:
    """Service for creating, processing and cancelling sales returns."""

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or default_settings
        self.ledger = InventoryLedger(db)
        self.pricing = PricingEngine()
        self.numbers = DocumentNumberAllocator(db, self.settings)

    # ==================== READ ====================

    async def _get_sale(self, sale_id: uuid.UUID) -> Sale:
        result = await self.db.execute(
            select(Sale)
            .options(selectinload(Sale.lines))
            .where(Sale.id == sale_id)
            .execution_options(populate_existing=True)
        )
        sale = result.scalar_one_or_none()
        if not sale:
            raise NotFoundError("Sale", sale_id)
        return sale

    async def get_return(self, return_id: uuid.UUID) -> SalesReturn:
        """Get return with lines; raises NotFoundError."""
        result = await self.db.execute(
            select(SalesReturn)
            .options(selectinload(SalesReturn.lines))
            .where(SalesReturn.id == return_id)
            .execution_options(populate_existing=True)
        )
        sales_return = result.scalar_one_or_none()
        if not sales_return:
            raise NotFoundError("SalesReturn", return_id)
        return sales_return

    async def list_returns_for_sale(self, sale_id: uuid.UUID) -> List[SalesReturn]:
        result = await self.db.execute(
            select(SalesReturn)
            .options(selectinload(SalesReturn.lines))
            .where(SalesReturn.sale_id == sale_id)
            .order_by(SalesReturn.return_date, SalesReturn.return_number)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_returnable_lines(self, sale_id: uuid.UUID) -> List[ReturnableLine]:
        """Lines of ``sale_id`` that still have something left to return."""
        sale = await self._get_sale(sale_id)
        return [
            ReturnableLine(
                sale_line_id=line.id,
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=line.quantity,
                returned_quantity=line.returned_quantity,
                returnable_quantity=line.returnable_quantity,
                unit_price=line.unit_price,
                tax_rate=line.tax_rate,
                discount_amount=line.discount_amount,
                discount_percentage=line.discount_percentage,
            )
            for line in sale.lines
            if line.returnable_quantity > 0
        ]

    # ==================== VALIDATE ====================

    @staticmethod
    def _check_selection(sale: Sale, selection: Dict[uuid.UUID, Any]) -> Dict[uuid.UUID, str]:
        lines = {line.id: line for line in sale.lines}
        errors: Dict[uuid.UUID, str] = {}

        for line_id, requested in selection.items():
            line = lines.get(line_id)
            if line is None:
                errors[line_id] = "Line does not belong to this sale"
                continue
            try:
                qty = to_quantity(to_decimal(requested, "quantity"))
            except ValidationError:
                errors[line_id] = f"Invalid quantity {requested!r}"
                continue
            if qty <= 0:
                errors[line_id] = "Return quantity must be greater than zero"
            elif qty > line.returnable_quantity:
                errors[line_id] = (
                    f"Cannot return {qty} of {line.product_name}; "
                    f"only {line.returnable_quantity} returnable"
                )
        return errors

    async def validate_quantities(
        self,
        sale_id: uuid.UUID,
        selection: Dict[uuid.UUID, Any],
    ) -> Dict[uuid.UUID, str]:
        """
        Check a batch of requested return quantities.

        Returns a map of sale line id -> error message; empty means valid.
        """
        sale = await self._get_sale(sale_id)
        return self._check_selection(sale, selection)

    # ==================== CREATE ====================

    async def create_return(self, data: ReturnCreate, created_by: Optional[str] = None) -> SalesReturn:
        """
        Create a PENDING return. The whole batch is accepted or rejected.

        Raises:
            ValidationError: empty selection or any invalid line (see ``errors``)
            NotFoundError: unknown sale
            StateError: sale is not COMPLETED / PENDING_APPROVAL
            ConflictError: a concurrent return took the remaining quantity
        """
        return_number = None
        try:
            selection = data.selection
            if not selection:
                raise ValidationError(
                    "Select at least one item to return",
                    errors={"lines": "at least one line is required"},
                )

            sale = await self._get_sale(data.sale_id)
            if sale.status not in RETURNABLE_SALE_STATUSES:
                raise StateError(
                    "Sale", sale.id, sale.status, RETURNABLE_SALE_STATUSES, action="return items from"
                )

            errors = self._check_selection(sale, selection)
            if errors:
                raise ValidationError("Invalid return quantities", errors=errors, sale_id=sale.id)

            return_date = datetime.now(timezone.utc)
            return_number = await self.numbers.allocate("RETURN", on_date=return_date.date())

            notes_by_line = {}
            for line_data in data.lines:
                notes_by_line.setdefault(line_data.sale_line_id, line_data.condition_note)

            sale_lines = {line.id: line for line in sale.lines}
            priced = []
            for line_id, requested in selection.items():
                sale_line = sale_lines[line_id]
                pricing = self.pricing.compute_return_line(
                    unit_price=sale_line.unit_price,
                    original_quantity=sale_line.quantity,
                    return_quantity=requested,
                    original_discount_amount=sale_line.discount_amount,
                    tax_rate=sale_line.tax_rate,
                )
                priced.append((sale_line, pricing))

            totals = self.pricing.summarize(pricing for _, pricing in priced)

            # Claim the quantities; losing a race here aborts the whole return
            for sale_line, pricing in priced:
                result = await self.db.execute(
                    update(SaleLine)
                    .where(
                        SaleLine.id == sale_line.id,
                        round_quantity(SaleLine.quantity - SaleLine.returned_quantity - pricing.quantity) >= 0,
                    )
                    .values(returned_quantity=round_quantity(SaleLine.returned_quantity + pricing.quantity))
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConflictError(
                        f"Return quantity for {sale_line.product_name} is no longer available",
                        sale_line_id=sale_line.id,
                        requested=pricing.quantity,
                    )

            sales_return = SalesReturn(
                return_number=return_number,
                sale_id=sale.id,
                return_date=return_date,
                reason=data.reason,
                notes=data.notes,
                status=ReturnStatus.PENDING.value,
                subtotal=totals.subtotal,
                discount_amount=totals.discount_amount,
                tax_amount=totals.tax_amount,
                refund_amount=totals.total,
                created_by=created_by,
            )
            for sale_line, pricing in priced:
                sales_return.lines.append(ReturnLine(
                    sale_line_id=sale_line.id,
                    product_id=sale_line.product_id,
                    product_name=sale_line.product_name,
                    quantity=pricing.quantity,
                    unit_price=pricing.unit_price,
                    tax_rate=pricing.tax_rate,
                    discount_amount=pricing.discount_amount,
                    tax_amount=pricing.tax_amount,
                    line_total=pricing.line_total,
                    condition_note=notes_by_line.get(sale_line.id),
                ))

            self.db.add(sales_return)
            await self.db.commit()
            logger.info(
                f"Return {return_number} created for sale {sale.invoice_number}: "
                f"{len(priced)} lines, refund {totals.total}"
            )
            return await self.get_return(sales_return.id)

        except RetailCoreError as e:
            await self.db.rollback()
            logger.warning(f"Return rejected: {e.message}")
            raise
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(f"Database integrity error creating return: {e}")
            if return_number and "return_number" in str(e.orig):
                raise DocumentNumberConflictError(return_number) from e
            raise ConflictError("Return creation failed: conflicting data") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error creating return: {e}")
            raise

    # ==================== TRANSITIONS ====================

    async def _transition(
        self,
        return_id: uuid.UUID,
        to_status: ReturnStatus,
        action: str,
        values: Dict[str, Any],
    ) -> None:
        """Compare-and-set PENDING -> ``to_status``; StateError if someone else moved it."""
        result = await self.db.execute(
            update(SalesReturn)
            .where(
                SalesReturn.id == return_id,
                SalesReturn.status == ReturnStatus.PENDING.value,
            )
            .values(status=to_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = (await self.db.execute(
                select(SalesReturn.status).where(SalesReturn.id == return_id)
            )).scalar_one_or_none()
            if current is None:
                raise NotFoundError("SalesReturn", return_id)
            raise StateError(
                "SalesReturn", return_id, current, ReturnStatus.PENDING.value, action=action
            )

    async def process_return(
        self,
        return_id: uuid.UUID,
        refund_method: str,
        refund_reference: Optional[str] = None,
        processed_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> SalesReturn:
        """Complete a PENDING return: restock every line and record the refund."""
        try:
            method = parse_enum(RefundMethod, refund_method)
            if method is None:
                valid = ", ".join(m.value for m in RefundMethod)
                raise ValidationError(
                    f"Invalid refund method {refund_method!r}. Valid methods: {valid}",
                    errors={"refund_method": "invalid"},
                )

            sales_return = await self.get_return(return_id)

            values = {
                "refund_method": get_enum_value(method),
                "refund_reference": refund_reference,
                "processed_by": processed_by,
                "processed_at": datetime.now(timezone.utc),
            }
            if notes:
                values["notes"] = notes
            await self._transition(return_id, ReturnStatus.COMPLETED, "process", values)

            for line in sales_return.lines:
                await self.ledger.release(line.product_id, line.quantity)

            await self.db.commit()
            logger.info(
                f"Return {sales_return.return_number} processed by {processed_by}: "
                f"refund {sales_return.refund_amount} via {values['refund_method']}"
            )
            return await self.get_return(return_id)

        except RetailCoreError as e:
            await self.db.rollback()
            logger.warning(f"Return processing rejected: {e.message}")
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error processing return {return_id}: {e}")
            raise

    async def cancel_return(
        self,
        return_id: uuid.UUID,
        reason: str,
        cancelled_by: Optional[str] = None,
    ) -> SalesReturn:
        """Cancel a PENDING return and hand its quantities back to the sale lines."""
        try:
            sales_return = await self.get_return(return_id)

            await self._transition(
                return_id,
                ReturnStatus.CANCELLED,
                "cancel",
                {
                    "cancelled_by": cancelled_by,
                    "cancelled_at": datetime.now(timezone.utc),
                    "cancellation_reason": reason,
                },
            )

            for line in sales_return.lines:
                result = await self.db.execute(
                    update(SaleLine)
                    .where(
                        SaleLine.id == line.sale_line_id,
                        round_quantity(SaleLine.returned_quantity - line.quantity) >= 0,
                    )
                    .values(returned_quantity=round_quantity(SaleLine.returned_quantity - line.quantity))
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConflictError(
                        f"Returned quantity on sale line {line.sale_line_id} is out of sync",
                        sale_line_id=line.sale_line_id,
                    )

            await self.db.commit()
            logger.info(f"Return {sales_return.return_number} cancelled by {cancelled_by}: {reason}")
            return await self.get_return(return_id)

        except RetailCoreError as e:
            await self.db.rollback()
            logger.warning(f"Return cancellation rejected: {e.message}")
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error cancelling return {return_id}: {e}")
            raise
