"""
Payment Reconciliation Service.

Compares the amount a customer actually tendered against the sale's
calculated total and classifies the gap:

    |gap| <= 0.01                    no adjustment
    <= 5 units  and <= 1% of total   CUSTOMER_CONVENIENCE
    <= 20 units and <= 2% of total   CASH_SHORTAGE
    > 5% of total                    SYSTEM_ERROR
    anything else                    MANAGER_DISCRETION

Gaps over 20 units or 2% put the sale in PENDING_APPROVAL and defer
final_total until a manager approves. All thresholds come from settings.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from retail_core.config import Settings, settings as default_settings
from retail_core.core.exceptions import NotFoundError, RetailCoreError, StateError, ValidationError
from retail_core.models.sale import Sale, SaleStatus, AdjustmentType
from retail_core.services.pricing_engine import HUNDRED, ZERO, to_decimal, to_money

logger = logging.getLogger(__name__)


@dataclass
class PaymentResult:
    """Outcome of process_payment / approve."""
    success: bool
    message: str
    payment_adjustment: Decimal = ZERO
    requires_approval: bool = False
    adjustment_type: Optional[str] = None
    sale_id: Optional[uuid.UUID] = None
    status: Optional[str] = None
    final_total: Optional[Decimal] = None


class PaymentReconciliationService:
    """Records tendered amounts and gates large adjustments behind approval."""

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or default_settings

    async def _get_sale(self, sale_id: uuid.UUID) -> Sale:
        result = await self.db.execute(
            select(Sale)
            .where(Sale.id == sale_id)
            .execution_options(populate_existing=True)
        )
        sale = result.scalar_one_or_none()
        if not sale:
            raise NotFoundError("Sale", sale_id)
        return sale

    # ==================== CLASSIFICATION ====================

    def adjustment_percentage(self, adjustment: Decimal, calculated_total: Decimal) -> Decimal:
        if calculated_total <= 0:
            return ZERO
        return abs(adjustment) / calculated_total * HUNDRED

    def classify_adjustment(self, adjustment: Decimal, calculated_total: Decimal) -> AdjustmentType:
        s = self.settings
        amount = abs(adjustment)
        percentage = self.adjustment_percentage(adjustment, calculated_total)

        if amount <= s.CONVENIENCE_MAX_AMOUNT and percentage <= s.CONVENIENCE_MAX_PERCENT:
            return AdjustmentType.CUSTOMER_CONVENIENCE
        if amount <= s.CASH_SHORTAGE_MAX_AMOUNT and percentage <= s.CASH_SHORTAGE_MAX_PERCENT:
            return AdjustmentType.CASH_SHORTAGE
        if percentage > s.SYSTEM_ERROR_MIN_PERCENT:
            return AdjustmentType.SYSTEM_ERROR
        return AdjustmentType.MANAGER_DISCRETION

    def requires_approval(self, adjustment: Decimal, calculated_total: Decimal) -> bool:
        percentage = self.adjustment_percentage(adjustment, calculated_total)
        return (
            abs(adjustment) > self.settings.APPROVAL_AMOUNT_THRESHOLD
            or percentage > self.settings.APPROVAL_PERCENT_THRESHOLD
        )

    def describe_adjustment(self, adjustment: Decimal) -> str:
        amount = abs(adjustment)
        short = adjustment < 0

        if amount <= self.settings.CONVENIENCE_MAX_AMOUNT:
            return "Customer didn't have small change" if short else "Customer rounded up payment"
        if amount <= self.settings.CASH_SHORTAGE_MAX_AMOUNT:
            return "Customer short on cash" if short else "Customer paid extra"
        return "Significant underpayment" if short else "Significant overpayment"

    @staticmethod
    def _payment_message(amount_received: Decimal, adjustment: Optional[Decimal], needs_approval: bool) -> str:
        if adjustment is None:
            return f"Payment processed successfully. Exact amount received: {amount_received:,.2f}"
        if adjustment < 0:
            message = f"Payment processed with shortage of {abs(adjustment):,.2f}. "
            return message + ("Requires manager approval." if needs_approval else "Auto-approved.")
        message = f"Payment processed with overpayment of {adjustment:,.2f}. "
        return message + ("Requires manager approval." if needs_approval else "Customer paid extra.")

    # ==================== OPERATIONS ====================

    async def process_payment(
        self,
        sale_id: uuid.UUID,
        amount_received: Any,
        adjustment_reason: Optional[str] = None,
        processed_by: Optional[str] = None,
    ) -> PaymentResult:
        """
        Record the tendered amount for a sale and reconcile it.

        Raises:
            ValidationError: negative or non-numeric amount
            NotFoundError: unknown sale
            StateError: sale cancelled or already awaiting approval
        """
        try:
            received = to_money(to_decimal(amount_received, "amount_received"))
            if received < 0:
                raise ValidationError(
                    "Amount received cannot be negative",
                    errors={"amount_received": "must be >= 0"},
                )

            sale = await self._get_sale(sale_id)
            if sale.status != SaleStatus.COMPLETED.value:
                raise StateError(
                    "Sale", sale_id, sale.status, SaleStatus.COMPLETED.value, action="take payment for"
                )

            adjustment = received - sale.calculated_total

            if abs(adjustment) <= self.settings.PAYMENT_EPSILON:
                adjustment_type = None
                reason = None
                needs_approval = False
            else:
                adjustment_type = self.classify_adjustment(adjustment, sale.calculated_total).value
                reason = adjustment_reason or self.describe_adjustment(adjustment)
                needs_approval = self.requires_approval(adjustment, sale.calculated_total)

            new_status = SaleStatus.PENDING_APPROVAL if needs_approval else SaleStatus.COMPLETED
            final_total = None if needs_approval else received

            result = await self.db.execute(
                update(Sale)
                .where(Sale.id == sale_id, Sale.status == SaleStatus.COMPLETED.value)
                .values(
                    amount_received=received,
                    payment_adjustment=adjustment,
                    adjustment_type=adjustment_type,
                    adjustment_reason=reason,
                    requires_approval=needs_approval,
                    final_total=final_total,
                    status=new_status.value,
                    processed_by=processed_by or sale.processed_by,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                current = (await self.db.execute(
                    select(Sale.status).where(Sale.id == sale_id)
                )).scalar_one()
                raise StateError(
                    "Sale", sale_id, current, SaleStatus.COMPLETED.value, action="take payment for"
                )

            await self.db.commit()

            if needs_approval:
                logger.warning(
                    f"Sale {sale.invoice_number}: adjustment {adjustment} ({adjustment_type}) "
                    f"awaiting approval"
                )
            else:
                logger.info(f"Sale {sale.invoice_number}: payment {received} recorded, adjustment {adjustment}")

            return PaymentResult(
                success=True,
                message=self._payment_message(
                    received, adjustment if adjustment_type else None, needs_approval
                ),
                payment_adjustment=adjustment,
                requires_approval=needs_approval,
                adjustment_type=adjustment_type,
                sale_id=sale_id,
                status=new_status.value,
                final_total=final_total,
            )

        except RetailCoreError as e:
            await self.db.rollback()
            logger.warning(f"Payment rejected for sale {sale_id}: {e.message}")
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error processing payment for sale {sale_id}: {e}")
            raise

    async def approve(self, sale_id: uuid.UUID, approver: str) -> PaymentResult:
        """Approve a pending payment adjustment; final_total becomes amount_received."""
        try:
            sale = await self._get_sale(sale_id)
            if not sale.requires_approval or sale.status != SaleStatus.PENDING_APPROVAL.value:
                raise StateError(
                    "Sale", sale_id, sale.status, SaleStatus.PENDING_APPROVAL.value, action="approve"
                )

            result = await self.db.execute(
                update(Sale)
                .where(
                    Sale.id == sale_id,
                    Sale.requires_approval == True,  # noqa: E712
                    Sale.status == SaleStatus.PENDING_APPROVAL.value,
                )
                .values(
                    requires_approval=False,
                    status=SaleStatus.COMPLETED.value,
                    final_total=Sale.amount_received,
                    approved_by=approver,
                    approved_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                current = (await self.db.execute(
                    select(Sale.status).where(Sale.id == sale_id)
                )).scalar_one()
                raise StateError(
                    "Sale", sale_id, current, SaleStatus.PENDING_APPROVAL.value, action="approve"
                )

            await self.db.commit()
            logger.info(f"Sale {sale.invoice_number}: adjustment {sale.payment_adjustment} approved by {approver}")

            return PaymentResult(
                success=True,
                message=f"Payment adjustment approved by {approver}",
                payment_adjustment=sale.payment_adjustment,
                requires_approval=False,
                adjustment_type=sale.adjustment_type,
                sale_id=sale_id,
                status=SaleStatus.COMPLETED.value,
                final_total=sale.amount_received,
            )

        except RetailCoreError as e:
            await self.db.rollback()
            logger.warning(f"Approval rejected for sale {sale_id}: {e.message}")
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error approving sale {sale_id}: {e}")
            raise

    async def list_pending_approvals(self) -> List[Sale]:
        """Sales awaiting approval, oldest first."""
        result = await self.db.execute(
            select(Sale)
            .where(Sale.status == SaleStatus.PENDING_APPROVAL.value)
            .order_by(Sale.sale_date)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
