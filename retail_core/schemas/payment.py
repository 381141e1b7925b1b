from pydantic import Field
from typing import Optional
from decimal import Decimal
import uuid

from retail_core.schemas.base import BaseResponseSchema, BaseCreateSchema


class PaymentRequest(BaseCreateSchema):
    """Amount actually tendered for a sale."""
    amount_received: Decimal
    adjustment_reason: Optional[str] = Field(None, max_length=500)
    processed_by: Optional[str] = Field(None, max_length=100)


class ApprovalRequest(BaseCreateSchema):
    approver: str = Field(..., min_length=1, max_length=100)


class PaymentResultResponse(BaseResponseSchema):
    """Outcome of payment reconciliation."""
    success: bool
    message: str
    sale_id: Optional[uuid.UUID] = None
    status: Optional[str] = None
    payment_adjustment: Decimal = Decimal("0.00")
    requires_approval: bool = False
    adjustment_type: Optional[str] = None
    final_total: Optional[Decimal] = None


class PendingApprovalResponse(BaseResponseSchema):
    id: uuid.UUID
    invoice_number: str
    calculated_total: Decimal
    amount_received: Optional[Decimal] = None
    payment_adjustment: Decimal
    adjustment_type: Optional[str] = None
    adjustment_reason: Optional[str] = None
    processed_by: Optional[str] = None
