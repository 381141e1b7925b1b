"""
Pydantic schemas for Sales Returns.

Quantities on ReturnLineCreate are deliberately unconstrained here; the
return service validates the whole batch and reports a per-line error map.
"""
from pydantic import Field
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal
import uuid

from retail_core.schemas.base import BaseResponseSchema, BaseCreateSchema


class ReturnLineCreate(BaseCreateSchema):
    sale_line_id: uuid.UUID
    quantity: Decimal
    condition_note: Optional[str] = Field(None, max_length=200)


class ReturnCreate(BaseCreateSchema):
    """Return creation schema."""
    sale_id: uuid.UUID
    reason: str = Field(..., min_length=1, max_length=200)
    notes: Optional[str] = None
    lines: List[ReturnLineCreate] = Field(default_factory=list)

    @property
    def selection(self) -> Dict[uuid.UUID, Decimal]:
        """Requested quantity per sale line, duplicates summed."""
        selected: Dict[uuid.UUID, Decimal] = {}
        for line in self.lines:
            selected[line.sale_line_id] = selected.get(line.sale_line_id, Decimal("0")) + line.quantity
        return selected


class ReturnProcess(BaseCreateSchema):
    refund_method: str = Field(..., min_length=1, max_length=30)
    refund_reference: Optional[str] = Field(None, max_length=100)
    processed_by: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class ReturnCancel(BaseCreateSchema):
    reason: str = Field(..., min_length=1, max_length=500)
    cancelled_by: Optional[str] = Field(None, max_length=100)


class ReturnableLineResponse(BaseResponseSchema):
    """A sale line that still has quantity available to return."""
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


class ReturnLineResponse(BaseResponseSchema):
    id: uuid.UUID
    sale_line_id: uuid.UUID
    product_id: uuid.UUID
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal
    condition_note: Optional[str] = None


class ReturnResponse(BaseResponseSchema):
    """Sales return response schema."""
    id: uuid.UUID
    return_number: str
    sale_id: uuid.UUID
    return_date: datetime
    reason: str
    notes: Optional[str] = None
    status: str  # VARCHAR in DB

    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    refund_amount: Decimal

    refund_method: Optional[str] = None
    refund_reference: Optional[str] = None
    created_by: Optional[str] = None
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    lines: List[ReturnLineResponse] = []
