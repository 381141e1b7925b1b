from pydantic import Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from retail_core.schemas.base import BaseResponseSchema, BaseCreateSchema


# ==================== SALE LINE SCHEMAS ====================

class SaleLineCreate(BaseCreateSchema):
    """Sale line creation schema."""
    product_id: uuid.UUID
    quantity: Decimal = Field(..., gt=0)
    unit_price: Optional[Decimal] = Field(None, ge=0)  # Override catalog price if needed
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    discount_amount: Optional[Decimal] = Field(None, ge=0)  # Wins over percentage


class SaleLineResponse(BaseResponseSchema):
    """Sale line response schema."""
    id: uuid.UUID
    line_number: int
    product_id: uuid.UUID
    product_name: str
    unit_of_measure: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    discount_amount: Decimal
    discount_percentage: Decimal
    tax_amount: Decimal
    line_total: Decimal
    returned_quantity: Decimal
    returnable_quantity: Decimal


# ==================== SALE SCHEMAS ====================

class SaleCreate(BaseCreateSchema):
    """
    Sale creation schema.

    payment_method is free text; unknown or missing values fall back to the
    configured default instead of failing the sale.
    """
    lines: List[SaleLineCreate] = Field(default_factory=list)
    customer_id: Optional[uuid.UUID] = None
    customer_name: Optional[str] = Field(None, max_length=200)
    customer_phone: Optional[str] = Field(None, max_length=20)
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class SaleCancel(BaseCreateSchema):
    reason: str = Field(..., min_length=1, max_length=500)
    cancelled_by: Optional[str] = Field(None, max_length=100)


class SaleResponse(BaseResponseSchema):
    """Sale response schema."""
    id: uuid.UUID
    invoice_number: str
    sale_date: datetime
    status: str  # VARCHAR in DB
    customer_id: Optional[uuid.UUID] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    payment_method: str
    payment_reference: Optional[str] = None

    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    calculated_total: Decimal

    amount_received: Optional[Decimal] = None
    payment_adjustment: Decimal
    adjustment_type: Optional[str] = None
    adjustment_reason: Optional[str] = None
    requires_approval: bool
    final_total: Optional[Decimal] = None

    processed_by: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    notes: Optional[str] = None

    lines: List[SaleLineResponse] = []
