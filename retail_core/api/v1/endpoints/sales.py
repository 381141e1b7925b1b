from typing import List
import uuid

from fastapi import APIRouter, HTTPException, status

from retail_core.api.deps import DB
from retail_core.schemas.sale import SaleCreate, SaleCancel, SaleResponse
from retail_core.schemas.sales_return import ReturnableLineResponse, ReturnResponse
from retail_core.services.sale_service import SaleService
from retail_core.services.return_service import ReturnService


router = APIRouter(tags=["Sales"])


@router.post(
    "",
    response_model=SaleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_sale(
    data: SaleCreate,
    db: DB,
):
    """Create a sale, reserving stock for every line."""
    service = SaleService(db)
    return await service.create_sale(data)


@router.get(
    "/number/{invoice_number}",
    response_model=SaleResponse,
)
async def get_sale_by_invoice_number(
    invoice_number: str,
    db: DB,
):
    """Get sale by invoice number."""
    service = SaleService(db)
    sale = await service.get_sale_by_invoice_number(invoice_number)
    if not sale:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Sale not found"
        )
    return sale


@router.get(
    "/{sale_id}",
    response_model=SaleResponse,
)
async def get_sale(
    sale_id: uuid.UUID,
    db: DB,
):
    """Get sale details by ID."""
    service = SaleService(db)
    return await service.get_sale(sale_id)


@router.post(
    "/{sale_id}/cancel",
    response_model=SaleResponse,
)
async def cancel_sale(
    sale_id: uuid.UUID,
    data: SaleCancel,
    db: DB,
):
    """Cancel a sale without returns and restock its lines."""
    service = SaleService(db)
    return await service.cancel_sale(sale_id, reason=data.reason, cancelled_by=data.cancelled_by)


@router.get(
    "/{sale_id}/returnable-lines",
    response_model=List[ReturnableLineResponse],
)
async def get_returnable_lines(
    sale_id: uuid.UUID,
    db: DB,
):
    """Lines that still have quantity available to return."""
    service = ReturnService(db)
    return await service.get_returnable_lines(sale_id)


@router.get(
    "/{sale_id}/returns",
    response_model=List[ReturnResponse],
)
async def list_sale_returns(
    sale_id: uuid.UUID,
    db: DB,
):
    service = ReturnService(db)
    return await service.list_returns_for_sale(sale_id)
