"""Sales return API endpoints."""
import uuid

from fastapi import APIRouter, status

from retail_core.api.deps import DB
from retail_core.schemas.sales_return import ReturnCreate, ReturnProcess, ReturnCancel, ReturnResponse
from retail_core.services.return_service import ReturnService


router = APIRouter(tags=["Returns"])


@router.post(
    "",
    response_model=ReturnResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_return(
    data: ReturnCreate,
    db: DB,
):
    """Create a PENDING return. Stock is restored only when it is processed."""
    service = ReturnService(db)
    return await service.create_return(data)


@router.get(
    "/{return_id}",
    response_model=ReturnResponse,
)
async def get_return(
    return_id: uuid.UUID,
    db: DB,
):
    service = ReturnService(db)
    return await service.get_return(return_id)


@router.post(
    "/{return_id}/process",
    response_model=ReturnResponse,
)
async def process_return(
    return_id: uuid.UUID,
    data: ReturnProcess,
    db: DB,
):
    """Complete a pending return: restock and record the refund."""
    service = ReturnService(db)
    return await service.process_return(
        return_id,
        refund_method=data.refund_method,
        refund_reference=data.refund_reference,
        processed_by=data.processed_by,
        notes=data.notes,
    )


@router.post(
    "/{return_id}/cancel",
    response_model=ReturnResponse,
)
async def cancel_return(
    return_id: uuid.UUID,
    data: ReturnCancel,
    db: DB,
):
    service = ReturnService(db)
    return await service.cancel_return(return_id, reason=data.reason, cancelled_by=data.cancelled_by)
