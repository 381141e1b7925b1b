from typing import List
import uuid

from fastapi import APIRouter

from retail_core.api.deps import DB
from retail_core.schemas.payment import (
    PaymentRequest,
    ApprovalRequest,
    PaymentResultResponse,
    PendingApprovalResponse,
)
from retail_core.services.payment_reconciliation_service import PaymentReconciliationService


router = APIRouter(tags=["Payments"])


@router.get(
    "/pending-approvals",
    response_model=List[PendingApprovalResponse],
)
async def list_pending_approvals(db: DB):
    """Sales whose payment adjustment awaits manager approval, oldest first."""
    service = PaymentReconciliationService(db)
    return await service.list_pending_approvals()


@router.post(
    "/sales/{sale_id}",
    response_model=PaymentResultResponse,
)
async def process_payment(
    sale_id: uuid.UUID,
    data: PaymentRequest,
    db: DB,
):
    """Record the amount received for a sale and reconcile it."""
    service = PaymentReconciliationService(db)
    return await service.process_payment(
        sale_id,
        amount_received=data.amount_received,
        adjustment_reason=data.adjustment_reason,
        processed_by=data.processed_by,
    )


@router.post(
    "/sales/{sale_id}/approve",
    response_model=PaymentResultResponse,
)
async def approve_payment(
    sale_id: uuid.UUID,
    data: ApprovalRequest,
    db: DB,
):
    service = PaymentReconciliationService(db)
    return await service.approve(sale_id, approver=data.approver)
