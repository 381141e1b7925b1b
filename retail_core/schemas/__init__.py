from retail_core.schemas.base import BaseResponseSchema, BaseCreateSchema
from retail_core.schemas.sale import SaleLineCreate, SaleLineResponse, SaleCreate, SaleCancel, SaleResponse
from retail_core.schemas.sales_return import (
    ReturnLineCreate,
    ReturnCreate,
    ReturnProcess,
    ReturnCancel,
    ReturnableLineResponse,
    ReturnLineResponse,
    ReturnResponse,
)
from retail_core.schemas.payment import (
    PaymentRequest,
    ApprovalRequest,
    PaymentResultResponse,
    PendingApprovalResponse,
)
