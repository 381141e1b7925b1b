"""
Domain errors raised by the transaction core.

Every error carries a human-readable message plus a ``context`` dict so
callers (API layer, reports) can render their own text without the core
knowing about display logic.

    RetailCoreError
    ├── ValidationError              bad or missing input
    ├── NotFoundError                missing product / sale / line / return
    ├── ConflictError                concurrent update lost or exhausted
    │   ├── InsufficientStockError
    │   └── DocumentNumberConflictError
    └── StateError                   transition not allowed from current status
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Union


class RetailCoreError(Exception):
    """Base class for all transaction-core errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "type": type(self).__name__,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
        }


class ValidationError(RetailCoreError):
    """Input failed validation; ``errors`` maps field or line id to a message."""

    def __init__(self, message: str, errors: Optional[Dict[Any, str]] = None, **context: Any):
        self.errors = {str(k): v for k, v in (errors or {}).items()}
        super().__init__(message, errors=self.errors, **context)


class NotFoundError(RetailCoreError):
    def __init__(self, entity: str, identifier: Any):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} {identifier} not found", entity=entity, identifier=identifier)


class ConflictError(RetailCoreError):
    pass


class InsufficientStockError(ConflictError):
    def __init__(self, product_id: Any, product_name: str, available: Decimal, requested: Decimal):
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for {product_name}. Available: {available}, Required: {requested}",
            product_id=product_id,
            product_name=product_name,
            available=available,
            requested=requested,
        )


class DocumentNumberConflictError(ConflictError):
    def __init__(self, document_number: str):
        self.document_number = document_number
        super().__init__(
            f"Document number {document_number} is already in use",
            document_number=document_number,
        )


class StateError(RetailCoreError):
    def __init__(
        self,
        entity: str,
        identifier: Any,
        current_status: str,
        required_status: Union[str, Iterable[str]],
        action: str = "update",
    ):
        if not isinstance(required_status, str):
            required_status = ", ".join(required_status)
        self.entity = entity
        self.current_status = current_status
        self.required_status = required_status
        super().__init__(
            f"Cannot {action} {entity} {identifier}: status is {current_status}, "
            f"expected {required_status}",
            entity=entity,
            identifier=identifier,
            current_status=current_status,
            required_status=required_status,
        )


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)
