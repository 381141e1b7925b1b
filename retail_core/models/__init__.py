from retail_core.models.product import Product
from retail_core.models.customer import Customer
from retail_core.models.sale import Sale, SaleLine, SaleStatus, PaymentMethod, AdjustmentType
from retail_core.models.sales_return import SalesReturn, ReturnLine, ReturnStatus, RefundMethod

__all__ = [
    "Product",
    "Customer",
    "Sale",
    "SaleLine",
    "SaleStatus",
    "PaymentMethod",
    "AdjustmentType",
    "SalesReturn",
    "ReturnLine",
    "ReturnStatus",
    "RefundMethod",
]
