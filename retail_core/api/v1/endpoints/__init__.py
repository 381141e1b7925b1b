from retail_core.api.v1.endpoints import sales, returns, payments

__all__ = ["sales", "returns", "payments"]
