from .per_order_service import PerOrderService

__all__ = ["PerOrderService"]
