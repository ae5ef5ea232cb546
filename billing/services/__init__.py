from .allocation_service import SaleLine, AllocationService
from .sale_service import SaleService, compute_totals

__all__ = [
    "SaleLine",
    "AllocationService",
    "SaleService",
    "compute_totals",
]
