from .product_service import ProductService
from .level_service import StockLedgerService
from .imei_service import ImeiRegistryService
from .transfer_service import StockTransferService

__all__ = [
    "ProductService",
    "StockLedgerService",
    "ImeiRegistryService",
    "StockTransferService",
]
