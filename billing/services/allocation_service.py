"""
Stock allocation shared by POS checkout and per-order conversion.

``validate`` runs every read-only check (IMEI present and in stock, enough
bulk quantity) before anything is written; ``allocate`` then creates the sale
lines and performs the deductions and IMEI assignments. ``allocate`` must run
inside the caller's transaction so a conflict raised half way rolls back the
earlier lines too.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from core.services.base_service import ValidationError, InsufficientStockError, round_money
from inventory.models import Product, StockMovement
from inventory.services import StockLedgerService, ImeiRegistryService
from billing.models import Sale, SaleItem

logger = logging.getLogger(__name__)


@dataclass
class SaleLine:
    product: Optional[Product]
    quantity: int
    unit_price: Decimal
    imei: Optional[str] = None
    custom_name: str = ""

    @property
    def subtotal(self) -> Decimal:
        return round_money(self.unit_price * self.quantity)

    @property
    def label(self) -> str:
        return self.product.name if self.product else self.custom_name


class AllocationService:

    @classmethod
    def validate(cls, branch_id: int, lines: List[SaleLine]) -> None:
        if not lines:
            raise ValidationError("At least one item is required", "items")

        required = defaultdict(int)
        seen_imeis = set()

        for index, line in enumerate(lines):
            field = f"items[{index}]"
            if line.quantity < 1:
                raise ValidationError("Quantity must be at least 1", f"{field}.quantity")
            if line.unit_price < 0:
                raise ValidationError("Unit price cannot be negative", f"{field}.unit_price")

            if line.product is None:
                if not line.custom_name:
                    raise ValidationError("Item needs a product or a name", field)
                continue

            if line.product.is_unique:
                if not line.imei:
                    raise ValidationError(
                        f"IMEI is required for {line.product.name}",
                        f"{field}.imei",
                        {"product_id": line.product.id}
                    )
                if line.quantity != 1:
                    raise ValidationError(
                        "Serialized items are sold one IMEI per line", f"{field}.quantity"
                    )
                line.imei = ImeiRegistryService.normalize_imei(line.imei)
                if line.imei in seen_imeis:
                    raise ValidationError(
                        f"IMEI {line.imei} is used on more than one line", f"{field}.imei",
                        {"imei": line.imei}
                    )
                seen_imeis.add(line.imei)
                ImeiRegistryService.check_assignable(line.imei, line.product, branch_id)
            else:
                required[line.product] += line.quantity

        for product, quantity in required.items():
            available = StockLedgerService.get_quantity(product.id, branch_id)
            if available < quantity:
                raise InsufficientStockError(product.name, branch_id, quantity, available)

    @classmethod
    def allocate(cls, sale: Sale, lines: List[SaleLine], user_id: Optional[int] = None) -> List[SaleItem]:
        items = []
        for line in lines:
            item = SaleItem.objects.create(
                sale=sale,
                product=line.product,
                custom_product_name="" if line.product else line.custom_name,
                imei=line.imei if line.product and line.product.is_unique else None,
                quantity=line.quantity,
                unit_price=line.unit_price,
                subtotal=line.subtotal,
            )

            # ad-hoc lines carry no stock
            if line.product is None:
                items.append(item)
                continue

            if line.product.is_unique:
                ImeiRegistryService.assign(line.imei, item, line.product, sale.branch_id)
            else:
                StockLedgerService.deduct(
                    line.product, sale.branch_id, line.quantity,
                    movement_type=StockMovement.MovementType.SALE_OUT,
                    reference_type="sale", reference_id=sale.id, user_id=user_id
                )
            items.append(item)

        logger.info("Allocated %s line(s) for sale %s", len(items), sale.invoice_number)
        return items

    @classmethod
    def restore(cls, sale: Sale, user_id: Optional[int] = None) -> None:
        """Give back what ``allocate`` took for a cancelled sale."""
        for item in sale.items.select_related("product"):
            if item.product is None:
                continue
            if item.product.is_unique:
                ImeiRegistryService.release(item)
            else:
                StockLedgerService.credit(
                    item.product, sale.branch_id, item.quantity,
                    movement_type=StockMovement.MovementType.SALE_CANCEL,
                    reference_type="sale", reference_id=sale.id, user_id=user_id
                )
