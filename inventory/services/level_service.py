"""
Stock Ledger - per-branch quantity counters for bulk products.

Counters change only through set_quantity, deduct and credit. Deductions are
a single conditional UPDATE so two callers racing for the last unit cannot
both succeed; the table also carries a non-negative CHECK constraint.
"""
import logging
from typing import Dict, Any, Optional

from django.db import transaction
from django.db.models import F, Sum, Count, Subquery, OuterRef, IntegerField, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from core.services.base_service import (
    BaseService, success_response, ValidationError, InsufficientStockError, parse_int,
)
from core.services.branch_service import BranchService
from core.services.scope_service import Actor, BranchScopeService, filter_by_scope
from inventory.models import BranchStock, StockMovement, Product, ImeiUnit
from .product_service import ProductService

logger = logging.getLogger(__name__)


class StockLedgerService(BaseService):
    model = BranchStock

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize(cls, stock: BranchStock) -> Dict[str, Any]:
        return {
            "id": stock.id,
            "product_id": stock.product_id,
            "product_name": stock.product.name,
            "sku": stock.product.sku,
            "branch_id": stock.branch_id,
            "branch_code": stock.branch.code,
            "quantity": stock.quantity,
            "min_stock_level": stock.min_stock_level,
            "is_low": stock.is_low,
            "updated_at": stock.updated_at.isoformat(),
        }

    @classmethod
    def serialize_movement(cls, movement: StockMovement) -> Dict[str, Any]:
        return {
            "id": movement.id,
            "product_id": movement.product_id,
            "branch_id": movement.branch_id,
            "movement_type": movement.movement_type,
            "quantity": movement.quantity,
            "quantity_after": movement.quantity_after,
            "reference_type": movement.reference_type,
            "reference_id": movement.reference_id,
            "user_id": movement.user_id,
            "notes": movement.notes,
            "created_at": movement.created_at.isoformat(),
        }

    # ==================== READ ====================

    @classmethod
    def get_stock(cls, actor: Actor, branch_id=None, search: str = None) -> Dict[str, Any]:
        """
        Current quantities per product. Bulk products report their counter,
        unique products the number of in-stock IMEI units. With the
        aggregate scope quantities are summed over every branch.
        """
        scope = BranchScopeService.resolve_read_scope(actor, branch_id)

        counters = filter_by_scope(BranchStock.objects.filter(product=OuterRef("pk")), scope)
        counters = counters.values("product").annotate(total=Sum("quantity")).values("total")

        units = filter_by_scope(
            ImeiUnit.objects.filter(product=OuterRef("pk"), status=ImeiUnit.Status.IN_STOCK), scope
        )
        units = units.values("product").annotate(total=Count("id")).values("total")

        products = Product.objects.filter(is_active=True).annotate(
            bulk_quantity=Coalesce(Subquery(counters, output_field=IntegerField()), Value(0)),
            unit_quantity=Coalesce(Subquery(units, output_field=IntegerField()), Value(0)),
        )
        if search:
            products = products.filter(name__icontains=search)

        rows = []
        for product in products.order_by("name"):
            rows.append({
                "product_id": product.id,
                "product_name": product.name,
                "sku": product.sku,
                "brand": product.brand,
                "category": product.category,
                "base_price": str(product.base_price),
                "inventory_type": product.inventory_type,
                "quantity": product.unit_quantity if product.is_unique else product.bulk_quantity,
            })

        return success_response({
            "branch_id": scope,
            "stock": rows,
        })

    @classmethod
    def get_quantity(cls, product_id: int, branch_id: int) -> int:
        quantity = cls.model.objects.filter(
            product_id=product_id, branch_id=branch_id
        ).values_list("quantity", flat=True).first()
        return quantity or 0

    @classmethod
    def get_low_stock(cls, actor: Actor, branch_id=None) -> Dict[str, Any]:
        scope = BranchScopeService.resolve_read_scope(actor, branch_id)

        queryset = filter_by_scope(
            cls.model.objects.select_related("product", "branch").filter(
                product__is_active=True,
                quantity__lt=F("min_stock_level"),
            ),
            scope
        ).order_by("quantity")

        items = [cls.serialize(s) for s in queryset]
        return success_response({
            "branch_id": scope,
            "items": items,
            "count": len(items),
        })

    # ==================== MANUAL SET ====================

    @classmethod
    @transaction.atomic
    def set_quantity(cls,
                     actor: Actor,
                     product_id,
                     branch_id,
                     quantity,
                     min_stock_level=None) -> Dict[str, Any]:
        BranchScopeService.require_manager(actor)

        quantity = parse_int(quantity, "quantity")
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative", "quantity")
        if min_stock_level is not None:
            min_stock_level = parse_int(min_stock_level, "min_stock_level")
            if min_stock_level < 0:
                raise ValidationError("Minimum stock level cannot be negative", "min_stock_level")

        branch_id = BranchScopeService.resolve_write_branch(actor, branch_id)
        branch = BranchService.get_active_or_404(branch_id)

        product = ProductService.get_or_404(parse_int(product_id, "product_id"))
        if product.is_unique:
            raise ValidationError(
                "Unique products are counted by IMEI units, not by quantity", "product_id"
            )

        stock, _ = cls.model.objects.select_for_update().get_or_create(product=product, branch=branch)
        change = quantity - stock.quantity

        stock.quantity = quantity
        update_fields = ["quantity", "updated_at"]
        if min_stock_level is not None:
            stock.min_stock_level = min_stock_level
            update_fields.append("min_stock_level")
        stock.save(update_fields=update_fields)

        cls._record(
            product.id, branch.id, StockMovement.MovementType.SET, change, quantity,
            user_id=actor.id, notes="Manual stock count"
        )

        logger.info(
            "Stock set: product=%s branch=%s quantity=%s (%+d) by user=%s",
            product.sku, branch.code, quantity, change, actor.id
        )

        return success_response({"stock": cls.serialize(stock)}, "Stock quantity updated")

    # ==================== INTERNAL MOVEMENTS ====================

    @classmethod
    @transaction.atomic
    def deduct(cls,
               product: Product,
               branch_id: int,
               quantity: int,
               movement_type: str = StockMovement.MovementType.SALE_OUT,
               reference_type: str = "",
               reference_id: Optional[int] = None,
               user_id: Optional[int] = None) -> int:
        """Take ``quantity`` off the counter; returns the remaining quantity."""
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", "quantity")

        updated = cls.model.objects.filter(
            product_id=product.id,
            branch_id=branch_id,
            quantity__gte=quantity,
        ).update(quantity=F("quantity") - quantity, updated_at=timezone.now())

        if not updated:
            available = cls.get_quantity(product.id, branch_id)
            logger.warning(
                "Insufficient stock: product=%s branch=%s required=%s available=%s",
                product.sku, branch_id, quantity, available
            )
            raise InsufficientStockError(product.name, branch_id, quantity, available)

        quantity_after = cls.get_quantity(product.id, branch_id)
        cls._record(
            product.id, branch_id, movement_type, -quantity, quantity_after,
            reference_type=reference_type, reference_id=reference_id, user_id=user_id
        )
        return quantity_after

    @classmethod
    @transaction.atomic
    def credit(cls,
               product: Product,
               branch_id: int,
               quantity: int,
               movement_type: str = StockMovement.MovementType.TRANSFER_IN,
               reference_type: str = "",
               reference_id: Optional[int] = None,
               user_id: Optional[int] = None) -> int:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", "quantity")

        stock, _ = cls.model.objects.select_for_update().get_or_create(
            product_id=product.id, branch_id=branch_id
        )
        cls.model.objects.filter(id=stock.id).update(
            quantity=F("quantity") + quantity, updated_at=timezone.now()
        )

        quantity_after = cls.get_quantity(product.id, branch_id)
        cls._record(
            product.id, branch_id, movement_type, quantity, quantity_after,
            reference_type=reference_type, reference_id=reference_id, user_id=user_id
        )
        return quantity_after

    @classmethod
    def _record(cls, product_id, branch_id, movement_type, quantity, quantity_after,
                reference_type="", reference_id=None, user_id=None, notes=""):
        return StockMovement.objects.create(
            product_id=product_id,
            branch_id=branch_id,
            movement_type=movement_type,
            quantity=quantity,
            quantity_after=quantity_after,
            reference_type=reference_type or "",
            reference_id=reference_id,
            user_id=user_id,
            notes=notes,
        )

    @classmethod
    def movements(cls, actor: Actor, product_id=None, branch_id=None, limit: int = 100) -> Dict[str, Any]:
        scope = BranchScopeService.resolve_read_scope(actor, branch_id)
        queryset = filter_by_scope(StockMovement.objects.all(), scope)
        if product_id:
            queryset = queryset.filter(product_id=parse_int(product_id, "product_id"))
        return success_response({
            "branch_id": scope,
            "movements": [cls.serialize_movement(m) for m in queryset[:limit]],
        })
