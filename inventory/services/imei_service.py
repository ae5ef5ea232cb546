"""
Serialized Unit Registry - one row per IMEI of a unique product.

A unit is sold through a compare-and-swap on its status so a second caller
selecting the same IMEI gets a conflict instead of overwriting the first.
Unique products never touch BranchStock.
"""
import logging
import re
from typing import Dict, Any, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, ConflictError, ImeiUnavailableError,
    parse_int, parse_money,
)
from core.services.branch_service import BranchService
from core.services.scope_service import Actor, BranchScopeService, filter_by_scope
from inventory.models import ImeiUnit, Product
from .product_service import ProductService

logger = logging.getLogger(__name__)


class ImeiRegistryService(BaseService):
    model = ImeiUnit

    @classmethod
    def serialize(cls, unit: ImeiUnit) -> Dict[str, Any]:
        return {
            "id": unit.id,
            "imei": unit.imei,
            "product_id": unit.product_id,
            "product_name": unit.product.name,
            "branch_id": unit.branch_id,
            "status": unit.status,
            "purchase_price": str(unit.purchase_price) if unit.purchase_price is not None else None,
            "sale_item_id": unit.sale_item_id,
            "sold_at": unit.sold_at.isoformat() if unit.sold_at else None,
            "created_at": unit.created_at.isoformat(),
        }

    @classmethod
    def normalize_imei(cls, imei) -> str:
        imei = str(imei or "").strip()
        length = getattr(settings, "POS_IMEI_LENGTH", 15)
        if not re.fullmatch(rf"\d{{{length}}}", imei):
            raise ValidationError(f"Invalid IMEI format (must be {length} digits)", "imei")
        return imei

    # ==================== READ ====================

    @classmethod
    def list_available(cls, product_id: int, branch_id: int):
        return cls.model.objects.select_related("product").filter(
            product_id=product_id,
            branch_id=branch_id,
            status=ImeiUnit.Status.IN_STOCK,
        ).order_by("created_at")

    @classmethod
    def list(cls,
             actor: Actor,
             product_id=None,
             branch_id=None,
             status: Optional[str] = ImeiUnit.Status.IN_STOCK,
             page: int = 1,
             per_page: int = 100) -> Dict[str, Any]:
        scope = BranchScopeService.resolve_read_scope(actor, branch_id)

        if status and status not in ImeiUnit.Status.values:
            raise ValidationError(f"Invalid status. Valid: {ImeiUnit.Status.values}", "status")

        queryset = filter_by_scope(cls.model.objects.select_related("product"), scope)
        if product_id not in (None, ""):
            queryset = queryset.filter(product_id=parse_int(product_id, "product_id"))
        if status:
            queryset = queryset.filter(status=status)

        units, pagination = paginate_queryset(queryset.order_by("created_at"), page, per_page)

        return success_response({
            "imeis": [cls.serialize(u) for u in units],
            "pagination": pagination,
        })

    # ==================== INTAKE ====================

    @classmethod
    @transaction.atomic
    def add_unit(cls, actor: Actor, product_id, imei, branch_id=None, purchase_price=None) -> Dict[str, Any]:
        BranchScopeService.require_manager(actor)

        imei = cls.normalize_imei(imei)
        price = None
        if purchase_price not in (None, ""):
            price = parse_money(purchase_price, "purchase_price")
            if price < 0:
                raise ValidationError("purchase_price cannot be negative", "purchase_price")

        branch_id = BranchScopeService.resolve_write_branch(actor, branch_id)
        branch = BranchService.get_active_or_404(branch_id)

        product = ProductService.get_or_404(parse_int(product_id, "product_id"))
        if not product.is_unique:
            raise ValidationError("IMEI units can only be added to unique products", "product_id")

        if cls.model.objects.filter(imei=imei).exists():
            raise ConflictError("IMEI already exists", "IMEI_EXISTS", {"imei": imei})

        unit = cls.model.objects.create(
            imei=imei,
            product=product,
            branch=branch,
            purchase_price=price,
        )
        logger.info("IMEI added: %s product=%s branch=%s", imei, product.sku, branch.code)

        return success_response({"imei": cls.serialize(unit)}, "IMEI added successfully")

    # ==================== ALLOCATION ====================

    @classmethod
    def check_assignable(cls, imei: str, product: Product, branch_id: int) -> ImeiUnit:
        """Read-only validation run before any mutation of a sale or conversion."""
        unit = cls.model.objects.filter(imei=imei).first()
        if not unit:
            raise NotFoundError("IMEI", imei)
        if unit.product_id != product.id:
            raise ValidationError(
                f"IMEI {imei} does not belong to {product.name}", "imei", {"imei": imei}
            )
        if unit.branch_id != branch_id:
            raise ImeiUnavailableError(imei, "unit is stocked at another branch")
        if unit.status != ImeiUnit.Status.IN_STOCK:
            raise ImeiUnavailableError(imei)
        return unit

    @classmethod
    def assign(cls, imei: str, sale_item, product: Product, branch_id: int) -> None:
        updated = cls.model.objects.filter(
            imei=imei,
            product_id=product.id,
            branch_id=branch_id,
            status=ImeiUnit.Status.IN_STOCK,
        ).update(
            status=ImeiUnit.Status.SOLD,
            sale_item=sale_item,
            sold_at=timezone.now(),
            updated_at=timezone.now(),
        )

        if not updated:
            logger.warning("IMEI assignment lost: %s sale_item=%s", imei, sale_item.id)
            raise ImeiUnavailableError(imei)

        logger.info("IMEI sold: %s sale_item=%s", imei, sale_item.id)

    @classmethod
    def release(cls, sale_item) -> int:
        released = cls.model.objects.filter(
            sale_item=sale_item, status=ImeiUnit.Status.SOLD
        ).update(
            status=ImeiUnit.Status.IN_STOCK,
            sale_item=None,
            sold_at=None,
            updated_at=timezone.now(),
        )
        if released:
            logger.info("IMEI released back to stock: sale_item=%s", sale_item.id)
        return released

    # ==================== BARCODE ====================

    @classmethod
    def barcode_for(cls, product: Product) -> str:
        prefix = re.sub(r"[^A-Z0-9]", "", product.sku.upper())[:4]
        return f"BC{product.id:08d}{prefix}"

    @classmethod
    @transaction.atomic
    def generate_barcode(cls, actor: Actor, product_id) -> Dict[str, Any]:
        BranchScopeService.require_manager(actor)

        product = ProductService.get_or_404(parse_int(product_id, "product_id"))
        barcode = cls.barcode_for(product)

        # Regenerating overwrites the stored code; the product keeps one barcode
        if product.barcode != barcode:
            product.barcode = barcode
            product.save(update_fields=["barcode", "updated_at"])
            logger.info("Barcode generated: product=%s barcode=%s", product.sku, barcode)

        return success_response({
            "product_id": product.id,
            "sku": product.sku,
            "barcode": barcode,
        }, "Barcode generated successfully")
