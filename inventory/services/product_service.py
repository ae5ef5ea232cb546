"""
Product Service - branch-independent catalog
"""
import logging
from typing import Dict, Any

from django.db import transaction
from django.db.models import Q

from core.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, ConflictError, parse_money,
)
from core.services.scope_service import Actor, BranchScopeService
from inventory.models import Product

logger = logging.getLogger(__name__)


class ProductService(BaseService):
    model = Product

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize(cls, product: Product) -> Dict[str, Any]:
        return {
            "id": product.id,
            "sku": product.sku,
            "name": product.name,
            "brand": product.brand,
            "category": product.category,
            "base_price": str(product.base_price),
            "barcode": product.barcode,
            "inventory_type": product.inventory_type,
            "is_active": product.is_active,
            "created_at": product.created_at.isoformat(),
        }

    # ==================== LIST & SEARCH ====================

    @classmethod
    def list(cls,
             page: int = 1,
             per_page: int = 50,
             search: str = None,
             category: str = None,
             brand: str = None,
             inventory_type: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.filter(is_active=True)

        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) |
                Q(sku__icontains=search) |
                Q(barcode=search)
            )
        if category:
            queryset = queryset.filter(category__iexact=category)
        if brand:
            queryset = queryset.filter(brand__iexact=brand)
        if inventory_type:
            queryset = queryset.filter(inventory_type=inventory_type)

        products, pagination = paginate_queryset(queryset.order_by("name"), page, per_page)

        return success_response({
            "products": [cls.serialize(p) for p in products],
            "pagination": pagination,
        })

    @classmethod
    def get(cls, product_id: int) -> Dict[str, Any]:
        return success_response({"product": cls.serialize(cls.get_or_404(product_id))})

    @classmethod
    def get_by_barcode(cls, barcode: str) -> Dict[str, Any]:
        product = cls.model.objects.filter(barcode=barcode).first()
        if not product:
            raise NotFoundError("Product with barcode", barcode)
        return success_response({"product": cls.serialize(product)}, "Barcode is valid")

    # ==================== CREATE ====================

    @classmethod
    @transaction.atomic
    def create(cls,
               actor: Actor,
               sku: str,
               name: str,
               base_price=None,
               brand: str = "",
               category: str = "",
               inventory_type: str = Product.InventoryType.BULK) -> Dict[str, Any]:
        BranchScopeService.require_manager(actor)

        sku = (sku or "").strip()
        name = (name or "").strip()
        if not sku:
            raise ValidationError("SKU is required", "sku")
        if not name:
            raise ValidationError("Product name is required", "name")
        if inventory_type not in Product.InventoryType.values:
            raise ValidationError(
                f"Invalid inventory type. Valid: {Product.InventoryType.values}", "inventory_type"
            )

        price = parse_money(base_price, "base_price")
        if price < 0:
            raise ValidationError("base_price cannot be negative", "base_price")

        if cls.model.objects.filter(sku=sku).exists():
            raise ConflictError(f"SKU {sku} already exists", details={"sku": sku})

        product = cls.model.objects.create(
            sku=sku,
            name=name,
            brand=(brand or "").strip(),
            category=(category or "").strip(),
            base_price=price,
            inventory_type=inventory_type,
        )

        from .imei_service import ImeiRegistryService
        product.barcode = ImeiRegistryService.barcode_for(product)
        product.save(update_fields=["barcode"])

        logger.info("Product created: %s (%s) by user=%s", product.sku, product.inventory_type, actor.id)

        return success_response({"product": cls.serialize(product)}, f"Product {product.sku} created")
