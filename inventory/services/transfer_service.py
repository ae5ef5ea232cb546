"""
Stock Transfer Service - move bulk quantity between two branches
"""
import logging
from typing import Dict, Any

from django.conf import settings
from django.db import transaction
from django.db.models import Q

from core.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, create_with_number, parse_int,
)
from core.services.branch_service import BranchService
from core.services.scope_service import Actor, BranchScopeService, ALL_BRANCHES
from inventory.models import StockTransfer, StockMovement
from .level_service import StockLedgerService
from .product_service import ProductService

logger = logging.getLogger(__name__)


class StockTransferService(BaseService):
    model = StockTransfer

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize(cls, transfer: StockTransfer) -> Dict[str, Any]:
        return {
            "id": transfer.id,
            "transfer_number": transfer.transfer_number,
            "from_branch_id": transfer.from_branch_id,
            "from_branch": transfer.from_branch.name,
            "to_branch_id": transfer.to_branch_id,
            "to_branch": transfer.to_branch.name,
            "product_id": transfer.product_id,
            "product_name": transfer.product.name,
            "quantity": transfer.quantity,
            "notes": transfer.notes,
            "created_by_id": transfer.created_by_id,
            "created_at": transfer.created_at.isoformat(),
        }

    # ==================== LIST ====================

    @classmethod
    def list(cls, actor: Actor, branch_id=None, page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        scope = BranchScopeService.resolve_read_scope(actor, branch_id)

        queryset = cls.model.objects.select_related("from_branch", "to_branch", "product")
        if scope != ALL_BRANCHES:
            queryset = queryset.filter(Q(from_branch_id=scope) | Q(to_branch_id=scope))

        transfers, pagination = paginate_queryset(queryset.order_by("-created_at"), page, per_page)

        return success_response({
            "transfers": [cls.serialize(t) for t in transfers],
            "pagination": pagination,
        })

    # ==================== TRANSFER ====================

    @classmethod
    @transaction.atomic
    def transfer(cls,
                 actor: Actor,
                 from_branch_id,
                 to_branch_id,
                 product_id,
                 quantity,
                 notes: str = "") -> Dict[str, Any]:
        BranchScopeService.require_manager(actor)

        quantity = parse_int(quantity, "quantity")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", "quantity")

        to_branch_id = parse_int(to_branch_id, "to_branch_id")
        from_branch_id = BranchScopeService.resolve_write_branch(actor, from_branch_id)
        if from_branch_id == to_branch_id:
            raise ValidationError("Cannot transfer to the same branch", "to_branch_id")

        from_branch = BranchService.get_active_or_404(from_branch_id)
        to_branch = BranchService.get_active_or_404(to_branch_id)

        product = ProductService.get_or_404(parse_int(product_id, "product_id"))
        if product.is_unique:
            raise ValidationError("Unique products are moved per IMEI unit, not by quantity", "product_id")

        transfer = create_with_number(
            cls.model, getattr(settings, "POS_TRANSFER_PREFIX", "TRF"), "transfer_number",
            from_branch=from_branch,
            to_branch=to_branch,
            product=product,
            quantity=quantity,
            notes=notes or "",
            created_by_id=actor.id,
        )

        # Debit first: a failed deduct aborts the whole transfer before any credit
        StockLedgerService.deduct(
            product, from_branch.id, quantity,
            movement_type=StockMovement.MovementType.TRANSFER_OUT,
            reference_type="transfer", reference_id=transfer.id, user_id=actor.id
        )
        StockLedgerService.credit(
            product, to_branch.id, quantity,
            movement_type=StockMovement.MovementType.TRANSFER_IN,
            reference_type="transfer", reference_id=transfer.id, user_id=actor.id
        )

        logger.info(
            "Stock transfer %s: %s x%s %s -> %s by user=%s",
            transfer.transfer_number, product.sku, quantity, from_branch.code, to_branch.code, actor.id
        )

        return success_response({
            "transfer": cls.serialize(transfer),
        }, f"Transfer {transfer.transfer_number} completed")
