"""
Per Order Service - reservation lifecycle.

    pending --convert--> completed
    pending --cancel---> cancelled

Both end states are terminal. Creating or editing an order never touches
stock; conversion allocates stock and IMEIs through the billing ledger in a
single transaction.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from core.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, ConflictError,
    create_with_number, parse_int, parse_money, round_money, derive_payment_status, money_str,
)
from core.services.branch_service import BranchService
from core.services.customer_service import CustomerService
from core.services.scope_service import Actor, BranchScopeService, filter_by_scope
from inventory.services import ProductService
from billing.models import Sale, PaymentMethod
from billing.services import SaleLine, SaleService
from per_orders.models import PerOrder, PerOrderItem, PerOrderPayment

logger = logging.getLogger(__name__)


class PerOrderService(BaseService):
    model = PerOrder

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize_item(cls, item: PerOrderItem) -> Dict[str, Any]:
        return {
            "id": item.id,
            "product_id": item.product_id,
            "product_name": item.display_name,
            "custom_product_name": item.custom_product_name or None,
            "inventory_type": item.product.inventory_type if item.product_id else None,
            "quantity": item.quantity,
            "unit_price": money_str(item.unit_price),
            "subtotal": money_str(item.subtotal),
        }

    @classmethod
    def serialize_payment(cls, entry: PerOrderPayment) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "entry_type": entry.entry_type,
            "amount": money_str(entry.amount),
            "method": entry.method,
            "note": entry.note,
            "created_at": entry.created_at.isoformat(),
        }

    @classmethod
    def serialize(cls, order: PerOrder, include_items: bool = False) -> Dict[str, Any]:
        data = {
            "id": order.id,
            "order_number": order.order_number,
            "branch_id": order.branch_id,
            "branch_name": order.branch.name,
            "customer_id": order.customer_id,
            "customer": {
                "name": order.customer_name,
                "phone": order.customer_phone,
                "email": order.customer_email,
                "address": order.customer_address,
            },
            "subtotal": money_str(order.subtotal),
            "advance_payment": money_str(order.advance_payment),
            "due_amount": money_str(order.due_amount),
            "payment_status": order.payment_status,
            "status": order.status,
            "expected_delivery_date": (
                order.expected_delivery_date.isoformat() if order.expected_delivery_date else None
            ),
            "notes": order.notes,
            "created_by_id": order.created_by_id,
            "converted_sale_id": order.converted_sale_id,
            "created_at": order.created_at.isoformat(),
        }

        if order.status == PerOrder.Status.CANCELLED:
            data.update({
                "cancelled_at": order.cancelled_at.isoformat() if order.cancelled_at else None,
                "cancel_reason": order.cancel_reason,
                "refunded_amount": money_str(order.refunded_amount),
            })

        if include_items:
            data["items"] = [cls.serialize_item(i) for i in order.items.select_related("product")]
            data["payments"] = [cls.serialize_payment(p) for p in order.payments.all()]

        return data

    # ==================== READ ====================

    @classmethod
    def list(cls,
             actor: Actor,
             branch_id=None,
             status: str = None,
             search: str = None,
             page: int = 1,
             per_page: int = 20) -> Dict[str, Any]:
        scope = BranchScopeService.resolve_read_scope(actor, branch_id)
        queryset = filter_by_scope(cls.model.objects.select_related("branch"), scope)

        if status:
            if status not in PerOrder.Status.values:
                raise ValidationError(f"Invalid status. Valid: {PerOrder.Status.values}", "status")
            queryset = queryset.filter(status=status)

        if search:
            queryset = queryset.filter(
                Q(order_number__icontains=search) |
                Q(customer_name__icontains=search) |
                Q(customer_phone__icontains=search)
            )

        orders, pagination = paginate_queryset(queryset.order_by("-created_at", "-id"), page, per_page)

        return success_response({
            "per_orders": [cls.serialize(o) for o in orders],
            "pagination": pagination,
        })

    @classmethod
    def get(cls, actor: Actor, order_id) -> Dict[str, Any]:
        order = cls._get_readable(actor, order_id)
        return success_response({"per_order": cls.serialize(order, include_items=True)})

    @classmethod
    def _get_readable(cls, actor: Actor, order_id) -> PerOrder:
        order = cls.get_or_404(parse_int(order_id, "id"))
        BranchScopeService.require_branch_read(actor, order.branch_id)
        return order

    @classmethod
    def _lock_pending(cls, actor: Actor, order_id) -> PerOrder:
        order = cls.get_or_404(parse_int(order_id, "id"))
        BranchScopeService.require_branch_write(actor, order.branch_id)

        order = cls.model.objects.select_for_update().select_related("branch").get(id=order.id)
        if not order.is_pending:
            logger.warning("Per order %s is %s, not pending", order.order_number, order.status)
            raise ConflictError(
                "order not pending",
                "ORDER_NOT_PENDING",
                {"order_number": order.order_number, "status": order.status}
            )
        return order

    # ==================== CREATE ====================

    @classmethod
    def _build_items(cls, items) -> List[Dict[str, Any]]:
        if not isinstance(items, list) or not items:
            raise ValidationError("At least one order item is required", "items")

        built = []
        for index, raw in enumerate(items):
            field = f"items[{index}]"
            if not isinstance(raw, dict):
                raise ValidationError("Each item must be an object", field)

            product_id = raw.get("productId", raw.get("product_id"))
            custom_name = str(raw.get("customProductName", raw.get("custom_product_name")) or "").strip()

            product = None
            if product_id not in (None, ""):
                product = ProductService.get_or_404(parse_int(product_id, f"{field}.product_id"))
            elif not custom_name:
                raise ValidationError("Item needs a productId or a customProductName", field)

            quantity = parse_int(raw.get("quantity"), f"{field}.quantity", default=1)
            if quantity < 1:
                raise ValidationError("Quantity must be at least 1", f"{field}.quantity")

            default_price = product.base_price if product else None
            unit_price = parse_money(
                raw.get("unitPrice", raw.get("unit_price")), f"{field}.unit_price", default=default_price
            )
            if unit_price < 0:
                raise ValidationError("Unit price cannot be negative", f"{field}.unit_price")

            built.append({
                "product": product,
                "custom_product_name": "" if product else custom_name,
                "quantity": quantity,
                "unit_price": unit_price,
                "subtotal": round_money(unit_price * quantity),
            })
        return built

    @staticmethod
    def _parse_date(value, field: str = "expected_delivery_date"):
        if value in (None, ""):
            return None
        try:
            return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()
        except ValueError:
            raise ValidationError(f"{field} must be a date (YYYY-MM-DD)", field)

    @classmethod
    def _parse_advance(cls, value) -> Decimal:
        advance = parse_money(value, "advance_payment", default=Decimal("0"))
        if advance < 0:
            raise ValidationError("Advance payment cannot be negative", "advance_payment")
        return advance

    @staticmethod
    def _due(subtotal: Decimal, advance: Decimal) -> Decimal:
        return max(Decimal("0"), subtotal - advance)

    @classmethod
    @transaction.atomic
    def create(cls,
               actor: Actor,
               items,
               customer: Optional[Dict] = None,
               customer_id=None,
               advance_payment=None,
               payment_method: str = None,
               branch_id=None,
               expected_delivery_date=None,
               notes: str = "") -> Dict[str, Any]:
        advance = cls._parse_advance(advance_payment)
        delivery_date = cls._parse_date(expected_delivery_date)
        method = SaleService.resolve_payment_method(payment_method)
        customer_data = CustomerService.resolve(customer_id, customer)

        branch_id = BranchScopeService.resolve_write_branch(actor, branch_id)
        branch = BranchService.get_active_or_404(branch_id)

        built = cls._build_items(items)
        subtotal = round_money(sum((i["subtotal"] for i in built), Decimal("0")))

        order = create_with_number(
            cls.model, getattr(settings, "POS_PER_ORDER_PREFIX", "PO"), "order_number",
            branch=branch,
            customer=customer_data["customer"],
            customer_name=customer_data["name"],
            customer_phone=customer_data["phone"],
            customer_email=customer_data["email"],
            customer_address=customer_data["address"],
            created_by_id=actor.id,
            subtotal=subtotal,
            advance_payment=advance,
            due_amount=cls._due(subtotal, advance),
            payment_status=derive_payment_status(subtotal, advance),
            status=PerOrder.Status.PENDING,
            expected_delivery_date=delivery_date,
            notes=notes or "",
        )

        PerOrderItem.objects.bulk_create([PerOrderItem(per_order=order, **item) for item in built])

        if advance > 0:
            PerOrderPayment.objects.create(
                per_order=order,
                entry_type=PerOrderPayment.EntryType.ADVANCE,
                amount=advance,
                method=method,
                created_by_id=actor.id,
            )

        logger.info(
            "Per order created: %s branch=%s subtotal=%s advance=%s",
            order.order_number, branch.code, subtotal, advance
        )

        return success_response(
            {"per_order": cls.serialize(order, include_items=True)},
            f"Per order {order.order_number} created"
        )

    # ==================== UPDATE ====================

    @classmethod
    @transaction.atomic
    def update(cls,
               actor: Actor,
               order_id,
               payment_method: str = None,
               **changes) -> Dict[str, Any]:
        """Edit notes, delivery date or advance of a pending order; items stay fixed."""
        unknown = set(changes) - {"notes", "expected_delivery_date", "advance_payment"}
        if unknown:
            raise ValidationError(
                "Only notes, expected delivery date and advance payment can be changed",
                sorted(unknown)[0]
            )

        # a blank advance means "leave as is", never "reset to zero"
        new_advance = None
        if changes.get("advance_payment") not in (None, ""):
            new_advance = cls._parse_advance(changes["advance_payment"])
        delivery_date = None
        if "expected_delivery_date" in changes:
            delivery_date = cls._parse_date(changes["expected_delivery_date"])
        method = SaleService.resolve_payment_method(payment_method)

        order = cls._lock_pending(actor, order_id)
        update_fields = ["updated_at"]

        if "notes" in changes:
            order.notes = changes["notes"] or ""
            update_fields.append("notes")

        if "expected_delivery_date" in changes:
            order.expected_delivery_date = delivery_date
            update_fields.append("expected_delivery_date")

        if new_advance is not None and new_advance != order.advance_payment:
            PerOrderPayment.objects.create(
                per_order=order,
                entry_type=PerOrderPayment.EntryType.ADJUSTMENT,
                amount=new_advance - order.advance_payment,
                method=method,
                note="Advance updated",
                created_by_id=actor.id,
            )
            order.advance_payment = new_advance
            order.due_amount = cls._due(order.subtotal, new_advance)
            order.payment_status = derive_payment_status(order.subtotal, new_advance)
            update_fields += ["advance_payment", "due_amount", "payment_status"]

        order.save(update_fields=update_fields)
        logger.info("Per order updated: %s fields=%s", order.order_number, update_fields)

        return success_response(
            {"per_order": cls.serialize(order, include_items=True)},
            "Per order updated"
        )

    # ==================== CANCEL ====================

    @classmethod
    @transaction.atomic
    def cancel(cls, actor: Actor, order_id, refund: bool = False, reason: str = "") -> Dict[str, Any]:
        BranchScopeService.require_manager(actor)
        order = cls._lock_pending(actor, order_id)

        # Nothing was deducted at creation, so cancelling is money-only
        refunded = Decimal("0")
        if refund and order.advance_payment > 0:
            refunded = order.advance_payment
            PerOrderPayment.objects.create(
                per_order=order,
                entry_type=PerOrderPayment.EntryType.REFUND,
                amount=-refunded,
                method=PaymentMethod.CASH,
                note=reason or "Advance refunded on cancellation",
                created_by_id=actor.id,
            )

        order.status = PerOrder.Status.CANCELLED
        order.cancelled_at = timezone.now()
        order.cancelled_by_id = actor.id
        order.cancel_reason = reason or ""
        order.refunded_amount = refunded
        order.save(update_fields=[
            "status", "cancelled_at", "cancelled_by", "cancel_reason", "refunded_amount", "updated_at"
        ])

        logger.info("Per order cancelled: %s refund=%s", order.order_number, refunded)

        message = "Per order cancelled and advance refunded" if refunded else "Per order cancelled"
        return success_response({"per_order": cls.serialize(order, include_items=True)}, message)

    # ==================== CONVERT ====================

    @classmethod
    def _imei_map(cls, assignments) -> Dict[int, List[str]]:
        if assignments in (None, ""):
            return {}
        if not isinstance(assignments, list):
            raise ValidationError("items must be a list", "items")

        mapping = {}
        for index, raw in enumerate(assignments):
            if not isinstance(raw, dict):
                raise ValidationError("Each item must be an object", f"items[{index}]")
            item_id = raw.get("perOrderItemId", raw.get("per_order_item_id", raw.get("id")))
            item_id = parse_int(item_id, f"items[{index}].perOrderItemId")

            imeis = raw.get("imeis")
            if imeis is None:
                imeis = [raw.get("imei")] if raw.get("imei") else []
            if not isinstance(imeis, list):
                raise ValidationError("imeis must be a list", f"items[{index}].imeis")
            mapping[item_id] = [str(i).strip() for i in imeis if i]
        return mapping

    @classmethod
    def _sale_lines(cls, order: PerOrder, imei_map: Dict[int, List[str]]) -> List[SaleLine]:
        lines = []
        for item in order.items.select_related("product"):
            product = item.product

            if product is None:
                lines.append(SaleLine(
                    product=None,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    custom_name=item.custom_product_name,
                ))
                continue

            if not product.is_unique:
                lines.append(SaleLine(product=product, quantity=item.quantity, unit_price=item.unit_price))
                continue

            # One sale line per physical unit
            imeis = imei_map.get(item.id, [])
            if len(imeis) != item.quantity:
                raise ValidationError(
                    f'Unique product "{product.name}" requires {item.quantity} IMEI selection(s) '
                    f'for item id {item.id}',
                    "imei",
                    {"per_order_item_id": item.id, "required": item.quantity, "given": len(imeis)}
                )
            for imei in imeis:
                lines.append(SaleLine(product=product, quantity=1, unit_price=item.unit_price, imei=imei))
        return lines

    @classmethod
    @transaction.atomic
    def convert_to_sale(cls,
                        actor: Actor,
                        order_id,
                        remaining_payment=None,
                        payment_method: str = None,
                        items=None) -> Dict[str, Any]:
        remaining = parse_money(remaining_payment, "remaining_payment", default=Decimal("0"))
        if remaining < 0:
            raise ValidationError("Remaining payment cannot be negative", "remaining_payment")
        method = SaleService.resolve_payment_method(payment_method)
        imei_map = cls._imei_map(items)

        order = cls._lock_pending(actor, order_id)
        lines = cls._sale_lines(order, imei_map)

        note = f"[Converted from Per Order {order.order_number}]"
        sale = SaleService.record(
            branch_id=order.branch_id,
            lines=lines,
            payments=[
                (order.advance_payment, PaymentMethod.ADVANCE),
                (remaining, method),
            ],
            customer=order.customer,
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            cashier_id=actor.id,
            notes=f"{order.notes} {note}".strip(),
            source=Sale.Source.PER_ORDER,
        )

        order.status = PerOrder.Status.COMPLETED
        order.converted_sale = sale
        order.converted_at = timezone.now()
        order.save(update_fields=["status", "converted_sale", "converted_at", "updated_at"])

        logger.info(
            "Per order converted: %s -> %s total=%s paid=%s",
            order.order_number, sale.invoice_number, sale.total_amount, sale.paid_amount
        )

        return success_response({
            "per_order": cls.serialize(order),
            "sale": SaleService.serialize(sale, include_items=True),
        }, f"Per order converted to sale {sale.invoice_number}")
