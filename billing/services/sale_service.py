"""
Sale Service - finalized sales, their lines and payment history
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, List, Optional, Tuple

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from core.models import Customer
from core.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, ConflictError,
    create_with_number, parse_int, parse_money, round_money, derive_payment_status, money_str,
)
from core.services.branch_service import BranchService
from core.services.customer_service import CustomerService
from core.services.scope_service import Actor, BranchScopeService, filter_by_scope
from inventory.services import ProductService
from billing.models import Sale, SaleItem, Payment, PaymentMethod, Refund
from .allocation_service import SaleLine, AllocationService

logger = logging.getLogger(__name__)


def compute_totals(subtotal: Decimal, discount_amount: Decimal, tax_rate: Decimal) -> Dict[str, Decimal]:
    if discount_amount < 0:
        raise ValidationError("Discount cannot be negative", "discount_amount")
    if discount_amount > subtotal:
        raise ValidationError("Discount cannot exceed the subtotal", "discount_amount")
    if tax_rate < 0:
        raise ValidationError("Tax rate cannot be negative", "tax_rate")

    taxable = subtotal - discount_amount
    tax_amount = round_money(taxable * tax_rate / Decimal("100"))
    return {
        "subtotal": round_money(subtotal),
        "discount_amount": round_money(discount_amount),
        "tax_rate": tax_rate,
        "tax_amount": tax_amount,
        "total_amount": round_money(taxable + tax_amount),
    }


class SaleService(BaseService):
    model = Sale

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize_item(cls, item: SaleItem) -> Dict[str, Any]:
        return {
            "id": item.id,
            "product_id": item.product_id,
            "product_name": item.display_name,
            "sku": item.product.sku if item.product_id else None,
            "imei": item.imei,
            "quantity": item.quantity,
            "unit_price": money_str(item.unit_price),
            "subtotal": money_str(item.subtotal),
        }

    @classmethod
    def serialize_payment(cls, payment: Payment) -> Dict[str, Any]:
        return {
            "id": payment.id,
            "amount": money_str(payment.amount),
            "method": payment.method,
            "reference": payment.reference,
            "received_by_id": payment.received_by_id,
            "created_at": payment.created_at.isoformat(),
        }

    @classmethod
    def serialize_refund(cls, refund: Refund) -> Dict[str, Any]:
        return {
            "id": refund.id,
            "refund_number": refund.refund_number,
            "sale_id": refund.sale_id,
            "amount": money_str(refund.amount),
            "reason": refund.reason,
            "status": refund.status,
            "requested_by_id": refund.requested_by_id,
            "processed_by_id": refund.processed_by_id,
            "processed_at": refund.processed_at.isoformat() if refund.processed_at else None,
            "created_at": refund.created_at.isoformat(),
        }

    @classmethod
    def serialize(cls, sale: Sale, include_items: bool = False) -> Dict[str, Any]:
        data = {
            "id": sale.id,
            "invoice_number": sale.invoice_number,
            "branch_id": sale.branch_id,
            "branch_name": sale.branch.name,
            "customer_id": sale.customer_id,
            "customer_name": sale.customer_name,
            "customer_phone": sale.customer_phone,
            "cashier_id": sale.cashier_id,
            "subtotal": money_str(sale.subtotal),
            "discount_amount": money_str(sale.discount_amount),
            "tax_rate": str(sale.tax_rate),
            "tax_amount": money_str(sale.tax_amount),
            "total_amount": money_str(sale.total_amount),
            "paid_amount": money_str(sale.paid_amount),
            "due_amount": money_str(sale.due_amount),
            "payment_status": sale.payment_status,
            "status": sale.status,
            "source": sale.source,
            "notes": sale.notes,
            "created_at": sale.created_at.isoformat(),
        }

        if sale.is_cancelled:
            data["cancelled_at"] = sale.cancelled_at.isoformat() if sale.cancelled_at else None
            data["cancel_reason"] = sale.cancel_reason

        if include_items:
            data["items"] = [cls.serialize_item(i) for i in sale.items.select_related("product")]
            data["payments"] = [cls.serialize_payment(p) for p in sale.payments.all()]
            data["refunds"] = [cls.serialize_refund(r) for r in sale.refunds.all()]

        return data

    # ==================== READ ====================

    @classmethod
    def get_sale(cls, actor: Actor, sale_ref) -> Dict[str, Any]:
        sale = cls._find(sale_ref)
        BranchScopeService.require_branch_read(actor, sale.branch_id)
        return success_response({"sale": cls.serialize(sale, include_items=True)})

    @classmethod
    def _find(cls, sale_ref) -> Sale:
        queryset = cls.model.objects.select_related("branch")
        ref = str(sale_ref).strip()
        if ref.isdigit():
            sale = queryset.filter(id=int(ref)).first()
        else:
            sale = queryset.filter(invoice_number=ref).first()
        if not sale:
            raise NotFoundError("Sale", sale_ref)
        return sale

    @classmethod
    def list_sales(cls,
                   actor: Actor,
                   branch_id=None,
                   payment_status: str = None,
                   status: str = None,
                   date_from: str = None,
                   date_to: str = None,
                   search: str = None,
                   page: int = 1,
                   per_page: int = 20) -> Dict[str, Any]:
        scope = BranchScopeService.resolve_read_scope(actor, branch_id)
        queryset = filter_by_scope(cls.model.objects.select_related("branch"), scope)

        if payment_status:
            if payment_status not in Sale.PaymentStatus.values:
                raise ValidationError(
                    f"Invalid payment status. Valid: {Sale.PaymentStatus.values}", "payment_status"
                )
            queryset = queryset.filter(payment_status=payment_status)

        if status:
            queryset = queryset.filter(status=status)

        if date_from:
            queryset = queryset.filter(created_at__date__gte=cls._parse_date(date_from, "date_from"))
        if date_to:
            queryset = queryset.filter(created_at__date__lte=cls._parse_date(date_to, "date_to"))

        if search:
            queryset = queryset.filter(
                Q(invoice_number__icontains=search) |
                Q(customer_name__icontains=search) |
                Q(customer_phone__icontains=search)
            )

        sales, pagination = paginate_queryset(queryset.order_by("-created_at", "-id"), page, per_page)

        return success_response({
            "sales": [cls.serialize(s) for s in sales],
            "pagination": pagination,
        })

    @staticmethod
    def _parse_date(value: str, field: str):
        try:
            return datetime.strptime(value, "%Y-%m-%d").date()
        except (TypeError, ValueError):
            raise ValidationError(f"{field} must be a date (YYYY-MM-DD)", field)

    # ==================== CREATE ====================

    @classmethod
    def build_lines(cls, items) -> List[SaleLine]:
        if not isinstance(items, list) or not items:
            raise ValidationError("At least one item is required", "items")

        lines = []
        for index, raw in enumerate(items):
            if not isinstance(raw, dict):
                raise ValidationError("Each item must be an object", f"items[{index}]")

            product_id = raw.get("productId", raw.get("product_id"))
            product = ProductService.get_or_404(parse_int(product_id, f"items[{index}].product_id"))
            unit_price = raw.get("unitPrice", raw.get("unit_price"))

            lines.append(SaleLine(
                product=product,
                quantity=parse_int(raw.get("quantity"), f"items[{index}].quantity", default=1),
                unit_price=parse_money(unit_price, f"items[{index}].unit_price", default=product.base_price),
                imei=raw.get("imei") or None,
            ))
        return lines

    @classmethod
    def create_sale(cls,
                    actor: Actor,
                    items,
                    discount_amount=None,
                    tax_rate=None,
                    paid_amount=None,
                    payment_method: str = None,
                    customer_id=None,
                    notes: str = "",
                    branch_id=None) -> Dict[str, Any]:
        discount = parse_money(discount_amount, "discount_amount", default=Decimal("0"))
        rate = parse_money(tax_rate, "tax_rate", default=Decimal("0"))
        paid = parse_money(paid_amount, "paid_amount", default=Decimal("0"))
        method = cls.resolve_payment_method(payment_method)

        branch_id = BranchScopeService.resolve_write_branch(actor, branch_id)
        branch = BranchService.get_active_or_404(branch_id)

        customer = None
        if customer_id not in (None, ""):
            customer = CustomerService.get_or_404(parse_int(customer_id, "customer_id"))

        lines = cls.build_lines(items)

        sale = cls.record(
            branch_id=branch.id,
            lines=lines,
            discount_amount=discount,
            tax_rate=rate,
            payments=[(paid, method)],
            customer=customer,
            cashier_id=actor.id,
            notes=notes or "",
        )

        return success_response(
            {"sale": cls.serialize(sale, include_items=True)},
            f"Sale {sale.invoice_number} created"
        )

    @classmethod
    @transaction.atomic
    def record(cls,
               branch_id: int,
               lines: List[SaleLine],
               payments: List[Tuple[Decimal, str]],
               discount_amount: Decimal = Decimal("0"),
               tax_rate: Decimal = Decimal("0"),
               customer: Optional[Customer] = None,
               customer_name: str = "",
               customer_phone: str = "",
               cashier_id: Optional[int] = None,
               notes: str = "",
               source: str = Sale.Source.POS) -> Sale:
        """
        Persist a sale and allocate its stock in one transaction.

        All checks that do not need a write happen first; deductions and IMEI
        assignments can still fail with a ConflictError if another sale took
        the stock in between, which rolls back everything done here.
        """
        subtotal = sum((line.subtotal for line in lines), Decimal("0"))
        totals = compute_totals(subtotal, discount_amount, tax_rate)

        paid = Decimal("0")
        for amount, _ in payments:
            if amount < 0:
                raise ValidationError("Paid amount cannot be negative", "paid_amount")
            paid += amount
        paid = round_money(paid)
        if paid > totals["total_amount"]:
            raise ValidationError(
                "overpayment",
                "paid_amount",
                {"total_amount": str(totals["total_amount"]), "paid_amount": str(paid)}
            )

        AllocationService.validate(branch_id, lines)

        prefix = f"{BranchService.get_or_404(branch_id).code}-{getattr(settings, 'POS_INVOICE_PREFIX', 'INV')}"
        sale = create_with_number(
            cls.model, prefix, "invoice_number",
            branch_id=branch_id,
            customer=customer,
            customer_name=customer.name if customer else customer_name,
            customer_phone=customer.phone if customer else customer_phone,
            cashier_id=cashier_id,
            source=source,
            notes=notes,
            paid_amount=paid,
            due_amount=totals["total_amount"] - paid,
            payment_status=derive_payment_status(totals["total_amount"], paid),
            **totals,
        )

        AllocationService.allocate(sale, lines, user_id=cashier_id)

        for amount, method in payments:
            if amount > 0:
                Payment.objects.create(sale=sale, amount=amount, method=method, received_by_id=cashier_id)

        logger.info(
            "Sale created: %s branch=%s total=%s paid=%s status=%s",
            sale.invoice_number, branch_id, sale.total_amount, sale.paid_amount, sale.payment_status
        )
        return sale

    @classmethod
    def require_open(cls, sale: Sale) -> None:
        """Cancelled and refunded sales take no more payments, cancels or stock moves."""
        if sale.is_cancelled:
            raise ConflictError(
                f"Sale {sale.invoice_number} is cancelled", "SALE_CANCELLED",
                {"sale_id": sale.id}
            )
        if sale.is_refunded:
            raise ConflictError(
                f"Sale {sale.invoice_number} is refunded", "SALE_REFUNDED",
                {"sale_id": sale.id}
            )

    # ==================== PAYMENTS ====================

    @classmethod
    def resolve_payment_method(cls, method: Optional[str]) -> str:
        method = method or getattr(settings, "POS_DEFAULT_PAYMENT_METHOD", PaymentMethod.CASH)
        if method not in PaymentMethod.values:
            raise ValidationError(f"Invalid payment method. Valid: {PaymentMethod.values}", "payment_method")
        if method == PaymentMethod.ADVANCE:
            raise ValidationError("Advance payments are recorded through per orders", "payment_method")
        return method

    @classmethod
    @transaction.atomic
    def add_payment(cls, actor: Actor, sale_id, amount, payment_method: str = None,
                    reference: str = "") -> Dict[str, Any]:
        amount = parse_money(amount, "amount")
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than 0", "amount")
        method = cls.resolve_payment_method(payment_method)

        sale = cls._find(sale_id)
        BranchScopeService.require_branch_write(actor, sale.branch_id)

        sale = cls.model.objects.select_for_update().select_related("branch").get(id=sale.id)

        cls.require_open(sale)

        if sale.paid_amount + amount > sale.total_amount:
            raise ValidationError(
                "overpayment",
                "amount",
                {"due_amount": str(sale.due_amount), "amount": str(amount)}
            )

        payment = Payment.objects.create(
            sale=sale,
            amount=amount,
            method=method,
            reference=reference or "",
            received_by_id=actor.id,
        )

        sale.paid_amount = round_money(sale.paid_amount + amount)
        sale.due_amount = sale.total_amount - sale.paid_amount
        sale.payment_status = derive_payment_status(sale.total_amount, sale.paid_amount)
        sale.save(update_fields=["paid_amount", "due_amount", "payment_status", "updated_at"])

        logger.info(
            "Payment added: %s amount=%s method=%s due=%s",
            sale.invoice_number, amount, method, sale.due_amount
        )

        return success_response({
            "payment": cls.serialize_payment(payment),
            "sale": cls.serialize(sale, include_items=True),
        }, "Payment added successfully")

    # ==================== CANCEL ====================

    @classmethod
    @transaction.atomic
    def cancel_sale(cls, actor: Actor, sale_id, reason: str = "") -> Dict[str, Any]:
        BranchScopeService.require_manager(actor)

        sale = cls._find(sale_id)
        BranchScopeService.require_branch_write(actor, sale.branch_id)

        sale = cls.model.objects.select_for_update().select_related("branch").get(id=sale.id)
        cls.require_open(sale)

        AllocationService.restore(sale, user_id=actor.id)

        sale.status = Sale.Status.CANCELLED
        sale.cancelled_at = timezone.now()
        sale.cancelled_by_id = actor.id
        sale.cancel_reason = reason or ""
        sale.save(update_fields=["status", "cancelled_at", "cancelled_by", "cancel_reason", "updated_at"])

        logger.info("Sale cancelled: %s by user=%s", sale.invoice_number, actor.id)

        return success_response({"sale": cls.serialize(sale, include_items=True)}, "Sale cancelled")

    # ==================== REFUNDS ====================

    @classmethod
    def _check_refundable(cls, sale: Sale, amount: Decimal) -> None:
        if sale.is_cancelled:
            raise ConflictError(
                f"Sale {sale.invoice_number} is cancelled and cannot be refunded", "SALE_CANCELLED",
                {"sale_id": sale.id}
            )
        if amount > sale.paid_amount:
            raise ValidationError(
                "Refund amount cannot exceed the paid amount",
                "amount",
                {"paid_amount": str(sale.paid_amount), "amount": str(amount)}
            )

    @classmethod
    @transaction.atomic
    def create_refund(cls, actor: Actor, sale_id, amount, reason: str = "") -> Dict[str, Any]:
        amount = parse_money(amount, "amount")
        if amount <= 0:
            raise ValidationError("Refund amount must be greater than 0", "amount")

        BranchScopeService.require_manager(actor)
        sale = cls._find(sale_id)
        BranchScopeService.require_branch_write(actor, sale.branch_id)

        sale = cls.model.objects.select_for_update().select_related("branch").get(id=sale.id)
        cls._check_refundable(sale, amount)

        refund = create_with_number(
            Refund, getattr(settings, "POS_REFUND_PREFIX", "REF"), "refund_number",
            sale=sale,
            amount=amount,
            reason=reason or "",
            requested_by_id=actor.id,
        )

        logger.info("Refund requested: %s sale=%s amount=%s", refund.refund_number, sale.invoice_number, amount)

        return success_response(
            {"refund": cls.serialize_refund(refund)},
            f"Refund {refund.refund_number} requested"
        )

    @classmethod
    @transaction.atomic
    def process_refund(cls, actor: Actor, refund_id, action: str) -> Dict[str, Any]:
        """
        Approve or reject a pending refund.

        Approval lowers the sale's paid amount and marks the sale refunded.
        Stock is not touched.
        """
        action = str(action or "").strip().lower()
        if action not in ("approve", "reject"):
            raise ValidationError('action must be "approve" or "reject"', "action")

        BranchScopeService.require_manager(actor)
        refund = Refund.objects.filter(id=parse_int(refund_id, "id")).first()
        if not refund:
            raise NotFoundError("Refund", refund_id)
        BranchScopeService.require_branch_write(actor, refund.sale.branch_id)

        sale = cls.model.objects.select_for_update().select_related("branch").get(id=refund.sale_id)
        refund = Refund.objects.select_for_update().get(id=refund.id)
        if not refund.is_pending:
            raise ConflictError(
                f"Refund {refund.refund_number} is already {refund.status}", "REFUND_PROCESSED",
                {"refund_number": refund.refund_number, "status": refund.status}
            )

        if action == "approve":
            cls._check_refundable(sale, refund.amount)

            sale.paid_amount = round_money(sale.paid_amount - refund.amount)
            sale.due_amount = sale.total_amount - sale.paid_amount
            sale.payment_status = derive_payment_status(sale.total_amount, sale.paid_amount)
            sale.status = Sale.Status.REFUNDED
            sale.save(update_fields=["paid_amount", "due_amount", "payment_status", "status", "updated_at"])
            refund.status = Refund.Status.APPROVED
        else:
            refund.status = Refund.Status.REJECTED

        refund.processed_by_id = actor.id
        refund.processed_at = timezone.now()
        refund.save(update_fields=["status", "processed_by", "processed_at"])

        logger.info(
            "Refund %s %s: sale=%s paid=%s", refund.refund_number, refund.status, sale.invoice_number, sale.paid_amount
        )

        return success_response({
            "refund": cls.serialize_refund(refund),
            "sale": cls.serialize(sale, include_items=True),
        }, f"Refund {refund.status}")
