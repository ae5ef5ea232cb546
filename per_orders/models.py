import uuid as uuid_lib

from django.db import models

from core.models import Branch, User, Customer
from inventory.models import Product
from billing.models import Sale, PaymentMethod


class PerOrder(models.Model):
    """
    A customer reservation paid partly in advance. Stock is only committed
    when the order is converted into a sale.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    class PaymentStatus(models.TextChoices):
        PAID = "paid", "Paid"
        PARTIAL = "partial", "Partial"
        DUE = "due", "Due"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    order_number = models.CharField(max_length=50, unique=True)
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name="per_orders")

    customer = models.ForeignKey(
        Customer,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="per_orders"
    )
    customer_name = models.CharField(max_length=100)
    customer_phone = models.CharField(max_length=30)
    customer_email = models.EmailField(blank=True, null=True)
    customer_address = models.TextField(blank=True, null=True)

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="per_orders"
    )

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    advance_payment = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    due_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    payment_status = models.CharField(
        max_length=10,
        choices=PaymentStatus.choices,
        default=PaymentStatus.DUE
    )
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )

    expected_delivery_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")

    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cancelled_per_orders"
    )
    cancel_reason = models.TextField(blank=True, default="")
    refunded_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    converted_sale = models.OneToOneField(
        Sale,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="per_order"
    )
    converted_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    @property
    def is_pending(self):
        return self.status == self.Status.PENDING

    def __str__(self):
        return f"{self.order_number} ({self.customer_name})"


class PerOrderItem(models.Model):
    per_order = models.ForeignKey(PerOrder, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="per_order_items"
    )
    custom_product_name = models.CharField(max_length=200, blank=True, default="")
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ["id"]

    @property
    def display_name(self):
        if self.product_id:
            return self.product.name
        return self.custom_product_name

    def __str__(self):
        return f"{self.display_name} x{self.quantity}"


class PerOrderPayment(models.Model):
    """Ledger of money held against a per order; amounts are signed."""

    class EntryType(models.TextChoices):
        ADVANCE = "advance", "Advance"
        ADJUSTMENT = "adjustment", "Adjustment"
        REFUND = "refund", "Refund"

    per_order = models.ForeignKey(PerOrder, on_delete=models.CASCADE, related_name="payments")
    entry_type = models.CharField(max_length=12, choices=EntryType.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    note = models.CharField(max_length=255, blank=True, default="")
    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="per_order_payments"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.per_order.order_number}: {self.entry_type} {self.amount}"
