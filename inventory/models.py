import uuid as uuid_lib

from django.db import models
from django.db.models import Q

from core.models import Branch, User


class Product(models.Model):
    class InventoryType(models.TextChoices):
        BULK = "bulk", "Bulk (quantity counter)"
        UNIQUE = "unique", "Unique (serialized IMEI units)"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    sku = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=200)
    brand = models.CharField(max_length=100, blank=True, default="")
    category = models.CharField(max_length=100, blank=True, default="", db_index=True)
    base_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    barcode = models.CharField(max_length=64, unique=True, null=True, blank=True)
    inventory_type = models.CharField(
        max_length=10,
        choices=InventoryType.choices,
        default=InventoryType.BULK
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    @property
    def is_unique(self):
        return self.inventory_type == self.InventoryType.UNIQUE

    def __str__(self):
        return f"{self.name} [{self.sku}]"


class BranchStock(models.Model):
    """Quantity counter of a bulk product at one branch."""

    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="branch_stocks")
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name="stocks")
    quantity = models.IntegerField(default=0)
    min_stock_level = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = [("product", "branch")]
        constraints = [
            models.CheckConstraint(condition=Q(quantity__gte=0), name="branch_stock_quantity_non_negative"),
        ]

    @property
    def is_low(self):
        return self.quantity < self.min_stock_level

    def __str__(self):
        return f"{self.product.name} @ {self.branch.code}: {self.quantity}"


class ImeiUnit(models.Model):
    class Status(models.TextChoices):
        IN_STOCK = "in_stock", "In Stock"
        RESERVED = "reserved", "Reserved"
        SOLD = "sold", "Sold"

    imei = models.CharField(max_length=32, unique=True)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="imei_units")
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name="imei_units")
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.IN_STOCK, db_index=True)
    purchase_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    sale_item = models.OneToOneField(
        "billing.SaleItem",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="imei_unit"
    )
    sold_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["product", "branch", "status"]),
        ]

    def __str__(self):
        return f"{self.imei} ({self.get_status_display()})"


class StockTransfer(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    transfer_number = models.CharField(max_length=50, unique=True)
    from_branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name="transfers_out")
    to_branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name="transfers_in")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="transfers")
    quantity = models.PositiveIntegerField()
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="stock_transfers"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.transfer_number


class StockMovement(models.Model):
    class MovementType(models.TextChoices):
        SET = "set", "Manual Set"
        SALE_OUT = "sale_out", "Sale Out"
        SALE_CANCEL = "sale_cancel", "Sale Cancelled"
        TRANSFER_IN = "transfer_in", "Transfer In"
        TRANSFER_OUT = "transfer_out", "Transfer Out"

    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="movements")
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name="stock_movements")
    movement_type = models.CharField(max_length=20, choices=MovementType.choices, db_index=True)
    quantity = models.IntegerField()
    quantity_after = models.IntegerField()

    reference_type = models.CharField(max_length=50, blank=True, default="")
    reference_id = models.PositiveIntegerField(null=True, blank=True)

    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="stock_movements"
    )
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["product", "branch", "created_at"]),
            models.Index(fields=["reference_type", "reference_id"]),
        ]

    def __str__(self):
        return f"{self.get_movement_type_display()} {self.quantity:+d} {self.product_id}@{self.branch_id}"
