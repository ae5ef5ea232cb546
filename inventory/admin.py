from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin
from unfold.decorators import display
from unfold.contrib.filters.admin import RangeDateTimeFilter, RangeNumericFilter

from .models import Product, BranchStock, ImeiUnit, StockTransfer, StockMovement


@admin.register(Product)
class ProductAdmin(ModelAdmin):
    list_display = ['id', 'name', 'sku', 'brand', 'category', 'base_price', 'type_badge', 'barcode', 'is_active']
    list_filter = ['inventory_type', 'is_active', 'brand', ('base_price', RangeNumericFilter)]
    search_fields = ['name', 'sku', 'barcode', 'brand']
    list_filter_submit = True
    readonly_fields = ['uuid', 'barcode', 'created_at', 'updated_at']

    @display(description=_("Type"), label=True)
    def type_badge(self, obj):
        if obj.is_unique:
            return 'info', obj.get_inventory_type_display()
        return 'success', obj.get_inventory_type_display()


@admin.register(BranchStock)
class BranchStockAdmin(ModelAdmin):
    list_display = ['id', 'product', 'branch', 'quantity', 'min_stock_level', 'low_badge', 'updated_at']
    list_filter = ['branch', ('quantity', RangeNumericFilter)]
    search_fields = ['product__name', 'product__sku']
    list_filter_submit = True
    # Counters change through the stock ledger API so movements stay recorded
    readonly_fields = ['product', 'branch', 'quantity', 'updated_at']

    @display(description=_("Level"), label=True)
    def low_badge(self, obj):
        if obj.is_low:
            return 'danger', _("Low")
        return 'success', _("OK")

    def has_add_permission(self, request):
        return False


@admin.register(ImeiUnit)
class ImeiUnitAdmin(ModelAdmin):
    list_display = ['id', 'imei', 'product', 'branch', 'status_badge', 'sold_at']
    list_filter = ['status', 'branch', ('created_at', RangeDateTimeFilter)]
    search_fields = ['imei', 'product__name']
    list_filter_submit = True
    readonly_fields = ['status', 'sale_item', 'sold_at', 'created_at', 'updated_at']

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        colors = {
            'in_stock': 'success',
            'reserved': 'warning',
            'sold': 'info',
        }
        return colors.get(obj.status, 'info'), obj.get_status_display()


@admin.register(StockTransfer)
class StockTransferAdmin(ModelAdmin):
    list_display = ['transfer_number', 'product', 'quantity', 'from_branch', 'to_branch', 'created_by', 'created_at']
    list_filter = ['from_branch', 'to_branch', ('created_at', RangeDateTimeFilter)]
    search_fields = ['transfer_number', 'product__name']
    list_filter_submit = True

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(StockMovement)
class StockMovementAdmin(ModelAdmin):
    list_display = ['id', 'product', 'branch', 'movement_type', 'quantity', 'quantity_after', 'reference_type', 'reference_id', 'created_at']
    list_filter = ['movement_type', 'branch', ('created_at', RangeDateTimeFilter)]
    search_fields = ['product__name', 'product__sku']
    list_filter_submit = True

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
