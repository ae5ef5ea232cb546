from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import RangeDateFilter, RangeDateTimeFilter

from .models import PerOrder, PerOrderItem, PerOrderPayment


class PerOrderItemInline(TabularInline):
    model = PerOrderItem
    extra = 0
    fields = ('product', 'custom_product_name', 'quantity', 'unit_price', 'subtotal')
    readonly_fields = fields
    can_delete = False


class PerOrderPaymentInline(TabularInline):
    model = PerOrderPayment
    extra = 0
    fields = ('entry_type', 'amount', 'method', 'note', 'created_by', 'created_at')
    readonly_fields = fields
    can_delete = False


@admin.register(PerOrder)
class PerOrderAdmin(ModelAdmin):
    list_display = [
        'order_number', 'branch', 'customer_name', 'customer_phone', 'subtotal',
        'advance_payment', 'due_amount', 'status_badge', 'expected_delivery_date', 'created_at'
    ]
    list_filter = [
        'status',
        'payment_status',
        'branch',
        ('expected_delivery_date', RangeDateFilter),
        ('created_at', RangeDateTimeFilter),
    ]
    search_fields = ['order_number', 'customer_name', 'customer_phone']
    list_filter_submit = True
    inlines = [PerOrderItemInline, PerOrderPaymentInline]
    readonly_fields = [
        'uuid', 'order_number', 'branch', 'subtotal', 'advance_payment', 'due_amount',
        'payment_status', 'status', 'cancelled_at', 'cancelled_by', 'cancel_reason',
        'refunded_amount', 'converted_sale', 'converted_at', 'created_by', 'created_at', 'updated_at',
    ]

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        colors = {
            'pending': 'warning',
            'completed': 'success',
            'cancelled': 'danger',
        }
        return colors.get(obj.status, 'info'), obj.get_status_display()

    def has_add_permission(self, request):
        return False
