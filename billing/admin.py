from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import RangeDateTimeFilter, RangeNumericFilter

from .models import Sale, SaleItem, Payment, Refund


class SaleItemInline(TabularInline):
    model = SaleItem
    extra = 0
    fields = ('product', 'custom_product_name', 'imei', 'quantity', 'unit_price', 'subtotal')
    readonly_fields = fields
    can_delete = False


class PaymentInline(TabularInline):
    model = Payment
    extra = 0
    fields = ('amount', 'method', 'reference', 'received_by', 'created_at')
    readonly_fields = fields
    can_delete = False


class RefundInline(TabularInline):
    model = Refund
    extra = 0
    fields = ('refund_number', 'amount', 'status', 'reason', 'requested_by', 'processed_by', 'processed_at')
    readonly_fields = fields
    can_delete = False


@admin.register(Sale)
class SaleAdmin(ModelAdmin):
    list_display = [
        'invoice_number', 'branch', 'customer_name', 'total_amount',
        'paid_amount', 'due_amount', 'payment_badge', 'status_badge', 'created_at'
    ]
    list_filter = [
        'payment_status',
        'status',
        'branch',
        'source',
        ('total_amount', RangeNumericFilter),
        ('created_at', RangeDateTimeFilter),
    ]
    search_fields = ['invoice_number', 'customer_name', 'customer_phone']
    list_filter_submit = True
    inlines = [SaleItemInline, PaymentInline, RefundInline]
    readonly_fields = [
        'uuid', 'invoice_number', 'branch', 'customer', 'cashier', 'subtotal', 'discount_amount',
        'tax_rate', 'tax_amount', 'total_amount', 'paid_amount', 'due_amount', 'payment_status',
        'status', 'source', 'cancelled_at', 'cancelled_by', 'cancel_reason', 'created_at', 'updated_at',
    ]

    @display(description=_("Payment"), label=True)
    def payment_badge(self, obj):
        colors = {
            'paid': 'success',
            'partial': 'warning',
            'due': 'danger',
        }
        return colors.get(obj.payment_status, 'info'), obj.get_payment_status_display()

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        if obj.is_cancelled:
            return 'danger', obj.get_status_display()
        if obj.is_refunded:
            return 'warning', obj.get_status_display()
        return 'success', obj.get_status_display()

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Refund)
class RefundAdmin(ModelAdmin):
    list_display = ['refund_number', 'sale', 'amount', 'status_badge', 'requested_by', 'processed_at', 'created_at']
    list_filter = [
        'status',
        ('amount', RangeNumericFilter),
        ('created_at', RangeDateTimeFilter),
    ]
    search_fields = ['refund_number', 'sale__invoice_number']
    list_filter_submit = True
    readonly_fields = [
        'refund_number', 'sale', 'amount', 'reason', 'status',
        'requested_by', 'processed_by', 'processed_at', 'created_at',
    ]

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        colors = {
            'pending': 'warning',
            'approved': 'success',
            'rejected': 'danger',
        }
        return colors.get(obj.status, 'info'), obj.get_status_display()

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
