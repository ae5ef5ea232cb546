from django.urls import path

from . import views

urlpatterns = [
    path('per-orders', views.per_orders, name='per-orders'),
    path('per-orders/<int:order_id>', views.per_order_detail, name='per-order-detail'),
    path('per-orders/<int:order_id>/cancel', views.cancel_per_order, name='per-order-cancel'),
    path('per-orders/<int:order_id>/convert-to-sale', views.convert_to_sale, name='per-order-convert'),
]
