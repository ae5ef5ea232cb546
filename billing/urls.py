from django.urls import path

from . import views

urlpatterns = [
    path('sales', views.sales, name='sales'),
    path('sales/<int:sale_id>/payments', views.add_payment, name='sale-payments'),
    path('sales/<int:sale_id>/cancel', views.cancel_sale, name='sale-cancel'),
    path('sales/<int:sale_id>/refunds', views.create_refund, name='sale-refunds'),
    path('refunds/<int:refund_id>/process', views.process_refund, name='refund-process'),
    path('sales/<str:sale_ref>', views.get_sale, name='sale-detail'),
]
