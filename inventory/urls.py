from django.urls import path

from . import views

urlpatterns = [
    path('stock', views.list_stock, name='stock-list'),
    path('stock/low', views.low_stock, name='stock-low'),
    path('stock/movements', views.stock_movements, name='stock-movements'),
    path('stock-quantity', views.set_stock_quantity, name='stock-quantity'),

    path('products', views.products, name='products'),
    path('products/<int:product_id>', views.get_product, name='product-detail'),

    path('barcode/generate/<int:product_id>', views.generate_barcode, name='barcode-generate'),
    path('barcode/validate/<str:barcode>', views.validate_barcode, name='barcode-validate'),

    path('imei', views.imeis, name='imeis'),

    path('transfers', views.transfers, name='transfers'),
]
