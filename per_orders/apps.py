from django.apps import AppConfig


class PerOrdersConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'per_orders'
    verbose_name = 'Per Orders'
