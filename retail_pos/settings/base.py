"""
Base settings for retail_pos project.
Shared between local (branch terminal) and production deployments.
"""

from pathlib import Path
import os

from django.urls import reverse_lazy

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-3v$k!p0r2l#retail-pos-dev-only-key-9x^w7q@m1b&c')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'True').lower() == 'true'

ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', '*').split(',')


# Application definition
INSTALLED_APPS = [
    "unfold",
    "unfold.contrib.filters",
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'core',
    'inventory',
    'billing',
    'per_orders',
    'corsheaders',
    'rest_framework',
    'drf_spectacular',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'retail_pos.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'retail_pos.wsgi.application'


# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv('TIME_ZONE', 'Asia/Dhaka')
USE_I18N = True
USE_TZ = True


# Static files
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


# CORS
CORS_ALLOW_ALL_ORIGINS = True


# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# JWT Settings
JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', SECRET_KEY)
JWT_ALGORITHM = 'HS256'
JWT_EXPIRY_DAYS = int(os.getenv('JWT_EXPIRY_DAYS', '7'))


# =============================================================================
# POS ENGINE
# =============================================================================
POS_INVOICE_PREFIX = 'INV'
POS_PER_ORDER_PREFIX = 'PO'
POS_TRANSFER_PREFIX = 'TRF'
POS_REFUND_PREFIX = 'REF'
POS_MONEY_PLACES = 2
POS_IMEI_LENGTH = int(os.getenv('POS_IMEI_LENGTH', '15'))
POS_DEFAULT_PAYMENT_METHOD = os.getenv('POS_DEFAULT_PAYMENT_METHOD', 'cash')


# Unfold Admin Configuration
UNFOLD = {
    "SITE_TITLE": "Retail POS Admin",
    "SITE_HEADER": "Retail POS",
    "SITE_URL": "/",
    "SITE_SYMBOL": "smartphone",

    "SIDEBAR": {
        "show_search": True,
        "show_all_applications": True,
        "navigation": [
            {
                "title": "Sales",
                "separator": True,
                "items": [
                    {
                        "title": "Sales",
                        "icon": "receipt_long",
                        "link": reverse_lazy("admin:billing_sale_changelist"),
                    },
                    {
                        "title": "Refunds",
                        "icon": "currency_exchange",
                        "link": reverse_lazy("admin:billing_refund_changelist"),
                    },
                    {
                        "title": "Per Orders",
                        "icon": "pending_actions",
                        "link": reverse_lazy("admin:per_orders_perorder_changelist"),
                    },
                ],
            },
            {
                "title": "Inventory",
                "separator": True,
                "items": [
                    {
                        "title": "Products",
                        "icon": "inventory_2",
                        "link": reverse_lazy("admin:inventory_product_changelist"),
                    },
                    {
                        "title": "Branch Stock",
                        "icon": "warehouse",
                        "link": reverse_lazy("admin:inventory_branchstock_changelist"),
                    },
                    {
                        "title": "IMEI Units",
                        "icon": "qr_code",
                        "link": reverse_lazy("admin:inventory_imeiunit_changelist"),
                    },
                    {
                        "title": "Transfers",
                        "icon": "swap_horiz",
                        "link": reverse_lazy("admin:inventory_stocktransfer_changelist"),
                    },
                ],
            },
            {
                "title": "Branches & Access",
                "separator": True,
                "items": [
                    {
                        "title": "Branches",
                        "icon": "store",
                        "link": reverse_lazy("admin:core_branch_changelist"),
                    },
                    {
                        "title": "Users",
                        "icon": "people",
                        "link": reverse_lazy("admin:core_user_changelist"),
                    },
                ],
            },
        ],
    },
}

REST_FRAMEWORK = {
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',

    'DEFAULT_AUTHENTICATION_CLASSES': [
        'core.authentication.JWTAuthentication',
    ],

    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],

    'UNAUTHENTICATED_USER': None,

    'EXCEPTION_HANDLER': 'core.helpers.errors.api_exception_handler',
}


SPECTACULAR_SETTINGS = {
    'TITLE': 'Retail POS',
    'DESCRIPTION': 'Multi-branch inventory, per-order and billing API',
    'VERSION': '1.0.0',

    'SECURITY': [{'bearerAuth': []}],

    'COMPONENTS': {
        'securitySchemes': {
            'bearerAuth': {
                'type': 'http',
                'scheme': 'bearer',
                'bearerFormat': 'JWT',
            }
        }
    },
}
