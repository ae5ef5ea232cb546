from decimal import Decimal

from django.contrib.auth.hashers import make_password
from rest_framework.test import APIClient

from core.models import Branch, User
from core.services.auth_service import AuthService
from core.services.scope_service import Actor
from inventory.models import Product, BranchStock, ImeiUnit


def make_branch(code="DHK", name=None, is_active=True):
    return Branch.objects.create(name=name or f"Branch {code}", code=code, is_active=is_active)


def make_user(role=User.RoleChoices.CASHIER, branch=None, email=None):
    return User.objects.create(
        first_name=role.title(),
        email=email or f"{role}-{branch.code if branch else 'hq'}@shop.test",
        password=make_password("secret"),
        role=role,
        branch=branch,
    )


def actor_for(user):
    return Actor.from_user(user)


def make_product(sku="CASE-01", name=None, price="1000.00", inventory_type=Product.InventoryType.BULK,
                 brand="", category=""):
    return Product.objects.create(
        sku=sku,
        name=name or sku,
        base_price=Decimal(price),
        inventory_type=inventory_type,
        brand=brand,
        category=category,
    )


def make_phone(sku="PHONE-01", name="Galaxy A15", price="25000.00"):
    return make_product(sku=sku, name=name, price=price, inventory_type=Product.InventoryType.UNIQUE)


def put_stock(product, branch, quantity, min_stock_level=0):
    stock, _ = BranchStock.objects.update_or_create(
        product=product,
        branch=branch,
        defaults={"quantity": quantity, "min_stock_level": min_stock_level},
    )
    return stock


def put_imei(product, branch, imei, status=ImeiUnit.Status.IN_STOCK):
    return ImeiUnit.objects.create(product=product, branch=branch, imei=imei, status=status)


def stock_of(product, branch):
    return BranchStock.objects.filter(product=product, branch=branch).values_list("quantity", flat=True).first() or 0


def api_client(user=None, token=False):
    client = APIClient()
    if user is not None:
        if token:
            client.credentials(HTTP_AUTHORIZATION=f"Bearer {AuthService.generate_token(user)}")
        else:
            client.force_authenticate(user=user)
    return client
