from django.test import TestCase

from core.models import User
from core.services.base_service import ValidationError, AuthorizationError, ConflictError
from core.tests.fixtures import make_branch, make_user, actor_for, make_product, api_client
from inventory.services import ProductService


class ProductTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.branch = make_branch("DHK")
        cls.manager = make_user(User.RoleChoices.MANAGER, cls.branch)
        cls.staff = make_user(User.RoleChoices.STAFF, cls.branch)

    def test_create_assigns_barcode(self):
        result = ProductService.create(
            actor_for(self.manager), sku="GLX-A15", name="Galaxy A15", base_price="25000",
            brand="Samsung", inventory_type="unique",
        )
        product = result["product"]
        self.assertEqual(product["base_price"], "25000.00")
        self.assertEqual(product["inventory_type"], "unique")
        self.assertEqual(product["barcode"], f"BC{product['id']:08d}GLXA")

    def test_create_validation(self):
        actor = actor_for(self.manager)
        with self.assertRaises(ValidationError):
            ProductService.create(actor, sku="", name="Cable", base_price="10")
        with self.assertRaises(ValidationError):
            ProductService.create(actor, sku="X1", name="Cable", base_price="-10")
        with self.assertRaises(ValidationError):
            ProductService.create(actor, sku="X1", name="Cable", base_price="10", inventory_type="serial")

    def test_duplicate_sku(self):
        make_product("CBL-C")
        with self.assertRaises(ConflictError):
            ProductService.create(actor_for(self.manager), sku="CBL-C", name="Cable", base_price="10")

    def test_staff_cannot_create(self):
        with self.assertRaises(AuthorizationError):
            ProductService.create(actor_for(self.staff), sku="X1", name="Cable", base_price="10")

    def test_list_filters(self):
        make_product("CBL-C", "USB-C Cable", brand="Anker")
        make_product("PHONE-01", "Galaxy A15", inventory_type="unique", brand="Samsung")

        result = ProductService.list(brand="samsung")
        self.assertEqual([p["sku"] for p in result["products"]], ["PHONE-01"])

        result = ProductService.list(search="cable")
        self.assertEqual([p["sku"] for p in result["products"]], ["CBL-C"])

    def test_endpoint(self):
        response = api_client(self.manager).post(
            "/api/inventory/products",
            {"sku": "CHG-20W", "name": "20W Charger", "basePrice": 900},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        product_id = response.json()["data"]["id"]

        response = api_client(self.staff).get(f"/api/inventory/products/{product_id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["inventory_type"], "bulk")
