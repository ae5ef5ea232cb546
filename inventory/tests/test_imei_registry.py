from django.test import TestCase

from core.models import User
from core.services.base_service import (
    ValidationError, AuthorizationError, ConflictError, NotFoundError, ImeiUnavailableError,
)
from core.tests.fixtures import (
    make_branch, make_user, actor_for, make_product, make_phone, put_imei, api_client,
)
from inventory.models import ImeiUnit, BranchStock
from inventory.services import ImeiRegistryService


class AddUnitTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.branch = make_branch("DHK")
        cls.other = make_branch("CTG")
        cls.manager = make_user(User.RoleChoices.MANAGER, cls.branch)
        cls.phone = make_phone()

    def test_add_unit_to_own_branch(self):
        result = ImeiRegistryService.add_unit(
            actor_for(self.manager), self.phone.id, " 356789012345671 ", purchase_price="18000"
        )
        self.assertEqual(result["imei"]["imei"], "356789012345671")
        self.assertEqual(result["imei"]["status"], "in_stock")
        self.assertEqual(result["imei"]["branch_id"], self.branch.id)
        self.assertEqual(result["imei"]["purchase_price"], "18000.00")
        self.assertFalse(BranchStock.objects.exists())

    def test_imei_must_be_fifteen_digits(self):
        for bad in ("12345", "35678901234567X", ""):
            with self.assertRaises(ValidationError):
                ImeiRegistryService.add_unit(actor_for(self.manager), self.phone.id, bad)

    def test_duplicate_imei_conflicts(self):
        put_imei(self.phone, self.other, "356789012345671")
        with self.assertRaises(ConflictError) as ctx:
            ImeiRegistryService.add_unit(actor_for(self.manager), self.phone.id, "356789012345671")
        self.assertEqual(ctx.exception.code, "IMEI_EXISTS")

    def test_bulk_product_takes_no_imei(self):
        cable = make_product("CBL-C")
        with self.assertRaises(ValidationError):
            ImeiRegistryService.add_unit(actor_for(self.manager), cable.id, "356789012345671")

    def test_other_branch_is_rejected(self):
        with self.assertRaises(AuthorizationError):
            ImeiRegistryService.add_unit(
                actor_for(self.manager), self.phone.id, "356789012345671", branch_id=self.other.id
            )
        self.assertFalse(ImeiUnit.objects.exists())

    def test_cashier_cannot_add(self):
        cashier = make_user(User.RoleChoices.CASHIER, self.branch)
        with self.assertRaises(AuthorizationError):
            ImeiRegistryService.add_unit(actor_for(cashier), self.phone.id, "356789012345671")


class AssignmentTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.branch = make_branch("DHK")
        cls.other = make_branch("CTG")
        cls.phone = make_phone()
        cls.tablet = make_phone("TAB-01", "Tab A9")
        cls.unit = put_imei(cls.phone, cls.branch, "356789012345671")

    def test_check_assignable_returns_unit(self):
        unit = ImeiRegistryService.check_assignable("356789012345671", self.phone, self.branch.id)
        self.assertEqual(unit.id, self.unit.id)

    def test_unknown_imei(self):
        with self.assertRaises(NotFoundError):
            ImeiRegistryService.check_assignable("999999999999999", self.phone, self.branch.id)

    def test_wrong_product(self):
        with self.assertRaises(ValidationError):
            ImeiRegistryService.check_assignable("356789012345671", self.tablet, self.branch.id)

    def test_other_branch_unit_is_unavailable(self):
        with self.assertRaises(ImeiUnavailableError):
            ImeiRegistryService.check_assignable("356789012345671", self.phone, self.other.id)

    def test_sold_unit_is_unavailable(self):
        ImeiUnit.objects.filter(id=self.unit.id).update(status=ImeiUnit.Status.SOLD)
        with self.assertRaises(ImeiUnavailableError) as ctx:
            ImeiRegistryService.check_assignable("356789012345671", self.phone, self.branch.id)
        self.assertEqual(str(ctx.exception), "imei not available")

    def test_list_available_skips_sold_units(self):
        put_imei(self.phone, self.branch, "356789012345672", status=ImeiUnit.Status.SOLD)
        put_imei(self.phone, self.other, "356789012345673")
        available = list(ImeiRegistryService.list_available(self.phone.id, self.branch.id))
        self.assertEqual([u.imei for u in available], ["356789012345671"])


class ImeiEndpointTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.branch = make_branch("DHK")
        cls.other = make_branch("CTG")
        cls.manager = make_user(User.RoleChoices.MANAGER, cls.branch)
        cls.phone = make_phone()
        put_imei(cls.phone, cls.branch, "356789012345671")
        put_imei(cls.phone, cls.other, "356789012345672")

    def test_list_defaults_to_in_stock_units_of_own_branch(self):
        response = api_client(self.manager).get("/api/inventory/imei", {"productId": self.phone.id})
        self.assertEqual(response.status_code, 200)
        self.assertEqual([u["imei"] for u in response.json()["data"]], ["356789012345671"])

    def test_invalid_status_filter(self):
        response = api_client(self.manager).get("/api/inventory/imei", {"status": "lost"})
        self.assertEqual(response.status_code, 400)

    def test_add_returns_created(self):
        response = api_client(self.manager).post(
            "/api/inventory/imei",
            {"productId": self.phone.id, "imei": "356789012345679"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertTrue(ImeiUnit.objects.filter(imei="356789012345679", branch=self.branch).exists())

    def test_add_duplicate_returns_conflict(self):
        response = api_client(self.manager).post(
            "/api/inventory/imei",
            {"productId": self.phone.id, "imei": "356789012345672"},
            format="json",
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error_code"], "IMEI_EXISTS")


class BarcodeTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.branch = make_branch("DHK")
        cls.manager = make_user(User.RoleChoices.MANAGER, cls.branch)
        cls.product = make_product("ch-20w", "20W Charger")

    def test_generate_is_stable(self):
        first = ImeiRegistryService.generate_barcode(actor_for(self.manager), self.product.id)
        second = ImeiRegistryService.generate_barcode(actor_for(self.manager), self.product.id)
        self.assertEqual(first["barcode"], f"BC{self.product.id:08d}CH20")
        self.assertEqual(first["barcode"], second["barcode"])

    def test_generate_and_validate_endpoints(self):
        client = api_client(self.manager)
        response = client.get(f"/api/inventory/barcode/generate/{self.product.id}")
        self.assertEqual(response.status_code, 200)
        barcode = response.json()["data"]["barcode"]

        response = client.get(f"/api/inventory/barcode/validate/{barcode}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["id"], self.product.id)

    def test_validate_unknown_barcode(self):
        response = api_client(self.manager).get("/api/inventory/barcode/validate/BC00000000NOPE")
        self.assertEqual(response.status_code, 404)
