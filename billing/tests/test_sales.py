from decimal import Decimal
from unittest import mock

from django.test import TestCase

from core.models import User, Customer
from core.services.base_service import (
    ValidationError, AuthorizationError, ConflictError, InsufficientStockError, ImeiUnavailableError,
)
from core.tests.fixtures import (
    make_branch, make_user, actor_for, make_product, make_phone, put_stock, put_imei, stock_of, api_client,
)
from inventory.models import ImeiUnit, StockMovement
from inventory.services import ImeiRegistryService
from billing.models import Sale, SaleItem, Payment, Refund
from billing.services import SaleService


class CreateSaleTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.branch = make_branch("DHK")
        cls.other = make_branch("CTG")
        cls.cashier = make_user(User.RoleChoices.CASHIER, cls.branch)
        cls.admin = make_user(User.RoleChoices.ADMIN)
        cls.cable = make_product("CBL-C", "USB-C Cable", "250.00")
        cls.charger = make_product("CHG-20W", "20W Charger", "900.00")
        cls.phone = make_phone()

    def setUp(self):
        put_stock(self.cable, self.branch, 5)
        put_stock(self.charger, self.branch, 1)
        put_imei(self.phone, self.branch, "356789012345671")

    def test_bulk_and_serialized_lines(self):
        result = SaleService.create_sale(
            actor_for(self.cashier),
            items=[
                {"productId": self.cable.id, "quantity": 2},
                {"productId": self.phone.id, "imei": "356789012345671", "unitPrice": "24000"},
            ],
            paid_amount="10000",
        )
        sale = result["sale"]

        self.assertTrue(sale["invoice_number"].startswith("DHK-INV-"))
        self.assertEqual(sale["subtotal"], "24500.00")
        self.assertEqual(sale["total_amount"], "24500.00")
        self.assertEqual(sale["paid_amount"], "10000.00")
        self.assertEqual(sale["due_amount"], "14500.00")
        self.assertEqual(sale["payment_status"], "partial")
        self.assertEqual(sale["source"], "pos")
        self.assertEqual(len(sale["items"]), 2)
        self.assertEqual(len(sale["payments"]), 1)

        self.assertEqual(stock_of(self.cable, self.branch), 3)
        unit = ImeiUnit.objects.get(imei="356789012345671")
        self.assertEqual(unit.status, ImeiUnit.Status.SOLD)
        self.assertEqual(unit.sale_item.sale_id, sale["id"])

    def test_invoice_numbers_increment(self):
        first = SaleService.create_sale(actor_for(self.cashier), items=[{"productId": self.cable.id}])
        second = SaleService.create_sale(actor_for(self.cashier), items=[{"productId": self.cable.id}])
        self.assertTrue(first["sale"]["invoice_number"].endswith("-0001"))
        self.assertTrue(second["sale"]["invoice_number"].endswith("-0002"))

    def test_discount_and_tax(self):
        result = SaleService.create_sale(
            actor_for(self.cashier),
            items=[{"productId": self.cable.id, "quantity": 4}],
            discount_amount="100",
            tax_rate="10",
            paid_amount="990",
        )
        sale = result["sale"]
        self.assertEqual(sale["tax_amount"], "90.00")
        self.assertEqual(sale["total_amount"], "990.00")
        self.assertEqual(sale["payment_status"], "paid")

    def test_overpayment_has_no_effect(self):
        with self.assertRaises(ValidationError) as ctx:
            SaleService.create_sale(
                actor_for(self.cashier),
                items=[{"productId": self.cable.id, "quantity": 1}],
                paid_amount="300",
            )
        self.assertEqual(ctx.exception.message, "overpayment")
        self.assertFalse(Sale.objects.exists())
        self.assertEqual(stock_of(self.cable, self.branch), 5)

    def test_failing_line_rolls_back_whole_sale(self):
        with self.assertRaises(InsufficientStockError):
            SaleService.create_sale(
                actor_for(self.cashier),
                items=[
                    {"productId": self.cable.id, "quantity": 2},
                    {"productId": self.phone.id, "imei": "356789012345671"},
                    {"productId": self.charger.id, "quantity": 2},
                ],
            )
        self.assertFalse(Sale.objects.exists())
        self.assertFalse(SaleItem.objects.exists())
        self.assertFalse(StockMovement.objects.exists())
        self.assertEqual(stock_of(self.cable, self.branch), 5)
        self.assertEqual(ImeiUnit.objects.get(imei="356789012345671").status, ImeiUnit.Status.IN_STOCK)

    def test_unit_taken_during_allocation_rolls_back_earlier_lines(self):
        check_assignable = ImeiRegistryService.check_assignable

        def sold_elsewhere(imei, product, branch_id):
            unit = check_assignable(imei, product, branch_id)
            ImeiUnit.objects.filter(imei=imei).update(status=ImeiUnit.Status.SOLD)
            return unit

        with mock.patch.object(ImeiRegistryService, "check_assignable", side_effect=sold_elsewhere):
            with self.assertRaises(ImeiUnavailableError):
                SaleService.create_sale(
                    actor_for(self.cashier),
                    items=[
                        {"productId": self.cable.id, "quantity": 2},
                        {"productId": self.phone.id, "imei": "356789012345671"},
                    ],
                    paid_amount="500",
                )

        self.assertFalse(Sale.objects.exists())
        self.assertFalse(SaleItem.objects.exists())
        self.assertFalse(Payment.objects.exists())
        self.assertFalse(StockMovement.objects.exists())
        self.assertEqual(stock_of(self.cable, self.branch), 5)
        self.assertEqual(ImeiUnit.objects.get(imei="356789012345671").status, ImeiUnit.Status.IN_STOCK)

    def test_taken_invoice_number_is_drawn_again(self):
        first = SaleService.create_sale(actor_for(self.cashier), items=[{"productId": self.cable.id}])["sale"]
        taken = first["invoice_number"]
        fresh = taken[:-4] + "0099"

        with mock.patch("core.services.base_service.generate_number", side_effect=[taken, fresh]):
            second = SaleService.create_sale(actor_for(self.cashier), items=[{"productId": self.cable.id}])

        self.assertEqual(second["sale"]["invoice_number"], fresh)
        self.assertEqual(stock_of(self.cable, self.branch), 3)

    def test_invoice_number_that_keeps_colliding(self):
        first = SaleService.create_sale(actor_for(self.cashier), items=[{"productId": self.cable.id}])["sale"]

        with mock.patch(
            "core.services.base_service.generate_number", return_value=first["invoice_number"]
        ) as draw:
            with self.assertRaises(ConflictError) as ctx:
                SaleService.create_sale(actor_for(self.cashier), items=[{"productId": self.cable.id}])

        self.assertEqual(ctx.exception.code, "NUMBER_CONFLICT")
        self.assertEqual(draw.call_count, 3)
        self.assertEqual(Sale.objects.count(), 1)
        self.assertEqual(stock_of(self.cable, self.branch), 4)

    def test_quantities_are_summed_per_product(self):
        with self.assertRaises(InsufficientStockError):
            SaleService.create_sale(
                actor_for(self.cashier),
                items=[
                    {"productId": self.cable.id, "quantity": 3},
                    {"productId": self.cable.id, "quantity": 3},
                ],
            )
        self.assertEqual(stock_of(self.cable, self.branch), 5)

    def test_serialized_line_needs_imei(self):
        with self.assertRaises(ValidationError):
            SaleService.create_sale(actor_for(self.cashier), items=[{"productId": self.phone.id}])

    def test_same_imei_twice_in_one_sale(self):
        with self.assertRaises(ValidationError):
            SaleService.create_sale(
                actor_for(self.cashier),
                items=[
                    {"productId": self.phone.id, "imei": "356789012345671"},
                    {"productId": self.phone.id, "imei": "356789012345671"},
                ],
            )

    def test_sold_imei_cannot_be_sold_again(self):
        SaleService.create_sale(
            actor_for(self.cashier), items=[{"productId": self.phone.id, "imei": "356789012345671"}]
        )
        with self.assertRaises(ImeiUnavailableError):
            SaleService.create_sale(
                actor_for(self.cashier), items=[{"productId": self.phone.id, "imei": "356789012345671"}]
            )
        self.assertEqual(Sale.objects.count(), 1)

    def test_imei_from_other_branch(self):
        put_imei(self.phone, self.other, "356789012345672")
        with self.assertRaises(ImeiUnavailableError):
            SaleService.create_sale(
                actor_for(self.cashier), items=[{"productId": self.phone.id, "imei": "356789012345672"}]
            )

    def test_admin_cannot_sell(self):
        with self.assertRaises(AuthorizationError):
            SaleService.create_sale(
                actor_for(self.admin), items=[{"productId": self.cable.id}], branch_id=self.branch.id
            )

    def test_cashier_cannot_sell_for_other_branch(self):
        with self.assertRaises(AuthorizationError):
            SaleService.create_sale(
                actor_for(self.cashier), items=[{"productId": self.cable.id}], branch_id=self.other.id
            )

    def test_advance_method_is_reserved(self):
        with self.assertRaises(ValidationError):
            SaleService.create_sale(
                actor_for(self.cashier), items=[{"productId": self.cable.id}],
                paid_amount="100", payment_method="advance",
            )

    def test_registered_customer_is_copied(self):
        customer = Customer.objects.create(name="Rahim", phone="01700000000")
        result = SaleService.create_sale(
            actor_for(self.cashier), items=[{"productId": self.cable.id}], customer_id=customer.id
        )
        self.assertEqual(result["sale"]["customer_id"], customer.id)
        self.assertEqual(result["sale"]["customer_name"], "Rahim")


class PaymentAndCancelTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.branch = make_branch("DHK")
        cls.other = make_branch("CTG")
        cls.cashier = make_user(User.RoleChoices.CASHIER, cls.branch)
        cls.manager = make_user(User.RoleChoices.MANAGER, cls.branch)
        cls.outsider = make_user(User.RoleChoices.MANAGER, cls.other)
        cls.cable = make_product("CBL-C", "USB-C Cable", "250.00")
        cls.phone = make_phone()

    def setUp(self):
        put_stock(self.cable, self.branch, 5)
        put_imei(self.phone, self.branch, "356789012345671")
        result = SaleService.create_sale(
            actor_for(self.cashier),
            items=[
                {"productId": self.cable.id, "quantity": 2},
                {"productId": self.phone.id, "imei": "356789012345671", "unitPrice": "1500"},
            ],
            paid_amount="500",
        )
        self.sale_id = result["sale"]["id"]

    def test_payments_settle_the_sale(self):
        result = SaleService.add_payment(actor_for(self.cashier), self.sale_id, "1000", "card")
        self.assertEqual(result["sale"]["payment_status"], "partial")
        self.assertEqual(result["sale"]["due_amount"], "500.00")

        result = SaleService.add_payment(actor_for(self.cashier), self.sale_id, "500")
        self.assertEqual(result["sale"]["payment_status"], "paid")
        self.assertEqual(result["sale"]["due_amount"], "0.00")
        self.assertEqual(Payment.objects.filter(sale_id=self.sale_id).count(), 3)

    def test_overpaying_is_rejected(self):
        with self.assertRaises(ValidationError):
            SaleService.add_payment(actor_for(self.cashier), self.sale_id, "1500.01")
        sale = Sale.objects.get(id=self.sale_id)
        self.assertEqual(sale.paid_amount, Decimal("500.00"))

    def test_payment_must_be_positive(self):
        with self.assertRaises(ValidationError):
            SaleService.add_payment(actor_for(self.cashier), self.sale_id, "0")

    def test_other_branch_cannot_collect(self):
        with self.assertRaises(AuthorizationError):
            SaleService.add_payment(actor_for(self.outsider), self.sale_id, "100")

    def test_cancel_restores_stock_and_units(self):
        result = SaleService.cancel_sale(actor_for(self.manager), self.sale_id, "customer returned")

        self.assertEqual(result["sale"]["status"], "cancelled")
        self.assertEqual(result["sale"]["cancel_reason"], "customer returned")
        self.assertEqual(stock_of(self.cable, self.branch), 5)
        unit = ImeiUnit.objects.get(imei="356789012345671")
        self.assertEqual(unit.status, ImeiUnit.Status.IN_STOCK)
        self.assertIsNone(unit.sale_item_id)

    def test_cancelled_sale_is_terminal(self):
        SaleService.cancel_sale(actor_for(self.manager), self.sale_id)
        with self.assertRaises(ConflictError) as ctx:
            SaleService.cancel_sale(actor_for(self.manager), self.sale_id)
        self.assertEqual(ctx.exception.code, "SALE_CANCELLED")
        with self.assertRaises(ConflictError):
            SaleService.add_payment(actor_for(self.cashier), self.sale_id, "100")
        self.assertEqual(stock_of(self.cable, self.branch), 5)

    def test_cashier_cannot_cancel(self):
        with self.assertRaises(AuthorizationError):
            SaleService.cancel_sale(actor_for(self.cashier), self.sale_id)


class SaleQueryTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.dhaka = make_branch("DHK")
        cls.ctg = make_branch("CTG")
        cls.admin = make_user(User.RoleChoices.ADMIN)
        cls.dhaka_cashier = make_user(User.RoleChoices.CASHIER, cls.dhaka)
        cls.ctg_cashier = make_user(User.RoleChoices.CASHIER, cls.ctg)
        cls.cable = make_product("CBL-C", "USB-C Cable", "250.00")
        put_stock(cls.cable, cls.dhaka, 10)
        put_stock(cls.cable, cls.ctg, 10)

        cls.paid = SaleService.create_sale(
            actor_for(cls.dhaka_cashier), items=[{"productId": cls.cable.id}], paid_amount="250"
        )["sale"]
        cls.due = SaleService.create_sale(
            actor_for(cls.ctg_cashier), items=[{"productId": cls.cable.id}]
        )["sale"]

    def test_branch_user_sees_own_sales(self):
        result = SaleService.list_sales(actor_for(self.dhaka_cashier))
        self.assertEqual([s["id"] for s in result["sales"]], [self.paid["id"]])

    def test_admin_sees_all_and_filters(self):
        result = SaleService.list_sales(actor_for(self.admin))
        self.assertEqual(result["pagination"]["total_items"], 2)

        result = SaleService.list_sales(actor_for(self.admin), payment_status="due")
        self.assertEqual([s["id"] for s in result["sales"]], [self.due["id"]])

    def test_invalid_payment_status_filter(self):
        with self.assertRaises(ValidationError):
            SaleService.list_sales(actor_for(self.admin), payment_status="unpaid")

    def test_get_by_invoice_number(self):
        result = SaleService.get_sale(actor_for(self.admin), self.due["invoice_number"])
        self.assertEqual(result["sale"]["id"], self.due["id"])

    def test_get_other_branch_sale_is_forbidden(self):
        with self.assertRaises(AuthorizationError):
            SaleService.get_sale(actor_for(self.dhaka_cashier), self.due["id"])


class SaleEndpointTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.branch = make_branch("DHK")
        cls.cashier = make_user(User.RoleChoices.CASHIER, cls.branch)
        cls.cable = make_product("CBL-C", "USB-C Cable", "250.00")
        put_stock(cls.cable, cls.branch, 3)

    def test_create_fetch_and_pay(self):
        client = api_client(self.cashier, token=True)
        response = client.post(
            "/api/billing/sales",
            {"items": [{"productId": self.cable.id, "quantity": 2}], "paidAmount": 100},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body["success"])
        sale = body["data"]
        self.assertEqual(sale["due_amount"], "400.00")

        response = client.get(f"/api/billing/sales/{sale['invoice_number']}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["id"], sale["id"])

        response = client.post(
            f"/api/billing/sales/{sale['id']}/payments", {"amount": 400, "paymentMethod": "card"}, format="json"
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["data"]["payment_status"], "paid")

    def test_insufficient_stock_envelope(self):
        response = api_client(self.cashier).post(
            "/api/billing/sales",
            {"items": [{"productId": self.cable.id, "quantity": 4}]},
            format="json",
        )
        self.assertEqual(response.status_code, 409)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error_code"], "INSUFFICIENT_STOCK")
        self.assertEqual(body["details"]["available"], 3)
        self.assertEqual(stock_of(self.cable, self.branch), 3)

    def test_unknown_sale(self):
        response = api_client(self.cashier).get("/api/billing/sales/999")
        self.assertEqual(response.status_code, 404)


class RefundTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.branch = make_branch("DHK")
        cls.other = make_branch("CTG")
        cls.cashier = make_user(User.RoleChoices.CASHIER, cls.branch)
        cls.manager = make_user(User.RoleChoices.MANAGER, cls.branch)
        cls.outsider = make_user(User.RoleChoices.MANAGER, cls.other)
        cls.cable = make_product("CBL-C", "USB-C Cable", "250.00")

    def setUp(self):
        put_stock(self.cable, self.branch, 5)
        result = SaleService.create_sale(
            actor_for(self.cashier),
            items=[{"productId": self.cable.id, "quantity": 2}],
            paid_amount="500",
        )
        self.sale_id = result["sale"]["id"]

    def request_refund(self, amount="200", reason="faulty cable"):
        return SaleService.create_refund(actor_for(self.manager), self.sale_id, amount, reason)["refund"]

    def test_approved_refund_lowers_paid_amount(self):
        refund = self.request_refund()
        self.assertEqual(refund["status"], "pending")
        self.assertTrue(refund["refund_number"].startswith("REF-"))
        self.assertEqual(Sale.objects.get(id=self.sale_id).paid_amount, Decimal("500.00"))

        result = SaleService.process_refund(actor_for(self.manager), refund["id"], "approve")

        self.assertEqual(result["refund"]["status"], "approved")
        self.assertEqual(result["refund"]["processed_by_id"], self.manager.id)
        sale = result["sale"]
        self.assertEqual(sale["paid_amount"], "300.00")
        self.assertEqual(sale["due_amount"], "200.00")
        self.assertEqual(sale["payment_status"], "partial")
        self.assertEqual(sale["status"], "refunded")
        self.assertEqual([r["amount"] for r in sale["refunds"]], ["200.00"])
        self.assertEqual(stock_of(self.cable, self.branch), 3)

    def test_rejected_refund_leaves_sale_alone(self):
        refund = self.request_refund()
        result = SaleService.process_refund(actor_for(self.manager), refund["id"], "reject")

        self.assertEqual(result["refund"]["status"], "rejected")
        self.assertEqual(result["sale"]["paid_amount"], "500.00")
        self.assertEqual(result["sale"]["status"], "completed")

    def test_processed_refund_is_final(self):
        refund = self.request_refund()
        SaleService.process_refund(actor_for(self.manager), refund["id"], "approve")

        with self.assertRaises(ConflictError) as ctx:
            SaleService.process_refund(actor_for(self.manager), refund["id"], "reject")
        self.assertEqual(ctx.exception.code, "REFUND_PROCESSED")
        self.assertEqual(Refund.objects.get(id=refund["id"]).status, Refund.Status.APPROVED)

    def test_amount_rules(self):
        with self.assertRaises(ValidationError):
            self.request_refund(amount="0")
        with self.assertRaises(ValidationError):
            self.request_refund(amount="500.01")
        with self.assertRaises(ValidationError):
            self.request_refund(amount="abc")
        self.assertFalse(Refund.objects.exists())

    def test_paid_amount_is_checked_again_on_approval(self):
        first = self.request_refund(amount="400")
        second = self.request_refund(amount="400")
        SaleService.process_refund(actor_for(self.manager), first["id"], "approve")

        with self.assertRaises(ValidationError):
            SaleService.process_refund(actor_for(self.manager), second["id"], "approve")
        self.assertEqual(Refund.objects.get(id=second["id"]).status, Refund.Status.PENDING)
        self.assertEqual(Sale.objects.get(id=self.sale_id).paid_amount, Decimal("100.00"))

    def test_cancelled_sale_cannot_be_refunded(self):
        SaleService.cancel_sale(actor_for(self.manager), self.sale_id)
        with self.assertRaises(ConflictError) as ctx:
            self.request_refund()
        self.assertEqual(ctx.exception.code, "SALE_CANCELLED")

    def test_refunded_sale_takes_no_payment_or_cancel(self):
        refund = self.request_refund()
        SaleService.process_refund(actor_for(self.manager), refund["id"], "approve")

        with self.assertRaises(ConflictError) as ctx:
            SaleService.add_payment(actor_for(self.cashier), self.sale_id, "100")
        self.assertEqual(ctx.exception.code, "SALE_REFUNDED")
        with self.assertRaises(ConflictError) as ctx:
            SaleService.cancel_sale(actor_for(self.manager), self.sale_id)
        self.assertEqual(ctx.exception.code, "SALE_REFUNDED")
        self.assertEqual(stock_of(self.cable, self.branch), 3)

    def test_unknown_action(self):
        refund = self.request_refund()
        with self.assertRaises(ValidationError):
            SaleService.process_refund(actor_for(self.manager), refund["id"], "maybe")

    def test_only_own_branch_managers(self):
        with self.assertRaises(AuthorizationError):
            SaleService.create_refund(actor_for(self.cashier), self.sale_id, "100")
        with self.assertRaises(AuthorizationError):
            SaleService.create_refund(actor_for(self.outsider), self.sale_id, "100")

        refund = self.request_refund()
        with self.assertRaises(AuthorizationError):
            SaleService.process_refund(actor_for(self.cashier), refund["id"], "approve")
        with self.assertRaises(AuthorizationError):
            SaleService.process_refund(actor_for(self.outsider), refund["id"], "approve")

    def test_refund_over_http(self):
        response = api_client(self.cashier).post(
            f"/api/billing/sales/{self.sale_id}/refunds", {"amount": 200}, format="json"
        )
        self.assertEqual(response.status_code, 403)

        manager = api_client(self.manager)
        response = manager.post(
            f"/api/billing/sales/{self.sale_id}/refunds", {"amount": 200, "reason": "faulty"}, format="json"
        )
        self.assertEqual(response.status_code, 201)
        refund = response.json()["data"]
        self.assertEqual(refund["status"], "pending")

        response = manager.put(f"/api/billing/refunds/{refund['id']}/process", {"action": "approve"}, format="json")
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["refund"]["status"], "approved")
        self.assertEqual(data["sale"]["paid_amount"], "300.00")

        response = manager.put(f"/api/billing/refunds/{refund['id']}/process", {"action": "approve"}, format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error_code"], "REFUND_PROCESSED")

        response = manager.put("/api/billing/refunds/999/process", {"action": "approve"}, format="json")
        self.assertEqual(response.status_code, 404)
