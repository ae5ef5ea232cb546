from decimal import Decimal

from django.test import SimpleTestCase

from core.services.base_service import ValidationError, derive_payment_status
from billing.services import compute_totals


class ComputeTotalsTests(SimpleTestCase):

    def test_discount_then_tax(self):
        totals = compute_totals(Decimal("1000.00"), Decimal("100.00"), Decimal("5"))
        self.assertEqual(totals["tax_amount"], Decimal("45.00"))
        self.assertEqual(totals["total_amount"], Decimal("945.00"))

    def test_tax_is_rounded_to_cents(self):
        totals = compute_totals(Decimal("99.99"), Decimal("0"), Decimal("7.5"))
        self.assertEqual(totals["tax_amount"], Decimal("7.50"))
        self.assertEqual(totals["total_amount"], Decimal("107.49"))

    def test_discount_may_equal_subtotal(self):
        totals = compute_totals(Decimal("50.00"), Decimal("50.00"), Decimal("10"))
        self.assertEqual(totals["total_amount"], Decimal("0.00"))

    def test_invalid_inputs(self):
        with self.assertRaises(ValidationError):
            compute_totals(Decimal("50.00"), Decimal("-1"), Decimal("0"))
        with self.assertRaises(ValidationError):
            compute_totals(Decimal("50.00"), Decimal("50.01"), Decimal("0"))
        with self.assertRaises(ValidationError):
            compute_totals(Decimal("50.00"), Decimal("0"), Decimal("-5"))


class PaymentStatusTests(SimpleTestCase):

    def test_status_follows_paid_amount(self):
        self.assertEqual(derive_payment_status(Decimal("100"), Decimal("0")), "due")
        self.assertEqual(derive_payment_status(Decimal("100"), Decimal("40")), "partial")
        self.assertEqual(derive_payment_status(Decimal("100"), Decimal("100")), "paid")
        self.assertEqual(derive_payment_status(Decimal("0"), Decimal("0")), "paid")
