#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Tests for per-step validation of checkout attributes."""

from decimal import Decimal

from absl.testing import absltest

from .enums import AdjustmentOrigin
from .enums import CheckoutStep
from .models import Adjustment
from .models import CheckoutUpdateRequest
from .models import Payment
from .models import PaymentAttributes
from .step_validator import BLANK
from .step_validator import validate_step
from .testing_utils import complete_address
from .testing_utils import make_order


class DetailsValidationTest(absltest.TestCase):

  def setUp(self):
    super().setUp()
    self.order = make_order()

  def test_complete_details_are_valid(self):
    attrs = CheckoutUpdateRequest(
        email="buyer@example.com",
        bill_address=complete_address(),
        ship_address_same_as_billing=True,
    )
    self.assertEqual(
        validate_step(CheckoutStep.DETAILS, self.order, attrs), {}
    )

  def test_email_is_required(self):
    attrs = CheckoutUpdateRequest(
        bill_address=complete_address(), ship_address_same_as_billing=True
    )
    errors = validate_step(CheckoutStep.DETAILS, self.order, attrs)
    self.assertEqual(errors, {"email": BLANK})

  def test_email_on_order_is_used(self):
    self.order.email = "buyer@example.com"
    attrs = CheckoutUpdateRequest(
        bill_address=complete_address(), ship_address_same_as_billing=True
    )
    self.assertEqual(
        validate_step(CheckoutStep.DETAILS, self.order, attrs), {}
    )

  def test_malformed_email(self):
    attrs = CheckoutUpdateRequest(
        email="not-an-email",
        bill_address=complete_address(),
        ship_address_same_as_billing=True,
    )
    errors = validate_step(CheckoutStep.DETAILS, self.order, attrs)
    self.assertEqual(errors, {"email": "is invalid"})

  def test_addresses_are_required(self):
    attrs = CheckoutUpdateRequest(email="buyer@example.com")
    errors = validate_step(CheckoutStep.DETAILS, self.order, attrs)
    self.assertEqual(errors, {"bill_address": BLANK, "ship_address": BLANK})

  def test_missing_address_fields_are_reported(self):
    attrs = CheckoutUpdateRequest(
        email="buyer@example.com",
        bill_address=complete_address(phone=" "),
        ship_address=complete_address(country=None),
    )
    errors = validate_step(CheckoutStep.DETAILS, self.order, attrs)
    self.assertEqual(
        errors,
        {"bill_address.phone": BLANK, "ship_address.country": BLANK},
    )

  def test_shipping_method_is_required(self):
    order = make_order(with_shipment=False)
    attrs = CheckoutUpdateRequest(
        email="buyer@example.com",
        bill_address=complete_address(),
        ship_address_same_as_billing=True,
    )
    errors = validate_step(CheckoutStep.DETAILS, order, attrs)
    self.assertIn("shipping_method_id", errors)


class PaymentValidationTest(absltest.TestCase):

  def test_payment_method_is_valid(self):
    attrs = CheckoutUpdateRequest(
        payments=[PaymentAttributes(payment_method_id="pm_cash")]
    )
    self.assertEqual(
        validate_step(CheckoutStep.PAYMENT, make_order(), attrs), {}
    )

  def test_payment_is_required(self):
    errors = validate_step(
        CheckoutStep.PAYMENT, make_order(), CheckoutUpdateRequest()
    )
    self.assertIn("payments", errors)

  def test_only_one_payment(self):
    attrs = CheckoutUpdateRequest(
        payments=[
            PaymentAttributes(payment_method_id="pm_cash"),
            PaymentAttributes(payment_method_id="pm_card"),
        ]
    )
    errors = validate_step(CheckoutStep.PAYMENT, make_order(), attrs)
    self.assertIn("payments", errors)

  def test_payment_method_is_required_for_non_zero_total(self):
    attrs = CheckoutUpdateRequest(
        payments=[PaymentAttributes(amount=Decimal("0"))]
    )
    errors = validate_step(CheckoutStep.PAYMENT, make_order(), attrs)
    self.assertIn("payments.0.amount", errors)
    self.assertIn("payments.0.payment_method_id", errors)

  def test_zero_amount_without_method_for_free_order(self):
    order = make_order(variant_id="var_sample", price="0.00")
    attrs = CheckoutUpdateRequest(
        payments=[PaymentAttributes(amount=Decimal("0"))]
    )
    self.assertEqual(validate_step(CheckoutStep.PAYMENT, order, attrs), {})

  def test_pending_payment_fee_does_not_count_as_total(self):
    order = make_order(variant_id="var_sample", price="0.00")
    order.payments.append(Payment(id="pay_1", payment_method_id="pm_card"))
    order.adjustments.append(
        Adjustment(
            id="adj_fee",
            origin=AdjustmentOrigin.PAYMENT_FEE,
            adjustable_id="pay_1",
            amount=Decimal("1.23"),
        )
    )
    order.update_totals()
    self.assertEqual(order.total, Decimal("1.23"))
    self.assertEqual(order.total_before_payment, Decimal("0.00"))

    attrs = CheckoutUpdateRequest(
        payments=[PaymentAttributes(amount=Decimal("0"))]
    )
    self.assertEqual(validate_step(CheckoutStep.PAYMENT, order, attrs), {})

  def test_non_zero_amount_for_free_order(self):
    order = make_order(variant_id="var_sample", price="0.00")
    attrs = CheckoutUpdateRequest(
        payments=[PaymentAttributes(amount=Decimal("1.00"))]
    )
    errors = validate_step(CheckoutStep.PAYMENT, order, attrs)
    self.assertEqual(errors, {"payments.0.amount": "must be zero"})

  def test_saved_card_and_new_card_are_exclusive(self):
    attrs = CheckoutUpdateRequest(
        payments=[
            PaymentAttributes(
                payment_method_id="pm_card",
                source_attributes={"last_digits": "1111"},
            )
        ],
        existing_card_id="card_buyer",
    )
    errors = validate_step(CheckoutStep.PAYMENT, make_order(), attrs)
    self.assertIn("existing_card_id", errors)


class SummaryValidationTest(absltest.TestCase):

  def test_terms_not_required(self):
    self.assertEqual(
        validate_step(
            CheckoutStep.SUMMARY, make_order(), CheckoutUpdateRequest()
        ),
        {},
    )

  def test_terms_required(self):
    errors = validate_step(
        CheckoutStep.SUMMARY,
        make_order(),
        CheckoutUpdateRequest(),
        terms_required=True,
    )
    self.assertIn("accept_terms", errors)
    self.assertEqual(
        validate_step(
            CheckoutStep.SUMMARY,
            make_order(),
            CheckoutUpdateRequest(accept_terms=True),
            terms_required=True,
        ),
        {},
    )


if __name__ == "__main__":
  absltest.main()
