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

"""Tests for the payment applicator and the hosted gateway client."""

import asyncio
from decimal import Decimal
import json

from absl.testing import absltest
import httpx

from ..enums import AdjustmentOrigin
from ..enums import PaymentState
from ..exceptions import PaymentFailedError
from ..models import Payment
from ..models import PaymentAttributes
from ..models import PaymentSourceRef
from ..testing_utils import DatabaseTestCase
from ..testing_utils import GATEWAY_REDIRECT
from ..testing_utils import GATEWAY_URL
from ..testing_utils import gateway_transport
from ..testing_utils import make_order
from .hosted_gateway import HostedGatewayClient
from .payment_service import PaymentApplicator


class PaymentApplicatorTest(DatabaseTestCase):

  def run_applicator(self, fn):
    async def run(catalog_session, transactions_session):
      applicator = PaymentApplicator(
          catalog_session,
          transactions_session,
          HostedGatewayClient(transport=self.gateway_transport),
      )
      result = await fn(applicator)
      await transactions_session.commit()
      return result

    return self.in_sessions(run)

  def test_payment_methods_include_fees(self):
    options = self.run_applicator(
        lambda a: a.payment_methods_for(make_order())
    )
    fees = {o.id: o.fee for o in options}
    self.assertEqual(fees["pm_card"], Decimal("1.23"))
    self.assertEqual(fees["pm_cash"], Decimal("0.00"))

  def test_apply_manual_payment(self):
    order = make_order()

    payment = self.run_applicator(
        lambda a: a.apply(order, PaymentAttributes(payment_method_id="pm_cash"))
    )

    self.assertEqual(payment.amount, Decimal("20.00"))
    self.assertIsNone(payment.source)
    self.assertEqual(order.payments, [payment])

  def test_apply_adds_fee_before_amount(self):
    order = make_order()

    payment = self.run_applicator(
        lambda a: a.apply(
            order,
            PaymentAttributes(payment_method_id="pm_card"),
            existing_card_id="card_buyer",
        )
    )

    fee = order.adjustments_for(AdjustmentOrigin.PAYMENT_FEE)[0]
    self.assertEqual(fee.amount, Decimal("1.23"))
    self.assertEqual(fee.adjustable_id, payment.id)
    self.assertEqual(payment.amount, Decimal("21.23"))
    self.assertEqual(order.total, Decimal("21.23"))

  def test_new_card_details_are_stored_and_referenced(self):
    order = make_order()

    payment = self.run_applicator(
        lambda a: a.apply(
            order,
            PaymentAttributes(
                payment_method_id="pm_card",
                source_attributes={
                    "cc_type": "visa",
                    "last_digits": "1111",
                    "gateway_payment_profile_id": "tok_new",
                },
            ),
        )
    )

    self.assertEqual(payment.source.type, "credit_card")
    document = json.dumps(order.model_dump(mode="json"))
    self.assertNotIn("last_digits", document)

  def test_card_gateway_requires_source(self):
    with self.assertRaises(PaymentFailedError) as cm:
      self.run_applicator(
          lambda a: a.apply(
              make_order(), PaymentAttributes(payment_method_id="pm_card")
          )
      )
    self.assertEqual(cm.exception.code, "MISSING_SOURCE")

  def test_card_of_another_user_is_rejected(self):
    with self.assertRaises(PaymentFailedError) as cm:
      self.run_applicator(
          lambda a: a.apply(
              make_order(),
              PaymentAttributes(payment_method_id="pm_card"),
              existing_card_id="card_other",
          )
      )
    self.assertEqual(cm.exception.code, "INVALID_SOURCE")

  def test_method_not_offered_is_rejected(self):
    with self.assertRaises(PaymentFailedError) as cm:
      self.run_applicator(
          lambda a: a.apply(
              make_order(distributor_id="ent_unknown"),
              PaymentAttributes(payment_method_id="pm_cash"),
          )
      )
    self.assertEqual(cm.exception.code, "PAYMENT_METHOD_UNAVAILABLE")

  def test_explicit_zero_amount_for_free_order(self):
    order = make_order(variant_id="var_sample", price="0.00")

    payment = self.run_applicator(
        lambda a: a.apply(order, PaymentAttributes(amount=Decimal("0")))
    )

    self.assertTrue(payment.explicit_amount)
    self.assertIsNone(payment.payment_method_id)
    self.assertEqual(payment.amount, Decimal("0.00"))

  def test_explicit_amount_rejected_for_order_with_total(self):
    with self.assertRaises(PaymentFailedError) as cm:
      self.run_applicator(
          lambda a: a.apply(make_order(), PaymentAttributes(amount=Decimal(0)))
      )
    self.assertEqual(cm.exception.code, "INVALID_AMOUNT")

  def test_reapplying_discards_previous_payment_and_fee(self):
    order = make_order()
    self.run_applicator(
        lambda a: a.apply(
            order,
            PaymentAttributes(payment_method_id="pm_card"),
            existing_card_id="card_buyer",
        )
    )

    payment = self.run_applicator(
        lambda a: a.apply(order, PaymentAttributes(payment_method_id="pm_cash"))
    )

    self.assertEqual(order.payments, [payment])
    self.assertEmpty(order.adjustments_for(AdjustmentOrigin.PAYMENT_FEE))
    self.assertEqual(payment.amount, Decimal("20.00"))

  def test_authorize_external_only_for_hosted_gateway(self):
    order = make_order(
        payments=[Payment(id="pay_1", payment_method_id="pm_cash")]
    )
    pending = self.run_applicator(
        lambda a: a.authorize_external(order, "http://shop.test/orders/ord_1")
    )
    self.assertIsNone(pending)

  def test_authorize_external_returns_redirect(self):
    order = make_order(
        payments=[Payment(id="pay_1", payment_method_id="pm_hosted")]
    )
    pending = self.run_applicator(
        lambda a: a.authorize_external(order, "http://shop.test/orders/ord_1")
    )
    self.assertEqual(pending.redirect_url, GATEWAY_REDIRECT)

  def test_process_sets_payment_states(self):
    order = make_order(
        payments=[
            Payment(
                id="pay_1",
                payment_method_id="pm_card",
                source=PaymentSourceRef(id="card_buyer"),
            )
        ]
    )
    self.run_applicator(lambda a: a.process(order))
    self.assertEqual(order.payments[0].state, PaymentState.COMPLETED)

    order = make_order(
        payments=[Payment(id="pay_2", payment_method_id="pm_hosted")]
    )
    self.run_applicator(lambda a: a.process(order))
    self.assertEqual(
        order.payments[0].state, PaymentState.REQUIRES_AUTHORIZATION
    )

  def test_process_declined_card(self):
    order = make_order(
        payments=[
            Payment(
                id="pay_1",
                payment_method_id="pm_card",
                source=PaymentSourceRef(id="card_declined"),
            )
        ]
    )
    with self.assertRaises(PaymentFailedError) as cm:
      self.run_applicator(lambda a: a.process(order))
    self.assertEqual(cm.exception.code, "CARD_DECLINED")

  def test_process_without_payment(self):
    with self.assertRaises(PaymentFailedError) as cm:
      self.run_applicator(lambda a: a.process(make_order()))
    self.assertEqual(cm.exception.code, "MISSING_PAYMENT")


class HostedGatewayClientTest(absltest.TestCase):

  def request(self, transport):
    order = make_order(email="buyer@example.com")
    payment = Payment(
        id="pay_1", payment_method_id="pm_hosted", amount=Decimal("20.00")
    )
    client = HostedGatewayClient(transport=transport)
    return asyncio.run(
        client.request_redirect_url(
            GATEWAY_URL, order, payment, "http://shop.test/orders/ord_1"
        )
    )

  def test_posts_payment_and_returns_redirect(self):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
      requests.append(request)
      return httpx.Response(200, json={"redirect_url": GATEWAY_REDIRECT})

    self.assertEqual(
        self.request(httpx.MockTransport(handler)), GATEWAY_REDIRECT
    )
    body = json.loads(requests[0].content)
    self.assertEqual(body["order_id"], "ord_1")
    self.assertEqual(body["amount"], "20.00")
    self.assertEqual(body["return_url"], "http://shop.test/orders/ord_1")

  def test_rejected_request(self):
    with self.assertRaises(PaymentFailedError) as cm:
      self.request(gateway_transport(status_code=400))
    self.assertEqual(cm.exception.code, "GATEWAY_REJECTED")

  def test_invalid_response(self):
    with self.assertRaises(PaymentFailedError) as cm:
      self.request(gateway_transport(body={"url": "nope"}))
    self.assertEqual(cm.exception.code, "GATEWAY_INVALID_RESPONSE")

  def test_unreachable_gateway(self):
    def handler(request: httpx.Request) -> httpx.Response:
      raise httpx.ConnectError("connection refused", request=request)

    with self.assertRaises(PaymentFailedError) as cm:
      self.request(httpx.MockTransport(handler))
    self.assertEqual(cm.exception.code, "GATEWAY_UNAVAILABLE")


if __name__ == "__main__":
  absltest.main()
