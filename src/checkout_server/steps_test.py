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

"""Tests for the mapping between order states and checkout steps."""

from absl.testing import absltest
from absl.testing import parameterized

from . import steps
from .enums import CheckoutStep
from .enums import OrderState
from .exceptions import InvalidRequestError
from .testing_utils import make_order


class StepsTest(parameterized.TestCase):

  @parameterized.parameters(
      (OrderState.CART, CheckoutStep.DETAILS),
      (OrderState.ADDRESS, CheckoutStep.DETAILS),
      (OrderState.PAYMENT, CheckoutStep.PAYMENT),
      (OrderState.CONFIRMATION, CheckoutStep.SUMMARY),
  )
  def test_step_for(self, state, step):
    self.assertEqual(steps.step_for(state), step)

  def test_complete_order_has_no_step(self):
    with self.assertRaises(InvalidRequestError):
      steps.step_for(OrderState.COMPLETE)

  def test_state_and_next_state(self):
    self.assertEqual(
        steps.state_for(CheckoutStep.DETAILS), OrderState.ADDRESS
    )
    self.assertEqual(
        steps.next_state(CheckoutStep.DETAILS), OrderState.PAYMENT
    )
    self.assertEqual(
        steps.next_state(CheckoutStep.SUMMARY), OrderState.COMPLETE
    )

  def test_steps_are_ordered(self):
    self.assertLess(
        steps.step_index(CheckoutStep.DETAILS),
        steps.step_index(CheckoutStep.PAYMENT),
    )
    self.assertLess(
        steps.step_index(CheckoutStep.PAYMENT),
        steps.step_index(CheckoutStep.SUMMARY),
    )

  @parameterized.parameters(
      ("details", CheckoutStep.DETAILS),
      ("address", CheckoutStep.DETAILS),
      ("payment", CheckoutStep.PAYMENT),
      ("summary", CheckoutStep.SUMMARY),
      ("confirmation", CheckoutStep.SUMMARY),
      (None, None),
      ("", None),
  )
  def test_parse_step(self, name, step):
    self.assertEqual(steps.parse_step(name), step)

  def test_parse_unknown_step(self):
    with self.assertRaises(InvalidRequestError):
      steps.parse_step("delivery")

  def test_paths(self):
    self.assertEqual(
        steps.step_path(CheckoutStep.PAYMENT), "/checkout/payment"
    )
    order = make_order(order_id="ord_9", token="a b&c")
    self.assertEqual(
        steps.order_path(order), "/orders/ord_9?order_token=a+b%26c"
    )


if __name__ == "__main__":
  absltest.main()
