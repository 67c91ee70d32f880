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

"""Tests for voucher adjustments."""

from decimal import Decimal

from absl.testing import absltest

from .. import db
from ..enums import AdjustmentOrigin
from ..exceptions import ValidationFailure
from ..models import Adjustment
from ..testing_utils import DatabaseTestCase
from ..testing_utils import make_order
from .voucher_service import needs_recalculation
from .voucher_service import VoucherAdjustmentsService


def fee(amount: str) -> Adjustment:
  return Adjustment(
      id="adj_fee",
      origin=AdjustmentOrigin.PAYMENT_FEE,
      amount=Decimal(amount),
  )


class NeedsRecalculationTest(absltest.TestCase):

  def test_without_voucher(self):
    self.assertFalse(needs_recalculation(make_order(), True, True))

  def test_with_voucher(self):
    order = make_order()
    order.adjustments.append(
        Adjustment(id="adj_v", origin=AdjustmentOrigin.VOUCHER)
    )
    self.assertTrue(needs_recalculation(order, True, False))
    self.assertTrue(needs_recalculation(order, False, True))
    self.assertFalse(needs_recalculation(order, False, False))


class VoucherAdjustmentsServiceTest(DatabaseTestCase):

  def run_service(self, fn):
    async def run(catalog_session, transactions_session):
      del transactions_session  # Unused.
      return await fn(VoucherAdjustmentsService(catalog_session))

    return self.in_sessions(run)

  def test_apply_flat_voucher(self):
    order = make_order()

    adjustment = self.run_service(lambda s: s.apply_code(order, " SAVE5 "))

    self.assertEqual(adjustment.amount, Decimal("-5.00"))
    self.assertEqual(adjustment.originator_id, "vch_flat")
    self.assertEqual(order.total, Decimal("15.00"))

  def test_flat_voucher_never_exceeds_order_total(self):
    order = make_order(quantity=1, price="3.00")

    self.run_service(lambda s: s.apply_code(order, "SAVE5"))

    self.assertEqual(order.voucher_adjustment.amount, Decimal("-3.00"))
    self.assertEqual(order.total, Decimal("0.00"))

  def test_apply_replaces_existing_voucher(self):
    order = make_order()
    self.run_service(lambda s: s.apply_code(order, "SAVE5"))

    self.run_service(lambda s: s.apply_code(order, "TENOFF"))

    vouchers = order.adjustments_for(AdjustmentOrigin.VOUCHER)
    self.assertLen(vouchers, 1)
    self.assertEqual(vouchers[0].amount, Decimal("-2.00"))

  def test_unknown_code(self):
    with self.assertRaises(ValidationFailure) as cm:
      self.run_service(lambda s: s.apply_code(make_order(), "NOPE"))
    self.assertIn("voucher_code", cm.exception.errors)

  def test_update_includes_fees(self):
    order = make_order()
    self.run_service(lambda s: s.apply_code(order, "TENOFF"))
    order.adjustments.append(fee("10.00"))

    self.run_service(lambda s: s.update(order))

    self.assertEqual(order.voucher_adjustment.amount, Decimal("-3.00"))
    self.assertEqual(order.total, Decimal("27.00"))

  def test_update_twice_yields_same_amount(self):
    order = make_order()
    self.run_service(lambda s: s.apply_code(order, "TENOFF"))
    order.adjustments.append(fee("1.23"))

    self.run_service(lambda s: s.update(order))
    first = order.voucher_adjustment.amount
    self.run_service(lambda s: s.update(order))

    self.assertEqual(order.voucher_adjustment.amount, first)
    self.assertEqual(first, Decimal("-2.12"))

  def test_update_without_voucher_is_noop(self):
    order = make_order()

    self.run_service(lambda s: s.update(order))

    self.assertEqual(order.total, Decimal("20.00"))

  def test_deleted_voucher_is_removed(self):
    order = make_order()
    self.run_service(lambda s: s.apply_code(order, "SAVE5"))

    async def delete_voucher(catalog_session, transactions_session):
      del transactions_session  # Unused.
      voucher = await db.get_voucher(catalog_session, "vch_flat")
      await catalog_session.delete(voucher)
      await catalog_session.commit()

    self.in_sessions(delete_voucher)
    self.run_service(lambda s: s.update(order))

    self.assertIsNone(order.voucher_adjustment)
    self.assertEqual(order.total, Decimal("20.00"))

  def test_remove(self):
    order = make_order()
    self.run_service(lambda s: s.apply_code(order, "SAVE5"))

    VoucherAdjustmentsService(None).remove(order)

    self.assertIsNone(order.voucher_adjustment)
    self.assertEqual(order.total, Decimal("20.00"))


if __name__ == "__main__":
  absltest.main()
