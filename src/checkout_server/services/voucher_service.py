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

"""Voucher adjustments and their recalculation when order fees change."""

from decimal import Decimal
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from .. import db
from ..enums import AdjustmentOrigin
from ..enums import VoucherType
from ..exceptions import ValidationFailure
from ..models import Adjustment
from ..models import cents_to_money
from ..models import new_id
from ..models import Order
from ..models import to_money
from ..models import ZERO

logger = logging.getLogger(__name__)


def needs_recalculation(
    order: Order, shipping_changed: bool, payment_changed: bool
) -> bool:
  """Whether the voucher adjustment must be recalculated after a step update.

  Only orders carrying a voucher are affected, and only by changes to the
  fees the voucher is computed against.
  """
  if order.voucher_adjustment is None:
    return False
  return shipping_changed or payment_changed


def _voucher_amount(voucher: db.Voucher, base: Decimal) -> Decimal:
  if base <= ZERO:
    return ZERO
  if voucher.voucher_type == VoucherType.PERCENTAGE.value:
    return -to_money(base * Decimal(voucher.amount or 0) / 100)
  return -min(cents_to_money(voucher.amount), base)


class VoucherAdjustmentsService:
  """Creates and recalculates voucher adjustments."""

  def __init__(self, catalog_session: AsyncSession):
    self.catalog_session = catalog_session

  async def apply_code(self, order: Order, code: str) -> Adjustment:
    """Applies a distributor's voucher, replacing any voucher already used.

    Raises:
      ValidationFailure: If the distributor has no voucher with that code.
    """
    voucher = None
    if order.distributor_id:
      voucher = await db.get_voucher_by_code(
          self.catalog_session, order.distributor_id, code.strip()
      )
    if voucher is None:
      raise ValidationFailure({"voucher_code": "Voucher code not found"})

    self.remove(order)
    adjustment = Adjustment(
        id=new_id("adj"),
        origin=AdjustmentOrigin.VOUCHER,
        originator_id=voucher.id,
        label=f"Voucher {voucher.code}",
    )
    order.adjustments.append(adjustment)
    await self.update(order)
    return adjustment

  def remove(self, order: Order) -> None:
    order.adjustments = [
        a for a in order.adjustments if a.origin != AdjustmentOrigin.VOUCHER
    ]
    order.update_totals()

  async def update(self, order: Order) -> None:
    """Recalculates the voucher adjustment against the current order totals.

    The amount is computed from the item total and every non-voucher
    adjustment, so calling this repeatedly with unchanged inputs yields the
    same amount. Does nothing when the order has no voucher.
    """
    adjustment = order.voucher_adjustment
    if adjustment is None:
      return

    order.update_totals()
    voucher = await db.get_voucher(
        self.catalog_session, adjustment.originator_id
    )
    if voucher is None:
      logger.warning(
          "Voucher %s no longer exists, removing it from order %s",
          adjustment.originator_id,
          order.id,
      )
      self.remove(order)
      return

    base = order.total - adjustment.amount
    adjustment.amount = _voucher_amount(voucher, base)
    order.update_totals()
    logger.info(
        "Recalculated voucher %s on order %s: %s",
        voucher.code,
        order.id,
        adjustment.amount,
    )
