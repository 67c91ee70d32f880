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

"""Stock availability checks run before any checkout step is shown or saved."""

import dataclasses
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from .. import db
from ..models import Order

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class StockReport:
  has_insufficient_stock: bool
  is_distributed: bool


class StockAvailabilityChecker:
  """Reports whether an order's line items can still be supplied."""

  def __init__(
      self,
      catalog_session: AsyncSession,
      transactions_session: AsyncSession,
  ):
    self.catalog_session = catalog_session
    self.transactions_session = transactions_session

  async def check(self, order: Order) -> StockReport:
    """Checks stock levels and distribution for every line item."""
    return StockReport(
        has_insufficient_stock=await self._has_insufficient_stock(order),
        is_distributed=await self._is_distributed(order),
    )

  async def _has_insufficient_stock(self, order: Order) -> bool:
    variant_ids = [li.variant_id for li in order.line_items]
    variants = {
        v.id: v
        for v in await db.get_variants(self.catalog_session, variant_ids)
    }
    for line in order.line_items:
      variant = variants.get(line.variant_id)
      if variant is None:
        logger.info("Variant %s no longer exists", line.variant_id)
        return True
      if variant.on_demand:
        continue
      on_hand = await db.get_inventory(
          self.transactions_session, line.variant_id
      )
      if (on_hand or 0) < line.quantity:
        logger.info(
            "Insufficient stock for variant %s: %s on hand, %d requested",
            line.variant_id,
            on_hand,
            line.quantity,
        )
        return True
    return False

  async def _is_distributed(self, order: Order) -> bool:
    if not order.distributor_id or not order.order_cycle_id:
      return False
    distributed = await db.get_distributed_variant_ids(
        self.catalog_session, order.order_cycle_id, order.distributor_id
    )
    return all(li.variant_id in distributed for li in order.line_items)
