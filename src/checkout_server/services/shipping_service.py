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

"""Shipping service for selecting shipping rates on an order's shipments.

This module encapsulates the logic for determining available shipping methods
and their costs for a distributor, and for attaching the chosen method's rate
to every shipment of an order.
"""

import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from .. import db
from ..exceptions import NoRateAvailableError
from ..models import new_id
from ..models import Order
from ..models import ShippingMethodOption
from ..models import ShippingRate
from .calculators import compute_fee

logger = logging.getLogger(__name__)


class ShippingSelector:
  """Selects shipping rates for an order."""

  def __init__(self, catalog_session: AsyncSession):
    self.catalog_session = catalog_session

  async def available_shipping_methods(
      self, order: Order
  ) -> List[ShippingMethodOption]:
    """Lists the distributor's shipping methods with their cost for the order.

    Args:
      order: The order being checked out.

    Returns:
      A list of ShippingMethodOption objects, sorted by cost.
    """
    if not order.distributor_id:
      return []

    methods = await db.get_shipping_methods(
        self.catalog_session, order.distributor_id
    )
    options = []
    for method in methods:
      try:
        cost = compute_fee(
            method.calculator_type, method.calculator_amount, order.item_total
        )
      except ValueError as e:
        logger.error(
            "Skipping shipping method %s with bad calculator: %s", method.id, e
        )
        continue
      options.append(
          ShippingMethodOption(id=method.id, name=method.name, cost=cost)
      )

    # Sort for deterministic output
    return sorted(options, key=lambda o: (o.cost, o.name))

  async def select(self, order: Order, shipping_method_id: str) -> None:
    """Selects the given shipping method on every shipment of the order.

    Existing candidate rates for the method are reused; otherwise a rate is
    materialised from the method's calculator. Any previously selected rate
    is deselected. An order without shipments is left unchanged.

    Args:
      order: The order to update in place.
      shipping_method_id: The shipping method chosen by the buyer.

    Raises:
      NoRateAvailableError: If the distributor does not offer the method or
        its rate cannot be computed for the order.
    """
    method = None
    if order.distributor_id:
      method = await db.get_shipping_method(
          self.catalog_session, order.distributor_id, shipping_method_id
      )
    if method is None:
      raise NoRateAvailableError(
          f"Shipping method {shipping_method_id} is not available"
      )

    if not order.shipments:
      logger.info("Order %s has no shipments to select a rate on", order.id)
      return

    order.update_totals()
    try:
      cost = compute_fee(
          method.calculator_type, method.calculator_amount, order.item_total
      )
    except ValueError as e:
      raise NoRateAvailableError(
          f"No rate for shipping method {shipping_method_id}: {e}"
      ) from e

    for shipment in order.shipments:
      rate = next(
          (
              r
              for r in shipment.shipping_rates
              if r.shipping_method_id == method.id
          ),
          None,
      )
      if rate is None:
        rate = ShippingRate(
            id=new_id("rate"),
            shipping_method_id=method.id,
            name=method.name,
        )
        shipment.shipping_rates.append(rate)
      rate.cost = cost
      rate.name = method.name
      shipment.select_rate(rate.id)

    order.update_totals()
