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

"""Payment service for creating and processing checkout payments.

Key responsibilities include:
- Creating the single payment of a payment-step submission, with its amount
  computed from the order totals after any payment-method fee is attached.
- Resolving payment sources. Saved cards are referenced by ID after checking
  they belong to the buyer; card data is never copied into the payment.
- Asking hosted gateways for the URL the buyer must be redirected to.
- Processing payments through internal gateways when the order is confirmed.
"""

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .. import db
from ..enums import AdjustmentOrigin
from ..enums import GatewayKind
from ..enums import PaymentState
from ..exceptions import PaymentFailedError
from ..models import Adjustment
from ..models import new_id
from ..models import Order
from ..models import Payment
from ..models import PaymentAttributes
from ..models import PaymentMethodOption
from ..models import PaymentSourceRef
from ..models import to_money
from ..models import ZERO
from .calculators import compute_fee
from .hosted_gateway import ExternalGatewayPending
from .hosted_gateway import HostedGatewayClient

logger = logging.getLogger(__name__)

DECLINED_TOKEN = "declined"


def _gateway_kind(method: db.PaymentMethod) -> GatewayKind:
  try:
    return GatewayKind(method.gateway or GatewayKind.MANUAL)
  except ValueError as e:
    raise PaymentFailedError(
        f"Payment method {method.id} has an unsupported gateway",
        code="PAYMENT_METHOD_MISCONFIGURED",
    ) from e


class PaymentApplicator:
  """Service for applying payments to an order."""

  def __init__(
      self,
      catalog_session: AsyncSession,
      transactions_session: AsyncSession,
      gateway_client: HostedGatewayClient,
  ):
    self.catalog_session = catalog_session
    self.transactions_session = transactions_session
    self.gateway_client = gateway_client

  async def payment_methods_for(
      self, order: Order
  ) -> List[PaymentMethodOption]:
    """Lists the distributor's payment methods with their fee for the order."""
    if not order.distributor_id:
      return []
    options = []
    for method in await db.get_payment_methods(
        self.catalog_session, order.distributor_id
    ):
      try:
        fee = compute_fee(
            method.calculator_type, method.calculator_amount, order.item_total
        )
      except ValueError as e:
        logger.error(
            "Skipping payment method %s with bad calculator: %s", method.id, e
        )
        continue
      options.append(
          PaymentMethodOption(id=method.id, name=method.name, fee=fee)
      )
    return options

  async def apply(
      self,
      order: Order,
      attributes: PaymentAttributes,
      existing_card_id: Optional[str] = None,
  ) -> Payment:
    """Creates the order's payment from a payment-step submission.

    Any payment left over from an earlier submission is discarded together
    with its fee, so each submission leaves exactly one checkout payment.

    Args:
      order: The order to update in place.
      attributes: The submitted payment attributes.
      existing_card_id: ID of a saved card to pay with, if any.

    Returns:
      The new payment.

    Raises:
      PaymentFailedError: If the payment method is not offered by the
        distributor or misconfigured, or the source cannot be used.
    """
    self._discard_checkout_payments(order)
    order.update_totals()

    if attributes.amount is not None:
      return await self._apply_explicit_amount(order, attributes)

    method = await self._fetch_method(order, attributes.payment_method_id)
    payment = Payment(
        id=new_id("pay"),
        payment_method_id=method.id,
        source=await self._resolve_source(
            order, method, attributes, existing_card_id
        ),
    )

    # The fee must be attached before the amount is read.
    try:
      fee = compute_fee(
          method.calculator_type, method.calculator_amount, order.item_total
      )
    except ValueError as e:
      raise PaymentFailedError(
          f"Payment method {method.id} has an invalid fee calculator",
          code="PAYMENT_METHOD_MISCONFIGURED",
      ) from e
    if fee != ZERO:
      order.adjustments.append(
          Adjustment(
              id=new_id("adj"),
              origin=AdjustmentOrigin.PAYMENT_FEE,
              originator_id=method.id,
              adjustable_id=payment.id,
              label=f"{method.name} fee",
              amount=fee,
          )
      )

    order.payments.append(payment)
    order.update_totals()
    payment.amount = to_money(order.item_total + order.adjustment_total)
    logger.info(
        "Applied payment %s of %s with method %s to order %s",
        payment.id,
        payment.amount,
        method.id,
        order.id,
    )
    return payment

  async def _apply_explicit_amount(
      self, order: Order, attributes: PaymentAttributes
  ) -> Payment:
    if order.total != ZERO or attributes.amount != ZERO:
      raise PaymentFailedError(
          "Only orders with nothing to pay accept an explicit zero amount",
          code="INVALID_AMOUNT",
          status_code=422,
      )
    method_id = None
    if attributes.payment_method_id:
      method_id = (
          await self._fetch_method(order, attributes.payment_method_id)
      ).id
    payment = Payment(
        id=new_id("pay"),
        payment_method_id=method_id,
        amount=ZERO,
        explicit_amount=True,
    )
    order.payments.append(payment)
    logger.info("Applied zero-amount payment to order %s", order.id)
    return payment

  def _discard_checkout_payments(self, order: Order) -> None:
    stale_ids = {p.id for p in order.checkout_payments}
    if not stale_ids:
      return
    order.payments = [p for p in order.payments if p.id not in stale_ids]
    order.adjustments = [
        a
        for a in order.adjustments
        if not (
            a.origin == AdjustmentOrigin.PAYMENT_FEE
            and a.adjustable_id in stale_ids
        )
    ]

  async def _fetch_method(
      self, order: Order, payment_method_id: Optional[str]
  ) -> db.PaymentMethod:
    method = None
    if payment_method_id and order.distributor_id:
      method = await db.get_payment_method(
          self.catalog_session, order.distributor_id, payment_method_id
      )
    if method is None:
      raise PaymentFailedError(
          f"Payment method {payment_method_id} is not available",
          code="PAYMENT_METHOD_UNAVAILABLE",
          status_code=422,
      )
    return method

  async def _resolve_source(
      self,
      order: Order,
      method: db.PaymentMethod,
      attributes: PaymentAttributes,
      existing_card_id: Optional[str],
  ) -> Optional[PaymentSourceRef]:
    """Resolves the payment source to a reference to a stored card."""
    if existing_card_id:
      card = await db.get_credit_card(
          self.transactions_session, existing_card_id
      )
      if card is None or not order.user_id or card.user_id != order.user_id:
        logger.warning(
            "Rejected card %s for order %s: not owned by the buyer",
            existing_card_id,
            order.id,
        )
        raise PaymentFailedError(
            "Saved card not found", code="INVALID_SOURCE", status_code=422
        )
      return PaymentSourceRef(id=card.id)

    if attributes.source_attributes:
      card_id = await db.save_credit_card(
          self.transactions_session, order.user_id, attributes.source_attributes
      )
      return PaymentSourceRef(id=card_id)

    if _gateway_kind(method) == GatewayKind.CARD:
      raise PaymentFailedError(
          "Card details are required", code="MISSING_SOURCE", status_code=422
      )
    return None

  async def authorize_external(
      self, order: Order, return_url: str
  ) -> Optional[ExternalGatewayPending]:
    """Requests an external redirect when the order pays off-platform.

    Args:
      order: The order being confirmed.
      return_url: Where the gateway sends the buyer back to.

    Returns:
      The pending external payment, or None when the payment method is
      handled on-platform.

    Raises:
      PaymentFailedError: If the payment method is misconfigured or the
        gateway rejects the request.
    """
    payment = order.pending_payment
    if payment is None or payment.payment_method_id is None:
      return None
    method = await self._fetch_method(order, payment.payment_method_id)
    if _gateway_kind(method) != GatewayKind.HOSTED:
      return None
    if not method.hosted_url:
      raise PaymentFailedError(
          f"Payment method {method.id} has no gateway URL",
          code="PAYMENT_METHOD_MISCONFIGURED",
      )

    redirect_url = await self.gateway_client.request_redirect_url(
        method.hosted_url, order, payment, return_url
    )
    logger.info(
        "Order %s awaits external payment at %s", order.id, redirect_url
    )
    return ExternalGatewayPending(redirect_url=redirect_url)

  async def process(self, order: Order) -> None:
    """Processes the order's checkout payments through internal gateways.

    Raises:
      PaymentFailedError: If the order has no payment or a card is declined.
    """
    payments = order.checkout_payments
    if not payments:
      raise PaymentFailedError(
          "The order has no payment", code="MISSING_PAYMENT", status_code=422
      )

    for payment in payments:
      if payment.payment_method_id is None or payment.explicit_amount:
        payment.state = PaymentState.COMPLETED
        continue

      method = await self._fetch_method(order, payment.payment_method_id)
      kind = _gateway_kind(method)
      if kind == GatewayKind.CARD:
        await self._charge_card(payment)
        payment.state = PaymentState.COMPLETED
      elif kind == GatewayKind.HOSTED:
        payment.state = PaymentState.REQUIRES_AUTHORIZATION
      else:
        # Settled offline, e.g. cash or bank transfer.
        payment.state = PaymentState.PENDING

  async def _charge_card(self, payment: Payment) -> None:
    card = None
    if payment.source:
      card = await db.get_credit_card(
          self.transactions_session, payment.source.id
      )
    if card is None:
      raise PaymentFailedError(
          "Card details are required", code="MISSING_SOURCE", status_code=422
      )
    if card.gateway_payment_profile_id == DECLINED_TOKEN:
      raise PaymentFailedError(
          "Payment Failed: Card declined", code="CARD_DECLINED"
      )
    logger.info(
        "Charged %s to card ending in %s", payment.amount, card.last_digits
    )
