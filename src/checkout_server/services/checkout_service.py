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

"""Checkout service driving an order through the checkout steps.

This module provides the `CheckoutService` class, which decides for a given
order and an incoming step request whether the request is valid, which side
effects run, and which state the order moves to next.

Key responsibilities include:
- Resolving the canonical step from the persisted order state.
- Gating every view and update on stock availability and distribution.
- Moving the order back to an earlier step when that step is viewed.
- Validating and applying details, payment and summary submissions.
- Recalculating voucher adjustments when shipping or payment fees change.
- Completing the order, or handing the buyer to an external gateway.

Every request runs in a single transaction: the order document and any rows
written on its behalf are committed together at the end, and rolled back when
a step fails.
"""

import datetime
from decimal import Decimal
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .. import db
from ..enums import AdjustmentOrigin
from ..enums import CheckoutStep
from ..enums import OrderState
from ..exceptions import CheckoutNotModifiableError
from ..exceptions import InvalidRequestError
from ..exceptions import NoRateAvailableError
from ..exceptions import OutOfStockError
from ..exceptions import PaymentFailedError
from ..exceptions import ResourceNotFoundError
from ..exceptions import StepMismatchError
from ..exceptions import ValidationFailure
from ..models import CheckoutUpdateRequest
from ..models import Order
from ..models import StepOutcome
from ..models import ZERO
from ..step_validator import validate_step
from ..steps import CART_PATH
from ..steps import next_state
from ..steps import order_path
from ..steps import parse_step
from ..steps import state_for
from ..steps import step_for
from ..steps import step_index
from ..steps import step_path
from .payment_service import PaymentApplicator
from .shipping_service import ShippingSelector
from .stock_service import StockAvailabilityChecker
from .voucher_service import needs_recalculation
from .voucher_service import VoucherAdjustmentsService

logger = logging.getLogger(__name__)

SAVING_FAILED = "Saving failed, please update the highlighted fields."

# Field that collaborator failures are reported against, per step.
_FAILURE_FIELD = {
    CheckoutStep.DETAILS: "shipping_method_id",
    CheckoutStep.PAYMENT: "payments",
    CheckoutStep.SUMMARY: "payments",
}


class CheckoutService:
  """Service for viewing and updating checkout steps of an order."""

  def __init__(
      self,
      stock_checker: StockAvailabilityChecker,
      shipping_selector: ShippingSelector,
      payment_applicator: PaymentApplicator,
      voucher_service: VoucherAdjustmentsService,
      catalog_session: AsyncSession,
      transactions_session: AsyncSession,
      base_url: str,
      platform_terms_required: bool = False,
  ):
    self.stock_checker = stock_checker
    self.shipping_selector = shipping_selector
    self.payment_applicator = payment_applicator
    self.voucher_service = voucher_service
    self.catalog_session = catalog_session
    self.transactions_session = transactions_session
    self.base_url = base_url.rstrip("/")
    self.platform_terms_required = platform_terms_required

  # --- Views ---

  async def view_step(
      self, order_token: str, step_name: Optional[str] = None
  ) -> StepOutcome:
    """Shows a checkout step, or redirects to where the buyer should be.

    Args:
      order_token: Access token of the buyer's current order.
      step_name: The requested step, or None.

    Returns:
      A render outcome for the requested step, or a redirect to the cart,
      the canonical step or the completed order.
    """
    order = await self._load_order(order_token)
    requested = parse_step(step_name)
    await db.log_request(
        self.transactions_session,
        method="GET",
        url=step_path(requested) if requested else "/checkout",
        order_id=order.id,
    )

    outcome = await self._view(order, requested)
    await self.transactions_session.commit()
    logger.info(
        "Viewed step %s of order %s: %s %s",
        step_name,
        order.id,
        outcome.kind.value,
        outcome.location or outcome.step.value,
    )
    return outcome

  async def _view(
      self, order: Order, requested: Optional[CheckoutStep]
  ) -> StepOutcome:
    if order.state == OrderState.COMPLETE:
      return StepOutcome.redirect(order_path(order))

    canonical = step_for(order.state)

    stock_redirect = await self._stock_gate(order)
    if stock_redirect:
      return stock_redirect

    if requested is None:
      return StepOutcome.redirect(step_path(canonical))

    if step_index(requested) < step_index(canonical):
      # Viewing an earlier step re-enters it.
      logger.info(
          "Order %s moves back from %s to %s",
          order.id,
          order.state.value,
          state_for(requested).value,
      )
      order.state = state_for(requested)
      await self._save(order)
      return await self._render(requested, order)

    if step_index(requested) > step_index(canonical):
      logger.warning(
          "Order %s cannot show step %s yet, redirecting to %s",
          order.id,
          requested.value,
          canonical.value,
      )
      return StepOutcome.redirect(step_path(canonical))

    return await self._render(requested, order)

  # --- Updates ---

  async def update_step(
      self,
      order_token: str,
      step_name: str,
      attrs: CheckoutUpdateRequest,
  ) -> StepOutcome:
    """Submits a checkout step.

    Args:
      order_token: Access token of the buyer's current order.
      step_name: The submitted step. Must be the order's canonical step.
      attrs: The submitted attributes.

    Returns:
      A redirect to the next step, the completed order or an external
      gateway; a redirect to the cart or the canonical step when the
      request cannot be applied; or a 422 render of the step with field
      errors when validation or a collaborator fails.

    Raises:
      ResourceNotFoundError: If no order has the given token.
      InvalidRequestError: If the step name is unknown.
      CheckoutNotModifiableError: If the order is already complete.
    """
    order = await self._load_order(order_token)
    requested = parse_step(step_name)
    if requested is None:
      raise InvalidRequestError("A checkout step is required")
    if order.state == OrderState.COMPLETE:
      raise CheckoutNotModifiableError(
          f"Cannot update checkout of order in state '{order.state.value}'"
      )

    persisted = order.model_copy(deep=True)
    try:
      outcome = await self._update(order, requested, attrs)
    except (ValidationFailure, NoRateAvailableError, PaymentFailedError) as e:
      await self.transactions_session.rollback()
      errors = getattr(e, "errors", None) or {
          _FAILURE_FIELD[requested]: e.message
      }
      logger.info(
          "Step %s of order %s failed validation: %s",
          requested.value,
          order.id,
          errors,
      )
      outcome = await self._render(
          requested, persisted, errors=errors, flash=SAVING_FAILED
      )
    except StepMismatchError as e:
      await self.transactions_session.rollback()
      logger.warning("%s", e.message)
      outcome = StepOutcome.redirect(
          step_path(CheckoutStep(e.canonical_step))
      )
    except OutOfStockError as e:
      await self.transactions_session.rollback()
      logger.warning("Order %s: %s", order.id, e.message)
      outcome = StepOutcome.redirect(CART_PATH)
    except Exception:
      await self.transactions_session.rollback()
      raise

    await db.log_request(
        self.transactions_session,
        method="PUT",
        url=step_path(requested),
        order_id=order.id,
        payload=_loggable(attrs),
    )
    await self.transactions_session.commit()
    logger.info(
        "Updated step %s of order %s: %s %s",
        requested.value,
        order.id,
        outcome.kind.value,
        outcome.location or outcome.status_code,
    )
    return outcome

  async def _update(
      self,
      order: Order,
      requested: CheckoutStep,
      attrs: CheckoutUpdateRequest,
  ) -> StepOutcome:
    canonical = step_for(order.state)

    stock_redirect = await self._stock_gate(order)
    if stock_redirect:
      return stock_redirect

    if requested != canonical:
      raise StepMismatchError(
          f"Order {order.id} is at step {canonical.value}, "
          f"not {requested.value}",
          canonical_step=canonical.value,
      )

    terms_required = False
    if requested == CheckoutStep.SUMMARY:
      terms_required = await self._terms_required(order)
    errors = validate_step(requested, order, attrs, terms_required)
    if errors:
      raise ValidationFailure(errors)

    if requested == CheckoutStep.DETAILS:
      await self._update_details(order, attrs)
    elif requested == CheckoutStep.PAYMENT:
      await self._update_payment(order, attrs)
    else:
      return await self._confirm(order)

    order.state = next_state(requested)
    await self._save(order)
    return StepOutcome.redirect(step_path(step_for(order.state)))

  async def _update_details(
      self, order: Order, attrs: CheckoutUpdateRequest
  ) -> None:
    # Compared before selection; an order without shipments has no method.
    shipping_changed = bool(
        attrs.shipping_method_id
        and attrs.shipping_method_id != order.shipping_method_id
    )

    order.email = attrs.email or order.email
    order.bill_address = attrs.bill_address or order.bill_address
    if attrs.ship_address_same_as_billing:
      order.ship_address = order.bill_address.model_copy()
    else:
      order.ship_address = attrs.ship_address or order.ship_address
    if attrs.special_instructions is not None:
      order.special_instructions = attrs.special_instructions

    if attrs.shipping_method_id:
      await self.shipping_selector.select(order, attrs.shipping_method_id)
    order.update_totals()

    if needs_recalculation(
        order, shipping_changed=shipping_changed, payment_changed=False
    ):
      await self.voucher_service.update(order)
    order.update_pending_payment()

    await self._save_default_addresses(order, attrs)

  async def _update_payment(
      self, order: Order, attrs: CheckoutUpdateRequest
  ) -> None:
    previous = order.pending_payment
    previous_method_id = previous.payment_method_id if previous else None
    previous_fees = _payment_fees(order)

    payment = await self.payment_applicator.apply(
        order, attrs.payments[0], attrs.existing_card_id
    )
    payment_changed = (
        previous is None
        or previous_method_id != payment.payment_method_id
        or previous_fees != _payment_fees(order)
    )

    if needs_recalculation(
        order, shipping_changed=False, payment_changed=payment_changed
    ):
      await self.voucher_service.update(order)
    order.update_pending_payment()

  async def _confirm(self, order: Order) -> StepOutcome:
    pending = await self.payment_applicator.authorize_external(
        order, return_url=self.base_url + order_path(order)
    )
    if pending:
      # The order stays at confirmation until the gateway confirms.
      return StepOutcome.external_redirect(pending.redirect_url)

    await self.payment_applicator.process(order)
    await self._reserve_stock(order)

    order.state = OrderState.COMPLETE
    order.completed_at = datetime.datetime.now(datetime.timezone.utc)
    await self._save(order)
    logger.info("Order %s complete, total %s", order.id, order.total)
    return StepOutcome.redirect(order_path(order))

  # --- Vouchers ---

  async def apply_voucher(self, order_token: str, code: str) -> StepOutcome:
    """Adds a voucher to an order at the payment step."""
    order = await self._load_order(order_token)
    if order.state != OrderState.PAYMENT:
      return _redirect_to_current_step(order)

    persisted = order.model_copy(deep=True)
    try:
      await self.voucher_service.apply_code(order, code)
    except ValidationFailure as e:
      await self.transactions_session.rollback()
      return await self._render(
          CheckoutStep.PAYMENT, persisted, errors=e.errors, flash=SAVING_FAILED
      )

    order.update_pending_payment()
    await self._save(order)
    await db.log_request(
        self.transactions_session,
        method="POST",
        url="/checkout/voucher",
        order_id=order.id,
        payload={"voucher_code": code},
    )
    await self.transactions_session.commit()
    return await self._render(CheckoutStep.PAYMENT, order)

  async def remove_voucher(self, order_token: str) -> StepOutcome:
    """Removes the voucher from an order at the payment step."""
    order = await self._load_order(order_token)
    if order.state != OrderState.PAYMENT:
      return _redirect_to_current_step(order)

    self.voucher_service.remove(order)
    order.update_pending_payment()
    await self._save(order)
    await db.log_request(
        self.transactions_session,
        method="DELETE",
        url="/checkout/voucher",
        order_id=order.id,
    )
    await self.transactions_session.commit()
    return await self._render(CheckoutStep.PAYMENT, order)

  # --- Orders ---

  async def get_order(self, order_id: str, order_token: str) -> Order:
    """Retrieves an order, checking its access token."""
    data = await db.get_order(self.transactions_session, order_id)
    if not data:
      raise ResourceNotFoundError("Order not found")
    order = Order.model_validate(data)
    if order.token != order_token:
      raise ResourceNotFoundError("Order not found")
    return order

  # --- Helpers ---

  async def _load_order(self, order_token: str) -> Order:
    data = await db.get_order_by_token(self.transactions_session, order_token)
    if not data:
      raise ResourceNotFoundError("Order not found")
    return Order.model_validate(data)

  async def _save(self, order: Order) -> None:
    await db.save_order(
        self.transactions_session,
        order.id,
        order.token,
        order.state.value,
        order.model_dump(mode="json"),
    )

  async def _stock_gate(self, order: Order) -> Optional[StepOutcome]:
    """Returns a redirect to the cart when the order cannot be supplied."""
    report = await self.stock_checker.check(order)
    if report.has_insufficient_stock:
      logger.warning("Order %s has items out of stock", order.id)
      return StepOutcome.redirect(CART_PATH)
    if not report.is_distributed:
      logger.warning(
          "Order %s has items no longer distributed by %s",
          order.id,
          order.distributor_id,
      )
      return StepOutcome.redirect(CART_PATH)
    return None

  async def _terms_required(self, order: Order) -> bool:
    if self.platform_terms_required:
      return True
    if not order.distributor_id:
      return False
    distributor = await db.get_enterprise(
        self.catalog_session, order.distributor_id
    )
    return bool(distributor and distributor.terms_required)

  async def _reserve_stock(self, order: Order) -> None:
    variants = {
        v.id: v
        for v in await db.get_variants(
            self.catalog_session, [li.variant_id for li in order.line_items]
        )
    }
    for line in order.line_items:
      variant = variants.get(line.variant_id)
      if variant is not None and variant.on_demand:
        continue
      if not await db.reserve_stock(
          self.transactions_session, line.variant_id, line.quantity
      ):
        raise OutOfStockError(f"Item {line.variant_id} is out of stock")

  async def _save_default_addresses(
      self, order: Order, attrs: CheckoutUpdateRequest
  ) -> None:
    """Stores the order's addresses as defaults on the user and customer."""
    if not (attrs.save_bill_address or attrs.save_ship_address):
      return

    saved = {}
    if attrs.save_bill_address:
      saved["bill_address_id"] = await db.save_address(
          self.transactions_session, order.bill_address.model_dump()
      )
    if attrs.save_ship_address:
      saved["ship_address_id"] = await db.save_address(
          self.transactions_session, order.ship_address.model_dump()
      )

    targets = []
    if order.user_id:
      user = await db.get_user(self.transactions_session, order.user_id)
      if user:
        targets.append(user)
    if order.distributor_id and order.email:
      customer = await db.get_or_create_customer(
          self.transactions_session,
          order.distributor_id,
          order.email,
          user_id=order.user_id,
      )
      order.customer_id = customer.id
      targets.append(customer)

    for target in targets:
      for field, address_id in saved.items():
        setattr(target, field, address_id)

  async def _render(
      self,
      step: CheckoutStep,
      order: Order,
      errors: Optional[Dict[str, str]] = None,
      flash: Optional[str] = None,
  ) -> StepOutcome:
    outcome = StepOutcome.render(step, order, errors=errors, flash=flash)
    if step == CheckoutStep.DETAILS:
      outcome.shipping_methods = (
          await self.shipping_selector.available_shipping_methods(order)
      )
    elif step == CheckoutStep.PAYMENT:
      outcome.payment_methods = (
          await self.payment_applicator.payment_methods_for(order)
      )
    return outcome


def _payment_fees(order: Order) -> Decimal:
  return sum(
      (a.amount for a in order.adjustments_for(AdjustmentOrigin.PAYMENT_FEE)),
      ZERO,
  )


def _loggable(attrs: CheckoutUpdateRequest) -> Dict[str, Any]:
  """Request payload for the request log, without card details."""
  return attrs.model_dump(
      mode="json",
      exclude={"payments": {"__all__": {"source_attributes"}}},
  )


def _redirect_to_current_step(order: Order) -> StepOutcome:
  if order.state == OrderState.COMPLETE:
    return StepOutcome.redirect(order_path(order))
  return StepOutcome.redirect(step_path(step_for(order.state)))
