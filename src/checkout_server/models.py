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

"""Order document, request and outcome models for the checkout server.

The order is persisted as a JSON document (see `db.save_order`) and loaded
back into these models for every request, so all derived values (totals,
shipment costs, pending payment amounts) are recomputed from the document's
constituents rather than accumulated.
"""

import datetime
from decimal import Decimal
from decimal import ROUND_HALF_UP
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel
from pydantic import Field

from .enums import AdjustmentOrigin
from .enums import CheckoutStep
from .enums import OrderState
from .enums import OutcomeKind
from .enums import PaymentState

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
  """Rounds a number to two decimal places."""
  return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def cents_to_money(cents: Optional[int]) -> Decimal:
  """Converts an integer amount in cents (as stored in the DB) to money."""
  return to_money(Decimal(cents or 0) / 100)


def new_id(prefix: str) -> str:
  return f"{prefix}_{uuid.uuid4().hex[:12]}"


REQUIRED_ADDRESS_FIELDS = (
    "firstname",
    "lastname",
    "address1",
    "city",
    "zipcode",
    "phone",
    "country",
)


class Address(BaseModel):
  """Billing or shipping address.

  Every field is optional so that incomplete submissions can be parsed and
  reported field by field by the step validator.
  """

  firstname: Optional[str] = None
  lastname: Optional[str] = None
  company: Optional[str] = None
  address1: Optional[str] = None
  address2: Optional[str] = None
  city: Optional[str] = None
  zipcode: Optional[str] = None
  phone: Optional[str] = None
  state_name: Optional[str] = None
  country: Optional[str] = None

  def missing_fields(self) -> List[str]:
    return [
        name
        for name in REQUIRED_ADDRESS_FIELDS
        if not (getattr(self, name) or "").strip()
    ]


class LineItem(BaseModel):
  id: str
  variant_id: str
  quantity: int
  price: Decimal = ZERO

  @property
  def amount(self) -> Decimal:
    return to_money(self.price * self.quantity)


class ShippingRate(BaseModel):
  id: str
  shipping_method_id: str
  name: str = ""
  cost: Decimal = ZERO
  selected: bool = False


class Shipment(BaseModel):
  """A shipment of the order's items.

  Holds candidate shipping rates of which at most one is selected.
  """

  id: str
  shipping_rates: List[ShippingRate] = Field(default_factory=list)
  cost: Decimal = ZERO

  @property
  def selected_shipping_rate(self) -> Optional[ShippingRate]:
    return next((r for r in self.shipping_rates if r.selected), None)

  def select_rate(self, rate_id: str) -> None:
    for rate in self.shipping_rates:
      rate.selected = rate.id == rate_id


class PaymentSourceRef(BaseModel):
  """Borrowed reference to a stored payment source (never a copy)."""

  type: str = "credit_card"
  id: str


class Payment(BaseModel):
  id: str
  payment_method_id: Optional[str] = None
  amount: Decimal = ZERO
  state: PaymentState = PaymentState.CHECKOUT
  source: Optional[PaymentSourceRef] = None
  explicit_amount: bool = False


class Adjustment(BaseModel):
  id: str
  origin: AdjustmentOrigin
  originator_id: Optional[str] = None
  adjustable_id: Optional[str] = None
  label: str = ""
  amount: Decimal = ZERO


class Order(BaseModel):
  """The order document that moves through checkout."""

  id: str
  token: str
  state: OrderState = OrderState.CART
  email: Optional[str] = None
  user_id: Optional[str] = None
  customer_id: Optional[str] = None
  distributor_id: Optional[str] = None
  order_cycle_id: Optional[str] = None
  line_items: List[LineItem] = Field(default_factory=list)
  bill_address: Optional[Address] = None
  ship_address: Optional[Address] = None
  shipments: List[Shipment] = Field(default_factory=list)
  payments: List[Payment] = Field(default_factory=list)
  adjustments: List[Adjustment] = Field(default_factory=list)
  special_instructions: Optional[str] = None
  item_total: Decimal = ZERO
  adjustment_total: Decimal = ZERO
  total: Decimal = ZERO
  completed_at: Optional[datetime.datetime] = None

  @property
  def shipping_method_id(self) -> Optional[str]:
    if not self.shipments:
      return None
    rate = self.shipments[0].selected_shipping_rate
    return rate.shipping_method_id if rate else None

  @property
  def voucher_adjustment(self) -> Optional[Adjustment]:
    return next(
        (a for a in self.adjustments if a.origin == AdjustmentOrigin.VOUCHER),
        None,
    )

  @property
  def checkout_payments(self) -> List[Payment]:
    return [p for p in self.payments if p.state == PaymentState.CHECKOUT]

  @property
  def pending_payment(self) -> Optional[Payment]:
    payments = self.checkout_payments
    return payments[-1] if payments else None

  @property
  def total_before_payment(self) -> Decimal:
    """The total without fees of payments still being checked out."""
    pending_ids = {p.id for p in self.checkout_payments}
    adjustments = (
        a.amount
        for a in self.adjustments
        if not (
            a.origin == AdjustmentOrigin.PAYMENT_FEE
            and a.adjustable_id in pending_ids
        )
    )
    return to_money(self.item_total + sum(adjustments, ZERO))

  def adjustments_for(self, origin: AdjustmentOrigin) -> List[Adjustment]:
    return [a for a in self.adjustments if a.origin == origin]

  def _sync_shipping_adjustments(self) -> None:
    """Keeps one shipping adjustment per shipment with a selected rate."""
    self.adjustments = [
        a for a in self.adjustments if a.origin != AdjustmentOrigin.SHIPPING
    ]
    for shipment in self.shipments:
      rate = shipment.selected_shipping_rate
      shipment.cost = rate.cost if rate else ZERO
      if rate:
        self.adjustments.append(
            Adjustment(
                id=f"adj_ship_{shipment.id}",
                origin=AdjustmentOrigin.SHIPPING,
                originator_id=rate.shipping_method_id,
                adjustable_id=shipment.id,
                label=rate.name,
                amount=rate.cost,
            )
        )

  def update_totals(self) -> None:
    """Recomputes item, adjustment and order totals from constituents."""
    self._sync_shipping_adjustments()
    self.item_total = to_money(sum((li.amount for li in self.line_items), ZERO))
    self.adjustment_total = to_money(
        sum((a.amount for a in self.adjustments), ZERO)
    )
    self.total = to_money(self.item_total + self.adjustment_total)

  def update_pending_payment(self) -> None:
    """Keeps the pending payment's amount equal to the order total."""
    payment = self.pending_payment
    if payment and not payment.explicit_amount:
      payment.amount = self.total


class PaymentAttributes(BaseModel):
  payment_method_id: Optional[str] = None
  amount: Optional[Decimal] = None
  source_attributes: Optional[Dict[str, Any]] = None


class CheckoutUpdateRequest(BaseModel):
  """Step-scoped attributes submitted to `PUT /checkout/{step}`.

  Only the attributes relevant to the submitted step are read.
  """

  email: Optional[str] = None
  bill_address: Optional[Address] = None
  ship_address: Optional[Address] = None
  ship_address_same_as_billing: bool = False
  save_bill_address: bool = False
  save_ship_address: bool = False
  shipping_method_id: Optional[str] = None
  special_instructions: Optional[str] = None
  payments: List[PaymentAttributes] = Field(default_factory=list)
  existing_card_id: Optional[str] = None
  accept_terms: bool = False


class VoucherRequest(BaseModel):
  voucher_code: str


class ShippingMethodOption(BaseModel):
  id: str
  name: str
  cost: Decimal


class PaymentMethodOption(BaseModel):
  id: str
  name: str
  fee: Decimal


class StepOutcome(BaseModel):
  """Outcome of a step view or update, returned to the HTTP layer."""

  kind: OutcomeKind
  status_code: int
  step: Optional[CheckoutStep] = None
  location: Optional[str] = None
  errors: Dict[str, str] = Field(default_factory=dict)
  flash: Optional[str] = None
  order: Optional[Order] = None
  shipping_methods: List[ShippingMethodOption] = Field(default_factory=list)
  payment_methods: List[PaymentMethodOption] = Field(default_factory=list)

  @classmethod
  def render(
      cls,
      step: CheckoutStep,
      order: Order,
      errors: Optional[Dict[str, str]] = None,
      flash: Optional[str] = None,
  ) -> "StepOutcome":
    return cls(
        kind=OutcomeKind.RENDER,
        status_code=422 if errors else 200,
        step=step,
        errors=errors or {},
        flash=flash,
        order=order,
    )

  @classmethod
  def redirect(cls, location: str) -> "StepOutcome":
    return cls(kind=OutcomeKind.REDIRECT, status_code=302, location=location)

  @classmethod
  def external_redirect(cls, url: str) -> "StepOutcome":
    return cls(
        kind=OutcomeKind.EXTERNAL_REDIRECT, status_code=302, location=url
    )
