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

"""Per-step validation of submitted checkout attributes.

`validate_step` only reads its arguments. It returns a mapping from field
name to a human-readable reason; an empty mapping means the step is valid.
"""

import re
from typing import Dict, Optional

from .enums import CheckoutStep
from .models import Address
from .models import CheckoutUpdateRequest
from .models import Order
from .models import ZERO

BLANK = "can't be blank"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _validate_address(
    prefix: str, address: Optional[Address], errors: Dict[str, str]
) -> None:
  if address is None:
    errors[prefix] = BLANK
    return
  for field in address.missing_fields():
    errors[f"{prefix}.{field}"] = BLANK


def _validate_details(
    order: Order, attrs: CheckoutUpdateRequest
) -> Dict[str, str]:
  errors = {}

  email = attrs.email or order.email
  if not email:
    errors["email"] = BLANK
  elif not _EMAIL_RE.match(email):
    errors["email"] = "is invalid"

  bill_address = attrs.bill_address or order.bill_address
  _validate_address("bill_address", bill_address, errors)

  if not attrs.ship_address_same_as_billing:
    ship_address = attrs.ship_address or order.ship_address
    _validate_address("ship_address", ship_address, errors)

  if not (attrs.shipping_method_id or order.shipping_method_id):
    errors["shipping_method_id"] = "Select a shipping method"

  return errors


def _validate_payment(
    order: Order, attrs: CheckoutUpdateRequest
) -> Dict[str, str]:
  if not attrs.payments:
    return {"payments": "Select a payment method"}
  if len(attrs.payments) > 1:
    return {"payments": "Only one payment can be submitted"}

  errors = {}
  payment = attrs.payments[0]
  zero_total = order.total_before_payment == ZERO

  if payment.amount is not None:
    if not zero_total:
      errors["payments.0.amount"] = (
          "can only be given for orders with nothing to pay"
      )
    elif payment.amount != ZERO:
      errors["payments.0.amount"] = "must be zero"
  elif not payment.payment_method_id:
    errors["payments.0.payment_method_id"] = "Select a payment method"

  if not zero_total and not payment.payment_method_id:
    errors["payments.0.payment_method_id"] = "Select a payment method"

  if payment.source_attributes and attrs.existing_card_id:
    errors["existing_card_id"] = (
        "Use either a saved card or new card details, not both"
    )
  return errors


def _validate_summary(
    attrs: CheckoutUpdateRequest, terms_required: bool
) -> Dict[str, str]:
  if terms_required and not attrs.accept_terms:
    return {"accept_terms": "Terms of service must be accepted"}
  return {}


def validate_step(
    step: CheckoutStep,
    order: Order,
    attrs: CheckoutUpdateRequest,
    terms_required: bool = False,
) -> Dict[str, str]:
  """Validates the attributes relevant to a checkout step.

  Args:
    step: The step being submitted.
    order: The order as currently persisted.
    attrs: The submitted attributes.
    terms_required: Whether the terms of service must be accepted.

  Returns:
    A mapping from field name to reason, empty when the step is valid.
  """
  if step == CheckoutStep.DETAILS:
    return _validate_details(order, attrs)
  if step == CheckoutStep.PAYMENT:
    return _validate_payment(order, attrs)
  return _validate_summary(attrs, terms_required)
