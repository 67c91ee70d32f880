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

"""Mapping between order states and checkout steps.

The order state is the only record of where a buyer is in checkout. The
current step is always derived from it with `step_for`; there is no separate
step cursor.
"""

from typing import Optional
from urllib.parse import urlencode

from .enums import CheckoutStep
from .enums import OrderState
from .exceptions import InvalidRequestError
from .models import Order

STEPS = [CheckoutStep.DETAILS, CheckoutStep.PAYMENT, CheckoutStep.SUMMARY]

CART_PATH = "/cart"

_STEP_BY_STATE = {
    OrderState.CART: CheckoutStep.DETAILS,
    OrderState.ADDRESS: CheckoutStep.DETAILS,
    OrderState.PAYMENT: CheckoutStep.PAYMENT,
    OrderState.CONFIRMATION: CheckoutStep.SUMMARY,
}

_STATE_BY_STEP = {
    CheckoutStep.DETAILS: OrderState.ADDRESS,
    CheckoutStep.PAYMENT: OrderState.PAYMENT,
    CheckoutStep.SUMMARY: OrderState.CONFIRMATION,
}

_NEXT_STATE_BY_STEP = {
    CheckoutStep.DETAILS: OrderState.PAYMENT,
    CheckoutStep.PAYMENT: OrderState.CONFIRMATION,
    CheckoutStep.SUMMARY: OrderState.COMPLETE,
}

# Historical state names accepted as step names.
_STEP_ALIASES = {
    "address": CheckoutStep.DETAILS,
    "confirmation": CheckoutStep.SUMMARY,
}


def step_for(state: OrderState) -> CheckoutStep:
  """Returns the canonical checkout step for an order state."""
  if state not in _STEP_BY_STATE:
    raise InvalidRequestError(f"Order in state '{state.value}' has no step")
  return _STEP_BY_STATE[state]


def state_for(step: CheckoutStep) -> OrderState:
  return _STATE_BY_STEP[step]


def next_state(step: CheckoutStep) -> OrderState:
  return _NEXT_STATE_BY_STEP[step]


def step_index(step: CheckoutStep) -> int:
  return STEPS.index(step)


def parse_step(name: Optional[str]) -> Optional[CheckoutStep]:
  """Parses a step name from a request.

  Args:
    name: The user-facing step name, a historical alias, or None.

  Returns:
    The step, or None when no step was requested.

  Raises:
    InvalidRequestError: If the name is not a known step.
  """
  if not name:
    return None
  if name in _STEP_ALIASES:
    return _STEP_ALIASES[name]
  try:
    return CheckoutStep(name)
  except ValueError as e:
    raise InvalidRequestError(f"Unknown checkout step '{name}'") from e


def step_path(step: CheckoutStep) -> str:
  return f"/checkout/{step.value}"


def order_path(order: Order) -> str:
  return f"/orders/{order.id}?{urlencode({'order_token': order.token})}"
