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

"""Enumerations for the checkout server.

This module defines the enums used throughout the server application to
represent order states, checkout steps, adjustments and payments.
"""

import enum


class OrderState(str, enum.Enum):
  CART = "cart"
  ADDRESS = "address"
  PAYMENT = "payment"
  CONFIRMATION = "confirmation"
  COMPLETE = "complete"


class CheckoutStep(str, enum.Enum):
  """User-facing checkout steps.

  `details` is backed by the `address` order state and `summary` by the
  `confirmation` order state.
  """

  DETAILS = "details"
  PAYMENT = "payment"
  SUMMARY = "summary"


class AdjustmentOrigin(str, enum.Enum):
  SHIPPING = "shipping"
  PAYMENT_FEE = "payment_fee"
  VOUCHER = "voucher"


class PaymentState(str, enum.Enum):
  CHECKOUT = "checkout"
  PENDING = "pending"
  REQUIRES_AUTHORIZATION = "requires_authorization"
  COMPLETED = "completed"


class CalculatorType(str, enum.Enum):
  NONE = "none"
  FLAT_RATE = "flat_rate"
  FLAT_PERCENT_ITEM_TOTAL = "flat_percent_item_total"


class VoucherType(str, enum.Enum):
  FLAT = "flat"
  PERCENTAGE = "percentage"


class GatewayKind(str, enum.Enum):
  MANUAL = "manual"
  CARD = "card"
  HOSTED = "hosted"


class OutcomeKind(str, enum.Enum):
  RENDER = "render"
  REDIRECT = "redirect"
  EXTERNAL_REDIRECT = "external_redirect"
