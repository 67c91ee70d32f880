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

"""Custom exceptions for the checkout server."""

from typing import Dict, Optional


class CheckoutError(Exception):
  """Base class for all checkout exceptions."""

  def __init__(
      self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500
  ):
    self.message = message
    self.code = code
    self.status_code = status_code
    super().__init__(self.message)


class ResourceNotFoundError(CheckoutError):
  """Raised when a requested resource is not found."""

  def __init__(self, message: str):
    super().__init__(message, code="RESOURCE_NOT_FOUND", status_code=404)


class InvalidRequestError(CheckoutError):
  """Raised when the request is invalid (e.g. unknown step name)."""

  def __init__(self, message: str):
    super().__init__(message, code="INVALID_REQUEST", status_code=400)


class CheckoutNotModifiableError(CheckoutError):
  """Raised when attempting to modify an order that is already complete."""

  def __init__(self, message: str):
    super().__init__(message, code="CHECKOUT_NOT_MODIFIABLE", status_code=409)


class StepMismatchError(CheckoutError):
  """Raised when a requested step does not match the order state."""

  def __init__(self, message: str, canonical_step: str):
    self.canonical_step = canonical_step
    super().__init__(message, code="STEP_MISMATCH", status_code=409)


class ValidationFailure(CheckoutError):
  """Raised when step attributes fail validation.

  Attributes:
    errors: Mapping from field name to a human-readable reason.
  """

  def __init__(
      self, errors: Dict[str, str], message: Optional[str] = None
  ):
    self.errors = dict(errors)
    super().__init__(
        message or "Validation failed: " + ", ".join(sorted(self.errors)),
        code="VALIDATION_FAILED",
        status_code=422,
    )


class NoRateAvailableError(CheckoutError):
  """Raised when a shipping method yields no rate for the order."""

  def __init__(self, message: str):
    super().__init__(message, code="NO_RATE_AVAILABLE", status_code=422)


class PaymentFailedError(CheckoutError):
  """Raised when payment processing fails or a method is misconfigured."""

  def __init__(
      self, message: str, code: str = "PAYMENT_FAILED", status_code: int = 402
  ):
    super().__init__(message, code=code, status_code=status_code)


class OutOfStockError(CheckoutError):
  """Raised when there is insufficient inventory for an item."""

  def __init__(self, message: str, status_code: int = 409):
    super().__init__(message, code="OUT_OF_STOCK", status_code=status_code)
