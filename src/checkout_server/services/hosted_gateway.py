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

"""Client for payment gateways that take the buyer off-platform.

Only the redirect contract is implemented: the gateway is asked for a URL the
buyer should be sent to, and confirms the payment out of band.
"""

import dataclasses
import logging
from typing import Optional

import httpx
from pydantic import BaseModel
from pydantic import HttpUrl

from ..exceptions import PaymentFailedError
from ..models import Order
from ..models import Payment

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class ExternalGatewayPending:
  """A payment awaiting confirmation by an external gateway."""

  redirect_url: str


class HostedSessionResponse(BaseModel):
  redirect_url: HttpUrl


class HostedGatewayClient:
  """Requests redirect URLs from hosted payment gateways."""

  def __init__(
      self,
      timeout: float = 5.0,
      transport: Optional[httpx.AsyncBaseTransport] = None,
  ):
    self.timeout = timeout
    self.transport = transport

  async def request_redirect_url(
      self,
      hosted_url: str,
      order: Order,
      payment: Payment,
      return_url: str,
  ) -> str:
    """Opens a hosted payment session and returns its redirect URL.

    Args:
      hosted_url: The gateway endpoint configured on the payment method.
      order: The order being paid.
      payment: The pending payment.
      return_url: Where the gateway sends the buyer back to.

    Returns:
      The URL the buyer must be redirected to.

    Raises:
      PaymentFailedError: If the gateway cannot be reached or rejects the
        request.
    """
    payload = {
        "order_id": order.id,
        "payment_id": payment.id,
        "amount": str(payment.amount),
        "email": order.email,
        "return_url": return_url,
    }
    try:
      async with httpx.AsyncClient(
          transport=self.transport, timeout=self.timeout
      ) as client:
        response = await client.post(hosted_url, json=payload)
    except httpx.RequestError as e:
      logger.error("Network error contacting gateway at %s: %s", hosted_url, e)
      raise PaymentFailedError(
          "Payment gateway could not be reached", code="GATEWAY_UNAVAILABLE"
      ) from e

    if response.status_code >= 400:
      logger.error(
          "Gateway at %s rejected order %s: Status %d",
          hosted_url,
          order.id,
          response.status_code,
      )
      raise PaymentFailedError(
          "Payment gateway rejected the payment", code="GATEWAY_REJECTED"
      )

    try:
      session = HostedSessionResponse.model_validate(response.json())
    except (ValueError, TypeError) as e:
      logger.error("Invalid response from gateway at %s: %s", hosted_url, e)
      raise PaymentFailedError(
          "Payment gateway returned an invalid response",
          code="GATEWAY_INVALID_RESPONSE",
      ) from e
    return str(session.redirect_url)
