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

"""Checkout step routes for the checkout server."""

from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from fastapi.responses import JSONResponse
from fastapi.responses import RedirectResponse
from fastapi.responses import Response

from .. import dependencies
from ..enums import OutcomeKind
from ..models import CheckoutUpdateRequest
from ..models import StepOutcome
from ..models import VoucherRequest
from ..services.checkout_service import CheckoutService

router = APIRouter()


def outcome_response(outcome: StepOutcome) -> Response:
  """Converts a step outcome into an HTTP response."""
  if outcome.kind == OutcomeKind.RENDER:
    return JSONResponse(
        status_code=outcome.status_code,
        content=outcome.model_dump(
            mode="json", exclude={"kind", "status_code", "location"}
        ),
    )
  return RedirectResponse(outcome.location, status_code=outcome.status_code)


@router.get("/checkout", operation_id="view_checkout")
async def view_checkout(
    order_token: str = Depends(dependencies.order_token_header),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> Response:
  """Redirects to the current step of the checkout."""
  return outcome_response(await checkout_service.view_step(order_token))


@router.post("/checkout/voucher", operation_id="apply_voucher")
async def apply_voucher(
    request: VoucherRequest = Body(...),
    order_token: str = Depends(dependencies.order_token_header),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> Response:
  """Adds a voucher to the order."""
  return outcome_response(
      await checkout_service.apply_voucher(order_token, request.voucher_code)
  )


@router.delete("/checkout/voucher", operation_id="remove_voucher")
async def remove_voucher(
    order_token: str = Depends(dependencies.order_token_header),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> Response:
  """Removes the voucher from the order."""
  return outcome_response(await checkout_service.remove_voucher(order_token))


@router.get("/checkout/{step}", operation_id="view_checkout_step")
async def view_checkout_step(
    step: str = Path(...),
    order_token: str = Depends(dependencies.order_token_header),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> Response:
  """Shows a checkout step."""
  return outcome_response(await checkout_service.view_step(order_token, step))


@router.put("/checkout/{step}", operation_id="update_checkout_step")
async def update_checkout_step(
    step: str = Path(...),
    attrs: CheckoutUpdateRequest = Body(...),
    order_token: str = Depends(dependencies.order_token_header),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> Response:
  """Submits a checkout step."""
  return outcome_response(
      await checkout_service.update_step(order_token, step, attrs)
  )
