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

"""FastAPI dependencies for the checkout server.

This module contains dependency injection logic for FastAPI endpoints,
including:
- Extraction of the current order's access token from the Order-Token header.
- Database session management (Catalog and Transactions DBs).
- Service instantiation (CheckoutService and its collaborators).
"""

from typing import AsyncGenerator

from fastapi import Depends
from fastapi import Header
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from . import config
from . import db
from .services.checkout_service import CheckoutService
from .services.hosted_gateway import HostedGatewayClient
from .services.payment_service import PaymentApplicator
from .services.shipping_service import ShippingSelector
from .services.stock_service import StockAvailabilityChecker
from .services.voucher_service import VoucherAdjustmentsService


async def order_token_header(
    order_token: str = Header(..., alias="Order-Token"),
) -> str:
  """Extracts the access token of the buyer's current order."""
  return order_token


async def get_catalog_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Catalog DB session."""
  async with db.manager.catalog_session_factory() as session:
    yield session


async def get_transactions_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Transactions DB session."""
  async with db.manager.transactions_session_factory() as session:
    yield session


def get_hosted_gateway_client() -> HostedGatewayClient:
  """Dependency provider for HostedGatewayClient."""
  return HostedGatewayClient(
      timeout=config.flag_value("hosted_gateway_timeout", 5.0)
  )


def get_checkout_service(
    request: Request,
    catalog_session: AsyncSession = Depends(get_catalog_db),
    transactions_session: AsyncSession = Depends(get_transactions_db),
    gateway_client: HostedGatewayClient = Depends(get_hosted_gateway_client),
) -> CheckoutService:
  """Dependency provider for CheckoutService."""
  return CheckoutService(
      stock_checker=StockAvailabilityChecker(
          catalog_session, transactions_session
      ),
      shipping_selector=ShippingSelector(catalog_session),
      payment_applicator=PaymentApplicator(
          catalog_session, transactions_session, gateway_client
      ),
      voucher_service=VoucherAdjustmentsService(catalog_session),
      catalog_session=catalog_session,
      transactions_session=transactions_session,
      base_url=str(request.base_url),
      platform_terms_required=config.flag_value(
          "platform_terms_required", False
      ),
  )
