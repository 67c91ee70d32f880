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

"""Shared fixtures for the checkout server tests.

Provides a test case base class that creates temporary catalog and
transactions databases seeded with a small shop, and helpers to build orders
and run checkout service calls against them.
"""

import asyncio
from decimal import Decimal
import os
from typing import Any, Awaitable, Callable, Optional

from absl import flags
from absl.testing import absltest
import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from . import db
from .models import Address
from .models import LineItem
from .models import Order
from .models import Shipment
from .models import ShippingRate
from .services.checkout_service import CheckoutService
from .services.hosted_gateway import HostedGatewayClient
from .services.payment_service import PaymentApplicator
from .services.shipping_service import ShippingSelector
from .services.stock_service import StockAvailabilityChecker
from .services.voucher_service import VoucherAdjustmentsService

FLAGS = flags.FLAGS

DISTRIBUTOR_ID = "ent_shop"
TERMS_DISTRIBUTOR_ID = "ent_terms"
ORDER_CYCLE_ID = "oc_weekly"
USER_ID = "user_buyer"
OTHER_USER_ID = "user_other"
GATEWAY_URL = "https://gateway.test/sessions"
GATEWAY_REDIRECT = "https://gateway.test/pay/abc"
BASE_URL = "http://shop.test"


def complete_address(**overrides) -> Address:
  values = {
      "firstname": "Jo",
      "lastname": "Bloggs",
      "address1": "12 Orchard Lane",
      "city": "Springfield",
      "zipcode": "3000",
      "phone": "0400111222",
      "country": "AU",
  }
  values.update(overrides)
  return Address(**values)


def make_order(
    order_id: str = "ord_1",
    token: str = "tok_1",
    quantity: int = 2,
    variant_id: str = "var_apples",
    price: str = "10.00",
    with_shipment: bool = True,
    **overrides: Any,
) -> Order:
  """Builds a cart with one line item and a shipment using pickup."""
  shipments = []
  if with_shipment:
    shipments.append(
        Shipment(
            id="shp_1",
            shipping_rates=[
                ShippingRate(
                    id="rate_pickup",
                    shipping_method_id="ship_pickup",
                    name="Pickup",
                    selected=True,
                )
            ],
        )
    )
  values = {
      "id": order_id,
      "token": token,
      "user_id": USER_ID,
      "distributor_id": DISTRIBUTOR_ID,
      "order_cycle_id": ORDER_CYCLE_ID,
      "line_items": [
          LineItem(
              id="li_1",
              variant_id=variant_id,
              quantity=quantity,
              price=Decimal(price),
          )
      ],
      "shipments": shipments,
  }
  values.update(overrides)
  order = Order(**values)
  order.update_totals()
  return order


async def seed_catalog(session: AsyncSession) -> None:
  session.add_all([
      db.Enterprise(id=DISTRIBUTOR_ID, name="Farm Shop", terms_required=False),
      db.Enterprise(
          id=TERMS_DISTRIBUTOR_ID, name="Co-op", terms_required=True
      ),
      db.OrderCycle(id=ORDER_CYCLE_ID, name="Weekly"),
      db.Variant(id="var_apples", name="Apples", price=1000),
      db.Variant(id="var_bread", name="Bread", price=550, on_demand=True),
      db.Variant(id="var_sample", name="Sample", price=0, on_demand=True),
      db.Variant(id="var_elsewhere", name="Cheese", price=800),
      db.ShippingMethod(
          id="ship_pickup", name="Pickup", calculator_type="none"
      ),
      db.ShippingMethod(
          id="ship_delivery",
          name="Delivery",
          calculator_type="flat_rate",
          calculator_amount=500,
      ),
      db.ShippingMethod(
          id="ship_elsewhere",
          name="Other shop delivery",
          calculator_type="flat_rate",
          calculator_amount=100,
      ),
      db.PaymentMethod(
          id="pm_cash", name="Cash", gateway="manual", calculator_type="none"
      ),
      db.PaymentMethod(
          id="pm_card",
          name="Card",
          gateway="card",
          calculator_type="flat_rate",
          calculator_amount=123,
      ),
      db.PaymentMethod(
          id="pm_hosted",
          name="Wallet",
          gateway="hosted",
          calculator_type="none",
          hosted_url=GATEWAY_URL,
      ),
      db.Voucher(
          id="vch_flat",
          enterprise_id=DISTRIBUTOR_ID,
          code="SAVE5",
          voucher_type="flat",
          amount=500,
      ),
      db.Voucher(
          id="vch_pct",
          enterprise_id=DISTRIBUTOR_ID,
          code="TENOFF",
          voucher_type="percentage",
          amount=10,
      ),
  ])
  for variant_id in ("var_apples", "var_bread", "var_sample"):
    for distributor_id in (DISTRIBUTOR_ID, TERMS_DISTRIBUTOR_ID):
      session.add(
          db.ExchangeVariant(
              order_cycle_id=ORDER_CYCLE_ID,
              distributor_id=distributor_id,
              variant_id=variant_id,
          )
      )
  for distributor_id in (DISTRIBUTOR_ID, TERMS_DISTRIBUTOR_ID):
    for method_id in ("ship_pickup", "ship_delivery"):
      session.add(
          db.DistributorShippingMethod(
              distributor_id=distributor_id, shipping_method_id=method_id
          )
      )
    for method_id in ("pm_cash", "pm_card", "pm_hosted"):
      session.add(
          db.DistributorPaymentMethod(
              distributor_id=distributor_id, payment_method_id=method_id
          )
      )
  await session.commit()


async def seed_transactions(session: AsyncSession) -> None:
  session.add_all([
      db.Inventory(variant_id="var_apples", on_hand=10),
      db.Inventory(variant_id="var_elsewhere", on_hand=10),
      db.User(id=USER_ID, email="buyer@example.com"),
      db.User(id=OTHER_USER_ID, email="other@example.com"),
      db.CreditCard(
          id="card_buyer",
          user_id=USER_ID,
          cc_type="visa",
          last_digits="4242",
          gateway_payment_profile_id="tok_visa",
      ),
      db.CreditCard(
          id="card_declined",
          user_id=USER_ID,
          cc_type="visa",
          last_digits="0002",
          gateway_payment_profile_id="declined",
      ),
      db.CreditCard(
          id="card_other",
          user_id=OTHER_USER_ID,
          cc_type="mastercard",
          last_digits="4444",
          gateway_payment_profile_id="tok_mc",
      ),
  ])
  await session.commit()


def gateway_transport(
    status_code: int = 200, body: Optional[Any] = None
) -> httpx.MockTransport:
  """A hosted gateway answering every request with the given response."""
  if body is None:
    body = {"redirect_url": GATEWAY_REDIRECT}

  def handler(request: httpx.Request) -> httpx.Response:
    del request  # Unused.
    return httpx.Response(status_code, json=body)

  return httpx.MockTransport(handler)


class DatabaseTestCase(absltest.TestCase):
  """Test case with seeded temporary catalog and transactions databases."""

  def setUp(self) -> None:
    super().setUp()
    if not FLAGS.is_parsed():
      FLAGS.mark_as_parsed()

    test_dir = self.create_tempdir().full_path
    # NullPool keeps connections from leaking between event loops.
    self.catalog_engine = create_async_engine(
        f"sqlite+aiosqlite:///{os.path.join(test_dir, 'catalog.db')}",
        poolclass=NullPool,
    )
    self.transactions_engine = create_async_engine(
        f"sqlite+aiosqlite:///{os.path.join(test_dir, 'transactions.db')}",
        poolclass=NullPool,
    )
    self.catalog_session_factory = sessionmaker(
        self.catalog_engine, expire_on_commit=False, class_=AsyncSession
    )
    self.transactions_session_factory = sessionmaker(
        self.transactions_engine, expire_on_commit=False, class_=AsyncSession
    )
    self.gateway_transport = gateway_transport()
    self.platform_terms_required = False

    async def init() -> None:
      async with self.catalog_engine.begin() as conn:
        await conn.run_sync(db.CatalogBase.metadata.create_all)
      async with self.transactions_engine.begin() as conn:
        await conn.run_sync(db.TransactionBase.metadata.create_all)
      async with self.catalog_session_factory() as session:
        await seed_catalog(session)
      async with self.transactions_session_factory() as session:
        await seed_transactions(session)

    asyncio.run(init())

  def tearDown(self) -> None:
    async def dispose() -> None:
      await self.catalog_engine.dispose()
      await self.transactions_engine.dispose()

    asyncio.run(dispose())
    super().tearDown()

  def in_sessions(
      self, fn: Callable[[AsyncSession, AsyncSession], Awaitable[Any]]
  ) -> Any:
    """Runs `fn(catalog_session, transactions_session)` to completion."""

    async def run() -> Any:
      async with self.catalog_session_factory() as catalog_session:
        async with self.transactions_session_factory() as tx_session:
          return await fn(catalog_session, tx_session)

    return asyncio.run(run())

  def store_order(self, order: Order) -> None:
    async def store(catalog_session, transactions_session):
      del catalog_session  # Unused.
      await db.save_order(
          transactions_session,
          order.id,
          order.token,
          order.state.value,
          order.model_dump(mode="json"),
      )
      await transactions_session.commit()

    self.in_sessions(store)

  def load_order(self, order_id: str = "ord_1") -> Order:
    async def load(catalog_session, transactions_session):
      del catalog_session  # Unused.
      return await db.get_order(transactions_session, order_id)

    return Order.model_validate(self.in_sessions(load))

  def set_stock(self, variant_id: str, on_hand: int) -> None:
    async def update(catalog_session, transactions_session):
      del catalog_session  # Unused.
      record = await transactions_session.get(db.Inventory, variant_id)
      record.on_hand = on_hand
      await transactions_session.commit()

    self.in_sessions(update)

  def build_service(
      self, catalog_session: AsyncSession, transactions_session: AsyncSession
  ) -> CheckoutService:
    gateway_client = HostedGatewayClient(transport=self.gateway_transport)
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
        base_url=BASE_URL,
        platform_terms_required=self.platform_terms_required,
    )

  def call_service(self, method: str, *args: Any) -> Any:
    """Calls a CheckoutService method with fresh sessions, like a request."""

    async def call(catalog_session, transactions_session):
      service = self.build_service(catalog_session, transactions_session)
      return await getattr(service, method)(*args)

    return self.in_sessions(call)
