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

"""Database management and persistence layer for the checkout server.

This module provides the schema definitions, database session management, and
asynchronous data access helpers used by the server. It utilizes SQLAlchemy with
SQLite (via aiosqlite) and separates the shop catalog (distributors, order
cycles, variants, shipping and payment methods, vouchers) from transactional
data (orders, inventory, users, customers, addresses, stored cards).

Key features include:
- `DatabaseManager`: Handles asynchronous engine initialization and session
  factory setup for both 'Catalog' and 'Transactions' databases.
- WAL Mode: Automatically enables SQLite Write-Ahead Logging.
- Declarative Models: Defines the catalog and transaction tables. Orders are
  stored as JSON documents with their state and token mirrored in columns.
- Data Access Helpers: A suite of asynchronous functions for CRUD operations on
  the database models.

Money columns hold integer cents. Calculator and voucher amounts hold cents
for flat types and a whole percentage for percentage types.
"""

import datetime
import logging
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from typing import Set
import uuid

from sqlalchemy import Boolean
from sqlalchemy import Column
from sqlalchemy import Integer
from sqlalchemy import JSON
from sqlalchemy import select
from sqlalchemy import String
from sqlalchemy import text
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

CatalogBase = declarative_base()
TransactionBase = declarative_base()


class DatabaseManager:
  """Manages database engines and sessions without using global variables."""

  def __init__(self) -> None:
    self.catalog_engine: Optional[AsyncEngine] = None
    self.transactions_engine: Optional[AsyncEngine] = None
    self.catalog_session_factory: Optional[sessionmaker] = None
    self.transactions_session_factory: Optional[sessionmaker] = None

  async def init_dbs(self, catalog_path: str, transactions_path: str) -> None:
    """Initializes database engines and creates tables."""
    self.catalog_engine = await _init_engine(catalog_path, CatalogBase)
    self.catalog_session_factory = sessionmaker(
        self.catalog_engine, expire_on_commit=False, class_=AsyncSession
    )

    self.transactions_engine = await _init_engine(
        transactions_path, TransactionBase
    )
    self.transactions_session_factory = sessionmaker(
        self.transactions_engine, expire_on_commit=False, class_=AsyncSession
    )

  async def close(self) -> None:
    """Closes all database engines."""
    if self.catalog_engine:
      await self.catalog_engine.dispose()
    if self.transactions_engine:
      await self.transactions_engine.dispose()


async def _init_engine(path: str, base: Any) -> AsyncEngine:
  engine = create_async_engine(f"sqlite+aiosqlite:///{path}", echo=False)

  async with engine.connect() as conn:
    await conn.execute(text("PRAGMA journal_mode=WAL"))

  async with engine.begin() as conn:
    await conn.run_sync(base.metadata.create_all)
  return engine


# Global manager instance (to be initialized via lifespan)
manager = DatabaseManager()


# --- Catalog ---


class Enterprise(CatalogBase):
  __tablename__ = "enterprises"

  id = Column(String, primary_key=True)
  name = Column(String)
  # The shop's own terms of service must be accepted at checkout.
  terms_required = Column(Boolean, default=False)


class OrderCycle(CatalogBase):
  __tablename__ = "order_cycles"

  id = Column(String, primary_key=True)
  name = Column(String)


class ExchangeVariant(CatalogBase):
  """A variant an order cycle distributes through a distributor."""

  __tablename__ = "exchange_variants"

  id = Column(Integer, primary_key=True, autoincrement=True)
  order_cycle_id = Column(String, index=True)
  distributor_id = Column(String, index=True)
  variant_id = Column(String)


class Variant(CatalogBase):
  __tablename__ = "variants"

  id = Column(String, primary_key=True)
  name = Column(String)
  price = Column(Integer)  # Price in cents
  on_demand = Column(Boolean, default=False)


class ShippingMethod(CatalogBase):
  __tablename__ = "shipping_methods"

  id = Column(String, primary_key=True)
  name = Column(String)
  calculator_type = Column(String, default="flat_rate")
  calculator_amount = Column(Integer, default=0)


class DistributorShippingMethod(CatalogBase):
  __tablename__ = "distributor_shipping_methods"

  distributor_id = Column(String, primary_key=True)
  shipping_method_id = Column(String, primary_key=True)


class PaymentMethod(CatalogBase):
  __tablename__ = "payment_methods"

  id = Column(String, primary_key=True)
  name = Column(String)
  gateway = Column(String, default="manual")  # 'manual', 'card' or 'hosted'
  calculator_type = Column(String, default="none")
  calculator_amount = Column(Integer, default=0)
  # Endpoint that issues redirect URLs for 'hosted' gateways.
  hosted_url = Column(String, nullable=True)


class DistributorPaymentMethod(CatalogBase):
  __tablename__ = "distributor_payment_methods"

  distributor_id = Column(String, primary_key=True)
  payment_method_id = Column(String, primary_key=True)


class Voucher(CatalogBase):
  __tablename__ = "vouchers"

  id = Column(String, primary_key=True)
  enterprise_id = Column(String, index=True)
  code = Column(String)
  voucher_type = Column(String)  # 'flat' or 'percentage'
  amount = Column(Integer)  # Cents for 'flat', percentage for 'percentage'


# --- Transactions ---


class OrderRecord(TransactionBase):
  __tablename__ = "orders"

  id = Column(String, primary_key=True)
  token = Column(String, index=True, unique=True)
  state = Column(String)
  # SQLAlchemy JSON type handles serialization automatically
  data = Column(JSON)


class Inventory(TransactionBase):
  __tablename__ = "inventory"

  variant_id = Column(String, primary_key=True)
  on_hand = Column(Integer, default=0)


class User(TransactionBase):
  __tablename__ = "users"

  id = Column(String, primary_key=True)
  email = Column(String, index=True)
  bill_address_id = Column(String, nullable=True)
  ship_address_id = Column(String, nullable=True)


class Customer(TransactionBase):
  __tablename__ = "customers"

  id = Column(String, primary_key=True)
  enterprise_id = Column(String, index=True)
  user_id = Column(String, nullable=True)
  email = Column(String, index=True)
  bill_address_id = Column(String, nullable=True)
  ship_address_id = Column(String, nullable=True)


class Address(TransactionBase):
  __tablename__ = "addresses"

  id = Column(String, primary_key=True)
  firstname = Column(String)
  lastname = Column(String)
  company = Column(String, nullable=True)
  address1 = Column(String)
  address2 = Column(String, nullable=True)
  city = Column(String)
  zipcode = Column(String)
  phone = Column(String)
  state_name = Column(String, nullable=True)
  country = Column(String)


ADDRESS_FIELDS = (
    "firstname",
    "lastname",
    "company",
    "address1",
    "address2",
    "city",
    "zipcode",
    "phone",
    "state_name",
    "country",
)


class CreditCard(TransactionBase):
  __tablename__ = "credit_cards"

  id = Column(String, primary_key=True)
  user_id = Column(String, index=True, nullable=True)
  cc_type = Column(String)
  last_digits = Column(String)
  month = Column(Integer, nullable=True)
  year = Column(Integer, nullable=True)
  gateway_payment_profile_id = Column(String, nullable=True)


class RequestLog(TransactionBase):
  __tablename__ = "request_logs"

  id = Column(Integer, primary_key=True, autoincrement=True)
  timestamp = Column(String)
  method = Column(String)
  url = Column(String)
  order_id = Column(String, nullable=True)
  payload = Column(JSON, nullable=True)


# --- Data Access Helpers ---


async def get_enterprise(
    session: AsyncSession, enterprise_id: str
) -> Optional[Enterprise]:
  """Retrieves a distributor enterprise by ID."""
  return await session.get(Enterprise, enterprise_id)


async def get_variants(
    session: AsyncSession, variant_ids: List[str]
) -> List[Variant]:
  """Retrieves multiple variants by their IDs in a single query."""
  result = await session.execute(
      select(Variant).where(Variant.id.in_(variant_ids))
  )
  return list(result.scalars().all())


async def get_distributed_variant_ids(
    session: AsyncSession, order_cycle_id: str, distributor_id: str
) -> Set[str]:
  """Returns the variants an order cycle distributes through a distributor."""
  result = await session.execute(
      select(ExchangeVariant.variant_id).where(
          ExchangeVariant.order_cycle_id == order_cycle_id,
          ExchangeVariant.distributor_id == distributor_id,
      )
  )
  return set(result.scalars().all())


async def get_shipping_methods(
    session: AsyncSession, distributor_id: str
) -> List[ShippingMethod]:
  """Retrieves the shipping methods offered by a distributor.

  Args:
    session: The database session to use.
    distributor_id: The distributor enterprise ID.

  Returns:
    A list of ShippingMethod objects sorted by name.
  """
  result = await session.execute(
      select(ShippingMethod)
      .join(
          DistributorShippingMethod,
          DistributorShippingMethod.shipping_method_id == ShippingMethod.id,
      )
      .where(DistributorShippingMethod.distributor_id == distributor_id)
      .order_by(ShippingMethod.name)
  )
  return list(result.scalars().all())


async def get_shipping_method(
    session: AsyncSession, distributor_id: str, shipping_method_id: str
) -> Optional[ShippingMethod]:
  """Retrieves a shipping method if the distributor offers it."""
  result = await session.execute(
      select(ShippingMethod)
      .join(
          DistributorShippingMethod,
          DistributorShippingMethod.shipping_method_id == ShippingMethod.id,
      )
      .where(
          DistributorShippingMethod.distributor_id == distributor_id,
          ShippingMethod.id == shipping_method_id,
      )
  )
  return result.scalar_one_or_none()


async def get_payment_methods(
    session: AsyncSession, distributor_id: str
) -> List[PaymentMethod]:
  """Retrieves the payment methods offered by a distributor."""
  result = await session.execute(
      select(PaymentMethod)
      .join(
          DistributorPaymentMethod,
          DistributorPaymentMethod.payment_method_id == PaymentMethod.id,
      )
      .where(DistributorPaymentMethod.distributor_id == distributor_id)
      .order_by(PaymentMethod.name)
  )
  return list(result.scalars().all())


async def get_payment_method(
    session: AsyncSession, distributor_id: str, payment_method_id: str
) -> Optional[PaymentMethod]:
  """Retrieves a payment method if the distributor offers it."""
  result = await session.execute(
      select(PaymentMethod)
      .join(
          DistributorPaymentMethod,
          DistributorPaymentMethod.payment_method_id == PaymentMethod.id,
      )
      .where(
          DistributorPaymentMethod.distributor_id == distributor_id,
          PaymentMethod.id == payment_method_id,
      )
  )
  return result.scalar_one_or_none()


async def get_voucher(
    session: AsyncSession, voucher_id: str
) -> Optional[Voucher]:
  return await session.get(Voucher, voucher_id)


async def get_voucher_by_code(
    session: AsyncSession, enterprise_id: str, code: str
) -> Optional[Voucher]:
  """Retrieves a distributor's voucher by code."""
  result = await session.execute(
      select(Voucher).where(
          Voucher.enterprise_id == enterprise_id, Voucher.code == code
      )
  )
  return result.scalar_one_or_none()


async def get_inventory(
    session: AsyncSession, variant_id: str
) -> Optional[int]:
  """Retrieves the quantity on hand for a variant."""
  result = await session.execute(
      select(Inventory.on_hand).where(Inventory.variant_id == variant_id)
  )
  return result.scalar_one_or_none()


async def reserve_stock(
    session: AsyncSession, variant_id: str, quantity: int
) -> bool:
  """Atomically decrements inventory if sufficient stock exists."""
  stmt = (
      update(Inventory)
      .where(Inventory.variant_id == variant_id)
      .where(Inventory.on_hand >= quantity)
      .values(on_hand=Inventory.on_hand - quantity)
  )
  result = await session.execute(stmt)
  return result.rowcount > 0


async def get_user(session: AsyncSession, user_id: str) -> Optional[User]:
  return await session.get(User, user_id)


async def get_customer(
    session: AsyncSession, enterprise_id: str, email: str
) -> Optional[Customer]:
  """Retrieves a distributor's customer by email."""
  result = await session.execute(
      select(Customer).where(
          Customer.enterprise_id == enterprise_id, Customer.email == email
      )
  )
  return result.scalar_one_or_none()


async def get_or_create_customer(
    session: AsyncSession,
    enterprise_id: str,
    email: str,
    user_id: Optional[str] = None,
) -> Customer:
  """Finds a distributor's customer by email, creating it if missing."""
  customer = await get_customer(session, enterprise_id, email)
  if customer:
    return customer
  customer = Customer(
      id=str(uuid.uuid4()),
      enterprise_id=enterprise_id,
      user_id=user_id,
      email=email,
  )
  session.add(customer)
  await session.flush()
  return customer


async def get_address(
    session: AsyncSession, address_id: str
) -> Optional[Address]:
  return await session.get(Address, address_id)


async def save_address(session: AsyncSession, address: Dict[str, Any]) -> str:
  """Saves an address, reusing an existing row if the content matches.

  Args:
    session: The database session.
    address: The address dictionary containing 'firstname', 'city', etc.

  Returns:
    The ID of the saved or existing address.
  """
  values = {field: address.get(field) for field in ADDRESS_FIELDS}
  conditions = []
  for field, value in values.items():
    column = getattr(Address, field)
    conditions.append(column.is_(None) if value is None else column == value)
  result = await session.execute(select(Address).where(*conditions))
  existing_addr = result.scalars().first()

  if existing_addr:
    return existing_addr.id

  new_id = str(uuid.uuid4())
  session.add(Address(id=new_id, **values))
  return new_id


async def get_credit_card(
    session: AsyncSession, card_id: str
) -> Optional[CreditCard]:
  return await session.get(CreditCard, card_id)


async def save_credit_card(
    session: AsyncSession, user_id: Optional[str], attributes: Dict[str, Any]
) -> str:
  """Stores new card details submitted at the payment step.

  Only the gateway token and display details are kept.

  Returns:
    The ID of the new credit card row.
  """
  card = CreditCard(
      id=str(uuid.uuid4()),
      user_id=user_id,
      cc_type=attributes.get("cc_type"),
      last_digits=attributes.get("last_digits"),
      month=attributes.get("month"),
      year=attributes.get("year"),
      gateway_payment_profile_id=attributes.get("gateway_payment_profile_id"),
  )
  session.add(card)
  return card.id


async def get_order(
    session: AsyncSession, order_id: str
) -> Optional[Dict[str, Any]]:
  """Retrieves an order document by ID."""
  result = await session.get(OrderRecord, order_id)
  if result:
    return result.data
  return None


async def get_order_by_token(
    session: AsyncSession, token: str
) -> Optional[Dict[str, Any]]:
  """Retrieves an order document by its access token."""
  result = await session.execute(
      select(OrderRecord).where(OrderRecord.token == token)
  )
  record = result.scalar_one_or_none()
  if record:
    return record.data
  return None


async def save_order(
    session: AsyncSession,
    order_id: str,
    token: str,
    state: str,
    order_obj: Dict[str, Any],
) -> None:
  """Saves or updates an order document."""
  existing = await session.get(OrderRecord, order_id)
  if existing:
    existing.state = state
    existing.data = order_obj
  else:
    session.add(
        OrderRecord(id=order_id, token=token, state=state, data=order_obj)
    )


async def log_request(
    session: AsyncSession,
    method: str,
    url: str,
    order_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
  """Logs an HTTP request to the database."""
  log_entry = RequestLog(
      timestamp=datetime.datetime.now(datetime.timezone.utc).isoformat(),
      method=method,
      url=url,
      order_id=order_id,
      payload=payload,
  )
  session.add(log_entry)
