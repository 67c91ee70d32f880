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

"""Database initialization script for the checkout server.

This script imports the shop catalog and transactional seed data from CSV
files into the configured SQLite databases. Each table is cleared before it
is populated. Missing optional files leave their table empty. Demo carts are
read from `orders.json` when present.

Usage:
  python -m checkout_server.import_csv --catalog_db_path=...
  --transactions_db_path=... --data_dir=...
"""

import asyncio
import csv
import json
import logging
import os
from typing import Any, Callable, Dict, List

from absl import app as absl_app
from absl import flags
from sqlalchemy import delete

from . import db
from .models import Order

FLAGS = flags.FLAGS
try:
  flags.DEFINE_string("catalog_db_path", "catalog.db", "Path to catalog DB")
  flags.DEFINE_string(
      "transactions_db_path", "transactions.db", "Path to transactions DB"
  )
except flags.DuplicateFlagError:
  pass
flags.DEFINE_string(
    "data_dir",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "data"),
    "Directory containing the CSV files",
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _as_bool(value: str) -> bool:
  return value.strip().lower() in ("1", "true", "yes")


def _as_int(value: str):
  return int(value) if value else None


def _as_str(value: str):
  return value or None


# File name, model and converters for columns that are not plain strings.
CATALOG_TABLES = (
    ("enterprises.csv", db.Enterprise, {"terms_required": _as_bool}),
    ("order_cycles.csv", db.OrderCycle, {}),
    ("exchange_variants.csv", db.ExchangeVariant, {}),
    ("variants.csv", db.Variant, {"price": int, "on_demand": _as_bool}),
    ("shipping_methods.csv", db.ShippingMethod, {"calculator_amount": int}),
    ("distributor_shipping_methods.csv", db.DistributorShippingMethod, {}),
    (
        "payment_methods.csv",
        db.PaymentMethod,
        {"calculator_amount": int, "hosted_url": _as_str},
    ),
    ("distributor_payment_methods.csv", db.DistributorPaymentMethod, {}),
    ("vouchers.csv", db.Voucher, {"amount": int}),
)

TRANSACTION_TABLES = (
    ("inventory.csv", db.Inventory, {"on_hand": int}),
    (
        "users.csv",
        db.User,
        {"bill_address_id": _as_str, "ship_address_id": _as_str},
    ),
    ("addresses.csv", db.Address, {"company": _as_str, "address2": _as_str}),
    (
        "credit_cards.csv",
        db.CreditCard,
        {"month": _as_int, "year": _as_int, "user_id": _as_str},
    ),
)


def read_rows(
    data_dir: str,
    filename: str,
    converters: Dict[str, Callable[[str], Any]],
) -> List[Dict[str, Any]]:
  """Reads a CSV file into converted rows, or nothing if it is missing."""
  path = os.path.join(data_dir, filename)
  if not os.path.exists(path):
    logger.info("No %s found, skipping", filename)
    return []
  rows = []
  with open(path, "r") as f:
    for row in csv.DictReader(f):
      rows.append({
          key: converters[key](value) if key in converters else value
          for key, value in row.items()
      })
  return rows


async def _import_tables(session, data_dir: str, tables) -> None:
  for filename, model, converters in tables:
    logger.info("Importing %s...", model.__tablename__)
    await session.execute(delete(model))
    session.add_all(
        model(**row) for row in read_rows(data_dir, filename, converters)
    )


async def _import_orders(session, data_dir: str) -> None:
  await session.execute(delete(db.OrderRecord))
  path = os.path.join(data_dir, "orders.json")
  if not os.path.exists(path):
    return
  with open(path, "r") as f:
    documents = json.load(f)
  for document in documents:
    order = Order.model_validate(document)
    order.update_totals()
    await db.save_order(
        session,
        order.id,
        order.token,
        order.state.value,
        order.model_dump(mode="json"),
    )
  logger.info("Imported %d orders", len(documents))


async def import_csv_data(
    catalog_db_path: str, transactions_db_path: str, data_dir: str
) -> None:
  """Reads CSV files and populates the databases."""
  # Ensure tables exist
  await db.manager.init_dbs(catalog_db_path, transactions_db_path)

  try:
    async with db.manager.catalog_session_factory() as session:
      await _import_tables(session, data_dir, CATALOG_TABLES)
      await session.commit()

    async with db.manager.transactions_session_factory() as session:
      await _import_tables(session, data_dir, TRANSACTION_TABLES)
      await session.execute(delete(db.Customer))
      await _import_orders(session, data_dir)
      await session.commit()

    logger.info("Database populated from CSVs.")
  finally:
    await db.manager.close()


def main(argv) -> None:
  """Main entry point for the CSV import script."""
  del argv
  asyncio.run(
      import_csv_data(
          FLAGS.catalog_db_path, FLAGS.transactions_db_path, FLAGS.data_dir
      )
  )


if __name__ == "__main__":
  absl_app.run(main)
