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

"""Utility script to dump request logs from the database.

This script reads and displays the checkout requests recorded in the
transactions DB, with their timestamp, method, URL and payload. It can
optionally look up and display the current state of the associated order.

Usage:
  python -m checkout_server.dump_log --transactions_db_path=...
  [--show_order] [--order_id=...]
"""

import asyncio
import json
import sys

from absl import app as absl_app
from absl import flags
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker

from .db import OrderRecord
from .db import RequestLog

FLAGS = flags.FLAGS
try:
  flags.DEFINE_string("transactions_db_path", None, "Path to transactions DB")
except flags.DuplicateFlagError:
  pass
flags.DEFINE_bool("show_order", False, "Show the current state of each order")
flags.DEFINE_string("order_id", None, "Only show requests for this order")


def format_log(log: RequestLog, order_state=None) -> str:
  """Formats one request log entry for display."""
  lines = [f"[{log.timestamp}] {log.method} {log.url}"]
  if log.order_id:
    lines.append(f"  Order ID: {log.order_id}")
  if order_state:
    lines.append(f"  Order State: {order_state}")
  if log.payload:
    lines.append(f"  Payload: {json.dumps(log.payload, indent=2)}")
  lines.append("-" * 40)
  return "\n".join(lines)


async def dump_logs(
    transactions_db_path: str, order_id=None, show_order=False
):
  """Queries the database and prints request logs."""
  db_url = f"sqlite+aiosqlite:///{transactions_db_path}"
  engine = create_async_engine(db_url, echo=False)
  session_factory = sessionmaker(
      engine, expire_on_commit=False, class_=AsyncSession
  )

  try:
    async with session_factory() as session:
      print("=== REQUEST LOGS ===")
      query = select(RequestLog).order_by(RequestLog.id)
      if order_id:
        query = query.where(RequestLog.order_id == order_id)
      logs = (await session.execute(query)).scalars().all()

      if not logs:
        print("No request logs found.")
        return

      for log in logs:
        order_state = None
        if show_order and log.order_id:
          order = await session.get(OrderRecord, log.order_id)
          if order:
            order_state = order.state
        print(format_log(log, order_state))
  finally:
    await engine.dispose()


def main(argv):
  """Main entry point for the log dump script."""
  del argv
  if not FLAGS.transactions_db_path:
    print("Error: --transactions_db_path is required.")
    sys.exit(1)
  asyncio.run(
      dump_logs(
          FLAGS.transactions_db_path,
          order_id=FLAGS.order_id,
          show_order=FLAGS.show_order,
      )
  )


if __name__ == "__main__":
  absl_app.run(main)
