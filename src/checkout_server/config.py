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

"""Shared configuration and startup logic for the checkout server."""

import contextlib
from absl import flags
from fastapi import FastAPI

from . import __version__
from . import db

FLAGS = flags.FLAGS


def get_server_version() -> str:
  """Returns the version the server reports."""
  return __version__


# Define flags only if they haven't been defined yet (to avoid duplicates
# during tests or re-imports)
try:
  flags.DEFINE_string("catalog_db_path", None, "Path to catalog DB")
  flags.DEFINE_string("transactions_db_path", None, "Path to transactions DB")
  flags.DEFINE_integer("port", None, "Port to run the server on")
  flags.DEFINE_bool(
      "platform_terms_required",
      False,
      "Require buyers to accept the platform terms of service on the summary"
      " step, regardless of the distributor's own setting",
  )
  flags.DEFINE_float(
      "hosted_gateway_timeout",
      5.0,
      "Timeout in seconds for requests to hosted payment gateways",
  )
except flags.DuplicateFlagError:
  pass


def flag_value(name: str, default):
  """Reads a flag, falling back to its default before flags are parsed."""
  if not FLAGS.is_parsed():
    return default
  return getattr(FLAGS, name)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
  """Shared lifespan manager for initializing databases."""
  del app  # Unused.
  # In tests or if flags aren't set, these might be None, handled by caller
  if flag_value("catalog_db_path", None) and flag_value(
      "transactions_db_path", None
  ):
    await db.manager.init_dbs(
        FLAGS.catalog_db_path, FLAGS.transactions_db_path
    )
  yield
  await db.manager.close()
