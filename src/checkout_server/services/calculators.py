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

"""Fee calculators shared by shipping and payment methods."""

from decimal import Decimal
from typing import Optional

from ..enums import CalculatorType
from ..models import cents_to_money
from ..models import to_money
from ..models import ZERO


def compute_fee(
    calculator_type: Optional[str],
    calculator_amount: Optional[int],
    item_total: Decimal,
) -> Decimal:
  """Computes a shipping or payment fee.

  Args:
    calculator_type: One of the `CalculatorType` values.
    calculator_amount: Cents for flat rates, a percentage otherwise.
    item_total: The order's item total.

  Returns:
    The fee, rounded to cents.

  Raises:
    ValueError: If the calculator type is unknown.
  """
  kind = CalculatorType(calculator_type or CalculatorType.NONE)
  if kind == CalculatorType.NONE:
    return ZERO
  if kind == CalculatorType.FLAT_RATE:
    return cents_to_money(calculator_amount)
  return to_money(item_total * Decimal(calculator_amount or 0) / 100)
