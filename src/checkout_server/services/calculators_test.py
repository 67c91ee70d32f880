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

"""Tests for the fee calculators."""

from decimal import Decimal

from absl.testing import absltest

from .calculators import compute_fee


class ComputeFeeTest(absltest.TestCase):

  def test_none(self):
    self.assertEqual(compute_fee("none", 500, Decimal("20.00")), Decimal("0"))
    self.assertEqual(compute_fee(None, None, Decimal("20.00")), Decimal("0"))

  def test_flat_rate_is_in_cents(self):
    self.assertEqual(
        compute_fee("flat_rate", 123, Decimal("20.00")), Decimal("1.23")
    )

  def test_percentage_of_item_total_is_rounded(self):
    self.assertEqual(
        compute_fee("flat_percent_item_total", 15, Decimal("10.05")),
        Decimal("1.51"),
    )

  def test_unknown_calculator(self):
    with self.assertRaises(ValueError):
      compute_fee("per_item", 100, Decimal("20.00"))


if __name__ == "__main__":
  absltest.main()
