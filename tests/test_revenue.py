"""
test_revenue.py — Unit Tests for the Flat-Payout Revenue Estimate
==================================================================
Core invariant under test:
    **usd = round(listeners × 0.0035, 6)**, normalised, never failing.
"""

from __future__ import annotations

import unittest
from decimal import Decimal

from artistsync.revenue import PAYOUT_PER_STREAM, estimate


class TestEstimate(unittest.TestCase):
    """Revenue should equal listeners times the payout, rounded to six places."""

    def test_thousand_listeners_is_three_fifty(self):
        usd = estimate(1000)
        self.assertEqual(usd, Decimal("3.5"))
        self.assertEqual(str(usd), "3.5")

    def test_payout_constant(self):
        self.assertEqual(PAYOUT_PER_STREAM, Decimal("0.0035"))

    def test_zero_listeners(self):
        self.assertEqual(estimate(0), Decimal("0"))

    def test_single_listener_keeps_sub_cent_precision(self):
        self.assertEqual(estimate(1), Decimal("0.0035"))

    def test_rounds_to_six_places(self):
        # 0.5 × 0.0035 = 0.00175; 1234567 × 0.0035 = 4320.9845
        self.assertEqual(estimate(0.5), Decimal("0.00175"))
        self.assertEqual(estimate(1_234_567), Decimal("4320.9845"))

    def test_large_counts_stay_in_plain_notation(self):
        usd = estimate(1_000_000)
        self.assertEqual(usd, Decimal("3500"))
        self.assertEqual(str(usd), "3500")
        self.assertEqual(str(estimate(10_000_000, Decimal("0.004"))), "40000")

    def test_negative_clamps_to_zero(self):
        self.assertEqual(estimate(-50), Decimal("0"))

    def test_custom_payout(self):
        self.assertEqual(estimate(1000, Decimal("0.004")), Decimal("4"))

    def test_deterministic(self):
        self.assertEqual(estimate(987_654), estimate(987_654))


if __name__ == "__main__":
    unittest.main()
