#!/usr/bin/env python3
"""
Pricing Strategy Unit Tests
"""

import unittest

from parking_ledger.domain.exceptions import InvalidAmount, InvalidTimeRange
from parking_ledger.domain.models import Slot
from parking_ledger.domain.strategies import LinearPricingStrategy, calculate_parking_fee


class TestLinearPricing(unittest.TestCase):
    """Unit tests for the linear fee function"""

    def test_reference_fee(self):
        """4000 ms at rate 2 costs 8000"""
        self.assertEqual(calculate_parking_fee(1000, 5000, 2, False), 8000)

    def test_fee_formula(self):
        cases = [
            (0, 0, 7, 0),
            (10, 10, 3, 0),
            (0, 1, 1, 1),
            (100, 350, 4, 1000),
            (1_700_000_000_000, 1_700_000_360_000, 1, 360_000),
        ]
        for start, end, rate, expected in cases:
            self.assertEqual(calculate_parking_fee(start, end, rate), expected,
                             msg=f"Failed for {start}..{end} at {rate}")

    def test_zero_rate(self):
        self.assertEqual(calculate_parking_fee(0, 1_000_000, 0), 0)

    def test_reversed_range_fails(self):
        """end < start is an error, never a wrapped-around fee"""
        with self.assertRaises(InvalidTimeRange) as ctx:
            calculate_parking_fee(5000, 1000, 2)
        self.assertEqual(ctx.exception.details, {"start_time": 5000, "end_time": 1000})

    def test_negative_rate_fails(self):
        with self.assertRaises(InvalidAmount):
            calculate_parking_fee(0, 10, -1)

    def test_peak_flag_ignored_by_default(self):
        strategy = LinearPricingStrategy()
        self.assertEqual(
            strategy.calculate_parking_fee(1000, 5000, 2, True),
            strategy.calculate_parking_fee(1000, 5000, 2, False)
        )

    def test_configured_peak_multiplier(self):
        strategy = LinearPricingStrategy(peak_multiplier=3)
        self.assertEqual(strategy.calculate_parking_fee(1000, 5000, 2, True), 24000)
        self.assertEqual(strategy.calculate_parking_fee(1000, 5000, 2, False), 8000)

    def test_invalid_peak_multiplier(self):
        for multiplier in (0, -2, 1.5):
            with self.assertRaises(InvalidAmount):
                LinearPricingStrategy(peak_multiplier=multiplier)

    def test_slot_fee(self):
        slot = Slot(start_time=1000, end_time=5000)
        self.assertEqual(LinearPricingStrategy().calculate_slot_fee(slot, 2), 8000)

    def test_strategy_name(self):
        self.assertEqual(LinearPricingStrategy().get_strategy_name(), "LinearPricing")


if __name__ == '__main__':
    unittest.main()
