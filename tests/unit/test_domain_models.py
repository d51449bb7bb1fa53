#!/usr/bin/env python3
"""
Domain Layer Unit Tests

Tests for value objects and entities: Coin, Balance, Slot,
AdminCapability and PaymentRecord.
"""

import unittest

from parking_ledger.domain.exceptions import (
    InsufficientBalance, InvalidAmount, InvalidTimeRange, SlotUnavailable
)
from parking_ledger.domain.models import (
    AdminCapability, Balance, Clock, Coin, OccupancyState, PaymentRecord,
    PaymentRecordedEvent, Slot
)
from parking_ledger.infrastructure.clock import ManualClock, SystemClock


class TestCoin(unittest.TestCase):
    """Unit tests for the Coin value object"""

    def test_coin_equality_ignores_id(self):
        """Coins compare by value, not by ledger identity"""
        self.assertEqual(Coin(5), Coin(5))
        self.assertNotEqual(Coin(5).id, Coin(5).id)

    def test_negative_coin_rejected(self):
        """A coin can never carry a negative value"""
        with self.assertRaises(InvalidAmount):
            Coin(-1)

    def test_non_integer_coin_rejected(self):
        """Fractional and boolean values are not money"""
        for value in (1.5, "3", True):
            with self.assertRaises(InvalidAmount, msg=f"accepted {value!r}"):
                Coin(value)


class TestBalance(unittest.TestCase):
    """Unit tests for the Balance pool"""

    def test_zero_balance(self):
        self.assertEqual(Balance.zero().value, 0)

    def test_deposit_then_withdraw(self):
        """Withdrawals split coins off and reduce the total"""
        balance = Balance.zero()
        self.assertEqual(balance.deposit(Coin(100)), 100)

        coin = balance.withdraw(30)
        self.assertEqual(coin.value, 30)
        self.assertEqual(balance.value, 70)

    def test_withdraw_more_than_available(self):
        """Over-withdrawal fails and leaves the balance untouched"""
        balance = Balance(10)
        with self.assertRaises(InsufficientBalance) as ctx:
            balance.withdraw(11)

        self.assertEqual(ctx.exception.requested, 11)
        self.assertEqual(ctx.exception.available, 10)
        self.assertEqual(balance.value, 10)

    def test_withdraw_all(self):
        balance = Balance(42)
        self.assertEqual(balance.withdraw_all().value, 42)
        self.assertEqual(balance.value, 0)

    def test_withdraw_negative_amount(self):
        with self.assertRaises(InvalidAmount):
            Balance(10).withdraw(-5)


class TestSlot(unittest.TestCase):
    """Unit tests for the Slot occupancy state machine"""

    def setUp(self):
        self.clock = ManualClock(1000)
        self.slot = Slot()

    def test_new_slot_is_vacant(self):
        """Slots start vacant with zero timestamps"""
        self.assertFalse(self.slot.occupied)
        self.assertEqual(self.slot.state, OccupancyState.VACANT)
        self.assertEqual(self.slot.start_time, 0)
        self.assertEqual(self.slot.end_time, 0)

    def test_enter_stamps_start_time(self):
        self.assertEqual(self.slot.enter(self.clock), 1000)
        self.assertTrue(self.slot.occupied)
        self.assertEqual(self.slot.start_time, 1000)
        self.assertEqual(self.slot.end_time, 0)

    def test_exit_stamps_end_time(self):
        self.slot.enter(self.clock)
        self.clock.set(5000)
        self.assertEqual(self.slot.exit(self.clock), 5000)
        self.assertFalse(self.slot.occupied)
        self.assertEqual(self.slot.end_time, 5000)
        self.assertEqual(self.slot.occupancy_duration(), 4000)

    def test_reserve_does_not_stamp(self):
        """Reserving occupies the slot but leaves timestamps alone"""
        self.slot.reserve()
        self.assertTrue(self.slot.occupied)
        self.assertEqual(self.slot.start_time, 0)

    def test_double_enter_fails_without_change(self):
        self.slot.enter(self.clock)
        self.clock.set(2000)

        with self.assertRaises(SlotUnavailable) as ctx:
            self.slot.enter(self.clock)

        self.assertEqual(ctx.exception.action, "enter")
        self.assertEqual(self.slot.start_time, 1000)
        self.assertTrue(self.slot.occupied)

    def test_reserve_occupied_slot_fails(self):
        self.slot.enter(self.clock)
        with self.assertRaises(SlotUnavailable):
            self.slot.reserve()

    def test_exit_vacant_slot_fails_without_change(self):
        with self.assertRaises(SlotUnavailable) as ctx:
            self.slot.exit(self.clock)

        self.assertEqual(ctx.exception.state, "vacant")
        self.assertEqual(self.slot.end_time, 0)
        self.assertFalse(self.slot.occupied)

    def test_alternating_sequence(self):
        """enter/exit strictly alternate over many cycles"""
        for cycle in range(5):
            self.clock.set(10_000 * cycle + 1000)
            self.slot.enter(self.clock)
            self.assertTrue(self.slot.occupied)
            self.clock.advance(500)
            self.slot.exit(self.clock)
            self.assertFalse(self.slot.occupied)
            self.assertGreaterEqual(self.slot.end_time, self.slot.start_time)

    def test_enter_marks_cycle_unsettled(self):
        self.slot.enter(self.clock)
        self.assertTrue(self.slot.unsettled)
        self.clock.set(5000)
        self.slot.exit(self.clock)

        self.assertEqual(self.slot.settle(), 4000)
        self.assertFalse(self.slot.unsettled)

    def test_settle_twice_fails(self):
        self.slot.enter(self.clock)
        self.slot.exit(self.clock)
        self.slot.settle()

        with self.assertRaises(SlotUnavailable) as ctx:
            self.slot.settle()
        self.assertEqual(ctx.exception.state, "settled")

    def test_reserved_cycle_is_not_billable(self):
        """Reserving drops any pending cycle; its stale start stamp is never charged"""
        self.slot.enter(self.clock)
        self.slot.exit(self.clock)
        self.slot.reserve()
        self.assertFalse(self.slot.unsettled)

        self.clock.set(1_700_000_000_000)
        self.slot.exit(self.clock)
        with self.assertRaises(SlotUnavailable):
            self.slot.settle()

    def test_settle_unused_or_occupied_slot_fails(self):
        with self.assertRaises(SlotUnavailable):
            self.slot.settle()

        self.slot.enter(self.clock)
        with self.assertRaises(SlotUnavailable) as ctx:
            self.slot.settle()
        self.assertEqual(ctx.exception.state, "occupied")
        self.assertTrue(self.slot.unsettled)

    def test_exit_before_entry_time_fails_without_change(self):
        """end_time never falls behind start_time, whatever the clock says"""
        slot = Slot(occupied=True, start_time=5000, unsettled=True)

        with self.assertRaises(InvalidTimeRange):
            slot.exit(ManualClock(4000))

        self.assertTrue(slot.occupied)
        self.assertEqual(slot.end_time, 0)

    def test_enter_before_last_exit_fails_without_change(self):
        """start_time never falls behind the previous end_time"""
        slot = Slot(start_time=1000, end_time=5000)

        with self.assertRaises(InvalidTimeRange):
            slot.enter(ManualClock(4000))

        self.assertFalse(slot.occupied)
        self.assertEqual(slot.start_time, 1000)

    def test_duration_with_reversed_timestamps(self):
        slot = Slot(start_time=5000, end_time=1000)
        with self.assertRaises(InvalidTimeRange):
            slot.occupancy_duration()

    def test_to_dict(self):
        data = self.slot.to_dict()
        self.assertEqual(data["state"], "vacant")
        self.assertEqual(data["id"], self.slot.id)


class TestAdminCapability(unittest.TestCase):
    """Unit tests for the admin capability token"""

    def test_authorizes_bound_admin_only(self):
        capability = AdminCapability(admin="alice")
        self.assertTrue(capability.authorizes("alice"))
        self.assertFalse(capability.authorizes("bob"))

    def test_admin_is_read_only(self):
        capability = AdminCapability(admin="alice")
        with self.assertRaises(AttributeError):
            capability.admin = "mallory"

    def test_empty_admin_rejected(self):
        with self.assertRaises(ValueError):
            AdminCapability(admin="")

    def test_identity_equality(self):
        """Two capabilities for the same admin are still different tokens"""
        self.assertNotEqual(AdminCapability(admin="alice"), AdminCapability(admin="alice"))


class TestPaymentRecord(unittest.TestCase):
    """Unit tests for payment receipts"""

    def test_issue_stamps_clock_time(self):
        record = PaymentRecord.issue(8000, ManualClock(7000))
        self.assertEqual(record.amount, 8000)
        self.assertEqual(record.payment_time, 7000)
        self.assertTrue(record.id)

    def test_record_is_immutable(self):
        record = PaymentRecord.issue(1, ManualClock(1))
        with self.assertRaises(AttributeError):
            record.amount = 2

    def test_negative_amount_rejected(self):
        with self.assertRaises(InvalidAmount):
            PaymentRecord.issue(-1, ManualClock(1))

    def test_recorded_event_payload(self):
        record = PaymentRecord(amount=10, payment_time=20, id="rec-1")
        event = PaymentRecordedEvent(record, owner="carol").to_dict()
        self.assertEqual(event["event_type"], "payment.recorded")
        self.assertEqual(event["data"], {
            "record_id": "rec-1", "amount": 10, "payment_time": 20, "owner": "carol"
        })


class TestClocks(unittest.TestCase):
    """Unit tests for the time sources"""

    def test_clocks_satisfy_protocol(self):
        self.assertIsInstance(SystemClock(), Clock)
        self.assertIsInstance(ManualClock(), Clock)

    def test_system_clock_is_milliseconds(self):
        # 2001-09-09 in ms; anything smaller means seconds were returned
        self.assertGreater(SystemClock().now(), 1_000_000_000_000)

    def test_manual_clock_refuses_to_go_back(self):
        clock = ManualClock(100)
        self.assertEqual(clock.advance(50), 150)
        with self.assertRaises(ValueError):
            clock.advance(-1)

    def test_manual_clock_set_is_monotonic(self):
        clock = ManualClock(5000)
        clock.set(5000)
        clock.set(6000)
        with self.assertRaises(ValueError):
            clock.set(4000)
        self.assertEqual(clock.now(), 6000)


if __name__ == '__main__':
    unittest.main()
