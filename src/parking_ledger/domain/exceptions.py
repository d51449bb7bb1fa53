# File: src/parking_ledger/domain/exceptions.py
"""
Exceptions for the Parking Ledger

Every failed precondition aborts the whole operation and surfaces to the
caller as one of the kinds below. Kinds are told apart by class, not by a
numeric code; ``code`` defaults to the class name for API responses.
"""

from typing import Any, Dict, Optional


class ParkingLedgerError(Exception):
    """Base exception for all parking ledger errors"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses"""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# ============================================================================
# AUTHORIZATION
# ============================================================================

class NotAuthorized(ParkingLedgerError):
    """Capability, identity or possession mismatch on an admin-gated operation"""

    def __init__(self, message: str, admin: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        if admin is not None:
            self.details["admin"] = admin


# ============================================================================
# OCCUPANCY
# ============================================================================

class SlotUnavailable(ParkingLedgerError):
    """Requested occupancy transition is invalid for the slot's current state"""

    def __init__(self, slot_id: str, state: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} slot {slot_id}: slot is {state}",
            details={"slot_id": slot_id, "state": state, "action": action},
        )
        self.slot_id = slot_id
        self.state = state
        self.action = action


class SlotLimitExceeded(ParkingLedgerError):
    """Facility already holds the configured maximum number of slots"""

    def __init__(self, facility_id: str, max_slots: int) -> None:
        super().__init__(
            f"Facility {facility_id} already has the maximum of {max_slots} slots",
            details={"facility_id": facility_id, "max_slots": max_slots},
        )
        self.max_slots = max_slots


class InvalidTimeRange(ParkingLedgerError):
    """End timestamp lies before the start timestamp"""

    def __init__(self, start_time: int, end_time: int) -> None:
        super().__init__(
            f"End time {end_time} is before start time {start_time}",
            details={"start_time": start_time, "end_time": end_time},
        )
        self.start_time = start_time
        self.end_time = end_time


# ============================================================================
# MONEY
# ============================================================================

class InsufficientBalance(ParkingLedgerError):
    """Withdrawal amount exceeds the available balance"""

    def __init__(self, requested: int, available: int) -> None:
        super().__init__(
            f"Cannot withdraw {requested}: only {available} available",
            details={"requested": requested, "available": available},
        )
        self.requested = requested
        self.available = available


class InvalidAmount(ParkingLedgerError):
    """Monetary amount or rate is negative or not an integer"""

    def __init__(self, amount: Any, field_name: str = "amount") -> None:
        super().__init__(
            f"Invalid {field_name}: {amount!r} (must be a non-negative integer)",
            details={field_name: repr(amount)},
        )
        self.amount = amount


# ============================================================================
# LEDGER
# ============================================================================

class AlreadyInitialized(ParkingLedgerError):
    """The ledger has already been bootstrapped with a facility and capability"""
    pass


class ObjectNotFound(ParkingLedgerError):
    """No ledger object with the given identifier"""

    def __init__(self, kind: str, object_id: str) -> None:
        super().__init__(
            f"{kind} {object_id} not found",
            details={"kind": kind, "id": object_id},
        )
        self.kind = kind
        self.object_id = object_id
