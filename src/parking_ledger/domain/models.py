# File: src/parking_ledger/domain/models.py
"""
Domain Models for the Parking Ledger
Following Domain-Driven Design (DDD) principles with rich domain models

This module contains:
1. Value Objects: Coin (an owned amount of money) and Balance (a pool of it)
2. Entities: Slot, AdminCapability and PaymentRecord
3. Enums: occupancy states
4. Domain Events: Events representing occupancy and settlement changes

Monetary amounts are non-negative integers in the smallest currency unit.
Timestamps are integer milliseconds since the epoch supplied by a Clock.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Protocol, runtime_checkable
from datetime import datetime
from enum import Enum
import uuid

from .exceptions import (
    InsufficientBalance, InvalidAmount, InvalidTimeRange, SlotUnavailable
)


def _new_id() -> str:
    return str(uuid.uuid4())


def validate_amount(amount: Any, field_name: str = "amount") -> int:
    """Reject anything that is not a non-negative integer"""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidAmount(amount, field_name)
    return amount


# ============================================================================
# TIME SOURCE
# ============================================================================

@runtime_checkable
class Clock(Protocol):
    """Trusted time source returning milliseconds since the epoch"""

    def now(self) -> int:
        ...


# ============================================================================
# DOMAIN PRIMITIVES / VALUE OBJECTS
# ============================================================================

@dataclass(frozen=True)
class Coin:
    """
    Value Object: a transferable amount of money split off a Balance
    The id identifies the coin as a ledger object; equality is by value only.
    """
    value: int
    id: str = field(default_factory=_new_id, compare=False)

    def __post_init__(self):
        validate_amount(self.value, "value")

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "value": self.value}


class Balance:
    """
    Mutable pool of money held by a Facility
    Only Coins cross its boundary, so the total can never go negative.
    """

    def __init__(self, value: int = 0):
        self._value = validate_amount(value, "balance")

    @classmethod
    def zero(cls) -> 'Balance':
        return cls(0)

    @property
    def value(self) -> int:
        return self._value

    def deposit(self, coin: Coin) -> int:
        """Join a coin into the balance and return the new total"""
        self._value += coin.value
        return self._value

    def withdraw(self, amount: int) -> Coin:
        """
        Split ``amount`` off the balance as a new Coin
        Raises: InsufficientBalance if amount exceeds the current value
        """
        validate_amount(amount)
        if amount > self._value:
            raise InsufficientBalance(amount, self._value)
        self._value -= amount
        return Coin(amount)

    def withdraw_all(self) -> Coin:
        return self.withdraw(self._value)

    def __repr__(self) -> str:
        return f"Balance({self._value})"


# ============================================================================
# ENUMS FOR DOMAIN TYPES
# ============================================================================

class OccupancyState(Enum):
    """Two-valued occupancy status of a slot"""
    VACANT = "vacant"
    OCCUPIED = "occupied"

    def __str__(self) -> str:
        return self.value


# ============================================================================
# DOMAIN ENTITIES
# ============================================================================

class Entity:
    """
    Base class for all domain entities
    Provides common functionality for entities with identity
    """

    def __init__(self, id: Optional[str] = None):
        self._id = id or _new_id()

    @property
    def id(self) -> str:
        """Get entity ID"""
        return self._id

    def __eq__(self, other: object) -> bool:
        """Entities are equal if they have the same ID and type"""
        if not isinstance(other, Entity):
            return False
        return self.id == other.id and type(self) == type(other)

    def __hash__(self) -> int:
        return hash((self.id, type(self).__name__))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id})"


class Slot(Entity):
    """
    Entity: individually occupiable unit of a facility

    Strict two-state toggle VACANT <-> OCCUPIED with no terminal state.
    Every transition checks the current state before touching any field,
    so a rejected call leaves the slot exactly as it was.

    ``unsettled`` marks a cycle opened by ``enter`` that has not been paid
    for yet. Reserved cycles carry no start stamp and are never billable.
    """

    def __init__(
        self,
        id: Optional[str] = None,
        occupied: bool = False,
        start_time: int = 0,
        end_time: int = 0,
        unsettled: bool = False
    ):
        super().__init__(id)
        self.occupied = occupied
        self.start_time = start_time
        self.end_time = end_time
        self.unsettled = unsettled

    @property
    def state(self) -> OccupancyState:
        return OccupancyState.OCCUPIED if self.occupied else OccupancyState.VACANT

    def _require_vacant(self, action: str) -> None:
        if self.occupied:
            raise SlotUnavailable(self.id, str(self.state), action)

    def reserve(self) -> None:
        """
        Claim the slot without stamping a start time
        Raises: SlotUnavailable if already occupied
        """
        self._require_vacant("reserve")
        self.occupied = True
        self.unsettled = False

    def enter(self, clock: Clock) -> int:
        """
        Occupy the slot and stamp start_time
        Raises: SlotUnavailable if already occupied,
                InvalidTimeRange if the clock is behind the last exit
        """
        self._require_vacant("enter")
        now = clock.now()
        if now < self.end_time:
            raise InvalidTimeRange(self.end_time, now)
        self.occupied = True
        self.start_time = now
        self.unsettled = True
        return now

    def exit(self, clock: Clock) -> int:
        """
        Vacate the slot and stamp end_time
        Raises: SlotUnavailable if already vacant,
                InvalidTimeRange if the clock is behind the last entry
        """
        if not self.occupied:
            raise SlotUnavailable(self.id, str(self.state), "exit")
        now = clock.now()
        if now < self.start_time:
            raise InvalidTimeRange(self.start_time, now)
        self.occupied = False
        self.end_time = now
        return now

    def settle(self) -> int:
        """
        Close the last entered cycle for billing and return its duration
        Raises: SlotUnavailable if occupied or there is no unsettled cycle
        """
        self._require_vacant("settle")
        if not self.unsettled:
            raise SlotUnavailable(self.id, "settled", "settle")
        duration = self.occupancy_duration()
        self.unsettled = False
        return duration

    def occupancy_duration(self) -> int:
        """Length of the last completed occupancy cycle in milliseconds"""
        if self.end_time < self.start_time:
            raise InvalidTimeRange(self.start_time, self.end_time)
        return self.end_time - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "occupied": self.occupied,
            "state": self.state.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "unsettled": self.unsettled,
        }

    def __str__(self) -> str:
        return f"Slot {self.id} - {self.state}"


class AdminCapability(Entity):
    """
    Entity: unforgeable proof of administrative authority

    The bound admin identity is fixed at mint time. Holding the token is what
    grants authority; the ledger records who holds it.
    """

    def __init__(self, admin: str, id: Optional[str] = None):
        super().__init__(id)
        if not admin:
            raise ValueError("Capability admin identity cannot be empty")
        self._admin = admin

    @property
    def admin(self) -> str:
        return self._admin

    def authorizes(self, admin: str) -> bool:
        """Check if this capability speaks for the given admin identity"""
        return self._admin == admin

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "admin": self._admin}


@dataclass(frozen=True)
class PaymentRecord:
    """
    Immutable receipt of a completed payment
    The amount is taken as given; matching it to a fee is the caller's job.
    """
    amount: int
    payment_time: int
    id: str = field(default_factory=_new_id)

    def __post_init__(self):
        validate_amount(self.amount)

    @classmethod
    def issue(cls, amount: int, clock: Clock) -> 'PaymentRecord':
        """Create a record stamped with the clock's current time"""
        return cls(amount=amount, payment_time=clock.now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "amount": self.amount,
            "payment_time": self.payment_time,
        }


# ============================================================================
# DOMAIN EVENTS (for event-driven architecture)
# ============================================================================

class DomainEvent(ABC):
    """
    Base class for all domain events
    Events represent something that happened in the domain
    """

    event_type: str = "ledger.event"

    def __init__(self):
        self.event_id = _new_id()
        self.timestamp = datetime.now()
        self.version = "1.0"

    @abstractmethod
    def data(self) -> Dict[str, Any]:
        """Event payload"""
        pass

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization"""
        return {
            "event_type": self.event_type,
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "version": self.version,
            "data": self.data(),
        }

    def __str__(self) -> str:
        return f"{self.__class__.__name__} at {self.timestamp}"


class LedgerInitializedEvent(DomainEvent):
    """Event raised when the facility and its capability are minted"""

    event_type = "ledger.initialized"

    def __init__(self, facility_id: str, capability_id: str, admin: str):
        super().__init__()
        self.facility_id = facility_id
        self.capability_id = capability_id
        self.admin = admin

    def data(self) -> Dict[str, Any]:
        return {
            "facility_id": self.facility_id,
            "capability_id": self.capability_id,
            "admin": self.admin,
        }


class SlotCreatedEvent(DomainEvent):
    """Event raised when an admin adds a slot"""

    event_type = "slot.created"

    def __init__(self, facility_id: str, slot_id: str, position: int):
        super().__init__()
        self.facility_id = facility_id
        self.slot_id = slot_id
        self.position = position

    def data(self) -> Dict[str, Any]:
        return {
            "facility_id": self.facility_id,
            "slot_id": self.slot_id,
            "position": self.position,
        }


class SlotReservedEvent(DomainEvent):
    """Event raised when a slot is reserved"""

    event_type = "slot.reserved"

    def __init__(self, facility_id: str, slot_id: str):
        super().__init__()
        self.facility_id = facility_id
        self.slot_id = slot_id

    def data(self) -> Dict[str, Any]:
        return {"facility_id": self.facility_id, "slot_id": self.slot_id}


class SlotEnteredEvent(DomainEvent):
    """Event raised when a vehicle enters a slot"""

    event_type = "slot.entered"

    def __init__(self, facility_id: str, slot_id: str, start_time: int):
        super().__init__()
        self.facility_id = facility_id
        self.slot_id = slot_id
        self.start_time = start_time

    def data(self) -> Dict[str, Any]:
        return {
            "facility_id": self.facility_id,
            "slot_id": self.slot_id,
            "start_time": self.start_time,
        }


class SlotExitedEvent(DomainEvent):
    """Event raised when a vehicle leaves a slot"""

    event_type = "slot.exited"

    def __init__(self, facility_id: str, slot_id: str, end_time: int):
        super().__init__()
        self.facility_id = facility_id
        self.slot_id = slot_id
        self.end_time = end_time

    def data(self) -> Dict[str, Any]:
        return {
            "facility_id": self.facility_id,
            "slot_id": self.slot_id,
            "end_time": self.end_time,
        }


class FundsDepositedEvent(DomainEvent):
    """Event raised when money is joined into the facility balance"""

    event_type = "funds.deposited"

    def __init__(self, facility_id: str, amount: int, balance: int):
        super().__init__()
        self.facility_id = facility_id
        self.amount = amount
        self.balance = balance

    def data(self) -> Dict[str, Any]:
        return {
            "facility_id": self.facility_id,
            "amount": self.amount,
            "balance": self.balance,
        }


class ProfitsWithdrawnEvent(DomainEvent):
    """Event raised when the admin withdraws part of the balance"""

    event_type = "profits.withdrawn"

    def __init__(self, facility_id: str, amount: int, recipient: str, balance: int):
        super().__init__()
        self.facility_id = facility_id
        self.amount = amount
        self.recipient = recipient
        self.balance = balance

    def data(self) -> Dict[str, Any]:
        return {
            "facility_id": self.facility_id,
            "amount": self.amount,
            "recipient": self.recipient,
            "balance": self.balance,
        }


class ProfitsDistributedEvent(DomainEvent):
    """Event raised when the whole balance is sent to the admin"""

    event_type = "profits.distributed"

    def __init__(self, facility_id: str, amount: int, recipient: str):
        super().__init__()
        self.facility_id = facility_id
        self.amount = amount
        self.recipient = recipient

    def data(self) -> Dict[str, Any]:
        return {
            "facility_id": self.facility_id,
            "amount": self.amount,
            "recipient": self.recipient,
        }


class PaymentRecordedEvent(DomainEvent):
    """Event raised when a payment receipt is issued"""

    event_type = "payment.recorded"

    def __init__(self, record: PaymentRecord, owner: str):
        super().__init__()
        self.record_id = record.id
        self.amount = record.amount
        self.payment_time = record.payment_time
        self.owner = owner

    def data(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "amount": self.amount,
            "payment_time": self.payment_time,
            "owner": self.owner,
        }
