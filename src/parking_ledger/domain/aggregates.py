# File: src/parking_ledger/domain/aggregates.py
"""
Aggregate Roots for the Parking Ledger
Following Domain-Driven Design (DDD) Aggregate Pattern

Aggregates:
1. Facility - Root aggregate owning the slots and the shared balance

Key Concepts:
- Aggregate Roots enforce business invariants
- Slots are reached only through the Facility that owns them
- Domain events are raised for important state changes
- Every precondition is checked before any state is touched
"""

from typing import List, Optional, Tuple, Dict, Any
import logging

from .exceptions import NotAuthorized, ObjectNotFound, SlotLimitExceeded
from .models import (
    Entity, Slot, AdminCapability, Balance, Coin, Clock,
    DomainEvent, LedgerInitializedEvent, SlotCreatedEvent,
    SlotReservedEvent, SlotEnteredEvent, SlotExitedEvent,
    FundsDepositedEvent, ProfitsWithdrawnEvent, ProfitsDistributedEvent
)


# ============================================================================
# BASE AGGREGATE ROOT
# ============================================================================

class AggregateRoot(Entity):
    """
    Base class for all aggregate roots
    Provides domain event collection and versioning
    """

    def __init__(self, id: Optional[str] = None, version: int = 1):
        super().__init__(id)
        self._version: int = version
        self._changes: List[DomainEvent] = []
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    def version(self) -> int:
        """Get current aggregate version"""
        return self._version

    def _increment_version(self) -> None:
        self._version += 1

    def _add_domain_event(self, event: DomainEvent) -> None:
        self._changes.append(event)
        self._logger.debug(f"Added domain event: {event.__class__.__name__}")

    def clear_events(self) -> List[DomainEvent]:
        """Clear and return all domain events"""
        events = self._changes.copy()
        self._changes.clear()
        return events

    @property
    def has_changes(self) -> bool:
        return len(self._changes) > 0

    def _validate_invariants(self) -> None:
        """Validate aggregate invariants - to be overridden by subclasses"""
        pass


# ============================================================================
# FACILITY AGGREGATE
# ============================================================================

class Facility(AggregateRoot):
    """
    Aggregate Root: the parking facility

    Owns an ordered collection of slots (insertion order is creation order)
    and a non-negative balance. The admin identity is fixed at creation and
    every configuration or withdrawal operation must present an
    AdminCapability bound to it.
    """

    def __init__(
        self,
        admin: str,
        id: Optional[str] = None,
        slots: Optional[List[Slot]] = None,
        balance: Optional[Balance] = None,
        max_slots: Optional[int] = None,
        version: int = 1
    ):
        super().__init__(id, version)
        if not admin:
            raise ValueError("Facility admin identity cannot be empty")
        if max_slots is not None and max_slots < 1:
            raise ValueError("max_slots must be at least 1")

        self._admin = admin
        self._slots: List[Slot] = list(slots or [])
        self._slot_index: Dict[str, int] = {
            slot.id: position for position, slot in enumerate(self._slots)
        }
        self._balance = balance or Balance.zero()
        self.max_slots = max_slots

        self._validate_invariants()

    @property
    def admin(self) -> str:
        return self._admin

    @property
    def slots(self) -> Tuple[Slot, ...]:
        return tuple(self._slots)

    @property
    def slot_count(self) -> int:
        return len(self._slots)

    @property
    def balance(self) -> int:
        return self._balance.value

    def _validate_invariants(self) -> None:
        """Validate aggregate invariants"""
        # Invariant 1: Slot identifiers are unique
        if len(self._slot_index) != len(self._slots):
            raise ValueError("Duplicate slot identifiers detected")

        # Invariant 2: Slot count respects the configured maximum
        if self.max_slots is not None and len(self._slots) > self.max_slots:
            raise ValueError(
                f"Facility holds {len(self._slots)} slots, maximum is {self.max_slots}"
            )

        # Invariant 3: Balance never negative (Balance enforces it, checked for loaded state)
        if self._balance.value < 0:
            raise ValueError("Facility balance cannot be negative")

    def _authorize(self, capability: AdminCapability, action: str) -> None:
        if not capability.authorizes(self._admin):
            self._logger.warning(
                f"Rejected {action} on facility {self.id}: capability {capability.id} "
                f"is bound to {capability.admin}"
            )
            raise NotAuthorized(
                f"Capability {capability.id} does not administer facility {self.id}",
                admin=capability.admin,
            )

    def get_slot(self, slot_id: str) -> Slot:
        """Look up one of this facility's slots"""
        position = self._slot_index.get(slot_id)
        if position is None:
            raise ObjectNotFound("Slot", slot_id)
        return self._slots[position]

    def position_of(self, slot_id: str) -> int:
        self.get_slot(slot_id)
        return self._slot_index[slot_id]

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def create_slot(self, capability: AdminCapability) -> Slot:
        """
        Append a new vacant slot with zero timestamps
        Raises: NotAuthorized, SlotLimitExceeded
        """
        self._authorize(capability, "create_slot")
        if self.max_slots is not None and len(self._slots) >= self.max_slots:
            raise SlotLimitExceeded(self.id, self.max_slots)

        slot = Slot()
        self._slot_index[slot.id] = len(self._slots)
        self._slots.append(slot)
        self._increment_version()

        self._add_domain_event(SlotCreatedEvent(self.id, slot.id, self._slot_index[slot.id]))
        self._logger.info(f"Created slot {slot.id} at position {self._slot_index[slot.id]}")
        return slot

    # ========================================================================
    # OCCUPANCY
    # ========================================================================

    def reserve_slot(self, slot_id: str) -> Slot:
        slot = self.get_slot(slot_id)
        slot.reserve()
        self._increment_version()
        self._add_domain_event(SlotReservedEvent(self.id, slot.id))
        self._logger.info(f"Slot {slot.id} reserved")
        return slot

    def enter_slot(self, slot_id: str, clock: Clock) -> Slot:
        slot = self.get_slot(slot_id)
        start_time = slot.enter(clock)
        self._increment_version()
        self._add_domain_event(SlotEnteredEvent(self.id, slot.id, start_time))
        self._logger.info(f"Slot {slot.id} entered at {start_time}")
        return slot

    def exit_slot(self, slot_id: str, clock: Clock) -> Slot:
        slot = self.get_slot(slot_id)
        end_time = slot.exit(clock)
        self._increment_version()
        self._add_domain_event(SlotExitedEvent(self.id, slot.id, end_time))
        self._logger.info(f"Slot {slot.id} exited at {end_time}")
        return slot

    def settle_slot(self, slot_id: str) -> Slot:
        """
        Mark the slot's last entered cycle as paid
        Raises: SlotUnavailable if there is nothing to settle
        """
        slot = self.get_slot(slot_id)
        duration = slot.settle()
        self._increment_version()
        self._logger.info(f"Slot {slot.id} settled for {duration} ms")
        return slot

    # ========================================================================
    # SETTLEMENT
    # ========================================================================

    def deposit(self, coin: Coin) -> int:
        """Join an externally supplied coin into the balance"""
        new_balance = self._balance.deposit(coin)
        self._increment_version()
        self._add_domain_event(FundsDepositedEvent(self.id, coin.value, new_balance))
        self._logger.info(f"Deposited {coin.value} into facility {self.id} (balance {new_balance})")
        return new_balance

    def withdraw_profits(self, capability: AdminCapability, caller: str, amount: int) -> Coin:
        """
        Split ``amount`` off the balance for the calling admin
        Raises: NotAuthorized, InsufficientBalance
        """
        self._authorize(capability, "withdraw_profits")
        if caller != capability.admin:
            raise NotAuthorized(
                f"Caller {caller} is not the admin bound to capability {capability.id}",
                admin=capability.admin,
            )

        coin = self._balance.withdraw(amount)
        self._increment_version()
        self._add_domain_event(
            ProfitsWithdrawnEvent(self.id, coin.value, caller, self._balance.value)
        )
        self._logger.info(f"Withdrew {coin.value} from facility {self.id} for {caller}")
        return coin

    def distribute_profits(self, capability: AdminCapability) -> Optional[Coin]:
        """
        Move the whole balance out as a coin addressed to the admin
        Returns None when the balance is already empty.
        """
        self._authorize(capability, "distribute_profits")
        if self._balance.value == 0:
            self._logger.debug(f"Nothing to distribute for facility {self.id}")
            return None

        coin = self._balance.withdraw_all()
        self._increment_version()
        self._add_domain_event(ProfitsDistributedEvent(self.id, coin.value, self._admin))
        self._logger.info(f"Distributed {coin.value} from facility {self.id} to {self._admin}")
        return coin

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "admin": self._admin,
            "balance": self._balance.value,
            "slots": [slot.to_dict() for slot in self._slots],
            "max_slots": self.max_slots,
            "version": self._version,
        }


# ============================================================================
# AGGREGATE FACTORY
# ============================================================================

class AggregateFactory:
    """Factory for minting the ledger's aggregates"""

    @staticmethod
    def initialize(caller: str, max_slots: Optional[int] = None) -> Tuple[AdminCapability, Facility]:
        """
        Mint the admin capability and the facility for ``caller``
        Both share the same admin identity; the facility starts empty.
        """
        capability = AdminCapability(admin=caller)
        facility = Facility(admin=caller, max_slots=max_slots)
        facility._add_domain_event(LedgerInitializedEvent(facility.id, capability.id, caller))
        facility._logger.info(f"Initialized facility {facility.id} administered by {caller}")
        return capability, facility
