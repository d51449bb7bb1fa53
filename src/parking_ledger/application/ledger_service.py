# File: src/parking_ledger/application/ledger_service.py
"""
Parking Ledger Application Service

This module implements the application service layer. It orchestrates the
domain aggregates, runs every use case inside one Unit of Work, and
publishes the resulting domain events once the transaction has committed.

Responsibilities:
1. Resolve ledger objects by ID and check who holds them
2. Execute each operation atomically (commit on success, rollback on error)
3. Handle cross-cutting concerns (logging, event publishing)
4. Return DTOs rather than live domain objects

Authorization model:
- Holding the AdminCapability (ledger ownership) is required, and
- the capability's admin must match the facility's admin.
"""

from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional
import logging

from ..config import LedgerSettings, get_settings
from ..domain.aggregates import AggregateFactory, Facility
from ..domain.exceptions import (
    AlreadyInitialized, NotAuthorized, ObjectNotFound, ParkingLedgerError
)
from ..domain.models import (
    AdminCapability, Clock, Coin, DomainEvent, PaymentRecord, PaymentRecordedEvent,
    validate_amount
)
from ..domain.strategies import LinearPricingStrategy, PricingStrategy
from ..infrastructure.clock import SystemClock
from ..infrastructure.messaging import EventBus, build_event_bus
from ..infrastructure.repositories import RepositoryFactory, SQLAlchemyUnitOfWork
from .dtos import (
    AdminCapabilityDTO, CoinDTO, DTOFactory, FacilityDTO, InitializationDTO,
    PaymentRecordDTO, SlotDTO
)


# ============================================================================
# MAIN LEDGER SERVICE
# ============================================================================

class ParkingLedgerService:
    """
    Main application service for the parking ledger

    Use cases:
    1. One-time bootstrap of facility and admin capability
    2. Slot administration and occupancy (reserve, enter, exit)
    3. Fee calculation and payment records
    4. Deposits, withdrawals and profit distribution
    """

    def __init__(
        self,
        uow_factory: Callable[[], SQLAlchemyUnitOfWork],
        clock: Optional[Clock] = None,
        pricing: Optional[PricingStrategy] = None,
        event_bus: Optional[EventBus] = None,
        settings: Optional[LedgerSettings] = None
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.uow_factory = uow_factory
        self.settings = settings or LedgerSettings()
        self.clock = clock or SystemClock()
        self.pricing = pricing or LinearPricingStrategy(self.settings.peak_multiplier)
        self.event_bus = event_bus or EventBus()

        self.logger.info("ParkingLedgerService initialized")

    # ========================================================================
    # TRANSACTION PLUMBING
    # ========================================================================

    def unit_of_work(self) -> SQLAlchemyUnitOfWork:
        """Fresh unit of work; each transaction gets its own session"""
        return self.uow_factory()

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[SQLAlchemyUnitOfWork]:
        """Run one operation as a single unit of work"""
        try:
            with self.unit_of_work() as uow:
                yield uow
        except ParkingLedgerError as e:
            self.logger.warning(f"{operation} rejected: {e.code}: {e.message}")
            raise
        except Exception as e:
            self.logger.error(f"Error during {operation}: {e}", exc_info=True)
            raise

    def _publish(self, events: List[DomainEvent]) -> None:
        self.event_bus.publish_all(events)

    @staticmethod
    def _require_facility(uow: SQLAlchemyUnitOfWork, facility_id: str) -> Facility:
        facility = uow.facilities.get_for_update(facility_id)
        if facility is None:
            raise ObjectNotFound("Facility", facility_id)
        return facility

    @staticmethod
    def _require_slot_facility(uow: SQLAlchemyUnitOfWork, slot_id: str) -> Facility:
        facility = uow.facilities.get_for_slot(slot_id, for_update=True)
        if facility is None:
            raise ObjectNotFound("Slot", slot_id)
        return facility

    @staticmethod
    def _require_held_capability(
        uow: SQLAlchemyUnitOfWork,
        caller: str,
        capability_id: str
    ) -> AdminCapability:
        """The caller must currently own the capability they present"""
        capability = uow.capabilities.get(capability_id)
        if capability is None:
            raise ObjectNotFound("AdminCapability", capability_id)
        holder = uow.capabilities.owner_of(capability_id)
        if holder != caller:
            raise NotAuthorized(
                f"Capability {capability_id} is not held by {caller}",
                admin=capability.admin,
            )
        return capability

    # ========================================================================
    # BOOTSTRAP
    # ========================================================================

    def initialize(self, caller: str) -> InitializationDTO:
        """
        Mint the facility and admin capability, both owned by ``caller``
        Raises: AlreadyInitialized on any second call against the same ledger
        """
        self.logger.info(f"Initializing ledger for {caller}")

        with self._transaction("initialize") as uow:
            if uow.ledger_state.is_initialized():
                raise AlreadyInitialized("Ledger has already been initialized")

            capability, facility = AggregateFactory.initialize(caller, self.settings.max_slots)
            uow.facilities.add(facility, owner=caller)
            uow.capabilities.add(capability, owner=caller)
            uow.ledger_state.mark_initialized(facility.id, capability.id, caller)

            result = InitializationDTO(
                facility=DTOFactory.facility(facility),
                capability=DTOFactory.capability(capability, caller)
            )
            events = facility.clear_events()

        self._publish(events)
        return result

    # ========================================================================
    # SLOT ADMINISTRATION
    # ========================================================================

    def create_slot(self, caller: str, capability_id: str, facility_id: str) -> SlotDTO:
        """
        Append a vacant slot to the facility
        Raises: NotAuthorized, SlotLimitExceeded, ObjectNotFound
        """
        with self._transaction("create_slot") as uow:
            capability = self._require_held_capability(uow, caller, capability_id)
            facility = self._require_facility(uow, facility_id)

            slot = facility.create_slot(capability)
            uow.facilities.update(facility)

            result = DTOFactory.slot_in(facility, slot.id)
            events = facility.clear_events()

        self._publish(events)
        return result

    # ========================================================================
    # OCCUPANCY
    # ========================================================================

    def reserve_slot(self, slot_id: str) -> SlotDTO:
        """Vacant -> Occupied without stamping a start time"""
        with self._transaction("reserve_slot") as uow:
            facility = self._require_slot_facility(uow, slot_id)
            facility.reserve_slot(slot_id)
            uow.facilities.update(facility)

            result = DTOFactory.slot_in(facility, slot_id)
            events = facility.clear_events()

        self._publish(events)
        return result

    def enter_slot(self, slot_id: str) -> SlotDTO:
        """Vacant -> Occupied, stamping start_time from the clock"""
        with self._transaction("enter_slot") as uow:
            facility = self._require_slot_facility(uow, slot_id)
            facility.enter_slot(slot_id, self.clock)
            uow.facilities.update(facility)

            result = DTOFactory.slot_in(facility, slot_id)
            events = facility.clear_events()

        self._publish(events)
        return result

    def exit_slot(self, slot_id: str) -> SlotDTO:
        """Occupied -> Vacant, stamping end_time from the clock"""
        with self._transaction("exit_slot") as uow:
            facility = self._require_slot_facility(uow, slot_id)
            facility.exit_slot(slot_id, self.clock)
            uow.facilities.update(facility)

            result = DTOFactory.slot_in(facility, slot_id)
            events = facility.clear_events()

        self._publish(events)
        return result

    # ========================================================================
    # FEES AND PAYMENTS
    # ========================================================================

    def calculate_parking_fee(
        self,
        start_time: int,
        end_time: int,
        base_rate: int,
        is_peak: bool = False
    ) -> int:
        """Pure fee calculation; touches no ledger state"""
        return self.pricing.calculate_parking_fee(start_time, end_time, base_rate, is_peak)

    def create_payment_record(self, caller: str, amount: int) -> PaymentRecordDTO:
        """
        Issue a receipt for ``amount`` owned by ``caller``
        The facility balance is not touched; see settle_parking.
        """
        with self._transaction("create_payment_record") as uow:
            record = PaymentRecord.issue(amount, self.clock)
            uow.payment_records.add(record, owner=caller)
            result = DTOFactory.payment_record(record, caller)

        self._publish([PaymentRecordedEvent(record, caller)])
        return result

    def settle_parking(
        self,
        caller: str,
        slot_id: str,
        base_rate: int,
        is_peak: bool = False
    ) -> PaymentRecordDTO:
        """
        Charge the fee for a slot's last entered cycle

        Computes the fee from the slot's timestamps, deposits it into the
        owning facility and issues a receipt to the caller, all in one
        transaction. Each entered cycle settles exactly once.
        Raises: SlotUnavailable if the slot is occupied, was only reserved,
                or its last cycle is already paid
        """
        with self._transaction("settle_parking") as uow:
            facility = self._require_slot_facility(uow, slot_id)
            slot = facility.settle_slot(slot_id)

            fee = self.pricing.calculate_slot_fee(slot, base_rate, is_peak)
            facility.deposit(Coin(fee))
            uow.facilities.update(facility)

            record = PaymentRecord.issue(fee, self.clock)
            uow.payment_records.add(record, owner=caller)

            result = DTOFactory.payment_record(record, caller)
            events = facility.clear_events()
            events.append(PaymentRecordedEvent(record, caller))

        self._publish(events)
        return result

    # ========================================================================
    # BALANCE
    # ========================================================================

    def deposit(self, facility_id: str, amount: int) -> int:
        """External deposit path into the facility balance; returns the new balance"""
        validate_amount(amount)
        with self._transaction("deposit") as uow:
            facility = self._require_facility(uow, facility_id)
            new_balance = facility.deposit(Coin(amount))
            uow.facilities.update(facility)
            events = facility.clear_events()

        self._publish(events)
        return new_balance

    def withdraw_profits(
        self,
        caller: str,
        capability_id: str,
        facility_id: str,
        amount: int
    ) -> CoinDTO:
        """
        Withdraw ``amount`` from the balance as a coin owned by the caller
        Raises: NotAuthorized, InsufficientBalance, ObjectNotFound
        """
        with self._transaction("withdraw_profits") as uow:
            capability = self._require_held_capability(uow, caller, capability_id)
            facility = self._require_facility(uow, facility_id)

            coin = facility.withdraw_profits(capability, caller, amount)
            uow.facilities.update(facility)
            uow.coins.add(coin, owner=caller)

            result = DTOFactory.coin(coin, caller)
            events = facility.clear_events()

        self._publish(events)
        return result

    def distribute_profits(
        self,
        caller: str,
        capability_id: str,
        facility_id: str
    ) -> Optional[CoinDTO]:
        """
        Send the entire balance to the facility admin
        Returns None when there was nothing to distribute.
        """
        with self._transaction("distribute_profits") as uow:
            capability = self._require_held_capability(uow, caller, capability_id)
            facility = self._require_facility(uow, facility_id)

            coin = facility.distribute_profits(capability)
            if coin is None:
                return None

            uow.facilities.update(facility)
            uow.coins.add(coin, owner=facility.admin)

            result = DTOFactory.coin(coin, facility.admin)
            events = facility.clear_events()

        self._publish(events)
        return result

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get_facility(self, facility_id: str) -> FacilityDTO:
        with self._transaction("get_facility") as uow:
            facility = uow.facilities.get(facility_id)
            if facility is None:
                raise ObjectNotFound("Facility", facility_id)
            return DTOFactory.facility(facility)

    def get_slot(self, slot_id: str) -> SlotDTO:
        with self._transaction("get_slot") as uow:
            facility = uow.facilities.get_for_slot(slot_id)
            if facility is None:
                raise ObjectNotFound("Slot", slot_id)
            return DTOFactory.slot_in(facility, slot_id)

    def get_capability(self, capability_id: str) -> AdminCapabilityDTO:
        with self._transaction("get_capability") as uow:
            capability = uow.capabilities.get(capability_id)
            if capability is None:
                raise ObjectNotFound("AdminCapability", capability_id)
            return DTOFactory.capability(capability, uow.capabilities.owner_of(capability_id))

    def get_payment_record(self, record_id: str) -> PaymentRecordDTO:
        with self._transaction("get_payment_record") as uow:
            record = uow.payment_records.get(record_id)
            if record is None:
                raise ObjectNotFound("PaymentRecord", record_id)
            return DTOFactory.payment_record(record, uow.payment_records.owner_of(record_id))

    def owned_coins(self, owner: str) -> List[CoinDTO]:
        with self._transaction("owned_coins") as uow:
            return [DTOFactory.coin(coin, owner) for coin in uow.coins.find_by_owner(owner)]


# ============================================================================
# SERVICE FACTORY
# ============================================================================

class ParkingLedgerServiceFactory:
    """Factory for creating wired ledger services"""

    @staticmethod
    def create(
        settings: Optional[LedgerSettings] = None,
        clock: Optional[Clock] = None
    ) -> ParkingLedgerService:
        settings = settings or get_settings()
        uow_factory = RepositoryFactory.create_uow_factory(settings.database_url)
        event_bus = build_event_bus(settings.redis_url, settings.event_channel)
        return ParkingLedgerService(
            uow_factory=uow_factory,
            clock=clock,
            pricing=LinearPricingStrategy(settings.peak_multiplier),
            event_bus=event_bus,
            settings=settings
        )
