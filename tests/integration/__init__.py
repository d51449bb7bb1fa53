"""
Integration Tests Package for the Parking Ledger

These tests drive the application service against a real SQLAlchemy
substrate (in-memory SQLite) so every operation runs through the Unit of
Work exactly as it does in production.
"""

from typing import Tuple

from parking_ledger.application.ledger_service import ParkingLedgerService
from parking_ledger.config import LedgerSettings
from parking_ledger.domain.strategies import LinearPricingStrategy
from parking_ledger.infrastructure.clock import ManualClock
from parking_ledger.infrastructure.messaging import ALL_EVENTS, EventBus, RecordingEventHandler
from parking_ledger.infrastructure.repositories import RepositoryFactory


def build_service(**settings) -> Tuple[ParkingLedgerService, ManualClock, RecordingEventHandler]:
    """Fresh ledger on its own in-memory database"""
    config = LedgerSettings(**settings)
    clock = ManualClock()
    recorder = RecordingEventHandler()
    bus = EventBus()
    bus.subscribe(ALL_EVENTS, recorder)

    service = ParkingLedgerService(
        uow_factory=RepositoryFactory.create_uow_factory(config.database_url),
        clock=clock,
        pricing=LinearPricingStrategy(config.peak_multiplier),
        event_bus=bus,
        settings=config
    )
    return service, clock, recorder
