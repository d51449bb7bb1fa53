# File: src/parking_ledger/main.py
"""
Command-line entry point for the Parking Ledger
Runs a walkthrough of the ledger against a database of your choice
"""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from .application.dtos import ErrorResponseDTO
from .application.ledger_service import ParkingLedgerService, ParkingLedgerServiceFactory
from .config import LedgerSettings
from .domain.exceptions import InsufficientBalance, ParkingLedgerError
from .infrastructure.clock import ManualClock


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> logging.Logger:
    """Setup application logging configuration"""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(os.path.join(log_dir, 'parking_ledger.log')))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )
    return logging.getLogger("parking_ledger")


def run_demo(service: ParkingLedgerService, clock: ManualClock, admin: str = "admin",
             driver: str = "driver-a", base_rate: int = 2) -> dict:
    """
    Walk through the ledger lifecycle:
    bootstrap, two slots, one parking cycle, a fee quote and settlement
    """
    init = service.initialize(admin)
    facility_id = init.facility.id
    capability_id = init.capability.id

    slots = [service.create_slot(admin, capability_id, facility_id) for _ in range(2)]

    clock.set(1000)
    service.enter_slot(slots[0].id)
    clock.set(5000)
    exited = service.exit_slot(slots[0].id)

    fee = service.calculate_parking_fee(exited.start_time, exited.end_time, base_rate, False)

    try:
        service.withdraw_profits(admin, capability_id, facility_id, 1)
        empty_withdrawal = "succeeded"
    except InsufficientBalance as e:
        empty_withdrawal = e.code

    receipt = service.settle_parking(driver, slots[0].id, base_rate)
    payout = service.distribute_profits(admin, capability_id, facility_id)

    return {
        "facility_id": facility_id,
        "capability_id": capability_id,
        "slots": [slot.id for slot in slots],
        "fee": fee,
        "empty_withdrawal": empty_withdrawal,
        "receipt": receipt.to_dict(),
        "distributed": payout.to_dict() if payout else None,
        "facility": service.get_facility(facility_id).to_dict(),
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="parking-ledger",
        description="Parking facility occupancy and settlement ledger"
    )
    parser.add_argument("--database-url", default=None,
                        help="SQLAlchemy database URL (default: in-memory SQLite)")
    parser.add_argument("--log-level", default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--log-dir", default=None, help="Also write logs to this directory")

    subparsers = parser.add_subparsers(dest="command", required=True)
    demo = subparsers.add_parser("demo", help="Run the end-to-end walkthrough")
    demo.add_argument("--admin", default="admin")
    demo.add_argument("--driver", default="driver-a")
    demo.add_argument("--base-rate", type=int, default=2)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = LedgerSettings.from_env()
    overrides = {}
    if args.database_url:
        overrides["database_url"] = args.database_url
    if args.log_level:
        overrides["log_level"] = args.log_level
    if overrides:
        settings = settings.model_copy(update=overrides)

    logger = setup_logging(settings.log_level, args.log_dir)
    logger.info("Starting Parking Ledger...")

    clock = ManualClock()
    service = ParkingLedgerServiceFactory.create(settings, clock=clock)

    try:
        if args.command == "demo":
            result = run_demo(service, clock, args.admin, args.driver, args.base_rate)
            print(json.dumps(result, indent=2))
    except ParkingLedgerError as e:
        print(ErrorResponseDTO.from_error(e).to_json(indent=2))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
