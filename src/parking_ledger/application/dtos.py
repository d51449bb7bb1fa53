# File: src/parking_ledger/application/dtos.py
"""
Data Transfer Objects (DTOs) for the Parking Ledger

The application service never hands domain objects to its callers; it
returns these pydantic models instead, so results can be serialized to
JSON without leaking mutable aggregates.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..domain.aggregates import Facility
from ..domain.exceptions import ParkingLedgerError
from ..domain.models import AdminCapability, Coin, PaymentRecord, Slot


# ============================================================================
# BASE DTO CLASSES
# ============================================================================

class BaseDTO(BaseModel):
    """Base DTO with common functionality"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_dict(self, exclude_none: bool = False, **kwargs) -> Dict[str, Any]:
        """Convert DTO to dictionary"""
        return self.model_dump(exclude_none=exclude_none, **kwargs)

    def to_json(self, **kwargs) -> str:
        return self.model_dump_json(**kwargs)


# ============================================================================
# LEDGER OBJECT DTOs
# ============================================================================

class SlotDTO(BaseDTO):
    """Slot state as seen by callers"""
    id: str = Field(description="Slot ID")
    facility_id: str = Field(description="Owning facility ID")
    position: int = Field(ge=0, description="Index in the facility's slot list")
    occupied: bool = Field(description="Occupancy flag")
    state: str = Field(description="vacant or occupied")
    start_time: int = Field(ge=0, description="Last entry timestamp (ms)")
    end_time: int = Field(ge=0, description="Last exit timestamp (ms)")
    unsettled: bool = Field(description="Last entered cycle not yet paid for")


class FacilityDTO(BaseDTO):
    """Facility aggregate snapshot"""
    id: str = Field(description="Facility ID")
    admin: str = Field(description="Administrator identity")
    balance: int = Field(ge=0, description="Withdrawable balance")
    max_slots: Optional[int] = Field(default=None, description="Configured slot limit")
    version: int = Field(ge=1, description="Aggregate version")
    slots: List[SlotDTO] = Field(default_factory=list)

    @property
    def slot_count(self) -> int:
        return len(self.slots)


class AdminCapabilityDTO(BaseDTO):
    """Capability token reference"""
    id: str = Field(description="Capability ID")
    admin: str = Field(description="Bound admin identity")
    owner: str = Field(description="Current holder")


class PaymentRecordDTO(BaseDTO):
    """Payment receipt"""
    id: str = Field(description="Record ID")
    amount: int = Field(ge=0, description="Amount paid")
    payment_time: int = Field(ge=0, description="Payment timestamp (ms)")
    owner: str = Field(description="Receipt holder")


class CoinDTO(BaseDTO):
    """Money split off a facility balance"""
    id: str = Field(description="Coin ID")
    value: int = Field(ge=0, description="Coin value")
    owner: str = Field(description="Coin holder")


class InitializationDTO(BaseDTO):
    """Result of the one-time bootstrap"""
    facility: FacilityDTO
    capability: AdminCapabilityDTO


# ============================================================================
# RESPONSE DTOs
# ============================================================================

class ErrorResponseDTO(BaseDTO):
    """Standard error response DTO"""
    success: bool = Field(default=False)
    error: str = Field(description="Error message")
    error_code: Optional[str] = Field(default=None, description="Error kind")
    details: Optional[Dict[str, Any]] = Field(default=None)
    timestamp: datetime = Field(default_factory=datetime.now)

    @classmethod
    def from_error(cls, error: ParkingLedgerError) -> 'ErrorResponseDTO':
        return cls(error=error.message, error_code=error.code, details=error.details or None)


# ============================================================================
# DTO FACTORY
# ============================================================================

class DTOFactory:
    """Builds DTOs from domain objects"""

    @staticmethod
    def slot(slot: Slot, facility_id: str, position: int) -> SlotDTO:
        return SlotDTO(
            id=slot.id,
            facility_id=facility_id,
            position=position,
            occupied=slot.occupied,
            state=slot.state.value,
            start_time=slot.start_time,
            end_time=slot.end_time,
            unsettled=slot.unsettled
        )

    @staticmethod
    def slot_in(facility: Facility, slot_id: str) -> SlotDTO:
        return DTOFactory.slot(facility.get_slot(slot_id), facility.id, facility.position_of(slot_id))

    @staticmethod
    def facility(facility: Facility) -> FacilityDTO:
        return FacilityDTO(
            id=facility.id,
            admin=facility.admin,
            balance=facility.balance,
            max_slots=facility.max_slots,
            version=facility.version,
            slots=[
                DTOFactory.slot(slot, facility.id, position)
                for position, slot in enumerate(facility.slots)
            ]
        )

    @staticmethod
    def capability(capability: AdminCapability, owner: str) -> AdminCapabilityDTO:
        return AdminCapabilityDTO(id=capability.id, admin=capability.admin, owner=owner)

    @staticmethod
    def payment_record(record: PaymentRecord, owner: str) -> PaymentRecordDTO:
        return PaymentRecordDTO(
            id=record.id,
            amount=record.amount,
            payment_time=record.payment_time,
            owner=owner
        )

    @staticmethod
    def coin(coin: Coin, owner: str) -> CoinDTO:
        return CoinDTO(id=coin.id, value=coin.value, owner=owner)
