# File: src/parking_ledger/infrastructure/repositories.py
"""
Repository Pattern Implementation for the Parking Ledger

This module is the persistence and identity substrate the domain relies on.
Repositories provide a collection-like interface for ledger objects while
the Unit of Work turns every application operation into one transaction:
it either commits as a whole or rolls back as a whole.

Every stored object carries an ``owner`` column. Ownership is what the
ledger means by possession: a capability proves authority only for the
identity that currently owns it, and withdrawn coins and payment records
belong to whoever requested them.

Repository Types:
1. FacilityRepository - Facility aggregate with its ordered slots
2. AdminCapabilityRepository - Capability tokens
3. PaymentRecordRepository - Payment receipts
4. CoinRepository - Money split off the facility balance
5. LedgerStateRepository - One-time bootstrap marker
"""

from abc import ABC, abstractmethod
from typing import Type, TypeVar, Generic, Optional, List, Dict, Any, Callable
from datetime import datetime, timezone
from functools import partial
import logging

from sqlalchemy import (
    create_engine, Column, Integer, BigInteger, String, Boolean,
    DateTime, ForeignKey, UniqueConstraint, event
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session, relationship
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from sqlalchemy.pool import StaticPool

from ..domain.aggregates import Facility
from ..domain.exceptions import AlreadyInitialized, ObjectNotFound
from ..domain.models import AdminCapability, Balance, Coin, PaymentRecord, Slot

# Type variable for generic repositories
T = TypeVar('T')


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# REPOSITORY INTERFACES
# ============================================================================

class Repository(ABC, Generic[T]):
    """Base repository interface for owned ledger objects"""

    @abstractmethod
    def add(self, entity: T, owner: str) -> T:
        """Add an entity owned by ``owner``"""
        pass

    @abstractmethod
    def get(self, id: str) -> Optional[T]:
        """Get an entity by ID"""
        pass

    @abstractmethod
    def owner_of(self, id: str) -> Optional[str]:
        """Identity currently owning the entity"""
        pass

    @abstractmethod
    def transfer(self, id: str, recipient: str) -> None:
        """Hand the entity over to ``recipient``"""
        pass


# ============================================================================
# UNIT OF WORK PATTERN
# ============================================================================

class UnitOfWork(ABC):
    """Unit of Work pattern for transaction management"""

    @abstractmethod
    def __enter__(self):
        pass

    @abstractmethod
    def __exit__(self, exc_type, exc_val, exc_tb):
        pass

    @abstractmethod
    def commit(self):
        pass

    @abstractmethod
    def rollback(self):
        pass

    @property
    @abstractmethod
    def facilities(self) -> 'FacilityRepository':
        pass

    @property
    @abstractmethod
    def capabilities(self) -> 'AdminCapabilityRepository':
        pass

    @property
    @abstractmethod
    def payment_records(self) -> 'PaymentRecordRepository':
        pass

    @property
    @abstractmethod
    def coins(self) -> 'CoinRepository':
        pass

    @property
    @abstractmethod
    def ledger_state(self) -> 'LedgerStateRepository':
        pass


# ============================================================================
# SQLALCHEMY ORM MODELS
# ============================================================================

Base = declarative_base()


class FacilityModel(Base):
    """SQLAlchemy model for Facility"""
    __tablename__ = 'facilities'

    id = Column(String(36), primary_key=True)
    admin = Column(String(100), nullable=False)
    owner = Column(String(100), nullable=False, index=True)
    balance = Column(BigInteger, nullable=False, default=0)
    max_slots = Column(Integer)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    slots = relationship(
        'SlotModel',
        back_populates='facility',
        order_by='SlotModel.position',
        cascade='all, delete-orphan'
    )


class SlotModel(Base):
    """SQLAlchemy model for Slot"""
    __tablename__ = 'slots'

    id = Column(String(36), primary_key=True)
    facility_id = Column(String(36), ForeignKey('facilities.id'), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    # Occupancy
    occupied = Column(Boolean, nullable=False, default=False)
    start_time = Column(BigInteger, nullable=False, default=0)
    end_time = Column(BigInteger, nullable=False, default=0)
    unsettled = Column(Boolean, nullable=False, default=False)

    facility = relationship('FacilityModel', back_populates='slots')

    __table_args__ = (
        UniqueConstraint('facility_id', 'position', name='uq_slot_facility_position'),
    )


class AdminCapabilityModel(Base):
    """SQLAlchemy model for AdminCapability"""
    __tablename__ = 'admin_capabilities'

    id = Column(String(36), primary_key=True)
    admin = Column(String(100), nullable=False)
    owner = Column(String(100), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class PaymentRecordModel(Base):
    """SQLAlchemy model for PaymentRecord"""
    __tablename__ = 'payment_records'

    id = Column(String(36), primary_key=True)
    amount = Column(BigInteger, nullable=False)
    payment_time = Column(BigInteger, nullable=False)
    owner = Column(String(100), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class CoinModel(Base):
    """SQLAlchemy model for Coin"""
    __tablename__ = 'coins'

    id = Column(String(36), primary_key=True)
    value = Column(BigInteger, nullable=False)
    owner = Column(String(100), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class LedgerStateModel(Base):
    """Singleton row written by the one-time bootstrap"""
    __tablename__ = 'ledger_state'

    id = Column(Integer, primary_key=True)
    facility_id = Column(String(36), ForeignKey('facilities.id'), nullable=False)
    capability_id = Column(String(36), ForeignKey('admin_capabilities.id'), nullable=False)
    initialized_by = Column(String(100), nullable=False)
    initialized_at = Column(DateTime(timezone=True), default=_utcnow)


LEDGER_STATE_ROW_ID = 1


# ============================================================================
# DOMAIN <-> ORM MAPPERS
# ============================================================================

class LedgerMapper:
    """Maps between domain objects and ORM models"""

    @staticmethod
    def slot_to_orm(slot: Slot, facility_id: str, position: int) -> SlotModel:
        return SlotModel(
            id=slot.id,
            facility_id=facility_id,
            position=position,
            occupied=slot.occupied,
            start_time=slot.start_time,
            end_time=slot.end_time,
            unsettled=slot.unsettled
        )

    @staticmethod
    def slot_to_domain(model: SlotModel) -> Slot:
        return Slot(
            id=model.id,
            occupied=model.occupied,
            start_time=model.start_time,
            end_time=model.end_time,
            unsettled=model.unsettled
        )

    @staticmethod
    def facility_to_orm(facility: Facility, owner: str) -> FacilityModel:
        model = FacilityModel(
            id=facility.id,
            admin=facility.admin,
            owner=owner,
            balance=facility.balance,
            max_slots=facility.max_slots,
            version=facility.version
        )
        model.slots = [
            LedgerMapper.slot_to_orm(slot, facility.id, position)
            for position, slot in enumerate(facility.slots)
        ]
        return model

    @staticmethod
    def facility_to_domain(model: FacilityModel) -> Facility:
        return Facility(
            admin=model.admin,
            id=model.id,
            slots=[LedgerMapper.slot_to_domain(slot) for slot in model.slots],
            balance=Balance(model.balance),
            max_slots=model.max_slots,
            version=model.version
        )

    @staticmethod
    def capability_to_orm(capability: AdminCapability, owner: str) -> AdminCapabilityModel:
        return AdminCapabilityModel(id=capability.id, admin=capability.admin, owner=owner)

    @staticmethod
    def capability_to_domain(model: AdminCapabilityModel) -> AdminCapability:
        return AdminCapability(admin=model.admin, id=model.id)

    @staticmethod
    def payment_record_to_orm(record: PaymentRecord, owner: str) -> PaymentRecordModel:
        return PaymentRecordModel(
            id=record.id,
            amount=record.amount,
            payment_time=record.payment_time,
            owner=owner
        )

    @staticmethod
    def payment_record_to_domain(model: PaymentRecordModel) -> PaymentRecord:
        return PaymentRecord(amount=model.amount, payment_time=model.payment_time, id=model.id)

    @staticmethod
    def coin_to_orm(coin: Coin, owner: str) -> CoinModel:
        return CoinModel(id=coin.id, value=coin.value, owner=owner)

    @staticmethod
    def coin_to_domain(model: CoinModel) -> Coin:
        return Coin(value=model.value, id=model.id)


# ============================================================================
# SQLALCHEMY REPOSITORIES
# ============================================================================

class SQLAlchemyRepository(Repository[T], ABC):
    """Base SQLAlchemy repository"""

    def __init__(self, session: Session):
        self.session = session
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    @abstractmethod
    def model_class(self) -> Type[Base]:
        """Return SQLAlchemy model class"""
        pass

    @property
    def kind(self) -> str:
        return self.model_class.__name__.replace("Model", "")

    @abstractmethod
    def to_domain(self, model: Base) -> T:
        pass

    @abstractmethod
    def to_orm(self, entity: T, owner: str) -> Base:
        pass

    def _get_model(self, id: str, for_update: bool = False) -> Optional[Base]:
        try:
            return self.session.get(self.model_class, str(id), with_for_update=for_update)
        except SQLAlchemyError as e:
            self._logger.error(f"Database error getting {self.kind} {id}: {e}")
            raise

    def _require_model(self, id: str, for_update: bool = False) -> Base:
        model = self._get_model(id, for_update)
        if model is None:
            raise ObjectNotFound(self.kind, id)
        return model

    def add(self, entity: T, owner: str) -> T:
        try:
            model = self.to_orm(entity, owner)
            self.session.add(model)
            self.session.flush()
            self._logger.debug(f"Added {self.kind} {model.id} owned by {owner}")
            return entity
        except IntegrityError as e:
            self._logger.error(f"Integrity error adding {self.kind}: {e}")
            raise
        except SQLAlchemyError as e:
            self._logger.error(f"Database error adding {self.kind}: {e}")
            raise

    def get(self, id: str) -> Optional[T]:
        model = self._get_model(id)
        if model:
            return self.to_domain(model)
        return None

    def owner_of(self, id: str) -> Optional[str]:
        model = self._get_model(id)
        return model.owner if model else None

    def transfer(self, id: str, recipient: str) -> None:
        if not recipient:
            raise ValueError("Recipient identity cannot be empty")
        model = self._require_model(id, for_update=True)
        previous = model.owner
        model.owner = recipient
        self.session.flush()
        self._logger.info(f"Transferred {self.kind} {id} from {previous} to {recipient}")

    def find_by_owner(self, owner: str) -> List[T]:
        try:
            models = (
                self.session.query(self.model_class)
                .filter(self.model_class.owner == owner)
                .order_by(self.model_class.created_at, self.model_class.id)
                .all()
            )
            return [self.to_domain(model) for model in models]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding {self.kind} for {owner}: {e}")
            raise


class FacilityRepository(SQLAlchemyRepository[Facility]):
    """Repository for the Facility aggregate and its slots"""

    @property
    def model_class(self) -> Type[Base]:
        return FacilityModel

    def to_domain(self, model: FacilityModel) -> Facility:
        return LedgerMapper.facility_to_domain(model)

    def to_orm(self, entity: Facility, owner: str) -> FacilityModel:
        return LedgerMapper.facility_to_orm(entity, owner)

    def get_for_update(self, id: str) -> Optional[Facility]:
        """Load the aggregate and lock its row for the rest of the transaction"""
        model = self._get_model(id, for_update=True)
        if model:
            return self.to_domain(model)
        return None

    def find_facility_id_for_slot(self, slot_id: str) -> Optional[str]:
        try:
            slot = self.session.get(SlotModel, str(slot_id))
            return slot.facility_id if slot else None
        except SQLAlchemyError as e:
            self._logger.error(f"Database error looking up slot {slot_id}: {e}")
            raise

    def get_for_slot(self, slot_id: str, for_update: bool = False) -> Optional[Facility]:
        """Load the facility owning the given slot"""
        facility_id = self.find_facility_id_for_slot(slot_id)
        if facility_id is None:
            return None
        if for_update:
            return self.get_for_update(facility_id)
        return self.get(facility_id)

    def update(self, facility: Facility) -> Facility:
        """Write balance, version and slot state back; new slots are appended"""
        try:
            model = self._require_model(facility.id)
            model.balance = facility.balance
            model.max_slots = facility.max_slots
            model.version = facility.version

            existing = {slot.id: slot for slot in model.slots}
            for position, slot in enumerate(facility.slots):
                slot_model = existing.get(slot.id)
                if slot_model is None:
                    model.slots.append(LedgerMapper.slot_to_orm(slot, facility.id, position))
                    continue
                slot_model.occupied = slot.occupied
                slot_model.start_time = slot.start_time
                slot_model.end_time = slot.end_time
                slot_model.unsettled = slot.unsettled

            self.session.flush()
            self._logger.debug(f"Updated facility {facility.id} (version {facility.version})")
            return facility
        except IntegrityError as e:
            self._logger.error(f"Integrity error updating facility: {e}")
            raise
        except SQLAlchemyError as e:
            self._logger.error(f"Database error updating facility: {e}")
            raise


class AdminCapabilityRepository(SQLAlchemyRepository[AdminCapability]):
    """Repository for admin capability tokens"""

    @property
    def model_class(self) -> Type[Base]:
        return AdminCapabilityModel

    def to_domain(self, model: AdminCapabilityModel) -> AdminCapability:
        return LedgerMapper.capability_to_domain(model)

    def to_orm(self, entity: AdminCapability, owner: str) -> AdminCapabilityModel:
        return LedgerMapper.capability_to_orm(entity, owner)


class PaymentRecordRepository(SQLAlchemyRepository[PaymentRecord]):
    """Repository for payment receipts"""

    @property
    def model_class(self) -> Type[Base]:
        return PaymentRecordModel

    def to_domain(self, model: PaymentRecordModel) -> PaymentRecord:
        return LedgerMapper.payment_record_to_domain(model)

    def to_orm(self, entity: PaymentRecord, owner: str) -> PaymentRecordModel:
        return LedgerMapper.payment_record_to_orm(entity, owner)


class CoinRepository(SQLAlchemyRepository[Coin]):
    """Repository for coins split off a facility balance"""

    @property
    def model_class(self) -> Type[Base]:
        return CoinModel

    def to_domain(self, model: CoinModel) -> Coin:
        return LedgerMapper.coin_to_domain(model)

    def to_orm(self, entity: Coin, owner: str) -> CoinModel:
        return LedgerMapper.coin_to_orm(entity, owner)


class LedgerStateRepository:
    """Tracks whether the one-time bootstrap has run"""

    def __init__(self, session: Session):
        self.session = session
        self._logger = logging.getLogger(self.__class__.__name__)

    def is_initialized(self) -> bool:
        return self.session.get(LedgerStateModel, LEDGER_STATE_ROW_ID) is not None

    def mark_initialized(self, facility_id: str, capability_id: str, caller: str) -> None:
        """
        Write the bootstrap marker
        Raises: AlreadyInitialized if a concurrent bootstrap got there first
        """
        self.session.add(LedgerStateModel(
            id=LEDGER_STATE_ROW_ID,
            facility_id=facility_id,
            capability_id=capability_id,
            initialized_by=caller
        ))
        try:
            self.session.flush()
        except IntegrityError as e:
            self._logger.warning(f"Ledger bootstrap collided with an existing one: {e}")
            raise AlreadyInitialized("Ledger has already been initialized") from e


# ============================================================================
# SQLALCHEMY UNIT OF WORK
# ============================================================================

class SQLAlchemyUnitOfWork(UnitOfWork):
    """
    Unit of Work implementation with SQLAlchemy
    Holds one session at a time; concurrent callers each need their own instance.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory
        self.session: Optional[Session] = None
        self._logger = logging.getLogger(self.__class__.__name__)

    def __enter__(self):
        if self.session is not None:
            raise RuntimeError("Unit of work is already in progress")
        self.session = self.session_factory()

        # Initialize repositories
        self._facilities = FacilityRepository(self.session)
        self._capabilities = AdminCapabilityRepository(self.session)
        self._payment_records = PaymentRecordRepository(self.session)
        self._coins = CoinRepository(self.session)
        self._ledger_state = LedgerStateRepository(self.session)

        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is not None:
                self._logger.debug(f"Rolling back after {exc_type.__name__}: {exc_val}")
                self.rollback()
            else:
                self.commit()
        finally:
            self.session.close()
            self.session = None

    def commit(self):
        """Commit the transaction"""
        try:
            self.session.commit()
            self._logger.debug("Transaction committed")
        except SQLAlchemyError as e:
            self._logger.error(f"Error committing transaction: {e}")
            self.session.rollback()
            raise

    def rollback(self):
        """Rollback the transaction"""
        self.session.rollback()
        self._logger.debug("Transaction rolled back")

    @property
    def facilities(self) -> FacilityRepository:
        return self._facilities

    @property
    def capabilities(self) -> AdminCapabilityRepository:
        return self._capabilities

    @property
    def payment_records(self) -> PaymentRecordRepository:
        return self._payment_records

    @property
    def coins(self) -> CoinRepository:
        return self._coins

    @property
    def ledger_state(self) -> LedgerStateRepository:
        return self._ledger_state


# ============================================================================
# REPOSITORY FACTORY
# ============================================================================

class RepositoryFactory:
    """Factory for creating the persistence substrate"""

    @staticmethod
    def _is_sqlite(database_url: str) -> bool:
        return database_url.startswith("sqlite")

    @staticmethod
    def _engine_options(database_url: str) -> Dict[str, Any]:
        # In-memory SQLite lives inside one connection; share it across sessions
        if RepositoryFactory._is_sqlite(database_url) and (
            database_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in database_url
        ):
            return {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool,
            }
        return {}

    @staticmethod
    def _serialize_sqlite_writers(engine: Engine) -> None:
        """
        SQLite ignores FOR UPDATE, so take the database write lock when each
        transaction begins instead. Concurrent transactions then queue on the
        driver's busy timeout rather than overwriting each other.
        """
        @event.listens_for(engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    @staticmethod
    def build_engine(database_url: str, echo: bool = False) -> Engine:
        engine = create_engine(
            database_url, echo=echo, **RepositoryFactory._engine_options(database_url)
        )
        if RepositoryFactory._is_sqlite(database_url):
            RepositoryFactory._serialize_sqlite_writers(engine)

        # Create tables if they don't exist
        Base.metadata.create_all(bind=engine)
        return engine

    @staticmethod
    def create_uow_factory(
        database_url: str,
        echo: bool = False
    ) -> Callable[[], SQLAlchemyUnitOfWork]:
        """Create a factory producing one fresh Unit of Work per transaction"""
        engine = RepositoryFactory.build_engine(database_url, echo)
        SessionLocal = sessionmaker(autoflush=False, bind=engine)
        return partial(SQLAlchemyUnitOfWork, SessionLocal)
