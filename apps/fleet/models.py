from sqlmodel import Field
from typing import Optional
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from framework.database.versioning import VersionedModel


class LoadStatus(str, Enum):
    """Truck load status."""
    LOADED = "LOADED"
    IN_TRANSIT = "IN_TRANSIT"
    COMPLETED = "COMPLETED"


class ReconciliationStatus(str, Enum):
    """Daily reconciliation status."""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    REVIEWED = "REVIEWED"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Truck(VersionedModel, table=True):
    """Delivery truck."""
    __tablename__ = "trucks"

    id: Optional[int] = Field(default=None, primary_key=True)
    truck_number: str = Field(unique=True, index=True, max_length=50, description="Plate / fleet number")
    driver_name: str = Field(max_length=100)
    is_active: bool = Field(default=True, index=True)
    created_date: datetime = Field(default_factory=_utcnow)


class TruckLoad(VersionedModel, table=True):
    """Goods loaded onto a truck for one day."""
    __tablename__ = "truck_loads"

    id: Optional[int] = Field(default=None, primary_key=True)
    truck_id: int = Field(foreign_key="trucks.id", index=True)
    load_date: date = Field(default_factory=date.today, index=True)
    total_weight: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    cages_count: int = Field(default=0)
    notes: Optional[str] = Field(default=None, max_length=500)
    status: LoadStatus = Field(default=LoadStatus.LOADED, index=True)
    created_date: datetime = Field(default_factory=_utcnow)
    updated_date: datetime = Field(default_factory=_utcnow)


class DailyReconciliation(VersionedModel, table=True):
    """End-of-day comparison of loaded against sold weight for a truck."""
    __tablename__ = "daily_reconciliations"

    id: Optional[int] = Field(default=None, primary_key=True)
    truck_id: int = Field(foreign_key="trucks.id", index=True)
    reconciliation_date: date = Field(default_factory=date.today, index=True)
    load_weight: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    sold_weight: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    wastage_weight: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    wastage_percentage: Decimal = Field(default=Decimal("0"), max_digits=5, decimal_places=2)
    status: ReconciliationStatus = Field(default=ReconciliationStatus.PENDING, index=True)
    notes: Optional[str] = Field(default=None, max_length=500)
    created_date: datetime = Field(default_factory=_utcnow)
