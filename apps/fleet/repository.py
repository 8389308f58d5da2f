"""Fleet module repository implementations."""

from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
from sqlmodel import select, func
from framework.repository.base import BaseRepository
from .models import DailyReconciliation, LoadStatus, ReconciliationStatus, Truck, TruckLoad


class TruckRepository(BaseRepository[Truck]):
    """Truck repository."""

    def __init__(self, session, logger=None):
        super().__init__(session, Truck, logger)

    async def get_active_trucks(self) -> List[Truck]:
        return await self.find(Truck.is_active == True, order_by=Truck.truck_number)  # noqa: E712

    async def get_truck_by_number(self, truck_number: str) -> Optional[Truck]:
        return await self.find_one(truck_number=truck_number)

    async def truck_number_exists(self, truck_number: str, exclude_truck_id: Optional[int] = None) -> bool:
        """Whether another truck already uses truck_number (exclude_truck_id skips the truck being edited)."""
        criteria = [Truck.truck_number == truck_number]
        if exclude_truck_id is not None:
            criteria.append(Truck.id != exclude_truck_id)
        return await self.exists(criteria)

    async def get_active_truck_count(self) -> int:
        return await self.count(Truck.is_active == True)  # noqa: E712


class TruckLoadRepository(BaseRepository[TruckLoad]):
    """Truck load repository."""

    def __init__(self, session, logger=None):
        super().__init__(session, TruckLoad, logger)

    async def get_truck_current_load(self, truck_id: int, day: Optional[date] = None) -> Optional[TruckLoad]:
        """Latest load of the truck for day (today by default)."""
        day = day or date.today()
        loads = await self.find(
            [TruckLoad.truck_id == truck_id, TruckLoad.load_date == day],
            order_by=TruckLoad.id.desc(),
            limit=1,
        )
        return loads[0] if loads else None

    async def get_loads_by_status(self, status: LoadStatus) -> List[TruckLoad]:
        return await self.find(TruckLoad.status == status, order_by=TruckLoad.load_date.desc())

    async def update_load_status(self, load_id: int, status: LoadStatus) -> bool:
        """Stage a status change; False when the load does not exist."""
        load = await self.get_by_id(load_id)
        if load is None:
            self.logger.warning(f"Load {load_id} not found for status update")
            return False
        load.status = status
        load.updated_date = datetime.now(timezone.utc)
        self.logger.info(f"Staged status {status} for load {load_id}")
        return True

    async def get_total_load_weight_by_date(self, day: date) -> Decimal:
        statement = select(func.coalesce(func.sum(TruckLoad.total_weight), 0)).where(TruckLoad.load_date == day)
        total = await self._scalar(statement, f"summing load weight on {day} for")
        return Decimal(str(total))


class DailyReconciliationRepository(BaseRepository[DailyReconciliation]):
    """Daily reconciliation repository."""

    def __init__(self, session, logger=None):
        super().__init__(session, DailyReconciliation, logger)

    async def get_truck_reconciliation(self, truck_id: int, day: date) -> Optional[DailyReconciliation]:
        return await self.get([
            DailyReconciliation.truck_id == truck_id,
            DailyReconciliation.reconciliation_date == day,
        ])

    async def get_pending_reconciliations(self) -> List[DailyReconciliation]:
        """Pending reconciliations, oldest first."""
        return await self.find(
            DailyReconciliation.status == ReconciliationStatus.PENDING,
            order_by=[DailyReconciliation.reconciliation_date, DailyReconciliation.id],
        )

    async def update_reconciliation_status(self, reconciliation_id: int, status: ReconciliationStatus) -> bool:
        reconciliation = await self.get_by_id(reconciliation_id)
        if reconciliation is None:
            self.logger.warning(f"Reconciliation {reconciliation_id} not found for status update")
            return False
        reconciliation.status = status
        self.logger.info(f"Staged status {status} for reconciliation {reconciliation_id}")
        return True

    @staticmethod
    def calculate_wastage_percentage(load_weight: Decimal, sold_weight: Decimal) -> Decimal:
        """Share of the loaded weight not sold, in percent (2 decimals); 0 for an empty load."""
        load_weight = Decimal(load_weight)
        if load_weight <= 0:
            return Decimal("0")
        wastage = load_weight - Decimal(sold_weight)
        return (wastage / load_weight * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
