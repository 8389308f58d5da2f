"""Test config and shared fixtures."""
import pytest
from typing import AsyncGenerator, Callable, List

from framework.config import Settings
from framework.database.manager import DatabaseManager
from apps.fleet.models import Truck
from apps.sales.models import Customer
from apps.unit_of_work import PoultryUnitOfWork


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite file.

    A file (not :memory:) so that separate units of work really use separate
    connections, as they would against MySQL.
    """
    return Settings(
        _env_file=None,
        APP_ENV="testing",
        DB_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        LOG_DIR=str(tmp_path / "logs"),
    )


@pytest.fixture
async def db_manager(test_settings: Settings) -> AsyncGenerator[DatabaseManager, None]:
    """Database with every table created; engine disposed afterwards."""
    manager = DatabaseManager(test_settings)
    await manager.sql.create_all()
    yield manager
    await manager.close()


@pytest.fixture
async def make_uow(db_manager: DatabaseManager) -> AsyncGenerator[Callable[[], PoultryUnitOfWork], None]:
    """Factory for independent units of work; all are disposed on teardown."""
    created: List[PoultryUnitOfWork] = []

    def _make() -> PoultryUnitOfWork:
        uow = db_manager.create_unit_of_work(PoultryUnitOfWork)
        created.append(uow)
        return uow

    yield _make

    for uow in created:
        await uow.dispose()


@pytest.fixture
def uow(make_uow) -> PoultryUnitOfWork:
    """Unit of work for the test body."""
    return make_uow()


@pytest.fixture
async def sample_trucks(make_uow) -> List[Truck]:
    """Three committed trucks; T-03 is inactive."""
    seed = make_uow()
    trucks = await seed.trucks.add_range([
        Truck(truck_number="T-01", driver_name="Ali"),
        Truck(truck_number="T-02", driver_name="Omar"),
        Truck(truck_number="T-03", driver_name="Sami", is_active=False),
    ])
    await seed.save_changes()
    await seed.dispose()
    return trucks


@pytest.fixture
async def sample_customer(make_uow) -> Customer:
    """One committed active customer without debt."""
    seed = make_uow()
    customer = await seed.customers.add(Customer(customer_name="Ali Hassan", phone_number="0555123456"))
    await seed.save_changes()
    await seed.dispose()
    return customer
