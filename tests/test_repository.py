"""Generic repository test cases."""
import pytest
from sqlalchemy import func

from apps.fleet.models import Truck
from framework.exceptions.errors import ArgumentError, ConcurrencyError, DataAccessError
from framework.repository.base import BaseRepository


class TestQueries:
    """Test read operations."""

    @pytest.mark.asyncio
    async def test_get_by_id(self, uow, sample_trucks):
        """Test get_by_id returns the entity or None."""
        truck = await uow.trucks.get_by_id(sample_trucks[0].id)
        assert truck.truck_number == "T-01"
        assert await uow.trucks.get_by_id(9999) is None

    @pytest.mark.asyncio
    async def test_get_by_id_returns_staged_instance(self, uow):
        """Test a staged insert is found before any save, as the same object."""
        truck = Truck(id=100, truck_number="T-100", driver_name="Staged")
        await uow.trucks.add(truck)

        assert await uow.trucks.get_by_id(100) is truck

    @pytest.mark.asyncio
    async def test_predicate_forms(self, uow, sample_trucks):
        """Test expression, callable and list predicates."""
        active = await uow.trucks.find(Truck.is_active == True)  # noqa: E712
        assert {t.truck_number for t in active} == {"T-01", "T-02"}

        by_callable = await uow.trucks.find(lambda m: m.driver_name == "Omar")
        assert [t.truck_number for t in by_callable] == ["T-02"]

        combined = await uow.trucks.find([Truck.is_active == True, lambda m: m.driver_name == "Ali"])  # noqa: E712
        assert [t.truck_number for t in combined] == ["T-01"]

        assert await uow.trucks.get(Truck.truck_number == "T-404") is None

    @pytest.mark.asyncio
    async def test_find_with_ordering_and_limit(self, uow, sample_trucks):
        """Test find honours order_by and limit."""
        trucks = await uow.trucks.find(None, order_by=Truck.truck_number.desc(), limit=2)
        assert [t.truck_number for t in trucks] == ["T-03", "T-02"]

    @pytest.mark.asyncio
    async def test_keyword_filters(self, uow, sample_trucks):
        """Test find_one / find_all equality helpers."""
        truck = await uow.trucks.find_one(truck_number="T-02")
        assert truck.driver_name == "Omar"
        assert len(await uow.trucks.find_all(is_active=True)) == 2

        with pytest.raises(ArgumentError):
            await uow.trucks.find_all(no_such_column=1)

    @pytest.mark.asyncio
    async def test_exists_and_count(self, uow, sample_trucks):
        """Test exists and count with and without predicate."""
        assert await uow.trucks.exists(Truck.driver_name == "Sami")
        assert not await uow.trucks.exists(Truck.driver_name == "Nobody")
        assert await uow.trucks.count() == 3
        assert await uow.trucks.count(Truck.is_active == False) == 1  # noqa: E712

    @pytest.mark.asyncio
    async def test_get_all(self, uow, sample_trucks):
        """Test get_all returns every row."""
        assert len(await uow.trucks.get_all()) == 3

    @pytest.mark.asyncio
    async def test_select_projection(self, uow, sample_trucks):
        """Test select returns projected values, not entities."""
        numbers = await uow.trucks.select(Truck.truck_number, Truck.is_active == True)  # noqa: E712
        assert sorted(numbers) == ["T-01", "T-02"]

        rows = await uow.trucks.select(lambda m: [m.truck_number, m.driver_name], Truck.truck_number == "T-03")
        assert [tuple(row) for row in rows] == [("T-03", "Sami")]

        lengths = await uow.trucks.select(func.length(Truck.driver_name))
        assert sorted(lengths) == [3, 4, 4]


class TestPaging:
    """Test get_paged."""

    @pytest.fixture
    async def many_trucks(self, make_uow):
        seed = make_uow()
        await seed.trucks.add_range(
            Truck(truck_number=f"T-{n:02d}", driver_name=f"Driver {n}") for n in range(1, 26)
        )
        await seed.save_changes()
        await seed.dispose()

    @pytest.mark.asyncio
    async def test_second_page(self, uow, many_trucks):
        """Test page 2 of size 10 over 25 rows holds items 11..20."""
        page = await uow.trucks.get_paged(2, 10, order_by=Truck.truck_number)
        assert [t.truck_number for t in page] == [f"T-{n:02d}" for n in range(11, 21)]

        all_ids = sorted(await uow.trucks.select(Truck.id))
        by_id = await uow.trucks.get_paged(2, 10, order_by=Truck.id)
        assert [t.id for t in by_id] == all_ids[10:20]

    @pytest.mark.asyncio
    async def test_last_page_and_past_end(self, uow, many_trucks):
        """Test a partial last page and an empty page past the end."""
        assert len(await uow.trucks.get_paged(3, 10, order_by=Truck.truck_number)) == 5
        assert await uow.trucks.get_paged(4, 10, order_by=Truck.truck_number) == []

    @pytest.mark.asyncio
    async def test_filter_applies_before_paging(self, uow, many_trucks):
        """Test the filter narrows the set that is paged."""
        page = await uow.trucks.get_paged(
            1, 3, filter=Truck.truck_number >= "T-20", order_by=Truck.truck_number.desc()
        )
        assert [t.truck_number for t in page] == ["T-25", "T-24", "T-23"]

    @pytest.mark.asyncio
    async def test_default_ordering_is_primary_key(self, uow, many_trucks):
        """Test omitting order_by still yields a deterministic page."""
        page = await uow.trucks.get_paged(1, 5)
        ids = [t.id for t in page]
        assert ids == sorted(ids)
        assert len(ids) == 5

    @pytest.mark.asyncio
    async def test_page_with_total_count(self, uow, many_trucks):
        """Test get_paged_with_count returns the page and the filtered total."""
        items, total = await uow.trucks.get_paged_with_count(3, 10, order_by=Truck.truck_number)
        assert [t.truck_number for t in items] == [f"T-{n:02d}" for n in range(21, 26)]
        assert total == 25

        items, total = await uow.trucks.get_paged_with_count(
            2, 4, filter=Truck.truck_number >= "T-20", order_by=Truck.truck_number
        )
        assert [t.truck_number for t in items] == ["T-24", "T-25"]
        assert total == 6

        with pytest.raises(ArgumentError):
            await uow.trucks.get_paged_with_count(0, 10)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page_number,page_size", [(0, 10), (1, 0), (-1, 5)])
    async def test_invalid_arguments(self, uow, page_number, page_size):
        """Test non-positive page arguments are rejected."""
        with pytest.raises(ArgumentError):
            await uow.trucks.get_paged(page_number, page_size)


class TestStagedChanges:
    """Test writes only stage changes."""

    @pytest.mark.asyncio
    async def test_add_is_not_persisted_until_save(self, make_uow):
        """Test an added entity is invisible to others until saved."""
        writer, reader = make_uow(), make_uow()
        await writer.trucks.add(Truck(truck_number="T-50", driver_name="Yusuf"))

        assert writer.pending_changes_count == 1
        assert await reader.trucks.count() == 0

        assert await writer.save_changes() == 1
        assert writer.pending_changes_count == 0
        assert await reader.trucks.count() == 1

    @pytest.mark.asyncio
    async def test_update_tracked_entity(self, make_uow, sample_trucks):
        """Test update marks a tracked entity modified and save persists it."""
        writer = make_uow()
        truck = await writer.trucks.get_by_id(sample_trucks[0].id)
        truck.driver_name = "Hamza"
        await writer.trucks.update(truck)

        assert writer.pending_changes_count == 1
        assert await writer.save_changes() == 1

        reloaded = await make_uow().trucks.get_by_id(sample_trucks[0].id)
        assert reloaded.driver_name == "Hamza"
        assert reloaded.version == 2

    @pytest.mark.asyncio
    async def test_update_detached_entity(self, make_uow, sample_trucks):
        """Test an entity loaded elsewhere is attached and fully marked modified."""
        detached = sample_trucks[1]
        detached.driver_name = "Khaled"

        writer = make_uow()
        tracked = await writer.trucks.update(detached)

        assert tracked.driver_name == "Khaled"
        assert writer.pending_changes_count == 1
        await writer.save_changes()

        reloaded = await make_uow().trucks.get_by_id(detached.id)
        assert reloaded.driver_name == "Khaled"

    @pytest.mark.asyncio
    async def test_delete_by_id(self, make_uow, sample_trucks):
        """Test delete stages a removal and returns True."""
        writer = make_uow()
        assert await writer.trucks.delete(sample_trucks[2].id) is True
        assert writer.pending_changes_count == 1
        await writer.save_changes()

        assert await make_uow().trucks.get_by_id(sample_trucks[2].id) is None

    @pytest.mark.asyncio
    async def test_delete_same_id_twice(self, uow, sample_trucks):
        """Test an entity staged for deletion is treated as missing."""
        assert await uow.trucks.delete(sample_trucks[2].id) is True
        assert await uow.trucks.get_by_id(sample_trucks[2].id) is None
        assert await uow.trucks.delete(sample_trucks[2].id) is False
        assert uow.pending_changes_count == 1

    @pytest.mark.asyncio
    async def test_delete_missing_id(self, uow, sample_trucks):
        """Test deleting a missing id returns False and stages nothing."""
        before = uow.pending_changes_count
        assert await uow.trucks.delete(9999) is False
        assert uow.pending_changes_count == before

    @pytest.mark.asyncio
    async def test_delete_staged_insert(self, uow):
        """Test deleting a never-saved entity just drops it."""
        truck = await uow.trucks.add(Truck(truck_number="T-60", driver_name="Temp"))
        assert await uow.trucks.delete_entity(truck) is True
        assert uow.pending_changes_count == 0
        assert await uow.save_changes() == 0

    @pytest.mark.asyncio
    async def test_delete_range(self, make_uow, sample_trucks):
        """Test delete_range stages one removal per match."""
        writer = make_uow()
        removed = await writer.trucks.delete_range(Truck.is_active == True)  # noqa: E712
        assert removed == 2
        assert await writer.save_changes() == 2

        remaining = await make_uow().trucks.get_all()
        assert [t.truck_number for t in remaining] == ["T-03"]


class TestBulkUpdate:
    """Test bulk_update."""

    @pytest.mark.asyncio
    async def test_bulk_update_in_transaction(self, make_uow, sample_trucks):
        """Test one statement updates every match and bumps the version."""
        writer = make_uow()
        await writer.begin_transaction()
        affected = await writer.trucks.bulk_update(Truck.is_active == True, {"driver_name": "Relief"})  # noqa: E712
        assert affected == 2
        assert writer.pending_changes_count == 0
        await writer.commit_transaction()

        relief = await make_uow().trucks.find_all(driver_name="Relief")
        assert sorted(t.truck_number for t in relief) == ["T-01", "T-02"]
        assert {t.version for t in relief} == {2}

    @pytest.mark.asyncio
    async def test_rolled_back_bulk_update(self, make_uow, sample_trucks):
        """Test a bulk update disappears with its transaction."""
        writer = make_uow()
        await writer.begin_transaction()
        await writer.trucks.bulk_update(lambda m: m.truck_number == "T-03", {"is_active": True})
        await writer.rollback_transaction()

        assert await make_uow().trucks.get_active_truck_count() == 2

    @pytest.mark.asyncio
    async def test_copy_loaded_before_bulk_update_conflicts(self, make_uow, sample_trucks):
        """Test saving a copy loaded before a bulk update raises ConcurrencyError."""
        reader, writer = make_uow(), make_uow()
        truck = await reader.trucks.get_by_id(sample_trucks[0].id)

        await writer.begin_transaction()
        await writer.trucks.bulk_update(Truck.id == sample_trucks[0].id, {"driver_name": "Bulk"})
        await writer.commit_transaction()

        truck.driver_name = "Late"
        with pytest.raises(ConcurrencyError):
            await reader.save_changes()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("values", [{}, {"no_such_column": 1}, {"id": 5}, {"version": 9}])
    async def test_rejected_values(self, uow, values):
        """Test empty, unknown, key and version assignments are rejected."""
        with pytest.raises(ArgumentError):
            await uow.trucks.bulk_update(None, values)


class TestRawQueries:
    """Test from_sql_raw and execute_query."""

    @pytest.mark.asyncio
    async def test_from_sql_raw_loads_tracked_entities(self, uow, sample_trucks):
        """Test raw rows come back as entities tracked by the session."""
        trucks = await uow.trucks.from_sql_raw(
            "SELECT * FROM trucks WHERE driver_name = {0} OR driver_name = {1} ORDER BY truck_number",
            "Omar",
            "Sami",
        )
        assert [t.truck_number for t in trucks] == ["T-02", "T-03"]
        assert await uow.trucks.get_by_id(trucks[0].id) is trucks[0]

        trucks[0].driver_name = "Omar Jr"
        assert uow.pending_changes_count == 1

    @pytest.mark.asyncio
    async def test_execute_query_returns_rows(self, uow, sample_trucks):
        """Test execute_query returns plain rows keyed by column label."""
        rows = await uow.trucks.execute_query(
            "SELECT truck_number, driver_name AS driver FROM trucks WHERE is_active = {0} ORDER BY truck_number",
            True,
        )
        assert rows == [
            {"truck_number": "T-01", "driver": "Ali"},
            {"truck_number": "T-02", "driver": "Omar"},
        ]

    @pytest.mark.asyncio
    async def test_raw_query_errors(self, uow):
        """Test store errors surface as DataAccessError and empty SQL is rejected."""
        with pytest.raises(DataAccessError):
            await uow.trucks.from_sql_raw("SELECT * FROM no_such_table")
        with pytest.raises(DataAccessError):
            await uow.trucks.execute_query("SELECT {0} FROM no_such_table", 1)
        with pytest.raises(ArgumentError):
            await uow.trucks.execute_query(" ")
        with pytest.raises(ArgumentError):
            await uow.trucks.from_sql_raw("SELECT * FROM trucks WHERE id = {1}", 1)


class TestGenericRepository:
    """Test repositories built for arbitrary models."""

    @pytest.mark.asyncio
    async def test_generic_repository_for_model(self, uow, sample_trucks):
        """Test repository(model) works without a dedicated subclass."""
        repo = uow.repository(Truck)
        assert isinstance(repo, BaseRepository)
        assert await repo.count() == 3
        assert repo is uow.repository(Truck)
