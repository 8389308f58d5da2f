"""
Repository abstract base class and generic implementation.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Iterable, List, Optional, Tuple, Type, TypeVar
from sqlalchemy import inspect as sa_inspect, update as sql_update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel import SQLModel, select, func
from sqlmodel.ext.asyncio.session import AsyncSession
from framework.exceptions.errors import ArgumentError, ConcurrencyError, DataAccessError
from framework.logging.logger import get_logger
from .query import OrderBy, Predicate, apply_filter, apply_ordering, bind_positional, resolve_columns

T = TypeVar("T", bound=SQLModel)


class IRepository(ABC, Generic[T]):
    """Repository interface; defines standard data access API."""

    @abstractmethod
    async def get_by_id(self, id: Any) -> Optional[T]:
        """Get entity by ID, None when missing."""
        pass

    @abstractmethod
    async def get(self, predicate: Predicate) -> Optional[T]:
        """Get first entity matching predicate."""
        pass

    @abstractmethod
    async def get_all(self) -> List[T]:
        """Get all entities."""
        pass

    @abstractmethod
    async def find(self, predicate: Predicate, order_by: Optional[OrderBy] = None) -> List[T]:
        """Find entities matching predicate."""
        pass

    @abstractmethod
    async def exists(self, predicate: Predicate) -> bool:
        """Check whether any entity matches predicate."""
        pass

    @abstractmethod
    async def count(self, predicate: Optional[Predicate] = None) -> int:
        """Count entities matching predicate."""
        pass

    @abstractmethod
    async def add(self, entity: T) -> T:
        """Stage entity for insertion."""
        pass

    @abstractmethod
    async def add_range(self, entities: Iterable[T]) -> List[T]:
        """Stage several entities for insertion."""
        pass

    @abstractmethod
    async def update(self, entity: T) -> T:
        """Stage a full update of entity."""
        pass

    @abstractmethod
    async def bulk_update(self, predicate: Predicate, values: Dict[str, Any]) -> int:
        """Update matching rows in the store directly."""
        pass

    @abstractmethod
    async def delete(self, id: Any) -> bool:
        """Stage deletion by ID; False when missing."""
        pass

    @abstractmethod
    async def delete_entity(self, entity: T) -> bool:
        """Stage deletion of entity."""
        pass

    @abstractmethod
    async def delete_range(self, predicate: Predicate) -> int:
        """Stage deletion of every match."""
        pass

    @abstractmethod
    async def get_paged(
        self,
        page_number: int,
        page_size: int,
        filter: Optional[Predicate] = None,
        order_by: Optional[OrderBy] = None,
    ) -> List[T]:
        """Get one page of entities."""
        pass

    @abstractmethod
    async def get_paged_with_count(
        self,
        page_number: int,
        page_size: int,
        filter: Optional[Predicate] = None,
        order_by: Optional[OrderBy] = None,
    ) -> Tuple[List[T], int]:
        """Get one page of entities and the total match count."""
        pass

    @abstractmethod
    async def select(self, selector: Any, predicate: Optional[Predicate] = None) -> List[Any]:
        """Project matching rows without loading entities."""
        pass

    @abstractmethod
    async def from_sql_raw(self, sql: str, *parameters: Any) -> List[T]:
        """Load entities from a raw SQL query."""
        pass

    @abstractmethod
    async def execute_query(self, sql: str, *parameters: Any) -> List[Dict[str, Any]]:
        """Run a raw SQL query and return its rows."""
        pass


class BaseRepository(IRepository[T]):
    """Generic repository implementation with SQLModel CRUD; subclasses can add custom queries.

    Every write only stages a change in the shared session; nothing reaches
    the store until the owning unit of work saves. Store failures are logged
    with the entity type and raised as DataAccessError.
    """

    def __init__(self, session: AsyncSession, model: Type[T], logger=None):
        """Initialize repository with session and model."""
        self.session = session
        self.model = model
        self.entity_name = model.__name__
        if logger is not None:
            self.logger = logger.bind(name=f"repository.{self.entity_name}")
        else:
            self.logger = get_logger(f"repository.{self.entity_name}")

        mapper = sa_inspect(model)
        self._pk_column = mapper.primary_key[0]
        self._pk_key = mapper.get_property_by_column(self._pk_column).key
        self._version_key = (
            mapper.get_property_by_column(mapper.version_id_col).key
            if mapper.version_id_col is not None
            else None
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}[{self.entity_name}]"

    def _failure(self, action: str, exc: SQLAlchemyError) -> DataAccessError:
        self.logger.opt(exception=True).error(f"Error {action} entity {self.entity_name}: {exc}")
        return DataAccessError(
            f"Error {action} entity {self.entity_name}",
            entity_type=self.entity_name,
            detail=str(exc),
        )

    def _find_staged(self, id: Any) -> Optional[T]:
        for entity in self.session.new:
            if isinstance(entity, self.model) and getattr(entity, self._pk_key) == id:
                return entity
        return None

    async def _scalar(self, statement, action: str):
        try:
            result = await self.session.exec(statement)
            return result.one()
        except SQLAlchemyError as exc:
            raise self._failure(action, exc) from exc

    def _equality_predicate(self, filters: dict) -> list:
        criteria = []
        for key, value in filters.items():
            if not hasattr(self.model, key):
                raise ArgumentError(f"{self.entity_name} has no attribute '{key}'", argument=key)
            criteria.append(getattr(self.model, key) == value)
        return criteria

    # --- Queries ---

    async def get_by_id(self, id: Any) -> Optional[T]:
        """Get entity by ID; staged inserts are returned as the same instance.

        An entity already staged for deletion counts as missing.
        """
        try:
            staged = self._find_staged(id)
            if staged is not None:
                return staged
            entity = await self.session.get(self.model, id)
            if entity is not None and entity in self.session.deleted:
                return None
            return entity
        except SQLAlchemyError as exc:
            raise self._failure(f"retrieving with ID {id}", exc) from exc

    async def get(self, predicate: Predicate) -> Optional[T]:
        try:
            statement = apply_filter(select(self.model), self.model, predicate)
            result = await self.session.exec(statement)
            return result.first()
        except SQLAlchemyError as exc:
            raise self._failure("retrieving single", exc) from exc

    async def get_all(self) -> List[T]:
        try:
            result = await self.session.exec(select(self.model))
            return list(result.all())
        except SQLAlchemyError as exc:
            raise self._failure("retrieving all", exc) from exc

    async def find(
        self, predicate: Predicate, order_by: Optional[OrderBy] = None, limit: Optional[int] = None
    ) -> List[T]:
        try:
            statement = apply_filter(select(self.model), self.model, predicate)
            statement = apply_ordering(statement, self.model, order_by)
            if limit is not None:
                statement = statement.limit(limit)
            result = await self.session.exec(statement)
            return list(result.all())
        except SQLAlchemyError as exc:
            raise self._failure("finding", exc) from exc

    async def find_one(self, **filters) -> Optional[T]:
        """Find one entity by equality filters (e.g. truck_number='T-01')."""
        return await self.get(self._equality_predicate(filters))

    async def find_all(self, **filters) -> List[T]:
        """Find entities by equality filters."""
        return await self.find(self._equality_predicate(filters))

    async def exists(self, predicate: Predicate) -> bool:
        try:
            statement = apply_filter(select(self._pk_column), self.model, predicate).limit(1)
            result = await self.session.exec(statement)
            return result.first() is not None
        except SQLAlchemyError as exc:
            raise self._failure("checking existence of", exc) from exc

    async def count(self, predicate: Optional[Predicate] = None) -> int:
        """Count entities matching predicate; None counts all."""
        try:
            statement = apply_filter(select(func.count()).select_from(self.model), self.model, predicate)
            result = await self.session.exec(statement)
            return result.one()
        except SQLAlchemyError as exc:
            raise self._failure("counting", exc) from exc

    async def get_paged(
        self,
        page_number: int,
        page_size: int,
        filter: Optional[Predicate] = None,
        order_by: Optional[OrderBy] = None,
    ) -> List[T]:
        """Filter, order, then skip (page_number-1)*page_size and take page_size.

        page_number is 1-based. Without order_by the page is ordered by primary
        key, since store-default order differs between engines.
        """
        self._check_page(page_number, page_size)
        if order_by is None:
            self.logger.warning(
                f"get_paged on {self.entity_name} called without order_by; ordering by primary key"
            )
            order_by = self._pk_column

        try:
            statement = apply_filter(select(self.model), self.model, filter)
            statement = apply_ordering(statement, self.model, order_by)
            statement = statement.offset((page_number - 1) * page_size).limit(page_size)
            result = await self.session.exec(statement)
            return list(result.all())
        except SQLAlchemyError as exc:
            raise self._failure("retrieving paged", exc) from exc

    async def get_paged_with_count(
        self,
        page_number: int,
        page_size: int,
        filter: Optional[Predicate] = None,
        order_by: Optional[OrderBy] = None,
    ) -> Tuple[List[T], int]:
        """Like get_paged, also returning how many entities match filter in total."""
        self._check_page(page_number, page_size)
        total = await self.count(filter)
        items = await self.get_paged(page_number, page_size, filter, order_by)
        return items, total

    @staticmethod
    def _check_page(page_number: int, page_size: int) -> None:
        if page_number < 1:
            raise ArgumentError("page_number must be 1 or greater", argument="page_number")
        if page_size < 1:
            raise ArgumentError("page_size must be 1 or greater", argument="page_size")

    async def select(self, selector: Any, predicate: Optional[Predicate] = None) -> List[Any]:
        """Project matching rows: one column yields values, several yield row tuples."""
        try:
            columns = resolve_columns(self.model, selector)
            statement = apply_filter(select(*columns), self.model, predicate)
            result = await self.session.exec(statement)
            return list(result.all())
        except SQLAlchemyError as exc:
            raise self._failure("selecting projected", exc) from exc

    async def from_sql_raw(self, sql: str, *parameters: Any) -> List[T]:
        """Load entities from a raw query with {0}, {1}... placeholders.

        The query must return the model's columns. Loaded entities are tracked
        by the session like any other query result.
        """
        statement, binds = self._raw_statement(sql, parameters)
        try:
            result = await self.session.execute(select(self.model).from_statement(statement), binds)
            return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise self._failure("loading raw SQL into", exc) from exc

    async def execute_query(self, sql: str, *parameters: Any) -> List[Dict[str, Any]]:
        """Run a raw query and return its rows as dicts keyed by column label."""
        statement, binds = self._raw_statement(sql, parameters)
        try:
            result = await self.session.execute(statement, binds)
            return [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as exc:
            raise self._failure("running raw query for", exc) from exc

    def _raw_statement(self, sql: str, parameters: tuple):
        if not sql or not sql.strip():
            raise ArgumentError("sql must not be empty", argument="sql")
        self.logger.debug(f"Executing raw SQL query on {self.entity_name} with {len(parameters)} parameters")
        return bind_positional(sql, parameters)

    # --- Staged modifications ---

    async def add(self, entity: T) -> T:
        try:
            self.session.add(entity)
            self.logger.debug(f"Added entity {self.entity_name} to context")
            return entity
        except SQLAlchemyError as exc:
            raise self._failure("adding", exc) from exc

    async def add_range(self, entities: Iterable[T]) -> List[T]:
        entity_list = list(entities)
        try:
            self.session.add_all(entity_list)
            self.logger.debug(f"Added {len(entity_list)} entities of type {self.entity_name} to context")
            return entity_list
        except SQLAlchemyError as exc:
            raise self._failure("adding range of", exc) from exc

    async def update(self, entity: T) -> T:
        """Mark the whole entity dirty; returns the instance tracked by the session.

        An entity not tracked by this session but carrying an ID is merged onto
        the tracked copy, so the returned object may differ from the argument.
        """
        try:
            if entity not in self.session:
                if getattr(entity, self._pk_key) is not None:
                    entity = await self.session.merge(entity)
                else:
                    self.session.add(entity)
            self._mark_modified(entity)
            self.logger.debug(f"Updated entity {self.entity_name} in context")
            return entity
        except StaleDataError as exc:
            self.logger.opt(exception=True).error(
                f"Concurrency conflict updating entity {self.entity_name}: {exc}"
            )
            raise ConcurrencyError(
                f"Entity {self.entity_name} was modified by another operation since it was loaded",
                entity_type=self.entity_name,
                detail=str(exc),
            ) from exc
        except SQLAlchemyError as exc:
            raise self._failure("updating", exc) from exc

    async def bulk_update(self, predicate: Predicate, values: Dict[str, Any]) -> int:
        """Issue one UPDATE for every row matching predicate; returns affected rows.

        Bypasses the change tracker and runs in the session's transaction, so
        call it between begin_transaction() and commit_transaction(). Versioned
        rows get their version bumped, so copies loaded earlier conflict on save.
        Entities already loaded in this unit of work keep their old values.
        """
        if not values:
            raise ArgumentError("values must name at least one column", argument="values")
        columns = sa_inspect(self.model).column_attrs.keys()
        assignments = {}
        for key, value in values.items():
            if key == self._pk_key or key == self._version_key:
                raise ArgumentError(f"{key} cannot be bulk updated", argument=key)
            if key not in columns:
                raise ArgumentError(f"{self.entity_name} has no attribute '{key}'", argument=key)
            assignments[key] = value
        if self._version_key is not None:
            version_column = getattr(self.model, self._version_key)
            assignments[self._version_key] = version_column + 1

        try:
            statement = apply_filter(sql_update(self.model), self.model, predicate)
            statement = statement.values(**assignments).execution_options(synchronize_session=False)
            result = await self.session.execute(statement)
            self.logger.debug(f"Bulk updated {result.rowcount} entities of type {self.entity_name}")
            return result.rowcount
        except SQLAlchemyError as exc:
            raise self._failure("bulk updating", exc) from exc

    def _mark_modified(self, entity: T) -> None:
        state = sa_inspect(entity)
        if state.pending:
            return
        for attr in state.mapper.column_attrs:
            if attr.key in (self._pk_key, self._version_key):
                continue
            if attr.key in state.dict:
                flag_modified(entity, attr.key)

    async def delete(self, id: Any) -> bool:
        entity = await self.get_by_id(id)
        if entity is None:
            self.logger.warning(f"Entity {self.entity_name} with ID {id} not found for deletion")
            return False
        try:
            await self._remove(entity)
            self.logger.debug(f"Marked entity {self.entity_name} with ID {id} for deletion")
            return True
        except SQLAlchemyError as exc:
            raise self._failure(f"deleting with ID {id}", exc) from exc

    async def delete_entity(self, entity: T) -> bool:
        try:
            await self._remove(entity)
            self.logger.debug(f"Marked entity {self.entity_name} for deletion")
            return True
        except SQLAlchemyError as exc:
            raise self._failure("deleting", exc) from exc

    async def delete_range(self, predicate: Predicate) -> int:
        try:
            statement = apply_filter(select(self.model), self.model, predicate)
            result = await self.session.exec(statement)
            entities = list(result.all())
            for entity in entities:
                await self._remove(entity)
            self.logger.debug(f"Marked {len(entities)} entities of type {self.entity_name} for deletion")
            return len(entities)
        except SQLAlchemyError as exc:
            raise self._failure("deleting range of", exc) from exc

    async def _remove(self, entity: T) -> None:
        # A staged insert is simply dropped from the context
        if sa_inspect(entity).pending:
            self.session.expunge(entity)
        else:
            await self.session.delete(entity)
