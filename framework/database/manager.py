from typing import Optional, Type
from .sql_driver import SQLDriver


class DatabaseManager:
    """Owns the engine; hands out one fresh session per unit of work."""

    def __init__(self, settings):
        self.settings = settings
        self.sql = SQLDriver(settings.DATABASE_URL, echo=settings.DB_ECHO)

    def create_unit_of_work(self, uow_class: Optional[Type] = None, logger=None):
        from framework.repository.unit_of_work import UnitOfWork

        uow_class = uow_class or UnitOfWork
        return uow_class(self.sql.session_factory, logger=logger, settings=self.settings)

    async def close(self):
        await self.sql.disconnect()
