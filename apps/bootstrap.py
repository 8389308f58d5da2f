"""Service registrations and application start/stop for the data-access layer."""

from framework.config import Settings
from framework.container import ServiceProvider, app_services
from framework.database.manager import DatabaseManager
from framework.logging.logger import LogConfig, get_logger
from apps.unit_of_work import PoultryUnitOfWork

logger = get_logger("bootstrap")


def build_service_provider(settings: Settings) -> ServiceProvider:
    """Settings and DatabaseManager are singletons; each scope gets its own PoultryUnitOfWork."""
    provider = ServiceProvider()
    provider.add_singleton(Settings, settings)
    provider.add_singleton(DatabaseManager, lambda scope: DatabaseManager(scope.get_required_service(Settings)))
    provider.add_scoped(
        PoultryUnitOfWork,
        lambda scope: scope.get_required_service(DatabaseManager).create_unit_of_work(PoultryUnitOfWork),
    )
    logger.info(f"Service provider built for {settings.APP_NAME} ({settings.APP_ENV})")
    return provider


async def start_application(settings: Settings, create_schema: bool = False) -> ServiceProvider:
    """Configure logging, check the store and publish the provider process-wide."""
    LogConfig.setup_logging(settings.LOG_DIR, settings.LOG_LEVEL)
    provider = build_service_provider(settings)

    database = provider.get_required_service(DatabaseManager)
    await database.sql.connect()
    if create_schema:
        await database.sql.create_all()

    app_services.configure(provider)
    return provider


async def stop_application() -> None:
    await app_services.dispose()
