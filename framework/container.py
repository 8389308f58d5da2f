"""
Service resolution for callers that cannot take their dependencies as
constructor arguments.

Prefer passing a ServiceProvider (or the objects it builds) explicitly. The
process-wide ApplicationServices handle exists for cross-cutting bootstrap
code; its configure/dispose lifecycle is serialized by a single lock.
"""

import inspect
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional, Type, TypeVar
from framework.exceptions.errors import ArgumentError, InvalidOperationError, ServiceNotRegisteredError
from framework.logging.logger import get_logger

S = TypeVar("S")

logger = get_logger("container")


class ServiceLifetime(str, Enum):
    SINGLETON = "SINGLETON"
    SCOPED = "SCOPED"
    TRANSIENT = "TRANSIENT"


class ServiceDescriptor:
    def __init__(self, service_type: type, factory: Callable[["ServiceScope"], Any], lifetime: ServiceLifetime):
        self.service_type = service_type
        self.factory = factory
        self.lifetime = lifetime


async def _dispose_instance(instance: Any) -> None:
    for name in ("dispose", "aclose", "close"):
        closer = getattr(instance, name, None)
        if callable(closer):
            result = closer()
            if inspect.isawaitable(result):
                await result
            return


class ServiceProvider:
    """Registry of service factories; resolves singletons itself and scoped services per scope."""

    def __init__(self):
        self._descriptors: Dict[type, ServiceDescriptor] = {}
        self._singletons: Dict[type, Any] = {}
        # Reentrant: a singleton factory may resolve other singletons
        self._lock = threading.RLock()

    def _register(self, service_type: type, factory, lifetime: ServiceLifetime) -> "ServiceProvider":
        if service_type is None:
            raise ArgumentError("service_type must not be None", argument="service_type")
        if factory is None:
            raise ArgumentError("factory must not be None", argument="factory")
        self._descriptors[service_type] = ServiceDescriptor(service_type, factory, lifetime)
        return self

    def add_singleton(self, service_type: type, instance_or_factory: Any) -> "ServiceProvider":
        """Register one shared instance, given directly or built on first use."""
        if callable(instance_or_factory) and not isinstance(instance_or_factory, service_type):
            return self._register(service_type, instance_or_factory, ServiceLifetime.SINGLETON)
        self._singletons[service_type] = instance_or_factory
        return self._register(service_type, lambda _: instance_or_factory, ServiceLifetime.SINGLETON)

    def add_scoped(self, service_type: type, factory: Callable[["ServiceScope"], Any]) -> "ServiceProvider":
        return self._register(service_type, factory, ServiceLifetime.SCOPED)

    def add_transient(self, service_type: type, factory: Callable[["ServiceScope"], Any]) -> "ServiceProvider":
        return self._register(service_type, factory, ServiceLifetime.TRANSIENT)

    def is_registered(self, service_type: type) -> bool:
        return service_type in self._descriptors

    def _resolve(self, service_type: Type[S], scope: Optional["ServiceScope"]) -> Optional[S]:
        descriptor = self._descriptors.get(service_type)
        if descriptor is None:
            return None

        if descriptor.lifetime is ServiceLifetime.SINGLETON:
            with self._lock:
                if service_type not in self._singletons:
                    self._singletons[service_type] = descriptor.factory(scope or ServiceScope(self))
                return self._singletons[service_type]

        if descriptor.lifetime is ServiceLifetime.SCOPED:
            if scope is None:
                raise InvalidOperationError(
                    f"Cannot resolve scoped service '{service_type.__name__}' from the root provider; use create_scope()"
                )
            return scope._scoped_instance(descriptor)

        return descriptor.factory(scope or ServiceScope(self))

    def get_service(self, service_type: Type[S]) -> Optional[S]:
        """Resolve service_type, or None when it is not registered."""
        return self._resolve(service_type, None)

    def get_required_service(self, service_type: Type[S]) -> S:
        if not self.is_registered(service_type):
            raise ServiceNotRegisteredError(service_type)
        return self._resolve(service_type, None)

    def create_scope(self) -> "ServiceScope":
        return ServiceScope(self)

    async def dispose(self) -> None:
        """Dispose singletons built by this provider."""
        with self._lock:
            instances = list(self._singletons.values())
            self._singletons.clear()
        for instance in instances:
            await _dispose_instance(instance)


class ServiceScope:
    """Resolution scope; scoped instances (e.g. a unit of work) live until the scope is closed."""

    def __init__(self, provider: ServiceProvider):
        self.provider = provider
        self._instances: Dict[type, Any] = {}
        self._closed = False

    def _scoped_instance(self, descriptor: ServiceDescriptor) -> Any:
        if self._closed:
            raise InvalidOperationError("Service scope has been closed")
        if descriptor.service_type not in self._instances:
            self._instances[descriptor.service_type] = descriptor.factory(self)
        return self._instances[descriptor.service_type]

    def get_service(self, service_type: Type[S]) -> Optional[S]:
        return self.provider._resolve(service_type, self)

    def get_required_service(self, service_type: Type[S]) -> S:
        if not self.provider.is_registered(service_type):
            raise ServiceNotRegisteredError(service_type)
        return self.provider._resolve(service_type, self)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        instances = list(self._instances.values())
        self._instances.clear()
        for instance in reversed(instances):
            await _dispose_instance(instance)

    async def __aenter__(self) -> "ServiceScope":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()


class ProviderState(str, Enum):
    UNCONFIGURED = "UNCONFIGURED"
    CONFIGURED = "CONFIGURED"
    DISPOSED = "DISPOSED"


class ApplicationServices:
    """Process-wide provider handle: UNCONFIGURED -> CONFIGURED -> DISPOSED.

    A disposed handle may be configured again (e.g. an application restart in
    the same process).
    """

    def __init__(self):
        self._provider: Optional[ServiceProvider] = None
        self._state = ProviderState.UNCONFIGURED
        self._lock = threading.Lock()

    @property
    def state(self) -> ProviderState:
        return self._state

    @property
    def is_configured(self) -> bool:
        return self._state is ProviderState.CONFIGURED

    @property
    def services(self) -> ServiceProvider:
        with self._lock:
            if self._state is not ProviderState.CONFIGURED:
                raise InvalidOperationError(
                    "Service provider has not been configured. "
                    "Ensure configure() is called during application startup."
                )
            return self._provider

    def configure(self, provider: ServiceProvider) -> None:
        if provider is None:
            raise ArgumentError("provider must not be None", argument="provider")
        with self._lock:
            if self._state is ProviderState.CONFIGURED:
                raise InvalidOperationError(
                    "Service provider has already been configured. "
                    "configure() should only be called once during application startup."
                )
            self._provider = provider
            self._state = ProviderState.CONFIGURED
        logger.info("Service provider configured")

    async def dispose(self) -> None:
        """Tear down the provider; calling it when not configured does nothing."""
        with self._lock:
            provider = self._provider
            self._provider = None
            if self._state is ProviderState.CONFIGURED:
                self._state = ProviderState.DISPOSED
        if provider is not None:
            await provider.dispose()
            logger.info("Service provider disposed")

    def get_required_service(self, service_type: Type[S]) -> S:
        return self.services.get_required_service(service_type)

    def get_service(self, service_type: Type[S]) -> Optional[S]:
        """Optional resolution: None when unregistered or when no provider is configured."""
        with self._lock:
            provider = self._provider if self._state is ProviderState.CONFIGURED else None
        if provider is None:
            return None
        return provider.get_service(service_type)

    def create_scope(self) -> ServiceScope:
        return self.services.create_scope()


# Process-wide handle
app_services = ApplicationServices()
