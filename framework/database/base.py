from abc import ABC, abstractmethod

class BaseDatabaseDriver(ABC):
    """Driver lifecycle: connect before first use, disconnect on shutdown."""

    @abstractmethod
    async def connect(self):
        pass

    @abstractmethod
    async def disconnect(self):
        pass

    @abstractmethod
    async def create_all(self):
        pass
