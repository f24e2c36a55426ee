"""
Dependency Injection Container

Wires the design repository, application services and console display.
"""

from dataclasses import dataclass, field
from typing import Optional

from .settings import Settings
from ..core.repository import IDesignRepository, InMemoryDesignRepository
from ..application.services.simulation_service import SimulationService
from ..cli.display import ConsoleDisplay


@dataclass
class Container:
    """
    Dependency injection container.

    Services are created on demand; the repository is a singleton so
    outputs stored by one request are visible to the next.
    """
    settings: Settings = field(default_factory=Settings)

    _repository: Optional[IDesignRepository] = field(default=None, repr=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Container":
        """Create container from settings."""
        return cls(settings=settings)

    def design_repository(self) -> IDesignRepository:
        """Get the design repository singleton."""
        if not self._repository:
            self._repository = InMemoryDesignRepository()
        return self._repository

    def simulation_service(self) -> SimulationService:
        """Get simulation use case implementation."""
        return SimulationService(repository=self.design_repository(), settings=self.settings)

    def display_service(self) -> ConsoleDisplay:
        """Get console display adapter."""
        return ConsoleDisplay()

    def close(self) -> None:
        """Release resources."""
        if self._repository:
            self._repository.close()
            self._repository = None
