"""
FastAPI dependency injection for API routes.

Provides:
  - ``get_container``: process-wide container built from environment settings
  - ``get_simulation_service``: simulation use cases backed by the shared
    design repository
"""

import logging
from functools import lru_cache

from fastapi import Depends

from trafficsim.application.services import SimulationService
from trafficsim.config import Settings
from trafficsim.config.container import Container

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_container() -> Container:
    settings = Settings.from_env()
    logger.info(f"Container created (seed={settings.seed}, tick_horizon={settings.tick_horizon})")
    return Container.from_settings(settings)


def get_simulation_service(container: Container = Depends(get_container)) -> SimulationService:
    """
    Request-scoped simulation service.

    Usage in an endpoint::

        @router.post("/example")
        async def example(service: SimulationService = Depends(get_simulation_service)):
            return service.estimate_cost(graph)
    """
    return container.simulation_service()
