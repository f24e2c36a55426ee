"""
Application Services Package

Use case implementations that orchestrate domain logic.
"""

from .simulation_service import SimulationService

__all__ = [
    "SimulationService",
]
