"""
Configuration Package

Environment settings. The dependency container lives in
``trafficsim.config.container`` since it imports the application layer.
"""

from .settings import Settings

__all__ = [
    "Settings",
]
