"""Command-line presentation helpers."""

from .display import ConsoleDisplay, Colors, colored

__all__ = ["ConsoleDisplay", "Colors", "colored"]
