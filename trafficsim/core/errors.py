"""
Error Taxonomy

Exceptions raised by the graph model and the simulation engines.

Overloaded nodes and structural risks are *not* errors: they are reported
as diagnostics inside simulation results and never raised.
"""

from __future__ import annotations
from typing import Iterable, List


class TrafficSimError(Exception):
    """Base class for all trafficsim errors."""


class ValidationError(TrafficSimError):
    """
    A malformed graph (dangling edge, zero entry nodes, ...).

    Blocks both engines. ``issues`` carries every problem found, verbatim,
    so callers can surface them without re-validating.
    """

    def __init__(self, issues: Iterable[str]):
        self.issues: List[str] = list(issues) or ["Invalid graph"]
        super().__init__("; ".join(self.issues))

    def to_dict(self) -> dict:
        return {"error": "validation_error", "issues": list(self.issues)}


class EngineUnavailable(TrafficSimError):
    """The background execution context for the live engine could not start."""


class EngineStateError(TrafficSimError):
    """A lifecycle operation was issued in a state that does not allow it."""


class ProtocolError(TrafficSimError):
    """A message crossing the execution boundary could not be decoded."""
