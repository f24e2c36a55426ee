"""
Design Repository

Persistence port for serialized graphs and the most recent simulation
output of each design, plus an in-memory adapter used by the API and tests.
"""

from __future__ import annotations
import copy
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .models import GraphData


class IDesignRepository(ABC):
    """Storage for designs and their latest simulation output."""

    @abstractmethod
    def save_design(self, design_id: str, graph: GraphData) -> None:
        ...

    @abstractmethod
    def get_design(self, design_id: str) -> Optional[GraphData]:
        ...

    @abstractmethod
    def save_output(self, design_id: str, output: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def latest_output(self, design_id: str) -> Optional[Dict[str, Any]]:
        ...

    def close(self) -> None:
        pass


class InMemoryDesignRepository(IDesignRepository):
    """
    In-memory adapter implementing IDesignRepository.

    Stores deep copies so callers can never mutate stored state.
    """

    def __init__(self) -> None:
        self._designs: Dict[str, GraphData] = {}
        self._outputs: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def save_design(self, design_id: str, graph: GraphData) -> None:
        with self._lock:
            self._designs[design_id] = graph.copy()

    def get_design(self, design_id: str) -> Optional[GraphData]:
        with self._lock:
            graph = self._designs.get(design_id)
            return graph.copy() if graph is not None else None

    def save_output(self, design_id: str, output: Dict[str, Any]) -> None:
        with self._lock:
            self._outputs[design_id] = copy.deepcopy(output)

    def latest_output(self, design_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            output = self._outputs.get(design_id)
            return copy.deepcopy(output) if output is not None else None

    def list_designs(self) -> List[str]:
        with self._lock:
            return sorted(set(self._designs) | set(self._outputs))
