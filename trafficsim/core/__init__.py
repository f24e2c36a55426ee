"""
Core Package

Graph model, component catalog, topology rules, validation and cost.
"""

from .errors import (
    TrafficSimError,
    ValidationError,
    EngineUnavailable,
    EngineStateError,
    ProtocolError,
)
from .models import (
    ComponentType,
    Protocol,
    Layer,
    ScalingConfig,
    ConsistencyConfig,
    ResilienceConfig,
    TrafficControlConfig,
    ComponentNode,
    Connection,
    GraphData,
    APPLICABLE_LAYERS,
    SPEC_CLASSES,
)
from .catalog import TERMINAL_TYPES, CACHING_TYPES, is_entry, is_terminal
from .rules import (
    ConnectionCheck,
    VALID_DOWNSTREAM,
    validate_connection,
    default_protocol,
    protocol_warning,
)
from .validator import GraphValidator, ValidationReport, ensure_valid
from .cost import estimate_node_cost, estimate_design_cost, cost_breakdown
from .repository import IDesignRepository, InMemoryDesignRepository

__all__ = [
    "TrafficSimError",
    "ValidationError",
    "EngineUnavailable",
    "EngineStateError",
    "ProtocolError",
    "ComponentType",
    "Protocol",
    "Layer",
    "ScalingConfig",
    "ConsistencyConfig",
    "ResilienceConfig",
    "TrafficControlConfig",
    "ComponentNode",
    "Connection",
    "GraphData",
    "APPLICABLE_LAYERS",
    "SPEC_CLASSES",
    "TERMINAL_TYPES",
    "CACHING_TYPES",
    "is_entry",
    "is_terminal",
    "ConnectionCheck",
    "VALID_DOWNSTREAM",
    "validate_connection",
    "default_protocol",
    "protocol_warning",
    "GraphValidator",
    "ValidationReport",
    "ensure_valid",
    "estimate_node_cost",
    "estimate_design_cost",
    "cost_breakdown",
    "IDesignRepository",
    "InMemoryDesignRepository",
]
