"""
trafficsim - Traffic Simulation for Infrastructure Component Graphs

Models an architecture as a directed graph of components (clients, CDNs,
load balancers, app servers, caches, databases, queues, object stores)
and simulates request traffic through it:

    - Batch scenario engine: bounded, seeded, reproducible evaluation
      with bottleneck and single-point-of-failure diagnostics
    - Live tick engine: pausable, steppable particle simulation hosted
      in a background worker
    - Trace replay: deterministic playback of recorded request hops

Example:
    >>> from trafficsim import GraphData, run_batch
    >>> output = run_batch(GraphData.from_dict(design))
    >>> output.scenarios[0].metrics.error_rate
"""

__version__ = "1.0.0"

from .core import (
    TrafficSimError,
    ValidationError,
    EngineUnavailable,
    EngineStateError,
    ProtocolError,
    ComponentType,
    Protocol,
    Layer,
    ComponentNode,
    Connection,
    GraphData,
    validate_connection,
    default_protocol,
    protocol_warning,
    GraphValidator,
    ensure_valid,
    estimate_node_cost,
    estimate_design_cost,
    InMemoryDesignRepository,
)
from .simulation import (
    Scenario,
    Thresholds,
    SimulationOutput,
    BatchSimulator,
    run_batch,
    find_structural_risks,
    LiveTickEngine,
    EngineWorker,
    LiveSession,
    TickFrame,
    TracedRequest,
    TraceReplay,
)

DesignRepository = InMemoryDesignRepository

__all__ = [
    "__version__",
    "TrafficSimError",
    "ValidationError",
    "EngineUnavailable",
    "EngineStateError",
    "ProtocolError",
    "ComponentType",
    "Protocol",
    "Layer",
    "ComponentNode",
    "Connection",
    "GraphData",
    "validate_connection",
    "default_protocol",
    "protocol_warning",
    "GraphValidator",
    "ensure_valid",
    "estimate_node_cost",
    "estimate_design_cost",
    "InMemoryDesignRepository",
    "DesignRepository",
    "Scenario",
    "Thresholds",
    "SimulationOutput",
    "BatchSimulator",
    "run_batch",
    "find_structural_risks",
    "LiveTickEngine",
    "EngineWorker",
    "LiveSession",
    "TickFrame",
    "TracedRequest",
    "TraceReplay",
]
