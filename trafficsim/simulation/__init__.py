"""
Simulation Package

Capacity model, routing, the batch scenario engine, structural risk
analysis, the live tick engine with its worker and message protocol, and
deterministic trace replay.
"""

from .capacity import (
    PROTOCOL_FACTORS,
    ProtocolFactors,
    effective_capacity,
    edge_capacity,
    edge_latency_ms,
    node_latency_ms,
    hit_rate,
    utilization,
    classify_utilization,
)
from .routing import (
    SplitPolicy,
    EqualSplit,
    CapacityProportionalSplit,
    RandomSplit,
    SmoothWeightedPicker,
    register_split_policy,
    policy_for,
)
from .graph import SimulationGraph
from .models import (
    Severity,
    DiagnosticEvent,
    DropReason,
    Thresholds,
    Scenario,
    default_scenarios,
    Diagnostic,
    ScenarioMetrics,
    NodeSimSummary,
    ScenarioResult,
    SimulationOutput,
    RequestParticle,
    NodeDetailMetrics,
    LiveMetrics,
    TickFrame,
    HopStatus,
    TraceStatus,
    TraceHop,
    TracedRequest,
)
from .batch_simulator import BatchSimulator, check_thresholds, run_batch
from .structural import find_structural_risks
from .live_engine import LiveTickEngine, EngineState
from .messages import parse_command
from .worker import EngineWorker, LiveSession
from .trace_replay import TraceReplay, ReplayFrame, ReplayCursor, ReplayPhase

__all__ = [
    "PROTOCOL_FACTORS",
    "ProtocolFactors",
    "effective_capacity",
    "edge_capacity",
    "edge_latency_ms",
    "node_latency_ms",
    "hit_rate",
    "utilization",
    "classify_utilization",
    "SplitPolicy",
    "EqualSplit",
    "CapacityProportionalSplit",
    "RandomSplit",
    "SmoothWeightedPicker",
    "register_split_policy",
    "policy_for",
    "SimulationGraph",
    "Severity",
    "DiagnosticEvent",
    "DropReason",
    "Thresholds",
    "Scenario",
    "default_scenarios",
    "Diagnostic",
    "ScenarioMetrics",
    "NodeSimSummary",
    "ScenarioResult",
    "SimulationOutput",
    "RequestParticle",
    "NodeDetailMetrics",
    "LiveMetrics",
    "TickFrame",
    "HopStatus",
    "TraceStatus",
    "TraceHop",
    "TracedRequest",
    "BatchSimulator",
    "check_thresholds",
    "run_batch",
    "find_structural_risks",
    "LiveTickEngine",
    "EngineState",
    "parse_command",
    "EngineWorker",
    "LiveSession",
    "TraceReplay",
    "ReplayFrame",
    "ReplayCursor",
    "ReplayPhase",
]
