from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# =============================================================================
# Enums
# =============================================================================

class Severity(Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class DiagnosticEvent(Enum):
    """Kinds of per-node diagnostics."""
    OVERLOADED = "overloaded"
    HIGH_UTILIZATION = "high_utilization"
    DEAD_END = "dead_end"
    CIRCUIT_OPEN = "circuit_open"
    RATE_LIMITED = "rate_limited"
    PACKET_LOSS = "packet_loss"
    SPOF = "spof"


class DropReason(Enum):
    """Why requests failed to be delivered."""
    OVERLOADED = "overloaded"
    CIRCUIT_OPEN = "circuit_open"
    RATE_LIMITED = "rate_limited"
    NODE_OFFLINE = "node_offline"
    NO_ROUTE = "no_route"
    PACKET_LOSS = "packet_loss"
    EDGE_SATURATED = "edge_saturated"
    ROUTING_LOOP = "routing_loop"


# =============================================================================
# Scenarios
# =============================================================================

@dataclass(frozen=True)
class Thresholds:
    """Non-functional requirements a scenario is checked against. None = not checked."""
    max_p99_latency_ms: Optional[float] = None
    max_avg_latency_ms: Optional[float] = None
    max_error_rate: Optional[float] = None
    min_availability: Optional[float] = None
    max_cost_monthly: Optional[float] = None
    min_rps: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Thresholds"]:
        if not data:
            return None
        keys = {
            "max_p99_latency_ms": ("maxP99LatencyMs", "max_p99_latency_ms"),
            "max_avg_latency_ms": ("maxAvgLatencyMs", "max_avg_latency_ms"),
            "max_error_rate": ("maxErrorRate", "max_error_rate"),
            "min_availability": ("minAvailability", "min_availability"),
            "max_cost_monthly": ("maxCostMonthly", "max_cost_monthly"),
            "min_rps": ("minRps", "min_rps"),
        }
        kwargs = {}
        for attr, (camel, snake) in keys.items():
            value = data.get(camel, data.get(snake))
            if value is not None:
                kwargs[attr] = float(value)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "maxP99LatencyMs": self.max_p99_latency_ms,
            "maxAvgLatencyMs": self.max_avg_latency_ms,
            "maxErrorRate": self.max_error_rate,
            "minAvailability": self.min_availability,
            "maxCostMonthly": self.max_cost_monthly,
            "minRps": self.min_rps,
        }


@dataclass(frozen=True)
class Scenario:
    """
    A named, bounded-duration load pattern.

    Offered rate per entry node resolves as: ``arrival_rates[entry]``, else
    ``aggregate_rps`` split equally across entries, else the client's own
    configured requests per second. The result is multiplied by
    ``load_factor`` and modulated by a sine wave of ``wave_amplitude``.
    """
    name: str
    arrival_rates: Dict[str, float] = field(default_factory=dict)
    aggregate_rps: Optional[float] = None
    load_factor: float = 1.0
    duration_ticks: int = 60
    wave_amplitude: float = 0.2
    offline_nodes: Tuple[str, ...] = ()
    thresholds: Optional[Thresholds] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Scenario":
        pick = lambda camel, snake, default=None: data.get(camel, data.get(snake, default))
        aggregate = pick("aggregateRps", "aggregate_rps")
        return cls(
            name=data.get("name", "Scenario"),
            arrival_rates={k: float(v) for k, v in (pick("arrivalRates", "arrival_rates") or {}).items()},
            aggregate_rps=float(aggregate) if aggregate is not None else None,
            load_factor=float(pick("loadFactor", "load_factor", 1.0)),
            duration_ticks=int(pick("durationTicks", "duration_ticks", 60)),
            wave_amplitude=float(pick("waveAmplitude", "wave_amplitude", 0.2)),
            offline_nodes=tuple(pick("offlineNodes", "offline_nodes") or ()),
            thresholds=Thresholds.from_dict(data.get("thresholds")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "arrivalRates": dict(self.arrival_rates),
            "aggregateRps": self.aggregate_rps,
            "loadFactor": self.load_factor,
            "durationTicks": self.duration_ticks,
            "waveAmplitude": self.wave_amplitude,
            "offlineNodes": list(self.offline_nodes),
            "thresholds": self.thresholds.to_dict() if self.thresholds else None,
        }


def default_scenarios(duration_ticks: int = 60) -> List[Scenario]:
    """Normal and peak load, used when a run declares no scenarios."""
    thresholds = Thresholds(max_error_rate=0.01)
    return [
        Scenario("Normal Load", load_factor=1.0, duration_ticks=duration_ticks, thresholds=thresholds),
        Scenario("Peak Load", load_factor=2.0, duration_ticks=duration_ticks, thresholds=thresholds),
    ]


# =============================================================================
# Batch Results
# =============================================================================

@dataclass(frozen=True)
class Diagnostic:
    """A per-node finding with severity and a suggested fix."""
    node_id: str
    node_name: str
    event: DiagnosticEvent
    severity: Severity
    message: str
    suggestion: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "nodeName": self.node_name,
            "event": self.event.value,
            "severity": self.severity.value,
            "message": self.message,
            "suggestion": self.suggestion,
        }


@dataclass(frozen=True)
class ScenarioMetrics:
    rps: float
    throughput_rps: float
    avg_latency_ms: float
    p50_latency_ms: float
    p95_latency_ms: float
    p99_latency_ms: float
    response_time_ms: float
    ttfb_ms: float
    error_rate: float
    estimated_cost_monthly: float
    bottlenecks: Tuple[str, ...] = ()

    @property
    def availability(self) -> float:
        return 1.0 - self.error_rate

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rps": round(self.rps, 2),
            "throughputRps": round(self.throughput_rps, 2),
            "avgLatencyMs": round(self.avg_latency_ms, 3),
            "p50LatencyMs": round(self.p50_latency_ms, 3),
            "p95LatencyMs": round(self.p95_latency_ms, 3),
            "p99LatencyMs": round(self.p99_latency_ms, 3),
            "responseTimeMs": round(self.response_time_ms, 3),
            "ttfbMs": round(self.ttfb_ms, 3),
            "errorRate": round(self.error_rate, 6),
            "estimatedCostMonthly": round(self.estimated_cost_monthly, 2),
            "bottlenecks": list(self.bottlenecks),
        }


@dataclass(frozen=True)
class NodeSimSummary:
    avg_cpu_percent: float
    avg_latency_ms: float
    avg_error_rate: float
    peak_utilization: float
    is_healthy: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "avgCpuPercent": round(self.avg_cpu_percent, 2),
            "avgLatencyMs": round(self.avg_latency_ms, 3),
            "avgErrorRate": round(self.avg_error_rate, 6),
            "peakUtilization": round(self.peak_utilization, 4),
            "isHealthy": self.is_healthy,
        }


@dataclass(frozen=True)
class ScenarioResult:
    scenario_name: str
    metrics: ScenarioMetrics
    diagnostics: Tuple[Diagnostic, ...]
    passed: bool
    score: float
    feedback: Tuple[str, ...] = ()
    node_metrics: Dict[str, NodeSimSummary] = field(default_factory=dict)
    drop_reasons: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenarioName": self.scenario_name,
            "metrics": self.metrics.to_dict(),
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "passed": self.passed,
            "score": round(self.score, 1),
            "feedback": list(self.feedback),
            "nodeMetrics": {k: v.to_dict() for k, v in self.node_metrics.items()},
            "dropReasons": {k: round(v, 2) for k, v in self.drop_reasons.items()},
        }


@dataclass(frozen=True)
class SimulationOutput:
    scenarios: Tuple[ScenarioResult, ...]
    spof_diagnostics: Tuple[Diagnostic, ...]
    validation_warnings: Tuple[str, ...] = ()
    seed: Optional[int] = None

    @property
    def total_score(self) -> float:
        if not self.scenarios:
            return 0.0
        return sum(s.score for s in self.scenarios) / len(self.scenarios)

    @property
    def passed(self) -> bool:
        return all(s.passed for s in self.scenarios)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenarios": [s.to_dict() for s in self.scenarios],
            "spofDiagnostics": [d.to_dict() for d in self.spof_diagnostics],
            "totalScore": round(self.total_score, 1),
            "passed": self.passed,
            "validationWarnings": list(self.validation_warnings),
            "seed": self.seed,
        }


# =============================================================================
# Live Snapshot
# =============================================================================

PARTICLE_HEALTHY = "#22d3ee"
PARTICLE_ERROR = "#f87171"
PARTICLE_CACHE_MISS = "#f59e0b"
PARTICLE_TRACED = "#eab308"


@dataclass(frozen=True)
class RequestParticle:
    """An in-flight token representing ``count`` requests on one connection."""
    id: str
    connection_id: str
    source_id: str
    target_id: str
    t: float
    count: int
    color: str = PARTICLE_HEALTHY
    trace_id: Optional[str] = None

    @property
    def healthy(self) -> bool:
        return self.color != PARTICLE_ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "connectionId": self.connection_id,
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "t": round(self.t, 4),
            "count": self.count,
            "color": self.color,
            "traceId": self.trace_id,
        }


@dataclass(frozen=True)
class NodeDetailMetrics:
    utilization_percent: float
    queue_depth: float
    error_count: int
    current_rps: float
    total_requests: int
    avg_latency_ms: float
    capacity_rps: float
    overloaded: bool
    circuit_open: bool = False
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        capacity = self.capacity_rps
        return {
            "utilization": round(self.utilization_percent, 2),
            "queueDepth": round(self.queue_depth, 2),
            "errorCount": self.error_count,
            "currentRps": round(self.current_rps, 2),
            "totalRequests": self.total_requests,
            "avgLatencyMs": round(self.avg_latency_ms, 3),
            "capacityRps": None if capacity == float("inf") else round(capacity, 2),
            "overloaded": self.overloaded,
            "circuitOpen": self.circuit_open,
            "detail": dict(self.detail),
        }


@dataclass(frozen=True)
class LiveMetrics:
    rps: float
    avg_latency_ms: float
    error_rate: float
    estimated_cost_monthly: float
    total_requests: int = 0
    total_errors: int = 0
    node_metrics: Dict[str, NodeDetailMetrics] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rps": round(self.rps, 2),
            "avgLatencyMs": round(self.avg_latency_ms, 3),
            "errorRate": round(self.error_rate, 6),
            "estimatedCostMonthly": round(self.estimated_cost_monthly, 2),
            "totalRequests": self.total_requests,
            "totalErrors": self.total_errors,
            "nodeMetrics": {k: v.to_dict() for k, v in self.node_metrics.items()},
        }


@dataclass(frozen=True)
class TickFrame:
    """One tick of the live engine: counter, particles and metrics."""
    engine_id: str
    tick: int
    particles: Tuple[RequestParticle, ...]
    metrics: LiveMetrics

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "tick",
            "engineId": self.engine_id,
            "tick": self.tick,
            "particles": [p.to_dict() for p in self.particles],
            "metrics": self.metrics.to_dict(),
        }


# =============================================================================
# Traces
# =============================================================================

class HopStatus(Enum):
    OK = "ok"
    CACHE_HIT = "cache_hit"
    ERROR = "error"


class TraceStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TraceHop:
    """One component visited by a traced request, with simulated timestamps (ms)."""
    component_id: str
    component_name: str
    component_type: str
    arrival_ms: float
    departure_ms: float
    status: HopStatus = HopStatus.OK

    @property
    def processing_ms(self) -> float:
        return self.departure_ms - self.arrival_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "componentId": self.component_id,
            "componentName": self.component_name,
            "componentType": self.component_type,
            "arrivalMs": round(self.arrival_ms, 3),
            "departureMs": round(self.departure_ms, 3),
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TraceHop":
        return cls(
            component_id=data["componentId"],
            component_name=data.get("componentName", data["componentId"]),
            component_type=data.get("componentType", ""),
            arrival_ms=float(data["arrivalMs"]),
            departure_ms=float(data["departureMs"]),
            status=HopStatus(data.get("status", "ok")),
        )


@dataclass(frozen=True)
class TracedRequest:
    id: str
    hops: Tuple[TraceHop, ...]
    status: TraceStatus

    @property
    def completed(self) -> bool:
        return self.status == TraceStatus.COMPLETED

    @property
    def duration_ms(self) -> float:
        if not self.hops:
            return 0.0
        return self.hops[-1].departure_ms - self.hops[0].arrival_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "hops": [h.to_dict() for h in self.hops],
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TracedRequest":
        return cls(
            id=data["id"],
            hops=tuple(TraceHop.from_dict(h) for h in data.get("hops", [])),
            status=TraceStatus(data.get("status", "completed")),
        )
