"""
Live Tick Engine

A continuously advancing, pausable and steppable traffic simulation that
moves discrete request particles hop by hop and emits one immutable
TickFrame per tick.

Lifecycle:
    idle --start--> running <--pause/start--> paused
    any  --reset--> idle (all state discarded)

Each tick:
    1. inject ambient requests at entry nodes (rps x loadFactor) and any
       manually injected requests
    2. advance particles along their connections by
       tick interval x speed / travel time; arrivals are absorbed
       (terminal), served (cache hit), re-emitted (split rule) or dropped
       (overloaded, circuit open, rate limited, no route)
    3. update per-node EMA rate and queue depth, trip circuit breakers
    4. rebuild LiveMetrics and the particle list
    5. return the TickFrame

All mutable state lives on the engine instance, which is owned by a single
execution context (see worker.py).
"""

from __future__ import annotations
import logging
import math
import random
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..config.settings import Settings
from ..core.catalog import CACHING_TYPES, is_entry, is_terminal
from ..core.cost import estimate_design_cost
from ..core.errors import EngineStateError, ValidationError
from ..core.models import ComponentNode, Connection, GraphData
from ..core.validator import ensure_valid
from .capacity import (
    effective_capacity,
    edge_latency_ms,
    has_circuit_breaker,
    hit_rate,
    node_latency_ms,
    packet_loss_rate,
    rate_limit,
)
from .graph import SimulationGraph
from .inspector import ComponentInspector
from .models import (
    PARTICLE_CACHE_MISS,
    PARTICLE_ERROR,
    PARTICLE_HEALTHY,
    PARTICLE_TRACED,
    HopStatus,
    LiveMetrics,
    NodeDetailMetrics,
    RequestParticle,
    TickFrame,
    TraceHop,
    TracedRequest,
    TraceStatus,
)
from .routing import RouteTarget, SmoothWeightedPicker, policy_for


MIN_SPEED, MAX_SPEED = 0.25, 4.0
MIN_LOAD_FACTOR, MAX_LOAD_FACTOR = 0.0, 5.0

# Visual travel time per millisecond of edge latency
TRAVEL_MS_PER_LATENCY_MS = 150.0
MIN_PARTICLES_PER_SEC, MAX_PARTICLES_PER_SEC = 3.0, 25.0
REQUESTS_PER_PARTICLE_DIVISOR = 40.0
EMA_SNAP = 1e-3


class EngineState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass
class _Flight:
    """Mutable in-flight particle; snapshotted into RequestParticle each tick."""
    id: str
    connection_id: str
    source_id: str
    target_id: str
    count: int
    travel_ms: float
    t: float = 0.0
    latency_ms: float = 0.0
    cache_miss: bool = False
    trace_id: Optional[str] = None


@dataclass
class _NodeState:
    ema_rps: float = 0.0
    queue_depth: float = 0.0
    arrivals: int = 0
    total_requests: int = 0
    accepted: int = 0
    errors: int = 0
    latency_sum: float = 0.0
    breaker_open_until: int = 0
    allowance: Optional[float] = None
    overloaded: bool = False


@dataclass
class _TraceBuilder:
    id: str
    hops: List[TraceHop] = field(default_factory=list)


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(float(value), low), high)


class LiveTickEngine:
    """
    Stateful live simulation.

    Example:
        >>> engine = LiveTickEngine()
        >>> engine.init(graph, speed=1.0, load_factor=1.0)
        >>> engine.start()
        >>> frame = engine.tick()
        >>> frame.tick, len(frame.particles)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        seed: Optional[int] = None,
        on_trace: Optional[Callable[[TracedRequest], None]] = None,
        engine_id: Optional[str] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.settings = settings or Settings()
        self.seed = self.settings.seed if seed is None else seed
        self.engine_id = engine_id or uuid.uuid4().hex[:12]
        self.on_trace = on_trace
        self._rng = random.Random()
        self._clear()

    def _clear(self) -> None:
        self.state = EngineState.IDLE
        self.sim_graph: Optional[SimulationGraph] = None
        self.speed = 1.0
        self.load_factor = 1.0
        self.tick_count = 0
        self.completed_traces: List[TracedRequest] = []
        self.last_frame: Optional[TickFrame] = None

        self._rng.seed(self.seed)
        self._clock_ms = 0.0
        self._flights: List[_Flight] = []
        self._nodes: Dict[str, _NodeState] = defaultdict(_NodeState)
        self._pickers: Dict[str, SmoothWeightedPicker] = defaultdict(SmoothWeightedPicker)
        self._inspector = ComponentInspector(self._rng)
        self._particle_acc: Dict[str, float] = defaultdict(float)
        self._request_acc: Dict[str, float] = defaultdict(float)
        self._pending_injections: List[tuple] = []
        self._traces: Dict[str, _TraceBuilder] = {}
        self._next_particle = 0
        self._generated = 0
        self._errors = 0
        self._delivered = 0
        self._latency_sum = 0.0

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def init(self, graph: GraphData, speed: float = 1.0, load_factor: float = 1.0) -> None:
        """Load a graph and start clean with zero particles. Raises ValidationError."""
        ensure_valid(graph)
        self._clear()
        self.sim_graph = SimulationGraph(graph)
        self.speed = _clamp(speed, MIN_SPEED, MAX_SPEED)
        self.load_factor = _clamp(load_factor, MIN_LOAD_FACTOR, MAX_LOAD_FACTOR)
        self.logger.info(
            f"Live engine {self.engine_id} initialized: {len(self.sim_graph.nodes)} nodes, "
            f"speed={self.speed}, load_factor={self.load_factor}"
        )

    def start(self) -> None:
        self._require_graph("start")
        if self.state != EngineState.RUNNING:
            self.state = EngineState.RUNNING
            self.logger.debug(f"Live engine {self.engine_id} running")

    def pause(self) -> None:
        self._require_graph("pause")
        if self.state == EngineState.RUNNING:
            self.state = EngineState.PAUSED
            self.logger.debug(f"Live engine {self.engine_id} paused at tick {self.tick_count}")

    def step(self) -> TickFrame:
        """Advance exactly one tick while not running."""
        self._require_graph("step")
        if self.state == EngineState.RUNNING:
            raise EngineStateError("step is only allowed while paused")
        self.state = EngineState.PAUSED
        return self._advance()

    def tick(self, dt_ms: Optional[float] = None) -> TickFrame:
        """Advance one tick of a running engine; dt_ms defaults to the fixed interval."""
        self._require_graph("tick")
        if self.state != EngineState.RUNNING:
            raise EngineStateError(f"tick requires a running engine (state={self.state.value})")
        return self._advance(dt_ms)

    def reset(self) -> None:
        """Discard all state; a later init starts clean."""
        self._clear()
        self.logger.info(f"Live engine {self.engine_id} reset")

    def _require_graph(self, operation: str) -> None:
        if self.sim_graph is None:
            raise EngineStateError(f"{operation} requires init with a graph first")

    # =========================================================================
    # Controls (take effect on the next tick)
    # =========================================================================

    def set_speed(self, value: float) -> float:
        self.speed = _clamp(value, MIN_SPEED, MAX_SPEED)
        return self.speed

    def set_load_factor(self, value: float) -> float:
        self.load_factor = _clamp(value, MIN_LOAD_FACTOR, MAX_LOAD_FACTOR)
        return self.load_factor

    def update_nodes(self, nodes: List[ComponentNode]) -> None:
        """
        Replace node configuration; particles in flight are kept.

        Raises ValidationError if an update changes a node's type. Rate
        limits and breakers are re-read from the new configuration on the
        next tick.
        """
        self._require_graph("update_nodes")
        self.sim_graph = self.sim_graph.with_nodes(nodes)
        self.logger.debug(f"Live engine {self.engine_id} updated {len(nodes)} node(s)")

    def inject_request(self, node_id: Optional[str] = None, trace_id: Optional[str] = None) -> str:
        """Queue one traced request at an entry node; returns its trace id."""
        self._require_graph("inject_request")
        entries = self.sim_graph.entry_ids
        if node_id is None:
            if not entries:
                raise ValidationError(["Cannot inject a request: the graph has no entry node"])
            node_id = entries[0]
        node = self.sim_graph.find_node(node_id)
        if node is None or not is_entry(node.type):
            raise ValidationError([f"Cannot inject a request at {node_id}: not an entry node"])
        trace_id = trace_id or f"trace-{uuid.uuid4().hex[:8]}"
        self._pending_injections.append((node_id, trace_id))
        return trace_id

    # =========================================================================
    # Tick
    # =========================================================================

    def _advance(self, dt_ms: Optional[float] = None) -> TickFrame:
        self.tick_count += 1
        interval = self.settings.tick_interval_ms if dt_ms is None else max(0.0, float(dt_ms))
        sim_ms = interval * self.speed
        sim_s = sim_ms / 1000.0
        self._clock_ms += sim_ms
        for state in self._nodes.values():
            state.arrivals = 0

        self._refill_rate_limits(sim_s)
        self._inject(sim_s)

        kept: List[_Flight] = []
        arrived: List[_Flight] = []
        for flight in self._flights:
            flight.t += sim_ms / flight.travel_ms
            (arrived if flight.t >= 1.0 else kept).append(flight)
        self._flights = kept
        for flight in arrived:
            self._arrive(flight)

        self._update_estimates(sim_s)
        frame = TickFrame(
            engine_id=self.engine_id,
            tick=self.tick_count,
            particles=self._snapshot_particles(),
            metrics=self._snapshot_metrics(),
        )
        self.last_frame = frame
        return frame

    def _refill_rate_limits(self, sim_s: float) -> None:
        for node in self.sim_graph.nodes.values():
            ceiling = rate_limit(node)
            state = self._nodes[node.id]
            if ceiling is None:
                state.allowance = None
                continue
            current = ceiling if state.allowance is None else state.allowance
            state.allowance = min(ceiling, current + ceiling * sim_s)

    def _inject(self, sim_s: float) -> None:
        for entry_id in self.sim_graph.entry_ids:
            node = self.sim_graph.node(entry_id)
            try:
                rate = max(0.0, float(node.spec.requests_per_second)) * self.load_factor
            except (TypeError, ValueError):
                rate = 0.0
            if rate <= 0:
                continue
            particles_per_sec = _clamp(
                rate / REQUESTS_PER_PARTICLE_DIVISOR, MIN_PARTICLES_PER_SEC, MAX_PARTICLES_PER_SEC
            )
            self._particle_acc[entry_id] += particles_per_sec * sim_s
            self._request_acc[entry_id] += rate * sim_s
            while self._particle_acc[entry_id] >= 1.0:
                self._particle_acc[entry_id] -= 1.0
                count = int(self._request_acc[entry_id])
                if count <= 0:
                    continue
                self._request_acc[entry_id] -= count
                self._generate(node, count)

        injections, self._pending_injections = self._pending_injections, []
        for entry_id, trace_id in injections:
            node = self.sim_graph.find_node(entry_id)
            if node is None:
                continue
            trace = _TraceBuilder(trace_id)
            trace.hops.append(self._hop(node, self._clock_ms, 0.0, HopStatus.OK))
            self._traces[trace_id] = trace
            self._generate(node, 1, trace_id=trace_id)

    def _generate(self, node: ComponentNode, count: int, trace_id: Optional[str] = None) -> None:
        state = self._nodes[node.id]
        state.arrivals += count
        state.total_requests += count
        state.accepted += count
        self._generated += count
        self._forward(node, count, latency_ms=0.0, trace_id=trace_id)

    def _arrive(self, flight: _Flight) -> None:
        node = self.sim_graph.find_node(flight.target_id)
        if node is None:
            self._fail(flight.count, None, flight.trace_id)
            return
        state = self._nodes[node.id]
        state.arrivals += flight.count
        state.total_requests += flight.count

        circuit_open = self._circuit_open(node)
        capacity = effective_capacity(node, circuit_open)
        if circuit_open or capacity <= 0 or state.ema_rps > capacity:
            self._fail(flight.count, node, flight.trace_id)
            return
        if state.allowance is not None:
            if state.allowance < flight.count:
                self._inspector.record_rejected(node, flight.count)
                self._fail(flight.count, node, flight.trace_id)
                return
            state.allowance -= flight.count

        latency = node_latency_ms(node, state.ema_rps / capacity if not math.isinf(capacity) else 0.0)
        state.accepted += flight.count
        state.latency_sum += latency * flight.count
        total_latency = flight.latency_ms + latency

        if is_terminal(node.type):
            self._inspector.record_absorbed(node, flight.count)
            self._deliver(flight.count, total_latency)
            self._trace_hop(flight.trace_id, node, latency, HopStatus.OK, finish=TraceStatus.COMPLETED)
            return

        forward = flight.count
        if node.type in CACHING_TYPES:
            rate = hit_rate(node)
            if flight.count == 1:
                hits = 1 if self._rng.random() < rate else 0
            else:
                hits = int(round(flight.count * rate))
            misses = flight.count - hits
            self._inspector.record_lookup(node, hits, misses)
            if hits:
                self._deliver(hits, total_latency)
                if flight.trace_id:
                    self._trace_hop(flight.trace_id, node, latency, HopStatus.CACHE_HIT,
                                    finish=TraceStatus.COMPLETED)
                    return
            forward = misses
            if forward <= 0:
                return

        self._trace_hop(flight.trace_id, node, latency, HopStatus.OK)
        self._forward(node, forward, total_latency, flight.trace_id,
                      cache_miss=node.type in CACHING_TYPES)

    def _forward(
        self,
        node: ComponentNode,
        count: int,
        latency_ms: float,
        trace_id: Optional[str] = None,
        cache_miss: bool = False,
    ) -> None:
        outgoing = self.sim_graph.outgoing(node.id)
        if not outgoing:
            self._fail(count, node, trace_id)
            return

        conn = self._choose(node, outgoing)
        lost = self._packet_loss(conn, count)
        if lost:
            self._fail(lost, node, trace_id if lost == count else None)
            count -= lost
            if count <= 0:
                return

        self._inspector.record_forward(node, conn.target_id, count)
        source_util = self._utilization(node)
        edge_latency = edge_latency_ms(conn.protocol, source_util)
        self._next_particle += 1
        self._flights.append(_Flight(
            id=f"p{self._next_particle}",
            connection_id=conn.id,
            source_id=conn.source_id,
            target_id=conn.target_id,
            count=count,
            travel_ms=TRAVEL_MS_PER_LATENCY_MS * max(1.0, edge_latency),
            latency_ms=latency_ms + edge_latency,
            cache_miss=cache_miss,
            trace_id=trace_id,
        ))

    def _choose(self, node: ComponentNode, outgoing: List[Connection]) -> Connection:
        targets = [
            RouteTarget(c, effective_capacity(self.sim_graph.node(c.target_id))) for c in outgoing
        ]
        weights = policy_for(node).weights(targets, self._rng)
        by_id = {c.id: c for c in outgoing}
        return by_id[self._pickers[node.id].pick([c.id for c in outgoing], weights)]

    def _packet_loss(self, conn: Connection, count: int) -> int:
        loss = packet_loss_rate(conn.protocol)
        if loss <= 0:
            return 0
        if count == 1:
            return 1 if self._rng.random() < loss else 0
        return int(round(count * loss))

    def _deliver(self, count: int, latency_ms: float) -> None:
        self._delivered += count
        self._latency_sum += latency_ms * count

    def _fail(self, count: int, node: Optional[ComponentNode], trace_id: Optional[str]) -> None:
        self._errors += count
        if node is not None:
            self._nodes[node.id].errors += count
            if trace_id:
                self._trace_hop(trace_id, node, 0.0, HopStatus.ERROR, finish=TraceStatus.FAILED)
        elif trace_id:
            self._finish_trace(trace_id, TraceStatus.FAILED)

    def _circuit_open(self, node: ComponentNode) -> bool:
        """A breaker window only counts while the node still has a breaker."""
        return has_circuit_breaker(node) and self._nodes[node.id].breaker_open_until > self.tick_count

    def _utilization(self, node: ComponentNode) -> float:
        state = self._nodes[node.id]
        capacity = effective_capacity(node, self._circuit_open(node))
        if math.isinf(capacity):
            return 0.0
        if capacity <= 0:
            return float("inf") if state.ema_rps > 0 else 0.0
        return state.ema_rps / capacity

    def _update_estimates(self, sim_s: float) -> None:
        alpha = self.settings.ema_alpha
        inflight: Dict[str, int] = defaultdict(int)
        for flight in self._flights:
            inflight[flight.target_id] += flight.count

        for node in self.sim_graph.nodes.values():
            state = self._nodes[node.id]
            instant = state.arrivals / sim_s if sim_s > 0 else 0.0
            state.ema_rps = alpha * instant + (1 - alpha) * state.ema_rps
            if state.arrivals == 0 and state.ema_rps < EMA_SNAP:
                state.ema_rps = 0.0
            state.queue_depth = alpha * inflight.get(node.id, 0) + (1 - alpha) * state.queue_depth

            util = self._utilization(node)
            state.overloaded = util >= self.settings.overload
            if (
                state.overloaded
                and has_circuit_breaker(node)
                and state.breaker_open_until <= self.tick_count
            ):
                state.breaker_open_until = self.tick_count + self.settings.breaker_cooldown_ticks
                self.logger.debug(f"Circuit opened on {node.id} at tick {self.tick_count}")

            self._inspector.advance(node, effective_capacity(node), sim_s)

    # =========================================================================
    # Traces
    # =========================================================================

    def _hop(self, node: ComponentNode, arrival_ms: float, latency_ms: float, status: HopStatus) -> TraceHop:
        return TraceHop(
            component_id=node.id,
            component_name=node.name,
            component_type=node.type.value,
            arrival_ms=arrival_ms,
            departure_ms=arrival_ms + latency_ms,
            status=status,
        )

    def _trace_hop(
        self,
        trace_id: Optional[str],
        node: ComponentNode,
        latency_ms: float,
        status: HopStatus,
        finish: Optional[TraceStatus] = None,
    ) -> None:
        if not trace_id or trace_id not in self._traces:
            return
        self._traces[trace_id].hops.append(self._hop(node, self._clock_ms, latency_ms, status))
        if finish is not None:
            self._finish_trace(trace_id, finish)

    def _finish_trace(self, trace_id: str, status: TraceStatus) -> None:
        builder = self._traces.pop(trace_id, None)
        if builder is None:
            return
        trace = TracedRequest(id=trace_id, hops=tuple(builder.hops), status=status)
        self.completed_traces.append(trace)
        self.logger.debug(f"Trace {trace_id} {status.value} after {len(trace.hops)} hop(s)")
        if self.on_trace is not None:
            self.on_trace(trace)

    # =========================================================================
    # Snapshots
    # =========================================================================

    def _snapshot_particles(self):
        particles = []
        for flight in self._flights:
            if flight.trace_id:
                color = PARTICLE_TRACED
            elif self._nodes[flight.target_id].overloaded:
                color = PARTICLE_ERROR
            elif flight.cache_miss:
                color = PARTICLE_CACHE_MISS
            else:
                color = PARTICLE_HEALTHY
            particles.append(RequestParticle(
                id=flight.id,
                connection_id=flight.connection_id,
                source_id=flight.source_id,
                target_id=flight.target_id,
                t=min(flight.t, 0.999999),
                count=flight.count,
                color=color,
                trace_id=flight.trace_id,
            ))
        return tuple(particles)

    def _snapshot_metrics(self) -> LiveMetrics:
        names = {n.id: n.name for n in self.sim_graph.nodes.values()}
        active: Dict[str, int] = defaultdict(int)
        for flight in self._flights:
            active[flight.target_id] += 1

        node_metrics: Dict[str, NodeDetailMetrics] = {}
        for node in self.sim_graph.nodes.values():
            state = self._nodes[node.id]
            circuit_open = self._circuit_open(node)
            capacity = effective_capacity(node, circuit_open)
            util = self._utilization(node)
            util_percent = 0.0 if math.isinf(util) and state.ema_rps == 0 else min(util, 10.0) * 100.0
            node_metrics[node.id] = NodeDetailMetrics(
                utilization_percent=util_percent,
                queue_depth=max(state.queue_depth, float(self._inspector.queue_depth(node.id))),
                error_count=state.errors,
                current_rps=state.ema_rps,
                total_requests=state.total_requests,
                avg_latency_ms=state.latency_sum / state.accepted if state.accepted else 0.0,
                capacity_rps=capacity,
                overloaded=state.overloaded,
                circuit_open=circuit_open,
                detail=self._inspector.detail(
                    node,
                    names,
                    [c.target_id for c in self.sim_graph.outgoing(node.id)],
                    active,
                    capacity,
                    0.0 if math.isinf(util) else util,
                    state.total_requests,
                ),
            )

        entry_rps = sum(self._nodes[e].ema_rps for e in self.sim_graph.entry_ids)
        error_rate = min(self._errors / self._generated, 1.0) if self._generated else 0.0
        return LiveMetrics(
            rps=entry_rps,
            avg_latency_ms=self._latency_sum / self._delivered if self._delivered else 0.0,
            error_rate=error_rate,
            estimated_cost_monthly=estimate_design_cost(self.sim_graph.data),
            total_requests=self._generated,
            total_errors=self._errors,
            node_metrics=node_metrics,
        )
