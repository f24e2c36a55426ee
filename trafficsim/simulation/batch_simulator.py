"""
Batch Scenario Simulator

Evaluates a component graph against named load scenarios over a fixed tick
horizon and produces aggregate performance predictions.

Per tick, offered load enters at every client node and is propagated
through the request-flow subgraph:
    - nodes accept up to their effective capacity; overflow is dropped
      (or retried once on the next tick when automatic retries are on)
    - terminal nodes absorb accepted requests (delivered)
    - caches and CDNs deliver their hit fraction and forward misses
    - other nodes split flow over outgoing connections (routing policies)
    - connections lose packets per protocol and cap flow at their
      throughput hint

Metrics:
    rps / throughput    offered and delivered rate at entry
    errorRate           1 - delivered / offered
    latency             seeded sampling of flow-weighted request walks,
                        each hop = fixed latency + exponential jitter
                        scaled by congestion
    cost                shared per-type cost calculator
    bottlenecks         nodes at or above the overload threshold
"""

from __future__ import annotations
import logging
import math
import random
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

import numpy as np

from ..config.settings import Settings
from ..core.catalog import BASE_LATENCY_MS, CACHING_TYPES, is_terminal
from ..core.cost import estimate_design_cost
from ..core.models import ComponentNode, GraphData
from ..core.validator import ensure_valid
from .capacity import (
    base_capacity,
    classify_utilization,
    edge_capacity,
    edge_latency_parts,
    effective_capacity,
    has_circuit_breaker,
    has_retries,
    hit_rate,
    node_latency_ms,
    packet_loss_rate,
    rate_limit,
    utilization,
)
from .graph import SimulationGraph
from .models import (
    Diagnostic,
    DiagnosticEvent,
    DropReason,
    NodeSimSummary,
    Scenario,
    ScenarioMetrics,
    ScenarioResult,
    Severity,
    SimulationOutput,
    Thresholds,
    default_scenarios,
)
from .routing import RouteTarget, policy_for
from .structural import find_structural_risks


EPSILON = 1e-9
# Utilization samples are clamped so zero-capacity nodes stay finite
UTILIZATION_CAP = 10.0
UNHEALTHY_DROP_FRACTION = 0.01
HEALTHY_TICK_SHARE = 0.9


@dataclass
class _ScenarioState:
    """Accumulators for one scenario run."""
    ticks: int = 0
    offered: float = 0.0
    delivered: float = 0.0
    offered_by_entry: Dict[str, float] = field(default_factory=lambda: defaultdict(float))

    incoming: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    accepted: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    dropped: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    absorbed: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    hits: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    utilization: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))
    healthy_ticks: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    latency_weighted: Dict[str, float] = field(default_factory=lambda: defaultdict(float))

    edge_flow: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    edge_congestion_weighted: Dict[str, float] = field(default_factory=lambda: defaultdict(float))

    drop_reasons: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    retry_backlog: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    breaker_open_until: Dict[str, int] = field(default_factory=dict)
    breaker_trips: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    rate_limited: Set[str] = field(default_factory=set)
    dead_ends: Set[str] = field(default_factory=set)
    lossy_edges: Set[str] = field(default_factory=set)


@dataclass
class _TickState:
    """Per-tick flow bookkeeping."""
    capacities: Dict[str, float]
    open_circuits: Set[str]
    incoming: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    accepted: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    dropped: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    retry_in: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    edge_used: Dict[str, float] = field(default_factory=lambda: defaultdict(float))


class BatchSimulator:
    """
    Runs load scenarios against a validated graph.

    Construction validates the graph and raises ValidationError for
    malformed graphs, so no result is ever produced for them.

    Example:
        >>> sim = BatchSimulator(graph, seed=7)
        >>> output = sim.run([Scenario("Launch", aggregate_rps=5000)])
        >>> output.scenarios[0].metrics.error_rate
    """

    def __init__(
        self,
        graph: GraphData,
        settings: Optional[Settings] = None,
        seed: Optional[int] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.settings = settings or Settings()
        self.seed = self.settings.seed if seed is None else seed
        self.report = ensure_valid(graph)

        self.sim_graph = SimulationGraph(graph)
        self._order = self.sim_graph.flow_order()
        self._position = {node_id: i for i, node_id in enumerate(self._order)}
        self._cost = estimate_design_cost(self.sim_graph.data)

        self._rng = random.Random()
        self._np_rng = np.random.default_rng(self.seed)

    def _reset(self, seed: int) -> None:
        self._rng.seed(seed)
        self._np_rng = np.random.default_rng(seed)

    # =========================================================================
    # Public API
    # =========================================================================

    def run(self, scenarios: Optional[Iterable[Scenario]] = None) -> SimulationOutput:
        """Run every scenario, then compute structural risks once."""
        scenarios = list(scenarios) if scenarios else default_scenarios(self.settings.tick_horizon)
        results = tuple(
            self.run_scenario(scenario, index) for index, scenario in enumerate(scenarios)
        )
        spof = tuple(find_structural_risks(self.sim_graph))
        self.logger.info(
            f"Batch simulation complete: {len(results)} scenario(s), "
            f"{len(spof)} structural risk(s)"
        )
        return SimulationOutput(
            scenarios=results,
            spof_diagnostics=spof,
            validation_warnings=tuple(self.report.warnings),
            seed=self.seed,
        )

    def run_scenario(self, scenario: Scenario, index: int = 0) -> ScenarioResult:
        self._reset(self.seed + index)
        self.logger.info(
            f"Running scenario '{scenario.name}': load_factor={scenario.load_factor}, "
            f"ticks={scenario.duration_ticks}"
        )
        unknown = set(scenario.offline_nodes) - set(self.sim_graph.nodes)
        if unknown:
            self.logger.warning(f"Scenario '{scenario.name}' takes unknown nodes offline: {sorted(unknown)}")

        state = _ScenarioState()
        for tick in range(max(0, scenario.duration_ticks)):
            self._run_tick(scenario, tick, state)

        # Retries still pending when the horizon ends never complete
        for node_id, amount in state.retry_backlog.items():
            if amount > EPSILON:
                self._drop(state, None, node_id, DropReason.OVERLOADED, amount)

        return self._build_result(scenario, state)

    # =========================================================================
    # Tick Propagation
    # =========================================================================

    def _offered_rates(self, scenario: Scenario, tick: int) -> Dict[str, float]:
        entries = self.sim_graph.entry_ids
        wave = 1.0 + scenario.wave_amplitude * math.sin(tick / 10.0)
        rates = {}
        for entry in entries:
            if entry in scenario.arrival_rates:
                base = scenario.arrival_rates[entry]
            elif scenario.aggregate_rps is not None:
                base = scenario.aggregate_rps / len(entries)
            else:
                base = self.sim_graph.node(entry).spec.requests_per_second
            rates[entry] = max(0.0, base * scenario.load_factor * wave)
        return rates

    def _run_tick(self, scenario: Scenario, tick: int, state: _ScenarioState) -> None:
        nodes = self.sim_graph.nodes
        open_circuits = {n for n, until in state.breaker_open_until.items() if until > tick}
        tick_state = _TickState(
            capacities={n: effective_capacity(nodes[n], n in open_circuits) for n in self._order},
            open_circuits=open_circuits,
        )
        offline = set(scenario.offline_nodes)

        arrivals: Dict[str, float] = defaultdict(float)
        for entry, rate in self._offered_rates(scenario, tick).items():
            arrivals[entry] += rate
            state.offered += rate
            state.offered_by_entry[entry] += rate
        for node_id, amount in state.retry_backlog.items():
            if amount > EPSILON:
                arrivals[node_id] += amount
                tick_state.retry_in[node_id] += amount
        state.retry_backlog = defaultdict(float)

        for _ in range(self.settings.max_hops):
            if sum(arrivals.values()) <= EPSILON:
                break
            pending: Dict[str, float] = defaultdict(float)
            for node_id in self._order:
                rate = arrivals.pop(node_id, 0.0)
                if rate > EPSILON:
                    self._process_node(node_id, rate, offline, arrivals, pending, tick_state, state)
            arrivals = pending

        for node_id, amount in arrivals.items():
            if amount > EPSILON:
                self._drop(state, tick_state, node_id, DropReason.ROUTING_LOOP, amount)

        self._close_tick(tick, tick_state, state)
        state.ticks += 1

    def _process_node(
        self,
        node_id: str,
        rate: float,
        offline: Set[str],
        arrivals: Dict[str, float],
        pending: Dict[str, float],
        tick_state: _TickState,
        state: _ScenarioState,
    ) -> None:
        node = self.sim_graph.node(node_id)
        tick_state.incoming[node_id] += rate

        if node_id in offline:
            self._drop(state, tick_state, node_id, DropReason.NODE_OFFLINE, rate)
            return

        remaining = max(0.0, tick_state.capacities[node_id] - tick_state.accepted[node_id])
        taken = min(rate, remaining)
        overflow = rate - taken
        tick_state.accepted[node_id] += taken

        if overflow > EPSILON:
            self._handle_overflow(node, overflow, tick_state, state)
        if taken <= EPSILON:
            return

        if is_terminal(node.type):
            state.absorbed[node_id] += taken
            state.delivered += taken
            return

        forward = taken
        if node.type in CACHING_TYPES:
            served = taken * hit_rate(node)
            state.hits[node_id] += served
            state.delivered += served
            forward -= served
        if forward <= EPSILON:
            return

        outgoing = self.sim_graph.outgoing(node_id)
        if not outgoing:
            state.dead_ends.add(node_id)
            self._drop(state, tick_state, node_id, DropReason.NO_ROUTE, forward)
            return

        targets = [RouteTarget(c, tick_state.capacities.get(c.target_id, 0.0)) for c in outgoing]
        weights = policy_for(node).weights(targets, self._rng)
        for conn, weight in zip(outgoing, weights):
            flow = forward * weight
            if flow <= EPSILON:
                continue
            lost = flow * packet_loss_rate(conn.protocol)
            if lost > EPSILON:
                state.lossy_edges.add(conn.id)
                self._drop(state, tick_state, node_id, DropReason.PACKET_LOSS, lost)
                flow -= lost
            room = max(0.0, edge_capacity(conn) - tick_state.edge_used[conn.id])
            passed = min(flow, room)
            if flow - passed > EPSILON:
                self._drop(state, tick_state, node_id, DropReason.EDGE_SATURATED, flow - passed)
            if passed <= EPSILON:
                continue
            tick_state.edge_used[conn.id] += passed
            state.edge_flow[conn.id] += passed

            target = conn.target_id
            if self._position.get(target, -1) > self._position[node_id]:
                arrivals[target] += passed
            else:
                pending[target] += passed

    def _handle_overflow(
        self,
        node: ComponentNode,
        overflow: float,
        tick_state: _TickState,
        state: _ScenarioState,
    ) -> None:
        if node.id in tick_state.open_circuits:
            self._drop(state, tick_state, node.id, DropReason.CIRCUIT_OPEN, overflow)
            return

        ceiling = rate_limit(node)
        if ceiling is not None and ceiling < base_capacity(node):
            state.rate_limited.add(node.id)
            reason = DropReason.RATE_LIMITED
        else:
            reason = DropReason.OVERLOADED

        if has_retries(node):
            # Only first attempts are retried
            incoming = tick_state.incoming[node.id]
            fresh = max(0.0, 1.0 - tick_state.retry_in[node.id] / incoming) if incoming > 0 else 0.0
            retried = overflow * fresh
            state.retry_backlog[node.id] += retried
            overflow -= retried
        if overflow > EPSILON:
            self._drop(state, tick_state, node.id, reason, overflow)

    def _drop(
        self,
        state: _ScenarioState,
        tick_state: Optional[_TickState],
        node_id: str,
        reason: DropReason,
        amount: float,
    ) -> None:
        state.drop_reasons[reason.value] += amount
        state.dropped[node_id] += amount
        if tick_state is not None:
            tick_state.dropped[node_id] += amount

    def _close_tick(self, tick: int, tick_state: _TickState, state: _ScenarioState) -> None:
        """Fold one tick's flows into the scenario accumulators."""
        nodes = self.sim_graph.nodes
        tick_util: Dict[str, float] = {}
        for node_id in self._order:
            node = nodes[node_id]
            incoming = tick_state.incoming.get(node_id, 0.0)
            util = min(utilization(incoming, effective_capacity(node)), UTILIZATION_CAP)
            tick_util[node_id] = util

            state.incoming[node_id] += incoming
            state.accepted[node_id] += tick_state.accepted.get(node_id, 0.0)
            state.utilization[node_id].append(util)
            state.latency_weighted[node_id] += node_latency_ms(node, util) * tick_state.accepted.get(node_id, 0.0)

            dropped = tick_state.dropped.get(node_id, 0.0)
            unhealthy = util >= self.settings.overload or (
                incoming > 0 and dropped / incoming > UNHEALTHY_DROP_FRACTION
            )
            if not unhealthy:
                state.healthy_ticks[node_id] += 1

            if (
                has_circuit_breaker(node)
                and node_id not in tick_state.open_circuits
                and util >= self.settings.overload
            ):
                state.breaker_open_until[node_id] = tick + 1 + self.settings.breaker_cooldown_ticks
                state.breaker_trips[node_id] += 1
                self.logger.debug(f"Circuit opened on {node_id} at tick {tick}")

        for conn_id, flow in tick_state.edge_used.items():
            conn = self.sim_graph.connections[conn_id]
            _, congestion = edge_latency_parts(conn.protocol, tick_util.get(conn.source_id, 0.0))
            state.edge_congestion_weighted[conn_id] += congestion * flow

    # =========================================================================
    # Latency Sampling
    # =========================================================================

    def _sample_latencies(self, state: _ScenarioState) -> np.ndarray:
        """
        Sample end-to-end latencies of delivered requests.

        Each walk starts at an entry chosen by offered share and follows
        outcomes in proportion to the flows observed at every node.
        """
        entries = [e for e in self.sim_graph.entry_ids if state.offered_by_entry.get(e, 0.0) > 0]
        if not entries or state.delivered <= EPSILON:
            return np.array([])

        entry_weights = np.array([state.offered_by_entry[e] for e in entries])
        entry_cdf = np.cumsum(entry_weights / entry_weights.sum())

        # node -> (outcomes, cdf); outcome None = request completes here
        outcomes: Dict[str, Tuple[List[Optional[str]], np.ndarray]] = {}
        for node_id in self._order:
            options: List[Optional[str]] = []
            weights: List[float] = []
            done = state.absorbed.get(node_id, 0.0) + state.hits.get(node_id, 0.0)
            if done > EPSILON:
                options.append(None)
                weights.append(done)
            for conn in self.sim_graph.outgoing(node_id):
                flow = state.edge_flow.get(conn.id, 0.0)
                if flow > EPSILON:
                    options.append(conn.id)
                    weights.append(flow)
            if weights:
                w = np.array(weights)
                outcomes[node_id] = (options, np.cumsum(w / w.sum()))

        node_fixed, node_jitter = {}, {}
        for node_id in self._order:
            node = self.sim_graph.node(node_id)
            base = BASE_LATENCY_MS.get(node.type, 10.0)
            accepted = state.accepted.get(node_id, 0.0)
            mean = state.latency_weighted[node_id] / accepted if accepted > EPSILON else base
            node_fixed[node_id] = base
            node_jitter[node_id] = max(0.0, mean - base)

        rng = self._np_rng
        samples: List[float] = []
        for _ in range(self.settings.latency_samples):
            pick = int(np.searchsorted(entry_cdf, rng.random(), side="right"))
            node_id = entries[min(pick, len(entries) - 1)]
            total = 0.0
            for _hop in range(self.settings.max_hops):
                total += node_fixed[node_id]
                if node_jitter[node_id] > 0:
                    total += rng.exponential(node_jitter[node_id])
                choice = outcomes.get(node_id)
                if choice is None:
                    total = math.nan
                    break
                options, cdf = choice
                idx = min(int(np.searchsorted(cdf, rng.random(), side="right")), len(options) - 1)
                conn_id = options[idx]
                if conn_id is None:
                    break
                conn = self.sim_graph.connections[conn_id]
                fixed, _ = edge_latency_parts(conn.protocol, 0.0)
                jitter = state.edge_congestion_weighted[conn_id] / state.edge_flow[conn_id]
                total += fixed
                if jitter > 0:
                    total += rng.exponential(jitter)
                node_id = conn.target_id
            else:
                total = math.nan
            if not math.isnan(total):
                samples.append(total)
        return np.array(samples)

    # =========================================================================
    # Results
    # =========================================================================

    def _build_result(self, scenario: Scenario, state: _ScenarioState) -> ScenarioResult:
        ticks = max(state.ticks, 1)
        if state.offered > EPSILON:
            error_rate = min(max(1.0 - state.delivered / state.offered, 0.0), 1.0)
        else:
            error_rate = 0.0

        latencies = self._sample_latencies(state)
        if latencies.size:
            avg = float(latencies.mean())
            p50, p95, p99 = (float(v) for v in np.percentile(latencies, [50, 95, 99]))
        else:
            avg = p50 = p95 = p99 = 0.0

        node_metrics: Dict[str, NodeSimSummary] = {}
        mean_util: Dict[str, float] = {}
        for node_id in self._order:
            samples = state.utilization.get(node_id) or [0.0]
            mean_util[node_id] = sum(samples) / len(samples)
            incoming = state.incoming.get(node_id, 0.0)
            accepted = state.accepted.get(node_id, 0.0)
            node = self.sim_graph.node(node_id)
            node_metrics[node_id] = NodeSimSummary(
                avg_cpu_percent=min(mean_util[node_id], 1.0) * 100.0,
                avg_latency_ms=(
                    state.latency_weighted[node_id] / accepted
                    if accepted > EPSILON else BASE_LATENCY_MS.get(node.type, 0.0)
                ),
                avg_error_rate=state.dropped.get(node_id, 0.0) / incoming if incoming > EPSILON else 0.0,
                peak_utilization=max(samples),
                is_healthy=state.healthy_ticks.get(node_id, 0) / ticks > HEALTHY_TICK_SHARE,
            )

        bottlenecks = tuple(n for n in self._order if mean_util[n] >= self.settings.overload)
        diagnostics = tuple(self._diagnostics(state, mean_util))

        metrics = ScenarioMetrics(
            rps=state.offered / ticks,
            throughput_rps=state.delivered / ticks,
            avg_latency_ms=avg,
            p50_latency_ms=p50,
            p95_latency_ms=p95,
            p99_latency_ms=p99,
            response_time_ms=p99 * 1.5,
            ttfb_ms=p50 * 0.8,
            error_rate=error_rate,
            estimated_cost_monthly=self._cost,
            bottlenecks=bottlenecks,
        )

        feedback = check_thresholds(metrics, scenario.thresholds)
        warnings = sum(1 for d in diagnostics if d.severity == Severity.WARNING)
        score = 100.0 - 15.0 * len(bottlenecks) - 50.0 * error_rate - 5.0 * warnings - 10.0 * len(feedback)
        score = min(max(score, 0.0), 100.0)

        self.logger.info(
            f"Scenario '{scenario.name}': rps={metrics.rps:.1f}, error_rate={error_rate:.4f}, "
            f"p99={p99:.2f}ms, bottlenecks={list(bottlenecks)}"
        )
        return ScenarioResult(
            scenario_name=scenario.name,
            metrics=metrics,
            diagnostics=diagnostics,
            passed=not feedback,
            score=score,
            feedback=tuple(feedback),
            node_metrics=node_metrics,
            drop_reasons=dict(state.drop_reasons),
        )

    def _diagnostics(self, state: _ScenarioState, mean_util: Dict[str, float]) -> List[Diagnostic]:
        diagnostics: List[Diagnostic] = []
        for node_id in self._order:
            node = self.sim_graph.node(node_id)
            util = mean_util[node_id]
            capacity = effective_capacity(node)

            level = classify_utilization(util, self.settings.high_utilization, self.settings.overload)
            if level is not None:
                event, severity = level
                diagnostics.append(Diagnostic(
                    node_id=node_id,
                    node_name=node.name,
                    event=DiagnosticEvent(event),
                    severity=Severity(severity),
                    message=f"{node.name} at {util * 100:.0f}% of {capacity:.0f} rps capacity",
                    suggestion="Add instances or raise per-instance capacity",
                ))
            if node_id in state.dead_ends:
                diagnostics.append(Diagnostic(
                    node_id, node.name, DiagnosticEvent.DEAD_END, Severity.WARNING,
                    f"{node.name} has no outgoing connection; requests cannot reach storage",
                    "Connect it to a storage or downstream tier",
                ))
            if state.breaker_trips.get(node_id):
                diagnostics.append(Diagnostic(
                    node_id, node.name, DiagnosticEvent.CIRCUIT_OPEN, Severity.WARNING,
                    f"Circuit breaker opened {state.breaker_trips[node_id]} time(s)",
                    "Increase capacity so the breaker stays closed under this load",
                ))
            if node_id in state.rate_limited:
                diagnostics.append(Diagnostic(
                    node_id, node.name, DiagnosticEvent.RATE_LIMITED, Severity.INFO,
                    f"Rate limit of {rate_limit(node):.0f} rps rejected requests",
                    "Raise the rate limit if this traffic is legitimate",
                ))
            for conn in self.sim_graph.outgoing(node_id):
                if conn.id in state.lossy_edges:
                    diagnostics.append(Diagnostic(
                        node_id, node.name, DiagnosticEvent.PACKET_LOSS, Severity.INFO,
                        f"Connection {conn.id} uses {conn.protocol.value} and loses packets",
                        "Use a reliable protocol such as tcp",
                    ))
        return diagnostics


def check_thresholds(metrics: ScenarioMetrics, thresholds: Optional[Thresholds]) -> List[str]:
    """Messages for every declared threshold the metrics violate."""
    if thresholds is None:
        return []
    violations = []
    if thresholds.max_p99_latency_ms is not None and metrics.p99_latency_ms > thresholds.max_p99_latency_ms:
        violations.append(
            f"p99 latency {metrics.p99_latency_ms:.1f}ms exceeds {thresholds.max_p99_latency_ms:.1f}ms"
        )
    if thresholds.max_avg_latency_ms is not None and metrics.avg_latency_ms > thresholds.max_avg_latency_ms:
        violations.append(
            f"Average latency {metrics.avg_latency_ms:.1f}ms exceeds {thresholds.max_avg_latency_ms:.1f}ms"
        )
    if thresholds.max_error_rate is not None and metrics.error_rate > thresholds.max_error_rate:
        violations.append(
            f"Error rate {metrics.error_rate:.2%} exceeds {thresholds.max_error_rate:.2%}"
        )
    if thresholds.min_availability is not None and metrics.availability < thresholds.min_availability:
        violations.append(
            f"Availability {metrics.availability:.4f} below {thresholds.min_availability:.4f}"
        )
    if thresholds.max_cost_monthly is not None and metrics.estimated_cost_monthly > thresholds.max_cost_monthly:
        violations.append(
            f"Cost ${metrics.estimated_cost_monthly:.2f}/mo exceeds ${thresholds.max_cost_monthly:.2f}/mo"
        )
    if thresholds.min_rps is not None and metrics.throughput_rps < thresholds.min_rps:
        violations.append(
            f"Throughput {metrics.throughput_rps:.1f} rps below {thresholds.min_rps:.1f} rps"
        )
    return violations


def run_batch(
    graph: GraphData,
    scenarios: Optional[Iterable[Scenario]] = None,
    seed: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> SimulationOutput:
    """Validate ``graph`` and evaluate it against ``scenarios`` (defaults if None)."""
    return BatchSimulator(graph, settings=settings, seed=seed).run(scenarios)
