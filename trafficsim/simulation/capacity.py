"""
Capacity & Protocol Cost Model

Converts static node/edge configuration into effective throughput and
added latency. Shared by the batch and live engines.

Node capacity:
    instances x perInstanceCapacityRps      (scaling layer)
    min(.., rateLimit)                      (trafficControl, when enabled)
    0                                       (while the circuit is open)

Edge latency:
    protocol overhead + congestion proportional to source utilization
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..core.catalog import (
    BASE_LATENCY_MS,
    CACHING_TYPES,
    CDN_BASE_CAPACITY_RPS,
    OBJECT_STORE_CAPACITY_RPS,
)
from ..core.models import ComponentNode, ComponentType, Connection, Layer, Protocol


UNBOUNDED = math.inf

EDGE_CONGESTION_MS = 10.0
QUEUEING_ONSET = 0.8
MAX_CONGESTION_UTILIZATION = 2.0


@dataclass(frozen=True)
class ProtocolFactors:
    overhead_ms: float
    packet_loss_rate: float
    capacity_multiplier: float
    connection_cost_factor: float


PROTOCOL_FACTORS: Dict[Protocol, ProtocolFactors] = {
    Protocol.HTTP: ProtocolFactors(8.0, 0.0, 1.0, 1.0),
    Protocol.GRPC: ProtocolFactors(2.0, 0.0, 1.4, 1.1),
    Protocol.WEBSOCKET: ProtocolFactors(1.0, 0.0, 1.2, 1.5),
    Protocol.TCP: ProtocolFactors(1.0, 0.0, 1.3, 1.2),
    Protocol.UDP: ProtocolFactors(0.0, 0.02, 1.5, 0.5),
    Protocol.CUSTOM: ProtocolFactors(5.0, 0.0, 1.0, 1.0),
}


def protocol_factors(protocol: Protocol) -> ProtocolFactors:
    return PROTOCOL_FACTORS.get(protocol, PROTOCOL_FACTORS[Protocol.CUSTOM])


def _finite_non_negative(value: float) -> float:
    if value is None or math.isnan(value) or value < 0:
        return 0.0
    return value


# =============================================================================
# Nodes
# =============================================================================

def base_capacity(node: ComponentNode) -> float:
    """Capacity before rate limiting and circuit state."""
    if node.type == ComponentType.CLIENT:
        return UNBOUNDED
    if Layer.SCALING in node.applicable_layers and node.scaling is not None:
        try:
            return _finite_non_negative(float(node.scaling.capacity_rps))
        except (TypeError, ValueError):
            return 0.0
    if node.type == ComponentType.CDN:
        return CDN_BASE_CAPACITY_RPS
    if node.type == ComponentType.OBJECT_STORE:
        return OBJECT_STORE_CAPACITY_RPS.get(node.spec.storage_class, OBJECT_STORE_CAPACITY_RPS["standard"])
    return 0.0


def rate_limit(node: ComponentNode) -> Optional[float]:
    """Hard rate-limit ceiling, if the node's type supports it and it is on."""
    if Layer.TRAFFIC_CONTROL not in node.applicable_layers or node.traffic_control is None:
        return None
    try:
        return node.traffic_control.ceiling_rps
    except (TypeError, ValueError):
        return 0.0


def has_circuit_breaker(node: ComponentNode) -> bool:
    return (
        Layer.RESILIENCE in node.applicable_layers
        and node.resilience is not None
        and bool(node.resilience.circuit_breaker)
    )


def has_retries(node: ComponentNode) -> bool:
    return (
        Layer.RESILIENCE in node.applicable_layers
        and node.resilience is not None
        and bool(node.resilience.automatic_retries)
    )


def effective_capacity(node: ComponentNode, circuit_open: bool = False) -> float:
    """
    Effective throughput ceiling of a node in rps.

    Zero while the circuit is open. Malformed configuration yields 0,
    i.e. immediate overload, rather than an exception.
    """
    if circuit_open:
        return 0.0
    capacity = base_capacity(node)
    ceiling = rate_limit(node)
    if ceiling is not None:
        capacity = min(capacity, ceiling)
    return capacity


def utilization(incoming_rps: float, capacity_rps: float) -> float:
    """Incoming rate over capacity; zero capacity with traffic is overload."""
    if incoming_rps <= 0:
        return 0.0
    if capacity_rps <= 0:
        return UNBOUNDED
    if math.isinf(capacity_rps):
        return 0.0
    return incoming_rps / capacity_rps


def node_latency_ms(node: ComponentNode, node_utilization: float) -> float:
    """Processing latency with a queueing factor once utilization passes 0.8."""
    base = BASE_LATENCY_MS.get(node.type, 10.0)
    return base * queueing_factor(node_utilization)


def queueing_factor(node_utilization: float) -> float:
    u = min(max(node_utilization, 0.0), 1.0)
    if u <= QUEUEING_ONSET:
        return 1.0
    return 1.0 / (1.0 - u + 0.01)


def hit_rate(node: ComponentNode) -> float:
    """
    Fraction of requests a cache or CDN serves without forwarding.

    Starts from the configured hit rate and adjusts for TTL, read/write
    strategy and eviction policy.
    """
    if node.type not in CACHING_TYPES:
        return 0.0
    spec = node.spec
    try:
        rate = float(spec.hit_rate)
    except (TypeError, ValueError):
        return 0.0

    ttl = spec.cache_ttl if node.type == ComponentType.CDN else spec.default_ttl
    if ttl > 7200:
        rate += 0.05
    elif ttl < 600:
        rate -= 0.15

    if node.type == ComponentType.CACHE:
        if spec.read_strategy == "read-through":
            rate += 0.05
        if spec.write_strategy == "write-through":
            rate += 0.02
        elif spec.write_strategy == "write-behind":
            rate -= 0.01
        if spec.eviction_policy == "lfu":
            rate += 0.02
        elif spec.eviction_policy in ("fifo", "random"):
            rate -= 0.02
    return min(max(rate, 0.0), 0.99)


# =============================================================================
# Edges
# =============================================================================

def edge_capacity(connection: Connection) -> float:
    """Throughput hint scaled by the protocol multiplier, or unbounded."""
    if connection.throughput_qps is None:
        return UNBOUNDED
    hint = _finite_non_negative(float(connection.throughput_qps))
    return hint * protocol_factors(connection.protocol).capacity_multiplier


def edge_latency_ms(protocol: Protocol, source_utilization: float) -> float:
    """Protocol overhead plus a congestion term proportional to source utilization."""
    u = min(max(source_utilization, 0.0), MAX_CONGESTION_UTILIZATION)
    return protocol_factors(protocol).overhead_ms + EDGE_CONGESTION_MS * u


def edge_latency_parts(protocol: Protocol, source_utilization: float) -> Tuple[float, float]:
    """(fixed, congestion) components of an edge's latency."""
    u = min(max(source_utilization, 0.0), MAX_CONGESTION_UTILIZATION)
    return protocol_factors(protocol).overhead_ms, EDGE_CONGESTION_MS * u


def packet_loss_rate(protocol: Protocol) -> float:
    return protocol_factors(protocol).packet_loss_rate


# =============================================================================
# Classification
# =============================================================================

OVERLOADED = "overloaded"
HIGH_UTILIZATION = "high_utilization"


def classify_utilization(
    node_utilization: float,
    high_threshold: float = 0.8,
    overload_threshold: float = 1.0,
) -> Optional[Tuple[str, str]]:
    """
    Map utilization to a (event, severity) pair.

    Returns ("overloaded", "critical") at or above the overload threshold,
    ("high_utilization", "warning") inside the high band, otherwise None.
    """
    if node_utilization >= overload_threshold:
        return OVERLOADED, "critical"
    if node_utilization >= high_threshold:
        return HIGH_UTILIZATION, "warning"
    return None
