"""
Graph Model

Typed component nodes, connections and the graph container consumed by
both simulation engines.

Configuration of a node is split into:
    - shared layers (scaling, consistency, resilience, trafficControl),
      each applicable to a fixed set of component types
    - a type-specific spec, one dataclass per component type

Wire format uses camelCase keys (sourceId, perInstanceCapacityRps, ...);
snake_case keys are accepted as a fallback.
"""

from __future__ import annotations
import copy
import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Type

from .errors import ValidationError

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================

class ComponentType(str, Enum):
    """Infrastructure component kinds."""
    CLIENT = "client"
    CDN = "cdn"
    LOAD_BALANCER = "load_balancer"
    API_GATEWAY = "api_gateway"
    APP_SERVER = "app_server"
    CACHE = "cache"
    DATABASE_SQL = "database_sql"
    DATABASE_NOSQL = "database_nosql"
    OBJECT_STORE = "object_store"
    MESSAGE_QUEUE = "message_queue"


class Protocol(str, Enum):
    """Connection protocols."""
    HTTP = "http"
    GRPC = "grpc"
    WEBSOCKET = "websocket"
    TCP = "tcp"
    UDP = "udp"
    CUSTOM = "custom"


class Layer(str, Enum):
    """Shared configuration layers. Values are the wire keys."""
    SCALING = "scaling"
    CONSISTENCY = "consistency"
    RESILIENCE = "resilience"
    TRAFFIC_CONTROL = "trafficControl"

    @property
    def attr(self) -> str:
        return "traffic_control" if self is Layer.TRAFFIC_CONTROL else self.value


# =============================================================================
# Wire helpers
# =============================================================================

def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _pick(data: Dict[str, Any], name: str, default: Any = None) -> Any:
    """Read ``name`` from wire data, camelCase first."""
    camel = _camel(name)
    if camel in data:
        return data[camel]
    return data.get(name, default)


def _coerce(value: Any, default: Any) -> Any:
    """
    Coerce a wire value to the type of ``default``.

    Malformed numbers become 0 so the capacity model treats the node as
    having no capacity instead of failing the whole run.
    """
    if value is None:
        return default
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if isinstance(default, int):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            logger.warning(f"Malformed integer value {value!r}, using 0")
            return 0
    if isinstance(default, float):
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(f"Malformed numeric value {value!r}, using 0")
            return 0.0
    return value


class WireModel:
    """Mixin giving dataclasses camelCase ``from_dict``/``to_dict``."""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]):
        data = data or {}
        defaults = cls()
        kwargs = {}
        for f in fields(cls):
            if f.name == "kind":
                continue
            raw = _pick(data, f.name)
            if raw is None:
                continue
            default = getattr(defaults, f.name)
            # Optional fields are all numeric
            kwargs[f.name] = _coerce(raw, 0.0 if default is None else default)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {_camel(f.name): getattr(self, f.name) for f in fields(self)}


# =============================================================================
# Shared Layers
# =============================================================================

@dataclass
class ScalingConfig(WireModel):
    """Horizontal scaling: capacity = instances x per_instance_capacity_rps."""
    instances: int = 1
    per_instance_capacity_rps: float = 1000.0
    sharding_enabled: bool = False
    shard_count: Optional[int] = None

    @property
    def capacity_rps(self) -> float:
        return max(0.0, self.instances * self.per_instance_capacity_rps)


@dataclass
class ConsistencyConfig(WireModel):
    replication_strategy: str = "leader-follower"
    replication_factor: int = 1


@dataclass
class ResilienceConfig(WireModel):
    circuit_breaker: bool = False
    automatic_retries: bool = False
    retry_backoff: str = "exponential"


@dataclass
class TrafficControlConfig(WireModel):
    rate_limiting: bool = False
    rate_limit: Optional[float] = None
    strategy: str = "token-bucket"

    @property
    def ceiling_rps(self) -> Optional[float]:
        """Hard ceiling in rps, or None when rate limiting is off."""
        if not self.rate_limiting or self.rate_limit is None:
            return None
        return max(0.0, float(self.rate_limit))


LAYER_CLASSES: Dict[Layer, Type[WireModel]] = {
    Layer.SCALING: ScalingConfig,
    Layer.CONSISTENCY: ConsistencyConfig,
    Layer.RESILIENCE: ResilienceConfig,
    Layer.TRAFFIC_CONTROL: TrafficControlConfig,
}


# =============================================================================
# Type-specific Specs (one variant per component type)
# =============================================================================

@dataclass
class ClientSpec(WireModel):
    kind: str = field(default="client", init=False)
    requests_per_second: float = 1000.0


@dataclass
class CdnSpec(WireModel):
    kind: str = field(default="cdn", init=False)
    cache_ttl: int = 3600
    origin_shield: bool = False
    edge_locations: int = 10
    hit_rate: float = 0.85


@dataclass
class LoadBalancerSpec(WireModel):
    kind: str = field(default="load_balancer", init=False)
    algorithm: str = "round-robin"
    health_check_interval: int = 30
    sticky_sessions: bool = False


@dataclass
class ApiGatewaySpec(WireModel):
    kind: str = field(default="api_gateway", init=False)
    auth_enabled: bool = True
    cors_enabled: bool = True


@dataclass
class AppServerSpec(WireModel):
    kind: str = field(default="app_server", init=False)
    instance_type: str = "medium"
    auto_scaling: bool = True
    min_instances: int = 1
    max_instances: int = 10


@dataclass
class CacheSpec(WireModel):
    kind: str = field(default="cache", init=False)
    engine: str = "redis"
    max_memory_gb: float = 1.0
    cluster_mode: bool = False
    eviction_policy: str = "lru"
    default_ttl: int = 3600
    read_strategy: str = "cache-aside"
    write_strategy: str = "write-around"
    hit_rate: float = 0.85


@dataclass
class SqlDatabaseSpec(WireModel):
    kind: str = field(default="database_sql", init=False)
    engine: str = "postgresql"
    read_replicas: int = 0
    connection_pooling: bool = True
    storage_gb: float = 100.0


@dataclass
class NoSqlDatabaseSpec(WireModel):
    kind: str = field(default="database_nosql", init=False)
    engine: str = "dynamodb"
    consistency_level: str = "eventual"
    storage_gb: float = 50.0


@dataclass
class ObjectStoreSpec(WireModel):
    kind: str = field(default="object_store", init=False)
    storage_class: str = "standard"
    versioning: bool = False
    storage_gb: float = 500.0


@dataclass
class MessageQueueSpec(WireModel):
    kind: str = field(default="message_queue", init=False)
    queue_type: str = "standard"
    dead_letter_queue: bool = True
    max_retries: int = 3
    retention_period_hours: int = 168


SPEC_CLASSES: Dict[ComponentType, Type[WireModel]] = {
    ComponentType.CLIENT: ClientSpec,
    ComponentType.CDN: CdnSpec,
    ComponentType.LOAD_BALANCER: LoadBalancerSpec,
    ComponentType.API_GATEWAY: ApiGatewaySpec,
    ComponentType.APP_SERVER: AppServerSpec,
    ComponentType.CACHE: CacheSpec,
    ComponentType.DATABASE_SQL: SqlDatabaseSpec,
    ComponentType.DATABASE_NOSQL: NoSqlDatabaseSpec,
    ComponentType.OBJECT_STORE: ObjectStoreSpec,
    ComponentType.MESSAGE_QUEUE: MessageQueueSpec,
}

_S, _C, _R, _T = Layer.SCALING, Layer.CONSISTENCY, Layer.RESILIENCE, Layer.TRAFFIC_CONTROL

APPLICABLE_LAYERS: Dict[ComponentType, FrozenSet[Layer]] = {
    ComponentType.CLIENT: frozenset(),
    ComponentType.CDN: frozenset({_T}),
    ComponentType.LOAD_BALANCER: frozenset({_S, _R, _T}),
    ComponentType.API_GATEWAY: frozenset({_S, _R, _T}),
    ComponentType.APP_SERVER: frozenset({_S, _R}),
    ComponentType.CACHE: frozenset({_S, _C}),
    ComponentType.DATABASE_SQL: frozenset({_S, _C}),
    ComponentType.DATABASE_NOSQL: frozenset({_S, _C}),
    ComponentType.OBJECT_STORE: frozenset({_C}),
    ComponentType.MESSAGE_QUEUE: frozenset({_S, _C, _T}),
}


def _default_layers(ctype: ComponentType) -> Dict[Layer, WireModel]:
    """Catalog defaults for each applicable layer of a type."""
    scaling = {
        ComponentType.LOAD_BALANCER: ScalingConfig(1, 5000.0),
        ComponentType.API_GATEWAY: ScalingConfig(2, 3000.0),
        ComponentType.APP_SERVER: ScalingConfig(1, 500.0),
        ComponentType.CACHE: ScalingConfig(1, 10000.0),
        ComponentType.DATABASE_SQL: ScalingConfig(1, 500.0),
        ComponentType.DATABASE_NOSQL: ScalingConfig(1, 2000.0),
        ComponentType.MESSAGE_QUEUE: ScalingConfig(1, 5000.0),
    }
    defaults: Dict[Layer, WireModel] = {}
    applicable = APPLICABLE_LAYERS[ctype]
    if Layer.SCALING in applicable:
        defaults[Layer.SCALING] = scaling[ctype]
    if Layer.CONSISTENCY in applicable:
        factor = 3 if ctype == ComponentType.OBJECT_STORE else 1
        defaults[Layer.CONSISTENCY] = ConsistencyConfig(replication_factor=factor)
    if Layer.RESILIENCE in applicable:
        defaults[Layer.RESILIENCE] = ResilienceConfig(
            circuit_breaker=ctype == ComponentType.API_GATEWAY
        )
    if Layer.TRAFFIC_CONTROL in applicable:
        if ctype == ComponentType.API_GATEWAY:
            defaults[Layer.TRAFFIC_CONTROL] = TrafficControlConfig(True, 1000.0)
        else:
            defaults[Layer.TRAFFIC_CONTROL] = TrafficControlConfig()
    return defaults


def _parse_type(value: Any) -> ComponentType:
    try:
        return ComponentType(value)
    except ValueError:
        raise ValidationError([f"Unknown component type: {value!r}"])


def _parse_protocol(value: Any) -> Protocol:
    if value is None:
        return Protocol.HTTP
    if isinstance(value, Protocol):
        return value
    try:
        return Protocol(str(value).lower())
    except ValueError:
        raise ValidationError([f"Unknown protocol: {value!r}"])


# =============================================================================
# Nodes, Connections, Graph
# =============================================================================

@dataclass
class ComponentNode:
    """
    A typed infrastructure component.

    Layers not declared applicable for the node's type are rejected;
    applicable layers left unset take the catalog defaults.

    Example:
        >>> node = ComponentNode("app-1", ComponentType.APP_SERVER,
        ...                      scaling=ScalingConfig(instances=2))
        >>> node.scaling.capacity_rps
        2000.0
    """
    id: str
    type: ComponentType
    name: str = ""
    spec: Optional[WireModel] = None
    scaling: Optional[ScalingConfig] = None
    consistency: Optional[ConsistencyConfig] = None
    resilience: Optional[ResilienceConfig] = None
    traffic_control: Optional[TrafficControlConfig] = None
    x: float = 0.0
    y: float = 0.0

    def __post_init__(self):
        self.type = _parse_type(self.type)
        self.id = str(self.id)
        if not self.name:
            self.name = self.id

        spec_cls = SPEC_CLASSES[self.type]
        if self.spec is None:
            self.spec = spec_cls()
        elif not isinstance(self.spec, spec_cls):
            raise ValidationError([
                f"Node {self.id}: {type(self.spec).__name__} is not a valid spec for {self.type.value}"
            ])

        applicable = APPLICABLE_LAYERS[self.type]
        defaults = _default_layers(self.type)
        for layer in Layer:
            value = getattr(self, layer.attr)
            if layer not in applicable:
                if value is not None:
                    raise ValidationError([
                        f"Node {self.id}: {self.type.value} does not support the {layer.value} layer"
                    ])
                continue
            if value is None:
                setattr(self, layer.attr, copy.deepcopy(defaults[layer]))

    @property
    def applicable_layers(self) -> FrozenSet[Layer]:
        return APPLICABLE_LAYERS[self.type]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComponentNode":
        ctype = _parse_type(data.get("type"))
        shared = (
            data.get("sharedConfig")
            or data.get("shared_config")
            or {k: data[k] for k in [l.value for l in Layer] + ["traffic_control"] if k in data}
        )
        specific = data.get("specificConfig") or data.get("specific_config") or {}
        applicable = APPLICABLE_LAYERS[ctype]

        layers: Dict[str, Any] = {}
        for layer in Layer:
            raw = shared.get(layer.value, shared.get(layer.attr))
            if raw is None:
                continue
            if layer not in applicable:
                logger.debug(f"Dropping {layer.value} layer on {data.get('id')} ({ctype.value})")
                continue
            layers[layer.attr] = LAYER_CLASSES[layer].from_dict(raw)

        position = data.get("position") or {}
        return cls(
            id=data.get("id"),
            type=ctype,
            name=data.get("name") or data.get("label") or "",
            spec=SPEC_CLASSES[ctype].from_dict(specific),
            x=_coerce(position.get("x", data.get("x")), 0.0),
            y=_coerce(position.get("y", data.get("y")), 0.0),
            **layers,
        )

    def to_dict(self) -> Dict[str, Any]:
        shared = {}
        for layer in Layer:
            value = getattr(self, layer.attr)
            if value is not None:
                shared[layer.value] = value.to_dict()
        return {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "position": {"x": self.x, "y": self.y},
            "sharedConfig": shared,
            "specificConfig": self.spec.to_dict(),
        }


@dataclass
class Connection:
    """A directed, typed edge between two nodes."""
    id: str
    source_id: str
    target_id: str
    protocol: Protocol = Protocol.HTTP
    throughput_qps: Optional[float] = None
    bidirectional: bool = False
    label: Optional[str] = None

    def __post_init__(self):
        self.protocol = _parse_protocol(self.protocol)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Connection":
        source = _pick(data, "source_id", data.get("source"))
        target = _pick(data, "target_id", data.get("target"))
        throughput = _pick(data, "throughput_qps")
        return cls(
            id=str(data.get("id") or f"{source}->{target}"),
            source_id=source,
            target_id=target,
            protocol=_parse_protocol(data.get("protocol")),
            throughput_qps=_coerce(throughput, 0.0) if throughput is not None else None,
            bidirectional=bool(data.get("bidirectional", False)),
            label=data.get("label"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "protocol": self.protocol.value,
            "throughputQps": self.throughput_qps,
            "bidirectional": self.bidirectional,
            "label": self.label,
        }


@dataclass
class GraphData:
    """Ordered nodes and connections supplied by the authoring surface."""
    nodes: List[ComponentNode] = field(default_factory=list)
    connections: List[Connection] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GraphData":
        nodes = [ComponentNode.from_dict(n) for n in data.get("nodes", [])]
        edges = data.get("connections", data.get("edges", []))
        return cls(nodes=nodes, connections=[Connection.from_dict(e) for e in edges])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "connections": [c.to_dict() for c in self.connections],
        }

    def copy(self) -> "GraphData":
        return copy.deepcopy(self)

    def node_map(self) -> Dict[str, ComponentNode]:
        return {n.id: n for n in self.nodes}

    def entry_nodes(self) -> List[ComponentNode]:
        return [n for n in self.nodes if n.type == ComponentType.CLIENT]

    def with_nodes(self, updates: List[ComponentNode]) -> "GraphData":
        """
        Copy of the graph with matching nodes replaced by ``updates``.

        Updates may change configuration but never a node's type.
        """
        by_id = {n.id: n for n in updates}
        current = self.node_map()
        unknown = set(by_id) - set(current)
        if unknown:
            logger.warning(f"Ignoring updates for unknown nodes: {sorted(unknown)}")
        retyped = [
            f"Node {node_id}: type cannot change from {current[node_id].type.value} to {node.type.value}"
            for node_id, node in by_id.items()
            if node_id in current and node.type != current[node_id].type
        ]
        if retyped:
            raise ValidationError(retyped)
        nodes = [copy.deepcopy(by_id.get(n.id, n)) for n in self.nodes]
        return GraphData(nodes=nodes, connections=copy.deepcopy(self.connections))
