"""
Component Catalog

Static per-type facts used by the simulation engines: display labels,
base processing latency, base capacity for types without a scaling layer,
which types absorb requests, and which types serve hits from a cache.
"""

from typing import Dict, FrozenSet

from .models import ComponentType


COMPONENT_LABELS: Dict[ComponentType, str] = {
    ComponentType.CLIENT: "Client",
    ComponentType.CDN: "CDN",
    ComponentType.LOAD_BALANCER: "Load Balancer",
    ComponentType.API_GATEWAY: "API Gateway",
    ComponentType.APP_SERVER: "App Server",
    ComponentType.CACHE: "Cache",
    ComponentType.DATABASE_SQL: "SQL Database",
    ComponentType.DATABASE_NOSQL: "NoSQL Database",
    ComponentType.OBJECT_STORE: "Object Store",
    ComponentType.MESSAGE_QUEUE: "Message Queue",
}

# Per-request processing latency at zero load (ms)
BASE_LATENCY_MS: Dict[ComponentType, float] = {
    ComponentType.CLIENT: 0.0,
    ComponentType.CDN: 2.0,
    ComponentType.LOAD_BALANCER: 1.0,
    ComponentType.API_GATEWAY: 5.0,
    ComponentType.APP_SERVER: 15.0,
    ComponentType.CACHE: 2.0,
    ComponentType.DATABASE_SQL: 10.0,
    ComponentType.DATABASE_NOSQL: 5.0,
    ComponentType.OBJECT_STORE: 50.0,
    ComponentType.MESSAGE_QUEUE: 5.0,
}

# Capacity of types that carry no scaling layer (rps)
CDN_BASE_CAPACITY_RPS = 50000.0
OBJECT_STORE_CAPACITY_RPS: Dict[str, float] = {
    "standard": 50000.0,
    "infrequent": 20000.0,
    "archive": 1000.0,
}

# Request-flow absorbers: a request reaching one of these is delivered
TERMINAL_TYPES: FrozenSet[ComponentType] = frozenset({
    ComponentType.DATABASE_SQL,
    ComponentType.DATABASE_NOSQL,
    ComponentType.OBJECT_STORE,
    ComponentType.MESSAGE_QUEUE,
})

# Types that serve a fraction of requests from their own cache
CACHING_TYPES: FrozenSet[ComponentType] = frozenset({
    ComponentType.CDN,
    ComponentType.CACHE,
})


def is_entry(ctype: ComponentType) -> bool:
    return ctype == ComponentType.CLIENT


def is_terminal(ctype: ComponentType) -> bool:
    return ctype in TERMINAL_TYPES
