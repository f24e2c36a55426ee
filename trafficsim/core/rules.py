"""
Topology Rules

Connection legality and protocol recommendations between component
types. These are pure classification functions: they never mutate a graph
and are used both for inline editing feedback and as a pre-flight check
before simulation.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .models import ComponentType, Protocol


T = ComponentType

VALID_DOWNSTREAM: Dict[ComponentType, List[ComponentType]] = {
    T.CLIENT: [T.CDN, T.LOAD_BALANCER, T.API_GATEWAY, T.APP_SERVER],
    T.CDN: [T.LOAD_BALANCER, T.APP_SERVER, T.OBJECT_STORE],
    T.LOAD_BALANCER: [T.APP_SERVER],
    T.API_GATEWAY: [T.APP_SERVER],
    T.APP_SERVER: [
        T.CACHE, T.DATABASE_SQL, T.DATABASE_NOSQL,
        T.MESSAGE_QUEUE, T.APP_SERVER, T.OBJECT_STORE,
    ],
    T.CACHE: [T.DATABASE_SQL, T.DATABASE_NOSQL, T.CACHE],
    T.DATABASE_SQL: [T.DATABASE_SQL, T.DATABASE_NOSQL],
    T.DATABASE_NOSQL: [T.DATABASE_SQL, T.DATABASE_NOSQL],
    T.MESSAGE_QUEUE: [T.APP_SERVER],
    T.OBJECT_STORE: [],
}

_DATA_TIER = (T.DATABASE_SQL, T.DATABASE_NOSQL, T.CACHE)
_HTTP_TIER = (T.CDN, T.OBJECT_STORE)


@dataclass(frozen=True)
class ConnectionCheck:
    """Outcome of a connection legality check."""
    valid: bool
    message: Optional[str] = None
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"valid": self.valid}
        if self.message:
            result["message"] = self.message
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result


def _as_type(value: Union[str, ComponentType]) -> Optional[ComponentType]:
    try:
        return ComponentType(value)
    except ValueError:
        return None


def _name(value: Union[str, ComponentType]) -> str:
    return value.value if isinstance(value, ComponentType) else str(value)


def validate_connection(
    source_type: Union[str, ComponentType],
    target_type: Union[str, ComponentType],
) -> ConnectionCheck:
    """
    Check whether ``source_type -> target_type`` is a legal connection.

    Source types missing from the adjacency table are accepted.

    Example:
        >>> validate_connection("object_store", "app_server").valid
        False
    """
    source = _as_type(source_type)
    if source is None or source not in VALID_DOWNSTREAM:
        return ConnectionCheck(valid=True)

    allowed = VALID_DOWNSTREAM[source]
    target = _as_type(target_type)
    if target is not None and target in allowed:
        return ConnectionCheck(valid=True)

    src, tgt = source.value, _name(target_type)
    if not allowed:
        return ConnectionCheck(
            valid=False,
            message=f"{src} cannot have outgoing connections",
            suggestion=f"Remove connection to {tgt}",
        )
    return ConnectionCheck(
        valid=False,
        message=f"{src} should not connect directly to {tgt}",
        suggestion="Valid targets: " + ", ".join(t.value for t in allowed),
    )


def default_protocol(
    source_type: Union[str, ComponentType],
    target_type: Union[str, ComponentType],
) -> Protocol:
    """Protocol a new connection between these types should start with."""
    source, target = _as_type(source_type), _as_type(target_type)
    if target in _DATA_TIER or target == T.MESSAGE_QUEUE:
        return Protocol.TCP
    if target in _HTTP_TIER:
        return Protocol.HTTP
    if source == T.APP_SERVER and target == T.APP_SERVER:
        return Protocol.GRPC
    return Protocol.HTTP


def protocol_warning(
    source_type: Union[str, ComponentType],
    target_type: Union[str, ComponentType],
    protocol: Union[str, Protocol],
) -> Optional[str]:
    """Soft warning for an unusual protocol choice, or None."""
    target = _as_type(target_type)
    try:
        proto = Protocol(protocol)
    except ValueError:
        proto = Protocol.CUSTOM

    if target in _DATA_TIER and proto != Protocol.TCP:
        return ("Databases and caches typically use TCP. "
                "Consider switching to TCP for realistic modeling.")
    if target in _HTTP_TIER and proto != Protocol.HTTP:
        return ("CDNs and object stores typically serve over HTTP. "
                "Consider switching to HTTP.")
    if target == T.MESSAGE_QUEUE and proto == Protocol.UDP:
        return ("Message queues require reliable delivery. "
                "UDP is unreliable, consider TCP.")
    return None
