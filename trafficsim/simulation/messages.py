"""
Execution-Boundary Protocol

Typed commands posted from the interactive surface to the live engine,
and the messages the engine posts back. Commands and messages are plain
dataclasses with a JSON-friendly ``to_dict``/``parse_command`` pair so the
same protocol works for in-process queues and WebSockets.

Commands (surface -> engine):
    init{graph, speed, loadFactor}, start, pause, step,
    injectRequest{nodeId?}, setSpeed{value}, setLoadFactor{value},
    updateNodes{nodes}

Messages (engine -> surface):
    tick{engineId, tick, particles, metrics}, trace{engineId, trace},
    engineUnavailable{reason}
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from ..core.errors import ProtocolError, ValidationError
from ..core.models import ComponentNode, GraphData
from .models import TickFrame, TracedRequest


# =============================================================================
# Commands
# =============================================================================

@dataclass(frozen=True)
class InitCommand:
    graph: GraphData
    speed: float = 1.0
    load_factor: float = 1.0
    type: str = field(default="init", init=False)


@dataclass(frozen=True)
class StartCommand:
    type: str = field(default="start", init=False)


@dataclass(frozen=True)
class PauseCommand:
    type: str = field(default="pause", init=False)


@dataclass(frozen=True)
class StepCommand:
    type: str = field(default="step", init=False)


@dataclass(frozen=True)
class InjectRequestCommand:
    node_id: Optional[str] = None
    trace_id: Optional[str] = None
    type: str = field(default="injectRequest", init=False)


@dataclass(frozen=True)
class SetSpeedCommand:
    value: float
    type: str = field(default="setSpeed", init=False)


@dataclass(frozen=True)
class SetLoadFactorCommand:
    value: float
    type: str = field(default="setLoadFactor", init=False)


@dataclass(frozen=True)
class UpdateNodesCommand:
    nodes: List[ComponentNode]
    type: str = field(default="updateNodes", init=False)


Command = Union[
    InitCommand, StartCommand, PauseCommand, StepCommand, InjectRequestCommand,
    SetSpeedCommand, SetLoadFactorCommand, UpdateNodesCommand,
]


def _number(payload: Dict[str, Any], key: str, default: Optional[float] = None) -> float:
    value = payload.get(key, default)
    if value is None:
        raise ProtocolError(f"Command {payload.get('type')!r} requires '{key}'")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ProtocolError(f"'{key}' must be a number, got {value!r}")


def _parse_init(payload: Dict[str, Any]) -> InitCommand:
    graph = payload.get("graph")
    if not isinstance(graph, dict):
        raise ProtocolError("init requires a 'graph' object")
    try:
        graph_data = GraphData.from_dict(graph)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ValidationError([f"Malformed graph: {e}"])
    return InitCommand(
        graph=graph_data,
        speed=_number(payload, "speed", 1.0),
        load_factor=_number(payload, "loadFactor", 1.0),
    )


def _parse_update_nodes(payload: Dict[str, Any]) -> UpdateNodesCommand:
    nodes = payload.get("nodes")
    if not isinstance(nodes, list):
        raise ProtocolError("updateNodes requires a 'nodes' list")
    try:
        parsed = [ComponentNode.from_dict(n) for n in nodes]
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ProtocolError(f"Malformed node in updateNodes: {e}")
    return UpdateNodesCommand(nodes=parsed)


_PARSERS = {
    "init": _parse_init,
    "start": lambda p: StartCommand(),
    "pause": lambda p: PauseCommand(),
    "step": lambda p: StepCommand(),
    "injectRequest": lambda p: InjectRequestCommand(node_id=p.get("nodeId")),
    "setSpeed": lambda p: SetSpeedCommand(value=_number(p, "value")),
    "setLoadFactor": lambda p: SetLoadFactorCommand(value=_number(p, "value")),
    "updateNodes": _parse_update_nodes,
}

COMMAND_TYPES = tuple(_PARSERS)


def parse_command(payload: Dict[str, Any]) -> Command:
    """
    Decode a JSON command object.

    Raises:
        ProtocolError: payload is not an object or its type is unknown
        ValidationError: the init graph cannot be parsed
    """
    if not isinstance(payload, dict):
        raise ProtocolError("Command must be a JSON object")
    command_type = payload.get("type")
    parser = _PARSERS.get(command_type)
    if parser is None:
        raise ProtocolError(
            f"Unknown command type {command_type!r}; expected one of {', '.join(COMMAND_TYPES)}"
        )
    return parser(payload)


# =============================================================================
# Messages
# =============================================================================

@dataclass(frozen=True)
class TickMessage:
    frame: TickFrame
    type: str = field(default="tick", init=False)

    @property
    def engine_id(self) -> str:
        return self.frame.engine_id

    def to_dict(self) -> Dict[str, Any]:
        return self.frame.to_dict()


@dataclass(frozen=True)
class TraceMessage:
    engine_id: str
    trace: TracedRequest
    type: str = field(default="trace", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "engineId": self.engine_id, "trace": self.trace.to_dict()}


@dataclass(frozen=True)
class EngineUnavailableMessage:
    engine_id: str
    reason: str
    type: str = field(default="engineUnavailable", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "engineId": self.engine_id, "reason": self.reason}


Message = Union[TickMessage, TraceMessage, EngineUnavailableMessage]


def error_message(error: Exception) -> Dict[str, Any]:
    """Surface-level error reply; never sent by the engine itself."""
    if isinstance(error, ValidationError):
        return {"type": "error", **error.to_dict()}
    return {"type": "error", "error": type(error).__name__, "message": str(error)}
