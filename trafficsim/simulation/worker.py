"""
Engine Worker

Hosts a LiveTickEngine in its own background thread. The interactive
surface and the engine share no mutable state: commands go in through a
FIFO queue, immutable TickFrames and TracedRequests come back through
another. The engine thread ticks at a fixed cadence while running.

Termination is the only cancellation primitive. A restart creates a new
engine id; frames from the previous instance still sitting in the
outbound queue are recognized as stale and dropped by LiveSession.
"""

from __future__ import annotations
import logging
import queue
import threading
import time
from typing import Any, Dict, List, Optional

from ..config.settings import Settings
from ..core.errors import EngineStateError, EngineUnavailable, ValidationError
from ..core.validator import ensure_valid
from .live_engine import EngineState, LiveTickEngine
from .messages import (
    Command,
    EngineUnavailableMessage,
    InitCommand,
    InjectRequestCommand,
    Message,
    PauseCommand,
    SetLoadFactorCommand,
    SetSpeedCommand,
    StartCommand,
    StepCommand,
    TickMessage,
    TraceMessage,
    UpdateNodesCommand,
    parse_command,
)

_STOP = object()
IDLE_POLL_SECONDS = 0.05


class EngineWorker:
    """
    Background execution context for the live engine.

    Example:
        >>> worker = EngineWorker()
        >>> worker.start()
        >>> worker.post(InitCommand(graph))
        >>> worker.post(StartCommand())
        >>> message = worker.get(timeout=1.0)
        >>> worker.terminate()
    """

    def __init__(self, settings: Optional[Settings] = None, seed: Optional[int] = None):
        self.logger = logging.getLogger(__name__)
        self.settings = settings or Settings()
        self.seed = seed
        self.outbox: "queue.Queue[Message]" = queue.Queue()
        self.inbox: "queue.Queue[Any]" = queue.Queue()
        self.engine: Optional[LiveTickEngine] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def engine_id(self) -> Optional[str]:
        return self.engine.engine_id if self.engine is not None else None

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> str:
        """
        Start a fresh engine in a new thread.

        Returns:
            The new engine id

        Raises:
            EngineUnavailable: the background thread could not be started
        """
        with self._lock:
            if self.is_alive:
                return self.engine_id
            self.inbox = queue.Queue()
            self.engine = LiveTickEngine(settings=self.settings, seed=self.seed)
            engine_id = self.engine.engine_id
            self.engine.on_trace = lambda trace: self.outbox.put(TraceMessage(engine_id, trace))
            thread = threading.Thread(
                target=self._run,
                args=(self.engine, self.inbox),
                name=f"trafficsim-engine-{engine_id}",
                daemon=True,
            )
            try:
                thread.start()
            except RuntimeError as e:
                self.engine = None
                raise EngineUnavailable(f"Could not start engine thread: {e}") from e
            self._thread = thread
            self.logger.info(f"Engine worker started: {engine_id}")
            return engine_id

    def terminate(self, timeout: float = 2.0) -> None:
        """Stop the engine thread; queued commands are discarded."""
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self.inbox.put(_STOP)
            thread.join(timeout)
            if thread.is_alive():
                self.logger.warning(f"Engine thread {thread.name} did not stop within {timeout}s")
            self._thread = None
            self.logger.info(f"Engine worker terminated: {self.engine_id}")

    def restart(self) -> str:
        """Terminate and start again under a new engine id."""
        self.terminate()
        return self.start()

    # =========================================================================
    # Surface side
    # =========================================================================

    def post(self, command: Command) -> None:
        """
        Post a command to the engine thread.

        ``init`` graphs are validated here so the caller gets the
        ValidationError directly instead of a silent engine failure.
        """
        if isinstance(command, InitCommand):
            ensure_valid(command.graph)
        if not self.is_alive:
            raise EngineUnavailable("Engine worker is not running")
        self.inbox.put(command)

    def post_dict(self, payload: Dict[str, Any]) -> Command:
        command = parse_command(payload)
        self.post(command)
        return command

    def get(self, timeout: Optional[float] = None) -> Optional[Message]:
        """Next outbound message, or None when none arrives within ``timeout``."""
        try:
            return self.outbox.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[Message]:
        messages = []
        while True:
            try:
                messages.append(self.outbox.get_nowait())
            except queue.Empty:
                return messages

    # =========================================================================
    # Engine thread
    # =========================================================================

    def _run(self, engine: LiveTickEngine, inbox: "queue.Queue[Any]") -> None:
        cadence = self.settings.tick_interval_ms / 1000.0
        next_tick = time.monotonic()
        try:
            while True:
                running = engine.state == EngineState.RUNNING
                wait = max(0.0, next_tick - time.monotonic()) if running else IDLE_POLL_SECONDS
                try:
                    command = inbox.get(timeout=wait)
                except queue.Empty:
                    command = None

                if command is _STOP:
                    break
                if command is not None:
                    self._apply(engine, command)
                    if command.type == "start":
                        next_tick = time.monotonic()
                    continue

                if engine.state == EngineState.RUNNING and time.monotonic() >= next_tick:
                    self.outbox.put(TickMessage(engine.tick()))
                    next_tick += cadence
                    if next_tick < time.monotonic():
                        next_tick = time.monotonic() + cadence
        except Exception as e:
            self.logger.error(f"Engine {engine.engine_id} failed: {e}", exc_info=True)
            self.outbox.put(EngineUnavailableMessage(engine.engine_id, str(e)))

    def _apply(self, engine: LiveTickEngine, command: Command) -> None:
        try:
            if isinstance(command, InitCommand):
                engine.init(command.graph, command.speed, command.load_factor)
            elif isinstance(command, StartCommand):
                engine.start()
            elif isinstance(command, PauseCommand):
                engine.pause()
            elif isinstance(command, StepCommand):
                self.outbox.put(TickMessage(engine.step()))
            elif isinstance(command, InjectRequestCommand):
                engine.inject_request(command.node_id, command.trace_id)
            elif isinstance(command, SetSpeedCommand):
                engine.set_speed(command.value)
            elif isinstance(command, SetLoadFactorCommand):
                engine.set_load_factor(command.value)
            elif isinstance(command, UpdateNodesCommand):
                engine.update_nodes(command.nodes)
        except (EngineStateError, ValidationError) as e:
            self.logger.warning(f"Engine {engine.engine_id} rejected {command.type}: {e}")


class LiveSession:
    """
    Surface-side view of a worker that only accepts frames from the
    current engine instance.
    """

    def __init__(self, worker: Optional[EngineWorker] = None):
        self.worker = worker or EngineWorker()
        self.engine_id: Optional[str] = None
        self.stale_dropped = 0

    def open(self) -> str:
        self.engine_id = self.worker.start()
        return self.engine_id

    def restart(self) -> str:
        self.engine_id = self.worker.restart()
        return self.engine_id

    def close(self) -> None:
        self.worker.terminate()

    def send(self, payload: Dict[str, Any]) -> Command:
        return self.worker.post_dict(payload)

    def next_message(self, timeout: Optional[float] = None) -> Optional[Message]:
        """Next message of the current engine; stale ones are discarded."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            message = self.worker.get(timeout=remaining)
            if message is None:
                return None
            if message.engine_id == self.engine_id:
                return message
            self.stale_dropped += 1
            if deadline is not None and time.monotonic() >= deadline:
                return None
