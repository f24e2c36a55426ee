"""
Tests for the engine worker and live session.

These run a real background thread and are marked as integration tests.
"""

import time
from unittest.mock import patch

import pytest

from trafficsim.core import ComponentNode, ComponentType, EngineUnavailable, ValidationError
from trafficsim.simulation import EngineWorker, LiveSession
from trafficsim.simulation.messages import (
    InitCommand,
    InjectRequestCommand,
    StartCommand,
    StepCommand,
    TickMessage,
    TraceMessage,
    UpdateNodesCommand,
)

pytestmark = pytest.mark.integration


@pytest.fixture
def worker():
    w = EngineWorker(seed=1)
    yield w
    w.terminate()


def _wait_for(worker, kind, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        message = worker.get(timeout=0.1)
        if isinstance(message, kind):
            return message
    pytest.fail(f"no {kind.__name__} within {timeout}s")


class TestEngineWorker:

    def test_commands_are_applied_in_order(self, worker, chain_graph):
        worker.start()
        worker.post(InitCommand(chain_graph))
        for _ in range(3):
            worker.post(StepCommand())
        ticks = [worker.get(timeout=2.0).frame.tick for _ in range(3)]
        assert ticks == [1, 2, 3]

    def test_invalid_init_is_rejected_on_post(self, worker, no_entry_graph):
        worker.start()
        with pytest.raises(ValidationError):
            worker.post(InitCommand(no_entry_graph))

    def test_post_before_start_raises(self, worker):
        with pytest.raises(EngineUnavailable):
            worker.post(StartCommand())

    def test_rejected_command_keeps_worker_alive(self, worker):
        worker.start()
        worker.post(StepCommand())
        assert worker.get(timeout=0.3) is None
        assert worker.is_alive

    def test_retyping_entry_node_keeps_worker_alive(self, worker, chain_graph):
        worker.start()
        worker.post(InitCommand(chain_graph, load_factor=0.0))
        worker.post(UpdateNodesCommand([ComponentNode("client", ComponentType.APP_SERVER)]))
        worker.post(InjectRequestCommand())
        worker.post(StepCommand())
        message = _wait_for(worker, TickMessage, timeout=2.0)
        assert message.frame.tick == 1
        assert len(message.frame.particles) == 1
        assert worker.is_alive

    def test_thread_start_failure(self, worker):
        with patch(
            "trafficsim.simulation.worker.threading.Thread.start",
            side_effect=RuntimeError("can't start new thread"),
        ):
            with pytest.raises(EngineUnavailable):
                worker.start()
        assert worker.engine is None
        assert not worker.is_alive

    @pytest.mark.slow
    def test_running_engine_emits_ticks(self, worker, chain_graph):
        engine_id = worker.start()
        worker.post(InitCommand(chain_graph))
        worker.post(StartCommand())
        message = _wait_for(worker, TickMessage, timeout=2.0)
        assert message.engine_id == engine_id
        assert message.frame.tick >= 1

    @pytest.mark.slow
    def test_trace_messages_reach_the_surface(self, worker, chain_graph):
        worker.start()
        worker.post(InitCommand(chain_graph, speed=4.0, load_factor=0.0))
        worker.post(InjectRequestCommand(trace_id="t-1"))
        worker.post(StartCommand())
        message = _wait_for(worker, TraceMessage)
        assert message.trace.id == "t-1"
        assert message.trace.completed


class TestLiveSession:

    def test_restart_drops_stale_frames(self, web_graph_dict):
        session = LiveSession(EngineWorker(seed=1))
        try:
            first = session.open()
            session.send({"type": "init", "graph": web_graph_dict})
            session.send({"type": "step"})
            second = session.restart()

            assert second != first
            assert session.next_message(timeout=0.3) is None
            assert session.stale_dropped == 1
        finally:
            session.close()

    def test_messages_of_current_engine_pass(self, web_graph_dict):
        session = LiveSession(EngineWorker(seed=1))
        try:
            engine_id = session.open()
            session.send({"type": "init", "graph": web_graph_dict, "loadFactor": 2})
            session.send({"type": "step"})
            message = session.next_message(timeout=2.0)
            assert message.engine_id == engine_id
            assert message.to_dict()["tick"] == 1
        finally:
            session.close()
