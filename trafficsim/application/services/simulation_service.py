from typing import Any, Dict, List, Optional, Sequence
import logging

from ...config.settings import Settings
from ...core.cost import cost_breakdown, estimate_design_cost
from ...core.models import GraphData
from ...core.repository import IDesignRepository
from ...core.rules import default_protocol, protocol_warning, validate_connection
from ...core.validator import GraphValidator, ValidationReport
from ...simulation.batch_simulator import BatchSimulator
from ...simulation.models import Scenario, SimulationOutput, TracedRequest
from ...simulation.trace_replay import ReplayFrame, TraceReplay
from ...simulation.worker import EngineWorker, LiveSession

logger = logging.getLogger(__name__)


class SimulationService:
    """
    Use cases for topology feedback, batch evaluation, live sessions and
    trace replay. Stores outputs through the design repository.
    """

    def __init__(self, repository: IDesignRepository, settings: Optional[Settings] = None):
        self.repository = repository
        self.settings = settings or Settings()

    # --- Topology ---

    def check_connection(self, source_type: str, target_type: str, protocol: Optional[str] = None) -> Dict[str, Any]:
        """Inline editing feedback for a single connection."""
        check = validate_connection(source_type, target_type)
        proto = protocol or default_protocol(source_type, target_type).value
        return {
            **check.to_dict(),
            "defaultProtocol": default_protocol(source_type, target_type).value,
            "protocolWarning": protocol_warning(source_type, target_type, proto),
        }

    def validate_graph(self, graph: GraphData) -> ValidationReport:
        return GraphValidator().validate(graph)

    def estimate_cost(self, graph: GraphData) -> Dict[str, Any]:
        return {
            "totalMonthly": estimate_design_cost(graph),
            "breakdown": cost_breakdown(graph),
        }

    # --- Batch ---

    def run_batch(
        self,
        graph: GraphData,
        scenarios: Optional[List[Scenario]] = None,
        design_id: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> SimulationOutput:
        """Run the batch engine; with a design id the design and output are stored."""
        simulator = BatchSimulator(graph, settings=self.settings, seed=seed)
        output = simulator.run(scenarios)
        if design_id:
            self.repository.save_design(design_id, graph)
            self.repository.save_output(design_id, output.to_dict())
            logger.info(f"Stored simulation output for design {design_id}")
        return output

    def latest_output(self, design_id: str) -> Optional[Dict[str, Any]]:
        return self.repository.latest_output(design_id)

    # --- Live & replay ---

    def open_live_session(self, seed: Optional[int] = None) -> LiveSession:
        session = LiveSession(EngineWorker(settings=self.settings, seed=seed))
        session.open()
        return session

    def replay(
        self,
        traces: Sequence[TracedRequest],
        times_ms: Sequence[float],
        playback_speed: float = 1.0,
        stagger_ms: float = 100.0,
        time_scale: float = 1.0,
    ) -> List[ReplayFrame]:
        """Frames of a deterministic replay at each virtual clock value."""
        replay = TraceReplay(traces, playback_speed, stagger_ms, time_scale)
        return [replay.frame_at(t) for t in times_ms]
