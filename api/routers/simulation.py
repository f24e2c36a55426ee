"""
Simulation endpoints: batch scenarios, stored outputs and trace replay.
"""

from fastapi import APIRouter, Depends, HTTPException
from typing import Dict, Any
import logging

from api.dependencies import get_simulation_service
from api.models import ReplayRequest, SimulationRunRequest
from trafficsim.application.services import SimulationService
from trafficsim.core import GraphData, ValidationError
from trafficsim.simulation import Scenario, TracedRequest

router = APIRouter(prefix="/api/v1/simulation", tags=["simulation"])
logger = logging.getLogger(__name__)


@router.post("/run", response_model=Dict[str, Any])
async def run_simulation(
    request: SimulationRunRequest,
    service: SimulationService = Depends(get_simulation_service),
):
    """
    Run the batch scenario engine.

    Evaluates each scenario over a bounded tick horizon and returns:
    - Throughput, latency percentiles and error rate
    - Bottlenecks and per-node diagnostics
    - Threshold pass/fail with a score
    - Structural single points of failure

    A malformed graph is rejected with 400 and the list of issues.
    """
    try:
        graph = GraphData.from_dict(request.graph)
        scenarios = [Scenario.from_dict(s) for s in request.scenarios] if request.scenarios else None
        logger.info(
            f"Running batch simulation: nodes={len(graph.nodes)}, "
            f"scenarios={len(scenarios) if scenarios else 'default'}"
        )
        output = service.run_batch(graph, scenarios, design_id=request.design_id, seed=request.seed)
        return {
            "success": True,
            "design_id": request.design_id,
            "output": output.to_dict(),
        }
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())
    except Exception as e:
        logger.error(f"Batch simulation failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Batch simulation failed: {str(e)}")


@router.get("/designs/{design_id}/latest", response_model=Dict[str, Any])
async def latest_output(
    design_id: str,
    service: SimulationService = Depends(get_simulation_service),
):
    """Most recent stored simulation output of a design."""
    output = service.latest_output(design_id)
    if output is None:
        raise HTTPException(status_code=404, detail=f"No simulation output for design {design_id}")
    return {"success": True, "design_id": design_id, "output": output}


@router.post("/replay", response_model=Dict[str, Any])
async def replay_traces(
    request: ReplayRequest,
    service: SimulationService = Depends(get_simulation_service),
):
    """
    Deterministic replay of traced requests.

    Returns one frame per requested clock value; the same traces and
    parameters always give the same frames.
    """
    try:
        traces = [TracedRequest.from_dict(t) for t in request.traces]
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Malformed trace: {str(e)}")
    try:
        frames = service.replay(
            traces,
            request.times_ms,
            playback_speed=request.playback_speed,
            stagger_ms=request.stagger_ms,
            time_scale=request.time_scale,
        )
        return {"success": True, "frames": [f.to_dict() for f in frames]}
    except Exception as e:
        logger.error(f"Trace replay failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Trace replay failed: {str(e)}")
