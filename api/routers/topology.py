"""
Topology endpoints: connection rules, graph validation and cost.
"""

from fastapi import APIRouter, Depends, HTTPException
from typing import Dict, Any
import logging

from api.dependencies import get_simulation_service
from api.models import ConnectionCheckRequest, GraphRequest
from trafficsim.application.services import SimulationService
from trafficsim.core import GraphData, ValidationError

router = APIRouter(prefix="/api/v1/topology", tags=["topology"])
logger = logging.getLogger(__name__)


@router.post("/validate-connection", response_model=Dict[str, Any])
async def validate_connection(
    request: ConnectionCheckRequest,
    service: SimulationService = Depends(get_simulation_service),
):
    """
    Check a single source -> target connection.

    Returns validity, a message and suggestion for illegal pairs, the
    recommended protocol, and a soft warning for unusual protocol choices.
    """
    result = service.check_connection(request.source_type, request.target_type, request.protocol)
    return {"success": True, **result}


@router.post("/validate", response_model=Dict[str, Any])
async def validate_graph(
    request: GraphRequest,
    service: SimulationService = Depends(get_simulation_service),
):
    """
    Validate a whole design.

    Hard errors (missing endpoints, no entry node, duplicate ids) make the
    design invalid; illegal type pairs and protocol choices are warnings.
    """
    try:
        graph = GraphData.from_dict(request.graph)
        report = service.validate_graph(graph)
        return {"success": True, "report": report.to_dict()}
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())
    except Exception as e:
        logger.error(f"Graph validation failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Graph validation failed: {str(e)}")


@router.post("/cost", response_model=Dict[str, Any])
async def estimate_cost(
    request: GraphRequest,
    service: SimulationService = Depends(get_simulation_service),
):
    """Monthly cost estimate per node and in total."""
    try:
        graph = GraphData.from_dict(request.graph)
        return {"success": True, **service.estimate_cost(graph)}
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())
    except Exception as e:
        logger.error(f"Cost estimation failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Cost estimation failed: {str(e)}")
