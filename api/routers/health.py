"""
Health check endpoints.
"""

from fastapi import APIRouter
from typing import Dict, Any
from datetime import datetime, timezone

import trafficsim
from api.models import HealthResponse

router = APIRouter()


@router.get("/", response_model=Dict[str, Any])
async def root():
    """Root endpoint - API information"""
    return {
        "name": "Traffic Simulation API",
        "version": trafficsim.__version__,
        "status": "running",
        "endpoints": {
            "health": "/api/v1/health",
            "validate_connection": "/api/v1/topology/validate-connection",
            "validate_graph": "/api/v1/topology/validate",
            "cost": "/api/v1/topology/cost",
            "simulate": "/api/v1/simulation/run",
            "latest_output": "/api/v1/simulation/designs/{design_id}/latest",
            "replay": "/api/v1/simulation/replay",
            "live": "/api/v1/live/ws",
        }
    }


@router.get("/api/v1/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint. Verifies the API is running."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=trafficsim.__version__,
        message="Batch and live simulation available.",
    )
