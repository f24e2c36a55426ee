"""
Pydantic models for API requests and responses.
"""

from pydantic import BaseModel, Field
from typing import Dict, Any, List, Optional


class GraphRequest(BaseModel):
    graph: Dict[str, Any] = Field(..., description="Design graph: {nodes: [...], connections: [...]}")


class ConnectionCheckRequest(BaseModel):
    source_type: str = Field(..., description="Component type of the connection source")
    target_type: str = Field(..., description="Component type of the connection target")
    protocol: Optional[str] = Field(default=None, description="Protocol to check; defaults to the recommended one")


class SimulationRunRequest(GraphRequest):
    scenarios: Optional[List[Dict[str, Any]]] = Field(
        default=None, description="Scenarios to evaluate; Normal Load and Peak Load when omitted"
    )
    design_id: Optional[str] = Field(default=None, description="Store the output as this design's latest")
    seed: Optional[int] = Field(default=None, description="Random seed for reproducibility")


class ReplayRequest(BaseModel):
    traces: List[Dict[str, Any]] = Field(..., description="Traced requests with ordered hops")
    times_ms: List[float] = Field(..., description="Virtual clock values to render frames at")
    playback_speed: float = Field(default=1.0, ge=0.0, description="Playback speed multiplier")
    stagger_ms: float = Field(default=100.0, ge=0.0, description="Start offset between consecutive requests")
    time_scale: float = Field(default=1.0, ge=0.0, description="Scale applied to hop timestamps")


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    message: Optional[str] = None
