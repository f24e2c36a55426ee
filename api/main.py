"""
Traffic Simulation API

FastAPI application exposing topology feedback, batch scenario
simulation, trace replay and a live simulation WebSocket.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

import trafficsim
from api.routers import health, live, simulation, topology

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Traffic Simulation API",
    description="API for validating, costing and simulating infrastructure component graphs",
    version=trafficsim.__version__,
)

# Configure CORS to allow frontend access from any origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when allow_origins is "*"
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(topology.router)
app.include_router(simulation.router)
app.include_router(live.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
