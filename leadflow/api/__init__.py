"""
leadflow API - FastAPI REST API over flows and simulations.

Endpoints:
    GET    /api/health                        - Health check
    POST   /api/flows/validate                - Validate a flow document
    POST   /api/flows/layout                  - Auto-layout a flow document
    GET    /api/flows/templates               - List starter templates
    GET    /api/flows/templates/{id}          - Get template with its flow
    GET    /api/simulations/personas          - List built-in personas
    POST   /api/simulations/run               - Simulate one persona
    POST   /api/simulations/batch             - Run a batch test
    POST   /api/simulations/test-cases/run    - Re-run a scripted test case
"""

from .routes import flows_router, simulations_router
from .server import create_app

__all__ = [
    "create_app",
    "flows_router",
    "simulations_router",
]
