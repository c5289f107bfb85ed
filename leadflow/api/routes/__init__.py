"""
Routes package for the leadflow API.

This package contains the FastAPI routers for:
- flows: Validation, layout and template endpoints
- simulations: Persona, single-run, batch and test case endpoints
"""

from .flows import router as flows_router
from .simulations import router as simulations_router

__all__ = [
    "flows_router",
    "simulations_router",
]
