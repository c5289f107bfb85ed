"""
FastAPI REST API server for leadflow.

Exposes flow validation, layout, templates and persona simulation over HTTP.

Usage:
    # Run standalone
    python -m leadflow.api.server

    # Or via factory
    from leadflow.api import create_app
    app = create_app()
    uvicorn.run(app, port=5001)

API Structure:
    /api/flows/        - Validation, layout and template endpoints (routes/flows.py)
    /api/simulations/  - Persona, run, batch and test case endpoints (routes/simulations.py)
    /api/health        - Health check
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from leadflow.config.runtime_config import (
    get_batch_run_delay_seconds,
    get_resolver_mode,
    get_turn_delay_seconds,
)
from leadflow.simulation.resolvers import (
    BatchSummarizer,
    TurnResolver,
    create_batch_summarizer,
    create_turn_resolver,
)

from .routes import flows_router, simulations_router

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    status: str
    timestamp: str
    version: str
    resolver_mode: str


def create_app(
    resolver: Optional[TurnResolver] = None,
    summarizer: Optional[BatchSummarizer] = None,
    turn_delay: Optional[float] = None,
    run_delay: Optional[float] = None,
    enable_cors: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        resolver: Turn resolver for simulations. Defaults to the configured one.
        summarizer: Batch summarizer. Defaults to the configured one (none in stub mode).
        turn_delay: Pacing between turns. Defaults to config.
        run_delay: Pacing between batch runs. Defaults to config.
        enable_cors: Whether to enable CORS middleware.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "leadflow API starting (resolver=%s)",
            type(app.state.resolver).__name__,
        )
        yield
        logger.info("leadflow API shutting down...")

    app = FastAPI(
        title="leadflow API",
        description="Validate, lay out and simulate conversation flows.",
        version=API_VERSION,
        lifespan=lifespan,
    )

    app.state.resolver = resolver if resolver is not None else create_turn_resolver()
    app.state.summarizer = summarizer if summarizer is not None else create_batch_summarizer()
    app.state.turn_delay = turn_delay if turn_delay is not None else get_turn_delay_seconds()
    app.state.run_delay = run_delay if run_delay is not None else get_batch_run_delay_seconds()

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    app.include_router(flows_router, prefix="/api")
    app.include_router(simulations_router, prefix="/api")

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time
        logger.info(
            "%s %s %s %.3fs",
            request.method,
            request.url.path,
            response.status_code,
            duration,
        )
        return response

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="ok",
            timestamp=datetime.now(timezone.utc).isoformat(),
            version=API_VERSION,
            resolver_mode=get_resolver_mode(),
        )

    return app


def main() -> None:
    """Run the API server."""
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(description="leadflow API server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=5001, help="Port to bind to")
    parser.add_argument("--no-cors", action="store_true", help="Disable CORS")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = create_app(enable_cors=not args.no_cors)

    print(f"Starting leadflow API server at http://{args.host}:{args.port}")
    print("  GET    /api/health                        - Health check")
    print("  POST   /api/flows/validate                - Validate a flow")
    print("  POST   /api/flows/layout                  - Auto-layout a flow")
    print("  GET    /api/flows/templates               - List templates")
    print("  GET    /api/flows/templates/{id}          - Get template")
    print("  GET    /api/simulations/personas          - List personas")
    print("  POST   /api/simulations/run               - Simulate one persona")
    print("  POST   /api/simulations/batch             - Run a batch test")
    print("  POST   /api/simulations/test-cases/run    - Re-run a test case")

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
