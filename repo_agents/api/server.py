"""
FastAPI server exposing the definition compiler.

Usage:
    # Run standalone
    python -m repo_agents.api.server

    # Or via factory
    from repo_agents.api import create_app
    app = create_app()
    uvicorn.run(app, port=5001)

API Structure:
    /api/health             - Health check
    /api/validate           - Validate one definition (routes/compile.py)
    /api/compile            - Compile one definition (routes/compile.py)
    /api/compile/dispatcher - Compile definitions plus the dispatcher (routes/compile.py)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from repo_agents import __version__
from repo_agents.parser.schema import OUTPUT_NAMES, PROVIDER_NAMES

from .routes import compile_router

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str
    outputs: int
    providers: list


def create_app(enable_cors: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        enable_cors: Whether to enable CORS middleware.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="Repo Agents Compiler API",
        description="Validate and compile agent definitions into GitHub Actions workflows",
        version=__version__,
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    app.include_router(compile_router, prefix="/api")

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="ok",
            version=__version__,
            timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            outputs=len(OUTPUT_NAMES),
            providers=list(PROVIDER_NAMES),
        )

    return app


# Create default app instance for uvicorn
app = create_app()


def main():
    """Run the API server."""
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(description="Repo Agents Compiler API Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=5001, help="Port to bind to")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument("--no-cors", action="store_true", help="Disable CORS")
    args = parser.parse_args()

    global app
    app = create_app(enable_cors=not args.no_cors)

    print(f"Starting compiler API server at http://{args.host}:{args.port}")
    print("    GET    /api/health              - Health check")
    print("    POST   /api/validate            - Validate a definition")
    print("    POST   /api/compile             - Compile a definition")
    print("    POST   /api/compile/dispatcher  - Compile definitions and the dispatcher")

    uvicorn.run(app, host=args.host, port=args.port, reload=args.debug)


if __name__ == "__main__":
    main()
