"""
Compiler API - FastAPI REST API over the definition compiler.

Endpoints:
    GET    /api/health               - Health check
    POST   /api/validate             - Validate one definition
    POST   /api/compile              - Compile one definition
    POST   /api/compile/dispatcher   - Compile definitions and the dispatcher
"""

from .server import create_app

__all__ = ["create_app"]
