"""
Compile and validate endpoints.

Provides REST endpoints for:
- Validating one definition without generating anything
- Compiling one definition into its per-agent workflow
- Compiling a set of definitions into the shared dispatcher

Definitions travel as file text; nothing is read from or written to disk.
Validation failures are ordinary responses with ``status: FAIL``; only a
malformed request is an HTTP error.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from repo_agents.compiler import compile_content, compile_sources, validate_content
from repo_agents.errors import ValidationResult

logger = logging.getLogger(__name__)

router = APIRouter(tags=["compile"])


# =============================================================================
# Pydantic Models
# =============================================================================


class DefinitionRequest(BaseModel):
    """One definition file's text."""

    content: str = Field(..., description="Full definition file text (header and body)")
    source: Optional[str] = Field(default=None, description="File name used in messages")
    strict: bool = Field(default=False, description="Treat warnings as errors")


class DefinitionSource(BaseModel):
    content: str
    source: Optional[str] = None


class DispatcherRequest(BaseModel):
    """Every definition the dispatcher should route to."""

    definitions: List[DefinitionSource] = Field(..., description="Definition files to compile together")
    strict: bool = False


class ValidateResponse(BaseModel):
    status: str
    errors: List[Dict[str, Any]]
    warnings: List[Dict[str, Any]]
    error_count: int
    warning_count: int


class CompileResponse(BaseModel):
    status: str
    agent: Optional[str] = None
    workflow_file: Optional[str] = None
    yaml: Optional[str] = None
    errors: List[Dict[str, Any]]
    warnings: List[Dict[str, Any]]


class DispatcherResponse(BaseModel):
    status: str
    dispatcher_file: Optional[str] = None
    yaml: Optional[str] = None
    workflows: Dict[str, str]
    dispatcher_errors: List[Dict[str, Any]]
    results: List[Dict[str, Any]]


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/validate", response_model=ValidateResponse)
async def validate_definition(request: DefinitionRequest):
    """Run every validation layer over one definition."""
    result = ValidationResult(validate_content(request.content, source=request.source, strict=request.strict))
    logger.info("Validated %s: %d error(s)", request.source or "<request>", len(result.errors))
    return ValidateResponse(**result.to_dict())


@router.post("/compile", response_model=CompileResponse)
async def compile_definition(request: DefinitionRequest):
    """Compile one definition into its per-agent workflow YAML."""
    result = compile_content(request.content, source=request.source, strict=request.strict)
    data = result.to_dict()
    return CompileResponse(
        status=data["status"],
        agent=data["agent"],
        workflow_file=data["workflow_file"],
        yaml=result.yaml,
        errors=data["errors"],
        warnings=data["warnings"],
    )


@router.post("/compile/dispatcher", response_model=DispatcherResponse)
async def compile_dispatcher(request: DispatcherRequest):
    """Compile a set of definitions and the dispatcher that routes to them."""
    if not request.definitions:
        raise HTTPException(status_code=400, detail="At least one definition is required")

    sources = [
        (definition.source or f"definition-{index}.md", definition.content)
        for index, definition in enumerate(request.definitions, start=1)
    ]
    result = compile_sources(sources, strict=request.strict)
    data = result.to_dict()
    workflows = {
        compiled.workflow_file: compiled.yaml
        for compiled in result.results
        if compiled.yaml is not None and compiled.workflow_file is not None
    }
    return DispatcherResponse(
        status=data["status"],
        dispatcher_file=data["dispatcher_file"],
        yaml=result.dispatcher,
        workflows=workflows,
        dispatcher_errors=data["dispatcher_errors"],
        results=data["results"],
    )
