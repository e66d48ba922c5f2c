"""
compiler.py - Compile agent definitions into GitHub Actions workflows.

Pipeline for one file:

    read -> split header/body -> resolve blueprint (if ``extends``)
         -> schema -> business rules -> generate -> self-validate

compile_all additionally rejects duplicate agent names and builds the shared
dispatcher from every agent that compiled cleanly.

The compiler is a pure function of its inputs: it performs no network I/O
(remote blueprints need a caller-supplied loader) and shares no state between
calls.

Usage:
    from repo_agents.compiler import compile_all, write_artifacts

    result = compile_all(sorted(Path(".github/agents").glob("*.md")))
    if result.ok:
        write_artifacts(result, Path(".github/workflows"))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from repo_agents.blueprint import Fetcher, is_blueprint, parse_blueprint_content, resolve_instance
from repo_agents.config import CompilerConfig, load_compiler_config
from repo_agents.errors import Stage, ValidationError, ValidationResult, error
from repo_agents.generator.dispatcher import generate_dispatcher
from repo_agents.generator.ir import Workflow, render_workflow
from repo_agents.generator.schema_check import validate_workflow_yaml
from repo_agents.generator.workflow import generate_workflow
from repo_agents.naming import agent_workflow_file
from repo_agents.parser import AgentDefinition, build_definition, read_file, read_frontmatter

logger = logging.getLogger(__name__)

GENERATED_HEADER = "# Generated by repo-agents from {source}. Do not edit by hand.\n"


# =============================================================================
# Results
# =============================================================================


@dataclass
class CompileResult:
    """Outcome of compiling one definition file.

    ``yaml`` is set only when the definition compiled without errors.
    ``skipped`` marks blueprint files, which are templates and produce no workflow.
    """

    source: Optional[str] = None
    definition: Optional[AgentDefinition] = None
    workflow: Optional[Workflow] = None
    yaml: Optional[str] = None
    errors: List[ValidationError] = field(default_factory=list)
    warnings: List[ValidationError] = field(default_factory=list)
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def workflow_file(self) -> Optional[str]:
        if self.definition is None:
            return None
        return agent_workflow_file(self.definition.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "agent": self.definition.name if self.definition else None,
            "workflow_file": self.workflow_file,
            "status": "SKIPPED" if self.skipped else ("PASS" if self.ok else "FAIL"),
            "errors": [e.to_dict() for e in sorted(self.errors, key=lambda e: e.sort_key())],
            "warnings": [w.to_dict() for w in sorted(self.warnings, key=lambda w: w.sort_key())],
        }


@dataclass
class CompileAllResult:
    """Outcome of compiling every definition in a repository."""

    results: List[CompileResult] = field(default_factory=list)
    dispatcher: Optional[str] = None
    dispatcher_file: str = "agent-dispatcher.yml"
    dispatcher_errors: List[ValidationError] = field(default_factory=list)

    @property
    def agents(self) -> Dict[str, str]:
        """Generated workflow YAML keyed by definition source."""
        return {r.source or r.workflow_file or "": r.yaml for r in self.results if r.yaml is not None}

    @property
    def ok(self) -> bool:
        return not self.dispatcher_errors and all(r.ok for r in self.results)

    @property
    def error_count(self) -> int:
        return len(self.dispatcher_errors) + sum(len(r.errors) for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": "PASS" if self.ok else "FAIL",
            "compiled": sum(1 for r in self.results if r.yaml is not None),
            "skipped": sum(1 for r in self.results if r.skipped),
            "failed": sum(1 for r in self.results if not r.ok),
            "dispatcher_file": self.dispatcher_file if self.dispatcher is not None else None,
            "dispatcher_errors": [e.to_dict() for e in self.dispatcher_errors],
            "results": [r.to_dict() for r in self.results],
        }


# =============================================================================
# Validation
# =============================================================================


def _finish(findings: Iterable[ValidationError], strict: bool) -> ValidationResult:
    result = ValidationResult(findings)
    if strict:
        result.escalate_warnings()
    return result


def _load_definition(
    content: str,
    source: Optional[str],
    base_dir: Optional[Path],
    loader: Optional[Fetcher],
    config: CompilerConfig,
) -> Tuple[Optional[AgentDefinition], List[ValidationError], bool]:
    """Run every validation layer; returns (definition, findings, is_blueprint)."""
    raw, body, errors = read_frontmatter(content)
    if raw is None:
        return None, errors, False

    if is_blueprint(raw) and "extends" not in raw:
        _, blueprint_errors = parse_blueprint_content(content)
        return None, blueprint_errors, True

    findings: List[ValidationError] = []
    if "extends" in raw and "blueprint" not in raw:
        catalog_dir = Path(config.catalog_dir) if config.catalog_dir else None
        resolution = resolve_instance(raw, body, base_dir=base_dir, catalog_dir=catalog_dir, fetcher=loader)
        findings.extend(resolution.errors)
        if resolution.header is None:
            return None, findings, False
        raw, body = resolution.header, resolution.body

    parsed = build_definition(raw, body, source)
    findings.extend(parsed.errors)
    return parsed.definition, findings, False


def validate_content(
    content: str,
    source: Optional[str] = None,
    base_dir: Optional[Path] = None,
    loader: Optional[Fetcher] = None,
    config: Optional[CompilerConfig] = None,
    strict: bool = False,
) -> List[ValidationError]:
    """Every finding for a definition, without generating anything."""
    config = config or load_compiler_config()
    _, findings, _ = _load_definition(content, source, base_dir, loader, config)
    return _finish(findings, strict or config.strict).all()


def validate_one(path: Path, strict: bool = False, **kwargs: Any) -> List[ValidationError]:
    path = Path(path)
    content, errors = read_file(path)
    if content is None:
        return errors
    kwargs.setdefault("base_dir", path.parent)
    return validate_content(content, source=str(path), strict=strict, **kwargs)


# =============================================================================
# Compilation
# =============================================================================


def _render(workflow: Workflow, source: str) -> Tuple[str, List[ValidationError]]:
    text = GENERATED_HEADER.format(source=source) + render_workflow(workflow)
    return text, validate_workflow_yaml(text)


def compile_content(
    content: str,
    source: Optional[str] = None,
    base_dir: Optional[Path] = None,
    loader: Optional[Fetcher] = None,
    config: Optional[CompilerConfig] = None,
    strict: bool = False,
) -> CompileResult:
    """Compile definition text into a per-agent workflow."""
    config = config or load_compiler_config()
    definition, findings, blueprint = _load_definition(content, source, base_dir, loader, config)
    checked = _finish(findings, strict or config.strict)
    result = CompileResult(
        source=source,
        definition=definition,
        errors=checked.errors,
        warnings=checked.warnings,
        skipped=blueprint,
    )
    if blueprint:
        logger.info("Skipping blueprint %s (templates are not compiled)", source or "<memory>")
        return result
    if definition is None or checked.has_errors():
        result.definition = None
        logger.info("Validation failed for %s with %d error(s)", source or "<memory>", len(checked.errors))
        return result

    workflow = generate_workflow(definition, config)
    text, generation_errors = _render(workflow, source or definition.name)
    if generation_errors:
        logger.error("Generated workflow for %s failed self-validation", definition.name)
        result.errors.extend(generation_errors)
        return result

    result.workflow = workflow
    result.yaml = text
    logger.info("Compiled %s -> %s", source or definition.name, result.workflow_file)
    return result


def compile_one(path: Path, strict: bool = False, **kwargs: Any) -> CompileResult:
    path = Path(path)
    content, errors = read_file(path)
    if content is None:
        return CompileResult(source=str(path), errors=errors)
    kwargs.setdefault("base_dir", path.parent)
    return compile_content(content, source=str(path), strict=strict, **kwargs)


def _assemble(results: Iterable[CompileResult], config: CompilerConfig) -> CompileAllResult:
    """Reject names that collide on a workflow file, then build the dispatcher over every clean agent."""
    outcome = CompileAllResult(dispatcher_file=config.dispatcher_file)
    seen: Dict[str, str] = {}
    definitions: List[AgentDefinition] = []

    for result in results:
        definition = result.definition
        if definition is not None and result.yaml is not None:
            workflow_file = agent_workflow_file(definition.name)
            first = seen.get(workflow_file)
            if first is not None:
                result.errors.append(
                    error(
                        "name",
                        f"Duplicate agent name '{definition.name}': {workflow_file} "
                        f"is already generated from {first}",
                        Stage.BUSINESS_RULE,
                    )
                )
                result.yaml = None
                result.workflow = None
            else:
                seen[workflow_file] = result.source or definition.name
                definitions.append(definition)
        outcome.results.append(result)

    if definitions:
        dispatcher = generate_dispatcher(definitions, config)
        text, errors = _render(dispatcher, config.agents_dir)
        if errors:
            logger.error("Generated dispatcher failed self-validation")
            outcome.dispatcher_errors = errors
        else:
            outcome.dispatcher = text

    logger.info(
        "Compiled %d of %d definition(s)%s",
        len(definitions),
        len(outcome.results),
        ", dispatcher included" if outcome.dispatcher else "",
    )
    return outcome


def compile_all(
    paths: Iterable[Path],
    config: Optional[CompilerConfig] = None,
    strict: bool = False,
    loader: Optional[Fetcher] = None,
) -> CompileAllResult:
    """Compile every definition file and the dispatcher that routes to them.

    A definition whose name maps to the same workflow file as an earlier
    file's name (``Issue Triage`` and ``issue triage``) fails with a ``name``
    error. The dispatcher covers every agent that compiled cleanly.
    """
    config = config or load_compiler_config()
    return _assemble(
        (compile_one(Path(path), strict=strict, config=config, loader=loader) for path in paths), config
    )


def compile_sources(
    sources: Iterable[Tuple[str, str]],
    config: Optional[CompilerConfig] = None,
    strict: bool = False,
    loader: Optional[Fetcher] = None,
) -> CompileAllResult:
    """Like compile_all, over in-memory ``(source, content)`` pairs."""
    config = config or load_compiler_config()
    return _assemble(
        (
            compile_content(content, source=source, strict=strict, config=config, loader=loader)
            for source, content in sources
        ),
        config,
    )


def discover_definitions(agents_dir: Path) -> List[Path]:
    """Definition files in ``agents_dir``, in a stable order."""
    agents_dir = Path(agents_dir)
    if not agents_dir.is_dir():
        return []
    return sorted(agents_dir.glob("*.md"))


def write_artifacts(result: CompileAllResult, workflows_dir: Path) -> List[Path]:
    """Write every generated workflow (and the dispatcher) into ``workflows_dir``."""
    workflows_dir = Path(workflows_dir)
    workflows_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    for compiled in result.results:
        if compiled.yaml is None or compiled.workflow_file is None:
            continue
        target = workflows_dir / compiled.workflow_file
        target.write_text(compiled.yaml, encoding="utf-8")
        written.append(target)
    if result.dispatcher is not None:
        target = workflows_dir / result.dispatcher_file
        target.write_text(result.dispatcher, encoding="utf-8")
        written.append(target)
    logger.info("Wrote %d workflow file(s) to %s", len(written), workflows_dir)
    return written
