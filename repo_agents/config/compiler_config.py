"""Compiler configuration registry.

Provides centralized settings for the definition compiler and the
workflows it emits. Environment variables take precedence over YAML config.

Usage:
    from repo_agents.config.compiler_config import load_compiler_config

    config = load_compiler_config()
    config.runner            # "ubuntu-latest"
    config.dispatcher_file   # "agent-dispatcher.yml"

Environment overrides:
    REPO_AGENTS_RUNNER, REPO_AGENTS_AGENTS_DIR, REPO_AGENTS_WORKFLOWS_DIR,
    REPO_AGENTS_CATALOG_DIR, REPO_AGENTS_STRICT
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).parent / "compiler.yaml"
_cached_config: Optional[Dict[str, Any]] = None

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ActionRefs:
    """Pinned references for the third-party actions used in generated workflows."""

    checkout: str = "actions/checkout@v4"
    upload_artifact: str = "actions/upload-artifact@v4"
    download_artifact: str = "actions/download-artifact@v4"
    setup_bun: str = "oven-sh/setup-bun@v2"


@dataclass(frozen=True)
class CompilerConfig:
    """Resolved compiler configuration values."""

    runner: str = "ubuntu-latest"
    agents_dir: str = ".github/agents"
    workflows_dir: str = ".github/workflows"
    catalog_dir: Optional[str] = None
    strict: bool = False
    dispatcher_name: str = "Agent Dispatcher"
    dispatcher_file: str = "agent-dispatcher.yml"
    actions: ActionRefs = field(default_factory=ActionRefs)
    audit_labels: Tuple[str, ...] = ("agent-failure",)


def _load_config() -> Dict[str, Any]:
    """Load compiler.yaml configuration, with caching."""
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            _cached_config = yaml.safe_load(f) or {}
    else:
        _cached_config = _default_config()

    return _cached_config


def _default_config() -> Dict[str, Any]:
    """Return default configuration if compiler.yaml doesn't exist."""
    return {
        "version": "1.0",
        "runner": "ubuntu-latest",
        "agents_dir": ".github/agents",
        "workflows_dir": ".github/workflows",
        "catalog_dir": None,
        "strict": False,
        "dispatcher": {"name": "Agent Dispatcher", "file": "agent-dispatcher.yml"},
        "actions": {},
        "audit": {"default_labels": ["agent-failure"]},
    }


def reset_config() -> None:
    """Reset cached config (for testing)."""
    global _cached_config
    _cached_config = None


def _env_flag(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None:
        return None
    return value.strip().lower() in _TRUTHY


def load_compiler_config() -> CompilerConfig:
    """Resolve the effective configuration.

    Precedence (highest to lowest):
    1. REPO_AGENTS_* environment variables
    2. compiler.yaml values
    3. Dataclass defaults
    """
    raw = _load_config()
    dispatcher = raw.get("dispatcher") or {}
    actions = raw.get("actions") or {}
    audit = raw.get("audit") or {}

    strict = _env_flag("REPO_AGENTS_STRICT")
    if strict is None:
        strict = bool(raw.get("strict", False))

    labels = audit.get("default_labels") or ["agent-failure"]

    config = CompilerConfig(
        runner=os.environ.get("REPO_AGENTS_RUNNER") or raw.get("runner") or "ubuntu-latest",
        agents_dir=os.environ.get("REPO_AGENTS_AGENTS_DIR") or raw.get("agents_dir") or ".github/agents",
        workflows_dir=(
            os.environ.get("REPO_AGENTS_WORKFLOWS_DIR") or raw.get("workflows_dir") or ".github/workflows"
        ),
        catalog_dir=os.environ.get("REPO_AGENTS_CATALOG_DIR") or raw.get("catalog_dir"),
        strict=strict,
        dispatcher_name=dispatcher.get("name", "Agent Dispatcher"),
        dispatcher_file=dispatcher.get("file", "agent-dispatcher.yml"),
        actions=ActionRefs(**{k: v for k, v in actions.items() if k in ActionRefs.__dataclass_fields__}),
        audit_labels=tuple(labels),
    )
    logger.debug("Resolved compiler config: runner=%s strict=%s", config.runner, config.strict)
    return config
