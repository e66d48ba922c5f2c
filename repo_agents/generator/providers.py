"""
providers.py - Adapters for the AI CLIs a generated workflow can run.

The set of providers is closed. Each adapter knows how to install its CLI on
the runner and how to invoke it against a prompt file.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from typing import Dict, List, Optional

from repo_agents.config import CompilerConfig
from repo_agents.parser.schema import PROVIDER_NAMES

from .ir import Step, expr

READ_ONLY_TOOLS = "Read,Glob,Grep"
OUTPUT_TOOLS = "Write(/tmp/outputs/*),Read,Glob,Grep"
OUTPUT_FILE = "/tmp/claude-output.json"

AUTH_ENV: Dict[str, str] = {
    "ANTHROPIC_API_KEY": expr("secrets.ANTHROPIC_API_KEY"),
    "CLAUDE_CODE_OAUTH_TOKEN": expr("secrets.CLAUDE_CODE_OAUTH_TOKEN"),
}


@dataclass(frozen=True)
class ProviderAdapter:
    """Install and invocation details for one AI CLI."""

    name: str
    package: str
    run_verb: str = ""
    supports_tool_allowlist: bool = True

    @property
    def cli(self) -> str:
        return f"bunx --bun {self.package}"

    def install_steps(self, config: CompilerConfig) -> List[Step]:
        return [
            Step(name="Setup Bun", uses=config.actions.setup_bun),
            Step(name=f"Install {self.name}", run=f"{self.cli} --version"),
        ]

    def command(
        self,
        prompt_file: str,
        allowed_tools: str,
        output_file: str = OUTPUT_FILE,
        model: Optional[str] = None,
        bypass_permissions: bool = True,
    ) -> str:
        """Shell command that runs the CLI on ``prompt_file`` and writes JSON to ``output_file``."""
        prompt = f'"$(cat {prompt_file})"'
        if self.run_verb:
            parts = [self.cli, self.run_verb, prompt]
        else:
            parts = [self.cli, f"-p {prompt}"]
        if model:
            parts.append(f"--model {shlex.quote(model)}")
        if self.supports_tool_allowlist:
            parts.append(f'--allowedTools "{allowed_tools}"')
            if bypass_permissions:
                parts.append("--permission-mode bypassPermissions")
            parts.append("--output-format json")
        else:
            parts.append("--format json")
        return " \\\n  ".join(parts) + f" > {output_file}"


PROVIDERS: Dict[str, ProviderAdapter] = {
    "claude-code": ProviderAdapter(name="claude-code", package="@anthropic-ai/claude-code"),
    "opencode": ProviderAdapter(
        name="opencode", package="opencode-ai", run_verb="run", supports_tool_allowlist=False
    ),
}

if set(PROVIDERS) != set(PROVIDER_NAMES):
    raise RuntimeError(f"Provider adapters out of sync with schema: {sorted(set(PROVIDERS) ^ set(PROVIDER_NAMES))}")


def get_provider(name: str) -> ProviderAdapter:
    """Look up a provider adapter.

    Raises:
        ValueError: For a name outside the closed provider set.
    """
    try:
        return PROVIDERS[name]
    except KeyError:
        raise ValueError(f"Unknown provider: {name}") from None


def run_agent_step(
    provider: ProviderAdapter,
    has_outputs: bool,
    model: Optional[str] = None,
) -> Step:
    """The step that executes the agent against /tmp/context.txt."""
    tools = OUTPUT_TOOLS if has_outputs else READ_ONLY_TOOLS
    command = provider.command("/tmp/context.txt", tools, model=model)
    lines = ["cd /tmp/claude"] if has_outputs else []
    lines.append(f'echo "Running {provider.name}..."')
    lines.append(command)
    return Step(
        name=f"Run {provider.name}",
        id="run-agent",
        env={**AUTH_ENV, "GH_TOKEN": expr("github.token")},
        run="\n".join(lines),
    )
