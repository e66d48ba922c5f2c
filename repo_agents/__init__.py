"""
repo_agents - Compile markdown agent definitions into GitHub Actions workflows.

Usage:
    from repo_agents.compiler import compile_one

    result = compile_one(Path(".github/agents/issue-triage.md"))
    print(result.yaml)
"""

__version__ = "0.1.0"
