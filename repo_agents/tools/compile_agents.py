#!/usr/bin/env python3
"""
compile_agents.py - Compile or validate agent definitions from the command line.

Commands:
    compile   Compile every definition in the agents directory into workflows
              (plus the dispatcher) and write them to the workflows directory.
    validate  Validate definitions without generating anything.

Exit Codes:
    0 - Success
    1 - Validation failed
    2 - Fatal error (unexpected exception, unreadable directory)

Usage:
    repo-agents compile
    repo-agents compile --agents-dir .github/agents --output-dir .github/workflows --dry-run
    repo-agents validate .github/agents/triage.md --strict --json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from repo_agents.compiler import compile_all, discover_definitions, validate_one, write_artifacts
from repo_agents.config import load_compiler_config
from repo_agents.errors import ValidationError, ValidationResult

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_VALIDATION_FAILED = 1
EXIT_FATAL_ERROR = 2


def _print_findings(findings: List[ValidationError]) -> None:
    for finding in sorted(findings, key=lambda f: f.sort_key()):
        print(f"  {finding.format()}")


def cmd_compile(args: argparse.Namespace) -> int:
    config = load_compiler_config()
    agents_dir = Path(args.agents_dir or config.agents_dir)
    output_dir = Path(args.output_dir or config.workflows_dir)

    paths = discover_definitions(agents_dir)
    if not paths:
        print(f"ERROR: No agent definitions found in {agents_dir}", file=sys.stderr)
        return EXIT_FATAL_ERROR

    result = compile_all(paths, config=config, strict=args.strict)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        for compiled in result.results:
            if compiled.skipped:
                print(f"- {compiled.source}: skipped (blueprint)")
            elif compiled.ok:
                print(f"✓ {compiled.source} -> {compiled.workflow_file}")
            else:
                print(f"✗ {compiled.source}")
            _print_findings(compiled.errors + compiled.warnings)
        if result.dispatcher_errors:
            print(f"✗ {result.dispatcher_file}")
            _print_findings(result.dispatcher_errors)
        elif result.dispatcher is not None:
            print(f"✓ dispatcher -> {result.dispatcher_file}")

    if args.dry_run:
        logger.info("Dry run: nothing written")
        if not args.json:
            for source, text in result.agents.items():
                print(f"\n# --- {source} ---\n{text}")
            if result.dispatcher is not None:
                print(f"\n# --- {result.dispatcher_file} ---\n{result.dispatcher}")
    else:
        written = write_artifacts(result, output_dir)
        if not args.json:
            print(f"\nWrote {len(written)} workflow file(s) to {output_dir}")

    return EXIT_SUCCESS if result.ok else EXIT_VALIDATION_FAILED


def cmd_validate(args: argparse.Namespace) -> int:
    config = load_compiler_config()
    paths = [Path(p) for p in args.paths] or discover_definitions(Path(config.agents_dir))
    if not paths:
        print(f"ERROR: No agent definitions found in {config.agents_dir}", file=sys.stderr)
        return EXIT_FATAL_ERROR

    reports: Dict[str, Any] = {}
    failed = False
    for path in paths:
        result = ValidationResult(validate_one(path, strict=args.strict or config.strict))
        failed = failed or result.has_errors()
        reports[str(path)] = result.to_dict()
        if not args.json:
            print(f"{'✗' if result.has_errors() else '✓'} {path}")
            _print_findings(result.errors + result.warnings)

    if args.json:
        print(json.dumps({"status": "FAIL" if failed else "PASS", "files": reports}, indent=2))
    return EXIT_VALIDATION_FAILED if failed else EXIT_SUCCESS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repo-agents",
        description="Compile agent definitions into GitHub Actions workflows",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit Codes:
  0 - Success
  1 - Validation failed
  2 - Fatal error
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    compile_parser = subparsers.add_parser("compile", help="Compile definitions into workflows")
    compile_parser.add_argument("--agents-dir", help="Directory of agent definitions (default from config)")
    compile_parser.add_argument("--output-dir", help="Directory for generated workflows (default from config)")
    compile_parser.add_argument("--dry-run", action="store_true", help="Print workflows instead of writing them")
    compile_parser.add_argument("--strict", action="store_true", help="Treat warnings as errors")
    compile_parser.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    compile_parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    compile_parser.set_defaults(handler=cmd_compile)

    validate_parser = subparsers.add_parser("validate", help="Validate definitions without generating")
    validate_parser.add_argument("paths", nargs="*", help="Definition files (default: every file in the agents dir)")
    validate_parser.add_argument("--strict", action="store_true", help="Treat warnings as errors")
    validate_parser.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    validate_parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    validate_parser.set_defaults(handler=cmd_validate)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        code = args.handler(args)
    except Exception as e:
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        if args.debug:
            import traceback

            traceback.print_exc(file=sys.stderr)
        sys.exit(EXIT_FATAL_ERROR)
    sys.exit(code)


if __name__ == "__main__":
    main()
