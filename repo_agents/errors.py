# repo_agents/errors.py
"""Validation error collection and formatting."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Tuple

# Error message template: [FAIL] stage: field message
ERROR_TEMPLATE = "[{tag}] {stage}: {field} {message}"


class Severity(str, Enum):
    """Whether a validation finding blocks compilation."""

    ERROR = "error"
    WARNING = "warning"


class Stage(str, Enum):
    """Pipeline stage that produced a validation finding."""

    STRUCTURAL = "structural"
    SCHEMA = "schema"
    BLUEPRINT = "blueprint"
    BUSINESS_RULE = "business-rule"
    GENERATION = "generation"


@dataclass(frozen=True)
class ValidationError:
    """Structured validation error.

    Attributes:
        field: Dotted path of the offending header field (e.g. ``permissions.contents``).
        message: Human-readable description of the problem.
        severity: ``error`` blocks compilation, ``warning`` does not.
        stage: Which validation pass produced the finding.
    """

    field: str
    message: str
    severity: Severity = Severity.ERROR
    stage: Stage = Stage.SCHEMA

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def as_error(self) -> "ValidationError":
        """Return a copy escalated to error severity (strict mode)."""
        return ValidationError(self.field, self.message, Severity.ERROR, self.stage)

    def format(self) -> str:
        """Format error message."""
        return ERROR_TEMPLATE.format(
            tag="FAIL" if self.is_error else "WARN",
            stage=self.stage.value,
            field=self.field,
            message=self.message,
        )

    def sort_key(self) -> Tuple[str, str]:
        """Sort key for deterministic ordering."""
        return (self.field, self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            "field": self.field,
            "message": self.message,
            "severity": self.severity.value,
            "stage": self.stage.value,
        }


def error(field: str, message: str, stage: Stage = Stage.SCHEMA) -> ValidationError:
    return ValidationError(field, message, Severity.ERROR, stage)


def warning(field: str, message: str, stage: Stage = Stage.SCHEMA) -> ValidationError:
    return ValidationError(field, message, Severity.WARNING, stage)


def has_errors(errors: Iterable[ValidationError]) -> bool:
    """True if any finding in ``errors`` has error severity."""
    return any(e.is_error for e in errors)


class ValidationResult:
    """Collects validation errors and warnings."""

    def __init__(self, findings: Iterable[ValidationError] = ()):
        self.errors: List[ValidationError] = []
        self.warnings: List[ValidationError] = []
        for finding in findings:
            self.add(finding)

    def add(self, finding: ValidationError) -> None:
        if finding.is_error:
            self.errors.append(finding)
        else:
            self.warnings.append(finding)

    def add_error(self, field: str, message: str, stage: Stage = Stage.SCHEMA) -> None:
        """Add a validation error."""
        self.errors.append(error(field, message, stage))

    def add_warning(self, field: str, message: str, stage: Stage = Stage.SCHEMA) -> None:
        """Add a validation warning (quality issue, not an error)."""
        self.warnings.append(warning(field, message, stage))

    def extend(self, other: "ValidationResult | Iterable[ValidationError]") -> None:
        """Extend with errors and warnings from another result or a plain list."""
        if isinstance(other, ValidationResult):
            self.errors.extend(other.errors)
            self.warnings.extend(other.warnings)
            return
        for finding in other:
            self.add(finding)

    def escalate_warnings(self) -> None:
        """Promote every warning to an error (strict mode)."""
        self.errors.extend(w.as_error() for w in self.warnings)
        self.warnings = []

    def has_errors(self) -> bool:
        """Check if any errors were collected."""
        return len(self.errors) > 0

    def has_warnings(self) -> bool:
        """Check if any warnings were collected."""
        return len(self.warnings) > 0

    def by_stage(self, stage: Stage) -> List[ValidationError]:
        return [e for e in self.errors + self.warnings if e.stage == stage]

    def all(self) -> List[ValidationError]:
        return self.errors + self.warnings

    def sorted_errors(self) -> List[ValidationError]:
        """Get errors in deterministic order."""
        return sorted(self.errors, key=lambda e: e.sort_key())

    def sorted_warnings(self) -> List[ValidationError]:
        """Get warnings in deterministic order."""
        return sorted(self.warnings, key=lambda e: e.sort_key())

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary for JSON serialization."""
        return {
            "errors": [e.to_dict() for e in self.sorted_errors()],
            "warnings": [w.to_dict() for w in self.sorted_warnings()],
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "status": "FAIL" if self.has_errors() else "PASS",
        }


# =============================================================================
# Exceptions (I/O and programmer errors only)
# =============================================================================


class CompilerError(Exception):
    """Base class for conditions that are not ordinary validation findings."""


class BlueprintResolutionError(CompilerError):
    """A blueprint source could not be located or fetched."""


class GenerationError(CompilerError):
    """A generated artifact failed self-validation and cannot be emitted."""

    def __init__(self, message: str, errors: List[ValidationError]):
        super().__init__(message)
        self.errors = errors
