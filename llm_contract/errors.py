"""Domain-level issue taxonomy and exceptions for the inference data model."""

from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any


class IssueKind(StrEnum):
    RANGE_VIOLATION = "range_violation"
    SHAPE_VIOLATION = "shape_violation"
    CORRELATION_ERROR = "correlation_error"
    TOKEN_ACCOUNTING_ERROR = "token_accounting_error"
    AMBIGUOUS_SOURCE = "ambiguous_source"
    OUTPUT_LIMIT_WARNING = "output_limit_warning"
    CONTRADICTORY_FUNCTION_PAYLOAD = "contradictory_function_payload"

    @property
    def is_warning(self) -> bool:
        return self in WARNING_KINDS


WARNING_KINDS = frozenset(
    {
        IssueKind.AMBIGUOUS_SOURCE,
        IssueKind.OUTPUT_LIMIT_WARNING,
        IssueKind.CONTRADICTORY_FUNCTION_PAYLOAD,
    }
)


@dataclass(frozen=True)
class ValidationIssue:
    kind: IssueKind
    field: str
    message: str
    value: Any = None
    bound: str | None = None

    def with_prefix(self, prefix: str) -> "ValidationIssue":
        field = f"{prefix}.{self.field}" if self.field else prefix
        return replace(self, field=field)


class ValidationFailed(ValueError):
    """Raised when a caller unwraps a rejected validation result."""

    def __init__(self, errors: tuple[ValidationIssue, ...]) -> None:
        self.errors = errors
        summary = "; ".join(f"{issue.field}: {issue.message}" for issue in errors)
        super().__init__(f"Validation failed: {summary}")


class DependencyFailure(RuntimeError):
    """Raised when an injected service (clock, id generator) fails."""

    def __init__(self, dependency: str) -> None:
        self.dependency = dependency
        super().__init__(f"Injected dependency failed: {dependency}")
