"""Outcome of validating and normalizing one entity."""

from dataclasses import dataclass
from typing import Generic, TypeVar

from llm_contract.errors import ValidationFailed, ValidationIssue

T = TypeVar("T")


@dataclass(frozen=True)
class ValidationResult(Generic[T]):
    """Either a normalized value or a non-empty tuple of errors, never both.

    Warnings are non-fatal and may accompany either outcome.
    """

    value: T | None = None
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()

    def __post_init__(self) -> None:
        if (self.value is None) != bool(self.errors):
            raise ValueError("ValidationResult needs exactly one of value or errors")

    @classmethod
    def success(
        cls, value: T, warnings: tuple[ValidationIssue, ...] = ()
    ) -> "ValidationResult[T]":
        return cls(value=value, warnings=warnings)

    @classmethod
    def failure(
        cls, errors: tuple[ValidationIssue, ...], warnings: tuple[ValidationIssue, ...] = ()
    ) -> "ValidationResult[T]":
        return cls(errors=errors, warnings=warnings)

    @property
    def ok(self) -> bool:
        return not self.errors

    def unwrap(self) -> T:
        if self.errors:
            raise ValidationFailed(self.errors)
        return self.value
