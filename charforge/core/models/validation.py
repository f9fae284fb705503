"""Validation result models shared by the compiler, the repair engine and the CLI."""

from enum import Enum

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """How serious a validation issue is."""

    ERROR = "error"
    WARNING = "warning"


class ValidationIssue(BaseModel):
    """A single problem found in a catalog or a build."""

    severity: Severity
    category: str = Field(description="Issue family, e.g. 'requirement', 'allocation', 'parse'")
    location: str = Field(description="Signal name, or 'Kind:Name.Field' for catalog issues")
    message: str
    suggestion: str | None = None
    value: int | float | None = Field(
        default=None, description="Signal value that produced the issue, if any"
    )

    def __str__(self) -> str:
        return f"[{self.severity.value}] {self.location}: {self.message}"


class ValidationResult(BaseModel):
    """Collection of validation issues."""

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        """True when there are no ERROR-level issues."""
        return not self.errors

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    def add(self, issue: ValidationIssue) -> None:
        self.issues.append(issue)

    def extend(self, issues: list[ValidationIssue]) -> None:
        self.issues.extend(issues)


# Helper functions to create ValidationIssue with appropriate severity
def ValidationError(
    category: str,
    location: str,
    message: str,
    suggestion: str | None = None,
    value: int | float | None = None,
) -> ValidationIssue:
    """Create an ERROR-level validation issue."""
    return ValidationIssue(
        severity=Severity.ERROR,
        category=category,
        location=location,
        message=message,
        suggestion=suggestion,
        value=value,
    )


def ValidationWarning(
    category: str,
    location: str,
    message: str,
    suggestion: str | None = None,
    value: int | float | None = None,
) -> ValidationIssue:
    """Create a WARNING-level validation issue."""
    return ValidationIssue(
        severity=Severity.WARNING,
        category=category,
        location=location,
        message=message,
        suggestion=suggestion,
        value=value,
    )
