"""Error types and result records for formgate.

Protocol failures (a wrong token, a form posted too fast, invalid field data)
are not exceptions: the state machine recovers from them locally and reports
them through FailureCode return values. The exceptions in this module are
raised only for configuration mistakes detected at load time.

FieldCheck is the record the validation engine produces for a single field.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class SchemaViolation:
    """A single problem found while loading a form definition.

    Attributes:
        path: Dot-notation path to the offending element (e.g., "form.email.type")
        message: Human-readable description of the problem

    Examples:
        >>> v = SchemaViolation(path="form.car.type", message="'dropdown' is not one of [...]")
        >>> v.path
        'form.car.type'
    """
    path: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {"path": self.path, "message": self.message}


class FormDefinitionError(ValueError):
    """Raised when a form definition does not have the expected shape.

    Attributes:
        violations: Every problem found, in document order
    """

    def __init__(self, message: str, violations: Optional[List[SchemaViolation]] = None):
        self.violations = list(violations or [])
        if self.violations:
            details = "; ".join(f"{v.path or '<root>'}: {v.message}" for v in self.violations)
            message = f"{message}: {details}"
        super().__init__(message)


class ConfigurationError(ValueError):
    """Raised when a FormConfig holds inconsistent settings."""


@dataclass(frozen=True)
class FieldCheck:
    """Outcome of validating one field.

    Attributes:
        field: Name of the field that was checked
        error: Whether the field failed validation
        rule: Name of the first failing rule (None when the field passed)
        message: Error message for the failing rule ("" when the field passed)
        value: The field value after validation; rules may sanitize or clear it

    Examples:
        >>> check = FieldCheck(field="turingbox", error=True, rule="turing",
        ...                    message="This field is not correct", value="")
        >>> check.error
        True
    """
    field: str
    error: bool
    rule: Optional[str] = None
    message: str = ""
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization (the value is never included)."""
        result: Dict[str, Any] = {
            "field": self.field,
            "error": self.error,
        }
        if self.rule is not None:
            result["rule"] = self.rule
        if self.message:
            result["message"] = self.message
        return result


__all__ = [
    "SchemaViolation",
    "FormDefinitionError",
    "ConfigurationError",
    "FieldCheck",
]
