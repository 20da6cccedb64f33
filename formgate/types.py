"""Core type definitions for formgate.

This module defines the closed vocabularies used throughout the package:
- SessionStage: Lifecycle stages of a form session
- FailureCode: Numeric failure taxonomy returned by the lifecycle operations
- FieldKind: Control kinds a form field can declare
- RuleName: Built-in validation rule names
- EventType: Lifecycle event types for the event stream

FAIL_TOKEN is the sentinel stored in place of a token that has not been
issued (or has been withdrawn). A presented token never matches it.
"""

from enum import Enum, IntEnum


FAIL_TOKEN = "fail"


class SessionStage(str, Enum):
    """Form session lifecycle stages.

    Every failure path loops back to INITIALIZED.
    """
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    VALIDATED = "validated"
    SUBMITTED = "submitted"


class FailureCode(IntEnum):
    """Outcome codes of validate/confirm_submit.

    The integer value doubles as the index into the top-level error
    message table; 0 means the operation succeeded.
    """
    OK = 0
    DATA_INVALID = 1
    EXPIRED = 2
    TOO_FAST = 3
    BAD_VALIDATION_LINK = 4
    COOKIES_OR_ORDER_ERROR = 5
    BAD_SUBMISSION_LINK = 6


class FieldKind(str, Enum):
    """Kinds of form controls."""
    TEXT = "text"
    TEXTAREA = "textarea"
    PASSWORD = "password"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    HIDDEN = "hidden"

    @property
    def is_choice(self) -> bool:
        """True for controls whose value must be one of a fixed set."""
        return self in (FieldKind.SELECT, FieldKind.RADIO)

    @property
    def empty_value(self):
        """Value a field of this kind holds when nothing was entered."""
        return False if self is FieldKind.CHECKBOX else ""


class RuleName(str, Enum):
    """Built-in validation rules.

    NO_PASSWORD and SELECT_NO_VALUE are not declared in form definitions;
    they name the implicit checks for password and select/radio fields so
    that those checks get their own error messages.
    """
    REQUIRED = "required"
    EMAIL = "email"
    NAME = "name"
    MAX25 = "max25"
    MAX5000 = "max5000"
    MESSAGE = "message"
    MIN2 = "min2"
    US_TELEPHONE = "usTelephone"
    TURING = "turing"
    EMPTY = "empty"
    NO_PASSWORD = "nopassword"
    SELECT_NO_VALUE = "selectnovalue"


class EventType(str, Enum):
    """Lifecycle event types."""
    FORM_INITIALIZED = "form.initialized"
    VALIDATION_PASSED = "validation.passed"
    VALIDATION_FAILED = "validation.failed"
    SUBMISSION_CONFIRMED = "submission.confirmed"
    SUBMISSION_REJECTED = "submission.rejected"
    SESSION_DELETED = "session.deleted"
    FIELDS_CLEARED = "fields.cleared"


__all__ = [
    "FAIL_TOKEN",
    "SessionStage",
    "FailureCode",
    "FieldKind",
    "RuleName",
    "EventType",
]
