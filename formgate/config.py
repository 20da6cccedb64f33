"""Configuration for the form session protocol.

FormConfig carries the caller-tunable settings: the submission time window,
the pool of challenge phrases, message overrides and the DNS timeout used by
the email rule. Message tables are resolved in layers: built-in defaults,
then the form definition's overrides, then the FormConfig overrides.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from formgate.errors import ConfigurationError
from formgate.types import FailureCode, RuleName


DEFAULT_MIN_SUBMIT_SECONDS = 4
DEFAULT_MAX_SUBMIT_SECONDS = 1800
DEFAULT_DNS_TIMEOUT_SECONDS = 3.0

DEFAULT_CHALLENGE_POOL: Tuple[str, ...] = (
    "I am a human",
    "This is not spam",
    "No spam here",
    "Human",
    "I hate spam",
    "Not a spammer",
    "Humans only",
    "No bots",
    "Humans rule",
    "Anti-spam box",
)

# Indexed by FailureCode
DEFAULT_FORM_ERROR_MESSAGES: Tuple[str, ...] = (
    "",
    "The form contains errors. Please correct these errors and submit again.",
    "Your form has expired. Please try again.",
    "The submission of this form appeared to be automated. "
    "Please wait a few seconds and try again.",
    "There was an error processing your form. Please try again.",
    "Your browser must support cookies and have them enabled in order to submit this form.",
    "ERROR: There was an error processing your form. Please try again.",
)

DEFAULT_FIELD_ERROR_MESSAGES: Dict[str, str] = {
    RuleName.EMAIL.value: "Please enter a valid email address",
    RuleName.EMPTY.value: "Please leave this field empty",
    RuleName.MAX25.value: "This field can have no more than 25 characters",
    RuleName.MAX5000.value: "This field must have fewer than 5000 characters",
    RuleName.MESSAGE.value: "Please enter fewer than 5000 characters",
    RuleName.MIN2.value: "This field must have at least 2 characters",
    RuleName.NAME.value: "Please only use letters, spaces, and numbers",
    RuleName.NO_PASSWORD.value: "Please enter your password",
    RuleName.REQUIRED.value: "This field is required",
    RuleName.SELECT_NO_VALUE.value: "Please choose one of the listed options",
    RuleName.TURING.value: "This field is not correct",
    RuleName.US_TELEPHONE.value: "Please enter a valid US telephone number",
}

GENERIC_FIELD_ERROR_MESSAGE = "This field contains an error"


def resolve_form_messages(*overrides: Optional[Sequence[str]]) -> Tuple[str, ...]:
    """Layer top-level message overrides on top of the defaults.

    An empty string at an index keeps the message from the layer below.

    Examples:
        >>> msgs = resolve_form_messages(["", "Fix the form"])
        >>> msgs[1]
        'Fix the form'
        >>> msgs[2] == DEFAULT_FORM_ERROR_MESSAGES[2]
        True
    """
    messages = list(DEFAULT_FORM_ERROR_MESSAGES)
    for layer in overrides:
        if not layer:
            continue
        for index, text in enumerate(layer[: len(messages)]):
            if text != "":
                messages[index] = text
    return tuple(messages)


def resolve_field_messages(*overrides: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Layer per-rule message overrides on top of the defaults."""
    messages = dict(DEFAULT_FIELD_ERROR_MESSAGES)
    for layer in overrides:
        if layer:
            messages.update(layer)
    return messages


@dataclass(frozen=True)
class FormConfig:
    """Caller-tunable settings for a form's session protocol.

    Attributes:
        min_submit_seconds: Minimum seconds between initialize and validate
        max_submit_seconds: Maximum seconds between initialize and validate
        challenge_pool: Phrases one of which the user must type back
        form_error_messages: Top-level message overrides indexed by FailureCode
        field_error_messages: Per-rule message overrides
        dns_timeout_seconds: Bound on each DNS lookup made by the email rule

    Raises:
        ConfigurationError: If the settings are inconsistent

    Examples:
        >>> config = FormConfig(min_submit_seconds=2)
        >>> config.max_submit_seconds
        1800
        >>> FormConfig(min_submit_seconds=10, max_submit_seconds=5)
        Traceback (most recent call last):
        ...
        formgate.errors.ConfigurationError: min_submit_seconds (10) must not exceed max_submit_seconds (5)
    """
    min_submit_seconds: int = DEFAULT_MIN_SUBMIT_SECONDS
    max_submit_seconds: int = DEFAULT_MAX_SUBMIT_SECONDS
    challenge_pool: Tuple[str, ...] = DEFAULT_CHALLENGE_POOL
    form_error_messages: Tuple[str, ...] = ()
    field_error_messages: Mapping[str, str] = field(default_factory=dict, hash=False)
    dns_timeout_seconds: float = DEFAULT_DNS_TIMEOUT_SECONDS

    def __post_init__(self):
        """Validate and normalize settings."""
        for name in ("min_submit_seconds", "max_submit_seconds"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigurationError(f"{name} must be a non-negative integer, got {value!r}")
        if self.min_submit_seconds > self.max_submit_seconds:
            raise ConfigurationError(
                f"min_submit_seconds ({self.min_submit_seconds}) must not exceed "
                f"max_submit_seconds ({self.max_submit_seconds})"
            )
        if isinstance(self.challenge_pool, str):
            raise ConfigurationError("challenge_pool must be a sequence of phrases, not a string")
        object.__setattr__(self, "challenge_pool", tuple(self.challenge_pool))
        if not self.challenge_pool:
            raise ConfigurationError("challenge_pool must contain at least one phrase")
        object.__setattr__(self, "form_error_messages", tuple(self.form_error_messages))
        if len(self.form_error_messages) > len(FailureCode):
            raise ConfigurationError(
                f"form_error_messages accepts at most {len(FailureCode)} entries, "
                f"got {len(self.form_error_messages)}"
            )
        object.__setattr__(
            self, "field_error_messages", MappingProxyType(dict(self.field_error_messages))
        )
        timeout = self.dns_timeout_seconds
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigurationError(
                f"dns_timeout_seconds must be a positive number, got {timeout!r}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "minSubmitSeconds": self.min_submit_seconds,
            "maxSubmitSeconds": self.max_submit_seconds,
            "challengePool": list(self.challenge_pool),
            "dnsTimeoutSeconds": self.dns_timeout_seconds,
        }
        if self.form_error_messages:
            result["formErrorMessages"] = list(self.form_error_messages)
        if self.field_error_messages:
            result["fieldErrorMessages"] = dict(self.field_error_messages)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormConfig":
        """Create FormConfig from dict; missing keys take their defaults."""
        return cls(
            min_submit_seconds=data.get("minSubmitSeconds", DEFAULT_MIN_SUBMIT_SECONDS),
            max_submit_seconds=data.get("maxSubmitSeconds", DEFAULT_MAX_SUBMIT_SECONDS),
            challenge_pool=tuple(data.get("challengePool", DEFAULT_CHALLENGE_POOL)),
            form_error_messages=tuple(data.get("formErrorMessages", ())),
            field_error_messages=dict(data.get("fieldErrorMessages", {})),
            dns_timeout_seconds=data.get("dnsTimeoutSeconds", DEFAULT_DNS_TIMEOUT_SECONDS),
        )


__all__ = [
    "DEFAULT_MIN_SUBMIT_SECONDS",
    "DEFAULT_MAX_SUBMIT_SECONDS",
    "DEFAULT_DNS_TIMEOUT_SECONDS",
    "DEFAULT_CHALLENGE_POOL",
    "DEFAULT_FORM_ERROR_MESSAGES",
    "DEFAULT_FIELD_ERROR_MESSAGES",
    "GENERIC_FIELD_ERROR_MESSAGE",
    "FormConfig",
    "resolve_form_messages",
    "resolve_field_messages",
]
