"""Field validation engine for formgate.

This module checks each field of a form session against the rules its
definition declares and produces one FieldCheck per field.

How a field is checked depends on its kind:
- password: must not be empty (implicit, reported as "nopassword")
- select/radio: value must be one of the declared possible values
  (reported as "selectnovalue"); a field with no possible values always fails
- checkbox: must be checked when "required" is among its rules
- anything else: each declared rule in order; the first failing rule wins and
  the remaining rules of that field are skipped

Rules are looked up in a registry. A rule name the registry does not know is
treated as passing, never as an error.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

import dns.exception
import dns.resolver
from typing_extensions import Protocol

from formgate.config import (
    DEFAULT_DNS_TIMEOUT_SECONDS,
    GENERIC_FIELD_ERROR_MESSAGE,
    resolve_field_messages,
)
from formgate.errors import FieldCheck
from formgate.session import FieldState
from formgate.types import FieldKind, RuleName


logger = logging.getLogger(__name__)


EMAIL_PATTERN = re.compile(
    r"(?=.{3,254}\Z)(?=[^@]{1,64}@)"
    r"[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+)*"
    r"@(?:[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?\.)+[A-Za-z]{2,63}"
)

NAME_PATTERN = re.compile(r"[A-Za-z0-9_ ]*", re.ASCII)

# North American Numbering Plan: optional +1, optional area code (bare or in
# parentheses), exchange, subscriber number, optional extension.
US_TELEPHONE_PATTERN = re.compile(
    r"(?:(?:\+?1\s*(?:[.-]\s*)?)?"
    r"(?:\(\s*([2-9]1[02-9]|[2-9][02-8]1|[2-9][02-8][02-9])\s*\)"
    r"|([2-9]1[02-9]|[2-9][02-8]1|[2-9][02-8][02-9]))\s*(?:[.-]\s*)?)?"
    r"([2-9]1[02-9]|[2-9][02-9]1|[2-9][02-9]{2})\s*(?:[.-]\s*)?"
    r"([0-9]{4})"
    r"(?:\s*(?:#|x\.?|ext\.?|extension)\s*(\d+))?",
    re.ASCII,
)

_TAG_PATTERN = re.compile(r"<[^>]*>?")
_CONTROL_PATTERN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

MAX25_LIMIT = 26
MAX5000_LIMIT = 5000
MIN2_LIMIT = 2

# Record types that prove a mail domain exists, in lookup order
EMAIL_DOMAIN_RECORD_TYPES = ("MX", "A", "AAAA")


class DnsResolver(Protocol):
    """Answers whether a domain has at least one record of a given type."""

    def has_record(self, domain: str, rdtype: str) -> bool:
        ...


class DnsPythonResolver:
    """DnsResolver backed by dnspython.

    Every lookup is bounded by ``timeout`` seconds. Any resolver error,
    including a timeout, is reported as "no record", so the email rule
    fails closed.
    """

    def __init__(self, timeout: float = DEFAULT_DNS_TIMEOUT_SECONDS) -> None:
        self.timeout = timeout
        self._resolver: Optional[dns.resolver.Resolver] = None

    def _get_resolver(self) -> dns.resolver.Resolver:
        if self._resolver is None:
            resolver = dns.resolver.Resolver()
            resolver.timeout = self.timeout
            resolver.lifetime = self.timeout
            self._resolver = resolver
        return self._resolver

    def has_record(self, domain: str, rdtype: str) -> bool:
        try:
            answer = self._get_resolver().resolve(domain, rdtype)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return False
        except dns.exception.Timeout:
            logger.warning(
                "DNS lookup timed out",
                extra={"domain": domain, "rdtype": rdtype, "timeout": self.timeout},
            )
            return False
        except dns.exception.DNSException as exc:
            logger.warning(
                "DNS lookup failed: %s",
                type(exc).__name__,
                extra={"domain": domain, "rdtype": rdtype},
            )
            return False
        return len(answer) > 0


@dataclass(frozen=True)
class RuleContext:
    """Session-dependent inputs some rules need.

    Attributes:
        challenge_text: The session's current challenge phrase
        resolver: DNS lookups for the email rule
    """
    challenge_text: str
    resolver: DnsResolver


@dataclass(frozen=True)
class Rule:
    """A named validation rule.

    Attributes:
        name: Rule name as declared in form definitions
        check: Returns True when the value passes
        sanitize: Optional transform applied to the value before checking;
            the transformed value is kept whether or not the check passes
        clear_on_failure: Whether a failing value is discarded instead of
            being shown back to the user
    """
    name: str
    check: Callable[[Any, RuleContext], bool]
    sanitize: Optional[Callable[[Any], Any]] = None
    clear_on_failure: bool = False


def _text(value: Any) -> str:
    if value is None or value is False:
        return ""
    return str(value)


def sanitize_message(value: Any) -> str:
    """Strip markup and control characters from free text and escape quotes.

    Anything from a "<" up to the next ">" (or to the end of the text when
    there is none) is removed, as are ASCII control characters other than
    tab, newline and carriage return. Quotes become numeric entities.

    Examples:
        >>> sanitize_message('Hi <b>there</b>, "friend"')
        'Hi there, &#34;friend&#34;'
    """
    text = _TAG_PATTERN.sub("", _text(value))
    text = _CONTROL_PATTERN.sub("", text)
    return text.replace('"', "&#34;").replace("'", "&#39;")


def _check_required(value: Any, context: RuleContext) -> bool:
    return _text(value) != ""


def _check_email(value: Any, context: RuleContext) -> bool:
    address = _text(value)
    if not EMAIL_PATTERN.fullmatch(address):
        return False
    domain = address.rsplit("@", 1)[1]
    return any(
        context.resolver.has_record(domain, rdtype)
        for rdtype in EMAIL_DOMAIN_RECORD_TYPES
    )


def _check_name(value: Any, context: RuleContext) -> bool:
    return NAME_PATTERN.fullmatch(_text(value)) is not None


def _check_max25(value: Any, context: RuleContext) -> bool:
    return len(_text(value)) < MAX25_LIMIT


def _check_max5000(value: Any, context: RuleContext) -> bool:
    return len(_text(value)) < MAX5000_LIMIT


def _check_min2(value: Any, context: RuleContext) -> bool:
    return len(_text(value)) >= MIN2_LIMIT


def _check_us_telephone(value: Any, context: RuleContext) -> bool:
    return US_TELEPHONE_PATTERN.fullmatch(_text(value)) is not None


def _check_turing(value: Any, context: RuleContext) -> bool:
    return bool(context.challenge_text) and value == context.challenge_text


def _check_empty(value: Any, context: RuleContext) -> bool:
    return _text(value) == ""


def _always_pass(value: Any, context: RuleContext) -> bool:
    return True


NO_OP_RULE = Rule(name="", check=_always_pass)

RULES: Dict[str, Rule] = {
    rule.name: rule
    for rule in (
        Rule(RuleName.REQUIRED.value, _check_required),
        Rule(RuleName.EMAIL.value, _check_email),
        Rule(RuleName.NAME.value, _check_name),
        Rule(RuleName.MAX25.value, _check_max25),
        Rule(RuleName.MAX5000.value, _check_max5000),
        Rule(RuleName.MESSAGE.value, _check_max5000, sanitize=sanitize_message),
        Rule(RuleName.MIN2.value, _check_min2),
        Rule(RuleName.US_TELEPHONE.value, _check_us_telephone),
        Rule(RuleName.TURING.value, _check_turing, clear_on_failure=True),
        Rule(RuleName.EMPTY.value, _check_empty, clear_on_failure=True),
    )
}


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating every field of a form session.

    Attributes:
        checks: One FieldCheck per field, in field order
    """
    checks: List[FieldCheck] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not any(check.error for check in self.checks)

    @property
    def failed_fields(self) -> List[str]:
        """Names of the fields that failed, in field order."""
        return [check.field for check in self.checks if check.error]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "isValid": self.is_valid,
            "checks": [check.to_dict() for check in self.checks],
        }


class ValidationEngine:
    """Checks field state against declared rules.

    The engine holds no session state; everything session-specific comes in
    through the arguments of check_field/validate.

    Attributes:
        field_messages: Error message per rule name
        resolver: DNS lookups for the email rule

    Examples:
        >>> engine = ValidationEngine()
        >>> state = FieldState(value="", kind="text", rules=["required", "name"])
        >>> check = engine.check_field("firstName", state, challenge_text="Human")
        >>> (check.error, check.rule, check.message)
        (True, 'required', 'This field is required')
    """

    def __init__(
        self,
        field_messages: Optional[Mapping[str, str]] = None,
        resolver: Optional[DnsResolver] = None,
        rules: Optional[Mapping[str, Rule]] = None,
    ) -> None:
        self.field_messages = resolve_field_messages(field_messages)
        self.resolver = resolver if resolver is not None else DnsPythonResolver()
        self._rules = dict(RULES if rules is None else rules)

    def rule(self, name: str) -> Rule:
        """Look up a rule; unknown names resolve to a rule that always passes."""
        return self._rules.get(name, NO_OP_RULE)

    def message_for(self, rule_name: str) -> str:
        return self.field_messages.get(rule_name, GENERIC_FIELD_ERROR_MESSAGE)

    def check_field(self, name: str, state: FieldState, challenge_text: str) -> FieldCheck:
        """Check one field.

        Args:
            name: Field name
            state: Current field state (not modified)
            challenge_text: The session's current challenge phrase

        Returns:
            FieldCheck carrying the outcome and the value the field should
            hold afterwards
        """
        value = state.value

        if state.kind is FieldKind.PASSWORD:
            if _text(value) == "":
                return self._failed(name, RuleName.NO_PASSWORD.value, value)
            return FieldCheck(field=name, error=False, value=value)

        if state.kind.is_choice:
            # No possible values means nothing can be chosen
            if value not in state.possible_values:
                return self._failed(name, RuleName.SELECT_NO_VALUE.value, value)
            return FieldCheck(field=name, error=False, value=value)

        if state.kind is FieldKind.CHECKBOX:
            if RuleName.REQUIRED.value in state.rules and not value:
                return self._failed(name, RuleName.REQUIRED.value, value)
            return FieldCheck(field=name, error=False, value=value)

        context = RuleContext(challenge_text=challenge_text, resolver=self.resolver)
        for rule_name in state.rules:
            rule = self.rule(rule_name)
            if rule.sanitize is not None:
                value = rule.sanitize(value)
            if not rule.check(value, context):
                if rule.clear_on_failure:
                    value = state.kind.empty_value
                return self._failed(name, rule_name, value)
        return FieldCheck(field=name, error=False, value=value)

    def validate(self, fields: Mapping[str, FieldState], challenge_text: str) -> ValidationResult:
        """Check every field.

        Args:
            fields: Field state keyed by field name
            challenge_text: The session's current challenge phrase

        Returns:
            ValidationResult with one FieldCheck per field
        """
        return ValidationResult(
            checks=[
                self.check_field(name, state, challenge_text)
                for name, state in fields.items()
            ]
        )

    def _failed(self, name: str, rule_name: str, value: Any) -> FieldCheck:
        logger.debug("Field failed validation", extra={"field": name, "rule": rule_name})
        return FieldCheck(
            field=name,
            error=True,
            rule=rule_name,
            message=self.message_for(rule_name),
            value=value,
        )


__all__ = [
    "EMAIL_PATTERN",
    "NAME_PATTERN",
    "US_TELEPHONE_PATTERN",
    "DnsResolver",
    "DnsPythonResolver",
    "RuleContext",
    "Rule",
    "RULES",
    "NO_OP_RULE",
    "sanitize_message",
    "ValidationResult",
    "ValidationEngine",
]
