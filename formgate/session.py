"""Form session state and the session store it lives in.

A FormSession is the per-client, per-form record tracked across the three
protocol stages. It is persisted as a plain dict (camelCase keys) in a
SessionStore keyed by session id and form name, the same way a server-side
session mapping holds it.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from dateutil.parser import isoparse
from typing_extensions import Protocol

from formgate.definition import FormDefinition
from formgate.types import FAIL_TOKEN, FieldKind


logger = logging.getLogger(__name__)


@dataclass
class FieldState:
    """Current value and error annotation of one field.

    Attributes:
        value: Current value (str, or bool for checkboxes)
        kind: Control kind, copied from the form definition
        rules: Validation rule names, copied from the form definition
        possible_values: Allowed values for select/radio fields
        error: Whether the field failed its last validation
        error_message: Message for the failing rule ("" when no error)
    """
    value: Any
    kind: FieldKind
    rules: List[str] = field(default_factory=list)
    possible_values: List[str] = field(default_factory=list)
    error: bool = False
    error_message: str = ""

    def __post_init__(self):
        if isinstance(self.kind, str):
            self.kind = FieldKind(self.kind)

    def clear_error(self) -> None:
        self.error = False
        self.error_message = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "value": self.value,
            "type": self.kind.value,
            "rules": list(self.rules),
            "error": self.error,
            "errorMessage": self.error_message,
        }
        if self.kind.is_choice or self.possible_values:
            result["possibleValues"] = list(self.possible_values)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldState":
        """Create FieldState from dict."""
        return cls(
            value=data.get("value"),
            kind=FieldKind(data["type"]),
            rules=list(data.get("rules", [])),
            possible_values=list(data.get("possibleValues", [])),
            error=bool(data.get("error", False)),
            error_message=data.get("errorMessage", ""),
        )


@dataclass
class FormSession:
    """Persisted state of one form within one client session.

    Attributes:
        form_name: Identifier distinguishing forms sharing one session
        fields: Field state keyed by field name; keys match the form definition
        form_error_message: Current top-level error ("" when none)
        validation_token: Token the next validate call must present
        submission_token: Token the confirm call must present
        initialized_at: Start of the current submission window (None until initialized)
        challenge_text: Phrase the user must type back
        call_count: Number of lifecycle invocations seen
        client_address: Last-seen network origin of the client
        page_counter: Page-view count reported by the client, if any
    """
    form_name: str
    fields: Dict[str, FieldState]
    form_error_message: str = ""
    validation_token: str = FAIL_TOKEN
    submission_token: str = FAIL_TOKEN
    initialized_at: Optional[datetime] = None
    challenge_text: str = ""
    call_count: int = 0
    client_address: Optional[str] = None
    page_counter: Optional[str] = None

    @classmethod
    def seed(cls, definition: FormDefinition) -> "FormSession":
        """Create a fresh session with every field at its initial value."""
        return cls(form_name=definition.form_name, fields=seed_fields(definition))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for storage."""
        return {
            "formName": self.form_name,
            "fields": {name: state.to_dict() for name, state in self.fields.items()},
            "formErrorMessage": self.form_error_message,
            "validationToken": self.validation_token,
            "submissionToken": self.submission_token,
            "initializedAt": self.initialized_at.isoformat() if self.initialized_at else None,
            "challengeText": self.challenge_text,
            "callCount": self.call_count,
            "clientAddress": self.client_address,
            "pageCounter": self.page_counter,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormSession":
        """Create FormSession from its stored form."""
        initialized_at = data.get("initializedAt")
        if isinstance(initialized_at, str):
            initialized_at = isoparse(initialized_at)
        return cls(
            form_name=data["formName"],
            fields={name: FieldState.from_dict(f) for name, f in data.get("fields", {}).items()},
            form_error_message=data.get("formErrorMessage", ""),
            validation_token=data.get("validationToken") or FAIL_TOKEN,
            submission_token=data.get("submissionToken") or FAIL_TOKEN,
            initialized_at=initialized_at,
            challenge_text=data.get("challengeText", ""),
            call_count=int(data.get("callCount", 0)),
            client_address=data.get("clientAddress"),
            page_counter=data.get("pageCounter"),
        )

    @classmethod
    def load(cls, data: Dict[str, Any], definition: FormDefinition) -> "FormSession":
        """Restore a stored session, re-seeding fields that no longer match the definition."""
        session = cls.from_dict(data)
        if set(session.fields) != set(definition.field_names):
            logger.warning(
                "Stored fields do not match the form definition; re-seeding",
                extra={"form": definition.form_name},
            )
            session.fields = seed_fields(definition)
        return session


def seed_fields(definition: FormDefinition) -> Dict[str, FieldState]:
    """Build field state for every field of a definition, without errors."""
    return {
        name: FieldState(
            value=spec.initial_value,
            kind=spec.kind,
            rules=list(spec.rules),
            possible_values=list(spec.possible_values),
        )
        for name, spec in definition.fields.items()
    }


class SessionStore(Protocol):
    """Per-client key-value storage for form sessions.

    Implementations must provide read-your-writes consistency within one
    client session. Records are plain dicts as produced by FormSession.to_dict.
    """

    def get(self, session_id: str, form_name: str) -> Optional[Dict[str, Any]]:
        ...

    def set(self, session_id: str, form_name: str, data: Dict[str, Any]) -> None:
        ...

    def delete(self, session_id: str, form_name: str) -> None:
        ...


class InMemorySessionStore:
    """Process-local SessionStore.

    Records are deep-copied on the way in and out, so a caller holding a
    returned dict cannot change stored state without calling set().

    Examples:
        >>> store = InMemorySessionStore()
        >>> store.set("sess_1", "contact", {"formName": "contact"})
        >>> store.get("sess_1", "contact")
        {'formName': 'contact'}
        >>> store.get("sess_2", "contact") is None
        True
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def get(self, session_id: str, form_name: str) -> Optional[Dict[str, Any]]:
        data = self._sessions.get(session_id, {}).get(form_name)
        return copy.deepcopy(data) if data is not None else None

    def set(self, session_id: str, form_name: str, data: Dict[str, Any]) -> None:
        self._sessions.setdefault(session_id, {})[form_name] = copy.deepcopy(data)

    def delete(self, session_id: str, form_name: str) -> None:
        forms = self._sessions.get(session_id)
        if forms is None:
            return
        forms.pop(form_name, None)
        if not forms:
            del self._sessions[session_id]

    def session_ids(self) -> List[str]:
        """Ids of sessions currently holding at least one form."""
        return list(self._sessions)


__all__ = [
    "FieldState",
    "FormSession",
    "SessionStore",
    "InMemorySessionStore",
    "seed_fields",
]
