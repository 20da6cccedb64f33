"""Form session lifecycle state machine.

A form goes through three stages, each triggered by one request:

1. initialize() - the submission window opens, a fresh validation token and
   challenge phrase are issued and the form is shown to the user.
2. validate() - the posted data is merged into the session and checked:
   validation token, timing window, then every field. On success the
   validation token is spent, a submission token is issued and the data is
   shown back for confirmation.
3. confirm_submit() - the user follows the confirmation link; the submission
   token it carries must match the one issued by the last successful
   validate().

Stages:
    UNINITIALIZED -> INITIALIZED -> VALIDATED -> SUBMITTED

Every failure re-runs initialize (keeping whatever the user posted) and sets
a top-level error message, so the caller simply shows the form again.
Failures are never raised; validate/confirm_submit return False, or the
FailureCode when called with debug=True.

Usage:
    >>> from formgate.definition import FormDefinition
    >>> from formgate.session import InMemorySessionStore
    >>> definition = FormDefinition.from_dict({
    ...     "formName": "contact",
    ...     "form": {"firstName": {"type": "text", "rules": ["required"]}},
    ... })
    >>> machine = FormStateMachine(definition, InMemorySessionStore(), session_id="sess_1")
    >>> machine.stage
    <SessionStage.UNINITIALIZED: 'uninitialized'>
    >>> machine.initialize()
    True
    >>> machine.stage
    <SessionStage.INITIALIZED: 'initialized'>
"""

import hmac
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from formgate.config import FormConfig, resolve_field_messages, resolve_form_messages
from formgate.definition import FormDefinition
from formgate.events import EventEmitter, FormEvent
from formgate.session import FormSession, SessionStore
from formgate.types import FAIL_TOKEN, EventType, FailureCode, FieldKind, SessionStage
from formgate.validation import DnsPythonResolver, DnsResolver, ValidationEngine


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

LifecycleResult = Union[bool, FailureCode]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_token() -> str:
    """Generate an opaque single-use token (128 bits of randomness)."""
    return secrets.token_hex(16)


def tokens_match(presented: Optional[str], expected: str) -> bool:
    """Compare a presented token with the issued one in constant time.

    The sentinel FAIL_TOKEN never matches, whatever is presented.
    """
    if presented is None or expected == FAIL_TOKEN:
        return False
    return hmac.compare_digest(str(presented).encode("utf-8"), expected.encode("utf-8"))


class FormStateMachine:
    """Runs the initialize/validate/confirm protocol for one form in one session.

    The machine keeps no state of its own between calls: every operation
    reads the FormSession from the store and writes it back, so a new
    instance per request behaves the same as one long-lived instance.

    Attributes:
        definition: The form definition
        store: Where the FormSession is kept
        session_id: Identifier of the client session
        config: Timing window, challenge pool and message overrides
        emitter: Receives one FormEvent per lifecycle operation
        client_address: Network origin of the current request, if known
        page_counter: Page-view count the client reported before reaching the form, if any
    """

    def __init__(
        self,
        definition: FormDefinition,
        store: SessionStore,
        session_id: str,
        config: Optional[FormConfig] = None,
        resolver: Optional[DnsResolver] = None,
        emitter: Optional[EventEmitter] = None,
        clock: Optional[Clock] = None,
        client_address: Optional[str] = None,
        page_counter: Optional[str] = None,
    ):
        self.definition = definition
        self.store = store
        self.session_id = session_id
        self.config = config or FormConfig()
        self.emitter = emitter if emitter is not None else EventEmitter()
        self.client_address = client_address
        self.page_counter = page_counter
        self._clock = clock or utc_now
        self._form_messages = resolve_form_messages(
            definition.form_error_messages, self.config.form_error_messages
        )
        self._engine = ValidationEngine(
            field_messages=resolve_field_messages(
                definition.field_error_messages, self.config.field_error_messages
            ),
            resolver=resolver or DnsPythonResolver(self.config.dns_timeout_seconds),
        )

    @property
    def form_name(self) -> str:
        return self.definition.form_name

    # -- entry operations -------------------------------------------------

    def initialize(self) -> bool:
        """Open a new submission window.

        Issues a new validation token and challenge phrase and withdraws any
        submission token, so a submission always needs a fresh validation.

        Returns:
            True
        """
        session = self._begin()
        self._initialize(session)
        self._save(session)
        logger.info("Form initialized", extra={"form": self.form_name})
        self._emit(EventType.FORM_INITIALIZED, SessionStage.INITIALIZED)
        return True

    def validate(
        self,
        posted: Mapping[str, Any],
        presented_token: Optional[str],
        debug: bool = False,
    ) -> LifecycleResult:
        """Merge posted data into the session and validate it.

        Checks run in order: session initialized, validation token, too fast,
        expired, field data. The first failing check decides the outcome.

        Args:
            posted: Posted form data keyed by field name; keys the definition
                does not declare are ignored
            presented_token: The validation token the request carried
            debug: Return the FailureCode instead of a boolean

        Returns:
            True on success (FailureCode.OK with debug), otherwise False
            (the failing FailureCode with debug)
        """
        session = self._begin()
        code, failed_fields = self._validate(session, posted, presented_token)

        if code is FailureCode.OK:
            self._save(session)
            logger.info("Form validated", extra={"form": self.form_name})
            self._emit(EventType.VALIDATION_PASSED, SessionStage.VALIDATED)
        else:
            self._recover(session, code)
            self._save(session)
            payload: Dict[str, Any] = {"failure": code.name}
            if failed_fields:
                payload["fields"] = failed_fields
            self._emit(EventType.VALIDATION_FAILED, SessionStage.INITIALIZED, payload)

        return self._result(code, debug)

    def confirm_submit(self, presented_token: Optional[str], debug: bool = False) -> LifecycleResult:
        """Check the submission token issued by the last successful validate().

        This is the only operation whose success allows the caller to hand
        the data on. It changes nothing on success; on failure the session
        is re-initialized.

        Args:
            presented_token: The submission token the request carried
            debug: Return the FailureCode instead of a boolean

        Returns:
            True on success (FailureCode.OK with debug), otherwise False
            (FailureCode.BAD_SUBMISSION_LINK with debug)
        """
        session = self._begin()

        if tokens_match(presented_token, session.submission_token):
            code = FailureCode.OK
            self._save(session)
            logger.info("Form submission confirmed", extra={"form": self.form_name})
            self._emit(EventType.SUBMISSION_CONFIRMED, SessionStage.SUBMITTED)
        else:
            code = FailureCode.BAD_SUBMISSION_LINK
            self._recover(session, code)
            self._save(session)
            self._emit(
                EventType.SUBMISSION_REJECTED,
                SessionStage.INITIALIZED,
                {"failure": code.name},
            )

        return self._result(code, debug)

    def clear_field_errors(self) -> None:
        """Reset every field's error flag and message; values are kept."""
        session = self._load()
        if session is None:
            return
        for state in session.fields.values():
            state.clear_error()
        self._save(session)

    def clear_fields(self) -> None:
        """Reset every field's value to empty; error annotations are kept."""
        session = self._load()
        if session is None:
            return
        for state in session.fields.values():
            state.value = state.kind.empty_value
        self._save(session)
        self._emit(EventType.FIELDS_CLEARED, self._stage_of(session))

    def delete_session(self) -> None:
        """Remove the form session from the store."""
        self.store.delete(self.session_id, self.form_name)
        logger.info("Form session deleted", extra={"form": self.form_name})
        self._emit(EventType.SESSION_DELETED, SessionStage.UNINITIALIZED)

    # -- read accessors for the rendering layer ---------------------------

    @property
    def stage(self) -> SessionStage:
        """Current stage, derived from the stored session."""
        return self._stage_of(self._read())

    @property
    def form_error_message(self) -> str:
        return self._read().form_error_message

    @property
    def challenge_text(self) -> str:
        return self._read().challenge_text

    @property
    def validation_token(self) -> str:
        return self._read().validation_token

    @property
    def submission_token(self) -> str:
        return self._read().submission_token

    @property
    def initialized_at(self) -> Optional[datetime]:
        return self._read().initialized_at

    def field_value(self, name: str) -> Any:
        """Current value of a field.

        Raises:
            KeyError: If the definition does not declare the field
        """
        return self._read().fields[name].value

    def field_error(self, name: str) -> bool:
        return self._read().fields[name].error

    def field_error_message(self, name: str) -> str:
        return self._read().fields[name].error_message

    def is_selected(self, name: str, value: Any) -> bool:
        """Whether a select/radio field currently holds ``value``."""
        return self._read().fields[name].value == value

    def is_checked(self, name: str) -> bool:
        return bool(self._read().fields[name].value)

    def field_values(self) -> Dict[str, Any]:
        """Current value of every field, in definition order."""
        return {name: state.value for name, state in self._read().fields.items()}

    def session(self) -> FormSession:
        """A copy of the stored session (a fresh, unsaved one when none is stored)."""
        return self._read()

    def extra_data(self) -> str:
        """Telemetry collected alongside the form data, one "key: value" per line."""
        session = self._read()
        text = f"Session calls: {session.call_count}\nIP: {session.client_address or ''}\n"
        if session.page_counter is not None:
            text += f"counter: {session.page_counter}\n"
        return text

    # -- internals --------------------------------------------------------

    def _validate(
        self,
        session: FormSession,
        posted: Mapping[str, Any],
        presented_token: Optional[str],
    ) -> Tuple[FailureCode, List[str]]:
        if session.initialized_at is None:
            return FailureCode.COOKIES_OR_ORDER_ERROR, []

        # Merge before any check so the user's input survives every failure
        self._merge(session, posted)

        if not tokens_match(presented_token, session.validation_token):
            return FailureCode.BAD_VALIDATION_LINK, []

        now = self._clock()
        if now < session.initialized_at + timedelta(seconds=self.config.min_submit_seconds):
            return FailureCode.TOO_FAST, []
        if now > session.initialized_at + timedelta(seconds=self.config.max_submit_seconds):
            return FailureCode.EXPIRED, []

        result = self._engine.validate(session.fields, session.challenge_text)
        for check in result.checks:
            state = session.fields[check.field]
            state.value = check.value
            state.error = check.error
            state.error_message = check.message
        if not result.is_valid:
            return FailureCode.DATA_INVALID, result.failed_fields

        # The validation token is single-use
        session.validation_token = FAIL_TOKEN
        session.submission_token = new_token()
        return FailureCode.OK, []

    def _merge(self, session: FormSession, posted: Mapping[str, Any]) -> None:
        for name, state in session.fields.items():
            value = posted.get(name)
            if value is not None:
                state.value = value
            elif state.kind is FieldKind.CHECKBOX:
                # Browsers omit unchecked checkboxes
                state.value = False

    def _initialize(self, session: FormSession) -> None:
        session.initialized_at = self._clock()
        session.validation_token = new_token()
        session.challenge_text = secrets.choice(self.config.challenge_pool)
        session.submission_token = FAIL_TOKEN

    def _recover(self, session: FormSession, code: FailureCode) -> None:
        self._initialize(session)
        session.form_error_message = self._form_messages[code]
        logger.warning(
            "Form lifecycle check failed: %s",
            code.name,
            extra={"form": self.form_name, "failure": code.name},
        )

    def _begin(self) -> FormSession:
        session = self._read()
        session.call_count += 1
        if self.client_address is not None:
            session.client_address = self.client_address
        if self.page_counter is not None:
            session.page_counter = self.page_counter
        session.form_error_message = ""
        return session

    def _load(self) -> Optional[FormSession]:
        data = self.store.get(self.session_id, self.form_name)
        if data is None:
            return None
        return FormSession.load(data, self.definition)

    def _read(self) -> FormSession:
        session = self._load()
        return session if session is not None else FormSession.seed(self.definition)

    def _save(self, session: FormSession) -> None:
        self.store.set(self.session_id, self.form_name, session.to_dict())

    @staticmethod
    def _stage_of(session: FormSession) -> SessionStage:
        if session.initialized_at is None:
            return SessionStage.UNINITIALIZED
        if session.submission_token != FAIL_TOKEN:
            return SessionStage.VALIDATED
        return SessionStage.INITIALIZED

    @staticmethod
    def _result(code: FailureCode, debug: bool) -> LifecycleResult:
        return code if debug else code is FailureCode.OK

    def _emit(
        self,
        event_type: EventType,
        stage: SessionStage,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.emitter.emit(
            FormEvent(
                event_id=f"evt_{uuid.uuid4().hex[:16]}",
                type=event_type,
                form_name=self.form_name,
                ts=self._clock(),
                stage=stage,
                payload=payload,
            )
        )


__all__ = [
    "FormStateMachine",
    "LifecycleResult",
    "new_token",
    "tokens_match",
    "utc_now",
]
