"""Request dispatcher for formgate.

FormController maps an incoming request onto the form state machine by
looking at which stage marker the request carries, and tells the caller
which view to render. It knows nothing about HTTP: the web layer passes in
the query parameters, the posted form data and the session id.

    no marker            -> initialize, clear field errors      -> FORM
    validate=<token>     -> validate(posted, token)             -> CONFIRMATION or FORM
    submit=delete        -> delete the session                  -> REDIRECT
    submit=<token>       -> confirm_submit(token)               -> DELIVER or FORM

The submit marker is checked before the validate marker.

Usage:
    >>> from formgate.definition import FormDefinition
    >>> from formgate.session import InMemorySessionStore
    >>> definition = FormDefinition.from_dict({
    ...     "formName": "contact",
    ...     "form": {"firstName": {"type": "text", "rules": ["required"]}},
    ... })
    >>> controller = FormController(definition, InMemorySessionStore())
    >>> result = controller.handle("sess_1", query={})
    >>> result.view
    <View.FORM: 'form'>
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from formgate.config import FormConfig
from formgate.definition import FormDefinition
from formgate.events import EventEmitter
from formgate.session import SessionStore
from formgate.state_machine import Clock, FormStateMachine
from formgate.types import FailureCode
from formgate.validation import DnsResolver


VALIDATE_MARKER = "validate"
SUBMIT_MARKER = "submit"
DELETE_VALUE = "delete"


class View(str, Enum):
    """What the caller should render after a request."""
    FORM = "form"
    CONFIRMATION = "confirmation"
    DELIVER = "deliver"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class ControllerResult:
    """Outcome of handling one request.

    Attributes:
        view: The view to render
        machine: State machine bound to the request's session, for rendering
        code: Outcome of validate/confirm_submit (None for other requests)
    """
    view: View
    machine: FormStateMachine
    code: Optional[FailureCode] = None

    @property
    def ok(self) -> bool:
        return self.code in (None, FailureCode.OK)


class FormController:
    """Dispatches requests for one form to its state machine.

    Attributes:
        definition: The form definition
        store: Session store shared by every request
        config: Settings handed to each state machine
        emitter: Event emitter shared by every state machine

    Examples:
        >>> from formgate.session import InMemorySessionStore
        >>> definition = FormDefinition.from_dict({
        ...     "formName": "contact",
        ...     "form": {"email": {"type": "text", "rules": ["required"]}},
        ... })
        >>> controller = FormController(definition, InMemorySessionStore())
        >>> controller.handle("sess_1", query={"submit": "delete"}).view
        <View.REDIRECT: 'redirect'>
    """

    def __init__(
        self,
        definition: FormDefinition,
        store: SessionStore,
        config: Optional[FormConfig] = None,
        resolver: Optional[DnsResolver] = None,
        emitter: Optional[EventEmitter] = None,
        clock: Optional[Clock] = None,
    ):
        self.definition = definition
        self.store = store
        self.config = config or FormConfig()
        self.emitter = emitter if emitter is not None else EventEmitter()
        self._resolver = resolver
        self._clock = clock

    def machine(
        self,
        session_id: str,
        client_address: Optional[str] = None,
        page_counter: Optional[str] = None,
    ) -> FormStateMachine:
        """Build the state machine for one request."""
        return FormStateMachine(
            self.definition,
            self.store,
            session_id,
            config=self.config,
            resolver=self._resolver,
            emitter=self.emitter,
            clock=self._clock,
            client_address=client_address,
            page_counter=page_counter,
        )

    def handle(
        self,
        session_id: str,
        query: Mapping[str, Any],
        posted: Optional[Mapping[str, Any]] = None,
        client_address: Optional[str] = None,
        page_counter: Optional[str] = None,
    ) -> ControllerResult:
        """Run the operation the request's stage marker asks for.

        Args:
            session_id: Identifier of the client session
            query: Request query parameters (where the stage markers live)
            posted: Posted form data (only used by the validate stage)
            client_address: Network origin of the request
            page_counter: Page-view count the client reported (e.g. from a cookie)

        Returns:
            ControllerResult naming the view to render
        """
        machine = self.machine(session_id, client_address, page_counter)

        if SUBMIT_MARKER in query:
            token = query[SUBMIT_MARKER]
            if token == DELETE_VALUE:
                machine.delete_session()
                return ControllerResult(view=View.REDIRECT, machine=machine)
            code = machine.confirm_submit(token, debug=True)
            view = View.DELIVER if code is FailureCode.OK else View.FORM
            return ControllerResult(view=view, machine=machine, code=code)

        if VALIDATE_MARKER in query:
            code = machine.validate(posted or {}, query[VALIDATE_MARKER], debug=True)
            view = View.CONFIRMATION if code is FailureCode.OK else View.FORM
            return ControllerResult(view=view, machine=machine, code=code)

        machine.initialize()
        machine.clear_field_errors()
        return ControllerResult(view=View.FORM, machine=machine)

    @staticmethod
    def summary(machine: FormStateMachine) -> str:
        """Plain-text rendering of the collected data for the delivery step.

        The telemetry block comes first, then one "name: value" line per field.
        """
        lines = [f"{name}: {value}" for name, value in machine.field_values().items()]
        return machine.extra_data() + "\n".join(lines) + "\n"


__all__ = [
    "VALIDATE_MARKER",
    "SUBMIT_MARKER",
    "DELETE_VALUE",
    "View",
    "ControllerResult",
    "FormController",
]
