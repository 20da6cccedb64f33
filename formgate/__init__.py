"""formgate: bot-resistant form sessions without JavaScript.

formgate protects a server-rendered form from automated submission while
staying out of the way of people. It provides:
- A three-stage session protocol (initialize -> validate -> confirm) backed
  by one-time tokens, a minimum/maximum submission window and a plain-text
  challenge phrase
- A field validation engine with named rules (required, email, name, max25,
  max5000, message, min2, usTelephone, turing, empty)
- A request dispatcher that maps stage markers to protocol operations
- Lifecycle events for audit and telemetry

Basic usage:
    >>> from formgate import FormController, FormDefinition, InMemorySessionStore
    >>> definition = FormDefinition.from_dict({
    ...     "formName": "contact",
    ...     "form": {"firstName": {"type": "text", "rules": ["required"]}},
    ... })
    >>> controller = FormController(definition, InMemorySessionStore())
    >>> print(controller.handle("sess_1", query={}).view.value)
    form
"""

__version__ = "0.1.0"
__author__ = "formgate developers"

# Version info
VERSION = (0, 1, 0)

# Core exports
from formgate.config import FormConfig
from formgate.definition import FormDefinition
from formgate.runtime import FormController, View
from formgate.session import InMemorySessionStore
from formgate.state_machine import FormStateMachine
from formgate.types import FailureCode, SessionStage

# Package metadata
__all__ = [
    "__version__",
    "VERSION",
    "FormConfig",
    "FormDefinition",
    "FormController",
    "View",
    "InMemorySessionStore",
    "FormStateMachine",
    "FailureCode",
    "SessionStage",
]
