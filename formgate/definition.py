"""Form definition loading.

A form definition names a form and describes its fields: each field's kind,
the validation rules it must pass, the values a select/radio control may take
and an optional initial value. Definitions are read once at startup and are
immutable afterwards; their shape is checked against a JSON Schema at load
time so the rest of the package can trust them.

Usage:
    >>> definition = FormDefinition.from_dict({
    ...     "formName": "contact",
    ...     "form": {
    ...         "firstName": {"type": "text", "rules": ["required", "name"]},
    ...         "car": {"type": "select", "possibleValues": ["volvo", "saab"]},
    ...     },
    ... })
    >>> definition.field_names
    ('firstName', 'car')
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft7Validator
from typing_extensions import NotRequired, TypedDict

from formgate.errors import FormDefinitionError, SchemaViolation
from formgate.types import FailureCode, FieldKind


class FieldSpecData(TypedDict):
    """Serialized shape of a single field in a form definition."""
    type: str
    rules: NotRequired[List[str]]
    possibleValues: NotRequired[List[str]]
    value: NotRequired[Any]


class FormDefinitionData(TypedDict):
    """Serialized shape of a form definition."""
    formName: str
    form: Dict[str, FieldSpecData]
    formErrorMessages: NotRequired[List[str]]
    fieldErrorMessages: NotRequired[Dict[str, str]]


FORM_DEFINITION_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["formName", "form"],
    "properties": {
        "formName": {"type": "string", "minLength": 1},
        "form": {
            "type": "object",
            "minProperties": 1,
            "additionalProperties": {
                "type": "object",
                "required": ["type"],
                "properties": {
                    "type": {"enum": [kind.value for kind in FieldKind]},
                    "rules": {"type": "array", "items": {"type": "string"}},
                    "possibleValues": {"type": "array", "items": {"type": "string"}},
                    "value": {"type": ["string", "boolean"]},
                },
                "additionalProperties": False,
            },
        },
        "formErrorMessages": {
            "type": "array",
            "items": {"type": "string"},
            "maxItems": len(FailureCode),
        },
        "fieldErrorMessages": {
            "type": "object",
            "additionalProperties": {"type": "string"},
        },
    },
    "additionalProperties": False,
}

_VALIDATOR = Draft7Validator(FORM_DEFINITION_SCHEMA)


@dataclass(frozen=True)
class FieldSpec:
    """Immutable description of one form field.

    Attributes:
        name: Field name, also the key of posted data
        kind: Control kind
        rules: Validation rule names, evaluated in this order
        possible_values: Allowed values for select/radio fields
        initial_value: Value the field holds before anything is posted
    """
    name: str
    kind: FieldKind
    rules: Tuple[str, ...] = ()
    possible_values: Tuple[str, ...] = ()
    initial_value: Any = None

    def __post_init__(self):
        if isinstance(self.kind, str):
            object.__setattr__(self, "kind", FieldKind(self.kind))
        if self.initial_value is None:
            object.__setattr__(self, "initial_value", self.kind.empty_value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {"type": self.kind.value, "rules": list(self.rules)}
        if self.kind.is_choice or self.possible_values:
            result["possibleValues"] = list(self.possible_values)
        if self.initial_value != self.kind.empty_value:
            result["value"] = self.initial_value
        return result

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "FieldSpec":
        """Create FieldSpec from its serialized form."""
        return cls(
            name=name,
            kind=FieldKind(data["type"]),
            rules=tuple(data.get("rules", ())),
            possible_values=tuple(data.get("possibleValues", ())),
            initial_value=data.get("value"),
        )


@dataclass(frozen=True)
class FormDefinition:
    """Immutable description of a form.

    Attributes:
        form_name: Identifier distinguishing forms that share one session
        fields: Field specs keyed by field name, in declaration order
        form_error_messages: Top-level message overrides indexed by FailureCode
        field_error_messages: Per-rule message overrides
    """
    form_name: str
    fields: Dict[str, FieldSpec]
    form_error_messages: Tuple[str, ...] = ()
    field_error_messages: Dict[str, str] = field(default_factory=dict)

    @property
    def field_names(self) -> Tuple[str, ...]:
        """Field names in declaration order."""
        return tuple(self.fields)

    def __getitem__(self, name: str) -> FieldSpec:
        return self.fields[name]

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "formName": self.form_name,
            "form": {name: spec.to_dict() for name, spec in self.fields.items()},
        }
        if self.form_error_messages:
            result["formErrorMessages"] = list(self.form_error_messages)
        if self.field_error_messages:
            result["fieldErrorMessages"] = dict(self.field_error_messages)
        return result

    @classmethod
    def from_dict(cls, data: FormDefinitionData) -> "FormDefinition":
        """Create a FormDefinition, checking its shape first.

        Raises:
            FormDefinitionError: If the data does not match FORM_DEFINITION_SCHEMA
        """
        errors = sorted(
            _VALIDATOR.iter_errors(data),
            key=lambda e: [str(p) for p in e.absolute_path],
        )
        violations = [
            SchemaViolation(
                path=".".join(str(p) for p in error.absolute_path),
                message=error.message,
            )
            for error in errors
        ]
        if violations:
            raise FormDefinitionError("Invalid form definition", violations)

        fields = {
            name: FieldSpec.from_dict(name, spec)
            for name, spec in data["form"].items()
        }
        return cls(
            form_name=data["formName"],
            fields=fields,
            form_error_messages=tuple(data.get("formErrorMessages", ())),
            field_error_messages=dict(data.get("fieldErrorMessages", {})),
        )

    @classmethod
    def from_json(cls, text: str) -> "FormDefinition":
        """Create a FormDefinition from JSON text.

        Anything before the first "{" is discarded, so a definition shipped as
        a script (``var formData = {...}``) can be shared with the browser.

        Raises:
            FormDefinitionError: If the text holds no JSON object or the
                object does not match FORM_DEFINITION_SCHEMA
        """
        start = text.find("{")
        if start < 0:
            raise FormDefinitionError("Form definition text contains no JSON object")
        try:
            data = json.loads(text[start:].rstrip().rstrip(";"))
        except json.JSONDecodeError as exc:
            raise FormDefinitionError(f"Form definition is not valid JSON ({exc})") from exc
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, path: str, encoding: Optional[str] = "utf-8") -> "FormDefinition":
        """Load a FormDefinition from a JSON (or script-wrapped JSON) file."""
        with open(path, "r", encoding=encoding) as fh:
            return cls.from_json(fh.read())


__all__ = [
    "FORM_DEFINITION_SCHEMA",
    "FieldSpecData",
    "FormDefinitionData",
    "FieldSpec",
    "FormDefinition",
]
