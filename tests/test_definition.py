"""Unit tests for form definition loading.

Tests cover:
- FormDefinition.from_dict on well-formed definitions
- Schema checking and the violations reported
- from_json (including script-wrapped JSON) and from_file
- Serialization back to dict
"""

import pytest

from formgate.definition import FieldSpec, FormDefinition
from formgate.errors import FormDefinitionError
from formgate.types import FieldKind
from tests.conftest import CONTACT_FORM


class TestFromDict:
    """Test loading definitions from dicts."""

    def test_loads_contact_form(self):
        """Should build one FieldSpec per field in declaration order."""
        definition = FormDefinition.from_dict(CONTACT_FORM)
        assert definition.form_name == "contact"
        assert definition.field_names == ("empty", "firstName", "email", "usTelephone", "turingbox")
        assert definition["firstName"].rules == ("required", "name", "max25")
        assert definition["email"].kind is FieldKind.TEXT

    def test_contains(self):
        """Should support membership checks by field name."""
        definition = FormDefinition.from_dict(CONTACT_FORM)
        assert "email" in definition
        assert "password" not in definition

    def test_defaults_for_optional_keys(self):
        """Should default rules, possible values and initial value."""
        definition = FormDefinition.from_dict({
            "formName": "f",
            "form": {"note": {"type": "textarea"}},
        })
        spec = definition["note"]
        assert spec.rules == ()
        assert spec.possible_values == ()
        assert spec.initial_value == ""

    def test_checkbox_initial_value(self):
        """Should default checkboxes to unchecked and keep a declared value."""
        definition = FormDefinition.from_dict({
            "formName": "f",
            "form": {
                "bike": {"type": "checkbox"},
                "car": {"type": "checkbox", "value": True},
            },
        })
        assert definition["bike"].initial_value is False
        assert definition["car"].initial_value is True

    def test_choice_field(self):
        """Should keep possible values for select fields."""
        definition = FormDefinition.from_dict({
            "formName": "f",
            "form": {"car": {"type": "select", "possibleValues": ["volvo", "saab"], "value": "saab"}},
        })
        assert definition["car"].possible_values == ("volvo", "saab")
        assert definition["car"].initial_value == "saab"

    def test_message_overrides(self):
        """Should load message overrides."""
        definition = FormDefinition.from_dict(dict(
            CONTACT_FORM,
            formErrorMessages=["", "Fix it"],
            fieldErrorMessages={"required": "Needed"},
        ))
        assert definition.form_error_messages == ("", "Fix it")
        assert definition.field_error_messages == {"required": "Needed"}


class TestSchemaViolations:
    """Test rejection of malformed definitions."""

    def test_missing_form_name(self):
        """Should reject a definition without formName."""
        with pytest.raises(FormDefinitionError) as exc_info:
            FormDefinition.from_dict({"form": {"a": {"type": "text"}}})
        assert exc_info.value.violations[0].path == ""
        assert "formName" in exc_info.value.violations[0].message

    def test_unknown_field_kind(self):
        """Should report the path of an unknown control kind."""
        with pytest.raises(FormDefinitionError) as exc_info:
            FormDefinition.from_dict({"formName": "f", "form": {"car": {"type": "dropdown"}}})
        assert exc_info.value.violations[0].path == "form.car.type"

    def test_unknown_field_key(self):
        """Should reject undeclared keys inside a field."""
        with pytest.raises(FormDefinitionError):
            FormDefinition.from_dict({"formName": "f", "form": {"a": {"type": "text", "size": 3}}})

    def test_empty_form(self):
        """Should reject a form with no fields."""
        with pytest.raises(FormDefinitionError):
            FormDefinition.from_dict({"formName": "f", "form": {}})

    def test_too_many_form_messages(self):
        """Should reject more top-level messages than failure codes."""
        with pytest.raises(FormDefinitionError):
            FormDefinition.from_dict(dict(CONTACT_FORM, formErrorMessages=["x"] * 8))

    def test_collects_every_violation(self):
        """Should report all problems at once."""
        with pytest.raises(FormDefinitionError) as exc_info:
            FormDefinition.from_dict({
                "formName": "",
                "form": {"a": {"type": "text", "rules": "required"}},
            })
        paths = [v.path for v in exc_info.value.violations]
        assert paths == ["form.a.rules", "formName"]
        assert "form.a.rules" in str(exc_info.value)

    def test_is_value_error(self):
        """Should be catchable as ValueError."""
        with pytest.raises(ValueError):
            FormDefinition.from_dict({"formName": "f"})


class TestFromJson:
    """Test loading definitions from JSON text and files."""

    def test_plain_json(self):
        """Should load a plain JSON object."""
        definition = FormDefinition.from_json(
            '{"formName": "f", "form": {"a": {"type": "text"}}}'
        )
        assert definition.field_names == ("a",)

    def test_script_wrapped_json(self):
        """Should discard everything before the first brace and a trailing semicolon."""
        definition = FormDefinition.from_json(
            'var formData = {"formName": "f", "form": {"a": {"type": "text"}}};\n'
        )
        assert definition.form_name == "f"

    def test_no_object(self):
        """Should reject text with no JSON object."""
        with pytest.raises(FormDefinitionError, match="no JSON object"):
            FormDefinition.from_json("var formData = null;")

    def test_invalid_json(self):
        """Should wrap JSON syntax errors."""
        with pytest.raises(FormDefinitionError, match="not valid JSON"):
            FormDefinition.from_json('{"formName": ')

    def test_from_file(self, tmp_path):
        """Should read a definition from disk."""
        path = tmp_path / "contact.js"
        path.write_text(
            'var formData = {"formName": "contact", "form": {"email": {"type": "text"}}};',
            encoding="utf-8",
        )
        definition = FormDefinition.from_file(str(path))
        assert definition.form_name == "contact"


class TestSerialization:
    """Test conversion back to dict."""

    def test_to_dict_reloads(self):
        """Should produce data that loads into an equal definition."""
        data = {
            "formName": "f",
            "form": {
                "car": {"type": "radio", "rules": ["required"], "possibleValues": ["a", "b"]},
                "ok": {"type": "checkbox", "value": True},
            },
            "fieldErrorMessages": {"required": "Needed"},
        }
        definition = FormDefinition.from_dict(data)
        assert FormDefinition.from_dict(definition.to_dict()) == definition

    def test_field_spec_to_dict_omits_defaults(self):
        """Should omit the initial value when it is the kind's empty value."""
        spec = FieldSpec(name="a", kind="text", rules=("required",))
        assert spec.to_dict() == {"type": "text", "rules": ["required"]}
