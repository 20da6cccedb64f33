"""End-to-end tests: requests dispatched through FormController.

Each request builds a fresh state machine against the shared store, the
way a web handler would. Tests cover the happy path, each stage marker,
marker precedence and the recovery paths a user can hit in a browser.
"""

import pytest

from formgate import FormController, View
from formgate.runtime import DELETE_VALUE
from formgate.types import FAIL_TOKEN, EventType, FailureCode, SessionStage
from tests.conftest import valid_contact_data


SESSION = "sess_web"
CLIENT = "192.0.2.10"


@pytest.fixture
def controller(definition, store, resolver, clock):
    return FormController(definition, store, resolver=resolver, clock=clock)


def show_form(controller):
    return controller.handle(SESSION, query={}, client_address=CLIENT)


def post_form(controller, posted, token):
    return controller.handle(SESSION, query={"validate": token}, posted=posted, client_address=CLIENT)


def follow_submit_link(controller, token):
    return controller.handle(SESSION, query={"submit": token}, client_address=CLIENT)


class TestHappyPath:
    """Test a user filling in and confirming the contact form."""

    def test_full_flow(self, controller, clock):
        """Should go FORM -> CONFIRMATION -> DELIVER."""
        shown = show_form(controller)
        assert shown.view is View.FORM
        assert shown.code is None
        assert shown.ok

        clock.advance(20)
        posted = valid_contact_data(shown.machine)
        checked = post_form(controller, posted, shown.machine.validation_token)
        assert checked.view is View.CONFIRMATION
        assert checked.code is FailureCode.OK

        delivered = follow_submit_link(controller, checked.machine.submission_token)
        assert delivered.view is View.DELIVER
        assert delivered.ok

    def test_summary_for_delivery(self, controller, clock):
        """Should render telemetry followed by one line per field."""
        shown = show_form(controller)
        clock.advance(5)
        posted = valid_contact_data(shown.machine)
        checked = post_form(controller, posted, shown.machine.validation_token)
        delivered = follow_submit_link(controller, checked.machine.submission_token)

        summary = FormController.summary(delivered.machine)

        assert summary == (
            "Session calls: 3\n"
            f"IP: {CLIENT}\n"
            "empty: \n"
            "firstName: Ann\n"
            "email: ann@example.com\n"
            "usTelephone: 555-0123\n"
            f"turingbox: {posted['turingbox']}\n"
        )

    def test_events_across_requests(self, controller, clock):
        """Should publish every request's event on the controller's emitter."""
        seen = []
        controller.emitter.on_any(lambda e: seen.append(e.type))

        shown = show_form(controller)
        clock.advance(5)
        checked = post_form(controller, valid_contact_data(shown.machine),
                            shown.machine.validation_token)
        follow_submit_link(controller, checked.machine.submission_token)

        assert seen == [
            EventType.FORM_INITIALIZED,
            EventType.VALIDATION_PASSED,
            EventType.SUBMISSION_CONFIRMED,
        ]


class TestRecovery:
    """Test the user-visible failure paths."""

    def test_undeliverable_email_domain(self, controller, clock):
        """Should flag only the email field when its domain does not resolve."""
        shown = show_form(controller)
        clock.advance(5)
        posted = valid_contact_data(shown.machine)
        posted["email"] = "ann@b.com"

        result = post_form(controller, posted, shown.machine.validation_token)

        assert result.view is View.FORM
        assert result.code is FailureCode.DATA_INVALID
        machine = result.machine
        assert machine.field_error("email") is True
        assert machine.field_error_message("email") == "Please enter a valid email address"
        assert [n for n in posted if machine.field_error(n)] == ["email"]
        assert machine.field_value("email") == "ann@b.com"

    def test_bot_posting_immediately(self, controller):
        """Should reject a post made right after the form was served."""
        shown = show_form(controller)
        token = shown.machine.validation_token
        result = post_form(controller, valid_contact_data(shown.machine), token)

        assert result.code is FailureCode.TOO_FAST
        assert result.machine.validation_token != token
        assert not result.ok

    def test_post_without_visiting_form(self, controller):
        """Should report a cookie/order problem and serve a fresh form."""
        result = post_form(controller, {"firstName": "Ann"}, "guessed")

        assert result.view is View.FORM
        assert result.code is FailureCode.COOKIES_OR_ORDER_ERROR
        assert result.machine.stage is SessionStage.INITIALIZED
        assert result.machine.field_value("firstName") == ""

    def test_replayed_submit_link_after_revisit(self, controller, clock):
        """Should reject a confirmation link once the form was shown again."""
        shown = show_form(controller)
        clock.advance(5)
        checked = post_form(controller, valid_contact_data(shown.machine),
                            shown.machine.validation_token)
        link = checked.machine.submission_token

        show_form(controller)
        result = follow_submit_link(controller, link)

        assert result.view is View.FORM
        assert result.code is FailureCode.BAD_SUBMISSION_LINK
        assert result.machine.submission_token == FAIL_TOKEN

    def test_revisit_clears_errors_keeps_values(self, controller, clock):
        """Should show the form again with the user's values and no errors."""
        shown = show_form(controller)
        clock.advance(5)
        posted = valid_contact_data(shown.machine)
        posted["firstName"] = ""
        post_form(controller, posted, shown.machine.validation_token)

        again = show_form(controller)

        assert again.machine.field_error("firstName") is False
        assert again.machine.field_value("email") == "ann@example.com"
        assert again.machine.form_error_message == ""


class TestMarkers:
    """Test stage marker handling."""

    def test_delete_redirects_and_drops_session(self, controller, store):
        """Should delete the session and ask for a redirect."""
        show_form(controller)
        result = controller.handle(SESSION, query={"submit": DELETE_VALUE})

        assert result.view is View.REDIRECT
        assert store.get(SESSION, "contact") is None
        assert result.machine.stage is SessionStage.UNINITIALIZED

    def test_submit_marker_wins(self, controller, clock):
        """Should honour the submit marker when both markers are present."""
        shown = show_form(controller)
        clock.advance(5)
        checked = post_form(controller, valid_contact_data(shown.machine),
                            shown.machine.validation_token)

        result = controller.handle(
            SESSION,
            query={"validate": "ignored", "submit": checked.machine.submission_token},
        )

        assert result.view is View.DELIVER

    def test_empty_post_on_validate(self, controller, clock):
        """Should treat a missing body as an empty post."""
        shown = show_form(controller)
        clock.advance(5)
        result = controller.handle(SESSION, query={"validate": shown.machine.validation_token})

        assert result.code is FailureCode.DATA_INVALID
        assert result.machine.field_error("firstName") is True

    def test_client_address_recorded(self, controller):
        """Should pass the request's address through to the session."""
        result = show_form(controller)
        assert result.machine.session().client_address == CLIENT

    def test_page_counter_in_summary(self, controller):
        """Should carry the client's page-view counter into the telemetry block."""
        result = controller.handle(SESSION, query={}, client_address=CLIENT, page_counter="3")
        assert FormController.summary(result.machine).startswith(
            f"Session calls: 1\nIP: {CLIENT}\ncounter: 3\n"
        )
