"""
Tests for form definition and submission validation.
"""

from datetime import timedelta

from django.utils import timezone
import pytest

from formdesk_app.forms.models import Form
from formdesk_app.forms.services.validation import (
    is_blank,
    validate_form_definition,
    validate_submission,
)


def _definition(**overrides):
    data = {
        "title": "Feedback",
        "type": "survey",
        "fields": [
            {"id": "name", "label": "Name", "type": "short_text", "required": True},
            {"id": "colour", "label": "Colour", "type": "radio", "options": ["Red", "Blue"]},
        ],
    }
    data.update(overrides)
    return data


def _form(fields, **kwargs):
    return Form(title="T", type=kwargs.pop("type", "survey"), fields=fields, **kwargs)


class TestIsBlank:
    @pytest.mark.parametrize("value", [None, "", "   ", []])
    def test_blank_values(self, value):
        assert is_blank(value)

    @pytest.mark.parametrize("value", [False, 0, 0.0, "x", ["a"]])
    def test_present_values(self, value):
        assert not is_blank(value)


class TestValidateFormDefinition:
    def test_valid_definition(self):
        result = validate_form_definition(_definition())
        assert result.valid
        assert result.errors == []

    def test_title_and_type_required(self):
        result = validate_form_definition(_definition(title="", type=None))
        assert "Title is required" in result.messages
        assert "Type is required" in result.messages

    def test_unknown_type(self):
        result = validate_form_definition(_definition(type="poll"))
        assert not result.valid
        assert result.errors[0].rule == "type"

    def test_duplicate_field_id_is_named(self):
        fields = [
            {"id": "q1", "label": "One", "type": "short_text"},
            {"id": "q1", "label": "Two", "type": "short_text"},
        ]
        result = validate_form_definition(_definition(fields=fields))
        assert not result.valid
        assert "Duplicate field id: q1" in result.messages
        assert any(v.field == "q1" and v.rule == "duplicate_id" for v in result.errors)

    def test_missing_id_and_label(self):
        result = validate_form_definition(_definition(fields=[{"type": "short_text"}]))
        assert "Field[0] missing id" in result.messages
        assert "Field[0] missing label" in result.messages

    def test_choice_field_needs_options(self):
        fields = [{"id": "q1", "label": "Pick", "type": "checkbox", "options": []}]
        result = validate_form_definition(_definition(fields=fields))
        assert "Field[0] options required for checkbox" in result.messages

    def test_multiple_only_on_dropdown(self):
        fields = [
            {"id": "q1", "label": "Pick", "type": "radio", "options": ["A"], "multiple": True}
        ]
        result = validate_form_definition(_definition(fields=fields))
        assert "multiple is only valid for dropdown" in result.messages

    def test_multiple_dropdown_accepted(self):
        fields = [
            {"id": "q1", "label": "Pick", "type": "dropdown", "options": ["A"], "multiple": True}
        ]
        assert validate_form_definition(_definition(fields=fields)).valid

    def test_correct_option_out_of_range(self):
        fields = [
            {
                "id": "q1",
                "label": "Pick",
                "type": "radio",
                "options": ["A", "B"],
                "quiz": {"correct_options": [2], "points": 1},
            }
        ]
        result = validate_form_definition(_definition(fields=fields))
        assert [v.rule for v in result.errors] == ["correct_options"]

    def test_unknown_dedupe_key(self):
        result = validate_form_definition(
            _definition(submission_policy={"dedupe_by": ["phone"]})
        )
        assert "Unknown dedupe key: phone" in result.messages

    def test_window_must_be_ordered(self):
        now = timezone.now()
        result = validate_form_definition(
            _definition(start_at=now, end_at=now - timedelta(hours=1))
        )
        assert [v.rule for v in result.errors] == ["window"]

    def test_all_violations_collected(self):
        fields = [
            {"id": "q1", "label": "A", "type": "radio"},
            {"id": "q1", "type": "short_text"},
        ]
        result = validate_form_definition(_definition(title="", fields=fields))
        assert len(result.errors) == 4

    def test_accepts_form_instance(self):
        form = _form([{"id": "q1", "label": "A", "type": "short_text"}])
        assert validate_form_definition(form).valid


class TestDefinitionShapes:
    """Constraint values must have the types the submission checks compare against."""

    @pytest.mark.parametrize("bound", ["5", True, [1]])
    def test_number_bounds_must_be_numeric(self, bound):
        field = {"id": "n", "label": "N", "type": "number", "validation": {"min": bound}}
        result = validate_form_definition(_definition(fields=[field]))
        assert [(e.field, e.rule) for e in result.errors] == [("n", "min")]

    def test_numeric_bounds_accepted(self):
        field = {"id": "n", "label": "N", "type": "number", "validation": {"min": 0, "max": 9.5}}
        assert validate_form_definition(_definition(fields=[field])).valid

    @pytest.mark.parametrize("bound", ["2", -1, False])
    def test_selection_limits_must_be_non_negative_numbers(self, bound):
        field = {
            "id": "c",
            "label": "C",
            "type": "checkbox",
            "options": ["a", "b"],
            "validation": {"selection": {"max": bound}},
        }
        result = validate_form_definition(_definition(fields=[field]))
        assert [e.rule for e in result.errors] == ["selection_max"]

    @pytest.mark.parametrize("passing", ["50", 150, None])
    def test_passing_score(self, passing):
        result = validate_form_definition(
            _definition(settings={"quiz": {"passing_score": passing}})
        )
        assert result.valid is (passing is None)

    def test_nested_objects_reported_together(self):
        field = {
            "id": "q",
            "label": "Q",
            "type": "short_text",
            "validation": "x",
            "quiz": [1],
        }
        result = validate_form_definition(
            _definition(
                fields=[field],
                settings={"timer": ["x"], "quiz": "on", "identity_schema": 1},
            )
        )
        assert result.messages == [
            "Field[0] validation must be an object",
            "Field[0] quiz must be an object",
            "Timer must be an object",
            "Identity schema must be an object",
            "Quiz settings must be an object",
        ]

    def test_settings_and_policy_must_be_objects(self):
        result = validate_form_definition(
            _definition(settings=["x"], submission_policy={"dedupe_by": "email"})
        )
        assert result.messages == ["Settings must be an object", "dedupe_by must be a list"]

    def test_pattern_must_be_text(self):
        field = {"id": "t", "label": "T", "type": "short_text", "validation": {"pattern": 5}}
        result = validate_form_definition(_definition(fields=[field]))
        assert result.messages == ["Field[0] pattern must be text"]

    def test_timer_minutes_must_be_numeric(self):
        result = validate_form_definition(
            _definition(settings={"timer": {"enabled": True, "minutes": "ten"}})
        )
        assert result.messages == ["Timer minutes must be a number"]


class TestValidateSubmission:
    def test_required_value_missing(self):
        form = _form([{"id": "q1", "label": "Name", "type": "short_text", "required": True}])
        for value in (None, "", []):
            result = validate_submission(form, {"answers": [{"field_id": "q1", "value": value}]})
            assert result.messages == ["Missing required: Name"]
        result = validate_submission(form, {"answers": []})
        assert result.messages == ["Missing required: Name"]

    def test_false_and_zero_are_answers(self):
        form = _form(
            [
                {"id": "agree", "label": "Agree", "type": "single_select", "required": True},
                {"id": "count", "label": "Count", "type": "number", "required": True},
            ]
        )
        payload = {
            "answers": [
                {"field_id": "agree", "value": False},
                {"field_id": "count", "value": 0},
            ]
        }
        assert validate_submission(form, payload).valid

    def test_internal_fields_skipped(self):
        form = _form(
            [
                {
                    "id": "grade",
                    "label": "Grade",
                    "type": "short_text",
                    "required": True,
                    "visibility": "internal",
                }
            ]
        )
        assert validate_submission(form, {"answers": []}).valid

    def test_email_format(self):
        form = _form([{"id": "mail", "label": "Email", "type": "email"}])
        bad = validate_submission(form, {"answers": [{"field_id": "mail", "value": "nope"}]})
        assert bad.messages == ["Invalid email for: Email"]
        good = validate_submission(
            form, {"answers": [{"field_id": "mail", "value": "a@b.co"}]}
        )
        assert good.valid

    def test_dropdown_multiple_expects_list(self):
        form = _form(
            [{"id": "d", "label": "Pick", "type": "dropdown", "options": ["A", "B"], "multiple": True}]
        )
        result = validate_submission(form, {"answers": [{"field_id": "d", "value": "A"}]})
        assert result.messages == ["Dropdown multiple expects array: Pick"]

    def test_unknown_field_rejected(self):
        form = _form([{"id": "q1", "label": "A", "type": "short_text"}])
        result = validate_submission(form, {"answers": [{"field_id": "zz", "value": "x"}]})
        assert [v.rule for v in result.errors] == ["unknown_field"]

    def test_identity_requirements(self):
        form = _form(
            [],
            settings={
                "allow_anonymous": True,
                "identity_schema": {
                    "require_name": True,
                    "require_email": True,
                    "require_student_id": True,
                },
            },
        )
        result = validate_submission(form, {"answers": [], "responder": {}})
        assert result.messages == [
            "Name is required",
            "Email is required",
            "Student ID is required",
        ]

    def test_invalid_responder_email(self):
        form = _form([])
        result = validate_submission(
            form, {"answers": [], "responder": {"email": "not-an-email"}}
        )
        assert result.messages == ["Invalid email for: responder"]

    def test_answers_must_be_a_list(self):
        form = _form([])
        result = validate_submission(form, {"answers": "q1=yes"})
        assert [v.rule for v in result.errors] == ["answers"]

    def test_presentation_fields_ignored(self):
        form = _form([{"id": "h", "label": "Intro", "type": "section", "required": True}])
        assert validate_submission(form, {"answers": []}).valid
