"""
Validation of form definitions and public submissions.

Both entry points collect every broken rule instead of stopping at the first
one, and return a ``ValidationResult`` rather than raising. Callers that need
an exception raise ``exceptions.ValidationError(result.errors)``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import re
from typing import TYPE_CHECKING, Any, Mapping

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from ..fields import (
    EMAIL_PATTERN,
    FIELD_HANDLERS,
    FieldKind,
    FieldVisibility,
    Violation,
)

if TYPE_CHECKING:
    from ..models import Form

FORM_TYPES = ("general", "survey", "attendance", "quiz")
DEDUPE_KEYS = ("email", "student_id")


@dataclass
class ValidationResult:
    errors: list[Violation] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def messages(self) -> list[str]:
        return [v.message for v in self.errors]

    def add(self, field_id: str | None, rule: str, message: str) -> None:
        self.errors.append(Violation(field_id, rule, message))


def is_blank(value: Any) -> bool:
    """Missing for a required field. ``False`` and ``0`` count as answers."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def validate_form_definition(definition: Mapping[str, Any] | Form) -> ValidationResult:
    """Check an owner-authored definition (title, type, fields, settings, policy)."""
    if hasattr(definition, "to_definition"):
        definition = definition.to_definition()
    result = ValidationResult()

    title = definition.get("title")
    if not title or not str(title).strip():
        result.add(None, "required", "Title is required")
    form_type = definition.get("type")
    if not form_type:
        result.add(None, "required", "Type is required")
    elif form_type not in FORM_TYPES:
        result.add(None, "type", f"Unknown form type: {form_type}")

    fields = definition.get("fields") or []
    if not isinstance(fields, list):
        result.add(None, "fields", "Fields must be a list")
        fields = []

    seen: set[str] = set()
    for idx, raw in enumerate(fields):
        if not isinstance(raw, Mapping):
            result.add(None, "field", f"Field[{idx}] must be an object")
            continue
        _check_field_definition(result, idx, raw, seen)

    _check_settings(result, definition.get("settings"))

    policy = definition.get("submission_policy") or {}
    if not isinstance(policy, Mapping):
        result.add(None, "submission_policy", "Submission policy must be an object")
        policy = {}
    dedupe_by = policy.get("dedupe_by") or []
    if not isinstance(dedupe_by, list):
        result.add(None, "dedupe_by", "dedupe_by must be a list")
        dedupe_by = []
    for key in dedupe_by:
        if key not in DEDUPE_KEYS:
            result.add(None, "dedupe_by", f"Unknown dedupe key: {key}")

    start_at = _as_datetime(definition.get("start_at"))
    end_at = _as_datetime(definition.get("end_at"))
    if start_at and end_at and end_at < start_at:
        result.add(None, "window", "End time must be after start time")

    return result


def _check_field_definition(
    result: ValidationResult, idx: int, raw: Mapping[str, Any], seen: set[str]
) -> None:
    field_id = raw.get("id")
    if not field_id:
        result.add(None, "id", f"Field[{idx}] missing id")
    else:
        field_id = str(field_id)
        if field_id in seen:
            result.add(field_id, "duplicate_id", f"Duplicate field id: {field_id}")
        seen.add(field_id)
    if not raw.get("label"):
        result.add(field_id or None, "label", f"Field[{idx}] missing label")

    kind_value = raw.get("type")
    try:
        kind = FieldKind(kind_value)
    except ValueError:
        result.add(field_id or None, "type", f"Field[{idx}] has unknown type: {kind_value}")
        return

    options = raw.get("options")
    if FIELD_HANDLERS[kind].requires_options and (
        not isinstance(options, list) or not options
    ):
        result.add(field_id or None, "options", f"Field[{idx}] options required for {kind}")
    if raw.get("multiple") and kind != FieldKind.DROPDOWN:
        result.add(field_id or None, "multiple", "multiple is only valid for dropdown")
    if raw.get("visibility") not in (None, *FieldVisibility.values):
        result.add(
            field_id or None, "visibility", f"Field[{idx}] has unknown visibility"
        )

    rules = _object_or_none(result, field_id, raw.get("validation"), f"Field[{idx}] validation")
    if rules:
        _check_value_rules(result, idx, field_id, rules)

    quiz = _object_or_none(result, field_id, raw.get("quiz"), f"Field[{idx}] quiz") or {}
    points = quiz.get("points")
    if points is not None and (not _is_number(points) or points < 0):
        result.add(field_id or None, "points", f"Field[{idx}] points must be a positive number")
    option_count = len(options) if isinstance(options, list) else 0
    correct = quiz.get("correct_options") or []
    if not isinstance(correct, list):
        result.add(
            field_id or None, "correct_options", f"Field[{idx}] correct options must be a list"
        )
        correct = []
    for index in correct:
        if isinstance(index, bool) or not isinstance(index, int) or not (
            0 <= index < option_count
        ):
            result.add(
                field_id or None,
                "correct_options",
                f"Field[{idx}] correct option {index} is out of range",
            )


def _check_value_rules(
    result: ValidationResult, idx: int, field_id: str | None, rules: Mapping[str, Any]
) -> None:
    """``validation`` block of a field: pattern, numeric bounds, selection limits."""
    pattern = rules.get("pattern")
    if pattern is not None and not isinstance(pattern, str):
        result.add(field_id or None, "pattern", f"Field[{idx}] pattern must be text")
    elif pattern:
        try:
            re.compile(pattern)
        except re.error:
            result.add(field_id or None, "pattern", f"Field[{idx}] has an invalid pattern")

    for key in ("min", "max"):
        bound = rules.get(key)
        if bound is not None and not _is_number(bound):
            result.add(field_id or None, key, f"Field[{idx}] validation {key} must be a number")

    selection = _object_or_none(
        result, field_id, rules.get("selection"), f"Field[{idx}] validation selection"
    )
    for key in ("min", "max"):
        bound = (selection or {}).get(key)
        if bound is not None and (not _is_number(bound) or bound < 0):
            result.add(
                field_id or None,
                f"selection_{key}",
                f"Field[{idx}] selection {key} must be a non-negative number",
            )


def _check_settings(result: ValidationResult, settings: Any) -> None:
    if settings is None:
        return
    if not isinstance(settings, Mapping):
        result.add(None, "settings", "Settings must be an object")
        return

    timer = _object_or_none(result, None, settings.get("timer"), "Timer")
    if timer and timer.get("minutes") is not None and not _is_number(timer["minutes"]):
        result.add(None, "timer", "Timer minutes must be a number")

    _object_or_none(result, None, settings.get("identity_schema"), "Identity schema")

    quiz = _object_or_none(result, None, settings.get("quiz"), "Quiz settings")
    passing = (quiz or {}).get("passing_score")
    if passing is not None and (not _is_number(passing) or not 0 <= passing <= 100):
        result.add(
            None, "passing_score", "Passing score must be a number between 0 and 100"
        )


def _object_or_none(
    result: ValidationResult, field_id: str | None, value: Any, name: str
) -> Mapping[str, Any] | None:
    if value is None or isinstance(value, Mapping):
        return value
    result.add(field_id or None, "object", f"{name} must be an object")
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_submission(form: Form, payload: Mapping[str, Any]) -> ValidationResult:
    """Check a public submission against the form's public fields."""
    result = ValidationResult()
    if not isinstance(payload.get("answers") or [], list):
        result.add(None, "answers", "Answers must be a list")
    responder = payload.get("responder") or {}
    if not isinstance(responder, Mapping):
        result.add(None, "responder", "Responder must be an object")
        responder = {}
    specs = form.field_specs
    declared = {spec.id for spec in specs}
    provided = answers_by_field(payload)

    for field_id in provided:
        if field_id not in declared:
            result.add(field_id, "unknown_field", f"Unknown field: {field_id}")

    for spec in specs:
        if not spec.is_public or not spec.handler.collects_input:
            continue
        value = provided.get(spec.id)
        if is_blank(value):
            if spec.required:
                result.add(spec.id, "required", f"Missing required: {spec.display_name}")
            continue
        result.errors.extend(spec.handler.check_value(spec, value))

    _check_identity(result, form, responder)
    return result


def answers_by_field(payload: Mapping[str, Any]) -> dict[str, Any]:
    answers = payload.get("answers") or []
    if not isinstance(answers, list):
        return {}
    return {
        str(a.get("field_id")): a.get("value")
        for a in answers
        if isinstance(a, Mapping) and a.get("field_id") is not None
    }


def _check_identity(
    result: ValidationResult, form: Form, responder: Mapping[str, Any]
) -> None:
    schema = form.identity_schema
    if schema.get("require_name") and is_blank(responder.get("name")):
        result.add("responder.name", "required", "Name is required")
    email = responder.get("email")
    if schema.get("require_email") and is_blank(email):
        result.add("responder.email", "required", "Email is required")
    elif not is_blank(email) and not EMAIL_PATTERN.match(str(email).strip()):
        result.add("responder.email", "email", "Invalid email for: responder")
    if schema.get("require_student_id") and is_blank(responder.get("student_id")):
        result.add("responder.student_id", "required", "Student ID is required")


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, str) and value:
        value = parse_datetime(value)
    if not isinstance(value, datetime):
        return None
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return value

