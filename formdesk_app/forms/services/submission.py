"""
Accept a public submission.

Order of checks: availability, payload validation, quiz timer, identity
dedupe and unique answers, scoring, then the insert. A closed form rejects
every attempt before the payload is looked at.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Mapping

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from ..exceptions import ConflictError, ValidationError, WindowClosedError
from ..fields import Violation
from ..models import Form, FormAnswerKey, FormResponse
from .scoring import QuizScore, score_quiz
from .submission_guard import (
    check_availability,
    check_duplicate,
    check_unique_answers,
    normalize_identity,
    unique_answer_keys,
    unique_answer_message,
)
from .validation import validate_submission

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = "You have already submitted"


def submit_response(
    form: Form,
    payload: Mapping[str, Any],
    ip: str = "",
    user_agent: str = "",
    now: datetime | None = None,
) -> FormResponse:
    """
    Validate, score and store one response.

    Raises:
        WindowClosedError: form unpublished or outside its availability window
        ValidationError: payload breaks one or more rules, or the timer ran out
        ConflictError: identity already responded or a unique answer is taken
    """
    now = now or timezone.now()

    availability = check_availability(form, now)
    if not availability.allowed:
        logger.warning(
            f"Rejected submission to form {form.slug}: {availability.messages[0]}"
        )
        raise WindowClosedError(detail=availability.messages[0])

    result = validate_submission(form, payload)
    if not result.valid:
        logger.warning(
            f"Rejected submission to form {form.slug}: {len(result.errors)} violation(s)"
        )
        raise ValidationError(result.errors)

    duration_ms = _check_timer(form, payload.get("duration_ms"))

    responder = payload.get("responder") or {}
    for guard in (check_duplicate(form, responder), check_unique_answers(form, payload)):
        if not guard.allowed:
            raise ConflictError(detail=guard.messages[0])

    quiz = score_quiz(form, payload.get("answers") or []) if form.scoring_enabled else None

    response = _store(form, payload, responder, quiz, duration_ms, ip, user_agent, now)
    logger.info(f"Accepted response {response.id} for form {form.slug}")
    return response


def _check_timer(form: Form, duration_ms: Any) -> int | None:
    if duration_ms is None:
        return None
    invalid = isinstance(duration_ms, bool) or not isinstance(duration_ms, (int, float))
    if invalid or duration_ms < 0:
        raise ValidationError(
            [Violation("duration_ms", "duration", "duration_ms must be a positive number")]
        )
    duration_ms = int(duration_ms)

    timer = form.timer
    if form.type == Form.Type.QUIZ and timer["enabled"] and timer["minutes"] > 0:
        allowed_ms = timer["minutes"] * 60_000 + settings.FORMDESK_TIMER_GRACE_MS
        if duration_ms > allowed_ms:
            logger.warning(
                f"Rejected submission to form {form.slug}: time limit exceeded "
                f"({duration_ms}ms > {allowed_ms}ms)"
            )
            raise ValidationError([Violation(None, "timer", "Time limit exceeded")])
    return duration_ms


def _store(
    form: Form,
    payload: Mapping[str, Any],
    responder: Mapping[str, Any],
    quiz: QuizScore | None,
    duration_ms: int | None,
    ip: str,
    user_agent: str,
    now: datetime,
) -> FormResponse:
    stored_ids = {
        spec.id
        for spec in form.field_specs
        if spec.is_public and spec.handler.collects_input
    }
    answers = [
        {"field_id": str(a["field_id"]), "value": a.get("value")}
        for a in payload.get("answers") or []
        if isinstance(a, Mapping) and str(a.get("field_id")) in stored_ids
    ]

    identity = normalize_identity(responder)
    dedupe_keys = form.dedupe_keys
    snapshot = {
        "name": str(responder.get("name") or "").strip() or None,
        "email": identity.get("email"),
        "student_id": identity.get("student_id"),
        "ip": ip or None,
        "user_agent": user_agent or None,
    }

    metadata = {}
    if quiz is not None:
        metadata = {
            "per_question": quiz.as_dict()["per_question"],
            "percentage": quiz.percentage,
            "passed": quiz.passed,
        }

    started_at = payload.get("started_at")
    if isinstance(started_at, str):
        try:
            started_at = parse_datetime(started_at)
        except ValueError:
            started_at = None
    if not isinstance(started_at, datetime):
        started_at = None
    elif timezone.is_naive(started_at):
        started_at = timezone.make_aware(started_at)

    try:
        with transaction.atomic():
            response = FormResponse.objects.create(
                form=form,
                responder=snapshot,
                started_at=started_at,
                submitted_at=now,
                duration_ms=duration_ms,
                answers=answers,
                score=quiz.score if quiz else None,
                max_score=quiz.max_score if quiz else None,
                metadata=metadata,
                dedupe_email=identity.get("email") if "email" in dedupe_keys else None,
                dedupe_student_id=(
                    identity.get("student_id") if "student_id" in dedupe_keys else None
                ),
            )
            _record_answer_keys(form, response)
            return response
    except IntegrityError:
        # Lost the race against a concurrent submission from the same identity
        logger.warning(f"Duplicate submission to form {form.slug} caught by constraint")
        raise ConflictError(detail=DUPLICATE_MESSAGE)


def _record_answer_keys(form: Form, response: FormResponse) -> None:
    keys = unique_answer_keys(form, response.answer_map)
    for field_id, value_key in keys.items():
        try:
            with transaction.atomic():
                FormAnswerKey.objects.create(
                    form=form, response=response, field_id=field_id, value_key=value_key
                )
        except IntegrityError:
            # Another submission took the value after check_unique_answers ran
            logger.warning(
                f"Unique answer on field {field_id} of form {form.slug} caught by constraint"
            )
            raise ConflictError(detail=unique_answer_message(form, field_id))
