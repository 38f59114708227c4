"""
Availability and deduplication checks run before a response is accepted.

These checks are a fast path that produces a friendly rejection. They are not
atomic with the insert that follows: two concurrent submissions from the same
identity can both pass. The partial unique constraints on ``FormResponse``
(form + dedupe column) are what actually guarantee one attempt per identity;
the submission service translates the resulting ``IntegrityError``. Unique
answers work the same way through the ``FormAnswerKey`` constraint.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import hashlib
import json
import logging
from typing import Any, Mapping

from django.db.models import Q
from django.utils import timezone

from ..fields import Violation
from ..models import Form, FormAnswerKey
from .validation import answers_by_field, is_blank

logger = logging.getLogger(__name__)


@dataclass
class GuardResult:
    errors: list[Violation] = field(default_factory=list)
    conflict: bool = False

    @property
    def allowed(self) -> bool:
        return not self.errors

    @property
    def messages(self) -> list[str]:
        return [v.message for v in self.errors]


def normalize_identity(responder: Mapping[str, Any] | None) -> dict[str, str]:
    """Dedupe values keyed by dedupe key: email lower-cased, student id as given."""
    responder = responder or {}
    identity = {}
    email = responder.get("email")
    if not is_blank(email):
        identity["email"] = str(email).strip().lower()
    student_id = responder.get("student_id")
    if not is_blank(student_id):
        identity["student_id"] = str(student_id).strip()
    return identity


def check_availability(form: Form, now: datetime | None = None) -> GuardResult:
    """Reject unless the form is published and ``now`` is inside its window."""
    now = now or timezone.now()
    result = GuardResult()
    if form.status != form.Status.PUBLISHED:
        result.errors.append(Violation(None, "status", "Form not available"))
    elif form.start_at and now < form.start_at:
        result.errors.append(Violation(None, "start_at", "Form not yet available"))
    elif form.end_at and now > form.end_at:
        result.errors.append(Violation(None, "end_at", "Form expired"))
    return result


def check_duplicate(form: Form, responder: Mapping[str, Any] | None) -> GuardResult:
    """Look for an earlier response from the same identity on the dedupe keys."""
    result = GuardResult()
    keys = form.dedupe_keys
    if not keys:
        return result

    identity = normalize_identity(responder)
    lookups = {
        "email": "dedupe_email",
        "student_id": "dedupe_student_id",
    }
    for key in keys:
        value = identity.get(key)
        if value is None:
            continue
        if form.responses.filter(**{lookups[key]: value}).exists():
            logger.info(f"Duplicate submission on {key} for form {form.slug}")
            result.errors.append(
                Violation(f"responder.{key}", "duplicate", "You have already submitted")
            )
            result.conflict = True
            break
    return result


def unique_answer_keys(form: Form, answers: Mapping[str, Any]) -> dict[str, str]:
    """``{field_id: value_key}`` for the answered fields marked ``validation.unique``."""
    return {
        spec.id: answer_key(answers[spec.id])
        for spec in form.public_field_specs
        if spec.validation.get("unique") and not is_blank(answers.get(spec.id))
    }


def answer_key(value: Any) -> str:
    """Case- and whitespace-insensitive digest of an answer value."""
    if isinstance(value, str):
        comparable = value.strip().lower()
    else:
        comparable = json.dumps(value, sort_keys=True)
    return hashlib.sha256(comparable.encode("utf-8")).hexdigest()


def unique_answer_message(form: Form, field_id: str) -> str:
    labels = {spec.id: spec.display_name for spec in form.field_specs}
    return f"{labels.get(field_id, field_id)}: this value has already been submitted"


def check_unique_answers(form: Form, payload: Mapping[str, Any]) -> GuardResult:
    """Reject values already recorded for fields marked ``validation.unique``.

    Looks up the indexed ``FormAnswerKey`` rows rather than stored answers.
    """
    result = GuardResult()
    wanted = unique_answer_keys(form, answers_by_field(payload))
    if not wanted:
        return result

    lookup = Q()
    for field_id, key in wanted.items():
        lookup |= Q(field_id=field_id, value_key=key)
    taken = set(
        FormAnswerKey.objects.filter(lookup, form=form).values_list("field_id", flat=True)
    )
    for field_id in wanted:
        if field_id in taken:
            result.errors.append(
                Violation(field_id, "unique", unique_answer_message(form, field_id))
            )
            result.conflict = True
    return result


def index_unique_answers(form: Form, batch_size: int = 500) -> int:
    """
    Build missing answer keys for stored responses.

    Used when a field gains ``validation.unique``. When stored responses
    already repeat a value, only the earliest one gets the key.

    Returns the number of keys written.
    """
    if not any(spec.validation.get("unique") for spec in form.public_field_specs):
        return 0
    before = form.answer_keys.count()
    pending: list[FormAnswerKey] = []
    responses = form.responses.order_by("submitted_at", "id").only("id", "answers")
    for response in responses.iterator(chunk_size=batch_size):
        keys = unique_answer_keys(form, response.answer_map)
        pending.extend(
            FormAnswerKey(form=form, response=response, field_id=field_id, value_key=key)
            for field_id, key in keys.items()
        )
        if len(pending) >= batch_size:
            _write_keys(pending, batch_size)
            pending = []
    if pending:
        _write_keys(pending, batch_size)
    written = form.answer_keys.count() - before
    logger.info(f"Indexed {written} unique answer keys for form {form.slug}")
    return written


def _write_keys(keys: list[FormAnswerKey], batch_size: int) -> None:
    FormAnswerKey.objects.bulk_create(keys, batch_size=batch_size, ignore_conflicts=True)
