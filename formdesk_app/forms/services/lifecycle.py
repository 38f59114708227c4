"""
Form lifecycle: creation with slug allocation, edits and status transitions.

draft -> published (publish), published -> draft (unpublish),
draft/published -> archived (archive). Deleting an archived form removes it
and its responses; deleting any other form archives it instead.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from ..exceptions import ConflictError, NotFoundError, ValidationError
from ..models import Form, FormResponse
from .slugs import create_unique_random_slug, create_unique_slug, generate_slug_from_title
from .submission_guard import index_unique_answers
from .validation import validate_form_definition

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "title",
    "description",
    "type",
    "fields",
    "settings",
    "submission_policy",
    "start_at",
    "end_at",
)
TIMER_MIN_MINUTES = 1
TIMER_MAX_MINUTES = 480


def normalize_settings(raw: Mapping[str, Any] | None) -> dict[str, Any]:
    """Copy of ``raw`` with the timer clamped to 1..480 minutes, or 0 when off."""
    normalized = dict(raw or {})
    timer = dict(normalized.get("timer") or {})
    enabled = bool(timer.get("enabled"))
    try:
        minutes = int(timer.get("minutes") or 0)
    except (TypeError, ValueError):
        minutes = 0
    if enabled:
        minutes = max(TIMER_MIN_MINUTES, min(TIMER_MAX_MINUTES, minutes))
    else:
        minutes = 0
    normalized["timer"] = {"enabled": enabled, "minutes": minutes}
    return normalized


def create_form(owner, data: Mapping[str, Any]) -> Form:
    """
    Validate and save a new form owned by ``owner``.

    The form starts as a draft unless ``data["status"]`` is ``"published"``.
    Any ``slug`` in ``data`` is ignored; one is allocated here.
    """
    form = Form(owner=owner)
    for name in EDITABLE_FIELDS:
        if name in data:
            setattr(form, name, data[name])
    form.description = form.description or ""
    form.fields = form.fields or []
    form.settings = form.settings or {}
    form.submission_policy = form.submission_policy or {}
    # Shape checks run on the raw input; normalizing assumes them
    _require_valid(form)
    form.settings = normalize_settings(form.settings)

    if data.get("status") == Form.Status.PUBLISHED:
        form.status = Form.Status.PUBLISHED
        form.published_at = timezone.now()

    allocate_form_slug(form)
    logger.info(f"Created form {form.slug} ({form.type}) for user {owner.pk}")
    return form


def allocate_form_slug(form: Form) -> Form:
    """
    Assign a slug and insert ``form``.

    The existence check only narrows the odds; the unique index decides. A
    collision on insert triggers a fresh slug, up to
    ``FORMDESK_SLUG_SAVE_ATTEMPTS`` times.
    """

    def exists(candidate: str) -> bool:
        return Form.objects.filter(slug=candidate).exists()

    attempts = settings.FORMDESK_SLUG_SAVE_ATTEMPTS
    for attempt in range(1, attempts + 1):
        if settings.FORMDESK_TITLE_SLUGS:
            form.slug = create_unique_slug(generate_slug_from_title(form.title), exists)
        else:
            form.slug = create_unique_random_slug(exists)
        try:
            with transaction.atomic():
                form.save()
            return form
        except IntegrityError:
            logger.warning(
                f"Slug collision on '{form.slug}' (attempt {attempt}/{attempts})"
            )
    raise ConflictError(detail="Could not allocate a unique form identifier.")


def update_form(form: Form, data: Mapping[str, Any]) -> Form:
    """Apply an edit. ``slug`` and ``status`` in ``data`` are ignored."""
    _require_not_archived(form)
    for name in EDITABLE_FIELDS:
        if name not in data:
            continue
        value = data[name]
        if name == "settings" and isinstance(value, Mapping):
            value = {**(form.settings or {}), **value}
        elif name == "description":
            value = value or ""
        setattr(form, name, value)
    _require_valid(form)
    form.settings = normalize_settings(form.settings)
    form.save()
    if "fields" in data:
        index_unique_answers(form)
    logger.info(f"Updated form {form.slug}")
    return form


def publish_form(form: Form) -> Form:
    _require_not_archived(form)
    if form.status == Form.Status.PUBLISHED:
        return form
    _require_valid(form)
    form.status = Form.Status.PUBLISHED
    if form.published_at is None:
        form.published_at = timezone.now()
    form.save(update_fields=["status", "published_at", "updated_at"])
    logger.info(f"Published form {form.slug}")
    return form


def unpublish_form(form: Form) -> Form:
    _require_not_archived(form)
    if form.status == Form.Status.DRAFT:
        return form
    form.status = Form.Status.DRAFT
    form.save(update_fields=["status", "updated_at"])
    logger.info(f"Unpublished form {form.slug}")
    return form


def archive_form(form: Form) -> Form:
    _require_not_archived(form)
    form.status = Form.Status.ARCHIVED
    form.save(update_fields=["status", "updated_at"])
    logger.info(f"Archived form {form.slug}")
    return form


def delete_form(form: Form) -> str:
    """Archive a live form, or permanently remove an archived one.

    Returns ``"soft"`` or ``"hard"`` accordingly.
    """
    if form.is_archived:
        slug = form.slug
        with transaction.atomic():
            form.delete()
        logger.info(f"Deleted form {slug} and its responses")
        return "hard"
    archive_form(form)
    return "soft"


def delete_response(form: Form, response_id: int) -> None:
    try:
        response = form.responses.get(pk=response_id)
    except FormResponse.DoesNotExist:
        raise NotFoundError(detail="Response not found.")
    response.delete()
    logger.info(f"Deleted response {response_id} from form {form.slug}")


def _require_not_archived(form: Form) -> None:
    if form.is_archived:
        raise ConflictError(detail="Archived forms cannot be changed.")


def _require_valid(form: Form) -> None:
    result = validate_form_definition(form)
    if not result.valid:
        raise ValidationError(result.errors)
