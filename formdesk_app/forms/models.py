from __future__ import annotations

from typing import Any

from django.contrib.auth import get_user_model
from django.db import models
from django.db.models import Q
from django.utils import timezone

from .fields import FieldSpec

User = get_user_model()

DEDUPE_KEYS = ("email", "student_id")


class Form(models.Model):
    class Type(models.TextChoices):
        GENERAL = "general", "General"
        SURVEY = "survey", "Survey"
        ATTENDANCE = "attendance", "Attendance"
        QUIZ = "quiz", "Quiz"

    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        PUBLISHED = "published", "Published"
        ARCHIVED = "archived", "Archived"

    owner = models.ForeignKey(User, on_delete=models.CASCADE, related_name="forms")
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    type = models.CharField(max_length=20, choices=Type.choices, db_index=True)
    # Assigned once at creation; unique index is the authoritative collision check
    slug = models.SlugField(max_length=80, unique=True, editable=False)
    # Ordered list of field objects (id, label, type, required, options, ...)
    fields = models.JSONField(default=list, blank=True)
    # is_public, allow_multiple_submissions, allow_anonymous, identity_schema,
    # timer {enabled, minutes}, quiz {scoring_enabled, passing_score}
    settings = models.JSONField(default=dict, blank=True)
    # dedupe_by ⊆ {"email", "student_id"}, one_attempt_per_identity
    submission_policy = models.JSONField(default=dict, blank=True)
    start_at = models.DateTimeField(null=True, blank=True)
    end_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.DRAFT, db_index=True
    )
    published_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-updated_at", "-id"]
        indexes = [
            models.Index(fields=["owner", "-updated_at"], name="form_owner_updated_idx"),
            models.Index(fields=["status", "type"], name="form_status_type_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.title

    def is_live(self, now=None) -> bool:
        now = now or timezone.now()
        time_ok = (self.start_at is None or self.start_at <= now) and (
            self.end_at is None or now <= self.end_at
        )
        return self.status == self.Status.PUBLISHED and time_ok

    @property
    def is_archived(self) -> bool:
        return self.status == self.Status.ARCHIVED

    @property
    def field_specs(self) -> list[FieldSpec]:
        return [FieldSpec.from_dict(f) for f in self.fields or []]

    @property
    def public_field_specs(self) -> list[FieldSpec]:
        return [spec for spec in self.field_specs if spec.is_public]

    @property
    def identity_schema(self) -> dict[str, bool]:
        return dict((self.settings or {}).get("identity_schema") or {})

    @property
    def timer(self) -> dict[str, Any]:
        timer = (self.settings or {}).get("timer") or {}
        return {
            "enabled": bool(timer.get("enabled")),
            "minutes": int(timer.get("minutes") or 0),
        }

    @property
    def allows_anonymous(self) -> bool:
        return bool((self.settings or {}).get("allow_anonymous"))

    @property
    def scoring_enabled(self) -> bool:
        quiz = (self.settings or {}).get("quiz") or {}
        return self.type == self.Type.QUIZ or bool(quiz.get("scoring_enabled"))

    @property
    def passing_score(self) -> float | None:
        quiz = (self.settings or {}).get("quiz") or {}
        return quiz.get("passing_score")

    @property
    def dedupe_keys(self) -> list[str]:
        """Dedupe keys in force, empty unless one attempt per identity is on."""
        policy = self.submission_policy or {}
        if not policy.get("one_attempt_per_identity"):
            return []
        return [k for k in policy.get("dedupe_by") or [] if k in DEDUPE_KEYS]

    def to_definition(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "fields": self.fields or [],
            "settings": self.settings or {},
            "submission_policy": self.submission_policy or {},
            "start_at": self.start_at,
            "end_at": self.end_at,
        }

    def public_schema(self) -> dict[str, Any]:
        """Projection safe to serve to anonymous submitters."""
        return {
            "id": self.id,
            "slug": self.slug,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "fields": [
                f
                for f in self.fields or []
                if f.get("visibility") != "internal"
            ],
            "settings": {
                "identity_schema": self.identity_schema,
                "timer": self.timer,
                "start_at": self.start_at,
                "end_at": self.end_at,
                "allow_anonymous": self.allows_anonymous,
            },
        }


class FormResponse(models.Model):
    form = models.ForeignKey(Form, on_delete=models.CASCADE, related_name="responses")
    # name, email (lower-cased), student_id, ip, user_agent
    responder = models.JSONField(default=dict, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    submitted_at = models.DateTimeField(default=timezone.now, db_index=True)
    duration_ms = models.PositiveIntegerField(null=True, blank=True)
    # [{"field_id": ..., "value": ...}] in submission order
    answers = models.JSONField(default=list)
    score = models.FloatField(null=True, blank=True)
    max_score = models.FloatField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    # Only populated when the form enforces one attempt per identity on that key
    dedupe_email = models.CharField(max_length=254, null=True, blank=True)
    dedupe_student_id = models.CharField(max_length=100, null=True, blank=True)

    class Meta:
        ordering = ["-submitted_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["form", "dedupe_email"],
                condition=Q(dedupe_email__isnull=False),
                name="one_response_per_email_per_form",
            ),
            models.UniqueConstraint(
                fields=["form", "dedupe_student_id"],
                condition=Q(dedupe_student_id__isnull=False),
                name="one_response_per_student_per_form",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Response {self.pk} to {self.form_id}"

    @property
    def answer_map(self) -> dict[str, Any]:
        return {
            a.get("field_id"): a.get("value")
            for a in self.answers or []
            if isinstance(a, dict)
        }


class FormAnswerKey(models.Model):
    """Normalized answer to a field marked ``validation.unique``.

    One row per response and unique field. The constraint keeps a value from
    being accepted twice on the same form, even under concurrent submissions.
    """

    form = models.ForeignKey(Form, on_delete=models.CASCADE, related_name="answer_keys")
    response = models.ForeignKey(
        FormResponse, on_delete=models.CASCADE, related_name="answer_keys"
    )
    field_id = models.CharField(max_length=255)
    # sha256 of the case-folded, stripped value
    value_key = models.CharField(max_length=64)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["form", "field_id", "value_key"],
                name="unique_answer_value_per_form_field",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.field_id} key for response {self.response_id}"
