"""
Response analytics service for form dashboards.

Computes answer distributions for choice fields and day-bucketed submission
counts. Distributions are computed over a capped sample of the most recent
responses; totals always come from a storage count.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
import logging
from typing import TYPE_CHECKING, Any, Iterable

from django.conf import settings
from django.db.models import QuerySet
from django.utils import timezone

if TYPE_CHECKING:
    from ..models import Form, FormResponse

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30
ATTENDANCE_WINDOW_DAYS = 14


@dataclass
class AnswerDistribution:
    """Distribution of answers for a single choice field."""

    field_id: str
    label: str
    field_type: str
    total_responses: int
    options: list[dict[str, Any]] = field(default_factory=list)
    # Each option: {"value": str, "label": str, "count": int, "percent": float}

    @property
    def counts(self) -> dict[str, int]:
        return {opt["value"]: opt["count"] for opt in self.options}


@dataclass
class FormAnalytics:
    """Aggregate analytics for a form's responses."""

    total: int
    by_day: list[dict[str, Any]] = field(default_factory=list)
    distributions: list[AnswerDistribution] = field(default_factory=list)
    attendance: dict[str, Any] | None = None

    def as_dict(self) -> dict[str, Any]:
        data = {
            "total": self.total,
            "by_day": self.by_day,
            "distributions": [asdict(d) for d in self.distributions],
        }
        if self.attendance is not None:
            data["attendance"] = self.attendance
        return data


def compute_form_analytics(
    form: Form, days: int = DEFAULT_WINDOW_DAYS, now: datetime | None = None
) -> FormAnalytics:
    """
    Compute dashboard analytics for a form.

    Args:
        form: Form model instance
        days: Trailing window for the daily series
        now: Reference time (defaults to the current time)

    Returns:
        FormAnalytics; attendance forms also carry a 14-day attendance summary
    """
    now = now or timezone.now()
    total = form.responses.count()
    if total == 0:
        return FormAnalytics(
            total=0,
            attendance=(
                {"total": 0, "by_day": []}
                if form.type == form.Type.ATTENDANCE
                else None
            ),
        )

    cutoff = now - timedelta(days=days + 1)
    recent = form.responses.filter(submitted_at__gte=cutoff).only("submitted_at")
    by_day = time_series(recent, days=days, now=now)

    limit = settings.FORMDESK_ANALYTICS_SAMPLE_LIMIT
    sample = list(form.responses.order_by("-submitted_at")[:limit])
    if total > limit:
        logger.info(
            f"Analytics for form {form.slug} sampled {limit} of {total} responses"
        )
    distributions = aggregate_distributions(form, sample)

    attendance = None
    if form.type == form.Type.ATTENDANCE:
        attendance = attendance_stats(form.responses.all(), now=now)

    return FormAnalytics(
        total=total, by_day=by_day, distributions=distributions, attendance=attendance
    )


def aggregate_distributions(
    form: Form, responses: Iterable[FormResponse]
) -> list[AnswerDistribution]:
    """Option counts for every choice field, in field order.

    List answers count each selected value once, so a checkbox field's counts
    can add up to more than the number of responses.
    """
    choice_specs = [spec for spec in form.field_specs if spec.is_choice]
    if not choice_specs:
        return []

    counters: dict[str, Counter] = {spec.id: Counter() for spec in choice_specs}
    answered: Counter = Counter()

    for response in responses:
        answers = response.answers
        if not isinstance(answers, list):
            logger.warning(f"Skipping response {response.pk}: answers is not a list")
            continue
        for entry in answers:
            if not isinstance(entry, dict) or "field_id" not in entry:
                logger.warning(f"Skipping malformed answer in response {response.pk}")
                continue
            field_id = entry["field_id"]
            if field_id not in counters:
                continue
            value = entry.get("value")
            if value is None or value == "" or value == []:
                continue
            answered[field_id] += 1
            if isinstance(value, list):
                for item in value:
                    counters[field_id][str(item)] += 1
            else:
                counters[field_id][str(value)] += 1

    distributions = []
    for spec in choice_specs:
        answered_count = answered[spec.id]
        options = []
        for value, count in counters[spec.id].most_common():
            percent = (count / answered_count * 100) if answered_count > 0 else 0
            options.append(
                {
                    "value": value,
                    "label": _truncate_label(value, 50),
                    "count": count,
                    "percent": round(percent, 1),
                }
            )
        distributions.append(
            AnswerDistribution(
                field_id=spec.id,
                label=_truncate_label(spec.display_name, 100),
                field_type=spec.kind.value,
                total_responses=answered_count,
                options=_reorder_by_options(spec.options, options),
            )
        )
    return distributions


def time_series(
    responses: Iterable[FormResponse] | QuerySet,
    days: int = DEFAULT_WINDOW_DAYS,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Responses per calendar day for the trailing ``days`` (inclusive), oldest first."""
    today = timezone.localdate(now or timezone.now())
    earliest = today - timedelta(days=days)
    counter: Counter = Counter()
    for response in _iterate(responses):
        submitted = _local_date(response.submitted_at)
        if submitted is None or submitted < earliest:
            continue
        counter[submitted] += 1
    return [
        {"date": day.isoformat(), "count": counter[day]} for day in sorted(counter)
    ]


def attendance_stats(
    responses: Iterable[FormResponse] | QuerySet, now: datetime | None = None
) -> dict[str, Any]:
    """Total check-ins plus the daily series for the last two weeks.

    A queryset is counted and windowed in the database.
    """
    now = now or timezone.now()
    if isinstance(responses, QuerySet):
        total = responses.count()
        cutoff = now - timedelta(days=ATTENDANCE_WINDOW_DAYS + 1)
        window = responses.filter(submitted_at__gte=cutoff).only("submitted_at")
    else:
        window = list(responses)
        total = len(window)
    return {
        "total": total,
        "by_day": time_series(window, days=ATTENDANCE_WINDOW_DAYS, now=now),
    }


def _iterate(responses):
    if isinstance(responses, QuerySet):
        return responses.iterator()
    return responses


def _local_date(value: datetime | None) -> date | None:
    if value is None:
        return None
    if timezone.is_aware(value):
        value = timezone.localtime(value)
    return value.date()


def _truncate_label(text: str, max_len: int) -> str:
    """Truncate text with ellipsis if too long."""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _reorder_by_options(declared: list[str], options: list[dict]) -> list[dict]:
    """
    Reorder buckets to match the field's declared option order.
    Values that are not declared options follow, most frequent first.
    """
    if not declared:
        return options
    order_map = {label: i for i, label in enumerate(declared)}

    def sort_key(opt):
        if opt["value"] in order_map:
            return (0, order_map[opt["value"]])
        return (1, -opt["count"])

    return sorted(options, key=sort_key)
