"""
Tests for response analytics service.
"""

from datetime import timedelta
from unittest import mock

from django.utils import timezone
import pytest

from formdesk_app.forms.models import Form, FormResponse
from formdesk_app.forms.services.response_analytics import (
    AnswerDistribution,
    FormAnalytics,
    _reorder_by_options,
    _truncate_label,
    aggregate_distributions,
    attendance_stats,
    compute_form_analytics,
    time_series,
)

TEST_PASSWORD = "x"  # noqa: S105

FIELDS = [
    {"id": "colour", "label": "Colour", "type": "radio", "options": ["Red", "Green", "Blue"]},
    {"id": "pets", "label": "Pets", "type": "checkbox", "options": ["Cat", "Dog"]},
    {"id": "why", "label": "Why?", "type": "long_text"},
]


def _response(answers=None, submitted_at=None):
    return FormResponse(answers=answers or [], submitted_at=submitted_at or timezone.now())


class TestTruncateLabel:
    def test_short_label_unchanged(self):
        assert _truncate_label("Short", 50) == "Short"

    def test_long_label_truncated(self):
        result = _truncate_label("x" * 60, 50)
        assert len(result) == 50
        assert result.endswith("...")


class TestReorderByOptions:
    def test_declared_order_then_count(self):
        options = [
            {"value": "Other", "count": 1},
            {"value": "Blue", "count": 5},
            {"value": "Mauve", "count": 3},
            {"value": "Red", "count": 2},
        ]
        result = _reorder_by_options(["Red", "Green", "Blue"], options)
        assert [o["value"] for o in result] == ["Red", "Blue", "Mauve", "Other"]

    def test_no_declared_options_unchanged(self):
        options = [{"value": "B", "count": 1}, {"value": "A", "count": 5}]
        assert _reorder_by_options([], options) == options


class TestAggregateDistributions:
    def test_only_choice_fields(self):
        form = Form(title="S", type="survey", fields=FIELDS)
        result = aggregate_distributions(form, [])
        assert [d.field_id for d in result] == ["colour", "pets"]

    def test_counts_in_declared_order(self):
        form = Form(title="S", type="survey", fields=FIELDS)
        responses = [
            _response([{"field_id": "colour", "value": "Blue"}]),
            _response([{"field_id": "colour", "value": "Red"}]),
            _response([{"field_id": "colour", "value": "Blue"}]),
        ]
        colour = aggregate_distributions(form, responses)[0]
        assert colour.counts == {"Red": 1, "Blue": 2}
        assert list(colour.counts) == ["Red", "Blue"]
        assert colour.total_responses == 3

    def test_checkbox_counts_each_selection(self):
        form = Form(title="S", type="survey", fields=FIELDS)
        responses = [
            _response([{"field_id": "pets", "value": ["Cat", "Dog"]}]),
            _response([{"field_id": "pets", "value": ["Cat"]}]),
        ]
        pets = aggregate_distributions(form, responses)[1]
        assert pets.counts == {"Cat": 2, "Dog": 1}
        assert sum(pets.counts.values()) > len(responses)

    def test_malformed_entries_skipped(self):
        form = Form(title="S", type="survey", fields=FIELDS)
        responses = [
            _response(["garbage", {"value": "Red"}, {"field_id": "colour", "value": "Red"}]),
            FormResponse(answers={"colour": "Red"}, submitted_at=timezone.now()),
        ]
        colour = aggregate_distributions(form, responses)[0]
        assert colour.counts == {"Red": 1}


class TestTimeSeries:
    def test_trailing_window(self):
        now = timezone.now()
        responses = [
            _response(submitted_at=now),
            _response(submitted_at=now - timedelta(days=10)),
            _response(submitted_at=now - timedelta(days=40)),
        ]
        series = time_series(responses, days=30, now=now)
        today = timezone.localdate(now)
        assert series == [
            {"date": (today - timedelta(days=10)).isoformat(), "count": 1},
            {"date": today.isoformat(), "count": 1},
        ]

    def test_same_day_bucketed(self):
        now = timezone.now()
        series = time_series([_response(submitted_at=now), _response(submitted_at=now)], now=now)
        assert series == [{"date": timezone.localdate(now).isoformat(), "count": 2}]

    def test_attendance_window_is_fourteen_days(self):
        now = timezone.now()
        responses = [
            _response(submitted_at=now),
            _response(submitted_at=now - timedelta(days=20)),
        ]
        stats = attendance_stats(responses, now=now)
        assert stats["total"] == 2
        assert len(stats["by_day"]) == 1


class TestAnalyticsDataclasses:
    def test_answer_distribution_defaults(self):
        dist = AnswerDistribution(
            field_id="q1", label="Q", field_type="radio", total_responses=0
        )
        assert dist.options == []
        assert dist.counts == {}

    def test_form_analytics_as_dict(self):
        data = FormAnalytics(total=0).as_dict()
        assert data == {"total": 0, "by_day": [], "distributions": []}


@pytest.mark.django_db
class TestComputeFormAnalytics:
    def _form(self, django_user_model, username, **kwargs):
        owner = django_user_model.objects.create_user(username=username, password=TEST_PASSWORD)
        return Form.objects.create(
            owner=owner, title="S", slug=username, fields=FIELDS, **kwargs
        )

    def test_empty_form(self, django_user_model):
        form = self._form(django_user_model, "analytics1", type="survey")
        analytics = compute_form_analytics(form)
        assert analytics.total == 0
        assert analytics.distributions == []

    def test_totals_series_and_distributions(self, django_user_model):
        form = self._form(django_user_model, "analytics2", type="survey")
        now = timezone.now()
        FormResponse.objects.create(
            form=form, answers=[{"field_id": "colour", "value": "Red"}], submitted_at=now
        )
        FormResponse.objects.create(
            form=form,
            answers=[{"field_id": "colour", "value": "Green"}],
            submitted_at=now - timedelta(days=45),
        )
        analytics = compute_form_analytics(form, days=30, now=now)
        assert analytics.total == 2
        assert sum(b["count"] for b in analytics.by_day) == 1
        assert analytics.distributions[0].counts == {"Red": 1, "Green": 1}
        assert analytics.attendance is None

    def test_sample_limit(self, django_user_model, settings):
        settings.FORMDESK_ANALYTICS_SAMPLE_LIMIT = 2
        form = self._form(django_user_model, "analytics3", type="survey")
        for _ in range(3):
            FormResponse.objects.create(
                form=form, answers=[{"field_id": "colour", "value": "Blue"}]
            )
        analytics = compute_form_analytics(form)
        assert analytics.total == 3
        assert analytics.distributions[0].counts == {"Blue": 2}

    def test_attendance_forms_carry_attendance(self, django_user_model):
        form = self._form(django_user_model, "analytics4", type="attendance")
        FormResponse.objects.create(form=form)
        data = compute_form_analytics(form).as_dict()
        assert data["attendance"]["total"] == 1

    def test_attendance_queryset_counted_in_database(self, django_user_model):
        form = self._form(django_user_model, "analytics5", type="attendance")
        now = timezone.now()
        FormResponse.objects.create(form=form, submitted_at=now)
        FormResponse.objects.create(form=form, submitted_at=now - timedelta(days=60))
        with mock.patch.object(FormResponse, "from_db", wraps=FormResponse.from_db) as loaded:
            stats = attendance_stats(form.responses.all(), now=now)
        assert stats["total"] == 2
        assert stats["by_day"] == [{"date": timezone.localdate(now).isoformat(), "count": 1}]
        # Only the response inside the two-week window is loaded
        assert loaded.call_count == 1
