"""
Tests for quiz scoring.
"""

import pytest

from formdesk_app.forms.models import Form
from formdesk_app.forms.services.scoring import QuizScore, score_quiz


def _quiz(fields, **settings):
    return Form(title="Quiz", type="quiz", fields=fields, settings=settings)


RADIO = {
    "id": "capital",
    "label": "Capital of France",
    "type": "radio",
    "options": ["A", "B", "C"],
    "quiz": {"correct_options": [1], "points": 5},
}

CHECKBOX = {
    "id": "primes",
    "label": "Pick the primes",
    "type": "checkbox",
    "options": ["2", "4", "5"],
    "quiz": {"correct_options": [0, 2], "points": 4},
}


def _answer(field_id, value):
    return [{"field_id": field_id, "value": value}]


class TestSingleSelect:
    @pytest.mark.parametrize("value", ["B", 1])
    def test_correct_answer_scores_full_points(self, value):
        result = score_quiz(_quiz([RADIO]), _answer("capital", value))
        assert (result.score, result.max_score) == (5, 5)
        assert result.per_question[0].correct

    def test_wrong_answer_scores_zero(self):
        result = score_quiz(_quiz([RADIO]), _answer("capital", "A"))
        assert (result.score, result.max_score) == (0, 5)

    def test_unanswered_still_counts_towards_max(self):
        result = score_quiz(_quiz([RADIO]), [])
        assert (result.score, result.max_score) == (0, 5)

    def test_unresolvable_value_scores_zero(self):
        result = score_quiz(_quiz([RADIO]), _answer("capital", "Paris"))
        assert result.score == 0


class TestMultiSelect:
    @pytest.mark.parametrize("value", [["2", "5"], ["5", "2"], [0, 2]])
    def test_exact_set_scores_full_points(self, value):
        result = score_quiz(_quiz([CHECKBOX]), _answer("primes", value))
        assert result.score == 4

    @pytest.mark.parametrize("value", [["2"], ["2", "4", "5"], ["4", "5"]])
    def test_subset_or_superset_scores_zero(self, value):
        result = score_quiz(_quiz([CHECKBOX]), _answer("primes", value))
        assert (result.score, result.max_score) == (0, 4)

    def test_any_unresolvable_element_scores_zero(self):
        result = score_quiz(_quiz([CHECKBOX]), _answer("primes", ["2", "5", "7"]))
        assert result.score == 0

    def test_multi_dropdown(self):
        field = {
            "id": "d",
            "label": "Pick",
            "type": "dropdown",
            "multiple": True,
            "options": ["x", "y", "z"],
            "quiz": {"correct_options": [1, 2], "points": 2},
        }
        assert score_quiz(_quiz([field]), _answer("d", ["z", "y"])).score == 2
        assert score_quiz(_quiz([field]), _answer("d", "y")).score == 0


class TestQuizTotals:
    def test_fields_without_points_ignored(self):
        unscored = {**RADIO, "id": "free", "quiz": {"correct_options": [0], "points": 0}}
        text = {"id": "why", "label": "Why?", "type": "long_text"}
        result = score_quiz(_quiz([RADIO, unscored, text]), _answer("capital", "B"))
        assert result.max_score == 5
        assert [q.field_id for q in result.per_question] == ["capital"]

    def test_internal_fields_not_scored(self):
        hidden = {**RADIO, "id": "hidden", "visibility": "internal"}
        result = score_quiz(_quiz([RADIO, hidden]), _answer("capital", "B"))
        assert result.max_score == 5

    def test_passing_score_is_a_percentage(self):
        form = _quiz([RADIO, CHECKBOX], quiz={"passing_score": 50})
        result = score_quiz(form, _answer("capital", "B"))
        assert result.percentage == 55.6
        assert result.passed is True
        failed = score_quiz(form, _answer("primes", ["2", "5"]))
        assert failed.passed is False

    def test_passed_is_none_without_threshold(self):
        assert score_quiz(_quiz([RADIO]), []).passed is None

    def test_empty_quiz(self):
        result = score_quiz(_quiz([]), [])
        assert result == QuizScore()
        assert result.percentage == 0.0
