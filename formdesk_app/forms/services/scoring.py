"""
Quiz scoring.

Only fields with a positive point value and a non-empty set of correct option
indices are scored. Multi-select answers earn their points only when the
selected set matches the correct set exactly; there is no partial credit.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from ..fields import FieldSpec

if TYPE_CHECKING:
    from ..models import Form


@dataclass
class QuestionScore:
    field_id: str
    earned: float
    possible: float
    correct: bool


@dataclass
class QuizScore:
    score: float = 0
    max_score: float = 0
    per_question: list[QuestionScore] = field(default_factory=list)
    passed: bool | None = None

    @property
    def percentage(self) -> float:
        if not self.max_score:
            return 0.0
        return round(self.score / self.max_score * 100, 1)

    def as_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "max_score": self.max_score,
            "percentage": self.percentage,
            "passed": self.passed,
            "per_question": [asdict(q) for q in self.per_question],
        }


def score_field(spec: FieldSpec, value: Any) -> QuestionScore:
    """Score one answer against a scorable field."""
    resolved = spec.handler.resolve_indices(spec, value) if value is not None else None
    if resolved is None:
        correct = False
    elif spec.is_multi_select():
        correct = resolved == spec.correct_options
    else:
        correct = next(iter(resolved)) in spec.correct_options
    return QuestionScore(
        field_id=spec.id,
        earned=spec.points if correct else 0,
        possible=spec.points,
        correct=correct,
    )


def score_quiz(form: Form, answers: Iterable[Mapping[str, Any]]) -> QuizScore:
    """
    Compute the score of a set of answers.

    Args:
        form: Form whose fields carry the quiz metadata
        answers: ``[{"field_id": ..., "value": ...}]`` as submitted

    Returns:
        QuizScore with totals, a per-question breakdown and, when the form sets
        a passing score (a percentage), whether it was reached
    """
    provided = {
        str(a.get("field_id")): a.get("value")
        for a in answers
        if isinstance(a, Mapping)
    }
    result = QuizScore()
    for spec in form.field_specs:
        # Internal fields are never shown to submitters
        if not spec.is_public or not spec.is_scorable:
            continue
        question = score_field(spec, provided.get(spec.id))
        result.max_score += question.possible
        result.score += question.earned
        result.per_question.append(question)

    passing = form.passing_score
    if passing is not None:
        result.passed = result.percentage >= passing
    return result
