"""
Field kinds and their per-kind behaviour.

A form's fields are stored as JSON objects on ``Form.fields``. ``FieldSpec`` is
the parsed view of one of those objects and ``FIELD_HANDLERS`` maps every
``FieldKind`` to the handler that validates and resolves its answers, so
validation and scoring dispatch on the kind in one place.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import re
from typing import Any, Mapping

from django.db import models
from django.utils.dateparse import parse_date, parse_time

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class FieldKind(models.TextChoices):
    SHORT_TEXT = "short_text", "Short text"
    LONG_TEXT = "long_text", "Long text"
    EMAIL = "email", "Email"
    NUMBER = "number", "Number"
    DATE = "date", "Date"
    TIME = "time", "Time"
    DROPDOWN = "dropdown", "Dropdown"
    CHECKBOX = "checkbox", "Checkboxes"
    RADIO = "radio", "Radio buttons"
    SINGLE_SELECT = "single_select", "Single select"
    MATRIX = "matrix", "Matrix"
    FILE = "file", "File upload"
    RATING = "rating", "Rating"
    SCALE = "scale", "Scale"
    SECTION = "section", "Section heading"
    IMAGE = "image", "Image"
    VIDEO = "video", "Video"


class FieldVisibility(models.TextChoices):
    PUBLIC = "public", "Public"
    INTERNAL = "internal", "Internal"


@dataclass(frozen=True)
class Violation:
    """One broken rule, addressed to a field (or ``None`` for form-level rules)."""

    field: str | None
    rule: str
    message: str

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class FieldSpec:
    id: str
    label: str
    kind: FieldKind
    required: bool = False
    options: list[str] = field(default_factory=list)
    multiple: bool = False
    visibility: str = FieldVisibility.PUBLIC
    validation: dict[str, Any] = field(default_factory=dict)
    correct_options: frozenset[int] = frozenset()
    points: float = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FieldSpec:
        """Parse a stored field object. Raises ``ValueError`` on an unknown type."""
        quiz = data.get("quiz") or {}
        correct = quiz.get("correct_options") or []
        return cls(
            id=str(data.get("id") or ""),
            label=str(data.get("label") or ""),
            kind=FieldKind(data.get("type")),
            required=bool(data.get("required", False)),
            options=[str(o) for o in (data.get("options") or [])],
            multiple=bool(data.get("multiple", False)),
            visibility=data.get("visibility") or FieldVisibility.PUBLIC,
            validation=dict(data.get("validation") or {}),
            correct_options=frozenset(
                int(i) for i in correct if not isinstance(i, bool)
            ),
            points=_as_number(quiz.get("points")) or 0,
        )

    @property
    def handler(self) -> FieldHandler:
        return FIELD_HANDLERS[self.kind]

    @property
    def display_name(self) -> str:
        return self.label or self.id

    @property
    def is_public(self) -> bool:
        return self.visibility != FieldVisibility.INTERNAL

    @property
    def is_choice(self) -> bool:
        return self.handler.requires_options

    @property
    def is_scorable(self) -> bool:
        return self.handler.scorable and self.points > 0 and bool(self.correct_options)

    def is_multi_select(self) -> bool:
        return self.handler.is_multi_select(self)


def resolve_option_index(spec: FieldSpec, value: Any) -> int | None:
    """Resolve an answer value to a position in ``spec.options``.

    Integers are taken as indices; strings are looked up among the options.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int):
        return value if 0 <= value < len(spec.options) else None
    if isinstance(value, str) and value in spec.options:
        return spec.options.index(value)
    return None


class FieldHandler:
    """Default behaviour: accepts any value, cannot be scored."""

    requires_options = False
    collects_input = True
    scorable = False

    def is_multi_select(self, spec: FieldSpec) -> bool:
        return False

    def check_value(self, spec: FieldSpec, value: Any) -> list[Violation]:
        return []

    def resolve_indices(self, spec: FieldSpec, value: Any) -> frozenset[int] | None:
        return None


class PresentationHandler(FieldHandler):
    """Headings and media blocks that never carry an answer."""

    collects_input = False


class TextHandler(FieldHandler):
    def check_value(self, spec, value):
        if not isinstance(value, str):
            return [Violation(spec.id, "type", f"Expected text for: {spec.display_name}")]
        pattern = spec.validation.get("pattern")
        if pattern and not re.fullmatch(pattern, value):
            return [
                Violation(spec.id, "pattern", f"Invalid format for: {spec.display_name}")
            ]
        return []


class EmailHandler(FieldHandler):
    def check_value(self, spec, value):
        if not isinstance(value, str) or not EMAIL_PATTERN.match(value):
            return [Violation(spec.id, "email", f"Invalid email for: {spec.display_name}")]
        return []


class NumberHandler(FieldHandler):
    def check_value(self, spec, value):
        number = _as_number(value)
        if number is None:
            return [
                Violation(spec.id, "number", f"Expected a number for: {spec.display_name}")
            ]
        errors = []
        low = spec.validation.get("min")
        high = spec.validation.get("max")
        if low is not None and number < low:
            errors.append(
                Violation(spec.id, "min", f"{spec.display_name}: must be at least {low}")
            )
        if high is not None and number > high:
            errors.append(
                Violation(spec.id, "max", f"{spec.display_name}: must be at most {high}")
            )
        return errors


class DateHandler(FieldHandler):
    parser = staticmethod(parse_date)
    rule = "date"

    def check_value(self, spec, value):
        try:
            parsed = self.parser(value) if isinstance(value, str) else None
        except ValueError:
            parsed = None
        if parsed is None:
            return [
                Violation(spec.id, self.rule, f"Invalid {self.rule} for: {spec.display_name}")
            ]
        return []


class TimeHandler(DateHandler):
    parser = staticmethod(parse_time)
    rule = "time"


class ChoiceHandler(FieldHandler):
    """Shared rules for option-backed kinds."""

    requires_options = True
    scorable = True

    def check_shape(self, spec: FieldSpec, value: Any) -> list[Violation]:
        return []

    def check_value(self, spec, value):
        errors = []
        values = value if isinstance(value, list) else [value]
        for v in values:
            if str(v) not in spec.options:
                errors.append(
                    Violation(spec.id, "option", f"Invalid option for: {spec.display_name}")
                )
        errors.extend(self.check_shape(spec, value))
        selection = spec.validation.get("selection") or {}
        if isinstance(value, list):
            low = selection.get("min")
            high = selection.get("max")
            if low is not None and len(value) < low:
                errors.append(
                    Violation(
                        spec.id, "selection_min", f"{spec.display_name}: select at least {low}"
                    )
                )
            if high is not None and len(value) > high:
                errors.append(
                    Violation(
                        spec.id, "selection_max", f"{spec.display_name}: select at most {high}"
                    )
                )
        return errors

    def resolve_indices(self, spec, value):
        if self.is_multi_select(spec):
            if not isinstance(value, list):
                return None
            indices = [resolve_option_index(spec, v) for v in value]
            if any(i is None for i in indices):
                return None
            return frozenset(indices)
        if isinstance(value, list):
            return None
        index = resolve_option_index(spec, value)
        return None if index is None else frozenset({index})


class RadioHandler(ChoiceHandler):
    def check_shape(self, spec, value):
        if isinstance(value, list):
            return [
                Violation(
                    spec.id, "single", f"Radio must be single-select: {spec.display_name}"
                )
            ]
        return []


class CheckboxHandler(ChoiceHandler):
    def is_multi_select(self, spec):
        return True

    def check_shape(self, spec, value):
        if not isinstance(value, list):
            return [
                Violation(
                    spec.id,
                    "multiple",
                    f"Checkbox must be multi-select array: {spec.display_name}",
                )
            ]
        return []


class DropdownHandler(ChoiceHandler):
    def is_multi_select(self, spec):
        return spec.multiple

    def check_shape(self, spec, value):
        if spec.multiple and not isinstance(value, list):
            return [
                Violation(
                    spec.id,
                    "multiple",
                    f"Dropdown multiple expects array: {spec.display_name}",
                )
            ]
        if not spec.multiple and isinstance(value, list):
            return [
                Violation(
                    spec.id, "single", f"Dropdown must be single-select: {spec.display_name}"
                )
            ]
        return []


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


FIELD_HANDLERS: dict[FieldKind, FieldHandler] = {
    FieldKind.SHORT_TEXT: TextHandler(),
    FieldKind.LONG_TEXT: TextHandler(),
    FieldKind.EMAIL: EmailHandler(),
    FieldKind.NUMBER: NumberHandler(),
    FieldKind.DATE: DateHandler(),
    FieldKind.TIME: TimeHandler(),
    FieldKind.DROPDOWN: DropdownHandler(),
    FieldKind.CHECKBOX: CheckboxHandler(),
    FieldKind.RADIO: RadioHandler(),
    FieldKind.SINGLE_SELECT: FieldHandler(),
    FieldKind.MATRIX: FieldHandler(),
    FieldKind.FILE: FieldHandler(),
    FieldKind.RATING: NumberHandler(),
    FieldKind.SCALE: NumberHandler(),
    FieldKind.SECTION: PresentationHandler(),
    FieldKind.IMAGE: PresentationHandler(),
    FieldKind.VIDEO: PresentationHandler(),
}
