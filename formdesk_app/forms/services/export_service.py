"""
ExportService - CSV rendering of a form's responses.

Columns: ``submitted_at``, then whichever responder columns (name, email,
student_id) appear in the exported responses, then one column per input field
labelled with the field label. List and object answers are JSON-encoded.
"""

from __future__ import annotations

import csv
from io import StringIO
import json
import logging
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from ..models import Form, FormResponse

logger = logging.getLogger(__name__)

RESPONDER_COLUMNS = ("name", "email", "student_id")


class ExportService:
    """Service for turning stored responses into downloadable files."""

    @classmethod
    def generate_csv(
        cls, form: Form, responses: Iterable[FormResponse] | None = None
    ) -> str:
        """
        Generate CSV string from form responses.

        Args:
            form: Form to export
            responses: Responses to include (defaults to all, newest first)

        Returns:
            CSV string with headers and one row per response
        """
        logger.debug(f"Generating CSV for form {form.slug}")
        if responses is None:
            responses = form.responses.all()
        responses = list(responses)

        specs = [spec for spec in form.field_specs if spec.handler.collects_input]
        responder_columns = [
            column
            for column in RESPONDER_COLUMNS
            if any((r.responder or {}).get(column) for r in responses)
        ]

        output = StringIO()
        writer = csv.writer(output)
        writer.writerow(
            ["submitted_at", *responder_columns, *(spec.display_name for spec in specs)]
        )

        for response in responses:
            responder = response.responder or {}
            answers = response.answer_map
            row = [response.submitted_at.isoformat() if response.submitted_at else ""]
            row.extend(responder.get(column) or "" for column in responder_columns)
            row.extend(cls._format_value(answers.get(spec.id)) for spec in specs)
            writer.writerow(row)

        logger.debug(f"Exported {len(responses)} responses for form {form.slug}")
        return output.getvalue()

    @staticmethod
    def _format_value(value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, (list, dict)):
            return json.dumps(value)
        return str(value)
