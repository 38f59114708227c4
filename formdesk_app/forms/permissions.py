from __future__ import annotations

from .exceptions import AuthorizationError
from .models import Form


def can_view_form(user, form: Form) -> bool:
    if not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    return form.owner_id == getattr(user, "id", None)


def can_edit_form(user, form: Form) -> bool:
    # Superusers may view any form but only the owner edits
    if not user.is_authenticated:
        return False
    return form.owner_id == getattr(user, "id", None)


def require_can_view(user, form: Form) -> None:
    if not can_view_form(user, form):
        raise AuthorizationError("You do not have permission to view this form.")


def require_can_edit(user, form: Form) -> None:
    if not can_edit_form(user, form):
        raise AuthorizationError("You do not have permission to edit this form.")
