"""
Public identifier (slug) generation.

The ``exists`` callables passed in here are advisory: a slug reported as free
can still be taken by a concurrent request before it is saved. The unique
index on ``Form.slug`` is the real guarantee and ``lifecycle.allocate_form_slug``
retries when it fires.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from typing import Callable

from django.utils.text import slugify

logger = logging.getLogger(__name__)

SLUG_ALPHABET = string.ascii_lowercase + string.digits

SUFFIX_ATTEMPTS = 5
SUFFIX_START_LENGTH = 4
RANDOM_ATTEMPTS = 10
RANDOM_FALLBACK_LENGTH = 21

ExistsCheck = Callable[[str], bool]


def random_string(length: int) -> str:
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))


def generate_slug_from_title(title: str, max_length: int = 60) -> str:
    """
    Turn a title into an ASCII, URL-safe base slug.

    Deterministic: the same title always gives the same slug.
    """
    # ASCII only; the <slug:> URL converter rejects anything else
    slug = slugify((title or "").replace("_", " ")).strip("-")
    if len(slug) > max_length:
        slug = slug[:max_length].rstrip("-")
    return slug


def create_unique_slug(base_slug: str, exists: ExistsCheck) -> str:
    """
    Return ``base_slug`` or a suffixed variant that ``exists`` reports as free.

    Tries the bare base, then ``SUFFIX_ATTEMPTS`` random suffixes of growing
    length, then falls back to a timestamp plus random composite without
    asking ``exists`` again.
    """
    base_slug = base_slug or "form"
    if not exists(base_slug):
        return base_slug

    for attempt in range(SUFFIX_ATTEMPTS):
        candidate = f"{base_slug}-{random_string(SUFFIX_START_LENGTH + attempt)}"
        if not exists(candidate):
            return candidate

    logger.warning(f"Slug suffixes exhausted for '{base_slug}', using fallback")
    return f"form-{int(time.time() * 1000)}-{random_string(6)}"


def generate_random_slug(length: int = 10) -> str:
    return random_string(length)


def create_unique_random_slug(exists: ExistsCheck, length: int = 10) -> str:
    """Fully random slug: ``length`` chars, then ``length + 4``, then 21."""
    for size in (length, length + 4):
        for _ in range(RANDOM_ATTEMPTS):
            candidate = random_string(size)
            if not exists(candidate):
                return candidate
    logger.warning("Random slug attempts exhausted, using long fallback")
    return random_string(RANDOM_FALLBACK_LENGTH)
