"""Slug and account-name helpers."""

from __future__ import annotations

import re

_SLUG_PATTERN = re.compile(r"[^a-zA-Z0-9-]+")


def normalize_slug(value: str | None) -> str | None:
    """Return ``value`` lowercased with each run of disallowed characters replaced by ``-``.

    ``None`` passes through unchanged. The transformation is idempotent.
    """

    if value is None:
        return None
    return _SLUG_PATTERN.sub("-", value).lower()


def name_from_email(email: str | None) -> str | None:
    """Return the local part of ``email`` (text before the first ``@``)."""

    if email is None:
        return None
    return email.split("@", 1)[0]
