"""Hashing helpers that keep raw identifiers and emails out of log lines."""

from __future__ import annotations

import hashlib
from typing import Any

_DIGEST_CHARS = 12


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:_DIGEST_CHARS]


def safe_log_identifier(value: Any, *, prefix: str) -> str:
    """Map ``value`` to ``<prefix>-<digest>`` so log records correlate without exposing it."""
    text = "" if value is None else str(value).strip()
    if not text:
        return f"{prefix}-missing"
    return f"{prefix}-{_digest(text)}"


def safe_log_email(email: str | None) -> str:
    """Digest an email after normalization so casing never splits a log trail."""
    return safe_log_identifier((email or "").lower(), prefix="email")
