"""Identifier helpers: filesystem-friendly slugs and request ids."""

from __future__ import annotations

import re
import time
import uuid
from typing import Pattern

_SLUG_PATTERN: Pattern[str] = re.compile(r"[^A-Za-z0-9_.-]+")
_HYPHEN_COLLAPSE = re.compile(r"-{2,}")


def slugify(value: object, *, fallback: str = "item", max_length: int = 40) -> str:
    """Normalize ``value`` into a slug that is safe to embed in file names."""
    source = str(value if value is not None else "").strip()
    slug = _HYPHEN_COLLAPSE.sub("-", _SLUG_PATTERN.sub("-", source)).strip("-.")
    if not slug:
        slug = fallback
    return slug[:max_length].rstrip("-") or fallback


def new_request_id(project_id: object, *, prefix: str | None = None) -> str:
    """Return ``[<prefix>-]<project_id>-<epoch_ms>-<6 hex>``.

    The millisecond timestamp keeps ids roughly sortable; the random suffix
    separates requests issued within the same millisecond.
    """
    parts = [slugify(project_id, fallback="project")]
    if prefix:
        parts.insert(0, prefix)
    parts.append(str(int(time.time() * 1000)))
    parts.append(uuid.uuid4().hex[:6])
    return "-".join(parts)


__all__ = ["new_request_id", "slugify"]
