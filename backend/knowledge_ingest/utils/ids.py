"""ID helpers."""

from __future__ import annotations

import uuid


def new_id(prefix: str | None = None) -> str:
    """Generate a random UUID4 string with optional prefix."""
    base = uuid.uuid4().hex
    return f"{prefix}_{base}" if prefix else base


def record_id(source_type: str, *parts: object) -> str:
    """Build a deterministic record id such as ``github:pr:acme:acme/widget/42``."""
    return ":".join([source_type, *(str(part) for part in parts)])
