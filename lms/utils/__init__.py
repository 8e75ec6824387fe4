"""Small helpers shared by the domain models."""

import json
from typing import Any


def dump_json(value: dict[str, Any] | None) -> str | None:
    """Serialize a metadata object for a TEXT column."""
    return json.dumps(value) if value is not None else None


def load_json(raw: str | None) -> dict[str, Any] | None:
    return json.loads(raw) if raw else None


__all__ = ["dump_json", "load_json"]
