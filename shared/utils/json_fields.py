"""Helpers for the JSON payloads stored in `*_json` Text columns."""
import json
from typing import Any


def dump_json(value: Any) -> str | None:
    """Serialise a column payload; None stays NULL."""
    if value is None:
        return None
    return json.dumps(value, default=str)


def load_json(raw: str | None, default: Any = None) -> Any:
    """Deserialise a column payload, returning `default` for NULL or empty text."""
    if not raw:
        return default
    return json.loads(raw)
