from __future__ import annotations

import re
import uuid
from typing import Iterable, List

from .errors import MalformedIdentifierError

_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


# PUBLIC_INTERFACE
def new_todo_id() -> str:
    """Return a fresh opaque todo identifier (uuid4 as 32 lowercase hex chars)."""
    return uuid.uuid4().hex


# PUBLIC_INTERFACE
def parse_todo_id(value: object) -> str:
    """
    Normalize and validate a caller-supplied todo identifier.

    Args:
        value: Raw identifier, usually a path or query string.

    Returns:
        The identifier stripped and lowercased.

    Raises:
        MalformedIdentifierError: if the value is not a 32-char hex string.
    """
    if not isinstance(value, str):
        raise MalformedIdentifierError(value)
    s = value.strip().lower()
    if not _ID_PATTERN.match(s):
        raise MalformedIdentifierError(value)
    return s


# PUBLIC_INTERFACE
def parse_todo_ids(values: Iterable[object]) -> List[str]:
    """Validate a sequence of identifiers, dropping duplicates but keeping order."""
    seen: dict[str, None] = {}
    for v in values:
        seen.setdefault(parse_todo_id(v), None)
    return list(seen)
