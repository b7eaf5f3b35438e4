"""Argument validators shared by request-issuing callers.

All helpers raise :class:`ValueError` with a message naming the offending
argument; none of them perform I/O.
"""

from __future__ import annotations

import math
import re
from typing import Any, Final, Iterable

DEFAULT_LIMIT: Final[int] = 10
DEFAULT_OFFSET: Final[int] = 0
MAX_NAME_LENGTH: Final[int] = 255

_SLASHES = re.compile(r"[/\\]")
_PRINTABLE_ASCII = re.compile(r"^[\x20-\x7E]+$")


def to_number_or_throw(value: Any, msg: str = "") -> int | float:
    """Return *value* as a number (ids, limits, offsets) or raise ``ValueError``."""
    if isinstance(value, bool):
        raise ValueError(f"{msg} -> Received invalid numeric argument -> {value!r}")
    if isinstance(value, (int, float)):
        number: int | float = value
    else:
        text = str(value).strip()
        try:
            number = int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                raise ValueError(
                    f"{msg} -> Received invalid numeric argument -> {value!r}"
                ) from None
    if isinstance(number, float) and not math.isfinite(number):
        raise ValueError(f"{msg} -> Received invalid numeric argument -> {value!r}")
    return number


def to_valid_limit_or_throw(limit: Any = None) -> int | float:
    return DEFAULT_LIMIT if limit is None else to_number_or_throw(limit, "#limit malformed")


def to_valid_offset_or_throw(offset: Any = None) -> int | float:
    return DEFAULT_OFFSET if offset is None else to_number_or_throw(offset, "#offset malformed")


def to_field_string_or_throw(fields: Iterable[str] | None = None) -> str:
    """Join a list of field names into the comma-separated ``fields`` query value."""
    if fields is None:
        return ""
    if isinstance(fields, (list, tuple)):
        return ",".join(str(f) for f in fields)
    raise ValueError(f"Received invalid #fields argument -> {fields!r}")


def to_valid_name_or_throw(name: Any) -> str:
    """Return a trimmed file/folder name that the storage service accepts.

    Rules: printable ASCII only, at least one character, no slash or
    backslash, at most 255 characters, and not ``.`` or ``..``.
    """
    if not isinstance(name, str):
        raise ValueError("#name must be a String")
    name = name.strip()
    if _SLASHES.search(name):
        raise ValueError("#name cannot include slash(/) or backslash(\\)")
    if not _PRINTABLE_ASCII.match(name):
        raise ValueError(
            "#name can only use ASCII printable codes, and must contain at least one character"
        )
    if len(name) > MAX_NAME_LENGTH:
        raise ValueError(f"#name cannot be longer than {MAX_NAME_LENGTH} characters")
    if name in (".", ".."):
        raise ValueError('#name cannot be "." or ".."')
    return name
