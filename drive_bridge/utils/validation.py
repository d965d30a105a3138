"""Tool argument validation utilities."""
import re
from typing import Any, Optional, Union

from .errors import InvalidArgumentsError

DEFAULT_SEARCH_LIMIT = 25
MAX_SEARCH_LIMIT = 100

VALID_LINE_RANGE = re.compile(r"^\s*\d+\s*(-\s*\d+\s*)?$")


def validate_search_limit(value: Any) -> int:
    """Coerce the ``max`` search argument to a positive, capped integer."""
    if value is None or value == "":
        return DEFAULT_SEARCH_LIMIT

    if isinstance(value, bool):
        raise InvalidArgumentsError(f"Invalid max: {value!r}")

    try:
        limit = int(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidArgumentsError(f"Invalid max: {value!r}")

    if isinstance(value, float) and value != limit:
        raise InvalidArgumentsError(f"Invalid max: {value!r}")
    if limit < 1:
        raise InvalidArgumentsError("max must be a positive integer")

    return min(limit, MAX_SEARCH_LIMIT)


def validate_file_id(value: Any) -> str:
    """Return the ``id`` argument of fetch, rejecting missing or blank values."""
    if value is None or isinstance(value, (dict, list, bool)):
        raise InvalidArgumentsError("Missing required argument: id")

    file_id = str(value).strip()
    if not file_id:
        raise InvalidArgumentsError("Missing required argument: id")

    return file_id


def validate_line_range(value: Union[int, str, None]) -> Optional[str]:
    """Normalize the optional ``lines`` argument (``15`` or ``"10-20"``)."""
    if value is None or value == "":
        return None

    if isinstance(value, bool):
        raise InvalidArgumentsError(f"Invalid lines: {value!r}")

    if isinstance(value, int):
        if value < 0:
            raise InvalidArgumentsError(f"Invalid lines: {value!r}")
        return str(value)

    if isinstance(value, str) and VALID_LINE_RANGE.match(value):
        return value.replace(" ", "")

    raise InvalidArgumentsError(f"Invalid lines: {value!r}")
