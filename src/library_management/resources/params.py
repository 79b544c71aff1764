"""Helpers for resource URI parameters.

Template parameters arrive as strings (``library://items/{item_id}`` gives
``item_id="42"``), so handlers convert them here before touching the
repositories.
"""

from fastmcp.exceptions import ResourceError


def parse_positive_int(value: str | int, name: str, maximum: int | None = None) -> int:
    """Convert a URI parameter to an int >= 1.

    Raises:
        ResourceError: If the value is not a positive integer or exceeds maximum
    """
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ResourceError(f"Invalid {name}: {value!r} is not an integer") from e

    if number < 1:
        raise ResourceError(f"Invalid {name}: must be at least 1, got {number}")
    if maximum is not None and number > maximum:
        raise ResourceError(f"Invalid {name}: must be at most {maximum}, got {number}")
    return number
