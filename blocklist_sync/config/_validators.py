from __future__ import annotations

from typing import Any


def _parse_positive_int(value: Any, *, default: int, name: str, maximum: int) -> int:
    return _parse_bounded_int(value, default=default, name=name, minimum=1, maximum=maximum)


def _parse_backoff_schedule(value: Any) -> tuple[int, ...]:
    """Parse a comma-separated list of retry delays in seconds."""
    if value in (None, ""):
        msg = "Retry backoff schedule cannot be empty"
        raise ValueError(msg)
    pieces = value if isinstance(value, list | tuple) else str(value).split(",")

    delays: list[int] = []
    for piece in pieces:
        piece = str(piece).strip()
        if not piece:
            continue
        try:
            delay = int(piece)
        except ValueError as exc:
            msg = f"Retry backoff step '{piece}' must be a whole number of seconds"
            raise ValueError(msg) from exc
        if delay <= 0:
            msg = "Retry backoff steps must be positive"
            raise ValueError(msg)
        delays.append(delay)

    if not delays:
        msg = "Retry backoff schedule cannot be empty"
        raise ValueError(msg)
    return tuple(delays)


def _parse_bounded_int(
    value: Any, *, default: int, name: str, minimum: int, maximum: int
) -> int:
    try:
        parsed = int(str(value if value not in (None, "") else default))
    except ValueError as exc:
        msg = f"{name} must be a valid integer"
        raise ValueError(msg) from exc
    if parsed < minimum or parsed > maximum:
        msg = f"{name} must be between {minimum} and {maximum}"
        raise ValueError(msg)
    return parsed


def _parse_timeout(value: Any, *, default: float, name: str, maximum: float) -> float:
    """Parse a timeout in seconds; zero and negative values are rejected."""
    try:
        parsed = float(str(value if value not in (None, "") else default))
    except ValueError as exc:
        msg = f"{name} must be a valid number"
        raise ValueError(msg) from exc
    if parsed <= 0 or parsed > maximum:
        msg = f"{name} must be between 0 and {maximum:g} seconds"
        raise ValueError(msg)
    return parsed
