"""Validation helpers."""
from typing import Optional, Type


def ensure(condition: bool, message: str, exc: Type[Exception] = ValueError) -> None:
    if not condition:
        raise exc(message)


def non_blank(value: Optional[str]) -> Optional[str]:
    """Return ``value`` stripped, or ``None`` when it is empty."""

    if value is None:
        return None
    value = str(value).strip()
    return value or None
