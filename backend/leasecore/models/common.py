"""Column helpers shared by the model modules."""

import enum
from datetime import datetime, timezone


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum *values* ("posted"), not member names ("POSTED")."""
    return [member.value for member in enum_cls]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
