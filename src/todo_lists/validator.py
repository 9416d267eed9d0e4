"""
Declarative validation of todo list create/update requests.

Rules run in declaration order and the first failing rule's message is
reported. Type coercion of the JSON body is left to pydantic; these rules
cover presence, emptiness, length and schedule format.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Optional, Tuple

from .errors import InvalidPayloadError
from .schemas import ScheduleInput, TodoListRequest

TITLE_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 1000
SCHEDULE_FORMAT_MESSAGE = (
    "scheduled_at must be an ISO8601 date or datetime (e.g. '2025-01-31' or '2025-01-31T13:45:00')"
)


# PUBLIC_INTERFACE
def parse_schedule(value: Optional[ScheduleInput]) -> Optional[datetime]:
    """
    Normalize a schedule input into a datetime.
    - None stays None.
    - A datetime is returned as-is.
    - A date is promoted to a datetime at midnight.
    - A string is parsed as an ISO8601 datetime, falling back to a date.
    Raises ValueError for anything else.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, 0, 0, 0)

    if isinstance(value, str):
        s = value.strip()
        try:
            return datetime.fromisoformat(s)
        except ValueError:
            try:
                d = date.fromisoformat(s)
                return datetime(d.year, d.month, d.day, 0, 0, 0)
            except ValueError as e:
                raise ValueError(SCHEDULE_FORMAT_MESSAGE) from e

    raise ValueError(SCHEDULE_FORMAT_MESSAGE)


def _schedule_ok(value: Any) -> bool:
    try:
        parse_schedule(value)
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class FieldRule:
    field: str
    check: Callable[[Any], bool]
    message: str


RULES: Tuple[FieldRule, ...] = (
    FieldRule("title", lambda v: v is not None, "title is required"),
    FieldRule("title", lambda v: v is None or bool(v.strip()), "title must not be empty"),
    FieldRule(
        "title",
        lambda v: v is None or len(v.strip()) <= TITLE_MAX_LENGTH,
        f"title must be at most {TITLE_MAX_LENGTH} characters",
    ),
    FieldRule(
        "description",
        lambda v: v is None or len(v) <= DESCRIPTION_MAX_LENGTH,
        f"description must be at most {DESCRIPTION_MAX_LENGTH} characters",
    ),
    FieldRule(
        "scheduled_at",
        _schedule_ok,
        SCHEDULE_FORMAT_MESSAGE,
    ),
)


# PUBLIC_INTERFACE
def validate(request: TodoListRequest) -> str:
    """Return the message of the first failing rule, or an empty string."""
    for rule in RULES:
        if not rule.check(getattr(request, rule.field)):
            return rule.message
    return ""


# PUBLIC_INTERFACE
def ensure_valid(request: TodoListRequest) -> None:
    """Raise InvalidPayloadError when `request` breaks any rule."""
    message = validate(request)
    if message:
        raise InvalidPayloadError(message)
