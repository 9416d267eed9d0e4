from datetime import date, datetime

import pytest

from todo_lists.errors import InvalidPayloadError
from todo_lists.schemas import TodoListRequest
from todo_lists.validator import (
    DESCRIPTION_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    ensure_valid,
    parse_schedule,
    validate,
)


class TestValidate:
    def test_valid_request(self):
        assert validate(TodoListRequest(title="Buy milk", description="", scheduled_at=None)) == ""

    @pytest.mark.parametrize(
        "payload, message",
        [
            ({}, "title is required"),
            ({"title": ""}, "title must not be empty"),
            ({"title": " \t "}, "title must not be empty"),
            ({"title": "x" * (TITLE_MAX_LENGTH + 1)}, f"title must be at most {TITLE_MAX_LENGTH} characters"),
            (
                {"title": "ok", "description": "d" * (DESCRIPTION_MAX_LENGTH + 1)},
                f"description must be at most {DESCRIPTION_MAX_LENGTH} characters",
            ),
        ],
    )
    def test_rule_messages(self, payload, message):
        assert validate(TodoListRequest(**payload)) == message

    def test_bad_schedule(self):
        assert validate(TodoListRequest(title="ok", scheduled_at="next tuesday")).startswith(
            "scheduled_at must be an ISO8601"
        )

    def test_first_failing_rule_wins(self):
        request = TodoListRequest(
            title="", description="d" * (DESCRIPTION_MAX_LENGTH + 1), scheduled_at="garbage"
        )
        assert validate(request) == "title must not be empty"

    def test_title_length_counts_trimmed_text(self):
        assert validate(TodoListRequest(title="  " + "x" * TITLE_MAX_LENGTH + "  ")) == ""


class TestEnsureValid:
    def test_raises_invalid_payload(self):
        with pytest.raises(InvalidPayloadError) as exc_info:
            ensure_valid(TodoListRequest())
        assert exc_info.value.message == "title is required"
        assert exc_info.value.code == "INVALID_PAYLOAD"

    def test_returns_none_when_valid(self):
        assert ensure_valid(TodoListRequest(title="fine")) is None


class TestParseSchedule:
    def test_none(self):
        assert parse_schedule(None) is None

    def test_date_string_promoted_to_midnight(self):
        assert parse_schedule("2025-01-31") == datetime(2025, 1, 31, 0, 0, 0)

    def test_datetime_string(self):
        assert parse_schedule("2025-01-31T13:45:00") == datetime(2025, 1, 31, 13, 45)

    def test_date_and_datetime_objects(self):
        assert parse_schedule(date(2025, 2, 1)) == datetime(2025, 2, 1)
        moment = datetime(2025, 2, 1, 9, 30)
        assert parse_schedule(moment) is moment

    def test_garbage(self):
        with pytest.raises(ValueError):
            parse_schedule("not-a-date")
