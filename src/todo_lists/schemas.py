from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, Strict, StrictStr

# Incoming schedule may be a date, a datetime, or an ISO8601 string.
# Strict members keep numbers from being coerced into timestamps.
ScheduleInput = Union[Annotated[datetime, Strict()], Annotated[date, Strict()], StrictStr]


# PUBLIC_INTERFACE
class TodoListRequest(BaseModel):
    """
    Body of create and update requests.

    Fields are deliberately lenient here; presence, emptiness, length and
    schedule format are checked by the validator so every rule reports a
    single, deterministic message. The owner comes from the bearer token.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Buy milk",
                "description": "Two litres, semi-skimmed",
                "scheduled_at": "2025-02-01T09:00:00",
            }
        }
    )

    title: Optional[str] = Field(default=None, description="Short title of the todo list")
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    scheduled_at: Optional[ScheduleInput] = Field(
        default=None,
        description="When the todo list is planned to be done. ISO8601 date or datetime; dates are set to 00:00",
    )


# PUBLIC_INTERFACE
class TodoListOut(BaseModel):
    """
    Schema returned by the API for a todo list.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 123,
                "owner_id": 7,
                "title": "Buy milk",
                "description": "Two litres, semi-skimmed",
                "scheduled_at": "2025-02-01T09:00:00",
                "created_at": "2025-01-25T10:15:30.123456",
                "updated_at": "2025-01-26T09:00:00.000001",
            }
        }
    )

    id: int = Field(..., description="Unique identifier of the todo list")
    owner_id: int = Field(..., description="Id of the user owning the todo list")
    title: str = Field(..., description="Short title of the todo list")
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    scheduled_at: Optional[datetime] = Field(default=None, description="Planned date/time as ISO8601")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class SuccessEnvelope(BaseModel):
    """
    Envelope for successful responses.
    """
    message: str = Field("Success", description="Human readable outcome")
    data: Any = Field(default=None, description="Payload of the response, if any")


class TodoListEnvelope(SuccessEnvelope):
    data: TodoListOut


class TodoListsEnvelope(SuccessEnvelope):
    data: List[TodoListOut]


class ErrorEnvelope(BaseModel):
    """
    Uniform error body.
    """
    error_code: str = Field(..., description="Stable machine readable error code")
    message: str = Field(..., description="Human readable error message")
