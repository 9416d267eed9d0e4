from __future__ import annotations

import uuid
from typing import AsyncGenerator

import structlog
from fastapi import APIRouter, Depends

from ..auth import get_current_owner
from ..context import OperationContext
from ..repositories import Store, get_store
from ..schemas import (
    ErrorEnvelope,
    SuccessEnvelope,
    TodoListEnvelope,
    TodoListOut,
    TodoListRequest,
    TodoListsEnvelope,
)
from ..service import TodoListService
from ..settings import get_settings
from ..utils import success_envelope

_error_responses = {
    401: {"model": ErrorEnvelope, "description": "Unauthorized"},
    422: {"model": ErrorEnvelope, "description": "Invalid request or todo list not found"},
    500: {"model": ErrorEnvelope, "description": "Internal server error"},
}

router = APIRouter(
    prefix="/todo-lists",
    tags=["todo-lists"],
    responses=_error_responses,
)


def _get_service(store: Store = Depends(get_store)) -> TodoListService:
    """
    Dependency wrapper building the service around the shared store.
    """
    return TodoListService(store)


async def _get_context(owner_id: int = Depends(get_current_owner)) -> AsyncGenerator[OperationContext, None]:
    """
    Per-request cancellation context bounded by REQUEST_TIMEOUT_SECONDS.
    Also binds request_id and owner_id into the structlog context.
    """
    ctx = OperationContext(timeout=get_settings().request_timeout_seconds)
    structlog.contextvars.bind_contextvars(request_id=uuid.uuid4().hex, owner_id=owner_id)
    try:
        yield ctx
    finally:
        ctx.cancel()
        structlog.contextvars.unbind_contextvars("request_id", "owner_id")


# PUBLIC_INTERFACE
@router.get(
    "/{record_id}",
    response_model=TodoListEnvelope,
    summary="Get Todo List",
    description="Get a single todo list by its ID.",
)
def get_todo_list(
    record_id: int,
    ctx: OperationContext = Depends(_get_context),
    service: TodoListService = Depends(_get_service),
) -> dict:
    """
    Retrieve a single todo list by its ID.
    """
    record = service.get_by_id(ctx, record_id)
    return success_envelope(TodoListOut(**record))


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=TodoListsEnvelope,
    summary="List Todo Lists",
    description="List every todo list owned by the authenticated user, ordered by ID.",
)
def list_todo_lists(
    owner_id: int = Depends(get_current_owner),
    ctx: OperationContext = Depends(_get_context),
    service: TodoListService = Depends(_get_service),
) -> dict:
    """
    List the caller's todo lists.
    """
    records = service.get_by_owner(ctx, owner_id)
    return success_envelope([TodoListOut(**r) for r in records])


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TodoListEnvelope,
    summary="Create Todo List",
    description="Create a todo list owned by the authenticated user and return it.",
)
def create_todo_list(
    payload: TodoListRequest,
    owner_id: int = Depends(get_current_owner),
    ctx: OperationContext = Depends(_get_context),
    service: TodoListService = Depends(_get_service),
) -> dict:
    """
    Create a new todo list.
    """
    created = service.create(ctx, owner_id, payload)
    return success_envelope(TodoListOut(**created))


# PUBLIC_INTERFACE
@router.put(
    "/{record_id}",
    response_model=SuccessEnvelope,
    summary="Update Todo List",
    description=(
        "Replace title, description and schedule of a todo list. Omitted description "
        "or schedule are cleared. Concurrent updates of the same todo list are serialized."
    ),
)
def update_todo_list(
    record_id: int,
    payload: TodoListRequest,
    owner_id: int = Depends(get_current_owner),
    ctx: OperationContext = Depends(_get_context),
    service: TodoListService = Depends(_get_service),
) -> dict:
    """
    Full update of a todo list under its row lock.
    """
    service.update_by_id(ctx, owner_id, record_id, payload)
    return success_envelope()


# PUBLIC_INTERFACE
@router.delete(
    "/{record_id}",
    response_model=SuccessEnvelope,
    summary="Delete Todo List",
    description="Permanently delete a todo list by ID.",
)
def delete_todo_list(
    record_id: int,
    ctx: OperationContext = Depends(_get_context),
    service: TodoListService = Depends(_get_service),
) -> dict:
    """
    Delete a todo list.
    """
    service.delete_by_id(ctx, record_id)
    return success_envelope()
