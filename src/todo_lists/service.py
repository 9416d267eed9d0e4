from __future__ import annotations

import functools
import inspect
from typing import Any, Callable, Dict, List, Tuple, TypeVar

import structlog

from .context import OperationContext
from .coordinator import run_update
from .errors import InvalidPayloadError, NotFoundError, StorageError, TodoListError
from .models import NewTodoList, TodoListPatch, TodoListRecord
from .repositories import Store
from .schemas import TodoListRequest
from .validator import ensure_valid, parse_schedule

log = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])

_CLIENT_ERRORS = (InvalidPayloadError, NotFoundError)


def _capture_value(value: Any) -> Any:
    if isinstance(value, TodoListRequest):
        return value.model_dump(mode="json")
    return value


def logged_operation(operation: str, capture: Tuple[str, ...] = ()) -> Callable[[F], F]:
    """
    Log any exception escaping the wrapped method, then re-raise it unchanged.

    `capture` names the call arguments recorded alongside the failure
    (owner id, record id, payload...). Client errors are logged at warning
    level; storage, cancellation and unexpected failures at error level.
    """

    def decorator(func: F) -> F:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                bound = signature.bind(*args, **kwargs)
                fields: Dict[str, Any] = {
                    name: _capture_value(bound.arguments.get(name)) for name in capture
                }
                if isinstance(e, TodoListError):
                    emit = log.warning if isinstance(e, _CLIENT_ERRORS) else log.error
                    emit(
                        "todo list operation failed",
                        operation=operation,
                        error_code=e.code,
                        error=e.message,
                        detail=e.detail,
                        **fields,
                    )
                else:
                    log.error(
                        "todo list operation failed",
                        operation=operation,
                        error_code=StorageError.code,
                        error=str(e),
                        error_type=type(e).__name__,
                        exc_info=True,
                        **fields,
                    )
                raise

        return wrapper  # type: ignore[return-value]

    return decorator


def _patch_from(request: TodoListRequest) -> TodoListPatch:
    # Full replace: omitted description/scheduled_at are cleared.
    return TodoListPatch(
        title=(request.title or "").strip(),
        description=request.description,
        scheduled_at=parse_schedule(request.scheduled_at),
    )


# PUBLIC_INTERFACE
class TodoListService:
    """
    Todo list use cases on top of a record store.

    Methods return plain records or raise one of the TodoListError subclasses;
    they never produce HTTP responses.
    """

    def __init__(self, store: Store) -> None:
        self._store = store

    @logged_operation("TodoListService.get_by_id", capture=("record_id",))
    def get_by_id(self, ctx: OperationContext, record_id: int) -> TodoListRecord:
        return self._store.get_by_id(ctx, record_id)

    @logged_operation("TodoListService.get_by_owner", capture=("owner_id",))
    def get_by_owner(self, ctx: OperationContext, owner_id: int) -> List[TodoListRecord]:
        return self._store.get_by_owner(ctx, owner_id)

    @logged_operation("TodoListService.create", capture=("owner_id", "request"))
    def create(self, ctx: OperationContext, owner_id: int, request: TodoListRequest) -> TodoListRecord:
        """
        Validate the request and persist a new record owned by `owner_id`.
        """
        ensure_valid(request)
        return self._store.create(
            ctx,
            NewTodoList(
                owner_id=owner_id,
                title=(request.title or "").strip(),
                description=request.description,
                scheduled_at=parse_schedule(request.scheduled_at),
            ),
        )

    @logged_operation("TodoListService.update_by_id", capture=("owner_id", "record_id", "request"))
    def update_by_id(
        self, ctx: OperationContext, owner_id: int, record_id: int, request: TodoListRequest
    ) -> None:
        """
        Replace title, description and schedule of a record under its row lock.
        """
        ensure_valid(request)
        patch = _patch_from(request)
        run_update(self._store, ctx, record_id, lambda _locked: patch)

    @logged_operation("TodoListService.delete_by_id", capture=("record_id",))
    def delete_by_id(self, ctx: OperationContext, record_id: int) -> None:
        self._store.delete_by_id(ctx, record_id)
