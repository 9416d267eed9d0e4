from typing import Dict, Tuple, Type

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import CancelledError, InvalidPayloadError, NotFoundError, StorageError, TodoListError
from .logging_config import setup_logging
from .routers import todo_lists as todo_lists_router
from .settings import get_settings
from .utils import error_envelope

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "todo-lists",
        "description": "CRUD operations for the authenticated user's todo lists.",
    },
]

_settings = get_settings()
setup_logging(_settings.log_format, _settings.log_level)
log = structlog.get_logger()

app = FastAPI(
    title="Todo Lists Backend",
    description="Backend API service for managing todo lists with locked, transactional updates.",
    version="0.1.0",
    openapi_tags=openapi_tags,
)

allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Status code and whether the error's own message may be shown to the client.
ERROR_STATUS: Dict[Type[TodoListError], Tuple[int, bool]] = {
    InvalidPayloadError: (422, True),
    NotFoundError: (422, True),
    StorageError: (500, False),
    CancelledError: (500, False),
}

_GENERIC_MESSAGE = "Internal server error"

_HTTP_ERROR_CODES = {
    401: "UNAUTHORIZED",
    404: "ROUTE_NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


@app.exception_handler(TodoListError)
async def todo_list_exception_handler(request: Request, exc: TodoListError) -> JSONResponse:
    """
    Map the closed set of core errors onto HTTP responses.

    Response format:
        {"error_code": "...", "message": "..."}
    """
    status_code, expose = ERROR_STATUS[type(exc)]
    message = exc.message if expose else _GENERIC_MESSAGE
    return JSONResponse(status_code=status_code, content=error_envelope(exc.code, message))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return the uniform envelope for request parsing errors, plus pydantic's details.
    """
    errors = exc.errors()
    message = "Request validation failed"
    if errors:
        first = errors[0]
        location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    body = error_envelope(InvalidPayloadError.code, message)
    body["detail"] = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors]
    return JSONResponse(status_code=422, content=body)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Render framework HTTP errors (authentication, unknown routes) in the uniform envelope.
    """
    code = _HTTP_ERROR_CODES.get(exc.status_code, f"HTTP_{exc.status_code}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Last resort for exceptions outside the core error set: log them and answer
    with the generic internal error envelope.
    """
    log.error(
        "unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content=error_envelope(StorageError.code, _GENERIC_MESSAGE),
    )


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check():
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health.
    """
    return {"message": "Healthy", "backend": _settings.persistence_backend}


app.include_router(todo_lists_router.router)
log.info("application configured", backend=_settings.persistence_backend)
