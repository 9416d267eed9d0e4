"""
Todo lists backend package.

Todo list records behind a FastAPI HTTP API: record stores, request
validation, a locked update transaction and the service layer tying them
together. The FastAPI application lives in `todo_lists.main`.
"""
