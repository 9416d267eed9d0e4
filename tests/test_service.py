from datetime import datetime

import pytest
import structlog
from structlog.testing import capture_logs

from todo_lists import service as service_module
from todo_lists.context import OperationContext
from todo_lists.errors import InvalidPayloadError, NotFoundError, StorageError
from todo_lists.repositories import InMemoryStore
from todo_lists.schemas import TodoListRequest
from todo_lists.service import TodoListService


class _CountingStore(InMemoryStore):
    def __init__(self):
        super().__init__()
        self.calls = 0

    def create(self, ctx, data):
        self.calls += 1
        return super().create(ctx, data)

    def begin(self, ctx):
        self.calls += 1
        return super().begin(ctx)


@pytest.fixture
def store():
    return _CountingStore()


@pytest.fixture
def service(store):
    return TodoListService(store)


@pytest.fixture
def ctx():
    return OperationContext()


@pytest.fixture
def fresh_log(monkeypatch):
    """Swap the module logger for one created under capture_logs."""
    with capture_logs() as logs:
        monkeypatch.setattr(service_module, "log", structlog.get_logger())
        yield logs


class TestCreate:
    def test_buy_milk(self, service, ctx):
        before = datetime.now()
        record = service.create(ctx, 7, TodoListRequest(title="Buy milk", description="", scheduled_at=None))
        assert record["owner_id"] == 7
        assert record["title"] == "Buy milk"
        assert record["description"] == ""
        assert record["scheduled_at"] is None
        assert record["created_at"] >= before
        assert record["updated_at"] == record["created_at"]

    def test_ids_are_unique(self, service, ctx):
        ids = {service.create(ctx, 1, TodoListRequest(title=f"T{i}"))["id"] for i in range(20)}
        assert len(ids) == 20

    def test_title_is_trimmed_and_schedule_parsed(self, service, ctx):
        record = service.create(ctx, 1, TodoListRequest(title="  Walk dog ", scheduled_at="2030-05-01"))
        assert record["title"] == "Walk dog"
        assert record["scheduled_at"] == datetime(2030, 5, 1)

    def test_invalid_request_never_reaches_store(self, service, store, ctx):
        with pytest.raises(InvalidPayloadError) as exc_info:
            service.create(ctx, 1, TodoListRequest(title=""))
        assert exc_info.value.message == "title must not be empty"
        assert store.calls == 0


class TestUpdate:
    def test_update_is_visible_and_bumps_updated_at(self, service, ctx):
        record = service.create(ctx, 7, TodoListRequest(title="Buy milk"))
        service.update_by_id(
            ctx, 7, record["id"],
            TodoListRequest(title="Buy milk and eggs", description="fresh", scheduled_at="2030-01-01T08:30:00"),
        )
        fetched = service.get_by_id(ctx, record["id"])
        assert fetched["title"] == "Buy milk and eggs"
        assert fetched["description"] == "fresh"
        assert fetched["scheduled_at"] == datetime(2030, 1, 1, 8, 30)
        assert fetched["updated_at"] > record["updated_at"]
        assert fetched["owner_id"] == 7

    def test_owner_never_changes(self, service, ctx):
        record = service.create(ctx, 7, TodoListRequest(title="Mine"))
        service.update_by_id(ctx, 8, record["id"], TodoListRequest(title="Still mine"))
        assert service.get_by_id(ctx, record["id"])["owner_id"] == 7

    def test_missing_id_leaves_storage_unchanged(self, service, ctx):
        record = service.create(ctx, 7, TodoListRequest(title="Keep me"))
        with pytest.raises(NotFoundError):
            service.update_by_id(ctx, 7, record["id"] + 1000, TodoListRequest(title="Ghost"))
        assert service.get_by_owner(ctx, 7) == [record]

    def test_invalid_update_skips_transaction(self, service, store, ctx):
        record = service.create(ctx, 7, TodoListRequest(title="Keep me"))
        store.calls = 0
        with pytest.raises(InvalidPayloadError):
            service.update_by_id(ctx, 7, record["id"], TodoListRequest(title=None))
        assert store.calls == 0

    def test_repeated_updates_strictly_increase_updated_at(self, service, ctx):
        record = service.create(ctx, 1, TodoListRequest(title="Tick"))
        stamps = [record["updated_at"]]
        for i in range(5):
            service.update_by_id(ctx, 1, record["id"], TodoListRequest(title=f"Tick {i}"))
            stamps.append(service.get_by_id(ctx, record["id"])["updated_at"])
        assert stamps == sorted(set(stamps))


class TestReadsAndDelete:
    def test_get_by_owner_filters_and_orders(self, service, ctx):
        a = service.create(ctx, 1, TodoListRequest(title="a"))
        service.create(ctx, 2, TodoListRequest(title="b"))
        c = service.create(ctx, 1, TodoListRequest(title="c"))
        assert [r["id"] for r in service.get_by_owner(ctx, 1)] == [a["id"], c["id"]]
        assert service.get_by_owner(ctx, 3) == []

    def test_delete_then_read(self, service, ctx):
        record = service.create(ctx, 1, TodoListRequest(title="Gone soon"))
        service.delete_by_id(ctx, record["id"])
        with pytest.raises(NotFoundError):
            service.get_by_id(ctx, record["id"])
        with pytest.raises(NotFoundError):
            service.delete_by_id(ctx, record["id"])


class TestFailureLogging:
    def test_client_error_logged_as_warning_with_payload(self, service, ctx, fresh_log):
        with pytest.raises(InvalidPayloadError):
            service.create(ctx, 7, TodoListRequest(title="  "))
        assert len(fresh_log) == 1
        entry = fresh_log[0]
        assert entry["log_level"] == "warning"
        assert entry["operation"] == "TodoListService.create"
        assert entry["owner_id"] == 7
        assert entry["request"]["title"] == "  "
        assert entry["error_code"] == "INVALID_PAYLOAD"

    def test_storage_error_logged_as_error_and_reraised_unchanged(self, ctx, fresh_log):
        boom = StorageError(detail="connection reset")

        class _Broken(InMemoryStore):
            def get_by_id(self, ctx, record_id):
                raise boom

        with pytest.raises(StorageError) as exc_info:
            TodoListService(_Broken()).get_by_id(ctx, 3)
        assert exc_info.value is boom
        assert fresh_log[0]["log_level"] == "error"
        assert fresh_log[0]["record_id"] == 3
        assert fresh_log[0]["detail"] == "connection reset"

    def test_unexpected_error_logged_and_reraised_unchanged(self, ctx, fresh_log):
        boom = RuntimeError("socket closed")

        class _Broken(InMemoryStore):
            def get_by_owner(self, ctx, owner_id):
                raise boom

        with pytest.raises(RuntimeError) as exc_info:
            TodoListService(_Broken()).get_by_owner(ctx, 9)
        assert exc_info.value is boom
        assert len(fresh_log) == 1
        entry = fresh_log[0]
        assert entry["log_level"] == "error"
        assert entry["operation"] == "TodoListService.get_by_owner"
        assert entry["owner_id"] == 9
        assert entry["error_code"] == "INTERNAL_SERVER_ERROR"
        assert entry["error_type"] == "RuntimeError"
        assert entry["error"] == "socket closed"

    def test_success_is_not_logged(self, service, ctx, fresh_log):
        service.create(ctx, 7, TodoListRequest(title="Quiet"))
        assert fresh_log == []
