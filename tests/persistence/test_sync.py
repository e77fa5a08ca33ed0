"""
Sync Queue Tests
"""

from artifact_library.contracts import Catalog
from artifact_library.errors import ForeignKeyViolation
from artifact_library.persistence.memory import InMemoryPersistence
from artifact_library.persistence.sync import SyncQueue, TaskKind
from tests.fixtures import EPOCH


CATALOG = Catalog(id="c1", name="Favorites", created_at=EPOCH, updated_at=EPOCH)


def test_successful_drain_empties_queue():
    backend = InMemoryPersistence()
    queue = SyncQueue(backend)
    queue.enqueue("catalog:create:c1", lambda svc: svc.create_catalog(CATALOG), kind=TaskKind.CREATE)

    report = queue.drain()

    assert report.succeeded == ["catalog:create:c1"]
    assert len(queue) == 0
    assert "c1" in backend.catalogs


def test_reenqueue_replaces_pending_task_and_moves_it_last():
    calls = []
    queue = SyncQueue(InMemoryPersistence())
    queue.enqueue("a", lambda svc: calls.append("a-old"))
    queue.enqueue("b", lambda svc: calls.append("b"))
    queue.enqueue("a", lambda svc: calls.append("a-new"))

    queue.drain()

    assert calls == ["b", "a-new"]


def test_failures_retry_until_max_attempts():
    backend = InMemoryPersistence()
    backend.available = False
    queue = SyncQueue(backend, max_attempts=2)
    queue.enqueue("catalog:create:c1", lambda svc: svc.create_catalog(CATALOG), kind=TaskKind.CREATE)

    first = queue.drain()
    assert first.retrying == ["catalog:create:c1"]
    assert "catalog:create:c1" in queue

    second = queue.drain()
    assert second.dropped == ["catalog:create:c1"]
    assert len(queue) == 0


def test_tasks_retry_independently():
    backend = InMemoryPersistence()
    queue = SyncQueue(backend)
    queue.enqueue("bad", lambda svc: svc.update_catalog(CATALOG))
    queue.enqueue("good", lambda svc: svc.create_catalog(CATALOG), kind=TaskKind.CREATE)

    report = queue.drain()

    assert report.retrying == ["bad"]
    assert report.succeeded == ["good"]
    assert queue.pending_keys() == ["bad"]
    assert queue.drain().succeeded == ["bad"]


def test_recovers_after_outage():
    backend = InMemoryPersistence()
    backend.available = False
    queue = SyncQueue(backend)
    queue.enqueue("catalog:create:c1", lambda svc: svc.create_catalog(CATALOG), kind=TaskKind.CREATE)
    queue.drain()

    backend.available = True
    assert queue.drain().succeeded == ["catalog:create:c1"]


def test_foreign_key_violation_drops_local_reference():
    dropped = []
    queue = SyncQueue(InMemoryPersistence())
    queue.enqueue(
        "folder-link:f1:c1",
        lambda svc: svc.add_catalog_to_folder("f1", "c1"),
        on_foreign_key=lambda: dropped.append(("f1", "c1"))
    )

    report = queue.drain()

    assert report.dropped == ["folder-link:f1:c1"]
    assert dropped == [("f1", "c1")]
    assert len(queue) == 0


def test_foreign_key_without_callback_is_dropped():
    def fail(svc):
        raise ForeignKeyViolation("gone")

    queue = SyncQueue(InMemoryPersistence())
    queue.enqueue("x", fail)
    assert queue.drain().dropped == ["x"]


def test_missing_row_on_delete_counts_as_done():
    queue = SyncQueue(InMemoryPersistence())
    queue.enqueue("catalog:delete:c1", lambda svc: svc.delete_catalog("c1"), kind=TaskKind.DELETE)
    assert queue.drain().succeeded == ["catalog:delete:c1"]


def test_existing_row_on_create_counts_as_done():
    backend = InMemoryPersistence()
    backend.create_catalog(CATALOG)
    queue = SyncQueue(backend)
    queue.enqueue("catalog:create:c1", lambda svc: svc.create_catalog(CATALOG), kind=TaskKind.CREATE)
    assert queue.drain().succeeded == ["catalog:create:c1"]


def test_discard():
    queue = SyncQueue(InMemoryPersistence())
    queue.enqueue("a", lambda svc: None)
    assert queue.discard("a")
    assert not queue.discard("a")
    assert queue.drain().succeeded == []


def test_unexpected_exception_retries_without_blocking_later_tasks():
    def explode(svc):
        raise TypeError("Object of type bytes is not JSON serializable")

    backend = InMemoryPersistence()
    queue = SyncQueue(backend, max_attempts=2)
    queue.enqueue("artifacts:W:eth", explode)
    queue.enqueue("catalog:create:c1", lambda svc: svc.create_catalog(CATALOG), kind=TaskKind.CREATE)

    first = queue.drain()

    assert first.retrying == ["artifacts:W:eth"]
    assert first.succeeded == ["catalog:create:c1"]
    assert "c1" in backend.catalogs

    second = queue.drain()
    assert second.dropped == ["artifacts:W:eth"]
    assert len(queue) == 0
