"""
Write-Through Sync Queue

Local state is the read source; every mutation enqueues a reconciliation
task against the remote store. Tasks are keyed: enqueueing a key that is
already pending replaces the pending task and moves it to the back, so the
latest intent for a row is what eventually lands.

FAILURE HANDLING:
=================
- Each task retries independently, up to max_attempts drains
- ForeignKeyViolation: the local reference is dropped via the task's
  callback and the task is discarded
- NotFoundError on a delete, ConflictError on a create: already applied
- Local state is never rolled back
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional
import logging

from ..errors import ConflictError, ForeignKeyViolation, LibraryError, NotFoundError
from .service import PersistenceService


logger = logging.getLogger(__name__)


class TaskKind(Enum):
    CREATE = "create"
    WRITE = "write"
    DELETE = "delete"


@dataclass
class SyncTask:
    key: str
    operation: Callable[[PersistenceService], None]
    kind: TaskKind = TaskKind.WRITE
    on_foreign_key: Optional[Callable[[], None]] = None
    attempts: int = 0
    last_error: Optional[str] = None


@dataclass
class DrainReport:
    """Outcome of one drain pass."""
    succeeded: List[str] = field(default_factory=list)
    retrying: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'succeeded': len(self.succeeded),
            'retrying': len(self.retrying),
            'dropped': len(self.dropped),
        }


class SyncQueue:

    def __init__(self, service: PersistenceService, max_attempts: int = 5):
        self._service = service
        self._max_attempts = max(1, max_attempts)
        self._pending: Dict[str, SyncTask] = {}

    def enqueue(
        self,
        key: str,
        operation: Callable[[PersistenceService], None],
        kind: TaskKind = TaskKind.WRITE,
        on_foreign_key: Optional[Callable[[], None]] = None
    ) -> SyncTask:
        self._pending.pop(key, None)
        task = SyncTask(key=key, operation=operation, kind=kind, on_foreign_key=on_foreign_key)
        self._pending[key] = task
        return task

    def discard(self, key: str) -> bool:
        return self._pending.pop(key, None) is not None

    def pending_keys(self) -> List[str]:
        return list(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    def drain(self) -> DrainReport:
        """Run every pending task once, in enqueue order."""
        report = DrainReport()

        for key, task in list(self._pending.items()):
            if self._pending.get(key) is not task:
                continue  # replaced by a callback during this pass
            task.attempts += 1
            try:
                task.operation(self._service)
            except ForeignKeyViolation as e:
                logger.warning("Sync %s hit a missing reference, dropping local link: %s", key, e)
                self._finish(key, task)
                if task.on_foreign_key is not None:
                    task.on_foreign_key()
                report.dropped.append(key)
                continue
            except NotFoundError as e:
                if task.kind != TaskKind.DELETE:
                    self._retry_or_drop(task, e, report)
                    continue
            except ConflictError as e:
                if task.kind != TaskKind.CREATE:
                    self._retry_or_drop(task, e, report)
                    continue
            except LibraryError as e:
                self._retry_or_drop(task, e, report)
                continue
            except Exception as e:
                logger.exception("Sync %s raised unexpectedly", key)
                self._retry_or_drop(task, e, report)
                continue

            self._finish(key, task)
            report.succeeded.append(key)

        if report.retrying or report.dropped:
            logger.info("Sync drain: %s", report.to_dict())
        return report

    def _retry_or_drop(self, task: SyncTask, error: Exception, report: DrainReport):
        task.last_error = str(error)
        if task.attempts >= self._max_attempts:
            logger.warning("Sync %s failed %d times, giving up: %s", task.key, task.attempts, error)
            self._finish(task.key, task)
            report.dropped.append(task.key)
        else:
            logger.warning("Sync %s failed (attempt %d): %s", task.key, task.attempts, error)
            report.retrying.append(task.key)

    def _finish(self, key: str, task: SyncTask):
        if self._pending.get(key) is task:
            del self._pending[key]
