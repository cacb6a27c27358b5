# bursar/core/locks.py - Per-school mutual exclusion for numbering and balance updates
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator

from sqlalchemy.orm import Session

from bursar.core.db import SQLITE_BEGIN_OPTION

logger = logging.getLogger(__name__)


class SchoolLockRegistry:
    """
    Hands out one re-entrant lock per school.

    Invoice numbering and payment application for the same school run inside
    the school's lock; different schools never wait on each other. This only
    serialises requests within one process - row locks on the sequence and
    invoice rows cover the multi-process case on PostgreSQL.
    """

    def __init__(self):
        self._locks: Dict[Hashable, threading.RLock] = {}
        self._guard = threading.Lock()

    def get(self, school_id: Hashable) -> threading.RLock:
        lock = self._locks.get(school_id)
        if lock is not None:
            return lock
        with self._guard:
            lock = self._locks.get(school_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[school_id] = lock
            return lock

    @contextmanager
    def hold(self, school_id: Hashable) -> Iterator[None]:
        lock = self.get(school_id)
        with lock:
            logger.debug(f"Acquired school lock {school_id}")
            yield


school_locks = SchoolLockRegistry()


@contextmanager
def write_lock(db: Session, school_id: Hashable) -> Iterator[None]:
    """
    Hold the school's lock for one write transaction on ``db``.

    The session's current read transaction is committed before waiting, so a
    request blocked here holds no database lock that the lock's owner needs
    to commit. The write transaction then opens with BEGIN IMMEDIATE on
    SQLite and owns the database write lock from its first statement.
    """
    db.commit()
    with school_locks.hold(school_id):
        db.connection(execution_options={SQLITE_BEGIN_OPTION: "IMMEDIATE"})
        yield
