"""
Record stores for the login rate limiter.

A store keeps one AttemptRecord per identifier and offers a locked
read-modify-write unit of work (`transact`) so that concurrent failures for
the same client serialize instead of losing increments.
"""
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db
from models.login_rate_limit import LoginRateLimit

EPOCH = datetime(1970, 1, 1)

_TIMESTAMP_FIELDS = ("first_attempt_at", "last_attempt_at", "blocked_until")


class AttemptStoreError(Exception):
    """The backing store could not complete the operation."""


@dataclass
class AttemptRecord:
    identifier: str
    count: int
    first_attempt_at: int  # epoch milliseconds
    last_attempt_at: int
    blocked_until: Optional[int] = None


def to_datetime(ms: Optional[int]) -> Optional[datetime]:
    if ms is None:
        return None
    return EPOCH + timedelta(milliseconds=ms)


def to_millis(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.replace(tzinfo=None) - value.utcoffset()
    return (value - EPOCH) // timedelta(milliseconds=1)


class AttemptUnitOfWork:
    """
    Staged changes for one identifier. `record` is the row as read under the
    lock; insert/update only stage, the store writes them when the operation
    returns without raising.
    """

    def __init__(self, identifier: str, record: Optional[AttemptRecord]):
        self.identifier = identifier
        self.record = record
        self.created = False
        self.changed = False

    def insert(self, record: AttemptRecord) -> None:
        if self.record is not None:
            raise ValueError(f"record already exists for {self.identifier!r}")
        self.record = record
        self.created = True
        self.changed = True

    def update(self, **fields) -> None:
        if self.record is None:
            raise ValueError(f"no record to update for {self.identifier!r}")
        self.record = replace(self.record, **fields)
        self.changed = True


class AttemptStore:
    def find(self, identifier: str) -> Optional[AttemptRecord]:
        raise NotImplementedError

    def delete(self, identifier: str) -> None:
        raise NotImplementedError

    def transact(self, identifier: str, operation: Callable[[AttemptUnitOfWork], object]):
        """
        Run `operation` with exclusive access to the identifier's record.
        Staged changes are written only if the operation returns normally.
        """
        raise NotImplementedError


def _row_to_record(row: LoginRateLimit) -> AttemptRecord:
    return AttemptRecord(
        identifier=row.identifier,
        count=row.count,
        first_attempt_at=to_millis(row.first_attempt_at),
        last_attempt_at=to_millis(row.last_attempt_at),
        blocked_until=to_millis(row.blocked_until),
    )


def _apply_to_row(row: LoginRateLimit, record: AttemptRecord) -> None:
    row.count = record.count
    for name in _TIMESTAMP_FIELDS:
        setattr(row, name, to_datetime(getattr(record, name)))


class SqlAttemptStore(AttemptStore):
    """
    Stores records in the login_rate_limits table.
    Row locks come from SELECT ... FOR UPDATE. SQLite ignores FOR UPDATE and
    pysqlite defers BEGIN until the first write, so there the unit of work
    opens with BEGIN IMMEDIATE to hold the database write lock before reading.
    """

    def __init__(self, insert_retries: int = 1):
        self.insert_retries = insert_retries

    def _query(self, identifier: str):
        return LoginRateLimit.query.filter_by(identifier=identifier)

    def _lock_database(self):
        connection = db.session.connection()
        if connection.dialect.name != "sqlite":
            return
        if connection.connection.dbapi_connection.in_transaction:
            # pending writes already opened a deferred transaction
            db.session.commit()
            connection = db.session.connection()
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    def find(self, identifier):
        try:
            row = self._query(identifier).first()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise AttemptStoreError("failed to read login rate limit record") from exc
        return _row_to_record(row) if row else None

    def delete(self, identifier):
        try:
            self._query(identifier).delete()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise AttemptStoreError("failed to delete login rate limit record") from exc

    def transact(self, identifier, operation):
        for attempt in range(self.insert_retries + 1):
            try:
                self._lock_database()
                row = self._query(identifier).with_for_update().first()
                work = AttemptUnitOfWork(identifier, _row_to_record(row) if row else None)
                result = operation(work)

                if work.created:
                    row = LoginRateLimit(identifier=identifier)
                    _apply_to_row(row, work.record)
                    db.session.add(row)
                elif work.changed:
                    _apply_to_row(row, work.record)

                db.session.commit()
                return result
            except IntegrityError as exc:
                # A concurrent first failure inserted the row; re-read it under lock
                db.session.rollback()
                if attempt >= self.insert_retries:
                    raise AttemptStoreError("login rate limit record conflict") from exc
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise AttemptStoreError("failed to update login rate limit record") from exc
            except Exception:
                db.session.rollback()
                raise


class MemoryAttemptStore(AttemptStore):
    """
    Process-local store. Identifiers hash onto a fixed set of striped locks,
    so the same identifier always serializes while client-chosen identifiers
    cannot grow the lock table.
    Only valid when a single process serves all login requests.
    """

    def __init__(self, lock_stripes: int = 256):
        self._records = {}
        self._locks = tuple(threading.Lock() for _ in range(lock_stripes))

    def _lock_for(self, identifier: str) -> threading.Lock:
        return self._locks[hash(identifier) % len(self._locks)]

    def find(self, identifier):
        record = self._records.get(identifier)
        return replace(record) if record else None

    def delete(self, identifier):
        with self._lock_for(identifier):
            self._records.pop(identifier, None)

    def transact(self, identifier, operation):
        with self._lock_for(identifier):
            work = AttemptUnitOfWork(identifier, self.find(identifier))
            result = operation(work)
            if work.changed:
                self._records[identifier] = replace(work.record)
            return result


def build_attempt_store(config) -> AttemptStore:
    kind = (config.get("LOGIN_RATE_STORE") or "sql").lower()
    if kind == "sql":
        return SqlAttemptStore()
    if kind == "memory":
        return MemoryAttemptStore()
    raise ValueError(f"Unknown LOGIN_RATE_STORE: {kind!r}")
