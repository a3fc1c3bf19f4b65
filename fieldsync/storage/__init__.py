"""
fieldsync.storage - Record Store abstraction and implementations.

Modules:
    base      RecordStore interface and the re-entrant transaction() scope.
    memory    InMemoryRecordStore: dict-backed store for tests and
              single-process deployments.
    postgres  PostgresRecordStore: psycopg2-backed store with row locks.

The core (fieldsync.sync, fieldsync.metrics) only ever talks to the
RecordStore interface, so it runs unchanged against either backend.
"""

from fieldsync.storage.base import RecordStore
from fieldsync.storage.memory import InMemoryRecordStore
