"""Shared plumbing for the engine services."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from typing import Any, Callable, TypeVar

from saleengine.infrastructure.db import ensure_schema, get_connection
from saleengine.infrastructure.observability import get_logger

ConnectionFactory = Callable[[], AbstractContextManager[sqlite3.Connection]]
T = TypeVar("T")
ServiceT = TypeVar("ServiceT", bound="BaseService")


def sqlite_connection_factory(db_path: str | Path) -> ConnectionFactory:
    """Open a fresh connection to ``db_path`` on every call.

    Connections are never shared between units of work, so a service built
    on this factory can be used from any number of threads.
    """

    def connection_factory() -> AbstractContextManager[sqlite3.Connection]:
        return get_connection(db_path, check_same_thread=False)

    return connection_factory


class BaseService:
    """A use case bound to the ledger store.

    Subclasses receive a :data:`ConnectionFactory`; tests pass one pointing at
    a temporary database and production code uses :meth:`from_sqlite_path`.
    The schema is brought up to date on the first connection only.
    """

    def __init__(self, connection_factory: ConnectionFactory) -> None:
        self._connection_factory = connection_factory
        self._schema_ready = False
        self._logger = get_logger(type(self).__module__)

    @classmethod
    def from_sqlite_path(cls: type[ServiceT], db_path: str | Path, **kwargs: Any) -> ServiceT:
        """Build the service on ``db_path``; ``kwargs`` go to the constructor."""
        return cls(sqlite_connection_factory(db_path), **kwargs)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        with self._connection_factory() as conn:
            if not self._schema_ready:
                ensure_schema(conn)
                self._schema_ready = True
            yield conn

    def _with_connection(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        with self._connect() as conn:
            return fn(conn)
