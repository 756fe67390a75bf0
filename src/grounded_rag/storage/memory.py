"""In-process implementation of the transactional store.

Used for development, tests, and single-process deployments that do not
need the data to outlive the process.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Mapping, Sequence
from typing import Any

from grounded_rag.errors import StorageError
from grounded_rag.storage.base import DEFAULT_INDEXES, Row, Transaction, TransactionalStore, WriteOp

logger = logging.getLogger(__name__)


class InMemoryStore(TransactionalStore):
    """Dict-backed store with ordered secondary indexes.

    Commits run under a lock and keep an undo log; if any op fails the
    applied ops are reverted before :class:`StorageError` is raised.
    Rows are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self, indexes: Mapping[str, Sequence[str]] = DEFAULT_INDEXES) -> None:
        super().__init__(indexes)
        self._lock = threading.RLock()
        self._rows: dict[str, dict[str, Row]] = {name: {} for name in self.indexes}
        # (collection, field) -> value -> keys in insertion order
        self._index: dict[tuple[str, str], dict[Any, dict[str, None]]] = {
            (name, f): {} for name, fields in self.indexes.items() for f in fields
        }

    # -- reads ----------------------------------------------------------------

    def get(self, collection: str, key: str) -> Row | None:
        with self._lock:
            row = self._collection(collection).get(key)
            return copy.deepcopy(row) if row is not None else None

    def scan(self, collection: str, *, limit: int, offset: int = 0) -> list[Row]:
        with self._lock:
            rows = list(self._collection(collection).values())[offset : offset + limit]
            return copy.deepcopy(rows)

    def scan_index(
        self,
        collection: str,
        field: str,
        value: Any,
        *,
        limit: int,
        offset: int = 0,
    ) -> list[Row]:
        self._check_index(collection, field)
        with self._lock:
            keys = list(self._index[(collection, field)].get(value, {}))[offset : offset + limit]
            rows = self._collection(collection)
            return [copy.deepcopy(rows[k]) for k in keys]

    # -- writes ---------------------------------------------------------------

    def commit(self, txn: Transaction) -> None:
        with self._lock:
            undo: list[tuple[str, str, Row | None]] = []
            try:
                for op in txn.ops:
                    undo.append((op.collection, op.key, self._apply(op)))
            except Exception as exc:
                for collection, key, previous in reversed(undo):
                    self._write(collection, key, previous)
                raise StorageError(f"Commit of {len(txn)} ops failed: {exc}") from exc
        logger.debug("Committed %d ops", len(txn))

    def _apply(self, op: WriteOp) -> Row | None:
        """Apply one op and return the row it replaced (for undo)."""
        previous = self._collection(op.collection).get(op.key)
        if op.kind == "put":
            if op.row is None:
                raise ValueError(f"put of {op.key!r} carries no row")
            self._write(op.collection, op.key, copy.deepcopy(op.row))
        else:
            self._write(op.collection, op.key, None)
        return previous

    def _write(self, collection: str, key: str, row: Row | None) -> None:
        rows = self._collection(collection)
        previous = rows.get(key)
        for f in self.indexes[collection]:
            index = self._index[(collection, f)]
            if previous is not None and row is not None and previous.get(f) == row.get(f):
                continue  # keeps the key's position in the bucket
            if previous is not None:
                bucket = index.get(previous.get(f), {})
                bucket.pop(key, None)
                if not bucket:
                    index.pop(previous.get(f), None)
            if row is not None:
                index.setdefault(row.get(f), {})[key] = None
        if row is None:
            rows.pop(key, None)
        else:
            rows[key] = row

    def _collection(self, collection: str) -> dict[str, Row]:
        try:
            return self._rows[collection]
        except KeyError:
            raise StorageError(f"Unknown collection {collection!r}") from None
