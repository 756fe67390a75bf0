"""Abstract base class for transactional storage backends.

The vector store needs very little from its storage medium: keyed rows in
named collections, equality lookups on a few secondary indexes, and the
ability to commit several puts/deletes across collections as one unit.
Adding a backend only requires subclassing :class:`TransactionalStore`
and implementing the abstract methods; media without native multi-row
transactions must synthesise atomicity inside :meth:`commit`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Literal

Row = dict[str, Any]

DOCUMENTS = "documents"
VECTORS = "vectors"

#: Persisted layout: collection name → indexed fields.
DEFAULT_INDEXES: Mapping[str, tuple[str, ...]] = {
    DOCUMENTS: ("owner_id", "name"),
    VECTORS: ("document_id",),
}


@dataclass(frozen=True)
class WriteOp:
    kind: Literal["put", "delete"]
    collection: str
    key: str
    row: Row | None = None


@dataclass
class Transaction:
    """Staged writes; nothing reaches the store until it is committed."""

    ops: list[WriteOp] = field(default_factory=list)

    def put(self, collection: str, key: str, row: Row) -> None:
        self.ops.append(WriteOp("put", collection, key, row))

    def delete(self, collection: str, key: str) -> None:
        self.ops.append(WriteOp("delete", collection, key))

    def __len__(self) -> int:
        return len(self.ops)


class TransactionalStore(ABC):
    """Backend-agnostic keyed storage with atomic multi-row commits.

    Parameters
    ----------
    indexes:
        Collection name → fields to maintain equality indexes on.
    """

    def __init__(self, indexes: Mapping[str, Sequence[str]] = DEFAULT_INDEXES) -> None:
        self.indexes = {name: tuple(fields) for name, fields in indexes.items()}

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def get(self, collection: str, key: str) -> Row | None:
        """Return the row stored under *key*, or ``None``."""
        ...

    @abstractmethod
    def scan(self, collection: str, *, limit: int, offset: int = 0) -> list[Row]:
        """Return one page of *collection* in stable scan order."""
        ...

    @abstractmethod
    def scan_index(
        self,
        collection: str,
        field: str,
        value: Any,
        *,
        limit: int,
        offset: int = 0,
    ) -> list[Row]:
        """Return one page of rows whose indexed *field* equals *value*."""
        ...

    @abstractmethod
    def commit(self, txn: Transaction) -> None:
        """Apply every op of *txn* or none of them.

        Readers must observe either the state before the commit or the
        state after it. Failures raise
        :class:`~grounded_rag.errors.StorageError` with the store unchanged.
        """
        ...

    # -- helpers --------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Stage writes in a block; commit on clean exit, discard on error."""
        txn = Transaction()
        yield txn
        if txn.ops:
            self.commit(txn)

    def iter_index(
        self,
        collection: str,
        field: str,
        value: Any,
        *,
        page_size: int,
    ) -> Iterator[Row]:
        """Yield every row matching ``field == value``, page by page."""
        offset = 0
        while True:
            page = self.scan_index(collection, field, value, limit=page_size, offset=offset)
            yield from page
            if len(page) < page_size:
                return
            offset += page_size

    def _check_index(self, collection: str, field: str) -> None:
        if field not in self.indexes.get(collection, ()):
            raise ValueError(f"{collection!r} has no index on {field!r}")
