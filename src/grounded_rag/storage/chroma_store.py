"""Chroma implementation of the transactional store abstraction.

Each logical collection maps to one Chroma collection named
``<prefix>_<collection>``. Full rows travel as JSON in Chroma's
``documents`` field, indexed fields are mirrored into ``metadatas`` so
they can be matched with ``where`` clauses, and a row's vector (when the
collection carries one) goes into ``embeddings``.

Chroma has no multi-row transactions, so :meth:`ChromaStore.commit`
snapshots every row it is about to touch, applies the writes in batches,
and restores the snapshot if any batch fails. A process-wide lock keeps
readers from observing a half-applied commit.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Mapping, Sequence
from itertools import groupby
from typing import Any

import chromadb

from grounded_rag.config import settings
from grounded_rag.errors import StorageError
from grounded_rag.storage.base import (
    DEFAULT_INDEXES,
    VECTORS,
    Row,
    Transaction,
    TransactionalStore,
)

logger = logging.getLogger(__name__)

# Chroma requires a vector on every record; rows of collections without
# one get this constant.
_PLACEHOLDER = [1.0]
_INCLUDE = ["documents", "embeddings"]


def _build_client(host: str, port: int, persist_path: str) -> Any:
    if persist_path:
        logger.info("Using persistent Chroma at %s", persist_path)
        return chromadb.PersistentClient(path=persist_path)
    logger.info("Using Chroma server at %s:%d", host, port)
    return chromadb.HttpClient(host=host, port=port)


class ChromaStore(TransactionalStore):
    """Chroma-backed transactional store.

    Parameters
    ----------
    client:
        A Chroma client. When *None*, one is built from *host*/*port*, or
        from *persist_path* if that is set.
    prefix:
        Prepended to every Chroma collection name.
    embedding_fields:
        Collection name → row field holding the vector. Rows of these
        collections must carry a vector.
    batch_size:
        Most records sent to Chroma in one call. Defaults to the client's
        ``get_max_batch_size()``; larger writes are split.
    """

    def __init__(
        self,
        client: Any = None,
        *,
        prefix: str = settings.chroma_collection_prefix,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        persist_path: str = settings.chroma_persist_path,
        indexes: Mapping[str, Sequence[str]] = DEFAULT_INDEXES,
        embedding_fields: Mapping[str, str] | None = None,
        batch_size: int | None = None,
    ) -> None:
        super().__init__(indexes)
        self._client = client or _build_client(host, port, persist_path)
        self._embedding_fields = dict(embedding_fields or {VECTORS: "embedding"})
        self.batch_size = batch_size or self._client.get_max_batch_size()
        self._lock = threading.RLock()
        self._collections = {
            name: self._client.get_or_create_collection(
                f"{prefix}_{name}", metadata={"hnsw:space": "cosine"}
            )
            for name in self.indexes
        }

    # -- reads ----------------------------------------------------------------

    def get(self, collection: str, key: str) -> Row | None:
        rows = self._get(collection, ids=[key])
        return rows[0] if rows else None

    def scan(self, collection: str, *, limit: int, offset: int = 0) -> list[Row]:
        return self._get(collection, limit=limit, offset=offset)

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
        return self._get(collection, where={field: value}, limit=limit, offset=offset)

    # -- writes ---------------------------------------------------------------

    def commit(self, txn: Transaction) -> None:
        with self._lock:
            before = self._snapshot(txn)
            try:
                for (kind, collection), group in groupby(
                    txn.ops, key=lambda op: (op.kind, op.collection)
                ):
                    ops = list(group)
                    if kind == "put":
                        # last write wins for duplicate keys within a batch
                        self._upsert(collection, {op.key: op.row for op in ops})
                    else:
                        self._delete(collection, list(dict.fromkeys(op.key for op in ops)))
            except Exception as exc:
                logger.error("Chroma commit failed, restoring %d rows: %s", len(before), exc)
                self._restore(before)
                raise StorageError(f"Commit of {len(txn)} ops failed: {exc}") from exc
        logger.debug("Committed %d ops", len(txn))

    # -- internals ------------------------------------------------------------

    def _coll(self, collection: str) -> Any:
        try:
            return self._collections[collection]
        except KeyError:
            raise StorageError(f"Unknown collection {collection!r}") from None

    def _get(self, collection: str, **kwargs: Any) -> list[Row]:
        return [row for _, row in self._get_pairs(collection, **kwargs)]

    def _get_pairs(self, collection: str, **kwargs: Any) -> list[tuple[str, Row]]:
        with self._lock:
            try:
                result = self._coll(collection).get(include=_INCLUDE, **kwargs)
            except StorageError:
                raise
            except Exception as exc:
                raise StorageError(f"Chroma read from {collection!r} failed: {exc}") from exc

        ids = result.get("ids") or []
        documents = result.get("documents") or []
        embeddings = result.get("embeddings")
        if embeddings is None:
            embeddings = [None] * len(ids)

        vector_field = self._embedding_fields.get(collection)
        rows: list[tuple[str, Row]] = []
        for key, doc, emb in zip(ids, documents, embeddings):
            row = json.loads(doc)
            if vector_field is not None:
                row[vector_field] = [float(x) for x in emb] if emb is not None else None
            rows.append((key, row))
        return rows

    def _upsert(self, collection: str, rows: Mapping[str, Row | None]) -> None:
        vector_field = self._embedding_fields.get(collection)
        ids, documents, metadatas, embeddings = [], [], [], []
        for key, row in rows.items():
            if row is None:
                raise ValueError(f"put of {key!r} carries no row")
            body = dict(row)
            vector = body.pop(vector_field, None) if vector_field else None
            if vector_field and not vector:
                raise StorageError(f"Row {key!r} of {collection!r} has no {vector_field!r}")
            ids.append(key)
            documents.append(json.dumps(body, ensure_ascii=False))
            metadatas.append(
                {"_key": key, **{f: body[f] for f in self.indexes[collection] if body.get(f) is not None}}
            )
            embeddings.append(list(vector) if vector_field else _PLACEHOLDER)

        coll = self._coll(collection)
        for start in range(0, len(ids), self.batch_size):
            end = start + self.batch_size
            coll.upsert(
                ids=ids[start:end],
                documents=documents[start:end],
                metadatas=metadatas[start:end],
                embeddings=embeddings[start:end],
            )

    def _delete(self, collection: str, ids: Sequence[str]) -> None:
        coll = self._coll(collection)
        for start in range(0, len(ids), self.batch_size):
            coll.delete(ids=list(ids[start:start + self.batch_size]))

    def _snapshot(self, txn: Transaction) -> dict[tuple[str, str], Row | None]:
        """Before-image of every row *txn* touches (``None`` = absent)."""
        keys: dict[str, list[str]] = {}
        for op in txn.ops:
            keys.setdefault(op.collection, [])
            if op.key not in keys[op.collection]:
                keys[op.collection].append(op.key)

        before: dict[tuple[str, str], Row | None] = {}
        for collection, ids in keys.items():
            existing = dict(self._get_pairs(collection, ids=ids))
            for key in ids:
                before[(collection, key)] = existing.get(key)
        return before

    def _restore(self, before: dict[tuple[str, str], Row | None]) -> None:
        absent: dict[str, list[str]] = {}
        present: dict[str, dict[str, Row]] = {}
        for (collection, key), row in before.items():
            if row is None:
                absent.setdefault(collection, []).append(key)
            else:
                present.setdefault(collection, {})[key] = row

        for collection, keys in absent.items():
            try:
                self._delete(collection, keys)
            except Exception:
                logger.exception("Could not remove %d new rows from %s", len(keys), collection)
        for collection, rows in present.items():
            try:
                self._upsert(collection, rows)
            except Exception:
                logger.exception("Could not restore %d rows of %s", len(rows), collection)
