"""Unit tests for the storage layer — transactional backends and the vector store."""

from __future__ import annotations

import threading
from typing import Any

import pytest

from grounded_rag.errors import DimensionMismatchError, StorageError
from grounded_rag.models import Chunk, Document, DocumentStatus
from grounded_rag.storage import DOCUMENTS, VECTORS, InMemoryStore, VectorStore
from grounded_rag.storage.base import WriteOp


# ── Helpers ─────────────────────────────────────────────────────────────


def _doc(owner: str = "alice", name: str = "A.pdf", **overrides: Any) -> Document:
    return Document(owner_id=owner, name=name, status=DocumentStatus.READY, **overrides)


def _chunks(document: Document, n: int, vector: list[float] | None = None) -> list[Chunk]:
    return [
        Chunk(
            id=Chunk.make_id(document.id, i),
            document_id=document.id,
            document_name=document.name,
            text=f"chunk {i} of {document.name}",
            embedding=vector if vector is not None else [1.0, 0.0],
        )
        for i in range(n)
    ]


def _all_rows(backend: InMemoryStore, collection: str) -> dict[str, dict]:
    return {row["id"]: row for row in backend.scan(collection, limit=1_000_000)}


class FailingStore(InMemoryStore):
    """Raises on the *fail_at*-th applied op of every commit."""

    def __init__(self, fail_at: int) -> None:
        super().__init__()
        self.fail_at = fail_at
        self._applied = 0

    def commit(self, txn) -> None:  # noqa: ANN001
        self._applied = 0
        super().commit(txn)

    def _apply(self, op: WriteOp):  # noqa: ANN202
        if self._applied == self.fail_at:
            raise OSError("disk full")
        self._applied += 1
        return super()._apply(op)


class CountingStore(InMemoryStore):
    def __init__(self) -> None:
        super().__init__()
        self.index_pages = 0

    def scan_index(self, *args: Any, **kwargs: Any) -> list[dict]:
        self.index_pages += 1
        return super().scan_index(*args, **kwargs)


class InterleavingStore(InMemoryStore):
    """Starts *writer* on another thread right after the first vector page is served."""

    def __init__(self) -> None:
        super().__init__()
        self.writer: Any = None
        self.thread: threading.Thread | None = None

    def scan_index(self, collection: str, field: str, value: Any, *, limit: int, offset: int = 0) -> list[dict]:
        page = super().scan_index(collection, field, value, limit=limit, offset=offset)
        if collection == VECTORS and self.writer is not None and self.thread is None:
            self.thread = threading.Thread(target=self.writer)
            self.thread.start()
            # give an unsynchronised writer time to commit between pages
            self.thread.join(timeout=0.5)
        return page


# ── InMemoryStore ──────────────────────────────────────────────────────


class TestInMemoryStore:
    def test_put_get_and_index_scan(self, backend: InMemoryStore) -> None:
        with backend.transaction() as txn:
            txn.put(DOCUMENTS, "d1", {"id": "d1", "owner_id": "alice", "name": "a"})
            txn.put(DOCUMENTS, "d2", {"id": "d2", "owner_id": "bob", "name": "a"})
            txn.put(DOCUMENTS, "d3", {"id": "d3", "owner_id": "alice", "name": "b"})

        assert backend.get(DOCUMENTS, "d2")["owner_id"] == "bob"
        assert backend.get(DOCUMENTS, "missing") is None
        alice = backend.scan_index(DOCUMENTS, "owner_id", "alice", limit=10)
        assert [r["id"] for r in alice] == ["d1", "d3"]
        by_name = backend.scan_index(DOCUMENTS, "name", "a", limit=10)
        assert [r["id"] for r in by_name] == ["d1", "d2"]

    def test_index_follows_updates_and_deletes(self, backend: InMemoryStore) -> None:
        with backend.transaction() as txn:
            txn.put(DOCUMENTS, "d1", {"id": "d1", "owner_id": "alice", "name": "a"})
        with backend.transaction() as txn:
            txn.put(DOCUMENTS, "d1", {"id": "d1", "owner_id": "bob", "name": "a"})
        assert backend.scan_index(DOCUMENTS, "owner_id", "alice", limit=10) == []
        assert len(backend.scan_index(DOCUMENTS, "owner_id", "bob", limit=10)) == 1

        with backend.transaction() as txn:
            txn.delete(DOCUMENTS, "d1")
        assert backend.scan_index(DOCUMENTS, "owner_id", "bob", limit=10) == []

    def test_pagination(self, backend: InMemoryStore) -> None:
        with backend.transaction() as txn:
            for i in range(25):
                txn.put(VECTORS, f"v{i}", {"id": f"v{i}", "document_id": "d"})
        pages = [backend.scan_index(VECTORS, "document_id", "d", limit=10, offset=o) for o in (0, 10, 20)]
        assert [len(p) for p in pages] == [10, 10, 5]
        assert len(list(backend.iter_index(VECTORS, "document_id", "d", page_size=10))) == 25

    def test_rows_are_copies(self, backend: InMemoryStore) -> None:
        row = {"id": "d1", "owner_id": "alice", "name": "a", "tags": ["x"]}
        with backend.transaction() as txn:
            txn.put(DOCUMENTS, "d1", row)
        row["tags"].append("mutated")
        fetched = backend.get(DOCUMENTS, "d1")
        fetched["tags"].append("again")
        assert backend.get(DOCUMENTS, "d1")["tags"] == ["x"]

    def test_unindexed_field_rejected(self, backend: InMemoryStore) -> None:
        with pytest.raises(ValueError):
            backend.scan_index(DOCUMENTS, "type", "PDF", limit=10)

    def test_unknown_collection(self, backend: InMemoryStore) -> None:
        with pytest.raises(StorageError):
            backend.get("users", "alice")

    def test_failed_commit_is_rolled_back(self) -> None:
        backend = FailingStore(fail_at=10**9)
        with backend.transaction() as txn:
            txn.put(DOCUMENTS, "d1", {"id": "d1", "owner_id": "alice", "name": "a"})
            txn.put(VECTORS, "d1-0", {"id": "d1-0", "document_id": "d1"})
        before_docs = _all_rows(backend, DOCUMENTS)
        before_vecs = _all_rows(backend, VECTORS)

        backend.fail_at = 2
        with pytest.raises(StorageError, match="disk full"):
            with backend.transaction() as txn:
                txn.delete(VECTORS, "d1-0")
                txn.put(DOCUMENTS, "d1", {"id": "d1", "owner_id": "bob", "name": "a"})
                txn.put(DOCUMENTS, "d2", {"id": "d2", "owner_id": "alice", "name": "b"})

        assert _all_rows(backend, DOCUMENTS) == before_docs
        assert _all_rows(backend, VECTORS) == before_vecs
        assert [r["id"] for r in backend.scan_index(DOCUMENTS, "owner_id", "alice", limit=10)] == ["d1"]
        assert backend.scan_index(DOCUMENTS, "owner_id", "bob", limit=10) == []

    def test_exception_inside_block_discards_staged_writes(self, backend: InMemoryStore) -> None:
        with pytest.raises(RuntimeError):
            with backend.transaction() as txn:
                txn.put(DOCUMENTS, "d1", {"id": "d1", "owner_id": "alice", "name": "a"})
                raise RuntimeError("abort")
        assert backend.get(DOCUMENTS, "d1") is None


# ── VectorStore ────────────────────────────────────────────────────────


class TestVectorStore:
    def test_upsert_and_read_back(self, store: VectorStore) -> None:
        doc = _doc()
        store.upsert(doc, _chunks(doc, 3))

        assert store.get(doc.id) == doc
        assert store.list_by_owner("alice") == [doc]
        assert [c.id for c in store.chunks_for_document(doc.id)] == [f"{doc.id}-{i}" for i in range(3)]

    def test_owner_partition(self, store: VectorStore) -> None:
        a, b = _doc("alice"), _doc("bob")
        store.upsert(a, _chunks(a, 2))
        store.upsert(b, _chunks(b, 4))

        assert [d.id for d in store.list_by_owner("alice")] == [a.id]
        assert {c.document_id for c in store.all_vectors_for_owner("alice")} == {a.id}
        assert len(store.all_vectors_for_owner("bob")) == 4
        assert store.all_vectors_for_owner("carol") == []

    def test_all_vectors_keep_scan_order(self, store: VectorStore) -> None:
        first, second = _doc(name="1.txt"), _doc(name="2.txt")
        store.upsert(first, _chunks(first, 2))
        store.upsert(second, _chunks(second, 2))
        ids = [c.id for c in store.all_vectors_for_owner("alice")]
        assert ids == [f"{first.id}-0", f"{first.id}-1", f"{second.id}-0", f"{second.id}-1"]

    def test_upsert_rejects_foreign_chunks(self, store: VectorStore) -> None:
        doc, other = _doc(), _doc(name="B.pdf")
        with pytest.raises(StorageError):
            store.upsert(doc, _chunks(other, 1))
        assert store.get(doc.id) is None

    def test_upsert_rejects_mixed_dimensions(self, store: VectorStore) -> None:
        doc = _doc()
        chunks = _chunks(doc, 2)
        chunks[1] = chunks[1].model_copy(update={"embedding": [1.0, 0.0, 0.0]})
        with pytest.raises(DimensionMismatchError):
            store.upsert(doc, chunks)

    def test_dimension_is_constant_store_wide(self, store: VectorStore) -> None:
        first = _doc()
        store.upsert(first, _chunks(first, 1, [1.0, 0.0]))
        second = _doc(owner="bob")
        with pytest.raises(DimensionMismatchError):
            store.upsert(second, _chunks(second, 1, [1.0, 0.0, 0.0]))
        assert store.list_by_owner("bob") == []

    def test_delete_cascades_to_chunks(self, store: VectorStore) -> None:
        keep, drop = _doc(name="keep.txt"), _doc(name="drop.txt")
        store.upsert(keep, _chunks(keep, 2))
        store.upsert(drop, _chunks(drop, 3))

        assert store.delete(drop.id) == 3
        assert store.get(drop.id) is None
        assert store.chunks_for_document(drop.id) == []
        assert len(store.chunks_for_document(keep.id)) == 2

    def test_delete_walks_every_page(self) -> None:
        backend = CountingStore()
        store = VectorStore(backend, page_size=1000)
        doc = _doc()
        store.upsert(doc, _chunks(doc, 2500))

        backend.index_pages = 0
        assert store.delete(doc.id) == 2500
        assert backend.index_pages >= 3
        assert backend.scan(VECTORS, limit=10_000) == []
        assert backend.scan(DOCUMENTS, limit=10) == []

    def test_replace_by_name_removes_all_versions(self, store: VectorStore) -> None:
        v1 = _doc(version=1)
        other = _doc(name="B.pdf")
        foreign = _doc(owner="bob")
        for d in (v1, other, foreign):
            store.upsert(d, _chunks(d, 2))

        removed = store.replace_by_name("alice", "A.pdf")

        assert [d.id for d in removed] == [v1.id]
        assert [d.name for d in store.list_by_owner("alice")] == ["B.pdf"]
        assert store.chunks_for_document(v1.id) == []
        assert len(store.list_by_owner("bob")) == 1

    def test_replace_by_name_without_match(self, store: VectorStore) -> None:
        assert store.replace_by_name("alice", "nothing.txt") == []

    def test_failed_upsert_leaves_no_trace(self) -> None:
        backend = FailingStore(fail_at=3)
        store = VectorStore(backend)
        doc = _doc()
        with pytest.raises(StorageError):
            store.upsert(doc, _chunks(doc, 5))
        assert store.get(doc.id) is None
        assert backend.scan(VECTORS, limit=100) == []

    def test_paged_read_never_sees_half_deleted_document(self) -> None:
        backend = InterleavingStore()
        store = VectorStore(backend, page_size=1000)
        doc = _doc(owner="o")
        store.upsert(doc, _chunks(doc, 2500))

        backend.writer = lambda: store.delete(doc.id)
        seen = store.all_vectors_for_owner("o")
        backend.thread.join(timeout=5)

        assert len(seen) in (0, 2500)
        assert not backend.thread.is_alive()
        assert store.all_vectors_for_owner("o") == []
