"""Tests for the Chroma storage backend, run against an in-process Chroma."""

from __future__ import annotations

from uuid import uuid4

import pytest

chromadb = pytest.importorskip("chromadb")

from grounded_rag.errors import StorageError  # noqa: E402
from grounded_rag.models import Chunk, Document, DocumentStatus  # noqa: E402
from grounded_rag.storage import DOCUMENTS, VECTORS, VectorStore  # noqa: E402
from grounded_rag.storage.chroma_store import ChromaStore  # noqa: E402

pytestmark = pytest.mark.chroma


@pytest.fixture()
def chroma() -> ChromaStore:
    # EphemeralClient instances share one in-process system; a fresh prefix
    # keeps tests isolated.
    return ChromaStore(chromadb.EphemeralClient(), prefix=f"t{uuid4().hex[:10]}")


def _doc_with_chunks(owner: str, name: str, n: int) -> tuple[Document, list[Chunk]]:
    doc = Document(owner_id=owner, name=name, status=DocumentStatus.READY, content="body")
    chunks = [
        Chunk(
            id=Chunk.make_id(doc.id, i),
            document_id=doc.id,
            document_name=name,
            text=f"{name} part {i}",
            embedding=[float(i + 1), 1.0, 0.0],
        )
        for i in range(n)
    ]
    return doc, chunks


def test_round_trip_rows(chroma: ChromaStore) -> None:
    with chroma.transaction() as txn:
        txn.put(DOCUMENTS, "d1", {"id": "d1", "owner_id": "alice", "name": "a", "content": "x" * 5000})
        txn.put(VECTORS, "d1-0", {"id": "d1-0", "document_id": "d1", "text": "t", "embedding": [0.5, 0.25]})

    assert chroma.get(DOCUMENTS, "d1")["content"] == "x" * 5000
    vector = chroma.get(VECTORS, "d1-0")
    assert vector["embedding"] == pytest.approx([0.5, 0.25])
    assert chroma.get(DOCUMENTS, "missing") is None


def test_vector_rows_require_embedding(chroma: ChromaStore) -> None:
    with pytest.raises(StorageError):
        with chroma.transaction() as txn:
            txn.put(VECTORS, "v", {"id": "v", "document_id": "d", "text": "t", "embedding": None})


def test_failed_commit_restores_previous_rows(chroma: ChromaStore) -> None:
    with chroma.transaction() as txn:
        txn.put(DOCUMENTS, "d1", {"id": "d1", "owner_id": "alice", "name": "a"})

    with pytest.raises(StorageError):
        with chroma.transaction() as txn:
            txn.put(DOCUMENTS, "d1", {"id": "d1", "owner_id": "bob", "name": "a"})
            txn.put(VECTORS, "bad", {"id": "bad", "document_id": "d1", "text": "t"})

    assert chroma.get(DOCUMENTS, "d1")["owner_id"] == "alice"
    assert chroma.get(VECTORS, "bad") is None


def test_vector_store_lifecycle(chroma: ChromaStore) -> None:
    store = VectorStore(chroma, page_size=2)
    doc, chunks = _doc_with_chunks("alice", "A.pdf", 5)
    other, other_chunks = _doc_with_chunks("bob", "A.pdf", 2)
    store.upsert(doc, chunks)
    store.upsert(other, other_chunks)

    assert [d.id for d in store.list_by_owner("alice")] == [doc.id]
    assert {c.id for c in store.all_vectors_for_owner("alice")} == {c.id for c in chunks}

    removed = store.replace_by_name("alice", "A.pdf")
    assert [d.id for d in removed] == [doc.id]
    assert store.all_vectors_for_owner("alice") == []
    assert len(store.all_vectors_for_owner("bob")) == 2

    assert store.delete(other.id) == 2
    assert store.get(other.id) is None


def test_document_larger_than_one_chroma_batch(chroma: ChromaStore) -> None:
    store = VectorStore(chroma)
    n = chroma.batch_size + 10
    doc, chunks = _doc_with_chunks("alice", "big.txt", n)

    store.upsert(doc, chunks)
    assert len(store.chunks_for_document(doc.id)) == n

    assert store.delete(doc.id) == n
    assert store.chunks_for_document(doc.id) == []


def test_writes_are_split_into_batches() -> None:
    client = chromadb.EphemeralClient()
    small = ChromaStore(client, prefix=f"t{uuid4().hex[:10]}", batch_size=2)
    store = VectorStore(small, page_size=2)
    doc, chunks = _doc_with_chunks("alice", "A.pdf", 5)

    store.upsert(doc, chunks)
    assert [c.id for c in store.chunks_for_document(doc.id)] == [c.id for c in chunks]

    replacement, fresh = _doc_with_chunks("alice", "B.pdf", 3)
    with pytest.raises(StorageError):
        with small.transaction() as txn:
            for c in fresh:
                txn.put(VECTORS, c.id, c.model_dump())
            txn.put(DOCUMENTS, replacement.id, replacement.model_dump(mode="json"))
            # applied after the sliced vector writes above, so they must be undone
            txn.put(VECTORS, "broken", {"id": "broken", "document_id": replacement.id, "text": "t"})
    assert all(small.get(VECTORS, c.id) is None for c in fresh)
    assert small.get(DOCUMENTS, replacement.id) is None

    assert store.delete(doc.id) == 5
