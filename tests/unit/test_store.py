"""Unit tests for the vector store and its key-value backends."""

from __future__ import annotations

import fnmatch
import json
import threading
from unittest.mock import MagicMock

import pytest
import redis

from course_rag.config import Settings
from course_rag.errors import InvalidInput, NotFound, StoreError
from course_rag.retrieval.memory_store import MemoryBackend
from course_rag.retrieval.models import ChunkRecord, DocumentMeta, VectorRecord
from course_rag.retrieval.redis_store import RedisBackend, _decode_key, _encode_key
from course_rag.retrieval.store import VectorStore, build_store


def _add_document(store: VectorStore, doc_id: str, title: str, vectors: list[list[float]]) -> None:
    for i, vec in enumerate(vectors):
        store.put_chunk(doc_id, i, ChunkRecord(text=f"{doc_id} chunk {i}"))
        store.put_vector(doc_id, i, VectorRecord(embedding=vec))
    store.put_meta(doc_id, DocumentMeta(title=title, n=len(vectors)))


# ── VectorStore ────────────────────────────────────────────────────────


class TestVectorStore:
    def test_records_round_trip(self, store: VectorStore) -> None:
        _add_document(store, "lec1", "Intro", [[1.0, 0.0], [0.0, 1.0]])
        assert store.get_meta("lec1") == DocumentMeta(title="Intro", n=2)
        assert store.get_chunk("lec1", 1) == ChunkRecord(text="lec1 chunk 1")
        assert store.get_vector("lec1", 0).embedding == [1.0, 0.0]

    def test_key_layout_and_compact_vector_payload(self, store: VectorStore, backend: MemoryBackend) -> None:
        _add_document(store, "lec1", "Intro", [[0.5, 0.25]])
        assert json.loads(backend.get(("lec", "lec1", "meta"))) == {"title": "Intro", "n": 1}
        assert json.loads(backend.get(("lec", "lec1", "chunk", 0))) == {"text": "lec1 chunk 0"}
        assert json.loads(backend.get(("lec", "lec1", "vec", 0))) == {"e": [0.5, 0.25]}

    def test_absent_records_are_none(self, store: VectorStore) -> None:
        assert store.get_meta("nope") is None
        assert store.get_chunk("nope", 0) is None
        assert store.get_vector("nope", 0) is None

    def test_require_meta_raises_not_found(self, store: VectorStore) -> None:
        with pytest.raises(NotFound):
            store.require_meta("missing")
        with pytest.raises(KeyError):
            store.require_meta("missing")

    def test_last_write_wins(self, store: VectorStore) -> None:
        store.put_chunk("d", 0, ChunkRecord(text="old"))
        store.put_chunk("d", 0, ChunkRecord(text="new"))
        assert store.get_chunk("d", 0).text == "new"

    def test_empty_doc_id_rejected(self, store: VectorStore) -> None:
        with pytest.raises(InvalidInput):
            store.put_chunk("", 0, ChunkRecord(text="x"))

    def test_oversized_value_rejected(self, backend: MemoryBackend) -> None:
        store = VectorStore(backend, max_value_bytes=64)
        with pytest.raises(StoreError, match="limit is 64"):
            store.put_chunk("d", 0, ChunkRecord(text="x" * 100))
        assert len(backend) == 0

    def test_corrupt_record_raises_store_error(self, store: VectorStore, backend: MemoryBackend) -> None:
        backend.set(("lec", "d", "meta"), "{not json")
        with pytest.raises(StoreError, match="Corrupt record"):
            store.get_meta("d")

    def test_scan_yields_visible_vectors(self, store: VectorStore) -> None:
        _add_document(store, "a", "A", [[1.0], [2.0]])
        _add_document(store, "b", "B", [[3.0]])
        found = sorted(store.scan_vectors())
        assert found == [("a", 0, [1.0]), ("a", 1, [2.0]), ("b", 0, [3.0])]

    def test_scan_hides_documents_without_meta(self, store: VectorStore) -> None:
        _add_document(store, "done", "Done", [[1.0]])
        store.put_chunk("partial", 0, ChunkRecord(text="half written"))
        store.put_vector("partial", 0, VectorRecord(embedding=[1.0]))
        assert [doc for doc, _, _ in store.scan_vectors()] == ["done"]

    def test_scan_hides_indices_beyond_meta_count(self, store: VectorStore) -> None:
        _add_document(store, "d", "D", [[1.0], [2.0], [3.0]])
        store.put_meta("d", DocumentMeta(title="D", n=1))
        assert list(store.scan_vectors()) == [("d", 0, [1.0])]

    def test_scan_skips_corrupt_vectors(self, store: VectorStore, backend: MemoryBackend) -> None:
        _add_document(store, "d", "D", [[1.0], [2.0]])
        backend.set(("lec", "d", "vec", 1), "garbage")
        assert list(store.scan_vectors()) == [("d", 0, [1.0])]

    def test_scan_hides_document_with_corrupt_meta(self, store: VectorStore, backend: MemoryBackend) -> None:
        _add_document(store, "bad", "Bad", [[1.0], [2.0]])
        _add_document(store, "good", "Good", [[3.0]])
        backend.set(("lec", "bad", "meta"), "{garbage")
        assert list(store.scan_vectors()) == [("good", 0, [3.0])]

    def test_scan_on_empty_store(self, store: VectorStore) -> None:
        assert list(store.scan_vectors()) == []

    def test_prune_document_removes_trailing_indices(self, store: VectorStore) -> None:
        _add_document(store, "d", "D", [[1.0], [2.0], [3.0], [4.0]])
        _add_document(store, "other", "O", [[5.0], [6.0]])
        removed = store.prune_document("d", 2)
        assert removed == 4  # chunk + vec for indices 2 and 3
        assert store.get_chunk("d", 2) is None
        assert store.get_vector("d", 3) is None
        assert store.get_chunk("d", 1) is not None
        assert store.get_meta("d") is not None
        assert store.get_chunk("other", 1) is not None

    def test_prefixes_isolate_corpora(self, backend: MemoryBackend) -> None:
        fall = VectorStore(backend, prefix="fall")
        spring = VectorStore(backend, prefix="spring")
        _add_document(fall, "lec1", "Fall intro", [[1.0]])
        assert spring.get_meta("lec1") is None
        assert list(spring.scan_vectors()) == []


# ── MemoryBackend ──────────────────────────────────────────────────────


class TestMemoryBackend:
    def test_scan_is_a_snapshot(self) -> None:
        backend = MemoryBackend()
        for i in range(5):
            backend.set(("p", i), str(i))
        seen = []
        for key, _ in backend.scan(("p",)):
            backend.set(("p", 100 + len(seen)), "new")  # must not break iteration
            seen.append(key)
        assert len(seen) == 5

    def test_delete_absent_key_is_noop(self) -> None:
        backend = MemoryBackend()
        backend.delete(("missing",))
        assert len(backend) == 0

    def test_concurrent_per_key_access(self) -> None:
        backend = MemoryBackend()
        errors: list[Exception] = []

        def work(worker: int) -> None:
            try:
                for i in range(200):
                    backend.set(("p", worker, i), f"{worker}:{i}")
                    assert backend.get(("p", worker, i)) == f"{worker}:{i}"
                    list(backend.scan(("p",)))
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=work, args=(w,)) for w in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(backend) == 8 * 200


# ── RedisBackend ───────────────────────────────────────────────────────


class FakeRedis:
    """Dict-backed stand-in for ``redis.Redis`` with ``decode_responses=True``."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.get_calls = 0
        self.mget_calls = 0

    def get(self, key: str) -> str | None:
        self.get_calls += 1
        return self.data.get(key)

    def mget(self, keys: list[str]) -> list[str | None]:
        self.mget_calls += 1
        return [self.data.get(k) for k in keys]

    def set(self, key: str, value: str) -> bool:
        self.data[key] = value
        return True

    def delete(self, key: str) -> int:
        return 1 if self.data.pop(key, None) is not None else 0

    def scan(self, cursor: int = 0, match: str = "*", count: int = 10) -> tuple[int, list[str]]:
        # The cursor is a position in the sorted keyspace; 0 ends the walk.
        keys = sorted(self.data)
        page = keys[cursor:cursor + count]
        next_cursor = cursor + count if cursor + count < len(keys) else 0
        return next_cursor, [k for k in page if fnmatch.fnmatchcase(k, match)]

    def ping(self) -> bool:
        return True


class TestRedisBackend:
    @pytest.mark.parametrize(
        "key",
        [("lec", "lec1", "meta"), ("lec", "a/b*c:d [x]", "vec", 12), ("lec", "42", "chunk", 0)],
    )
    def test_key_encoding_round_trip(self, key: tuple) -> None:
        assert _decode_key(_encode_key(key)) == key

    def test_string_digits_are_not_confused_with_ints(self) -> None:
        assert _encode_key(("7",)) != _encode_key((7,))

    def test_vector_store_on_redis(self) -> None:
        store = VectorStore(RedisBackend(client=FakeRedis()))
        _add_document(store, "lec/1*", "Odd id", [[1.0, 0.0], [0.0, 1.0]])
        _add_document(store, "lec2", "Plain", [[0.5, 0.5]])
        assert store.get_meta("lec/1*").title == "Odd id"
        assert sorted(store.scan_vectors()) == [
            ("lec/1*", 0, [1.0, 0.0]),
            ("lec/1*", 1, [0.0, 1.0]),
            ("lec2", 0, [0.5, 0.5]),
        ]

    def test_scan_fetches_values_one_page_at_a_time(self) -> None:
        client = FakeRedis()
        backend = RedisBackend(client=client, scan_count=2)
        for i in range(5):
            backend.set(("lec", "d", "chunk", i), str(i))

        found = sorted(backend.scan(("lec",)))

        assert found == [(("lec", "d", "chunk", i), str(i)) for i in range(5)]
        assert client.mget_calls == 3
        assert client.get_calls == 0

    def test_scan_respects_prefix(self) -> None:
        backend = RedisBackend(client=FakeRedis())
        backend.set(("lec", "a", "meta"), "1")
        backend.set(("lecture", "b", "meta"), "2")
        assert [k for k, _ in backend.scan(("lec",))] == [("lec", "a", "meta")]

    def test_scan_skips_foreign_keys(self) -> None:
        client = FakeRedis()
        client.data["slec/unrelated"] = "x"
        backend = RedisBackend(client=client)
        assert list(backend.scan(("lec",))) == []

    def test_errors_become_store_errors(self) -> None:
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("refused")
        client.set.side_effect = redis.ConnectionError("refused")
        client.scan.side_effect = redis.ConnectionError("refused")
        backend = RedisBackend(client=client)
        with pytest.raises(StoreError):
            backend.get(("lec", "a", "meta"))
        with pytest.raises(StoreError):
            backend.set(("lec", "a", "meta"), "{}")
        with pytest.raises(StoreError):
            list(backend.scan(("lec",)))

    def test_health_check(self) -> None:
        assert RedisBackend(client=FakeRedis()).health_check() is True
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError("down")
        assert RedisBackend(client=client).health_check() is False


# ── build_store ────────────────────────────────────────────────────────


class TestBuildStore:
    def test_memory_backend(self) -> None:
        store = build_store(Settings(store_backend="memory", key_prefix="c101"))
        assert isinstance(store.backend, MemoryBackend)
        assert store.prefix == "c101"

    def test_redis_backend(self) -> None:
        store = build_store(Settings(store_backend="redis", redis_url="redis://localhost:6390/2"))
        assert isinstance(store.backend, RedisBackend)

    def test_unknown_backend(self) -> None:
        with pytest.raises(InvalidInput, match="Unsupported store_backend"):
            build_store(Settings(store_backend="sqlite"))
