"""
Document library tests

Run from the backend directory:

    cd backend
    python -m pytest rag/test_rag.py

- Unit: parsers, chunking, context assembly, keyword scoring
- Pipeline: upload / process / search with repositories, MinIO and Milvus monkeypatched
"""
from __future__ import annotations

import asyncio
import io

import pytest

from rag import chunking, parsers, service
from rag.models import ChunkOut, SearchHit


# ---------------------------------------------------------------------------
# 1. Parsers
# ---------------------------------------------------------------------------

def test_parsers_supported_extensions() -> None:
    assert parsers.is_supported("plan.pdf")
    assert parsers.is_supported("Handbook.DOCX")
    assert parsers.is_supported("notes.txt")
    assert parsers.is_supported("readme.md")
    assert not parsers.is_supported("sheet.xlsx")
    assert not parsers.is_supported("unknown.xyz")
    assert not parsers.is_supported("")


def test_parsers_get_parser() -> None:
    assert parsers.get_parser_for_file("a.pdf") == "pdf"
    assert parsers.get_parser_for_file("b.docx") == "docx"
    assert parsers.get_parser_for_file("c.md") == "txt"
    assert parsers.get_parser_for_file("d.exe") is None
    assert parsers.guess_content_type("a.pdf") == "application/pdf"
    assert parsers.guess_content_type("d.exe") == "application/octet-stream"


def test_parsers_txt_encodings() -> None:
    assert parsers.extract_text("Dental covers two cleanings.".encode("utf-8"), "faq.txt") == "Dental covers two cleanings."
    # not valid utf-8, decoded as latin-1
    assert parsers.extract_text("Café plan".encode("latin-1"), "menu.txt") == "Café plan"


def test_parsers_docx() -> None:
    import docx

    document = docx.Document()
    document.add_paragraph("Vision coverage starts on day one.")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Plan"
    table.rows[0].cells[1].text = "PPO"
    buf = io.BytesIO()
    document.save(buf)

    text = parsers.extract_text(buf.getvalue(), "benefits.docx")
    assert "Vision coverage starts on day one." in text
    assert "| Plan | PPO |" in text


def test_parsers_unsupported_raises() -> None:
    with pytest.raises(ValueError, match="Unsupported file type"):
        parsers.extract_text(b"data", "payroll.xlsx")


# ---------------------------------------------------------------------------
# 2. Chunking
# ---------------------------------------------------------------------------

def test_chunking_estimate_tokens() -> None:
    assert chunking.estimate_tokens("") == 0
    assert chunking.estimate_tokens("abcd") == 1
    assert chunking.estimate_tokens("abcde") == 2


def test_chunking_split_sentences() -> None:
    text = "First sentence.  Second one!\n\nThird?   Trailing"
    assert chunking.split_sentences(text) == ["First sentence.", "Second one!", "Third?", "Trailing"]
    assert chunking.split_sentences("   ") == []


def test_chunking_short_text_is_one_chunk() -> None:
    assert chunking.chunk_text("One. Two. Three.", max_chunk_size=1000) == ["One. Two. Three."]


def test_chunking_overlap_carries_last_words() -> None:
    text = "Alpha beta gamma. Delta epsilon zeta."
    # overlap 20 chars -> last 2 words of the previous chunk
    chunks = chunking.chunk_text(text, max_chunk_size=30, overlap_size=20)
    assert chunks == ["Alpha beta gamma.", "beta gamma. Delta epsilon zeta."]


def test_chunking_oversized_sentence_stays_whole() -> None:
    sentence = "x" * 50 + "."
    assert chunking.chunk_text(sentence, max_chunk_size=10, overlap_size=0) == [sentence]


def test_chunking_budget_ignores_joining_spaces() -> None:
    # 5 + 5 characters fit a budget of 10 even though the joined chunk is 11 long
    assert chunking.chunk_text("aaaa. bbbb.", max_chunk_size=10, overlap_size=0) == ["aaaa. bbbb."]
    assert chunking.chunk_text("aaaa. bbbb. c.", max_chunk_size=10, overlap_size=0) == ["aaaa. bbbb.", "c."]


def test_chunking_build_chunks_ids_and_sections() -> None:
    text = "Alpha beta gamma. Delta epsilon zeta. Eta theta iota."
    chunks = chunking.build_chunks(text, "doc1", "acme", max_chunk_size=20, overlap_size=0)
    assert [c.id for c in chunks] == ["doc1-chunk-0", "doc1-chunk-1", "doc1-chunk-2"]
    assert [c.section for c in chunks] == ["Chunk 1/3", "Chunk 2/3", "Chunk 3/3"]
    assert all(c.company_id == "acme" for c in chunks)
    assert chunks[1].token_count == chunking.estimate_tokens(chunks[1].content)


# ---------------------------------------------------------------------------
# 3. Context assembly and keyword scoring
# ---------------------------------------------------------------------------

def _hit(content: str, title: str = "Handbook", section: str | None = "Chunk 1/1", score: float = 0.9) -> SearchHit:
    return SearchHit(
        chunk=ChunkOut(
            id="d-chunk-0",
            document_id="d",
            document_title=title,
            chunk_index=0,
            content=content,
            section=section,
        ),
        score=score,
    )


def test_generate_context_empty() -> None:
    assert service.generate_context([]) == service.NO_CONTEXT


def test_generate_context_lists_documents() -> None:
    ctx = service.generate_context([_hit("Deductible is $500."), _hit("PTO accrues monthly.", section=None)])
    assert ctx.startswith("Based on the following relevant documents:")
    assert "[Document 1]" in ctx and "[Document 2]" in ctx
    assert "Title: Handbook" in ctx
    assert "Content: Deductible is $500." in ctx
    assert "Section: General" in ctx


def test_keyword_scoring() -> None:
    keywords = service.extract_keywords("What is my dental deductible?")
    assert keywords == ["what", "dental", "deductible?"]
    assert service.keyword_score("Dental plan: the dental deductible is low", ["dental"]) == 2
    assert service.keyword_score("", ["dental"]) == 0


# ---------------------------------------------------------------------------
# 4. Pipeline with collaborators monkeypatched
# ---------------------------------------------------------------------------

def _chunk_row(chunk_id: str, content: str) -> dict:
    return {
        "id": chunk_id,
        "document_id": "doc1",
        "document_title": "Benefits Guide",
        "chunk_index": 0,
        "content": content,
        "token_count": 10,
        "section": "Chunk 1/1",
    }


def test_search_falls_back_to_keywords(monkeypatch) -> None:
    async def broken_vector_search(*args, **kwargs):
        raise ConnectionError("milvus down")

    async def recent(company_id, limit, document_ids=None):
        assert company_id == "acme"
        assert limit == 15
        return [
            _chunk_row("c1", "Vision exams are covered once a year."),
            _chunk_row("c2", "Dental cleanings: dental coverage pays 100%."),
            _chunk_row("c3", "Parking is free."),
        ]

    monkeypatch.setattr(service, "_vector_search", broken_vector_search)
    monkeypatch.setattr(service.chunk_repository, "recent_by_company", recent)

    hits = asyncio.run(service.search("dental coverage", "acme", 5))
    assert [h.chunk.id for h in hits] == ["c2"]
    assert hits[0].score == 3.0


def test_search_hydrates_vector_hits_in_rank_order(monkeypatch) -> None:
    calls = {}

    async def embed_query(text):
        calls["embedded"] = text
        return [0.3, 0.4]

    async def search(vector, company_id, limit, document_ids=None):
        calls["search"] = (vector, company_id, limit, document_ids)
        return [{"chunk_id": "c2", "score": 0.91}, {"chunk_id": "c9", "score": 0.8}, {"chunk_id": "c1", "score": 0.55}]

    async def get_by_ids(ids, company_id):
        calls["ids"] = (list(ids), company_id)
        # c9 belongs to another company and is dropped by the repository
        rows = {"c1": _chunk_row("c1", "Vision exams."), "c2": _chunk_row("c2", "Dental cleanings.")}
        return [rows[i] for i in ids if i in rows]

    async def recent(*args, **kwargs):
        raise AssertionError("keyword fallback not expected")

    monkeypatch.setattr(service.embedding, "embed_query", embed_query)
    monkeypatch.setattr(service.vector_store, "search", search)
    monkeypatch.setattr(service.chunk_repository, "get_by_ids", get_by_ids)
    monkeypatch.setattr(service.chunk_repository, "recent_by_company", recent)

    hits = asyncio.run(service.search("dental cleanings", "acme", 3, ["doc1"]))
    assert calls["embedded"] == "dental cleanings"
    assert calls["search"] == ([0.3, 0.4], "acme", 3, ["doc1"])
    assert calls["ids"] == (["c2", "c9", "c1"], "acme")
    assert [(h.chunk.id, h.score) for h in hits] == [("c2", 0.91), ("c1", 0.55)]
    assert hits[0].chunk.document_title == "Benefits Guide"


def test_search_returns_empty_when_everything_fails(monkeypatch) -> None:
    async def broken(*args, **kwargs):
        raise ConnectionError("down")

    monkeypatch.setattr(service, "_vector_search", broken)
    monkeypatch.setattr(service.chunk_repository, "recent_by_company", broken)

    assert asyncio.run(service.search("dental coverage", "acme")) == []


def test_upload_rejects_unsupported_type() -> None:
    with pytest.raises(ValueError, match="Unsupported file type"):
        asyncio.run(service.upload_document(
            company_id="acme", user_id=1, filename="payroll.xlsx", file_data=b"x",
        ))


def test_upload_duplicate_returns_existing(monkeypatch) -> None:
    existing = {"id": "doc-existing", "status": "processed"}

    async def find(company_id, file_hash):
        assert company_id == "acme"
        assert len(file_hash) == 64
        return existing

    def no_upload(*args, **kwargs):
        raise AssertionError("duplicate must not be stored again")

    monkeypatch.setattr(service.document_repository, "find_by_company_and_hash", find)
    monkeypatch.setattr(service.minio_service, "put_bytes", no_upload)

    doc = asyncio.run(service.upload_document(
        company_id="acme", user_id=1, filename="guide.txt", file_data=b"same bytes",
    ))
    assert doc is existing


def test_process_document_records_failure(monkeypatch) -> None:
    doc = {
        "id": "doc1",
        "company_id": "acme",
        "filename": "empty.txt",
        "storage_path": "documents/acme/doc1/empty.txt",
        "status": "uploaded",
        "title": "Empty",
    }
    status_calls = []

    async def get_by_id(doc_id):
        return dict(doc)

    async def update_status(doc_id, status, error_message=None):
        status_calls.append((status, error_message))
        return {**doc, "status": status, "error_message": error_message}

    monkeypatch.setattr(service.document_repository, "get_by_id", get_by_id)
    monkeypatch.setattr(service.document_repository, "update_status", update_status)
    monkeypatch.setattr(service.minio_service, "read_bytes", lambda path: b"   ")

    out = asyncio.run(service.process_document("doc1"))
    assert status_calls == [("processing", None), ("failed", "No text content extracted")]
    assert out["status"] == "failed"
    assert out["error_message"] == "No text content extracted"


def test_process_document_skips_processed(monkeypatch) -> None:
    doc = {"id": "doc1", "status": "processed"}

    async def get_by_id(doc_id):
        return doc

    async def update_status(*args, **kwargs):
        raise AssertionError("processed documents are not touched")

    monkeypatch.setattr(service.document_repository, "get_by_id", get_by_id)
    monkeypatch.setattr(service.document_repository, "update_status", update_status)

    assert asyncio.run(service.process_document("doc1")) is doc


def test_process_document_success(monkeypatch) -> None:
    doc = {
        "id": "doc1",
        "company_id": "acme",
        "filename": "guide.txt",
        "storage_path": "documents/acme/doc1/guide.txt",
        "status": "uploaded",
        "title": "Guide",
    }
    stored = {}

    async def get_by_id(doc_id):
        return dict(doc)

    async def update_status(doc_id, status, error_message=None):
        return {**doc, "status": status}

    async def noop(*args, **kwargs):
        return 0

    async def bulk_create(chunks):
        stored["chunks"] = chunks
        return len(chunks)

    async def embed_texts(texts):
        return [[0.1, 0.2] for _ in texts]

    async def upsert_chunks(**kwargs):
        stored["upsert"] = kwargs

    async def mark_processed(doc_id, chunk_count):
        return {**doc, "status": "processed", "chunk_count": chunk_count, "rag_processed": True}

    monkeypatch.setattr(service.document_repository, "get_by_id", get_by_id)
    monkeypatch.setattr(service.document_repository, "update_status", update_status)
    monkeypatch.setattr(service.document_repository, "mark_processed", mark_processed)
    monkeypatch.setattr(service.minio_service, "read_bytes", lambda path: b"HSA limit is 3650. FSA limit is 3050.")
    monkeypatch.setattr(service.vector_store, "delete_by_document", noop)
    monkeypatch.setattr(service.vector_store, "upsert_chunks", upsert_chunks)
    monkeypatch.setattr(service.chunk_repository, "delete_by_document", noop)
    monkeypatch.setattr(service.chunk_repository, "bulk_create", bulk_create)
    monkeypatch.setattr(service.embedding, "embed_texts", embed_texts)
    monkeypatch.setattr(service.response_cache, "invalidate_company", noop)

    out = asyncio.run(service.process_document("doc1"))
    assert out["status"] == "processed"
    assert out["chunk_count"] == 1
    assert stored["chunks"][0].id == "doc1-chunk-0"
    assert stored["upsert"]["company_ids"] == ["acme"]
    assert stored["upsert"]["metadatas"][0]["title"] == "Guide"


def test_process_company_documents_totals(monkeypatch) -> None:
    async def list_pending(company_id):
        assert company_id == "acme"
        return [{"id": "d1"}, {"id": "d2"}, {"id": "d3"}]

    async def process_document(doc_id):
        if doc_id == "d1":
            return {"id": doc_id, "status": "processed", "error_message": None}
        if doc_id == "d2":
            return {"id": doc_id, "status": "failed", "error_message": "No text could be extracted"}
        return None

    monkeypatch.setattr(service.document_repository, "list_pending", list_pending)
    monkeypatch.setattr(service, "process_document", process_document)

    out = asyncio.run(service.process_company_documents("acme"))
    assert (out["total"], out["processed"], out["failed"]) == (3, 1, 2)
    assert out["results"][0] == {"document_id": "d1", "status": "processed", "error": None}
    assert out["results"][1]["error"] == "No text could be extracted"
    assert out["results"][2] == {
        "document_id": "d3",
        "status": "failed",
        "error": "Document disappeared during processing",
    }


# ---------------------------------------------------------------------------
# 5. Task queue
# ---------------------------------------------------------------------------

class _FakeRedis:
    opened: list = []

    def __init__(self, url):
        self.url = url
        self.closed = False

    @classmethod
    def from_url(cls, url):
        conn = cls(url)
        cls.opened.append(conn)
        return conn

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True

    def ping(self):
        return True


def test_task_queue_closes_connections(monkeypatch) -> None:
    from rag import tasks

    enqueued = []

    class FakeQueue:
        def __init__(self, name, connection, default_timeout):
            assert name == tasks.QUEUE_NAME
            self.connection = connection

        def enqueue(self, func, doc_id, **kwargs):
            enqueued.append((func, doc_id, kwargs["job_timeout"]))

            class Job:
                id = "job-1"
            return Job()

    _FakeRedis.opened = []
    monkeypatch.setattr(tasks, "Redis", _FakeRedis)
    monkeypatch.setattr(tasks, "Queue", FakeQueue)

    assert tasks.is_queue_available() is True
    assert tasks.enqueue_process_document("doc1") == "job-1"
    assert enqueued == [(tasks.process_document_task, "doc1", "30m")]
    assert len(_FakeRedis.opened) == 2
    assert all(conn.closed for conn in _FakeRedis.opened)
