"""
Fixed-size sentence chunking.

Text is collapsed to single spaces, split into sentences after . ! ?,
then sentences are packed into chunks of at most max_chunk_size characters.
Each new chunk starts with the last overlap_size // 10 words of the previous one.
A single sentence longer than the limit stays whole.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass

_WHITESPACE_RE = re.compile(r"\s+")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


@dataclass
class Chunk:
    """One stored slice of a document."""
    id: str
    document_id: str
    company_id: str
    chunk_index: int
    content: str
    token_count: int
    section: str | None = None


def estimate_tokens(text: str) -> int:
    """About 4 characters per token."""
    if not text:
        return 0
    return (len(text) + 3) // 4


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def get_chunk_size() -> int:
    return _env_int("RAG_CHUNK_SIZE", 1000)


def get_chunk_overlap() -> int:
    return _env_int("RAG_CHUNK_OVERLAP", 200)


def split_sentences(text: str) -> list[str]:
    text = _WHITESPACE_RE.sub(" ", text or "").strip()
    if not text:
        return []
    return [s for s in _SENTENCE_RE.split(text) if s]


def chunk_text(text: str, max_chunk_size: int = 1000, overlap_size: int = 200) -> list[str]:
    """Greedy sentence packing; the size budget counts sentence lengths only, not joining spaces."""
    chunks: list[str] = []
    overlap_words = overlap_size // 10
    current = ""
    current_size = 0

    for sentence in split_sentences(text):
        if current and current_size + len(sentence) > max_chunk_size:
            chunks.append(current)
            tail = current.split(" ")[-overlap_words:] if overlap_words > 0 else []
            current = " ".join(tail + [sentence])
            current_size = len(current)
            continue
        current = f"{current} {sentence}" if current else sentence
        current_size += len(sentence)

    if current:
        chunks.append(current)
    return chunks


def build_chunks(
    text: str,
    document_id: str,
    company_id: str,
    max_chunk_size: int | None = None,
    overlap_size: int | None = None,
) -> list[Chunk]:
    """Chunk text into Chunk rows with ids "{document_id}-chunk-{i}" and sections "Chunk i/n"."""
    pieces = chunk_text(
        text,
        max_chunk_size=max_chunk_size or get_chunk_size(),
        overlap_size=get_chunk_overlap() if overlap_size is None else overlap_size,
    )
    total = len(pieces)
    return [
        Chunk(
            id=f"{document_id}-chunk-{i}",
            document_id=document_id,
            company_id=company_id,
            chunk_index=i,
            content=piece,
            token_count=estimate_tokens(piece),
            section=f"Chunk {i + 1}/{total}",
        )
        for i, piece in enumerate(pieces)
    ]
