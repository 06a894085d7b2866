"""
RAG pydantic models: document lifecycle, search request/response.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    UPLOADED = "uploaded"
    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class DocumentOut(BaseModel):
    id: str
    company_id: str
    uploaded_by: Optional[int] = None
    title: str
    filename: str
    file_hash: str
    byte_size: int
    storage_path: str
    content_type: Optional[str] = None
    document_type: str = "general"
    status: DocumentStatus
    error_message: Optional[str] = None
    chunk_count: int = 0
    rag_processed: bool = False
    processed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ProcessResult(BaseModel):
    document_id: str
    status: str
    error: Optional[str] = None


class BatchProcessResponse(BaseModel):
    total: int
    processed: int
    failed: int
    results: list[ProcessResult]


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    limit: int = Field(5, ge=1, le=50)
    document_ids: Optional[list[str]] = Field(None, description="Restrict to these documents")


class ChunkOut(BaseModel):
    id: str
    document_id: str
    document_title: Optional[str] = None
    chunk_index: int
    content: str
    token_count: int = 0
    section: Optional[str] = None


class SearchHit(BaseModel):
    chunk: ChunkOut
    score: float


class SearchResponse(BaseModel):
    query: str
    hits: list[SearchHit]
    total: int
    context: str
