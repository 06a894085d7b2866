"""
Benefits document library

- documents / document_chunks: PostgreSQL metadata and chunk text
- vector_store: Milvus dense search, partitioned by company
- chunking: fixed-size sentence chunking
- embedding: OpenAI-compatible embeddings
- service: upload → extract → chunk → embed → upsert, and retrieval
- router: FastAPI routes
"""
from .router import router

__all__ = ["router"]
