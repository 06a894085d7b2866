"""
Benefits AI backend
FastAPI service: tenant-scoped benefits chat with hybrid LLM routing and RAG over company documents
"""
import logging
import sys
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# .env must be loaded before importing modules that read the environment
load_dotenv()

# [RAG] / [Router] / [Chat] progress lines go to the terminal
for _name in ("rag", "services"):
    _log = logging.getLogger(_name)
    _log.setLevel(logging.INFO)
    if not _log.handlers:
        _h = logging.StreamHandler(sys.stdout)
        _h.setFormatter(logging.Formatter("%(message)s"))
        _log.addHandler(_h)

from rag import router as rag_router  # noqa: E402
from routers import admin, analytics, benefits, chat, health, history  # noqa: E402

logger = logging.getLogger("services.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Benefits AI backend starting")
    yield
    logger.info("Benefits AI backend stopped")


app = FastAPI(
    title="Benefits AI",
    description="""
Multi-tenant benefits assistant API.

## Features

- Chat over SSE (`POST /api/chat`) or WebSocket (`/api/chat/ws`), with per-company FAQ answers and a response cache
- Hybrid LLM routing: simple queries go to the cheap model, complex ones to the strong model, with usage and cost stats
- Document library: upload → extract (PDF/DOCX/TXT) → chunk → embed → Milvus, searched per company
- Benefits calculators, plan comparison, eligibility and enrollment deadlines
- Admin: companies, employees and roles, benefit plans, FAQs, settings, audit trail, analytics

## Stack

- FastAPI, PostgreSQL (asyncpg), Redis (hot context, cache, rq queue), MinIO (files), Milvus (vectors)
    """,
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/ping", tags=["debug"])
async def ping_root():
    return {"pong": True, "message": "backend ok"}


@app.get("/api/ping", tags=["debug"])
async def api_ping():
    return {"pong": True, "message": "backend ok"}


app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat.router, prefix="/api")
app.include_router(history.router, prefix="/api")
app.include_router(benefits.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
app.include_router(analytics.router, prefix="/api")
app.include_router(health.router, prefix="/api")
app.include_router(rag_router, prefix="/api")


@app.get("/", tags=["root"])
async def root():
    return {
        "message": "Benefits AI backend",
        "docs": "/docs",
        "version": "1.0.0",
    }


@app.get("/health", tags=["health"])
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
