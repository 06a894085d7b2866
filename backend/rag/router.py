"""
Document library routes (mounted at /api/rag).

Upload stores the file (SHA-256 dedup per company); process runs extraction → chunking →
embedding → Milvus, in an RQ worker when RAG_USE_QUEUE=true; search is company scoped.
"""
from __future__ import annotations

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from auth import CurrentUser, require_role, resolve_company_id
from auth.roles import COMPANY_ADMIN, EMPLOYEE, HR_ADMIN
from services.audit import log_event

from . import parsers, service, tasks
from .document_repository import document_repository
from .models import (
    BatchProcessResponse,
    DocumentOut,
    DocumentStatus,
    SearchRequest,
    SearchResponse,
)

logger = logging.getLogger("rag.router")

router = APIRouter(prefix="/rag", tags=["rag"])

HRUser = Annotated[CurrentUser, Depends(require_role(HR_ADMIN))]


async def _get_owned_document(doc_id: str, user: CurrentUser, company_id: Optional[str]) -> dict:
    scope = resolve_company_id(user, company_id)
    doc = await service.get_document(doc_id, scope)
    if not doc:
        raise HTTPException(status_code=404, detail="Document not found")
    return doc


@router.post("/documents/upload", response_model=DocumentOut, summary="Upload a document")
async def upload_document(
    user: HRUser,
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    document_type: str = Form("general"),
    company_id: Optional[str] = Form(None),
):
    """
    Store a benefits document for later processing.

    The same file uploaded twice to one company returns the existing record.
    """
    scope = resolve_company_id(user, company_id)
    if not file.filename:
        raise HTTPException(status_code=400, detail="Filename is required")
    if not parsers.is_supported(file.filename):
        supported = ", ".join(sorted(parsers.SUPPORTED_EXTENSIONS))
        raise HTTPException(status_code=400, detail=f"Unsupported file type. Supported: {supported}")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="File is empty")

    try:
        doc = await service.upload_document(
            company_id=scope,
            user_id=user.id,
            filename=file.filename,
            file_data=data,
            content_type=file.content_type,
            title=title,
            document_type=document_type,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"[RAG] upload failed: {e}")
        raise HTTPException(status_code=500, detail=f"Upload failed: {e}")
    return DocumentOut(**doc)


@router.get("/documents", response_model=list[DocumentOut], summary="List documents")
async def list_documents(
    user: HRUser,
    company_id: Optional[str] = None,
    status: Optional[DocumentStatus] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    scope = resolve_company_id(user, company_id)
    rows = await service.list_documents(scope, limit=limit, offset=offset, status=status.value if status else None)
    return [DocumentOut(**r) for r in rows]


@router.get("/documents/{doc_id}", response_model=DocumentOut, summary="Document detail")
async def get_document(doc_id: str, user: HRUser, company_id: Optional[str] = None):
    return DocumentOut(**await _get_owned_document(doc_id, user, company_id))


@router.post("/documents/{doc_id}/process", summary="Run the ingestion pipeline")
async def process_document(doc_id: str, user: HRUser, company_id: Optional[str] = None):
    """
    Extract → chunk → embed → upsert.

    With RAG_USE_QUEUE=true and Redis reachable the job is queued and
    {"status": "pending", "job_id"} is returned; otherwise it runs inline.
    A processed document is returned unchanged.
    """
    doc = await _get_owned_document(doc_id, user, company_id)
    if doc["status"] == DocumentStatus.PROCESSED.value:
        return DocumentOut(**doc)

    if tasks.use_queue() and tasks.is_queue_available():
        job_id = tasks.enqueue_process_document(doc_id)
        if job_id:
            await document_repository.update_status(doc_id, DocumentStatus.PENDING.value)
            logger.info(f"[RAG] queued {doc_id} as job {job_id}")
            return {"status": DocumentStatus.PENDING.value, "document_id": doc_id, "job_id": job_id}
        logger.warning("[RAG] enqueue failed, processing inline")

    try:
        return DocumentOut(**await service.process_document(doc_id))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/documents/process-pending", response_model=BatchProcessResponse, summary="Process all pending documents")
async def process_pending(user: HRUser, company_id: Optional[str] = None):
    scope = resolve_company_id(user, company_id)
    return BatchProcessResponse(**await service.process_company_documents(scope))


@router.post("/documents/{doc_id}/reprocess", response_model=DocumentOut, summary="Rebuild chunks and vectors")
async def reprocess_document(doc_id: str, user: HRUser, company_id: Optional[str] = None):
    await _get_owned_document(doc_id, user, company_id)
    try:
        return DocumentOut(**await service.reprocess_document(doc_id))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/documents/{doc_id}", summary="Delete a document")
async def delete_document(
    doc_id: str,
    user: Annotated[CurrentUser, Depends(require_role(COMPANY_ADMIN))],
    company_id: Optional[str] = None,
):
    doc = await _get_owned_document(doc_id, user, company_id)
    if not await service.delete_document(doc_id):
        raise HTTPException(status_code=404, detail="Document not found")
    await log_event(
        action="document_deleted",
        resource_type="document",
        resource_id=doc_id,
        user_id=user.id,
        user_email=user.email,
        user_role=user.role,
        company_id=doc["company_id"],
        details={"filename": doc["filename"]},
    )
    return {"deleted": doc_id}


@router.post("/search", response_model=SearchResponse, summary="Search company documents")
async def search(
    body: SearchRequest,
    user: Annotated[CurrentUser, Depends(require_role(EMPLOYEE))],
    company_id: Optional[str] = None,
):
    scope = resolve_company_id(user, company_id)
    hits = await service.search(body.query, scope, limit=body.limit, document_ids=body.document_ids)
    return SearchResponse(
        query=body.query,
        hits=hits,
        total=len(hits),
        context=service.generate_context(hits),
    )
