"""
Document API endpoints.

Handles uploads, metadata, downloads, processing into searchable chunks
and semantic search.
"""

import datetime as dt
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.api.deps import get_user_id, validate_financial_year
from famfin.database import get_session
from famfin.models import Document, EntityType, Transaction
from famfin.services.document_service import (
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_SEARCH_THRESHOLD,
    DocumentService,
    DocumentValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


# === Pydantic Models ===


class DocumentResponse(BaseModel):
    id: str
    name: str
    original_filename: str
    file_type: str
    file_size: int
    entity_type: EntityType
    document_type: str
    description: Optional[str]
    financial_year: Optional[str]
    linked_transaction_id: Optional[str]
    tags: list[str]
    is_processed: bool
    processing_error: Optional[str]
    created_at: dt.datetime
    updated_at: Optional[dt.datetime]

    class Config:
        from_attributes = True


class DocumentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    entity_type: Optional[EntityType] = None
    document_type: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    financial_year: Optional[str] = None
    linked_transaction_id: Optional[str] = None
    tags: Optional[list[str]] = None


class ProcessResponse(BaseModel):
    document_id: str
    chunks: int
    is_processed: bool
    processing_error: Optional[str]


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    threshold: float = Field(DEFAULT_SEARCH_THRESHOLD, ge=0, le=1)
    limit: int = Field(DEFAULT_SEARCH_LIMIT, ge=1, le=50)
    entity_type: Optional[EntityType] = None
    document_type: Optional[str] = None


class SearchResult(BaseModel):
    document_id: str
    document_name: str
    document_type: str
    entity_type: EntityType
    financial_year: Optional[str]
    chunk_index: int
    content: str
    similarity: float


class StatsResponse(BaseModel):
    total: int
    by_entity: dict[str, int]
    by_type: dict[str, int]
    processed: int


# === Dependencies and helpers ===


def get_document_service(session: AsyncSession = Depends(get_session)) -> DocumentService:
    return DocumentService(session)


async def get_document_or_404(session: AsyncSession, document_id: str, user_id: str) -> Document:
    document = await session.get(Document, document_id)
    if not document or document.user_id != user_id:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


async def validate_linked_transaction(session: AsyncSession, transaction_id: str, user_id: str) -> None:
    transaction = await session.get(Transaction, transaction_id)
    if not transaction or transaction.user_id != user_id:
        raise HTTPException(status_code=400, detail="Linked transaction not found")


def parse_tags(tags: Optional[str]) -> list[str]:
    """Comma separated form value to a clean tag list."""
    return [t.strip() for t in (tags or "").split(",") if t.strip()]


# === Endpoints ===


@router.post("/upload", response_model=DocumentResponse, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    entity_type: EntityType = Form(EntityType.PERSONAL),
    document_type: str = Form("other"),
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    financial_year: Optional[str] = Form(None),
    tags: Optional[str] = Form(None, description="Comma separated"),
    linked_transaction_id: Optional[str] = Form(None),
    process: bool = Form(True),
    service: DocumentService = Depends(get_document_service),
    user_id: str = Depends(get_user_id),
):
    """
    Upload a document.

    The file is stored under the documents directory and, unless
    process=false, indexed for search straight away.
    """
    if financial_year:
        validate_financial_year(financial_year)
    if linked_transaction_id:
        await validate_linked_transaction(service.session, linked_transaction_id, user_id)

    content = await file.read()
    try:
        document = await service.save_upload(
            user_id=user_id,
            filename=file.filename or "upload",
            content=content,
            content_type=file.content_type,
            entity_type=entity_type,
            document_type=document_type,
            name=name,
            description=description,
            financial_year=financial_year,
            tags=parse_tags(tags),
            linked_transaction_id=linked_transaction_id,
        )
    except DocumentValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if process:
        await service.process_document(document)
    await service.session.refresh(document)
    return document


@router.get("/", response_model=list[DocumentResponse])
async def list_documents(
    entity_type: Optional[EntityType] = Query(None),
    document_type: Optional[str] = Query(None),
    financial_year: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Search name or description"),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    query = select(Document).where(Document.user_id == user_id)
    if entity_type:
        query = query.where(Document.entity_type == entity_type)
    if document_type:
        query = query.where(Document.document_type == document_type)
    if financial_year:
        query = query.where(Document.financial_year == financial_year)
    if search:
        pattern = f"%{search}%"
        query = query.where(Document.name.ilike(pattern) | Document.description.ilike(pattern))

    result = await session.execute(query.order_by(Document.created_at.desc()))
    return result.scalars().all()


@router.get("/stats", response_model=StatsResponse)
async def document_stats(
    service: DocumentService = Depends(get_document_service),
    user_id: str = Depends(get_user_id),
):
    return await service.stats(user_id)


@router.post("/search", response_model=list[SearchResult])
async def search_documents(
    request: SearchRequest,
    service: DocumentService = Depends(get_document_service),
    user_id: str = Depends(get_user_id),
):
    """Chunks most similar to the query, best first."""
    hits = await service.search(
        user_id,
        request.query,
        threshold=request.threshold,
        limit=request.limit,
        entity_type=request.entity_type,
        document_type=request.document_type,
    )
    return [
        SearchResult(
            document_id=hit.document.id,
            document_name=hit.document.name,
            document_type=hit.document.document_type,
            entity_type=hit.document.entity_type,
            financial_year=hit.document.financial_year,
            chunk_index=hit.chunk.chunk_index,
            content=hit.chunk.content,
            similarity=hit.similarity,
        )
        for hit in hits
    ]


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    return await get_document_or_404(session, document_id, user_id)


@router.put("/{document_id}", response_model=DocumentResponse)
async def update_document(
    document_id: str,
    request: DocumentUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    document = await get_document_or_404(session, document_id, user_id)
    fields = request.model_dump(exclude_unset=True)
    if fields.get("financial_year"):
        validate_financial_year(fields["financial_year"])
    if fields.get("linked_transaction_id"):
        await validate_linked_transaction(session, fields["linked_transaction_id"], user_id)
    for key, value in fields.items():
        setattr(document, key, value)
    await session.flush()
    await session.refresh(document)
    return document


@router.delete("/{document_id}", status_code=204)
async def delete_document(
    document_id: str,
    service: DocumentService = Depends(get_document_service),
    user_id: str = Depends(get_user_id),
):
    """Delete the stored file, its chunks and the record."""
    document = await get_document_or_404(service.session, document_id, user_id)
    await service.delete_document(document)


@router.get("/{document_id}/download")
async def download_document(
    document_id: str,
    service: DocumentService = Depends(get_document_service),
    user_id: str = Depends(get_user_id),
):
    document = await get_document_or_404(service.session, document_id, user_id)
    try:
        content = service.read_file(document)
    except FileNotFoundError:
        logger.error("Stored file missing for document %s", document.id)
        raise HTTPException(status_code=404, detail="Stored file not found")

    return Response(
        content=content,
        media_type=document.file_type,
        headers={"Content-Disposition": f'attachment; filename="{document.original_filename}"'},
    )


@router.post("/{document_id}/process", response_model=ProcessResponse)
async def process_document(
    document_id: str,
    service: DocumentService = Depends(get_document_service),
    user_id: str = Depends(get_user_id),
):
    """Rebuild the document's search chunks."""
    document = await get_document_or_404(service.session, document_id, user_id)
    chunks = await service.process_document(document)
    return ProcessResponse(
        document_id=document.id,
        chunks=chunks,
        is_processed=document.is_processed,
        processing_error=document.processing_error,
    )
