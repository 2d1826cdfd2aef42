"""
Document storage, text chunking and semantic search.

Files are kept on local disk under the documents directory. Processing a
document extracts its text, splits it into paragraph chunks and stores an
embedding per chunk; search ranks chunks by cosine similarity.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from openai import OpenAIError
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.config import get_settings
from famfin.models.document import Document, DocumentChunk, EntityType
from famfin.services.embedding_service import EmbeddingService, cosine_similarity

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {
    "pdf", "png", "jpg", "jpeg", "gif", "webp",
    "txt", "md", "csv", "json",
    "doc", "docx", "xls", "xlsx",
}

# Extensions whose bytes are decoded and indexed as text
TEXT_EXTENSIONS = {"txt", "md", "csv", "json"}

MAX_CHUNK_CHARS = 2000
DEFAULT_SEARCH_THRESHOLD = 0.7
DEFAULT_SEARCH_LIMIT = 5


class DocumentValidationError(ValueError):
    """Upload rejected (type or size)."""


@dataclass
class SearchHit:
    document: Document
    chunk: DocumentChunk
    similarity: float


def file_extension(filename: str) -> str:
    return Path(filename).suffix.lower().lstrip(".")


def build_storage_path(user_id: str, filename: str) -> str:
    """Relative path "<user_id>/<timestamp>-<uuid>.<ext>"."""
    ext = file_extension(filename) or "bin"
    return f"{user_id}/{int(time.time() * 1000)}-{uuid.uuid4().hex}.{ext}"


def chunk_text(text: str, max_chars: int = MAX_CHUNK_CHARS) -> list[str]:
    """
    Split text into chunks of at most max_chars.

    Paragraphs (blank-line separated) are packed together; a paragraph
    longer than max_chars is split on whitespace, or hard-split when it has
    none.
    """
    paragraphs = [p.strip() for p in text.replace("\r\n", "\n").split("\n\n")]
    chunks: list[str] = []
    current = ""

    for paragraph in filter(None, paragraphs):
        for piece in _split_long(paragraph, max_chars):
            candidate = f"{current}\n\n{piece}" if current else piece
            if len(candidate) <= max_chars:
                current = candidate
            else:
                chunks.append(current)
                current = piece

    if current:
        chunks.append(current)
    return chunks


def _split_long(paragraph: str, max_chars: int) -> list[str]:
    pieces = []
    while len(paragraph) > max_chars:
        cut = paragraph.rfind(" ", 0, max_chars + 1)
        if cut <= 0:
            cut = max_chars
        pieces.append(paragraph[:cut].rstrip())
        paragraph = paragraph[cut:].lstrip()
    if paragraph:
        pieces.append(paragraph)
    return pieces


class DocumentService:
    """
    Document operations for one database session.

    Storage directory and embedding service default to the configured ones.
    """

    def __init__(
        self,
        session: AsyncSession,
        storage_dir: Optional[Path] = None,
        embeddings: Optional[EmbeddingService] = None,
    ):
        settings = get_settings()
        self.session = session
        self.storage_dir = storage_dir or settings.documents_dir
        self.max_upload_bytes = settings.max_upload_bytes
        self.embeddings = embeddings or EmbeddingService()

    def path_for(self, document: Document) -> Path:
        return self.storage_dir / document.storage_path

    async def save_upload(
        self,
        user_id: str,
        filename: str,
        content: bytes,
        content_type: Optional[str],
        entity_type: EntityType,
        document_type: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        financial_year: Optional[str] = None,
        tags: Optional[list[str]] = None,
        linked_transaction_id: Optional[str] = None,
    ) -> Document:
        """
        Validate and store an uploaded file, then record it.

        Raises:
            DocumentValidationError: Unsupported extension, empty or oversized file
        """
        ext = file_extension(filename)
        if ext not in ALLOWED_EXTENSIONS:
            raise DocumentValidationError(f"File type '.{ext}' is not allowed")
        if not content:
            raise DocumentValidationError("File is empty")
        if len(content) > self.max_upload_bytes:
            limit_mb = self.max_upload_bytes // (1024 * 1024)
            raise DocumentValidationError(f"File exceeds the {limit_mb} MB limit")

        storage_path = build_storage_path(user_id, filename)
        target = self.storage_dir / storage_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

        document = Document(
            user_id=user_id,
            name=name or Path(filename).stem,
            original_filename=filename,
            storage_path=storage_path,
            file_type=content_type or "application/octet-stream",
            file_size=len(content),
            entity_type=entity_type,
            document_type=document_type,
            description=description,
            financial_year=financial_year,
            tags=tags or [],
            linked_transaction_id=linked_transaction_id,
        )
        self.session.add(document)
        await self.session.flush()

        logger.info("Stored document %s (%d bytes) at %s", document.id, len(content), storage_path)
        return document

    def read_file(self, document: Document) -> bytes:
        """
        Raises:
            FileNotFoundError: The stored file is missing
        """
        return self.path_for(document).read_bytes()

    async def delete_document(self, document: Document) -> None:
        """Remove the file (if still present), chunks and record."""
        path = self.path_for(document)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning("File for document %s already missing: %s", document.id, path)

        await self.session.execute(delete(DocumentChunk).where(DocumentChunk.document_id == document.id))
        await self.session.delete(document)
        await self.session.flush()

    def extract_text(self, document: Document) -> str:
        """
        Text to index for a document.

        Text files are decoded; anything else is described by its metadata.
        """
        parts = []
        if file_extension(document.original_filename) in TEXT_EXTENSIONS:
            try:
                parts.append(self.read_file(document).decode("utf-8", errors="replace"))
            except FileNotFoundError:
                logger.warning("File for document %s is missing, indexing metadata only", document.id)

        metadata = [
            document.name,
            document.document_type.replace("_", " "),
            document.description or "",
            f"Financial year {document.financial_year}" if document.financial_year else "",
            " ".join(document.tags or []),
            document.original_filename,
        ]
        parts.append("\n".join(m for m in metadata if m))
        return "\n\n".join(p for p in parts if p.strip())

    async def process_document(self, document: Document) -> int:
        """
        (Re)build the chunks and embeddings of a document.

        Embedding failures are stored on the document and logged.

        Returns:
            Number of chunks stored
        """
        await self.session.execute(delete(DocumentChunk).where(DocumentChunk.document_id == document.id))

        chunks = chunk_text(self.extract_text(document))
        try:
            vectors = await self.embeddings.embed_many(chunks)
        except OpenAIError as e:
            document.is_processed = False
            document.processing_error = str(e)
            await self.session.flush()
            return 0

        for index, (content, vector) in enumerate(zip(chunks, vectors)):
            self.session.add(
                DocumentChunk(
                    document_id=document.id,
                    chunk_index=index,
                    content=content,
                    embedding=vector,
                    token_count=len(content.split()),
                )
            )

        document.is_processed = True
        document.processing_error = None
        await self.session.flush()

        logger.info("Processed document %s into %d chunks", document.id, len(chunks))
        return len(chunks)

    async def search(
        self,
        user_id: str,
        query: str,
        threshold: float = DEFAULT_SEARCH_THRESHOLD,
        limit: int = DEFAULT_SEARCH_LIMIT,
        entity_type: Optional[EntityType] = None,
        document_type: Optional[str] = None,
    ) -> list[SearchHit]:
        """Chunks most similar to the query, best first, above threshold."""
        query_vector = await self.embeddings.embed(query)

        stmt = (
            select(DocumentChunk, Document)
            .join(Document, DocumentChunk.document_id == Document.id)
            .where(Document.user_id == user_id)
        )
        if entity_type:
            stmt = stmt.where(Document.entity_type == entity_type)
        if document_type:
            stmt = stmt.where(Document.document_type == document_type)

        result = await self.session.execute(stmt)

        hits = []
        for chunk, document in result.all():
            similarity = cosine_similarity(query_vector, chunk.embedding)
            if similarity >= threshold:
                hits.append(SearchHit(document=document, chunk=chunk, similarity=round(similarity, 4)))

        hits.sort(key=lambda h: h.similarity, reverse=True)
        return hits[:limit]

    async def stats(self, user_id: str) -> dict[str, Any]:
        """Document counts overall, by entity, by type, and processed."""
        by_entity = await self.session.execute(
            select(Document.entity_type, func.count())
            .where(Document.user_id == user_id)
            .group_by(Document.entity_type)
        )
        by_type = await self.session.execute(
            select(Document.document_type, func.count())
            .where(Document.user_id == user_id)
            .group_by(Document.document_type)
        )
        processed = await self.session.execute(
            select(func.count()).where(Document.user_id == user_id, Document.is_processed.is_(True))
        )

        entity_counts = {entity.value: count for entity, count in by_entity.all()}
        return {
            "total": sum(entity_counts.values()),
            "by_entity": entity_counts,
            "by_type": dict(by_type.all()),
            "processed": processed.scalar_one(),
        }
