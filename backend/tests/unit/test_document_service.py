"""
Unit tests for document chunking, embeddings and the document service.
"""

import math

import pytest
from openai import OpenAIError

from famfin.config import get_settings
from famfin.models import EntityType
from famfin.services.document_service import DocumentService, DocumentValidationError, chunk_text
from famfin.services.embedding_service import EmbeddingService, cosine_similarity, hashed_embedding

USER_ID = get_settings().default_user_id


class FailingEmbeddings(EmbeddingService):
    async def embed_many(self, texts):
        raise OpenAIError("embedding backend unavailable")


class TestChunkText:
    """Tests for splitting text into search chunks."""

    def test_empty_text(self):
        assert chunk_text("") == []
        assert chunk_text("\n\n  \n\n") == []

    def test_short_paragraphs_are_packed(self):
        assert chunk_text("First paragraph.\n\nSecond paragraph.") == ["First paragraph.\n\nSecond paragraph."]

    def test_long_paragraph_split_on_whitespace(self):
        """Test no chunk exceeds the limit and no words are lost."""
        text = " ".join(f"word{i}" for i in range(1000))

        chunks = chunk_text(text, max_chars=2000)

        assert len(chunks) > 1
        assert all(len(c) <= 2000 for c in chunks)
        assert " ".join(chunks).split() == text.split()

    def test_hard_split_without_whitespace(self):
        chunks = chunk_text("x" * 4500, max_chars=2000)

        assert [len(c) for c in chunks] == [2000, 2000, 500]

    def test_paragraphs_start_new_chunk_when_full(self):
        text = "a" * 1500 + "\n\n" + "b" * 1500

        chunks = chunk_text(text, max_chars=2000)

        assert chunks == ["a" * 1500, "b" * 1500]


class TestEmbeddings:
    """Tests for the offline embedding and similarity helpers."""

    def test_hashed_embedding_is_unit_length(self):
        vector = hashed_embedding("Officeworks receipt for a monitor")

        assert len(vector) == 256
        assert math.sqrt(sum(v * v for v in vector)) == pytest.approx(1.0)

    def test_hashed_embedding_is_deterministic(self):
        assert hashed_embedding("dividend statement") == hashed_embedding("Dividend Statement!")

    def test_empty_text_embeds_to_zero_vector(self):
        assert not any(hashed_embedding(""))

    def test_cosine_similarity(self):
        a = hashed_embedding("trust distribution minutes")
        b = hashed_embedding("private health insurance")

        assert cosine_similarity(a, a) == pytest.approx(1.0, abs=1e-6)
        assert cosine_similarity(a, b) < 0.5
        assert cosine_similarity([], a) == 0
        assert cosine_similarity([1.0], [1.0, 0.0]) == 0

    @pytest.mark.asyncio
    async def test_mock_mode_without_api_key(self):
        service = EmbeddingService()

        assert service.is_mock is True
        assert await service.embed_many([]) == []
        assert await service.embed("hello") == hashed_embedding("hello")


class TestDocumentService:
    """Tests for storing, indexing and searching documents."""

    @pytest.fixture
    def service(self, test_session, tmp_path):
        return DocumentService(test_session, storage_dir=tmp_path)

    @pytest.mark.asyncio
    async def test_save_upload_writes_file(self, service, tmp_path):
        document = await service.save_upload(
            USER_ID,
            "receipt.txt",
            b"Officeworks monitor 349.00",
            "text/plain",
            EntityType.PERSONAL,
            "receipt",
            tags=["wfh"],
        )

        assert document.name == "receipt"
        assert document.file_size == 26
        assert document.storage_path.startswith(f"{USER_ID}/")
        assert (tmp_path / document.storage_path).read_bytes() == b"Officeworks monitor 349.00"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "filename,content,message",
        [
            ("malware.exe", b"MZ", "not allowed"),
            ("empty.txt", b"", "empty"),
        ],
    )
    async def test_save_upload_rejects(self, service, filename, content, message):
        with pytest.raises(DocumentValidationError, match=message):
            await service.save_upload(USER_ID, filename, content, None, EntityType.PERSONAL, "other")

    @pytest.mark.asyncio
    async def test_process_and_search(self, service):
        """Test processed text can be found again by similar wording."""
        document = await service.save_upload(
            USER_ID,
            "dividends.txt",
            b"BHP dividend statement franking credits 2024",
            "text/plain",
            EntityType.TRUST,
            "dividend_statement",
        )

        chunks = await service.process_document(document)
        hits = await service.search(USER_ID, "BHP dividend statement franking credits", threshold=0.5)

        assert chunks == 1
        assert document.is_processed is True
        assert hits[0].document.id == document.id
        assert hits[0].chunk.chunk_index == 0

    @pytest.mark.asyncio
    async def test_search_filters_by_entity(self, service):
        document = await service.save_upload(
            USER_ID, "note.txt", b"rental property insurance", "text/plain", EntityType.HOUSEHOLD, "other"
        )
        await service.process_document(document)

        hits = await service.search(
            USER_ID, "rental property insurance", threshold=0.1, entity_type=EntityType.TRUST
        )

        assert hits == []

    @pytest.mark.asyncio
    async def test_embedding_failure_recorded(self, test_session, tmp_path):
        service = DocumentService(test_session, storage_dir=tmp_path, embeddings=FailingEmbeddings())
        document = await service.save_upload(
            USER_ID, "note.txt", b"some text", "text/plain", EntityType.PERSONAL, "other"
        )

        chunks = await service.process_document(document)

        assert chunks == 0
        assert document.is_processed is False
        assert "unavailable" in document.processing_error

    @pytest.mark.asyncio
    async def test_stats_and_delete(self, service, tmp_path):
        first = await service.save_upload(
            USER_ID, "a.txt", b"alpha", "text/plain", EntityType.PERSONAL, "receipt"
        )
        await service.save_upload(USER_ID, "b.txt", b"beta", "text/plain", EntityType.TRUST, "receipt")
        await service.process_document(first)

        stats = await service.stats(USER_ID)

        assert stats["total"] == 2
        assert stats["by_entity"] == {"personal": 1, "trust": 1}
        assert stats["by_type"] == {"receipt": 2}
        assert stats["processed"] == 1

        await service.delete_document(first)

        assert not (tmp_path / first.storage_path).exists()
        assert (await service.stats(USER_ID))["total"] == 1
