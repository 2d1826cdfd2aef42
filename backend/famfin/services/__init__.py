"""
Business logic services for the family finance assistant.
"""

from famfin.services.ai_service import AIService
from famfin.services.document_service import DocumentService
from famfin.services.embedding_service import EmbeddingService
from famfin.services.xero_client import XeroClient

__all__ = ["AIService", "DocumentService", "EmbeddingService", "XeroClient"]
