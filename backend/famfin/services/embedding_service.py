"""
Text embeddings for document search.

Uses the OpenAI embeddings API when configured. Without a key, a local
hashed bag-of-words embedding is used so search still works offline.
"""

import hashlib
import logging
import math
import re
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from famfin.config import get_settings

logger = logging.getLogger(__name__)

MOCK_DIMENSIONS = 256

_TOKEN = re.compile(r"[a-z0-9]+")


def tokenize(text: str) -> list[str]:
    return _TOKEN.findall(text.lower())


def hashed_embedding(text: str, dimensions: int = MOCK_DIMENSIONS) -> list[float]:
    """Deterministic unit-length embedding from hashed word counts."""
    vector = [0.0] * dimensions
    for token in tokenize(text):
        digest = hashlib.md5(token.encode()).digest()
        index = int.from_bytes(digest[:4], "big") % dimensions
        vector[index] += 1.0

    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        return vector
    return [v / norm for v in vector]


def cosine_similarity(vec1: list[float], vec2: list[float]) -> float:
    """Cosine similarity; 0 for empty or mismatched vectors."""
    if not vec1 or not vec2 or len(vec1) != len(vec2):
        return 0.0
    dot = sum(a * b for a, b in zip(vec1, vec2))
    norm1 = math.sqrt(sum(a * a for a in vec1))
    norm2 = math.sqrt(sum(b * b for b in vec2))
    return dot / (norm1 * norm2 + 1e-10)


class EmbeddingService:
    """Embeds text with OpenAI, or locally in mock mode."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        settings = get_settings()
        self.api_key = api_key or settings.openai_api_key
        self.model = model or settings.embedding_model
        self.is_mock = not self.api_key
        self.client = None if self.is_mock else AsyncOpenAI(api_key=self.api_key)

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_many([text]))[0]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """
        Embed a batch of texts, preserving order.

        Raises:
            OpenAIError: If the API call fails
        """
        if not texts:
            return []
        if self.is_mock:
            return [hashed_embedding(t) for t in texts]

        try:
            response = await self.client.embeddings.create(model=self.model, input=texts)
        except OpenAIError:
            logger.exception("Embedding request failed (%d texts)", len(texts))
            raise

        return [item.embedding for item in sorted(response.data, key=lambda d: d.index)]
