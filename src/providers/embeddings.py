"""
Text embeddings via the OpenAI embeddings API
"""
from typing import Optional, Protocol

import numpy as np
from openai import APIConnectionError, APIStatusError, AsyncOpenAI, RateLimitError

from src.utils.config import EmbeddingConfig
from src.utils.logger import logger


class Embedder(Protocol):
    async def embed(self, text: str) -> Optional[np.ndarray]:
        ...


class OpenAIEmbedder:
    """Generates embeddings with AsyncOpenAI; returns None when no vector could be produced"""

    def __init__(self, config: Optional[EmbeddingConfig] = None, client: Optional[AsyncOpenAI] = None):
        self.config = config or EmbeddingConfig()
        self.client = client or AsyncOpenAI(api_key=self.config.api_key, base_url=self.config.base_url)

    async def embed(self, text: str) -> Optional[np.ndarray]:
        if not text.strip():
            logger.warning("Cannot generate embedding for empty text")
            return None
        try:
            response = await self.client.embeddings.create(model=self.config.model, input=[text])
            return np.array(response.data[0].embedding)
        except (APIConnectionError, RateLimitError, APIStatusError) as e:
            logger.error(f"API error while generating embedding: {e}")
            return None
