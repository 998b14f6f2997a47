# services/embedding_service.py
import logging
from typing import List, Optional, Protocol

from openai import AsyncOpenAI, OpenAIError

from app.core.errors import EmbeddingServiceUnavailable
from app.core.settings import config_settings

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> List[float]: ...


class OpenAIEmbeddingProvider:
    """
    Embeds text with the OpenAI embeddings endpoint.

    Any missing credential or remote failure surfaces as
    EmbeddingServiceUnavailable; callers decide whether that is fatal.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else config_settings.OPENAI_API_KEY
        self.model = model or config_settings.EMBEDDING_MODEL
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise EmbeddingServiceUnavailable()
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def embed(self, text: str) -> List[float]:
        try:
            response = await self.client.embeddings.create(model=self.model, input=text)
        except OpenAIError as e:
            logger.error("Embedding request failed (model=%s): %s", self.model, e)
            raise EmbeddingServiceUnavailable() from e

        return list(response.data[0].embedding)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
