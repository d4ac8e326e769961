"""OpenAI embeddings generation with validation, retry and bounded parallelism."""

import asyncio

import openai
from openai import AsyncOpenAI
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from advisory_engine.core.config import Settings
from advisory_engine.core.errors import EmbeddingBatchError, ProviderError
from advisory_engine.core.logging import get_logger

logger = get_logger(__name__)

# Provider errors worth another attempt
_TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, ProviderError):
        return exc.retryable
    return isinstance(exc, _TRANSIENT_ERRORS)


class EmbeddingGenerator:
    """Embeds chunk text one call per chunk.

    Calls for a document run concurrently up to ``concurrency`` at a time.
    Transient provider errors are retried with exponential backoff; a chunk
    that still fails is reported, never dropped.
    """

    def __init__(
        self,
        client: AsyncOpenAI | None,
        model: str = "text-embedding-3-small",
        dimension: int = 1536,
        concurrency: int = 4,
        max_attempts: int = 3,
        backoff_min: float = 1.0,
        backoff_max: float = 10.0,
    ):
        self.client = client
        self.model = model
        self.dimension = dimension
        self.concurrency = max(1, concurrency)
        self.max_attempts = max(1, max_attempts)
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmbeddingGenerator":
        client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY) if settings.OPENAI_API_KEY else None
        return cls(
            client=client,
            model=settings.EMBEDDING_MODEL,
            dimension=settings.EMBEDDING_DIM,
            concurrency=settings.EMBEDDING_CONCURRENCY,
            max_attempts=settings.EMBEDDING_MAX_ATTEMPTS,
            backoff_min=settings.EMBEDDING_BACKOFF_MIN,
            backoff_max=settings.EMBEDDING_BACKOFF_MAX,
        )

    async def _embed_once(self, text: str) -> list[float]:
        if self.client is None:
            raise ProviderError("OPENAI_API_KEY not configured for embeddings", provider="openai")

        response = await self.client.embeddings.create(model=self.model, input=text)
        embedding = response.data[0].embedding

        if len(embedding) != self.dimension:
            raise ProviderError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {len(embedding)}",
                provider="openai",
            )
        return embedding

    async def embed(self, text: str) -> list[float]:
        """
        Embed one chunk of text.

        Args:
            text: Chunk text

        Returns:
            Embedding vector of length ``dimension``

        Raises:
            ProviderError: If the call fails after all attempts
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=1, min=self.backoff_min, max=self.backoff_max),
                retry=retry_if_exception(_is_transient),
                before_sleep=lambda state: logger.warning(
                    f"Embedding attempt {state.attempt_number} failed "
                    f"({state.outcome.exception()}); retrying in {state.next_action.sleep:.1f}s"
                ),
                reraise=True,
            ):
                with attempt:
                    return await self._embed_once(text)
        except ProviderError:
            raise
        except RetryError as e:
            raise ProviderError(f"Embedding retries exhausted: {e}", provider="openai") from e
        except openai.OpenAIError as e:
            raise ProviderError(f"Embedding request failed: {e}", provider="openai") from e
        # AsyncRetrying always returns or raises above
        raise ProviderError("Embedding produced no result", provider="openai")

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """
        Embed every chunk of a document.

        Args:
            texts: Chunk texts in chunk order

        Returns:
            Embeddings in the same order

        Raises:
            EmbeddingBatchError: If any chunk failed, listing every failed index
        """
        if not texts:
            return []

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(text: str) -> list[float]:
            async with semaphore:
                return await self.embed(text)

        results = await asyncio.gather(*[_bounded(t) for t in texts], return_exceptions=True)

        failed: dict[int, str] = {}
        embeddings: list[list[float]] = []
        for i, result in enumerate(results):
            if isinstance(result, BaseException):
                failed[i] = str(result)
            else:
                embeddings.append(result)

        if failed:
            logger.error(
                f"Embedding failed for {len(failed)}/{len(texts)} chunks",
                extra={"extra_data": {"model": self.model, "failed": sorted(failed)}},
            )
            raise EmbeddingBatchError(failed, len(texts))

        logger.info(
            f"Generated {len(embeddings)} embeddings using {self.model}",
            extra={"extra_data": {"model": self.model, "count": len(embeddings)}},
        )
        return embeddings
