"""Error taxonomy shared by the ingestion pipeline, store and sync engine."""


class AdvisoryError(Exception):
    """Base class for all advisory engine errors."""


class ExtractionError(AdvisoryError):
    """Raised inside an extractor when a file cannot be turned into text.

    Never escapes the Text Extractor; it is converted into placeholder text.
    """

    def __init__(self, message: str, extractor: str | None = None):
        super().__init__(message)
        self.extractor = extractor


class UnsupportedTypeError(ExtractionError):
    """No extractor is registered for the declared MIME type."""


class CorruptFileError(ExtractionError):
    """The file claims a supported type but could not be parsed."""


class ProviderError(AdvisoryError):
    """An embedding or LLM provider call failed (timeout, rate limit, auth...)."""

    def __init__(self, message: str, provider: str | None = None, retryable: bool = False):
        super().__init__(message)
        self.provider = provider
        self.retryable = retryable


class EmbeddingBatchError(ProviderError):
    """One or more chunks of a document could not be embedded."""

    def __init__(self, failed: dict[int, str], total: int):
        self.failed = failed
        self.total = total
        first_index = min(failed)
        super().__init__(
            f"Embedding failed for {len(failed)}/{total} chunks "
            f"(first failure at chunk {first_index}: {failed[first_index]})",
            provider="openai",
        )


class StorageError(AdvisoryError):
    """A document or chunk write against the persistent store failed."""


class QuotaExceededError(AdvisoryError):
    """The local state cache is over its size quota."""


class AuthError(AdvisoryError):
    """Missing or invalid bearer token."""
