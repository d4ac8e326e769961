"""Token counting for chunk budgets.

Uses tiktoken with the encoding of the embedding model. If the encoding
cannot be loaded (tiktoken fetches BPE files on first use), counts fall back
to the ~4 characters per token estimate. Counts are a budget heuristic, not
an exact contract.
"""

import math

import tiktoken

from advisory_engine.core.logging import get_logger

logger = get_logger(__name__)

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Estimate token count from character length."""
    if not text:
        return 0
    return max(1, math.ceil(len(text) / CHARS_PER_TOKEN))


class TokenCounter:
    """Counts tokens with a lazily loaded tiktoken encoding."""

    def __init__(self, encoding_name: str = "cl100k_base"):
        self.encoding_name = encoding_name
        self._encoder = None
        self._load_failed = False

    def _get_encoder(self):
        if self._encoder is None and not self._load_failed:
            try:
                self._encoder = tiktoken.get_encoding(self.encoding_name)
            except Exception as e:
                self._load_failed = True
                logger.warning(
                    f"tiktoken encoding {self.encoding_name} unavailable ({e}); "
                    "using character estimate"
                )
        return self._encoder

    def count(self, text: str) -> int:
        """Count tokens in text.

        Args:
            text: Text to count tokens for

        Returns:
            Token count
        """
        if not text:
            return 0
        encoder = self._get_encoder()
        if encoder is None:
            return estimate_tokens(text)
        # Special-token strings in user text are counted as plain text
        return len(encoder.encode(text, disallowed_special=()))

    __call__ = count
