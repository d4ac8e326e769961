"""Sentence-bounded chunking for embeddings.

Text is split after runs of ``.``, ``!`` or ``?``. Sentences are accumulated
greedily; a chunk is flushed when the next sentence would push it past the
token budget. A sentence that alone exceeds the budget becomes its own
oversized chunk instead of being cut mid-sentence.

Each chunk is a contiguous slice of the source text (stripped of surrounding
whitespace), so joining chunks in order reproduces the text up to whitespace.
"""

import re
from dataclasses import dataclass
from typing import Callable

from advisory_engine.core.logging import get_logger

logger = get_logger(__name__)

# A sentence is a run of non-terminators plus its terminators, or a stray
# terminator run at the start of the text. Together the matches cover every
# character.
_SENTENCE = re.compile(r"[^.!?]+[.!?]*|[.!?]+")


@dataclass
class TextChunk:
    """A bounded segment of a document, the unit of embedding."""

    chunk_index: int
    text: str
    token_count: int
    start_char: int
    end_char: int


@dataclass
class _Sentence:
    start: int
    end: int
    tokens: int


def split_sentences(text: str) -> list[tuple[int, int]]:
    """Return (start, end) spans of sentences, skipping whitespace-only spans."""
    spans = []
    for match in _SENTENCE.finditer(text):
        if match.group().strip():
            spans.append((match.start(), match.end()))
    return spans


class Chunker:
    """Greedy sentence accumulator under a token budget."""

    def __init__(self, count_tokens: Callable[[str], int], max_tokens: int = 500):
        if max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {max_tokens}")
        self.count_tokens = count_tokens
        self.max_tokens = max_tokens

    def chunk(self, text: str, max_tokens: int | None = None) -> list[TextChunk]:
        """
        Split text into token-bounded chunks on sentence boundaries.

        Args:
            text: Extracted document text
            max_tokens: Override the configured budget

        Returns:
            Ordered list of chunks (empty for blank text)
        """
        budget = self.max_tokens if max_tokens is None else max_tokens
        if budget <= 0:
            raise ValueError(f"max_tokens must be positive, got {budget}")
        if not text or not text.strip():
            return []

        sentences = [
            _Sentence(start, end, self.count_tokens(text[start:end]))
            for start, end in split_sentences(text)
        ]

        chunks: list[TextChunk] = []
        current: list[_Sentence] = []
        current_tokens = 0

        def flush() -> None:
            if not current:
                return
            start, end = current[0].start, current[-1].end
            raw = text[start:end]
            # Keep offsets pointing at the stripped text
            lead = len(raw) - len(raw.lstrip())
            trail = len(raw) - len(raw.rstrip())
            chunks.append(
                TextChunk(
                    chunk_index=len(chunks),
                    text=raw.strip(),
                    token_count=current_tokens,
                    start_char=start + lead,
                    end_char=end - trail,
                )
            )

        for sentence in sentences:
            if current and current_tokens + sentence.tokens > budget:
                flush()
                current = []
                current_tokens = 0
            current.append(sentence)
            current_tokens += sentence.tokens

        flush()

        logger.debug(
            f"Chunked {len(text)} chars into {len(chunks)} chunks "
            f"({len(sentences)} sentences, budget={budget})"
        )
        return chunks
