"""Mock provider responses and an offline tokenizer encoding."""

from unittest.mock import MagicMock

import tiktoken


def make_embedding_response(vector: list[float]) -> MagicMock:
    """Mock OpenAI embeddings response holding one vector."""
    item = MagicMock()
    item.embedding = vector
    response = MagicMock()
    response.data = [item]
    return response


def make_message_response(text: str) -> MagicMock:
    """Mock Anthropic messages response with a single text block."""
    block = MagicMock()
    block.text = text
    response = MagicMock()
    response.content = [block]
    return response


def make_byte_encoding():
    """Offline tiktoken encoding: one token per byte, with <|endoftext|> registered."""
    return tiktoken.Encoding(
        name="test_bytes",
        pat_str=r"\S+|\s+",
        mergeable_ranks={bytes([i]): i for i in range(256)},
        special_tokens={"<|endoftext|>": 256},
    )
