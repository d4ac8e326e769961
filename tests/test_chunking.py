"""Tests for sentence-bounded chunking and token counting."""

from unittest.mock import patch

import pytest

from advisory_engine.core.chunking import Chunker, split_sentences
from advisory_engine.core.tokens import TokenCounter, estimate_tokens
from tests.fakes.fake_providers import make_byte_encoding


def words(text: str) -> int:
    return len(text.split())


def normalize(text: str) -> str:
    return "".join(text.split())


SAMPLE = (
    "Our customers want faster onboarding. Support tickets doubled in March! "
    "Can we automate the account setup? The pilot with Acme starts in May. "
    "Finance approved a budget of 40k for tooling. "
    "A long sentence that goes on and on about every single requirement the team "
    "collected during discovery without ever pausing for breath or punctuation "
    "until it finally ends here. Short one."
)


def test_split_sentences_on_terminators():
    spans = split_sentences("One. Two! Three? Four")
    sentences = ["One. Two! Three? Four"[s:e].strip() for s, e in spans]
    assert sentences == ["One.", "Two!", "Three?", "Four"]


def test_blank_text_has_no_chunks():
    chunker = Chunker(words, max_tokens=10)
    assert chunker.chunk("") == []
    assert chunker.chunk("   \n\t ") == []


def test_short_text_is_one_chunk():
    text = " ".join(["word"] * 50) + "."
    chunks = Chunker(words, max_tokens=500).chunk(text)

    assert len(chunks) == 1
    assert chunks[0].text == text
    assert chunks[0].chunk_index == 0


@pytest.mark.parametrize("budget", [5, 8, 12, 30, 1000])
def test_chunks_reconstruct_text_modulo_whitespace(budget):
    chunks = Chunker(words, max_tokens=budget).chunk(SAMPLE)

    assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
    assert normalize("".join(c.text for c in chunks)) == normalize(SAMPLE)
    for c in chunks:
        assert SAMPLE[c.start_char : c.end_char] == c.text


@pytest.mark.parametrize("budget", [5, 8, 12, 30])
def test_token_budget_respected_except_single_long_sentence(budget):
    chunker = Chunker(words, max_tokens=budget)
    chunks = chunker.chunk(SAMPLE)

    for c in chunks:
        assert c.token_count == words(c.text)
        if c.token_count > budget:
            # Only a lone oversized sentence may exceed the budget
            assert len(split_sentences(c.text)) == 1


def test_oversized_sentence_kept_whole():
    long_sentence = " ".join(["requirement"] * 20) + "."
    text = f"Intro. {long_sentence} Outro."
    chunks = Chunker(words, max_tokens=5).chunk(text)

    assert [c.text for c in chunks] == ["Intro.", long_sentence, "Outro."]
    assert chunks[1].token_count == 20


def test_greedy_accumulation_flushes_before_overflow():
    text = "a b c. d e. f g h i. j."
    chunks = Chunker(words, max_tokens=5).chunk(text)

    assert [c.text for c in chunks] == ["a b c. d e.", "f g h i. j."]
    assert [c.token_count for c in chunks] == [5, 5]


def test_max_tokens_override():
    text = "One two. Three four. Five six."
    chunker = Chunker(words, max_tokens=100)
    assert len(chunker.chunk(text)) == 1
    assert len(chunker.chunk(text, max_tokens=2)) == 3


def test_invalid_budget_rejected():
    with pytest.raises(ValueError):
        Chunker(words, max_tokens=0)


@pytest.mark.parametrize("override", [0, -5])
def test_invalid_override_rejected(override):
    chunker = Chunker(words, max_tokens=100)
    with pytest.raises(ValueError, match="max_tokens must be positive"):
        chunker.chunk("One two. Three four.", max_tokens=override)


def test_estimate_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abc") == 1
    assert estimate_tokens("a" * 41) == 11


def test_token_counter_falls_back_when_encoding_unavailable():
    with patch("advisory_engine.core.tokens.tiktoken.get_encoding", side_effect=OSError("offline")) as mock_get:
        counter = TokenCounter("cl100k_base")
        assert counter("a" * 40) == 10
        assert counter.count("a" * 8) == 2
        # Load is attempted once
        assert mock_get.call_count == 1


def test_token_counter_uses_encoding():
    class FakeEncoding:
        def encode(self, text, **kwargs):
            return text.split()

    with patch("advisory_engine.core.tokens.tiktoken.get_encoding", return_value=FakeEncoding()):
        counter = TokenCounter()
        assert counter("one two three") == 3
        assert counter("") == 0


def test_special_token_text_is_counted_as_plain_text():
    text = "User said hello.<|endoftext|> Assistant replied."
    with patch("advisory_engine.core.tokens.tiktoken.get_encoding", return_value=make_byte_encoding()):
        counter = TokenCounter()
        assert counter(text) == len(text.encode("utf-8"))

        chunks = Chunker(counter, max_tokens=30).chunk(text)

    assert "<|endoftext|>" in "".join(c.text for c in chunks)
