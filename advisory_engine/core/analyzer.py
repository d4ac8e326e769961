"""Document analysis: one LLM call per document with a heuristic fallback.

The analyzer never raises. Provider failures, unparsable responses and
responses missing required fields all degrade to ``heuristic_analysis``; text
below ``MIN_ANALYSIS_CHARS`` skips the provider entirely.
"""

import json
import re
from collections import Counter
from typing import Any, Literal

from anthropic import AsyncAnthropic
from pydantic import BaseModel, Field, ValidationError, field_validator

from advisory_engine.core.config import Settings
from advisory_engine.core.logging import get_logger

logger = get_logger(__name__)

MIN_ANALYSIS_CHARS = 10
MAX_KEY_POINTS = 5
MAX_KEYWORDS = 10
MAX_INSIGHTS = 5
NEUTRAL_RELEVANCE = 0.5

TOO_SHORT_SUMMARY = "Document is too short or empty to analyze."
FALLBACK_KEY_POINT = "Document ready for AI advisor review."

STOP_WORDS = frozenset(
    {
        "that", "this", "with", "from", "have", "been", "were", "their",
        "would", "could", "should", "about", "after", "before", "through",
        "where", "which", "while", "within", "without", "because", "between",
        "under", "over", "during", "since", "until", "against", "among",
        "throughout", "despite", "towards", "upon", "does", "doing", "done",
    }
)

_WORD = re.compile(r"\b[a-z]{4,}\b")


class Entities(BaseModel):
    people: list[str] = Field(default_factory=list)
    organizations: list[str] = Field(default_factory=list)
    dates: list[str] = Field(default_factory=list)
    amounts: list[str] = Field(default_factory=list)


class Keyword(BaseModel):
    word: str
    importance: float = Field(ge=0.0, le=1.0)


class Insight(BaseModel):
    type: str = "note"
    content: str
    importance: Literal["high", "medium", "low"] = "medium"


class DocumentAnalysis(BaseModel):
    """Structured analysis of one document."""

    summary: str
    key_points: list[str] = Field(default_factory=list, max_length=MAX_KEY_POINTS)
    entities: Entities = Field(default_factory=Entities)
    business_relevance: float = Field(ge=0.0, le=1.0)
    keywords: list[Keyword] = Field(default_factory=list, max_length=MAX_KEYWORDS)
    insights: list[Insight] = Field(default_factory=list, max_length=MAX_INSIGHTS)
    source: Literal["llm", "fallback", "too_short"] = "llm"


class _LLMAnalysis(BaseModel):
    """Shape the model is asked to return. Lenient on extras, strict on required fields."""

    summary: str = Field(min_length=1)
    key_points: list[str] = Field(min_length=1)
    entities: Entities = Field(default_factory=Entities)
    business_relevance: float = NEUTRAL_RELEVANCE
    keywords: list[Keyword] = Field(default_factory=list)
    insights: list[Insight] = Field(default_factory=list)

    @field_validator("business_relevance", mode="before")
    @classmethod
    def _clamp_relevance(cls, v: Any) -> float:
        try:
            value = float(v)
        except (TypeError, ValueError):
            return NEUTRAL_RELEVANCE
        return min(max(value, 0.0), 1.0)

    @field_validator("keywords", mode="before")
    @classmethod
    def _coerce_keywords(cls, v: Any) -> list:
        # Models sometimes return bare strings instead of word/importance objects
        if not isinstance(v, list):
            return []
        out = []
        for item in v:
            if isinstance(item, str):
                out.append({"word": item, "importance": NEUTRAL_RELEVANCE})
            elif isinstance(item, dict) and "word" in item:
                importance = item.get("importance", NEUTRAL_RELEVANCE)
                try:
                    importance = min(max(float(importance), 0.0), 1.0)
                except (TypeError, ValueError):
                    importance = NEUTRAL_RELEVANCE
                out.append({"word": str(item["word"]), "importance": importance})
        return out


ANALYSIS_PROMPT = """Analyze this business document and return strict JSON only, no prose.

Document name: {name}

Content:
{content}

Return exactly this JSON shape:
{{
  "summary": "2-3 sentence summary of the document",
  "key_points": ["1 to 5 key points"],
  "entities": {{
    "people": ["names of people"],
    "organizations": ["company or organization names"],
    "dates": ["dates mentioned"],
    "amounts": ["monetary amounts or figures"]
  }},
  "business_relevance": 0.0,
  "keywords": [{{"word": "keyword", "importance": 0.0}}],
  "insights": [{{"type": "opportunity|risk|recommendation|note", "content": "insight", "importance": "high|medium|low"}}]
}}

business_relevance and keyword importance are floats between 0 and 1. Return up to 10 keywords and up to 5 insights."""


def find_json_object(raw: str) -> str | None:
    """Return the first balanced ``{...}`` substring of ``raw``.

    Braces inside JSON string literals are ignored.
    """
    start = raw.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(raw)):
            ch = raw[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return raw[start : i + 1]
        # Unbalanced from this brace; try the next one
        start = raw.find("{", start + 1)
    return None


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> list[Keyword]:
    """Frequency-ranked keywords: words of 4+ letters minus stop words."""
    words = [w for w in _WORD.findall(text.lower()) if w not in STOP_WORDS]
    counts = Counter(words)
    return [
        Keyword(word=word.capitalize(), importance=min(count / 10, 1.0))
        for word, count in counts.most_common(limit)
    ]


def too_short_analysis() -> DocumentAnalysis:
    return DocumentAnalysis(
        summary=TOO_SHORT_SUMMARY,
        key_points=[],
        business_relevance=0.0,
        keywords=[],
        insights=[],
        source="too_short",
    )


def heuristic_analysis(text: str, document_name: str) -> DocumentAnalysis:
    """Deterministic analysis built from word counts alone."""
    word_count = len(text.split())
    return DocumentAnalysis(
        summary=f'Document "{document_name}" uploaded successfully. Contains {word_count} words.',
        key_points=[FALLBACK_KEY_POINT],
        business_relevance=NEUTRAL_RELEVANCE,
        keywords=extract_keywords(text),
        insights=[Insight(type="note", content=FALLBACK_KEY_POINT, importance="medium")],
        source="fallback",
    )


def parse_analysis_response(raw: str) -> DocumentAnalysis:
    """
    Parse an LLM response into a DocumentAnalysis.

    Raises:
        ValueError: If no JSON object is found or it cannot be decoded
        ValidationError: If required fields are missing
    """
    candidate = find_json_object(raw)
    if candidate is None:
        raise ValueError("No JSON object in analysis response")

    parsed = _LLMAnalysis.model_validate(json.loads(candidate))
    return DocumentAnalysis(
        summary=parsed.summary,
        key_points=parsed.key_points[:MAX_KEY_POINTS],
        entities=parsed.entities,
        business_relevance=parsed.business_relevance,
        keywords=parsed.keywords[:MAX_KEYWORDS],
        insights=parsed.insights[:MAX_INSIGHTS],
        source="llm",
    )


class DocumentAnalyzer:
    """Summarizes documents with Claude, degrading to heuristics."""

    def __init__(
        self,
        client: AsyncAnthropic | None,
        model: str = "claude-haiku-4-5-20251001",
        max_chars: int = 8000,
        max_tokens: int = 1500,
    ):
        self.client = client
        self.model = model
        self.max_chars = max_chars
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: Settings) -> "DocumentAnalyzer":
        client = (
            AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
            if settings.ANTHROPIC_API_KEY
            else None
        )
        return cls(
            client=client,
            model=settings.ANALYSIS_MODEL,
            max_chars=settings.ANALYSIS_MAX_CHARS,
            max_tokens=settings.ANALYSIS_MAX_TOKENS,
        )

    async def analyze(self, text: str, document_name: str) -> DocumentAnalysis:
        """
        Analyze document text.

        Args:
            text: Extracted document text (placeholder text included)
            document_name: Original filename, given to the model as context

        Returns:
            DocumentAnalysis; ``source`` tells which path produced it
        """
        if len(text.strip()) < MIN_ANALYSIS_CHARS:
            return too_short_analysis()

        if self.client is None:
            logger.info(f"No analysis provider configured; using heuristics for {document_name}")
            return heuristic_analysis(text, document_name)

        prompt = ANALYSIS_PROMPT.format(name=document_name, content=text[: self.max_chars])

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0.2,
                messages=[{"role": "user", "content": prompt}],
            )
            raw = response.content[0].text if response.content else ""
        except Exception as e:
            logger.warning(f"Analysis call failed for {document_name}, using fallback: {e}")
            return heuristic_analysis(text, document_name)

        try:
            analysis = parse_analysis_response(raw)
        except (ValueError, ValidationError) as e:
            # json.JSONDecodeError is a ValueError
            logger.warning(
                f"Unusable analysis response for {document_name}, using fallback: {e}",
                extra={"extra_data": {"response_preview": raw[:200]}},
            )
            return heuristic_analysis(text, document_name)

        logger.info(
            f"Analyzed {document_name}: {len(analysis.key_points)} key points, "
            f"relevance={analysis.business_relevance:.2f}"
        )
        return analysis
