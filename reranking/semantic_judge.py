"""
Semantic judge: an external LLM that scores (query, excerpt) pairs.

Responses are resolved once, at this boundary, into a tagged result:
Parsed(score, rationale) or Unparsed(raw). Nothing untyped flows into
the ranking core and parsing never raises.
"""

import json
import logging
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from openai import AsyncOpenAI

from shared.config import get_settings

logger = logging.getLogger(__name__)

JudgeResponse = Union[Mapping[str, Any], str]

SCORE_KEYS = ("score", "llm_score", "relevance")
RATIONALE_KEYS = ("rationale", "reason")

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?|-?\.\d+")


JUDGE_PROMPT = """You are an assistant that scores how relevant a document excerpt is to a query.

Query: "{query}"
Excerpt: "{excerpt}"

Give a numeric relevance score between 0 and 1 (higher is more relevant) and a one-sentence rationale.

Return ONLY valid JSON:
{{
    "score": 0.0 to 1.0,
    "rationale": "one sentence"
}}"""


@dataclass(frozen=True)
class Parsed:
    """Judge response with a usable score in [0, 1]."""

    score: float
    rationale: str = ""


@dataclass(frozen=True)
class Unparsed:
    """Judge response with no recoverable score."""

    raw: str
    fallback_score: float = 0.0


Judgement = Union[Parsed, Unparsed]


class SemanticJudge(ABC):
    """Scores how relevant an excerpt is to a query."""

    @abstractmethod
    async def judge(self, query: str, excerpt: str) -> JudgeResponse:
        """Return a {score, rationale} mapping or raw text."""


class OpenAIJudge(SemanticJudge):
    """
    LLM judge backed by OpenAI chat completions in JSON mode.

    Usage:
        judge = OpenAIJudge()
        raw = await judge.judge("as a user I want login", "As a user ...")
        result = parse_judgement(raw)
    """

    def __init__(
        self,
        api_key: str = None,
        model: str = None,
        temperature: float = None,
        max_tokens: int = None,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.model = model or settings.judge.model
        self.temperature = (
            temperature if temperature is not None else settings.judge.temperature
        )
        self.max_tokens = max_tokens or settings.judge.max_tokens
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy load OpenAI client."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def judge(self, query: str, excerpt: str) -> JudgeResponse:
        prompt = JUDGE_PROMPT.format(query=query, excerpt=excerpt)

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""


def parse_judgement(response: Any) -> Judgement:
    """
    Resolve a judge response into Parsed or Unparsed.

    Order of preference:
    1. Mapping with a score key
    2. JSON string, or JSON object embedded in text
    3. First number in [0, 1] found in the text

    Args:
        response: Mapping, string, or anything else the judge returned

    Returns:
        Parsed(score, rationale) or Unparsed(raw)
    """
    if isinstance(response, Mapping):
        parsed = _from_mapping(response)
        return parsed if parsed is not None else Unparsed(raw=_truncate(str(response)))

    text = response if isinstance(response, str) else str(response)

    structured = _from_json_text(text)
    if structured is not None:
        return structured

    for match in _NUMBER.finditer(text):
        value = float(match.group())
        if 0.0 <= value <= 1.0:
            return Parsed(score=value, rationale=_truncate(text.strip()))

    return Unparsed(raw=_truncate(text))


def _from_mapping(data: Mapping[str, Any]) -> Optional[Parsed]:
    for key in SCORE_KEYS:
        if key not in data:
            continue
        try:
            score = float(data[key])
        except (TypeError, ValueError):
            return None
        if not math.isfinite(score):
            return None

        rationale = next(
            (str(data[k]) for k in RATIONALE_KEYS if data.get(k) is not None), ""
        )
        return Parsed(score=min(1.0, max(0.0, score)), rationale=rationale)
    return None


def _from_json_text(text: str) -> Optional[Parsed]:
    candidates = [text]
    match = _JSON_OBJECT.search(text)
    if match and match.group() != text:
        candidates.append(match.group())

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(data, Mapping):
            parsed = _from_mapping(data)
            if parsed is not None:
                return parsed
    return None


def _truncate(text: str, limit: int = 300) -> str:
    return text[:limit]
