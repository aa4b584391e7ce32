"""Extraction oracle adapter.

Wraps the completion call with a fixed prompt contract, strict JSON parsing
and per-item validation. Parsing fails open: garbage from the model and
"nothing to extract" both come back as an empty list. Transport failures
(OracleError) are the only thing that propagates.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any

from ..errors import ExtractionValidationError, ParseError
from ..models import MemoryExtraction, MemoryType, RelationCandidate, RelationType
from .client import CompletionClient, CompletionRequest
from .prompts import (
    RELATION_EXTRACTION_PROMPT,
    SESSION_EXTRACTION_PROMPT,
    exchange_payload,
    session_batch_preamble,
)

logger = logging.getLogger(__name__)

MEMORY_KEY = "extractions"
RELATION_KEY = "relations"
DEFAULT_IMPORTANCE = 0.5


def parse_extraction_list(text: str, key: str) -> list[Any]:
    """Parse a model response into the list stored under `key`.

    Raises ParseError for non-JSON, a non-object body, or a missing/non-array key.
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise ParseError(f"response is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParseError(f"response is a {type(data).__name__}, expected an object")
    items = data.get(key)
    if not isinstance(items, list):
        raise ParseError(f"response has no '{key}' array")
    return items


def _text(v: Any) -> str | None:
    if not isinstance(v, str):
        return None
    s = v.strip()
    return s or None


def _importance(v: Any) -> float:
    if isinstance(v, bool):
        return DEFAULT_IMPORTANCE
    if isinstance(v, (int, float)):
        x = float(v)
    elif isinstance(v, str):
        try:
            x = float(v.strip())
        except ValueError:
            return DEFAULT_IMPORTANCE
    else:
        return DEFAULT_IMPORTANCE
    if math.isnan(x):
        return DEFAULT_IMPORTANCE
    return max(0.0, min(1.0, x))


def _tags(v: Any) -> tuple[str, ...]:
    if isinstance(v, str):
        v = [v]
    if not isinstance(v, list):
        return ()
    out: list[str] = []
    for t in v:
        s = _text(t)
        if s and s not in out:
            out.append(s)
    return tuple(out)


def validate_relation(item: Any) -> RelationCandidate:
    if not isinstance(item, dict):
        raise ExtractionValidationError("relation item is not an object")
    source = _text(item.get("source"))
    target = _text(item.get("target"))
    if not source or not target:
        raise ExtractionValidationError("relation is missing source or target")
    try:
        relation = RelationType(item.get("relation"))
    except (TypeError, ValueError) as e:
        raise ExtractionValidationError(f"unknown relation type: {item.get('relation')!r}") from e
    return RelationCandidate(
        source=source,
        target=target,
        relation=relation,
        source_type=_text(item.get("sourceType")),
        target_type=_text(item.get("targetType")),
        context=_text(item.get("context")),
    )


def validate_memory(item: Any) -> MemoryExtraction:
    if not isinstance(item, dict):
        raise ExtractionValidationError("extraction item is not an object")
    content = _text(item.get("content"))
    if not content:
        raise ExtractionValidationError("extraction has no content")
    try:
        memory_type = MemoryType(item.get("type"))
    except (TypeError, ValueError) as e:
        raise ExtractionValidationError(f"unknown memory type: {item.get('type')!r}") from e
    return MemoryExtraction(
        content=content,
        type=memory_type,
        importance=_importance(item.get("importance")),
        tags=_tags(item.get("tags")),
    )


class ExtractionOracle:
    def __init__(
        self,
        client: CompletionClient,
        *,
        char_budget: int = 8000,
        side_char_budget: int = 2000,
        temperature: float = 0.1,
        memory_max_tokens: int = 2000,
        relation_max_tokens: int = 800,
    ):
        self.client = client
        self.char_budget = char_budget
        self.side_char_budget = side_char_budget
        self.temperature = temperature
        self.memory_max_tokens = memory_max_tokens
        self.relation_max_tokens = relation_max_tokens

    async def extract(
        self,
        system_prompt: str,
        payload: str,
        *,
        key: str,
        preamble: str = "",
        max_tokens: int = 2000,
    ) -> list[Any]:
        """Run one extraction call and return the raw items under `key`.

        The payload is cut to `char_budget`; extraction is best-effort over
        that window. Raises OracleError; never raises ParseError.
        """
        request = CompletionRequest(
            system_prompt=system_prompt,
            user_prompt=preamble + payload[: self.char_budget],
            temperature=self.temperature,
            max_tokens=max_tokens,
            response_format="json",
        )
        text = await self.client.complete(request)
        if not isinstance(text, str):
            logger.warning("Discarding non-text extraction response of type %s", type(text).__name__)
            return []
        if not text.strip():
            return []
        try:
            return parse_extraction_list(text, key)
        except ParseError as e:
            logger.warning("Discarding unparseable extraction response: %s (body=%r)", e, text[:200])
            return []

    async def extract_memories(self, batch_text: str, *, exchange_count: int) -> list[MemoryExtraction]:
        items = await self.extract(
            SESSION_EXTRACTION_PROMPT,
            batch_text,
            key=MEMORY_KEY,
            preamble=session_batch_preamble(exchange_count),
            max_tokens=self.memory_max_tokens,
        )
        return _validated(items, validate_memory)

    async def extract_relations(self, user_text: str, assistant_text: str) -> list[RelationCandidate]:
        items = await self.extract(
            RELATION_EXTRACTION_PROMPT,
            exchange_payload(user_text[: self.side_char_budget], assistant_text[: self.side_char_budget]),
            key=RELATION_KEY,
            max_tokens=self.relation_max_tokens,
        )
        return _validated(items, validate_relation)


def _validated(items: list[Any], validate) -> list:
    out = []
    for item in items:
        try:
            out.append(validate(item))
        except ExtractionValidationError as e:
            logger.debug("Dropping invalid extraction item: %s", e)
    return out
