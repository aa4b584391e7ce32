from __future__ import annotations

import asyncio

import pytest

from recall_graph.errors import ExtractionValidationError, OracleError, ParseError
from recall_graph.models import MemoryType, RelationType
from recall_graph.oracle.adapter import ExtractionOracle, parse_extraction_list, validate_memory, validate_relation

from .conftest import ScriptedCompletion, make_oracle, memories_json, oracle_error, relations_json


def test_parse_extraction_list_rejects_non_json() -> None:
    with pytest.raises(ParseError):
        parse_extraction_list("not json", "extractions")


def test_parse_extraction_list_requires_array_under_key() -> None:
    with pytest.raises(ParseError):
        parse_extraction_list('{"relations": {}}', "relations")
    with pytest.raises(ParseError):
        parse_extraction_list("[1, 2]", "relations")
    assert parse_extraction_list('{"relations": []}', "relations") == []


def test_non_json_response_yields_empty_list() -> None:
    oracle, _client = make_oracle("Sure! Here are the relations you asked for.")
    assert asyncio.run(oracle.extract_relations("u" * 100, "a" * 100)) == []


def test_blank_response_yields_empty_list() -> None:
    oracle, _client = make_oracle("   ")
    assert asyncio.run(oracle.extract_memories("batch", exchange_count=1)) == []


def test_oracle_error_propagates() -> None:
    oracle, _client = make_oracle(oracle_error())
    with pytest.raises(OracleError):
        asyncio.run(oracle.extract_memories("batch", exchange_count=1))


def test_memory_payload_is_truncated_and_prefixed() -> None:
    client = ScriptedCompletion(memories_json())
    oracle = ExtractionOracle(client, char_budget=50)

    asyncio.run(oracle.extract_memories("x" * 500, exchange_count=3))

    req = client.requests[0]
    assert req.user_prompt.startswith("Here are 3 Claude Code session exchanges")
    assert req.user_prompt.endswith("x" * 50)
    assert "x" * 51 not in req.user_prompt
    assert req.response_format == "json"
    assert req.temperature == pytest.approx(0.1)
    assert req.max_tokens == 2000


def test_relation_payload_caps_each_side() -> None:
    client = ScriptedCompletion(relations_json())
    oracle = ExtractionOracle(client, side_char_budget=10)

    asyncio.run(oracle.extract_relations("u" * 40, "a" * 40))

    prompt = client.requests[0].user_prompt
    assert "User message:\n" + "u" * 10 + "\n" in prompt
    assert prompt.endswith("Assistant response:\n" + "a" * 10)
    assert client.requests[0].max_tokens == 800


def test_unknown_relation_type_is_dropped() -> None:
    oracle, _client = make_oracle(
        relations_json(
            {"source": "Sayed", "target": "Coffee", "relation": "likes"},
            {"source": "Sayed", "sourceType": "person", "target": "SB-OS", "relation": "works_on"},
            {"source": "", "target": "SB-OS", "relation": "works_on"},
            "not an object",
        )
    )

    rels = asyncio.run(oracle.extract_relations("u" * 100, "a" * 100))
    assert len(rels) == 1
    assert rels[0].relation is RelationType.WORKS_ON
    assert rels[0].source_type == "person"
    assert rels[0].target_type is None


def test_validate_relation_errors() -> None:
    with pytest.raises(ExtractionValidationError):
        validate_relation({"source": "A", "target": "B", "relation": "likes"})
    with pytest.raises(ExtractionValidationError):
        validate_relation({"source": "A", "relation": "owns"})


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(1.7, 1.0), (-0.2, 0.0), ("0.8", 0.8), (None, 0.5), ("high", 0.5), (True, 0.5)],
)
def test_memory_importance_is_clamped(raw, expected) -> None:  # noqa: ANN001
    m = validate_memory({"content": "Chose asyncpg", "type": "decision", "importance": raw})
    assert m.importance == pytest.approx(expected)


def test_memory_defaults_and_unknown_type() -> None:
    m = validate_memory({"content": "  Uses ruff  ", "type": "preference"})
    assert m.content == "Uses ruff"
    assert m.type is MemoryType.PREFERENCE
    assert m.tags == ()

    with pytest.raises(ExtractionValidationError):
        validate_memory({"content": "x", "type": "bug"})


def test_memory_tags_are_normalized() -> None:
    m = validate_memory({"content": "x", "type": "learning", "tags": ["db", " db ", "", 3, "sqlite"]})
    assert m.tags == ("db", "sqlite")
