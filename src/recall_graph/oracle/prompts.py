"""Fixed prompt contracts for the extraction oracle."""

SESSION_EXTRACTION_PROMPT = """You are a knowledge extraction engine. Given a batch of coding-session logs (user <-> assistant exchanges), extract structured learnings.

Focus on substantive information. Skip trivial exchanges, greetings, small talk, and routine file reads.

Extract:
- **decisions**: Architecture choices, tool selections, approach decisions
- **learnings**: Bugs found, gotchas discovered, patterns that worked/failed
- **preferences**: User workflow preferences, coding style, tool preferences
- **context**: Business facts, project structure, domain knowledge
- **bugs**: Bugs encountered and their fixes

For each extraction, provide:
- content: concise statement (1-2 sentences)
- type: "decision" | "learning" | "preference" | "context" | "relationship"
- importance: 0.0-1.0 (0.3=minor, 0.5=useful, 0.7=important, 0.9=critical)
- tags: relevant keywords

Respond with JSON only:
{
  "extractions": [
    {
      "content": "concise statement",
      "type": "decision|learning|preference|context|relationship",
      "importance": 0.7,
      "tags": ["tag1", "tag2"]
    }
  ]
}

If nothing worth extracting, return: { "extractions": [] }"""

RELATION_EXTRACTION_PROMPT = """You are an entity relationship extraction engine. Given a conversation, extract entity relationships.

Extract ONLY clear, factual relationships. Skip vague or uncertain connections.

Relationship types:
- works_at: person -> organization
- works_on: person/team -> project/product
- collaborates_with: person -> person
- part_of: entity -> larger entity
- related_to: general association
- depends_on: entity -> entity it depends on
- owns: person/org -> asset/product
- mentions: entity -> referenced entity
- influenced_by: entity -> influencing entity

Return JSON only:
{
  "relations": [
    {
      "source": "Sayed",
      "sourceType": "person",
      "target": "SB-OS",
      "targetType": "product",
      "relation": "works_on",
      "context": "building the personal OS"
    }
  ]
}

If no clear relationships, return: { "relations": [] }"""


def session_batch_preamble(exchange_count: int) -> str:
    return f"Here are {exchange_count} Claude Code session exchanges from the past 24 hours:\n\n"


def exchange_payload(user_text: str, assistant_text: str) -> str:
    return f"User message:\n{user_text}\n\nAssistant response:\n{assistant_text}"
