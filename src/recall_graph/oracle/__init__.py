from .adapter import ExtractionOracle, parse_extraction_list, validate_memory, validate_relation
from .client import ChatCompletionClient, CompletionClient, CompletionRequest

__all__ = [
    "ChatCompletionClient",
    "CompletionClient",
    "CompletionRequest",
    "ExtractionOracle",
    "parse_extraction_list",
    "validate_memory",
    "validate_relation",
]
