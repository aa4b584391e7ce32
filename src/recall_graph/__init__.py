"""
Recall Graph - memory and relationship extraction over conversational logs
"""

from .models import Memory, MemoryExtraction, MemoryType, Relation, RelationCandidate, RelationType

__version__ = "0.1.0"

__all__ = [
    "Memory",
    "MemoryExtraction",
    "MemoryType",
    "Relation",
    "RelationCandidate",
    "RelationType",
]
