from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RecallGraphSettings(BaseSettings):
    """Unified configuration for Recall Graph.

    Environment variables are prefixed with RECALL_GRAPH_.
    Only entry points read this; components take explicit arguments.
    """

    model_config = SettingsConfigDict(env_prefix="RECALL_GRAPH_", extra="ignore")

    # --- Core ---
    log_level: str = Field(default="INFO", description="Python logging level")

    # --- Primary store ---
    database_url: str | None = Field(default=None, description="asyncpg DSN; SQLite is used when unset")
    sqlite_path: str = Field(default="~/.recall_graph/recall.db")

    # --- Extraction oracle ---
    oracle_base_url: str = "https://openrouter.ai/api/v1"
    oracle_api_key: str | None = None
    oracle_model: str = "openai/gpt-4o-mini"
    oracle_timeout_s: float = 60.0
    oracle_temperature: float = 0.1
    oracle_max_attempts: int = Field(default=1, ge=1, description="1 disables transport retries")

    # --- Session extraction job ---
    session_source: str = "claude-code"
    batch_size: int = Field(default=20, ge=1)
    batch_char_budget: int = Field(default=8000, ge=1)
    memory_max_tokens: int = 2000
    relation_max_tokens: int = 800
    owner_id: str = "11111111-1111-1111-1111-111111111111"
    owner_name: str = "Claude Code"
    owner_slug: str = "_claude-code"
    provenance_tags: list[str] = Field(default_factory=lambda: ["claude-code", "auto-extracted"])
    memory_scope: str = "shared"

    # --- Live extractor ---
    live_min_chars: int = 150
    live_side_char_budget: int = 2000

    # --- Graph ---
    neighborhood_limit: int = 50
    backlog_alert_threshold: int = 20

    # --- Recall stores ---
    durable_importance_threshold: float = 0.6
    qdrant_url: str | None = Field(default=None, description="Fast recall store; disabled when unset")
    qdrant_api_key: str | None = None
    qdrant_collection: str = "raw_memories"
    pinecone_api_key: str | None = Field(default=None, description="Durable recall store; disabled when unset")
    pinecone_index: str = "recall-memory"
    pinecone_namespace: str = "compacted"

    # --- Embeddings ---
    embedding_dim: int = 384
    st_model: str | None = Field(
        default=None,
        description="sentence-transformers model name (optional). If unset, use stub embedder.",
    )

    # --- Exchange queue ---
    redis_url: str | None = None
    exchange_queue: str = "recall:exchanges"

    # --- HTTP ---
    api_key: str | None = Field(default=None, description="If set, require X-API-Key")
    bind_host: str = "0.0.0.0"
    bind_port: int = 8089


settings = RecallGraphSettings()
