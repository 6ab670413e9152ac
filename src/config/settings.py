"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# This class uses pydantic-settings to read configuration from two
# sources (in priority order):
#
#   1. **Environment variables** - e.g., MAX_CHUNK_CHARACTERS=800
#   2. **.env file** - key=value lines in the project root .env file
#
# Field name `max_chunk_characters` maps to env var `MAX_CHUNK_CHARACTERS`.
# Default values are used when neither source sets a field.  An optional
# YAML file can supply further defaults; see src/config/loader.py.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """local-vector-search settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Chunking ===
    # One consistent default set; chunk texts are joined sentences, so the
    # chunk bound must leave room for at least one full sentence.
    max_chunk_characters: int = Field(default=1000, gt=0)
    max_sentence_characters: int = Field(default=100, gt=0)
    min_sentence_characters: int = Field(default=5, ge=1)
    remove_frontmatter: bool = True
    remove_urls: bool = True
    index_note_titles: bool = False

    # === Chunk cache ===
    chunk_cache_ttl_seconds: float = Field(default=300.0, gt=0)
    chunk_cache_max_entries: int = Field(default=100, gt=0)

    # === Embedding ===
    # "auto" walks the fallback chain in src/main.py.
    embedding_provider: str = "auto"
    embedding_model: str = ""
    embedding_dimension: int = Field(default=384, gt=0)
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_embedding_model: str = ""

    # === Vector store ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "embeddings"
    hnsw_m: int = 8
    hnsw_ef_construction: int = 64
    hnsw_ef_search: int = 220

    # === Worker ===
    # "inprocess" runs the worker as a task with threaded inference;
    # "subprocess" spawns `python -m src.worker`.
    worker_mode: str = "inprocess"
    worker_call_timeout_seconds: float | None = 600.0
    worker_init_timeout_seconds: float | None = 300.0

    # === Retrieval ===
    search_result_limit: int = Field(default=100, gt=0)
    related_chunks_result_limit: int = Field(default=30, gt=0)
    exclude_outgoing_links_from_related_chunks: bool = True
    exclude_backlinks_from_related_chunks: bool = True
    enable_user_ignore_filters: bool = False
    user_ignore_filters: list[str] = Field(default_factory=list)

    # === App Config ===
    vault_path: str = "."
    app_env: str = "development"
    log_level: str = "INFO"
    verbose_logging: bool = False

    @model_validator(mode="after")
    def _check_chunking_bounds(self) -> "Settings":
        if self.min_sentence_characters > self.max_sentence_characters:
            raise ValueError(
                "min_sentence_characters must not exceed max_sentence_characters"
            )
        if self.max_sentence_characters > self.max_chunk_characters:
            raise ValueError(
                "max_sentence_characters must not exceed max_chunk_characters"
            )
        if self.worker_mode not in ("inprocess", "subprocess"):
            raise ValueError("worker_mode must be 'inprocess' or 'subprocess'")
        return self

    def effective_log_level(self) -> str:
        """Return DEBUG when verbose logging is on, else the configured level."""
        return "DEBUG" if self.verbose_logging else self.log_level
