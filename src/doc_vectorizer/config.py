"""Shared configuration loaded from environment / ``.env``."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pipeline-wide settings, populated from env vars or .env file.

    Instances are created by the caller and passed down explicitly;
    nothing in the package reads a module-level settings object.
    """

    # Chunking
    max_chunk_size: int = Field(default=1000, description="Token budget for a single chunk")
    chunk_overlap: int = Field(default=100, description="Overlap between chunks, in tokens")
    min_chunk_size: int = Field(default=100, description="Smallest standalone chunk, in characters")
    preserve_structure: bool = True
    smart_chunking: bool = True

    # Embedding step
    batch_size: int = 10
    max_retries: int = 3
    retry_base_delay: float = Field(default=0.5, description="Seconds; doubles on every retry")
    batch_delay: float = Field(default=0.1, description="Pause between batches, in seconds")
    max_input_chars: int = Field(default=32_000, description="Longest text sent to the provider")

    # Execution budget (serverless invocation limit)
    execution_limit: float = Field(default=26.0, description="Hard wall-clock limit per invocation, seconds")
    safety_margin: float = Field(default=3.0, description="Head-room kept below the hard limit, seconds")
    per_chunk_cost: float = Field(default=0.8, description="Estimated seconds spent per chunk")
    batch_overhead: float = Field(default=0.5, description="Estimated seconds of fixed cost per batch")

    # Background processor
    max_concurrent_tasks: int = 3
    poll_interval: float = 1.0

    # Embedding provider
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_cache_enabled: bool = True
    embedding_cache_size: int = 2048

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "doc_vectors"

    # Object storage
    storage_root: str = "."

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def execution_budget(self) -> float:
        """Seconds a single task may run: the hard limit minus the safety margin."""
        return max(0.0, self.execution_limit - self.safety_margin)
