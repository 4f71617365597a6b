from pathlib import Path
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Graph Store Configuration
    graph_backend: str = Field(default="neo4j", description="neo4j or json")
    neo4j_uri: str = Field(default="bolt://localhost:7687")
    neo4j_username: str = Field(default="neo4j")
    neo4j_password: str = Field(default="neo4j")
    neo4j_database: Optional[str] = Field(default=None)
    graph_storage_path: str = Field(default="data/graph_data.json")

    # Vector Index Configuration
    vector_backend: str = Field(default="milvus", description="milvus or local")
    milvus_host: str = Field(default="localhost")
    milvus_port: int = Field(default=19530)
    embedding_dimension: int = Field(default=1536)
    hnsw_m: int = Field(default=24)
    hnsw_ef_construction: int = Field(default=128)
    hnsw_ef_search: int = Field(default=64)

    # Model Configuration
    completion_provider: str = Field(default="openai")
    embedding_provider: str = Field(default="openai")
    openai_api_key: Optional[str] = Field(default=None)
    openai_base_url: Optional[str] = Field(default=None)
    openai_completion_model: str = Field(default="gpt-4o-mini")
    openai_embedding_model: str = Field(default="text-embedding-3-small")
    completion_max_tokens: int = Field(default=4096)
    ollama_host: str = Field(default="http://localhost:11434")
    ollama_completion_model: str = Field(default="llama3.1")
    ollama_embedding_model: str = Field(default="nomic-embed-text")

    # Throttling Configuration
    throttle_pause_seconds: float = Field(default=2.5)
    throttle_backoff_multiplier: float = Field(default=1.0)
    throttle_max_pause_seconds: float = Field(default=60.0)
    throttle_jitter_seconds: float = Field(default=0.0)
    throttle_max_attempts: Optional[int] = Field(default=None)
    call_min_interval_seconds: float = Field(default=0.0)

    # Summarizer Configuration
    summary_traversal: str = Field(default="recursive", description="recursive or iterative")

    # Retrieval Configuration
    search_top_k: int = Field(default=5)
    call_expansion_hops: int = Field(default=1)
    call_expansion_limit: int = Field(default=20)

    # API Configuration
    api_host: str = Field(default="localhost")
    api_port: int = Field(default=8000)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_file: str = Field(default="logs/app.log")

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        return Path(self.log_file).parent

    def ensure_directories(self):
        """Ensure necessary directories exist."""
        self.log_dir.mkdir(parents=True, exist_ok=True)


settings = Settings()
settings.ensure_directories()
