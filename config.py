import os
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # API Keys (must be provided via environment or .env)
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    pinecone_api_key: str = ""

    # LLM (chat, query rewriting, graph entity lookup)
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.2
    # Optional OpenAI-compatible endpoint, e.g. https://openrouter.ai/api/v1
    llm_base_url: Optional[str] = None
    # Triple extraction runs deterministic
    kg_model: str = "gpt-4o-mini"

    # Embeddings + vector index
    embedding_model: str = "text-embedding-3-small"
    pinecone_index_name: str = ""
    pinecone_namespace: Optional[str] = None
    upsert_concurrency: int = 5

    # Graph store
    neo4j_uri: str = ""
    neo4j_user: str = ""
    neo4j_password: str = ""
    neo4j_database: Optional[str] = None

    # Ingestion
    documents_dir: Path = Path("documents")
    build_kg: bool = True
    chunk_size: int = 1000
    chunk_overlap: int = 200
    kg_batch_size: int = 100
    kg_max_chars: int = 5000
    scrape_timeout: float = 10.0
    min_content_length: int = 50

    # Retrieval
    top_k: int = 10
    graph_path_limit: int = 10
    graph_max_hops: int = 3

    # Sessions
    default_session_id: str = "default"
    max_sessions: int = 1000
    max_turns_per_session: int = 200

    # Service
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]
    port: int = 8080

    class Config:
        env_file = ".env"
        extra = "ignore"

    def resolved_documents_dir(self) -> Path:
        if self.documents_dir.is_absolute():
            return self.documents_dir
        return Path.cwd() / self.documents_dir


settings = Settings()


def missing_vars(names: list[str]) -> list[str]:
    """Env var names (e.g. "PINECONE_INDEX_NAME") whose setting is empty."""
    return [name for name in names if not getattr(settings, name.lower(), None)]
