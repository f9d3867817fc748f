"""
Vector index manager. One Pinecone index holds every chunk (PDF pages and
scraped web pages); the chunk text lives in the metadata under "text".
"""
import threading
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from langchain_core.documents import Document
from langchain_openai import OpenAIEmbeddings
from langchain_pinecone import PineconeVectorStore
from pinecone import Pinecone

from config import settings
from logging_config import get_logger

logger = get_logger(__name__)

TEXT_KEY = "text"


@lru_cache(maxsize=1)
def get_embeddings() -> OpenAIEmbeddings:
    # The index dimension must match this model
    return OpenAIEmbeddings(model=settings.embedding_model, api_key=settings.openai_api_key)


@dataclass(frozen=True)
class RetrievedMatch:
    text: str
    score: float


class VectorStoreManager:
    def __init__(self):
        self._client: Optional[Pinecone] = None
        self._index = None
        self._lock = threading.Lock()

    @property
    def index(self):
        if self._index is None:
            with self._lock:
                if self._index is None:
                    self._client = Pinecone(api_key=settings.pinecone_api_key)
                    self._index = self._client.Index(
                        settings.pinecone_index_name,
                        pool_threads=settings.upsert_concurrency,
                    )
                    logger.info(f"Pinecone index '{settings.pinecone_index_name}' configured")
        return self._index

    def embed(self, text: str) -> list[float]:
        return get_embeddings().embed_query(text)

    def query(self, vector: list[float], top_k: int = None) -> list[RetrievedMatch]:
        response = self.index.query(
            vector=vector,
            top_k=top_k or settings.top_k,
            include_metadata=True,
            namespace=settings.pinecone_namespace or "",
        )
        matches = []
        for match in response.matches or []:
            metadata = match.metadata or {}
            matches.append(RetrievedMatch(
                text=metadata.get(TEXT_KEY, ""),
                score=match.score or 0.0,
            ))
        return matches

    def add_documents(self, docs: list[Document]) -> int:
        if not docs:
            return 0
        store = PineconeVectorStore(
            index=self.index,
            embedding=get_embeddings(),
            text_key=TEXT_KEY,
            namespace=settings.pinecone_namespace,
        )
        store.add_documents(docs)
        logger.info(f"Upserted {len(docs)} chunks into Pinecone")
        return len(docs)


# Global singleton
store_manager = VectorStoreManager()
