"""
STEP 2: CONTEXT RETRIEVER
---------------------------
WHAT IT DOES: Embed the rewritten question -> top-k Pinecone matches -> one context block.
NOTE: Passages keep the index's own order (similarity). Blank passages are dropped; no dedup, no reranking.
"""
import asyncio
from dataclasses import dataclass, field

from config import settings
from vectorstore import RetrievedMatch, store_manager

CONTEXT_SEPARATOR = "\n\n---\n\n"


@dataclass
class RetrievalResult:
    context: str
    matches: list[RetrievedMatch] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.context.strip()


class ContextRetriever:
    name = "context_retriever"

    def __init__(self, top_k: int = None):
        self.top_k = top_k or settings.top_k

    async def retrieve(self, query: str) -> RetrievalResult:
        vector = await asyncio.to_thread(store_manager.embed, query)
        matches = await asyncio.to_thread(store_manager.query, vector, self.top_k)
        context = CONTEXT_SEPARATOR.join(m.text for m in matches if m.text.strip())
        return RetrievalResult(context=context, matches=matches)
