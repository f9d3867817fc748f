"""
STEP 4: GRAPH DATA FETCHER
----------------------------
WHAT IT DOES: LLM picks candidate entity names -> 1..3 hop paths in Neo4j -> {nodes, edges}.
DEGRADES: Unconfigured or failing graph store -> None; the chat answer is still returned.
NOTE: Names the model invents simply match nothing and give an empty graph.
"""
import asyncio
from typing import Optional

from graph_store import knowledge_graph, paths_to_graph
from llm import llm_call
from logging_config import get_logger
from schemas import GraphData
from triples import NODE_TYPES

logger = get_logger(__name__)

ENTITY_PROMPT = (
    "Extract the names of entities relevant to these types: {types}. "
    "Use the names exactly as written in the text. "
    "Return ONLY a comma-separated list of names and no other text."
)


def parse_entity_names(raw: str) -> list[str]:
    return [name.strip() for name in (raw or "").split(",") if name.strip()]


class GraphDataFetcher:
    name = "graph_data_fetcher"

    async def extract_entities(self, question: str, context: str) -> list[str]:
        raw = await asyncio.to_thread(
            llm_call,
            ENTITY_PROMPT.format(types=", ".join(NODE_TYPES)),
            f"Question: {question}\n\nContext:\n{context}",
        )
        return parse_entity_names(raw)

    async def fetch_graph(self, question: str, context: str) -> Optional[GraphData]:
        if not knowledge_graph.configured:
            return None
        try:
            names = await self.extract_entities(question, context)
            if not names:
                return GraphData()
            paths = await asyncio.to_thread(knowledge_graph.find_paths, names)
            graph = paths_to_graph(paths)
            logger.info(f"Graph: {len(names)} candidate names -> {len(graph.nodes)} nodes, {len(graph.edges)} edges")
            return graph
        except Exception as e:
            logger.warning(f"Graph fetch failed: {e}")
            return None
