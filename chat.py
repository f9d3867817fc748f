"""
CHAT SERVICE
Runs one chat turn: rewrite -> retrieve -> compose -> graph, strictly in that order.
Each step hands its blocking client call to a worker thread, so turns on other
sessions keep running while one waits; turns on the same session queue on its lock.
"""
import re
from dataclasses import dataclass, field
from typing import Optional

from logging_config import get_logger
from pipeline.composer import AnswerComposer
from pipeline.graph_fetcher import GraphDataFetcher
from pipeline.retriever import ContextRetriever
from pipeline.rewriter import QueryRewriter
from schemas import GraphData
from sessions import SessionStore

logger = get_logger(__name__)

SECTION_TITLES = ("Key Findings", "Experiments", "Missions", "Links")
EXPERIMENT_TYPES = ("Experiment", "Group", "Training", "Method")
MISSION_TYPES = ("Mission",)

_HEADING = re.compile(
    r"^[#*\s]*(Key Findings|Experiments|Missions|Links)\s*:[*\s]*",
    re.MULTILINE,
)


def _items(body: str) -> list[str]:
    return [line.strip().lstrip("-*• ").strip() for line in body.splitlines() if line.strip()]


@dataclass
class AnswerSections:
    key_findings: str
    experiments: list[str] = field(default_factory=list)
    missions: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)

    @classmethod
    def from_answer(cls, text: str) -> Optional["AnswerSections"]:
        """Sections the model already wrote, or None when there is no Key Findings heading."""
        headings = list(_HEADING.finditer(text or ""))
        if not any(m.group(1) == "Key Findings" for m in headings):
            return None
        bodies = {}
        for i, match in enumerate(headings):
            end = headings[i + 1].start() if i + 1 < len(headings) else len(text)
            bodies.setdefault(match.group(1), text[match.end():end].strip())
        return cls(
            key_findings=bodies.get("Key Findings", ""),
            experiments=_items(bodies.get("Experiments", "")),
            missions=_items(bodies.get("Missions", "")),
            links=_items(bodies.get("Links", "")),
        )

    @classmethod
    def from_graph(cls, text: str, graph: Optional[GraphData]) -> "AnswerSections":
        graph = graph or GraphData()
        labels = {n.id: n.label for n in graph.nodes}
        return cls(
            key_findings=text,
            experiments=[n.label for n in graph.nodes if n.type in EXPERIMENT_TYPES],
            missions=[n.label for n in graph.nodes if n.type in MISSION_TYPES],
            links=[
                f"{labels.get(e.source, e.source)} {e.label} {labels.get(e.target, e.target)}"
                for e in graph.edges
            ],
        )

    def filled_from(self, other: "AnswerSections") -> "AnswerSections":
        """Empty list sections take their items from `other`."""
        return AnswerSections(
            key_findings=self.key_findings,
            experiments=self.experiments or other.experiments,
            missions=self.missions or other.missions,
            links=self.links or other.links,
        )

    def render(self) -> str:
        def bullets(items: list[str], empty: str) -> str:
            return "- " + ("\n- ".join(items) if items else empty)

        return (
            f"Key Findings:\n{self.key_findings}\n\n"
            f"Experiments:\n{bullets(self.experiments, 'No specific experiments found')}\n\n"
            f"Missions:\n{bullets(self.missions, 'No specific missions found')}\n\n"
            f"Links:\n{bullets(self.links, 'No specific relationships found')}"
        )


def format_answer(text: str, graph: Optional[GraphData]) -> str:
    """Render an answer into the four-section template.

    Sections the model wrote are kept (headings and bullets normalized); any
    list section it left out is filled from the graph.
    """
    from_graph = AnswerSections.from_graph(text, graph)
    written = AnswerSections.from_answer(text)
    if written is None:
        return from_graph.render()
    return written.filled_from(from_graph).render()


@dataclass
class ChatResult:
    answer: str
    graph: Optional[GraphData] = None
    rewritten_question: str = ""
    # False when nothing was retrieved and the fixed fallback was returned
    grounded: bool = True

    def formatted_answer(self) -> str:
        if not self.grounded:
            return self.answer
        return format_answer(self.answer, self.graph)


class ChatService:
    def __init__(self, sessions: SessionStore = None):
        self.sessions = sessions or SessionStore()
        self.rewriter = QueryRewriter()
        self.retriever = ContextRetriever()
        self.composer = AnswerComposer()
        self.fetcher = GraphDataFetcher()

    async def chat(self, question: str, session_id: str = None) -> ChatResult:
        session = self.sessions.get(session_id)
        async with session.lock:
            rewritten = await self.rewriter.rewrite(question, list(session.turns))
            retrieval = await self.retriever.retrieve(rewritten)
            answer = await self.composer.compose(question, retrieval.context, session)
            graph = None
            if not retrieval.is_empty:
                graph = await self.fetcher.fetch_graph(question, retrieval.context)
        logger.info(f"Session '{session.id}': answered with {len(retrieval.matches)} passages")
        return ChatResult(
            answer=answer,
            graph=graph,
            rewritten_question=rewritten,
            grounded=not retrieval.is_empty,
        )
