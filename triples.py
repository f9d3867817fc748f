"""
Triple extraction for the space-biology knowledge graph.

Each chunk goes through one LLM call constrained to a controlled vocabulary
(11 node types, 10 relation templates). Predicates the model invents are
mapped back onto the vocabulary: first by name, then by the subject/object
type pair, and finally onto the generic RELATES_TO relation, which keeps
the original predicate as a property.
"""
import json
import re
from dataclasses import asdict, dataclass, field

from config import settings
from llm import llm_call, strip_code_fences
from logging_config import get_logger

logger = get_logger(__name__)

NODE_TYPES = (
    "Mission", "Group", "Mouse", "Training", "Diet", "Habitat",
    "Measurement", "Tissue", "Method", "Outcome", "Institution",
)

# (subject type, object type) -> relation
RELATION_TEMPLATES = {
    ("Mission", "Group"): "HAS_GROUP",
    ("Group", "Mouse"): "CONTAINS",
    ("Mouse", "Training"): "UNDERWENT",
    ("Mouse", "Diet"): "FED",
    ("Mouse", "Habitat"): "HOUSED_IN",
    ("Mouse", "Measurement"): "HAS_MEASUREMENT",
    ("Mouse", "Tissue"): "SAMPLED_FOR",
    ("Tissue", "Method"): "ANALYZED_BY",
    ("Mouse", "Outcome"): "RESULTED_IN",
    ("Institution", "Mission"): "CONDUCTED",
}
RELATION_TYPES = tuple(RELATION_TEMPLATES.values())
GENERIC_RELATION = "RELATES_TO"
DEFAULT_CONFIDENCE = 0.7

_NON_RELATION_CHARS = re.compile(r"[^A-Z_]")

EXTRACTION_PROMPT = """You are extracting a domain-specific knowledge graph for mouse spaceflight experiments.

1) Identify Entity Types (Nodes) from this controlled set:
   {node_types}

2) Define Relationship Templates (Edges) using ONLY these types:
{templates}

Rules:
- Prefer concrete, specific entities (e.g., Bion-M1 mission, SF group, Mouse IDs, specific tissues/methods/measurements).
- If a relation doesn't fit the templates, omit it.
- Use concise names; keep acronyms (ISS, NASA) uppercase. Avoid pronouns.
- Confidence between 0 and 1.

Return ONLY valid JSON in this shape:
{{
  "entities": [
    {{ "name": string, "type": string }}
  ],
  "relations": [
    {{ "subject": string, "subjectType": string, "predicate": string, "object": string, "objectType": string, "confidence": number }}
  ]
}}"""


@dataclass
class TripleSource:
    doc_id: str = ""
    title: str = ""
    url: str = ""


@dataclass
class Triple:
    subject: str
    subject_type: str
    rel_type: str
    object: str
    object_type: str
    confidence: float = DEFAULT_CONFIDENCE
    predicate: str = ""
    source: TripleSource = field(default_factory=TripleSource)

    @property
    def subject_canonical(self) -> str:
        return to_canonical_key(self.subject)

    @property
    def object_canonical(self) -> str:
        return to_canonical_key(self.object)

    def to_row(self) -> dict:
        """Parameter row for the Cypher upsert."""
        row = asdict(self)
        row["subject_canonical"] = self.subject_canonical
        row["object_canonical"] = self.object_canonical
        return row


def canonicalize_name(name) -> str:
    if not name:
        return ""
    return re.sub(r"\s+", " ", str(name).strip())


def to_canonical_key(name) -> str:
    return canonicalize_name(name).lower()


def normalize_rel_type(subject_type: str, object_type: str, predicate: str) -> str:
    """Map a free-form predicate onto the relation vocabulary."""
    candidate = _NON_RELATION_CHARS.sub("_", (predicate or "").upper())
    if candidate in RELATION_TYPES:
        return candidate
    return RELATION_TEMPLATES.get((subject_type, object_type), GENERIC_RELATION)


def build_prompt(text: str) -> str:
    templates = "\n".join(
        f"   (:{s})-[:{rel}]->(:{o})" for (s, o), rel in RELATION_TEMPLATES.items()
    )
    prompt = EXTRACTION_PROMPT.format(node_types=" | ".join(NODE_TYPES), templates=templates)
    return f'{prompt}\n\nText:\n"""{(text or "")[:settings.kg_max_chars]}"""'


def parse_extraction(raw: str) -> dict:
    """Parse the model reply; anything unparseable counts as an empty extraction."""
    try:
        data = json.loads(strip_code_fences(raw))
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"KG extraction returned invalid JSON, skipping chunk: {e}")
        return {"entities": [], "relations": []}
    if not isinstance(data, dict):
        logger.warning("KG extraction returned a non-object JSON payload, skipping chunk")
        return {"entities": [], "relations": []}
    return data


def relations_to_triples(relations: list, meta: dict) -> list[Triple]:
    source = TripleSource(
        doc_id=meta.get("docId") or meta.get("source") or "",
        title=meta.get("title") or "",
        url=meta.get("url") or meta.get("source") or "",
    )
    triples = []
    for r in relations:
        if not isinstance(r, dict):
            continue
        subject = canonicalize_name(r.get("subject"))
        obj = canonicalize_name(r.get("object"))
        subject_type = str(r.get("subjectType") or "").strip()
        object_type = str(r.get("objectType") or "").strip()
        predicate = str(r.get("predicate") or "").strip()
        rel_type = normalize_rel_type(subject_type, object_type, predicate)
        confidence = r.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            confidence = DEFAULT_CONFIDENCE
        if not (subject and obj and rel_type):
            continue
        triples.append(Triple(
            subject=subject,
            subject_type=subject_type,
            rel_type=rel_type,
            object=obj,
            object_type=object_type,
            confidence=float(confidence),
            predicate=predicate,
            source=source,
        ))
    return triples


def extract_triples(text: str, meta: dict) -> list[Triple]:
    """One LLM call per chunk -> normalized, filtered triples."""
    raw = llm_call(
        "You extract knowledge graph triples and answer with JSON only.",
        build_prompt(text),
        model=settings.kg_model,
        temperature=0,
    )
    data = parse_extraction(raw)
    relations = data.get("relations")
    return relations_to_triples(relations if isinstance(relations, list) else [], meta)
