"""
Knowledge graph in Neo4j.

Nodes are (:Entity) keyed by their exact `name`, plus one label per
recognized type. Relationships use the fixed relation vocabulary, or
RELATES_TO {predicate} for anything else. Re-ingesting a document appends to
the list properties again: provenance lists grow without dedup, `count`
counts observations and relationship confidence is a running average.
"""
import threading
from itertools import groupby
from typing import Iterable, Optional

from neo4j import Driver, GraphDatabase

from config import settings
from logging_config import get_logger
from schemas import GraphData, GraphEdge, GraphNode
from triples import GENERIC_RELATION, NODE_TYPES, RELATION_TYPES, Triple

logger = get_logger(__name__)

# type name -> graph label; only the controlled vocabulary ever becomes a label
NODE_LABELS = {node_type: node_type for node_type in NODE_TYPES}

SCHEMA_QUERIES = [
    "CREATE CONSTRAINT entity_name_unique IF NOT EXISTS FOR (e:Entity) REQUIRE e.name IS UNIQUE",
    f"CREATE INDEX rel_predicate IF NOT EXISTS FOR ()-[r:{GENERIC_RELATION}]-() ON (r.predicate)",
]

PATH_QUERY = """
MATCH p = (n)-[*1..{max_hops}]-(m)
WHERE n.name IN $names
RETURN p
LIMIT $limit
"""

_NODE_MERGE = """
MERGE ({var}:Entity {{name: row.{key}}})
  ON CREATE SET {var}.canonical = row.{key}_canonical,
                {var}.type = row.{key}_type,
                {var}.types = {types},
                {var}.docIds = {doc_ids},
                {var}.titles = {titles},
                {var}.urls = {urls},
                {var}.firstSeen = timestamp(),
                {var}.count = 1
  ON MATCH SET {var}.canonical = coalesce({var}.canonical, row.{key}_canonical),
               {var}.type = coalesce({var}.type, row.{key}_type),
               {var}.types = coalesce({var}.types, []) + {types},
               {var}.docIds = coalesce({var}.docIds, []) + {doc_ids},
               {var}.titles = coalesce({var}.titles, []) + {titles},
               {var}.urls = coalesce({var}.urls, []) + {urls},
               {var}.lastSeen = timestamp(),
               {var}.count = coalesce({var}.count, 0) + 1"""

_REL_MERGE = """
MERGE (s)-[r:{rel}]->(o)
  ON CREATE SET r.confidence = row.confidence,
                r.firstSeen = timestamp(),
                r.docIds = [row.source.doc_id],
                r.titles = [row.source.title],
                r.urls = [row.source.url]
  ON MATCH SET r.confidence = (coalesce(r.confidence, 0.7) + row.confidence) / 2.0,
               r.docIds = coalesce(r.docIds, []) + row.source.doc_id,
               r.titles = coalesce(r.titles, []) + row.source.title,
               r.urls = coalesce(r.urls, []) + row.source.url,
               r.lastSeen = timestamp()"""


def _as_list(expr: str) -> str:
    return f"CASE WHEN {expr} IS NULL OR {expr} = '' THEN [] ELSE [{expr}] END"


def _node_merge(var: str, key: str) -> str:
    return _NODE_MERGE.format(
        var=var,
        key=key,
        types=_as_list(f"row.{key}_type"),
        doc_ids=_as_list("row.source.doc_id"),
        titles=_as_list("row.source.title"),
        urls=_as_list("row.source.url"),
    )


def _label_clause(var: str, node_type: str) -> str:
    label = NODE_LABELS.get(node_type)
    return f"\nSET {var}:{label}" if label else ""


def _rel_pattern(rel_type: str) -> str:
    if rel_type in RELATION_TYPES:
        return rel_type
    return f"{GENERIC_RELATION} {{predicate: row.predicate}}"


def build_upsert_query(subject_type: str, object_type: str, rel_type: str) -> str:
    return (
        "UNWIND $rows AS row"
        + _node_merge("s", "subject")
        + _node_merge("o", "object")
        + _label_clause("s", subject_type)
        + _label_clause("o", object_type)
        + _REL_MERGE.format(rel=_rel_pattern(rel_type))
        + "\nRETURN count(*) AS upserts"
    )


def _group_key(triple: Triple) -> tuple[str, str, str]:
    rel = triple.rel_type if triple.rel_type in RELATION_TYPES else GENERIC_RELATION
    return (
        triple.subject_type if triple.subject_type in NODE_LABELS else "",
        triple.object_type if triple.object_type in NODE_LABELS else "",
        rel,
    )


def build_upsert_statements(triples: Iterable[Triple]) -> list[tuple[str, list[dict]]]:
    """One (cypher, rows) statement per (subject label, object label, relation) group.

    Labels and relation types cannot be Cypher parameters, so each group gets
    its own statement built from the vocabulary tables. Input order is kept
    inside each group.
    """
    keyed = sorted(enumerate(triples), key=lambda it: (_group_key(it[1]), it[0]))
    statements = []
    for key, items in groupby(keyed, key=lambda it: _group_key(it[1])):
        rows = []
        for _, t in items:
            row = t.to_row()
            if key[2] == GENERIC_RELATION:
                row["predicate"] = t.predicate or t.rel_type
            rows.append(row)
        statements.append((build_upsert_query(*key), rows))
    return statements


def paths_to_graph(paths: Iterable) -> GraphData:
    """Flatten Neo4j paths into the {nodes, edges} shape used by the 3D view."""
    nodes: dict[str, GraphNode] = {}
    edges: list[GraphEdge] = []
    for path in paths:
        for rel in path.relationships:
            start, end = rel.start_node, rel.end_node
            for node in (start, end):
                confidence = node.get("confidence")
                nodes[node.element_id] = GraphNode(
                    id=node.element_id,
                    label=str(node.get("name", "")),
                    type=str(node.get("type") or ""),
                    score=1.0 if confidence is None else float(confidence),
                )
            edges.append(GraphEdge(
                source=start.element_id,
                target=end.element_id,
                label=rel.type,
                evidence=[str(d) for d in (rel.get("docIds") or [])],
            ))
    return GraphData(nodes=list(nodes.values()), edges=edges)


class KnowledgeGraph:
    def __init__(self):
        self._driver: Optional[Driver] = None
        self._warned = False
        self._lock = threading.Lock()

    @property
    def configured(self) -> bool:
        ok = bool(settings.neo4j_uri and settings.neo4j_user and settings.neo4j_password)
        if not ok and not self._warned:
            logger.warning("Neo4j env missing (NEO4J_URI/NEO4J_USER/NEO4J_PASSWORD); graph features disabled.")
            self._warned = True
        return ok

    @property
    def driver(self) -> Optional[Driver]:
        if self._driver is None and self.configured:
            with self._lock:
                if self._driver is None:
                    self._driver = GraphDatabase.driver(
                        settings.neo4j_uri,
                        auth=(settings.neo4j_user, settings.neo4j_password),
                    )
        return self._driver

    def _session(self):
        return self.driver.session(database=settings.neo4j_database or None)

    def run(self, cypher: str, params: dict = None) -> list:
        with self._session() as session:
            return list(session.run(cypher, params or {}))

    def ensure_schema(self) -> None:
        """Uniqueness constraint + predicate index; safe to repeat."""
        if self.driver is None:
            return
        try:
            for query in SCHEMA_QUERIES:
                self.run(query)
        except Exception as e:
            logger.warning(f"Neo4j constraint/index setup warning: {e}")

    def upsert_triples(self, triples: list[Triple]) -> int:
        if self.driver is None or not triples:
            return 0
        statements = build_upsert_statements(triples)

        def _write(tx):
            for query, rows in statements:
                tx.run(query, rows=rows).consume()

        with self._session() as session:
            session.execute_write(_write)
        return len(triples)

    def find_paths(self, names: list[str], limit: int = None) -> list:
        query = PATH_QUERY.format(max_hops=settings.graph_max_hops)
        records = self.run(query, {"names": names, "limit": limit or settings.graph_path_limit})
        return [record["p"] for record in records]

    def close(self) -> None:
        with self._lock:
            if self._driver is not None:
                self._driver.close()
                self._driver = None


knowledge_graph = KnowledgeGraph()
