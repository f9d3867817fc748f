"""
INGESTION PIPELINE
==================
Chunks -> (optional) knowledge graph in Neo4j -> embeddings in Pinecone.

The knowledge graph is built completely before the vector upsert starts.
There is no rollback: if the upsert fails afterwards, Neo4j keeps the new
triples and Pinecone does not have the chunks.

Run the PDF batch:
    python ingest.py [--documents-dir DIR] [--no-kg]
"""
import argparse
import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path

from langchain_core.documents import Document

from config import missing_vars, settings
from graph_store import knowledge_graph
from logging_config import get_logger, setup_logging
from processors import PDFProcessor, WebPageProcessor
from triples import Triple, extract_triples
from vectorstore import store_manager

logger = get_logger(__name__)

REQUIRED_VARS = ["OPENAI_API_KEY", "PINECONE_API_KEY", "PINECONE_INDEX_NAME"]


@dataclass
class KGStats:
    chunks: int = 0
    triples: int = 0
    failed_chunks: int = 0
    failed_batches: int = 0


def _flush(buffer: list[Triple], stats: KGStats, position: str) -> None:
    try:
        knowledge_graph.upsert_triples(buffer)
        stats.triples += len(buffer)
        logger.info(f"KG: upserted {len(buffer)} triples ({position})")
    except Exception as e:
        stats.failed_batches += 1
        logger.warning(f"Neo4j ingestion error: {e}")


def build_knowledge_graph(chunks: list[Document]) -> KGStats:
    """Extract triples chunk by chunk and upsert them in batches."""
    stats = KGStats()
    if not knowledge_graph.configured:
        logger.info("Skipping KG ingestion: graph store not configured")
        return stats

    knowledge_graph.ensure_schema()
    buffer: list[Triple] = []
    for i, doc in enumerate(chunks):
        stats.chunks += 1
        meta = doc.metadata or {}
        try:
            buffer.extend(extract_triples(doc.page_content or "", meta))
        except Exception as e:
            stats.failed_chunks += 1
            logger.warning(f"KG extraction error: {e}")

        if len(buffer) >= settings.kg_batch_size or i == len(chunks) - 1:
            if buffer:
                _flush(buffer, stats, f"chunk {i + 1}/{len(chunks)}")
            buffer = []

    logger.info(f"KG: ingestion complete ({stats.triples} triples from {stats.chunks} chunks)")
    return stats


def ingest_chunks(chunks: list[Document], build_kg: bool = None) -> int:
    """Graph first, vectors second. Vector errors propagate."""
    if build_kg is None:
        build_kg = settings.build_kg
    if build_kg:
        logger.info("Starting KG extraction and Neo4j ingestion...")
        build_knowledge_graph(chunks)
    return store_manager.add_documents(chunks)


def index_documents(documents_dir: Path = None, build_kg: bool = None) -> int:
    documents_dir = Path(documents_dir) if documents_dir else settings.resolved_documents_dir()
    files = sorted(p for p in documents_dir.iterdir() if p.suffix == ".pdf")
    if not files:
        logger.info("No PDF files found in documents folder.")
        return 0

    processor = PDFProcessor()
    all_chunks: list[Document] = []
    for path in files:
        chunks = processor.process(path)
        logger.info(f"Loaded and chunked: {path.name} ({len(chunks)} chunks)")
        all_chunks.extend(chunks)

    count = ingest_chunks(all_chunks, build_kg=build_kg)
    logger.info("All data stored successfully")
    return count


async def process_web_url(url: str, processor: WebPageProcessor = None) -> dict:
    processor = processor or WebPageProcessor()
    try:
        chunks, content = await processor.process(url)
        await asyncio.to_thread(ingest_chunks, chunks)
    except Exception as e:
        logger.error(f"Error processing {url}: {e}")
        raise

    logger.info(f"Successfully processed and stored content from {url}")
    return {
        "success": True,
        "url": url,
        "chunksCreated": len(chunks),
        "contentLength": len(content),
    }


async def process_multiple_urls(urls: list[str]) -> list[dict]:
    """Sequential; one URL failing never stops the rest."""
    processor = WebPageProcessor()
    results = []
    for url in urls:
        logger.info(f"--- Processing {url} ---")
        try:
            results.append(await process_web_url(url, processor))
        except Exception as e:
            results.append({"success": False, "url": url, "error": str(e)})
    return results


def main(argv: list[str] = None) -> int:
    parser = argparse.ArgumentParser(description="Index PDFs into Pinecone and the Neo4j knowledge graph.")
    parser.add_argument("--documents-dir", type=Path, default=None)
    parser.add_argument("--no-kg", action="store_true", help="Skip knowledge graph extraction")
    args = parser.parse_args(argv)

    setup_logging()
    missing = missing_vars(REQUIRED_VARS)
    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        return 1

    try:
        index_documents(args.documents_dir, build_kg=False if args.no_kg else None)
    finally:
        knowledge_graph.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
