"""
Source processors: each source type gets loaded, chunked, and tagged with
the metadata that links Pinecone chunks to Neo4j evidence (source, title, docId).
"""
import re
from datetime import datetime, timezone
from pathlib import Path

import httpx
from bs4 import BeautifulSoup
from langchain_community.document_loaders import PyPDFLoader
from langchain_core.documents import Document
from langchain_text_splitters import RecursiveCharacterTextSplitter

from config import settings
from logging_config import get_logger

logger = get_logger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
STRIP_SELECTORS = ["script", "style", "nav", "footer", ".advertisement", ".ads"]
CONTENT_SELECTORS = ["main", "article", ".content", ".main-content", ".post-content", ".entry-content", "body"]
MIN_SELECTOR_TEXT = 100


class IngestionError(Exception):
    """Base class for source loading failures."""


class ScrapeError(IngestionError):
    pass


class InsufficientContentError(IngestionError):
    pass


def make_splitter() -> RecursiveCharacterTextSplitter:
    return RecursiveCharacterTextSplitter(
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )


# ----------- PDF -----------
class PDFProcessor:
    def __init__(self):
        self.splitter = make_splitter()

    def process(self, file_path: str | Path) -> list[Document]:
        file_path = Path(file_path)
        pages = PyPDFLoader(str(file_path)).load()
        chunks = self.splitter.split_documents(pages)

        base = file_path.name
        for chunk in chunks:
            page = chunk.metadata.get("page")
            chunk.metadata.update({
                "source": str(file_path),
                "title": base,
                # PyPDFLoader pages are 0-based
                "docId": f"{base}#p{page + 1}" if isinstance(page, int) else base,
            })
        return chunks


# ----------- WEB PAGE -----------
def extract_main_text(html: str) -> tuple[str, str]:
    """(title, text) of the main content block of an HTML page."""
    soup = BeautifulSoup(html, "html.parser")
    for selector in STRIP_SELECTORS:
        for tag in soup.select(selector):
            tag.decompose()

    title = ""
    if soup.title:
        title = re.sub(r"\s+", " ", soup.title.get_text(" ", strip=True)).strip()

    content = ""
    for selector in CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = element.get_text(" ", strip=True)
        if len(text) > MIN_SELECTOR_TEXT:
            content = text
            break

    if not content:
        body = soup.body or soup
        content = body.get_text(" ", strip=True)

    return title, re.sub(r"\s+", " ", content).strip()


class WebPageProcessor:
    def __init__(self, timeout: float = None):
        self.timeout = timeout or settings.scrape_timeout
        self.splitter = make_splitter()

    async def scrape(self, url: str) -> tuple[str, str]:
        logger.info(f"Scraping content from: {url}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url, headers={"User-Agent": USER_AGENT})
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise ScrapeError(f"Failed to scrape content from {url}: {e}") from e

        title, content = extract_main_text(response.text)
        logger.info(f"Extracted {len(content)} characters from {url}")
        return title, content

    async def process(self, url: str) -> tuple[list[Document], str]:
        """Chunks for one page plus the full extracted text."""
        title, content = await self.scrape(url)
        if len(content) < settings.min_content_length:
            raise InsufficientContentError("Insufficient content extracted from the webpage")

        document = Document(
            page_content=content,
            metadata={
                "source": url,
                "url": url,
                "type": "web_scrape",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "title": title or url,
                "docId": url,
            },
        )
        chunks = self.splitter.split_documents([document])
        logger.info(f"Created {len(chunks)} chunks from the content")
        return chunks, content
