"""
=============================================================================
ASTREA: SPACE BIOLOGY KNOWLEDGE ENGINE API
=============================================================================
Chat over NASA space-biology publications, grounded in a Pinecone index and
a Neo4j knowledge graph, plus endpoints that ingest web pages into both.

Endpoints:
  POST /chat            answer + knowledge graph for the 3D view
  POST /chat/telegram   raw answer only (Telegram relay)
  POST /scrape/url      scrape, chunk and index one URL
  POST /scrape/urls     same for a list of URLs, sequentially
  GET  /scrape/status   checks the embedding / vector store configuration
  GET  /health

Run: uvicorn main:app --reload --port 8080
=============================================================================
"""
from urllib.parse import urlparse

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chat import ChatService
from config import missing_vars, settings
from ingest import process_multiple_urls, process_web_url
from logging_config import get_logger, setup_logging
from schemas import ChatRequest, GraphData, ScrapeUrlRequest, ScrapeUrlsRequest

setup_logging()
logger = get_logger(__name__)

ERROR_ANSWER = "An error occurred while processing your request."
SCRAPER_REQUIRED_VARS = ["OPENAI_API_KEY", "PINECONE_API_KEY", "PINECONE_INDEX_NAME"]

app = FastAPI(title="Astrea Space Biology Knowledge Engine", version="1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

chat_service = ChatService()


def is_valid_url(url) -> bool:
    if not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


def _empty_graph() -> dict:
    return GraphData().model_dump()


@app.get("/health")
async def health():
    return {"status": "running", "version": app.version}


# ---- CHAT ----
@app.post("/chat")
async def chat(request: ChatRequest):
    if not request.question:
        return JSONResponse(status_code=400, content={"error": "Question is required"})
    try:
        result = await chat_service.chat(request.question, request.session_id)
    except Exception as e:
        logger.exception("Chat request failed")
        return JSONResponse(status_code=500, content={
            "answer": ERROR_ANSWER,
            "graph": _empty_graph(),
            "error": str(e),
        })

    return JSONResponse(content={
        "answer": result.formatted_answer(),
        "graph": result.graph.model_dump() if result.graph else _empty_graph(),
    })


@app.post("/chat/telegram")
async def chat_telegram(request: ChatRequest):
    if not request.question:
        return JSONResponse(status_code=400, content={"error": "Question is required"})
    try:
        result = await chat_service.chat(request.question, request.session_id)
    except Exception as e:
        logger.exception("Telegram chat request failed")
        return JSONResponse(status_code=500, content={"answer": ERROR_ANSWER, "error": str(e)})
    return JSONResponse(content={"answer": result.answer})


# ---- SCRAPE ----
@app.post("/scrape/url")
async def scrape_url(request: ScrapeUrlRequest):
    url = request.url
    if not url:
        return JSONResponse(status_code=400, content={
            "error": "URL is required",
            "message": "Please provide a URL to scrape",
        })
    if not is_valid_url(url):
        return JSONResponse(status_code=400, content={
            "error": "Invalid URL format",
            "message": "Please provide a valid URL",
        })

    logger.info(f"Received request to scrape: {url}")
    try:
        result = await process_web_url(url)
    except Exception as e:
        logger.exception("Error in scrape_url")
        return JSONResponse(status_code=500, content={
            "error": "Failed to process URL",
            "message": str(e),
        })
    return JSONResponse(content={"message": "URL processed successfully", "data": result})


@app.post("/scrape/urls")
async def scrape_urls(request: ScrapeUrlsRequest):
    urls = request.urls
    if not urls or not isinstance(urls, list):
        return JSONResponse(status_code=400, content={
            "error": "URLs array is required",
            "message": "Please provide an array of URLs to scrape",
        })
    # Validate everything before processing anything
    for url in urls:
        if not is_valid_url(url):
            return JSONResponse(status_code=400, content={
                "error": "Invalid URL format",
                "message": f"Invalid URL: {url}",
            })

    logger.info(f"Received request to scrape {len(urls)} URLs")
    try:
        results = await process_multiple_urls(urls)
    except Exception as e:
        logger.exception("Error in scrape_urls")
        return JSONResponse(status_code=500, content={
            "error": "Failed to process URLs",
            "message": str(e),
        })

    successful = sum(1 for r in results if r["success"])
    failed = len(results) - successful
    return JSONResponse(content={
        "message": f"Processed {len(urls)} URLs: {successful} successful, {failed} failed",
        "summary": {"total": len(urls), "successful": successful, "failed": failed},
        "results": results,
    })


@app.get("/scrape/status")
async def scrape_status():
    missing = missing_vars(SCRAPER_REQUIRED_VARS)
    if missing:
        return JSONResponse(status_code=503, content={
            "status": "error",
            "message": "Missing required environment variables",
            "missingVars": missing,
        })
    return {
        "status": "ready",
        "message": "Web scraper is ready to process URLs",
        "features": [
            "Single URL scraping",
            "Multiple URLs scraping",
            "Content chunking",
            "Knowledge graph extraction",
            "Embedding generation",
            "Pinecone storage",
        ],
        "endpoints": {
            "single": "POST /scrape/url",
            "multiple": "POST /scrape/urls",
            "status": "GET /scrape/status",
        },
    }
