import asyncio
import time

import httpx
import pytest
from fastapi.testclient import TestClient

import main
from chat import ChatService, format_answer
from config import settings
from pipeline.composer import FALLBACK_ANSWER
from schemas import GraphData, GraphEdge, GraphNode
from sessions import SessionStore


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(main, "chat_service", ChatService(SessionStore()))
    return TestClient(main.app)


@pytest.fixture
def scraper_env(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    monkeypatch.setattr(settings, "pinecone_api_key", "pc-test")
    monkeypatch.setattr(settings, "pinecone_index_name", "space-biology")


def test_health(client):
    assert client.get("/health").json()["status"] == "running"


# ---- /chat ----

def test_chat_with_empty_index_returns_fallback(client, llm, vectors, no_graph):
    response = client.post("/chat", json={"question": "What about plant roots?"})

    assert response.status_code == 200
    assert response.json() == {"answer": FALLBACK_ANSWER, "graph": {"nodes": [], "edges": []}}


def test_chat_requires_a_question(client):
    response = client.post("/chat", json={})
    assert response.status_code == 400
    assert response.json() == {"error": "Question is required"}

    response = client.post("/chat", json={"question": ""})
    assert response.status_code == 400


def test_chat_formats_plain_answers_into_sections(client, llm, vectors, no_graph):
    vectors.texts = ["Mice aboard Bion-M1 lost bone density."]
    llm.responses = ["bone loss in Bion-M1 mice", "Mice lost bone density."]

    response = client.post("/chat", json={"question": "Bones?", "sessionId": "web-1"})

    assert response.status_code == 200
    answer = response.json()["answer"]
    assert answer.startswith("Key Findings:\nMice lost bone density.")
    assert "- No specific experiments found" in answer
    assert "- No specific missions found" in answer
    assert "- No specific relationships found" in answer
    assert len(main.chat_service.sessions.history("web-1")) == 2


def test_chat_failure_returns_error_body(client, llm, vectors):
    llm.responses = [RuntimeError("rate limited")]

    response = client.post("/chat", json={"question": "Bones?"})

    assert response.status_code == 500
    assert response.json() == {
        "answer": "An error occurred while processing your request.",
        "graph": {"nodes": [], "edges": []},
        "error": "rate limited",
    }


def test_telegram_returns_raw_answer(client, llm, vectors, no_graph):
    vectors.texts = ["passage"]
    llm.responses = ["rewritten", "Plain answer."]

    response = client.post("/chat/telegram", json={"question": "Bones?"})

    assert response.status_code == 200
    assert response.json() == {"answer": "Plain answer."}


def test_telegram_requires_a_question(client):
    assert client.post("/chat/telegram", json={"question": None}).status_code == 400


# ---- answer formatting ----

def test_written_sections_are_kept_and_missing_ones_get_placeholders():
    text = "Key Findings:\nBone loss.\n\nMissions:\n- Bion-M1"
    assert format_answer(text, None) == (
        "Key Findings:\nBone loss.\n\n"
        "Experiments:\n- No specific experiments found\n\n"
        "Missions:\n- Bion-M1\n\n"
        "Links:\n- No specific relationships found"
    )


def test_markdown_headings_are_normalized_and_gaps_filled_from_graph():
    text = (
        "## **Key Findings:**\nSoleus mass dropped after 30 days.\n\n"
        "**Experiments:**\n* RR-1 flight group\n•  RR-1 ground control\n"
    )
    graph = GraphData(
        nodes=[GraphNode(id="1", label="Rodent Research-1", type="Mission"),
               GraphNode(id="2", label="SF group", type="Group")],
        edges=[GraphEdge(source="1", target="2", label="HAS_GROUP")],
    )

    assert format_answer(text, graph) == (
        "Key Findings:\nSoleus mass dropped after 30 days.\n\n"
        "Experiments:\n- RR-1 flight group\n- RR-1 ground control\n\n"
        "Missions:\n- Rodent Research-1\n\n"
        "Links:\n- Rodent Research-1 HAS_GROUP SF group"
    )


def test_key_findings_mid_sentence_is_not_a_heading():
    text = "The Key Findings: bone loss was modest."
    assert format_answer(text, None).startswith(f"Key Findings:\n{text}\n\nExperiments:")


def test_graph_fills_the_sections():
    graph = GraphData(
        nodes=[
            GraphNode(id="1", label="Bion-M1", type="Mission"),
            GraphNode(id="2", label="SF group", type="Group"),
            GraphNode(id="3", label="Soleus", type="Tissue"),
        ],
        edges=[GraphEdge(source="1", target="2", label="HAS_GROUP"),
               GraphEdge(source="2", target="x", label="RELATES_TO")],
    )

    assert format_answer("Bone loss.", graph) == (
        "Key Findings:\nBone loss.\n\n"
        "Experiments:\n- SF group\n\n"
        "Missions:\n- Bion-M1\n\n"
        "Links:\n- Bion-M1 HAS_GROUP SF group\n- SF group RELATES_TO x"
    )


# ---- /scrape ----

def test_scrape_url_rejects_invalid_url(client, monkeypatch):
    monkeypatch.setattr(main, "process_web_url", lambda url: pytest.fail("should not scrape"))

    response = client.post("/scrape/url", json={"url": "not-a-url"})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid URL format"


def test_scrape_url_requires_url(client):
    response = client.post("/scrape/url", json={})
    assert response.status_code == 400
    assert response.json()["error"] == "URL is required"


def test_scrape_url_success(client, monkeypatch):
    async def fake_process(url):
        return {"success": True, "url": url, "chunksCreated": 3, "contentLength": 2400}

    monkeypatch.setattr(main, "process_web_url", fake_process)

    response = client.post("/scrape/url", json={"url": "https://science.nasa.gov/biology"})

    assert response.status_code == 200
    assert response.json() == {
        "message": "URL processed successfully",
        "data": {"success": True, "url": "https://science.nasa.gov/biology",
                 "chunksCreated": 3, "contentLength": 2400},
    }


def test_scrape_url_failure(client, monkeypatch):
    async def fake_process(url):
        raise RuntimeError("Insufficient content extracted from the webpage")

    monkeypatch.setattr(main, "process_web_url", fake_process)

    response = client.post("/scrape/url", json={"url": "https://example.com"})

    assert response.status_code == 500
    assert response.json() == {
        "error": "Failed to process URL",
        "message": "Insufficient content extracted from the webpage",
    }


def test_scrape_urls_validates_everything_first(client, monkeypatch):
    monkeypatch.setattr(main, "process_multiple_urls", lambda urls: pytest.fail("should not scrape"))

    response = client.post("/scrape/urls", json={"urls": ["https://a.com", "bad"]})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid URL format", "message": "Invalid URL: bad"}


@pytest.mark.parametrize("body", [{}, {"urls": []}, {"urls": "https://a.com"}])
def test_scrape_urls_requires_a_list(client, body):
    response = client.post("/scrape/urls", json=body)
    assert response.status_code == 400
    assert response.json()["error"] == "URLs array is required"


def test_scrape_urls_summary(client, monkeypatch):
    async def fake_process(urls):
        return [
            {"success": True, "url": urls[0], "chunksCreated": 2, "contentLength": 1500},
            {"success": False, "url": urls[1], "error": "timeout"},
        ]

    monkeypatch.setattr(main, "process_multiple_urls", fake_process)

    response = client.post("/scrape/urls", json={"urls": ["https://a.com", "https://b.com"]})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Processed 2 URLs: 1 successful, 1 failed"
    assert body["summary"] == {"total": 2, "successful": 1, "failed": 1}
    assert body["results"][1]["error"] == "timeout"


def test_status_ready(client, scraper_env):
    response = client.get("/scrape/status")
    assert response.status_code == 200
    assert response.json()["status"] == "ready"


def test_status_lists_missing_vars(client, scraper_env, monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", "")

    response = client.get("/scrape/status")

    assert response.status_code == 503
    assert response.json() == {
        "status": "error",
        "message": "Missing required environment variables",
        "missingVars": ["OPENAI_API_KEY"],
    }


def test_health_is_not_held_up_by_running_chats(slow_llm, vectors, no_graph, monkeypatch):
    monkeypatch.setattr(main, "chat_service", ChatService(SessionStore()))
    vectors.texts = ["passage"]

    async def send_all():
        transport = httpx.ASGITransport(app=main.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            start = time.perf_counter()

            async def timed(request):
                response = await request
                return response, time.perf_counter() - start

            return await asyncio.gather(
                timed(http.post("/chat", json={"question": "q1", "sessionId": "s1"})),
                timed(http.post("/chat", json={"question": "q2", "sessionId": "s2"})),
                timed(http.get("/health")),
            )

    (chat1, t1), (chat2, t2), (health, t_health) = asyncio.run(send_all())

    assert chat1.status_code == chat2.status_code == health.status_code == 200
    assert chat1.json()["answer"].startswith("Key Findings:\nanswer to q1")
    # two 0.2 s model calls per chat; serial handling would take 0.8 s
    assert max(t1, t2) < 0.7
    assert t_health < min(t1, t2)
