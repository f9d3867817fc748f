"""
Shared fakes for the chat and ingestion tests.

Nothing here talks to OpenAI, Pinecone or Neo4j: the module-level helpers
those services sit behind are swapped out with monkeypatch.
"""
import time

import pytest

from config import settings
from vectorstore import RetrievedMatch, store_manager


class FakeLLM:
    """Replays queued responses (or raises queued exceptions) and records every call."""

    def __init__(self, responses=None, default="Mock response"):
        self.responses = list(responses or [])
        self.default = default
        self.calls: list[list[dict]] = []

    def chat(self, messages, model=None, temperature=None):
        self.calls.append(list(messages))
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return response

    def call(self, system, user, model=None, temperature=None):
        return self.chat(
            [{"role": "system", "content": system}, {"role": "user", "content": user}],
            model=model,
            temperature=temperature,
        )


class SlowLLM(FakeLLM):
    """Blocks like a real client call, then answers the last user message."""

    def __init__(self, delay=0.2):
        super().__init__()
        self.delay = delay

    def chat(self, messages, model=None, temperature=None):
        time.sleep(self.delay)
        self.calls.append(list(messages))
        return f"answer to {messages[-1]['content']}"


class FakeVectorStore:
    def __init__(self, texts=None):
        self.texts = list(texts or [])
        self.embedded: list[str] = []
        self.queries: list[tuple[list[float], int]] = []
        self.added = []

    def embed(self, text):
        self.embedded.append(text)
        return [0.1, 0.2, 0.3]

    def query(self, vector, top_k=None):
        self.queries.append((vector, top_k))
        return [RetrievedMatch(text=t, score=1.0 - i / 100) for i, t in enumerate(self.texts)]

    def add_documents(self, docs):
        self.added.extend(docs)
        return len(docs)


class FakeNode:
    def __init__(self, element_id, **props):
        self.element_id = element_id
        self._props = props

    def get(self, key, default=None):
        return self._props.get(key, default)


class FakeRelationship:
    def __init__(self, start_node, end_node, type, **props):
        self.start_node = start_node
        self.end_node = end_node
        self.type = type
        self._props = props

    def get(self, key, default=None):
        return self._props.get(key, default)


class FakePath:
    def __init__(self, *relationships):
        self.relationships = list(relationships)


def _install_llm(monkeypatch, fake):
    monkeypatch.setattr("pipeline.rewriter.llm_chat", fake.chat)
    monkeypatch.setattr("pipeline.composer.llm_chat", fake.chat)
    monkeypatch.setattr("pipeline.graph_fetcher.llm_call", fake.call)
    monkeypatch.setattr("triples.llm_call", fake.call)
    return fake


@pytest.fixture
def llm(monkeypatch):
    return _install_llm(monkeypatch, FakeLLM())


@pytest.fixture
def slow_llm(monkeypatch):
    return _install_llm(monkeypatch, SlowLLM())


@pytest.fixture
def vectors(monkeypatch):
    fake = FakeVectorStore()
    monkeypatch.setattr(store_manager, "embed", fake.embed)
    monkeypatch.setattr(store_manager, "query", fake.query)
    monkeypatch.setattr(store_manager, "add_documents", fake.add_documents)
    return fake


@pytest.fixture
def no_graph(monkeypatch):
    monkeypatch.setattr(settings, "neo4j_uri", "")
    monkeypatch.setattr(settings, "neo4j_user", "")
    monkeypatch.setattr(settings, "neo4j_password", "")


@pytest.fixture
def graph_env(monkeypatch):
    monkeypatch.setattr(settings, "neo4j_uri", "bolt://localhost:7687")
    monkeypatch.setattr(settings, "neo4j_user", "neo4j")
    monkeypatch.setattr(settings, "neo4j_password", "secret")
