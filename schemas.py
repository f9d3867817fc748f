"""Pydantic models for the HTTP API and the graph payload sent to the 3D view."""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class GraphNode(BaseModel):
    id: str
    label: str
    type: str
    score: float = 1.0


class GraphEdge(BaseModel):
    source: str
    target: str
    label: str
    evidence: list[str] = []


class GraphData(BaseModel):
    nodes: list[GraphNode] = []
    edges: list[GraphEdge] = []


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: Optional[str] = None
    session_id: Optional[str] = Field(None, alias="sessionId")


class ScrapeUrlRequest(BaseModel):
    url: Optional[Any] = None


class ScrapeUrlsRequest(BaseModel):
    urls: Optional[Any] = None
