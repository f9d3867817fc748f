import re
from typing import Optional

from openai import OpenAI

from config import settings

_client: Optional[OpenAI] = None

_FENCE_START = re.compile(r"^\s*```(?:json)?", re.IGNORECASE)
_FENCE_END = re.compile(r"```\s*$")


def get_client() -> OpenAI:
    global _client
    if _client is None:
        _client = OpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.llm_base_url or None,
        )
    return _client


def llm_chat(messages: list[dict], model: str = None, temperature: float = None) -> str:
    """Chat completion over a full message list; returns the raw text."""
    response = get_client().chat.completions.create(
        model=model or settings.llm_model,
        messages=messages,
        temperature=settings.llm_temperature if temperature is None else temperature,
    )
    return response.choices[0].message.content or ""


def llm_call(system: str, user: str, model: str = None, temperature: float = None) -> str:
    """Unified LLM call helper."""
    return llm_chat(
        [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
        model=model,
        temperature=temperature,
    )


def strip_code_fences(text: str) -> str:
    """Remove a Markdown ``` / ```json wrapper around a model reply."""
    text = _FENCE_START.sub("", text or "", count=1)
    return _FENCE_END.sub("", text, count=1).strip()
