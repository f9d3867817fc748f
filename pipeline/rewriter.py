"""
STEP 1: QUERY REWRITER
------------------------
WHAT IT DOES: Chat history + latest question -> one standalone English question.
USED FOR: Retrieval only. A follow-up like "and in rats?" is searched in its rewritten form.
NOTE: The model output is returned as-is. Errors propagate to the caller.
"""
import asyncio

from llm import llm_chat
from sessions import ChatTurn

REWRITE_PROMPT = (
    "You are a query rewriting expert. Given the chat history and the latest user question, "
    "rephrase the latest question into a complete, standalone English question that can be "
    "understood without any chat history. Only output the rewritten question and nothing else."
)


class QueryRewriter:
    name = "query_rewriter"

    def build_messages(self, question: str, history: list[ChatTurn]) -> list[dict]:
        return [
            {"role": "system", "content": REWRITE_PROMPT},
            *[turn.to_message() for turn in history],
            {"role": "user", "content": question},
        ]

    async def rewrite(self, question: str, history: list[ChatTurn]) -> str:
        return await asyncio.to_thread(llm_chat, self.build_messages(question, history))
