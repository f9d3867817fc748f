"""
STEP 3: ANSWER COMPOSER
-------------------------
WHAT IT DOES: System prompt (persona + rules + retrieved context) + history + raw question -> answer.
NO CONTEXT: Returns FALLBACK_ANSWER without calling the model. The in-prompt refusal
template covers the other case, context that exists but does not answer the question.
HISTORY: Both paths append the (user, assistant) pair to the session.
"""
import asyncio

from llm import llm_chat
from sessions import Session

FALLBACK_ANSWER = "I couldn't find the details right now. Maybe not present in the documents I have."

REFUSAL_TEMPLATE = (
    "I could not find sufficient information in the current dataset. "
    "Please refer to NASA's Open Science Data Repository for more details."
)

SYSTEM_PROMPT = """You are Astrea, the official AI assistant for NASA's Space Biology Knowledge Engine. Your goal is to help scientists, mission planners, and researchers explore NASA's bioscience publications efficiently.
If the user greets, greet them warmly and ask how you can assist with space biology research.
When a user asks a question:
- Use ONLY the provided context (summarized publications, experiments, findings) to answer.
- If the context does not contain enough information, reply: "{refusal}"
Always keep answers:
- Clear and concise, focused on the user's query.
- Structured with sections like 'Key Findings', 'Experiments', 'Missions', 'Links' when possible.
- In the same language as the query.
When relationships between experiments, organisms, and missions are available, highlight them clearly so they can be visualized in a knowledge graph.

Context:
{context}"""


class AnswerComposer:
    name = "answer_composer"

    def build_messages(self, question: str, context: str, session: Session) -> list[dict]:
        system = SYSTEM_PROMPT.format(refusal=REFUSAL_TEMPLATE, context=context)
        return [
            {"role": "system", "content": system},
            *session.messages(),
            {"role": "user", "content": question},
        ]

    async def compose(self, question: str, context: str, session: Session) -> str:
        if not context or not context.strip():
            session.append("user", question)
            session.append("assistant", FALLBACK_ANSWER)
            return FALLBACK_ANSWER

        answer = await asyncio.to_thread(llm_chat, self.build_messages(question, context, session))
        session.append("user", question)
        session.append("assistant", answer)
        return answer
