"""
In-memory conversation history, keyed by session id.

Sessions are created on first use and kept in LRU order; once more than
``max_sessions`` exist the least recently used one is dropped. Each session
keeps at most ``max_turns`` turns, oldest first out. Nothing is persisted:
history is lost on restart.

Every session owns an ``asyncio.Lock``. The chat service holds it for a
whole turn so two requests on the same session id cannot interleave their
read-then-append of the history.
"""
import asyncio
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Literal

from config import settings

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class ChatTurn:
    role: Role
    content: str

    def to_message(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class Session:
    id: str
    max_turns: int
    turns: list[ChatTurn] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def append(self, role: Role, content: str) -> None:
        self.turns.append(ChatTurn(role=role, content=content))
        overflow = len(self.turns) - self.max_turns
        if overflow > 0:
            del self.turns[:overflow]

    def messages(self) -> list[dict]:
        return [t.to_message() for t in self.turns]


class SessionStore:
    def __init__(self, max_sessions: int = None, max_turns: int = None):
        self.max_sessions = max_sessions or settings.max_sessions
        self.max_turns = max_turns or settings.max_turns_per_session
        self._sessions: OrderedDict[str, Session] = OrderedDict()

    def get(self, session_id: str = None) -> Session:
        session_id = session_id or settings.default_session_id
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(id=session_id, max_turns=self.max_turns)
            self._sessions[session_id] = session
            while len(self._sessions) > self.max_sessions:
                self._sessions.popitem(last=False)
        else:
            self._sessions.move_to_end(session_id)
        return session

    def append(self, session_id: str, turn: ChatTurn) -> None:
        self.get(session_id).append(turn.role, turn.content)

    def history(self, session_id: str = None) -> list[ChatTurn]:
        return list(self.get(session_id).turns)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def clear(self) -> None:
        self._sessions.clear()
