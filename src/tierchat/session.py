"""Per-session bounded conversation history and the registry that owns it."""

import threading
from collections import deque
from dataclasses import dataclass
from typing import Iterable, Literal, Optional

Role = Literal["user", "assistant"]
ROLES = ("user", "assistant")

DEFAULT_SESSION_ID = "default"
DEFAULT_MAX_HISTORY = 10


@dataclass(frozen=True)
class Message:
    """One conversation message.

    Attributes:
        role: Either "user" or "assistant".
        content: Message text.
    """

    role: Role
    content: str

    def __post_init__(self):
        """Validate role."""
        if self.role not in ROLES:
            raise ValueError(f"Invalid role '{self.role}' (expected one of: {', '.join(ROLES)})")

    def render(self) -> str:
        return f"{self.role}: {self.content}\n"


class ChatSession:
    """Ordered message history bounded to ``max_history`` messages.

    Appending past the bound evicts the oldest message (sliding window).
    Not synchronized on its own: concurrent callers go through
    SessionRegistry, which serializes every access.
    """

    def __init__(self, session_id: str, max_history: int = DEFAULT_MAX_HISTORY):
        if max_history < 1:
            raise ValueError(f"max_history must be at least 1, got {max_history}")
        self.session_id = session_id
        self.max_history = max_history
        self._history: deque[Message] = deque(maxlen=max_history)

    @property
    def history(self) -> list[Message]:
        """Copy of the current window, oldest first."""
        return list(self._history)

    def add_message(self, role: Role, content: str) -> Message:
        """Append a message, evicting the oldest one if the window is full."""
        message = Message(role, content)
        self._history.append(message)
        return message

    def get_prompt(self, pending: Iterable[Message] = ()) -> str:
        """Render the history as ``"role: content\\n"`` lines.

        Args:
            pending: Messages not yet appended; the prompt covers the window
                as it would be after appending them.

        Returns:
            Prompt text.
        """
        window = deque(self._history, maxlen=self.max_history)
        window.extend(pending)
        return "".join(message.render() for message in window)

    def to_record(self) -> dict:
        """Serialize for durable storage."""
        return {
            "session_id": self.session_id,
            "max_history": self.max_history,
            "messages": [{"role": m.role, "content": m.content} for m in self._history],
        }

    @classmethod
    def from_record(cls, record: dict) -> "ChatSession":
        """Rebuild a session from ``to_record`` output."""
        session = cls(record["session_id"], record.get("max_history", DEFAULT_MAX_HISTORY))
        for message in record.get("messages", []):
            session.add_message(message["role"], message["content"])
        return session

    def __len__(self) -> int:
        return len(self._history)

    def __repr__(self) -> str:
        return f"ChatSession({self.session_id!r}, messages={len(self)}/{self.max_history})"


class SessionRegistry:
    """Maps session ids to chat sessions, creating them lazily.

    Every read or write is one critical section on a single lock, held only
    for the collection access itself.

    Example:
        >>> registry = SessionRegistry(max_history=10)
        >>> session = registry.get_or_create("s1")
        >>> registry.add_message(session, "user", "hello")
        >>> registry.history("s1")
        [Message(role='user', content='hello')]
    """

    def __init__(
        self,
        max_history: int = DEFAULT_MAX_HISTORY,
        default_session_id: str = DEFAULT_SESSION_ID,
    ):
        self.max_history = max_history
        self.default_session_id = default_session_id
        self._sessions: dict[str, ChatSession] = {}
        self._lock = threading.Lock()

    def _resolve_id(self, session_id: Optional[str]) -> str:
        return self.default_session_id if session_id is None else session_id

    def get_or_create(self, session_id: Optional[str] = None) -> ChatSession:
        """Fetch a session, creating it on first reference.

        Args:
            session_id: Session identifier; None selects the default session.

        Returns:
            The session handle.
        """
        session_id = self._resolve_id(session_id)
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = ChatSession(session_id, self.max_history)
                self._sessions[session_id] = session
            return session

    def add_message(self, session: ChatSession, role: Role, content: str) -> Message:
        """Append one message to a session under the registry lock."""
        with self._lock:
            return session.add_message(role, content)

    def add_turn(self, session: ChatSession, user_content: str, assistant_content: str) -> None:
        """Append a user message and its reply as one atomic step.

        Concurrent turns on the same session never interleave their pairs.
        """
        user = Message("user", user_content)
        assistant = Message("assistant", assistant_content)
        with self._lock:
            session.add_message(user.role, user.content)
            session.add_message(assistant.role, assistant.content)

    def prompt_for(self, session: ChatSession, pending: Iterable[Message] = ()) -> str:
        """Render a session prompt under the registry lock."""
        pending = list(pending)
        with self._lock:
            return session.get_prompt(pending)

    def history(self, session_id: Optional[str] = None) -> list[Message]:
        """Messages of a session (empty if the session does not exist yet)."""
        session_id = self._resolve_id(session_id)
        with self._lock:
            session = self._sessions.get(session_id)
            return session.history if session is not None else []

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def to_records(self) -> list[dict]:
        """Serialize all sessions for durable storage."""
        with self._lock:
            return [session.to_record() for session in self._sessions.values()]

    def restore(self, records: Iterable[dict]) -> int:
        """Load sessions from records, replacing any with the same id.

        Returns:
            Number of sessions restored.
        """
        sessions = [ChatSession.from_record(record) for record in records]
        with self._lock:
            for session in sessions:
                self._sessions[session.session_id] = session
        return len(sessions)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
