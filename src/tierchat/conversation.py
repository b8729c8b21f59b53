"""Thin orchestration layer for memory-augmented chat turns.

ChatOrchestrator coordinates the components but holds no business logic:
retrieval lives in VectorMemoryStore, decoding in GreedyGenerator, history
bounds in ChatSession.

For creating a fully loaded orchestrator, use ChatEngineBuilder from
builder.py.
"""

import asyncio
import logging
from typing import Optional, Protocol, Sequence

import numpy as np

from .memory_store import VectorMemoryStore
from .session import Message, SessionRegistry

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "Context from memory:\n"


class TextGenerator(Protocol):
    def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        ...


class TextEmbedder(Protocol):
    def embed(self, text: str) -> np.ndarray:
        ...


def build_prompt(context: Sequence[str], session_prompt: str) -> str:
    """Prepend retrieved context to the session prompt.

    With no retrieved context the session prompt is returned unchanged.

    Args:
        context: Retrieved memory texts, most similar first.
        session_prompt: Rendered session history.

    Returns:
        Augmented prompt.
    """
    if not context:
        return session_prompt
    lines = "".join(f"- {text}\n" for text in context)
    return f"{CONTEXT_HEADER}{lines}\n{session_prompt}"


class ChatOrchestrator:
    """Runs one retrieval-augmented chat turn at a time.

    Turn sequence:
    1. Fetch or create the session
    2. Embed the user message
    3. Retrieve the top-k similar memories
    4. Build the augmented prompt (history includes the pending message)
    5. Generate the reply
    6. Append the user message and reply to the session
    7. Add the user message to memory

    Steps 6 and 7 only happen after generation succeeds, so a failed turn
    leaves the session and memory exactly as they were.

    Example:
        >>> from tierchat import create_chat_engine
        >>> engine = create_chat_engine(models_dir="models")
        >>> engine.chat("Hello!", session_id="s1")
    """

    def __init__(
        self,
        generator: TextGenerator,
        embedder: TextEmbedder,
        memory: Optional[VectorMemoryStore] = None,
        sessions: Optional[SessionRegistry] = None,
        top_k: int = 2,
        max_tokens: int = 512,
    ):
        """Initialize the orchestrator.

        Args:
            generator: Produces the reply from the augmented prompt.
            embedder: Embeds user messages for retrieval and storage.
            memory: Shared memory store (a fresh one if None).
            sessions: Shared session registry (a fresh one if None).
            top_k: Number of memories retrieved per turn.
            max_tokens: Generation budget per turn.
        """
        self.generator = generator
        self.embedder = embedder
        self.memory = memory if memory is not None else VectorMemoryStore()
        self.sessions = sessions if sessions is not None else SessionRegistry()
        self.top_k = top_k
        self.max_tokens = max_tokens

    def chat(self, message: str, session_id: Optional[str] = None) -> str:
        """Process a user message and generate a response.

        Args:
            message: The user's input text.
            session_id: Session identifier (default session if None).

        Returns:
            Generated assistant response.

        Raises:
            TierChatError: Any tokenization, inference or generation
                failure; session and memory are left untouched.
        """
        response, _ = self._turn(message, session_id)
        return response

    def chat_with_retrieval_info(
        self, message: str, session_id: Optional[str] = None
    ) -> tuple[str, dict]:
        """Chat and return what was retrieved and the prompt that was used.

        Useful for debugging and analysis of retrieval behavior.

        Returns:
            Tuple of (response, info) where info has keys 'session_id',
            'retrieved' (list of (text, score)) and 'prompt'.
        """
        return self._turn(message, session_id)

    async def chat_async(self, message: str, session_id: Optional[str] = None) -> str:
        """Run ``chat`` in a worker thread so async callers are not blocked."""
        return await asyncio.to_thread(self.chat, message, session_id)

    def _turn(self, message: str, session_id: Optional[str]) -> tuple[str, dict]:
        # 1. Session
        session = self.sessions.get_or_create(session_id)

        try:
            # 2. Embed
            embedding = self.embedder.embed(message)

            # 3. Retrieve
            retrieved = self.memory.search_with_scores(embedding, self.top_k)

            # 4. Augment
            session_prompt = self.sessions.prompt_for(session, [Message("user", message)])
            prompt = build_prompt([text for text, _ in retrieved], session_prompt)

            # 5. Generate
            response = self.generator.generate(prompt, self.max_tokens)
        except Exception:
            logger.warning(
                "Chat turn failed for session '%s'; state left unchanged",
                session.session_id,
                exc_info=True,
            )
            raise

        # 6. History, 7. Memory
        self.sessions.add_turn(session, message, response)
        self.memory.add(message, embedding)

        logger.debug(
            "Turn complete for session '%s': %d memories retrieved, %d chars generated",
            session.session_id,
            len(retrieved),
            len(response),
        )
        return response, {
            "session_id": session.session_id,
            "retrieved": retrieved,
            "prompt": prompt,
        }
