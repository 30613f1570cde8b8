"""
In-process window buffer memory.

Keeps the last ``context_window_length`` exchanges (one human turn plus
one AI turn each) per session. State lives for the life of the object and
is not shared between instances.
"""

import logging
from collections import deque

from ..models import ConversationTurn

logger = logging.getLogger(__name__)


class WindowBufferMemory:
    """
    Sliding-window conversation memory.

    Each window is bounded but sessions are never evicted: one entry per
    session key is kept until ``clear`` is called for it.
    """

    def __init__(self, context_window_length: int = 5):
        if context_window_length < 1:
            raise ValueError(
                f"context_window_length must be >= 1, got {context_window_length}"
            )
        self.context_window_length = context_window_length
        self._sessions: dict[str, deque] = {}

    async def load_turns(self, session_key: str) -> list[ConversationTurn]:
        turns: list[ConversationTurn] = []
        for human, ai in self._sessions.get(session_key, ()):
            turns.append(ConversationTurn(role="human", content=human))
            turns.append(ConversationTurn(role="ai", content=ai))
        return turns

    async def save_turn(self, session_key: str, human_input: str, final_output: str) -> None:
        window = self._sessions.setdefault(
            session_key, deque(maxlen=self.context_window_length)
        )
        window.append((human_input, final_output))
        logger.debug("Memory %s: %d exchange(s) stored", session_key, len(window))

    def clear(self, session_key: str) -> None:
        """Forget a session."""
        self._sessions.pop(session_key, None)

    def sessions(self) -> list[str]:
        return list(self._sessions)
