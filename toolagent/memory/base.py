"""
Memory adapter contract.

A memory adapter supplies prior conversation turns for a session and
records the exchange after a successful run.
"""

from typing import Protocol

from ..models import ConversationTurn


class MemoryAdapter(Protocol):
    """Conversation memory keyed by session."""

    async def load_turns(self, session_key: str) -> list[ConversationTurn]:
        """Prior turns for the session, oldest first."""
        ...

    async def save_turn(self, session_key: str, human_input: str, final_output: str) -> None:
        """Record one human input and the agent's final answer."""
        ...
