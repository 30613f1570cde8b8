"""
Conversation memory for ToolAgent.
"""

from .base import MemoryAdapter
from .window import WindowBufferMemory

__all__ = [
    "MemoryAdapter",
    "WindowBufferMemory",
]
