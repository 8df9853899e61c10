"""Application service helpers."""

from .chat_store import SqlChatStore

__all__ = ["SqlChatStore"]
