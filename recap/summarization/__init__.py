"""Summarization module for Recap."""

from .chat_client import ChatCompletionClient
from .chunker import chunk_text
from .titles import sanitize_title

__all__ = [
    "ChatCompletionClient",
    "chunk_text",
    "sanitize_title",
]
