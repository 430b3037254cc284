"""
Core Module Package

Clients for the two services every turn depends on:
- LLM: embeddings, generation, tool-augmented and streaming chat (Ollama)
- Memory Store: per-channel vector collections (ChromaDB or in-memory)
"""

from persona_agent.core.llm import LLMProvider, Message, OllamaClient
from persona_agent.core.vectorstore import (
    ChromaMemoryStore,
    InMemoryMemoryStore,
    MemoryStore,
    create_memory_store,
)

__all__ = [
    "LLMProvider",
    "Message",
    "OllamaClient",
    "MemoryStore",
    "ChromaMemoryStore",
    "InMemoryMemoryStore",
    "create_memory_store",
]
