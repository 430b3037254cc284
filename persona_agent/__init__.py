"""
Persona Voice Agent

A role-play conversational agent that answers text and voice prompts in
character, grounded on per-channel memories stored in a vector database,
and speaks its replies through Fish-Speech and RVC.

This package provides:
- Memory storage with hybrid recency and semantic retrieval
- A turn-gate that decides whether the persona should speak
- Streaming generation split into sentence chunks for early speech
- Voice sessions with debounce and listening mode
- HTTP and CLI front ends
"""

__version__ = "1.0.0"

from persona_agent.config import settings

__all__ = ["settings", "__version__"]
