"""
Conversation Package

The conversational core: memory access, grounding retrieval, the
turn-gate, the turn orchestrator, sentence chunking and voice sessions.

Architecture:
- ChannelMemory: one channel's view of the memory store
- ContextAssembler: summary + recent + relevant memories
- TurnGate: should-respond and conversation-end judgments
- TurnOrchestrator: streaming generation, persistence, summary upkeep
- SentenceChunker: incremental sentence splitting
- VoiceSession / SessionRegistry: debounce and listening mode

Import the modules directly, e.g.
``from persona_agent.conversation.orchestrator import TurnOrchestrator``.
"""
