"""
Test Package Initialization

This package contains the unit and integration tests for the
Persona Voice Agent project.

Test Structure:
- test_config.py: Configuration tests
- test_vectorstore.py: Memory store tests
- test_prompts.py / test_context.py: Prompt templating and grounding retrieval
- test_gate.py: Turn-gate tests
- test_chunker.py: Sentence chunker tests
- test_orchestrator.py / test_session.py: Turn flow and voice sessions
- test_llm.py / test_speech.py / test_tools.py: Downstream clients
- test_agent.py / test_api.py / test_cli.py: Front-end interface, HTTP adapter and CLI

Run tests with:
    pytest tests/ -v
    pytest tests/ -v --cov=persona_agent
"""
