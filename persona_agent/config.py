"""
Settings

All runtime settings come from environment variables with defaults that
match a single-machine home setup (Ollama, Chroma, Fish-Speech and RVC all
reachable on the local network). A .env file in the working directory is
loaded first; real environment variables win over it.

Usage:
    from persona_agent.config import settings
    print(settings.ollama.chat_model)
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from dotenv import load_dotenv

load_dotenv()


def get_env(key: str, default: str = "", required: bool = False) -> str:
    """
    Read ``key`` from the environment.

    Raises:
        ValueError: ``required`` is set and the variable is missing or empty
    """
    value = os.getenv(key, default)
    if required and not value:
        raise ValueError(f"Missing required setting: {key}")
    return value


def get_env_int(key: str, default: int) -> int:
    return int(get_env(key, str(default)))


def get_env_float(key: str, default: float) -> float:
    return float(get_env(key, str(default)))


def get_env_bool(key: str, default: bool) -> bool:
    """True for "true", "1", "yes" or "on" (any case)."""
    return get_env(key, str(default)).lower() in ("true", "1", "yes", "on")


def get_env_list(key: str, default: str = "") -> List[str]:
    """Get a comma separated environment variable as a list of stripped values."""
    return [item.strip() for item in get_env(key, default).split(",") if item.strip()]


def parse_aliases(raw: str) -> Dict[str, str]:
    """
    Parse a ``source=target`` comma separated alias list.

    Example:
        >>> parse_aliases("moon1945=moon, moon=viyi")
        {'moon1945': 'moon', 'moon': 'viyi'}
    """
    aliases: Dict[str, str] = {}
    for pair in raw.split(","):
        if "=" not in pair:
            continue
        source, target = pair.split("=", 1)
        if source.strip() and target.strip():
            aliases[source.strip()] = target.strip()
    return aliases


@dataclass
class OllamaConfig:
    """
    Inference service configuration (Ollama HTTP API).

    Attributes:
        host: Base URL of the Ollama server
        chat_model: Model used for chat, generation and tool selection
        embed_model: Model used for memory embeddings
        keep_alive: How long the server keeps models loaded between calls
        timeout_s: Total timeout for a single request
    """
    host: str = field(default_factory=lambda: get_env("OLLAMA_HOST", "http://127.0.0.1:11434"))
    chat_model: str = field(default_factory=lambda: get_env("OLLAMA_CHAT_MODEL", "llama3.3"))
    embed_model: str = field(default_factory=lambda: get_env("OLLAMA_EMBED_MODEL", "mxbai-embed-large"))
    keep_alive: str = field(default_factory=lambda: get_env("OLLAMA_KEEP_ALIVE", "30m"))
    timeout_s: float = field(default_factory=lambda: get_env_float("OLLAMA_TIMEOUT_SECONDS", 300.0))

    def url(self, endpoint: str) -> str:
        """Build the full URL for an API endpoint such as ``chat``."""
        return f"{self.host.rstrip('/')}/api/{endpoint.lstrip('/')}"


@dataclass
class MemoryStoreConfig:
    """
    Memory store configuration.

    Attributes:
        backend: ``chroma`` for the vector database, ``memory`` for a process-local store
        host: Chroma server host; empty means an embedded persistent client
        port: Chroma server port
        directory: Persist directory for the embedded client
        collection_prefix: Prefix for per-channel collection names
    """
    backend: str = field(default_factory=lambda: get_env("MEMORY_BACKEND", "chroma"))
    host: str = field(default_factory=lambda: get_env("MEMORY_STORE_HOST", ""))
    port: int = field(default_factory=lambda: get_env_int("MEMORY_STORE_PORT", 8000))
    directory: str = field(default_factory=lambda: get_env("MEMORY_STORE_DIR", "./memory_store"))
    collection_prefix: str = field(default_factory=lambda: get_env("MEMORY_COLLECTION_PREFIX", "Memory_"))

    @property
    def path(self) -> Path:
        """Get the persist directory as a Path object."""
        return Path(self.directory)

    @property
    def is_remote(self) -> bool:
        """True when a Chroma server should be used instead of the embedded client."""
        return bool(self.host)

    def validate(self) -> bool:
        """Validate memory store settings."""
        if self.backend not in ("chroma", "memory"):
            raise ValueError("MEMORY_BACKEND must be 'chroma' or 'memory'")
        if not self.collection_prefix:
            raise ValueError("MEMORY_COLLECTION_PREFIX cannot be empty")
        return True


@dataclass
class SpeechConfig:
    """
    Speech synthesis and voice conversion configuration.

    Attributes:
        tts_url: Fish-Speech TTS endpoint
        rvc_url: RVC voice conversion server base URL
        supported_voices: Personalities that have a trained voice
        timeout_s: Timeout for one synthesis or conversion call
        streaming: Whether to request streamed audio from the TTS server
    """
    tts_url: str = field(default_factory=lambda: get_env("TTS_URL", "http://127.0.0.1:8080/v1/tts"))
    rvc_url: str = field(default_factory=lambda: get_env("RVC_URL", "http://127.0.0.1:8081"))
    supported_voices: List[str] = field(
        default_factory=lambda: get_env_list("SUPPORTED_VOICES", "Rimuru,Frieren,Gura")
    )
    timeout_s: float = field(default_factory=lambda: get_env_float("SPEECH_TIMEOUT_SECONDS", 120.0))
    streaming: bool = field(default_factory=lambda: get_env_bool("TTS_STREAMING", False))


@dataclass
class ToolsConfig:
    """
    Tool calling configuration.

    Attributes:
        enabled: Evaluate tool calls before voice turns
        merge_results: Feed tool results back into the next reply's context
        door_url: Endpoint of the door actuator
    """
    enabled: bool = field(default_factory=lambda: get_env_bool("TOOLS_ENABLED", True))
    merge_results: bool = field(default_factory=lambda: get_env_bool("TOOLS_MERGE_RESULTS", False))
    door_url: str = field(default_factory=lambda: get_env("TOOLS_DOOR_URL", "http://127.0.0.1:8000/tools/door"))


@dataclass
class ConversationConfig:
    """
    Conversation tuning.

    Attributes:
        turn_recent_count: Recent memories in a full turn
        turn_relevant_count: Relevant memories in a full turn
        gate_recent_count: Recent memories used by the gate
        gate_relevant_count: Relevant memories used by the gate
        summary_compress_threshold: Summary length (chars) that triggers compression
        verdict_window_chars: Tail of a gate response searched for "yes"
        debounce_seconds: Quiet period before a voice input is processed
        gate_failure_declines: Treat gate errors as "do not respond"
        aliases_raw: ``source=target`` identity aliases
    """
    turn_recent_count: int = field(default_factory=lambda: get_env_int("TURN_RECENT_COUNT", 8))
    turn_relevant_count: int = field(default_factory=lambda: get_env_int("TURN_RELEVANT_COUNT", 4))
    gate_recent_count: int = field(default_factory=lambda: get_env_int("GATE_RECENT_COUNT", 5))
    gate_relevant_count: int = field(default_factory=lambda: get_env_int("GATE_RELEVANT_COUNT", 5))
    summary_compress_threshold: int = field(
        default_factory=lambda: get_env_int("SUMMARY_COMPRESS_THRESHOLD", 700)
    )
    verdict_window_chars: int = field(default_factory=lambda: get_env_int("VERDICT_WINDOW_CHARS", 20))
    debounce_seconds: float = field(default_factory=lambda: get_env_float("VOICE_DEBOUNCE_SECONDS", 2.0))
    gate_failure_declines: bool = field(
        default_factory=lambda: get_env_bool("GATE_FAILURE_DECLINES", False)
    )
    aliases_raw: str = field(default_factory=lambda: get_env("CHANNEL_ALIASES", ""))

    @property
    def aliases(self) -> Dict[str, str]:
        """Identity aliases applied before memory collection resolution."""
        return parse_aliases(self.aliases_raw)

    def validate(self) -> bool:
        """Validate conversation settings."""
        for name in ("turn_recent_count", "turn_relevant_count", "gate_recent_count", "gate_relevant_count"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name.upper()} cannot be negative")
        if self.verdict_window_chars <= 0:
            raise ValueError("VERDICT_WINDOW_CHARS must be positive")
        if self.debounce_seconds < 0:
            raise ValueError("VOICE_DEBOUNCE_SECONDS cannot be negative")
        return True


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        file: Optional log file path
    """
    level: str = field(default_factory=lambda: get_env("LOG_LEVEL", "INFO"))
    file: Optional[str] = field(default_factory=lambda: get_env("LOG_FILE") or None)


@dataclass
class ApiConfig:
    """HTTP server configuration."""
    host: str = field(default_factory=lambda: get_env("API_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: get_env_int("API_PORT", 8080))
    cors_origins: List[str] = field(default_factory=lambda: get_env_list("CORS_ORIGINS", "*"))


@dataclass
class Settings:
    """
    Main settings container aggregating all configuration sections.

    Access via the singleton `settings` instance.

    Example:
        from persona_agent.config import settings

        settings.memory.validate()
        url = settings.ollama.url("chat")
    """
    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    memory: MemoryStoreConfig = field(default_factory=MemoryStoreConfig)
    speech: SpeechConfig = field(default_factory=SpeechConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    conversation: ConversationConfig = field(default_factory=ConversationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)

    # Application-level settings
    app_env: str = field(default_factory=lambda: get_env("APP_ENV", "development"))

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    def validate_all(self) -> bool:
        """
        Validate all configuration sections.

        Returns:
            True if all validations pass

        Raises:
            ValueError: If any validation fails
        """
        self.memory.validate()
        self.conversation.validate()
        return True


# Singleton settings instance
# Import this in other modules: from persona_agent.config import settings
settings = Settings()
