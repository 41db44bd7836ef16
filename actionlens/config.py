from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Process settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # Local inference backend
    ollama_url: str = "http://localhost:11434"
    ollama_binary: str = "ollama"
    ollama_model: str = "llama3.2:1b"
    ollama_timeout: float = 30.0
    ollama_status_ttl: float = 30.0  # seconds between availability probes
    ollama_temperature: float = 0.1
    ollama_top_p: float = 0.9
    ollama_num_predict: int = 1000

    # Analysis engine
    min_text_length: int = 10
    max_text_length: int = 10_000  # above this, text is analyzed in chunks
    chunk_size: int = 2_000
    cache_max_entries: int = 100
    cache_ttl_seconds: float = 300.0
    context_radius: int = 100

    # Orchestrator
    debounce_ms: int = 400
    max_queue_health: int = 100
    queued_result_limit: int = 100  # completed queued results kept for lookup

    # App config
    api_host: str = "127.0.0.1"
    api_port: int = 8400
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
