from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    # Ollama host
    ollama_host: str = Field(default="http://localhost:11434", validation_alias="OLLAMA_HOST")

    # Retry policy
    generative_max_retries: int = 3
    generative_base_retry_delay_ms: int = 1000

    # Generation defaults
    generative_default_model: str = "llama2"

    # Logging
    generative_log_level: str = "info"

    # Extra config/prompt templates (YAML)
    generative_templates_path: str | None = None

    # HTTP client timeouts (seconds)
    generative_http_connect_timeout: float = 5.0
    generative_http_read_timeout: float = 300.0

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "populate_by_name": True,
    }


settings = Settings()
