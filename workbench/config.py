"""Workbench configuration — loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_prefix": "WORKBENCH_", "env_file": ".env"}

    # Compliance backend
    api_base_url: str = "http://localhost:8080/api"
    request_timeout: float | None = None

    # Chat
    history_window: int = 10

    # Local storage (system prompt override)
    storage_path: str = "workbench.db"


settings = Settings()
