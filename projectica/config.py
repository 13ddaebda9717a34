import json
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel

from dotenv import load_dotenv

CONFIG_PATH = Path("config.json")
ENV_OVERRIDE_KEY = "PROJECTICA_ENV_OVERRIDES_CONFIG"
ENV_OVERRIDE_TRUE = {"1", "true", "yes", "on"}
SECRET_FIELDS = ("openai_api_key", "perplexity_api_key", "serpapi_api_key")


class AppSettings(BaseModel):
    # Completion / assistant service
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    default_model: str = "gpt-4"

    # Search with citations
    perplexity_api_key: Optional[str] = None
    perplexity_base_url: str = "https://api.perplexity.ai"
    perplexity_model: str = "sonar-pro"

    # Trends
    serpapi_api_key: Optional[str] = None
    trends_base_url: str = "https://serpapi.com/search.json"

    # Run polling
    poll_backoff: Literal["fixed", "exponential"] = "fixed"
    poll_interval_s: float = 1.0
    poll_max_interval_s: float = 8.0
    poll_max_attempts: int = 30
    cancel_on_timeout: bool = True

    http_timeout_s: float = 60.0
    database_path: str = "projectica.db"
    host: str = "0.0.0.0"
    port: int = 8000

    def to_safe_dict(self) -> dict:
        data = self.model_dump()
        for key in SECRET_FIELDS:
            if data.get(key):
                data[key] = "********"
        return data

    model_config = {"protected_namespaces": ()}


def _load_from_env() -> dict:
    load_dotenv()
    env_map = {
        "openai_api_key": os.getenv("OPENAI_API_KEY"),
        "openai_base_url": os.getenv("OPENAI_BASE_URL"),
        "default_model": os.getenv("DEFAULT_MODEL"),
        "perplexity_api_key": os.getenv("PERPLEXITY_API_KEY"),
        "perplexity_base_url": os.getenv("PERPLEXITY_BASE_URL"),
        "perplexity_model": os.getenv("PERPLEXITY_MODEL"),
        "serpapi_api_key": os.getenv("SERPAPI_API_KEY"),
        "trends_base_url": os.getenv("TRENDS_BASE_URL"),
        "poll_backoff": os.getenv("POLL_BACKOFF"),
        "poll_interval_s": os.getenv("POLL_INTERVAL_S"),
        "poll_max_interval_s": os.getenv("POLL_MAX_INTERVAL_S"),
        "poll_max_attempts": os.getenv("POLL_MAX_ATTEMPTS"),
        "cancel_on_timeout": os.getenv("CANCEL_ON_TIMEOUT"),
        "http_timeout_s": os.getenv("HTTP_TIMEOUT_S"),
        "database_path": os.getenv("DATABASE_PATH"),
        "host": os.getenv("HOST"),
        "port": os.getenv("PORT"),
    }
    cleaned = {k: v for k, v in env_map.items() if v not in (None, "")}
    for key in ("poll_max_attempts", "port"):
        if key in cleaned:
            cleaned[key] = int(cleaned[key])
    for key in ("poll_interval_s", "poll_max_interval_s", "http_timeout_s"):
        if key in cleaned:
            cleaned[key] = float(cleaned[key])
    if "cancel_on_timeout" in cleaned:
        cleaned["cancel_on_timeout"] = str(cleaned["cancel_on_timeout"]).lower() in ENV_OVERRIDE_TRUE
    if "poll_backoff" in cleaned:
        cleaned["poll_backoff"] = str(cleaned["poll_backoff"]).strip().lower()
    return cleaned


def _env_overrides_config() -> bool:
    return str(os.getenv(ENV_OVERRIDE_KEY, "")).strip().lower() in ENV_OVERRIDE_TRUE


def load_settings(config_path: Optional[Path] = None) -> AppSettings:
    env_data = _load_from_env()
    path = config_path or CONFIG_PATH
    file_data: Dict[str, Any] = {}
    if path.exists():
        try:
            file_data = json.loads(path.read_text())
        except ValueError:
            file_data = {}
    # Config wins by default; allow env overrides only when explicitly enabled.
    if _env_overrides_config():
        merged = {**file_data, **env_data}
    else:
        merged = {**env_data, **file_data}
    # Secrets usually live only in the environment.
    for key in SECRET_FIELDS:
        if not merged.get(key) and env_data.get(key):
            merged[key] = env_data[key]
    return AppSettings(**merged)
