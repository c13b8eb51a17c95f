from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel

from .constants import DEFAULT_MODEL, MAX_STEPS_DEFAULT


class AgentConfig(BaseModel):
    """Defaults applied to agent runs."""

    default_model: str = DEFAULT_MODEL
    max_steps: int = MAX_STEPS_DEFAULT
    max_concurrent_runs: int = 4


class BrowserConfig(BaseModel):
    """Browser session storage and pacing."""

    sessions_dir: str = str(Path.home() / ".volo" / "sessions")
    session_secret: Optional[str] = None
    batch_limit: int = 15
    min_delay_seconds: float = 8.0
    max_delay_seconds: float = 20.0


class SearchConfig(BaseModel):
    """Web search provider credentials."""

    brave_api_key: Optional[str] = None
    tavily_api_key: Optional[str] = None


class VoloConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    agent: AgentConfig = AgentConfig()
    browser: BrowserConfig = BrowserConfig()
    search: SearchConfig = SearchConfig()


def load_config(path: Optional[str] = None) -> VoloConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to VOLO_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("VOLO_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = VoloConfig(**data)
    else:
        config = VoloConfig()

    env_db_url = os.getenv("VOLO_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    if data_dir := os.getenv("VOLO_DATA_DIR"):
        config.browser.sessions_dir = str(Path(data_dir) / "sessions")
    if secret := os.getenv("VOLO_SESSION_SECRET"):
        config.browser.session_secret = secret
    if brave := os.getenv("BRAVE_SEARCH_API_KEY"):
        config.search.brave_api_key = brave
    if tavily := os.getenv("TAVILY_API_KEY"):
        config.search.tavily_api_key = tavily
    return config
