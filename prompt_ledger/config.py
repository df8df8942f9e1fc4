"""Application configuration: reads from environment variables and Docker Swarm secrets."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings


def _read_secret(name: str) -> str | None:
    """Read a Docker Swarm secret from /run/secrets/."""
    secret_path = Path(f"/run/secrets/{name}")
    if secret_path.exists():
        return secret_path.read_text().strip()
    return None


class Settings(BaseSettings):
    """Application settings with env var and secret support."""

    supabase_url: str = ""
    supabase_key: str = ""
    nats_url: str = "nats://localhost:4222"
    port: int = 8400
    log_level: str = "INFO"

    # Signing key for pagination cursors; cursors minted under another key are rejected
    cursor_secret: str = "change-me"
    default_page_size: int = 20
    max_page_size: int = 100

    # "full" compares every field of the event's after_state, "touched" only
    # the fields that event changed
    conflict_scope: Literal["full", "touched"] = "full"
    restore_max_attempts: int = 3
    max_tree_depth: int = 64

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Override with Docker Swarm secrets if available
        if secret := _read_secret("supabase_url"):
            self.supabase_url = secret
        if secret := _read_secret("supabase_key"):
            self.supabase_key = secret
        if secret := _read_secret("cursor_secret"):
            self.cursor_secret = secret
        if secret := _read_secret("nats_url"):
            self.nats_url = secret


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
