from __future__ import annotations

import os
from dataclasses import dataclass


DEFAULT_DATASET_URL = "https://api.apify.com/v2/datasets/{dataset_id}/items?clean=true&format=json"
DEFAULT_STORAGE_PATH = ".listing_map/storage.json"


@dataclass(slots=True)
class Settings:
    supabase_url: str | None
    supabase_key: str | None
    map_token: str
    dataset_url: str = DEFAULT_DATASET_URL
    dataset_timeout_seconds: float = 30.0
    storage_path: str = DEFAULT_STORAGE_PATH

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            supabase_url=os.environ.get("SUPABASE_URL"),
            supabase_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or os.environ.get("SUPABASE_ANON_KEY"),
            map_token=sanitize_map_token(os.environ.get("MAPBOX_TOKEN")),
            dataset_url=os.environ.get("APIFY_DATASET_URL") or DEFAULT_DATASET_URL,
            dataset_timeout_seconds=_env_float("APIFY_TIMEOUT_SECONDS", 30.0),
            storage_path=os.environ.get("LISTING_MAP_STORAGE_PATH") or DEFAULT_STORAGE_PATH,
        )


def sanitize_map_token(raw: str | None) -> str:
    token = (raw or "").strip()
    # Tokens pasted with the prefix twice are common in .env files.
    if token.startswith("pk.pk."):
        token = token[3:]
    return token


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except (TypeError, ValueError):
        return default
