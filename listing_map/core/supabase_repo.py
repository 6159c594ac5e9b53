from __future__ import annotations

from typing import Any

from supabase import Client, create_client


LISTING_SELECT = "*, price_history (price, recorded_at)"


class SupabaseRepo:
    def __init__(self, url: str | None = None, key: str | None = None) -> None:
        if not url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required.")
        self.client: Client = create_client(url, key)

    def fetch_listings_with_history(self) -> list[dict[str, Any]]:
        return self.client.table("properties").select(LISTING_SELECT).execute().data or []

    def upsert_properties(self, rows: list[dict[str, Any]]) -> None:
        if rows:
            self.client.table("properties").upsert(rows, on_conflict="id").execute()

    def insert_price_history(self, rows: list[dict[str, Any]]) -> None:
        if rows:
            self.client.table("price_history").insert(rows).execute()

    def get_recent_debug_logs(self, limit: int = 5) -> list[dict[str, Any]]:
        return (
            self.client.table("debug_logs")
            .select("*")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
            .data
            or []
        )
