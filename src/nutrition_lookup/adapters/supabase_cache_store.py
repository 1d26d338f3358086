"""Supabase implementation of the durable cache tier."""

from dataclasses import dataclass
from datetime import datetime

from supabase import Client

from nutrition_lookup.services.cache import CacheStore

_TABLE = "nutrition_cache"


@dataclass
class SupabaseCacheStore(CacheStore):
    """Supabase-backed cache store keyed by normalized query."""

    client: Client

    def get(self, key: str) -> dict[str, object] | None:
        """Return a stored payload, if present."""
        response = (
            self.client.table(_TABLE)
            .select("value, expires_at")
            .eq("key", key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return {"value": row["value"], "expires_at": row["expires_at"]}

    def set(self, key: str, payload: dict[str, object], expires_at: datetime) -> None:
        """Insert or replace a payload."""
        self.client.table(_TABLE).upsert(
            {
                "key": key,
                "value": payload,
                "expires_at": expires_at.isoformat(),
            }
        ).execute()

    def delete(self, key: str) -> None:
        """Delete a payload by key."""
        self.client.table(_TABLE).delete().eq("key", key).execute()

    def clear(self) -> None:
        """Delete every cached payload."""
        self.client.table(_TABLE).delete().neq("key", "").execute()
