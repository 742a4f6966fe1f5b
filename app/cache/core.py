"""
Core cache data structures.
"""
import json
from dataclasses import dataclass, asdict
from typing import Any, Optional


@dataclass
class CacheEntry:
    """
    A cached value with the metadata needed for freshness checks.

    The value is opaque to the cache: it only has to survive a JSON round trip.
    """
    key: str
    value: Any
    stored_at: float
    ttl: Optional[float] = None  # None = no TTL expiry

    def age(self, now: float) -> float:
        """Seconds since the entry was written."""
        return max(0.0, now - self.stored_at)

    def is_fresh(self, now: float) -> bool:
        """Check if the entry is still within its TTL."""
        if self.ttl is None:
            return True
        return now - self.stored_at < self.ttl

    def is_expired(self, now: float) -> bool:
        return not self.is_fresh(now)

    @property
    def expires_at(self) -> Optional[float]:
        if self.ttl is None:
            return None
        return self.stored_at + self.ttl

    def serialize(self) -> str:
        """Encode for a string-valued storage medium."""
        return json.dumps(asdict(self), separators=(",", ":"))

    @classmethod
    def deserialize(cls, raw: str) -> "CacheEntry":
        """
        Decode a stored entry.

        Raises:
            ValueError: If the payload is not a well-formed entry
        """
        try:
            payload = json.loads(raw)
            return cls(
                key=payload["key"],
                value=payload["value"],
                stored_at=float(payload["stored_at"]),
                ttl=None if payload.get("ttl") is None else float(payload["ttl"]),
            )
        except (TypeError, KeyError, json.JSONDecodeError) as e:
            raise ValueError(f"Corrupted cache entry: {e}") from e
