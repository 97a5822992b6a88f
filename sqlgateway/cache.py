import hashlib
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from sqlgateway.models import Row


DEFAULT_TTL_SECONDS = 300.0
DEFAULT_SWEEP_EVERY = 100


def fingerprint(sql: str) -> str:
    """MD5 hex digest of the raw SQL text. No normalization is applied."""
    return hashlib.md5(sql.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    fingerprint: str
    database_id: str
    rows: List[Row]
    row_count: int
    elapsed_ms: int
    created_at: float


class ResultCache:
    """
    Time-bounded store of successful query results keyed by (fingerprint, database id).

    Expired entries read as absent. Every ``sweep_every`` puts, expired
    entries are also dropped so the store does not grow without bound.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sweep_every: int = DEFAULT_SWEEP_EVERY,
    ):
        self.ttl_seconds = ttl_seconds
        self.sweep_every = max(1, sweep_every)
        self._clock = clock
        self._entries: Dict[Tuple[str, str], CacheEntry] = {}
        self._puts_since_sweep = 0
        self._lock = threading.Lock()

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at < self.ttl_seconds

    def _drop_expired(self, now: float) -> int:
        # Caller holds the lock
        expired = [
            key for key, entry in self._entries.items()
            if not self._is_fresh(entry, now)
        ]
        for key in expired:
            del self._entries[key]
        self._puts_since_sweep = 0
        return len(expired)

    def get(self, fingerprint: str, database_id: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get((fingerprint, database_id))
        if entry is None or not self._is_fresh(entry, self._clock()):
            return None
        return entry

    def put(
        self,
        fingerprint: str,
        database_id: str,
        rows: List[Row],
        row_count: int,
        elapsed_ms: int,
    ) -> CacheEntry:
        now = self._clock()
        entry = CacheEntry(
            fingerprint=fingerprint,
            database_id=database_id,
            rows=list(rows),
            row_count=row_count,
            elapsed_ms=elapsed_ms,
            created_at=now,
        )
        with self._lock:
            self._entries[(fingerprint, database_id)] = entry
            self._puts_since_sweep += 1
            if self._puts_since_sweep >= self.sweep_every:
                self._drop_expired(now)
        return entry

    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        with self._lock:
            return self._drop_expired(now)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
