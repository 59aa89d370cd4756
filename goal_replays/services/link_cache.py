"""Persistent cache of goal replay links."""

import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional
from goal_replays.exceptions import PersistenceError
from goal_replays.models import GoalLink, GoalLinkKey, NOT_FOUND_MARKER
from goal_replays.utils.logger import app_logger
from goal_replays.utils.persistence import LinkStorage

# How long a found link is kept
CACHE_TTL = timedelta(days=7)

# How long a "not found" result is kept; clips are sometimes posted late
NOT_FOUND_TTL = timedelta(days=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _ReadWriteLock:
    """Many concurrent readers or a single writer.

    New readers queue behind a waiting writer so writes are not starved.
    Read locks are not reentrant.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class GoalLinkCache:
    """Goal links keyed by (match_id, minute), persisted through a storage backend.

    Found links live for CACHE_TTL and "not found" markers for NOT_FOUND_TTL.
    Expired entries are invisible to readers and are only removed by
    clean_expired(), which runs once when the cache is created.
    """

    def __init__(self, storage: LinkStorage, clock: Callable[[], datetime] = utc_now):
        self.storage = storage
        self.now = clock
        self._lock = _ReadWriteLock()
        self._links: Dict[GoalLinkKey, GoalLink] = {}

        self._load()

        try:
            removed = self.clean_expired()
            if removed:
                app_logger.info(f"[CACHE] Removed {removed} expired goal links on startup")
        except PersistenceError as e:
            app_logger.error(f"[CACHE] Could not persist startup cleanup: {e}")

    def _load(self) -> None:
        for record in self.storage.load():
            try:
                link = GoalLink.from_dict(record)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                app_logger.warning(f"[CACHE] Skipping malformed record {record!r}: {e}")
                continue
            self._links[link.key] = link
        app_logger.debug(f"[CACHE] Loaded {len(self._links)} goal links")

    def _is_expired(self, link: GoalLink, now: datetime) -> bool:
        ttl = NOT_FOUND_TTL if link.is_not_found else CACHE_TTL
        return now - link.fetched_at > ttl

    def _save_locked(self) -> None:
        """Write the whole map to storage. Caller must hold the write lock."""
        records = [link.to_dict() for link in self._links.values()]
        try:
            self.storage.save(records)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(
                f"Failed to write goal link cache: {e}",
                details={'entries': len(records)}
            ) from e

    def get(self, key: GoalLinkKey) -> Optional[GoalLink]:
        """Return the entry for key if present and unexpired.

        "Not found" markers are returned too; use is_not_found() to tell them
        apart from real links.
        """
        with self._lock.read_locked():
            link = self._links.get(key)
            if link is None or self._is_expired(link, self.now()):
                return None
            return link

    def set(self, link: GoalLink) -> None:
        """Upsert a link and persist the cache.

        Raises:
            PersistenceError: If storage could not be written. The in-memory
                entry is kept either way.
        """
        with self._lock.write_locked():
            self._links[link.key] = link
            self._save_locked()

    def set_not_found(self, match_id: int, minute: int) -> None:
        """Record that a goal was searched for and nothing was found."""
        self.set(GoalLink(
            match_id=match_id,
            minute=minute,
            url=NOT_FOUND_MARKER,
            fetched_at=self.now()
        ))

    def get_all(self, match_id: int) -> List[GoalLink]:
        """Return every unexpired found link for a match, ordered by minute."""
        with self._lock.read_locked():
            now = self.now()
            links = [
                link for link in self._links.values()
                if link.match_id == match_id
                and not link.is_not_found
                and not self._is_expired(link, now)
            ]
        return sorted(links, key=lambda link: link.minute)

    def clear(self) -> None:
        """Remove every entry and persist the empty cache."""
        with self._lock.write_locked():
            self._links = {}
            self._save_locked()

    def clean_expired(self) -> int:
        """Drop entries older than their TTL.

        Returns:
            int: Number of entries removed. Storage is only written when this
                is non-zero.
        """
        with self._lock.write_locked():
            now = self.now()
            expired = [key for key, link in self._links.items() if self._is_expired(link, now)]
            for key in expired:
                del self._links[key]
            if expired:
                self._save_locked()
        return len(expired)

    def size(self) -> int:
        with self._lock.read_locked():
            return len(self._links)

    def __len__(self) -> int:
        return self.size()
