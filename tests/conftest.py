"""Test configuration and fixtures."""

import os
import tempfile

# Keep test logs out of the user's config directory
os.environ.setdefault('GOAL_REPLAYS_LOG_DIR', os.path.join(tempfile.gettempdir(), 'goal-replays-test-logs'))

import itertools
import pytest
from datetime import datetime, timedelta, timezone
from goal_replays.models import GoalInfo, SearchResult
from goal_replays.services.link_cache import GoalLinkCache
from goal_replays.utils.persistence import MemoryStorage

MATCH_TIME = datetime(2024, 12, 14, 15, 0, tzinfo=timezone.utc)

_post_ids = itertools.count(1)


class FakeClock:
    """Settable clock for TTL tests."""

    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current += delta


class FakeFetcher:
    """Fetcher returning canned results per query and recording every call."""

    def __init__(self, responses=None, default=None):
        self.responses = responses or {}
        self.default = default if default is not None else []
        self.queries = []

    def search(self, query, limit, match_time, cancel_event=None, timeout=None):
        self.queries.append(query)
        response = self.responses.get(query, self.default)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response()
        return list(response)


def make_result(title, url=None, created_at=None, score=0, flair='Media'):
    """Build a search result posted shortly after kick-off."""
    post_id = next(_post_ids)
    return SearchResult(
        title=title,
        url=url or f"https://streamff.com/v/{post_id}",
        post_url=f"https://www.reddit.com/r/soccer/comments/{post_id}/",
        flair=flair,
        created_at=created_at or MATCH_TIME + timedelta(hours=1),
        score=score
    )


@pytest.fixture
def match_time():
    """Fixture for kick-off time."""
    return MATCH_TIME


@pytest.fixture
def wolves_goal():
    """Fixture for a home goal in Wolves vs West Ham."""
    return GoalInfo(
        match_id=4506321,
        home_team='Wolves',
        away_team='West Ham',
        scorer_name='Mane',
        minute=41,
        is_home_team=True,
        match_time=MATCH_TIME
    )


@pytest.fixture
def clock():
    """Fixture for a controllable UTC clock."""
    return FakeClock(datetime(2024, 12, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def storage():
    """Fixture for in-memory cache storage."""
    return MemoryStorage()


@pytest.fixture
def cache(storage, clock):
    """Fixture for an isolated goal link cache."""
    return GoalLinkCache(storage, clock=clock)
