"""Tests for goal link resolution."""

import json
import threading
import pytest
from dataclasses import replace
from datetime import timedelta
from unittest.mock import MagicMock
from conftest import MATCH_TIME, FakeFetcher, make_result
from goal_replays.exceptions import (
    BlockedError,
    NetworkError,
    ParseError,
    ResolutionCancelled,
)
from goal_replays.models import GoalLink, GoalLinkKey, NOT_FOUND_MARKER, is_not_found
from goal_replays.services.link_cache import GoalLinkCache
from goal_replays.services.rate_limiter import RateLimiter
from goal_replays.services.reddit_service import RedditFetcher
from goal_replays.services.resolver import GoalLinkResolver, dedupe_by_url
from goal_replays.utils.persistence import MemoryStorage

STRATEGY_1 = "Wolves West Ham 41'"
STRATEGY_2 = "Wolves 41'"
GOOD_TITLE = "Wolves [3] - 0 West Ham - Mateus Mane 41'"


class FakeTime:
    """Monotonic clock and sleep that never actually wait."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class SequenceFetcher:
    """Fetcher that plays back one outcome per call."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.queries = []

    def search(self, query, limit, match_time, cancel_event=None, timeout=None):
        self.queries.append(query)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FailingStorage(MemoryStorage):
    def save(self, records):
        raise OSError("read-only file system")


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def make_resolver(cache, fake_time):
    def _make(fetcher, **kwargs):
        kwargs.setdefault('sleep', fake_time.sleep)
        kwargs.setdefault('clock', fake_time.clock)
        return GoalLinkResolver(cache, fetcher, **kwargs)
    return _make


def test_found_link_is_cached(make_resolver, cache, wolves_goal):
    """Test that strategy 1 success returns and caches the link."""
    good = make_result(GOOD_TITLE)
    fetcher = FakeFetcher({STRATEGY_1: [good]})
    resolver = make_resolver(fetcher)

    link = resolver.resolve(wolves_goal)

    assert link.url == good.url
    assert link.title == GOOD_TITLE
    assert link.post_url == good.post_url
    assert link.fetched_at == cache.now()
    assert fetcher.queries == [STRATEGY_1]
    assert cache.get(wolves_goal.key) == link


@pytest.mark.parametrize("responses", [
    {STRATEGY_1: [make_result(GOOD_TITLE)]},
    {},
])
def test_resolve_is_idempotent(make_resolver, wolves_goal, responses):
    """Test that a second resolve of a cached outcome makes no searches."""
    fetcher = FakeFetcher(responses)
    resolver = make_resolver(fetcher)

    first = resolver.resolve(wolves_goal)
    searches = len(fetcher.queries)
    second = resolver.resolve(wolves_goal)

    assert second == first
    assert len(fetcher.queries) == searches


def test_cached_negative_skips_search(make_resolver, cache, clock, wolves_goal):
    """Test that a recent "not found" answers without the network."""
    goal = replace(wolves_goal, match_id=100, minute=10)
    cache.set(GoalLink(match_id=100, minute=10, url=NOT_FOUND_MARKER,
                       fetched_at=clock() - timedelta(hours=2)))
    fetcher = FakeFetcher(default=[make_result("Wolves [1] - 0 West Ham - Mane 10'")])

    assert make_resolver(fetcher).resolve(goal) is None
    assert fetcher.queries == []


def test_expired_negative_searches_again(make_resolver, cache, clock, wolves_goal):
    """Test that a stale "not found" is replaced by a fresh search."""
    cache.set(GoalLink(match_id=wolves_goal.match_id, minute=41, url=NOT_FOUND_MARKER,
                       fetched_at=clock() - timedelta(days=2)))
    fetcher = FakeFetcher({STRATEGY_1: [make_result(GOOD_TITLE)]})

    link = make_resolver(fetcher).resolve(wolves_goal)

    assert link is not None
    assert not is_not_found(cache.get(wolves_goal.key))


def test_strategy_2_uses_scoring_team(make_resolver, wolves_goal):
    """Test the broader query when strategy 1 finds nothing acceptable."""
    weak = make_result("Wolves fans celebrate")
    good = make_result(GOOD_TITLE)
    fetcher = FakeFetcher({STRATEGY_1: [weak], STRATEGY_2: [good]})

    link = make_resolver(fetcher).resolve(wolves_goal)

    assert fetcher.queries == [STRATEGY_1, STRATEGY_2]
    assert link.url == good.url


def test_strategy_2_for_away_goal(make_resolver, wolves_goal):
    """Test that an away goal searches for the away team."""
    goal = replace(wolves_goal, is_home_team=False, scorer_name='Bowen')
    fetcher = FakeFetcher()

    make_resolver(fetcher).resolve(goal)

    assert fetcher.queries == [STRATEGY_1, "West Ham 41'"]


def test_pooled_results_are_deduplicated(make_resolver, cache, wolves_goal):
    """Test that both strategies are scored together, first copy kept."""
    shared_url = 'https://streamff.com/v/shared'
    first_copy = make_result("Wolves [3] - 0 West Ham - 41'", url=shared_url, created_at=cache.now() - timedelta(days=10))
    second_copy = make_result(GOOD_TITLE, url=shared_url)
    fetcher = FakeFetcher({STRATEGY_1: [first_copy], STRATEGY_2: [second_copy]})

    # The first copy is outside the match window, so its duplicate is dropped too
    assert make_resolver(fetcher).resolve(wolves_goal) is None
    assert is_not_found(cache.get(wolves_goal.key))


def test_dedupe_by_url():
    """Test order-preserving de-duplication by media URL."""
    a = make_result("A", url='https://x/1')
    b = make_result("B", url='https://x/2')
    c = make_result("C", url='https://x/1')

    assert dedupe_by_url([a, b, c]) == [a, b]


def test_not_found_is_cached(make_resolver, cache, wolves_goal):
    """Test that a clean search with no match stores a negative entry."""
    fetcher = FakeFetcher({STRATEGY_1: [make_result("Chelsea 2-1 Arsenal - highlights", score=9000)]})

    assert make_resolver(fetcher).resolve(wolves_goal) is None
    assert is_not_found(cache.get(wolves_goal.key))


def test_blocked_is_not_retried_or_cached(make_resolver, cache, fake_time, wolves_goal):
    """Test that a block aborts at once and leaves the cache untouched."""
    fetcher = FakeFetcher({STRATEGY_1: BlockedError("blocked", reason="captcha")})
    resolver = make_resolver(fetcher, retryable_errors=(NetworkError,))

    with pytest.raises(BlockedError):
        resolver.resolve(wolves_goal)

    assert fetcher.queries == [STRATEGY_1]
    assert fake_time.sleeps == []
    assert cache.get(wolves_goal.key) is None


@pytest.mark.parametrize("error", [
    NetworkError("connection reset"),
    ParseError("bad body"),
])
def test_errors_abort_by_default(make_resolver, cache, fake_time, wolves_goal, error):
    """Test that search errors surface without retry or caching."""
    fetcher = FakeFetcher({STRATEGY_1: error})

    with pytest.raises(type(error)):
        make_resolver(fetcher).resolve(wolves_goal)

    assert fetcher.queries == [STRATEGY_1]
    assert fake_time.sleeps == []
    assert cache.get(wolves_goal.key) is None


def test_strategy_2_error_caches_nothing(make_resolver, cache, wolves_goal):
    """Test that a failure in the broader query is not cached as not found."""
    fetcher = FakeFetcher({STRATEGY_1: [], STRATEGY_2: NetworkError("timeout")})

    with pytest.raises(NetworkError):
        make_resolver(fetcher).resolve(wolves_goal)

    assert cache.get(wolves_goal.key) is None


def test_retryable_errors_back_off(make_resolver, fake_time, wolves_goal):
    """Test configured retries wait attempt * base delay."""
    fetcher = SequenceFetcher([NetworkError("connection reset"), [make_result(GOOD_TITLE)]])
    resolver = make_resolver(fetcher, retryable_errors=(NetworkError,), retry_base_delay=60)

    link = resolver.resolve(wolves_goal)

    assert link is not None
    assert fake_time.sleeps == [60]
    assert fetcher.queries == [STRATEGY_1, STRATEGY_1]


def test_retries_are_bounded(make_resolver, fake_time, wolves_goal):
    """Test that the last attempt's error surfaces."""
    fetcher = SequenceFetcher([NetworkError("one"), NetworkError("two"), NetworkError("three")])
    resolver = make_resolver(fetcher, retryable_errors=(NetworkError,), max_attempts=2)

    with pytest.raises(NetworkError, match="two"):
        resolver.resolve(wolves_goal)

    assert len(fetcher.queries) == 2


def test_persistence_error_does_not_fail_resolution(clock, fake_time, wolves_goal):
    """Test that an unwritable cache file still returns the link."""
    cache = GoalLinkCache(FailingStorage(), clock=clock)
    fetcher = FakeFetcher({STRATEGY_1: [make_result(GOOD_TITLE)]})
    resolver = GoalLinkResolver(cache, fetcher, sleep=fake_time.sleep, clock=fake_time.clock)

    link = resolver.resolve(wolves_goal)

    assert link is not None
    assert resolver.resolve(wolves_goal) == link
    assert len(fetcher.queries) == 1


def test_cancelled_before_search(make_resolver, cache, wolves_goal):
    """Test that a set cancel event stops resolution before any request."""
    cancel = threading.Event()
    cancel.set()
    fetcher = FakeFetcher({STRATEGY_1: [make_result(GOOD_TITLE)]})

    with pytest.raises(ResolutionCancelled):
        make_resolver(fetcher).resolve(wolves_goal, cancel_event=cancel)

    assert fetcher.queries == []
    assert cache.get(wolves_goal.key) is None


def test_deadline_stops_retry_wait(make_resolver, cache, fake_time, wolves_goal):
    """Test that a retry delay longer than the time left aborts."""
    fetcher = SequenceFetcher([NetworkError("connection reset"), [make_result(GOOD_TITLE)]])
    resolver = make_resolver(fetcher, retryable_errors=(NetworkError,), retry_base_delay=60)

    with pytest.raises(ResolutionCancelled):
        resolver.resolve(wolves_goal, timeout=30)

    assert fake_time.sleeps == []
    assert cache.get(wolves_goal.key) is None


def test_resolve_many_deduplicates(make_resolver, wolves_goal):
    """Test one search for a key listed three times."""
    fetcher = FakeFetcher({STRATEGY_1: [make_result(GOOD_TITLE)]})

    results = make_resolver(fetcher).resolve_many([wolves_goal, wolves_goal, replace(wolves_goal, scorer_name='Other')])

    assert list(results) == [GoalLinkKey(wolves_goal.match_id, 41)]
    assert fetcher.queries == [STRATEGY_1]


def test_resolve_many_batch_pacing(make_resolver, fake_time, wolves_goal):
    """Test delays between batches only: 7 goals in batches of 3."""
    goals = [replace(wolves_goal, minute=minute) for minute in range(1, 8)]
    fetcher = FakeFetcher()
    resolver = make_resolver(fetcher, batch_size=3, batch_delay=5)

    resolver.resolve_many(goals)

    assert fake_time.sleeps == [5, 5]
    assert len(fetcher.queries) == 14


def test_resolve_many_no_delay_when_cached(make_resolver, cache, clock, fake_time, wolves_goal):
    """Test that cached goals are served without searching or pacing."""
    goals = [replace(wolves_goal, minute=minute) for minute in range(1, 8)]
    for goal in goals:
        cache.set_not_found(goal.match_id, goal.minute)
    fetcher = FakeFetcher()

    assert make_resolver(fetcher).resolve_many(goals) == {}
    assert fetcher.queries == []
    assert fake_time.sleeps == []


def test_resolve_many_only_returns_found_links(make_resolver, cache, clock, wolves_goal):
    """Test that negatives and failures are left out of the result."""
    cached_goal = replace(wolves_goal, minute=5)
    cached_link = GoalLink(match_id=wolves_goal.match_id, minute=5, url='https://streamff.com/v/cached',
                           fetched_at=clock())
    cache.set(cached_link)
    cache.set_not_found(wolves_goal.match_id, 6)

    blocked_goal = replace(wolves_goal, minute=70)
    missing_goal = replace(wolves_goal, minute=88)
    fetcher = FakeFetcher({
        STRATEGY_1: [make_result(GOOD_TITLE)],
        "Wolves West Ham 70'": BlockedError("blocked", reason="captcha"),
    })

    results = make_resolver(fetcher).resolve_many([
        cached_goal,
        replace(wolves_goal, minute=6),
        blocked_goal,
        wolves_goal,
        missing_goal,
    ])

    assert set(results) == {GoalLinkKey(wolves_goal.match_id, 5), GoalLinkKey(wolves_goal.match_id, 41)}
    assert results[GoalLinkKey(wolves_goal.match_id, 5)] == cached_link
    assert results[GoalLinkKey(wolves_goal.match_id, 41)].title == GOOD_TITLE
    assert cache.get(blocked_goal.key) is None
    assert is_not_found(cache.get(missing_goal.key))



def test_resolve_many_survives_unrepresentable_timestamp(make_resolver, cache, wolves_goal):
    """Test that a post with an impossible created_utc only skips its goal."""
    bad_listing = json.dumps({'data': {'children': [{'data': {
        'title': "Wolves [1] - 0 West Ham - Mane 10'",
        'url': 'https://streamff.com/v/bad',
        'permalink': '/r/soccer/comments/bad/',
        'link_flair_text': 'Media',
        'created_utc': 1e20,
        'score': 10,
    }}]}})
    good_listing = json.dumps({'data': {'children': [{'data': {
        'title': GOOD_TITLE,
        'url': 'https://streamff.com/v/good',
        'permalink': '/r/soccer/comments/good/',
        'link_flair_text': 'Media',
        'created_utc': MATCH_TIME.timestamp() + 3600,
        'score': 10,
    }}]}})
    session = MagicMock()
    session.get.side_effect = [
        MagicMock(status_code=200, text=bad_listing),
        MagicMock(status_code=200, text=good_listing),
    ]
    limiter = RateLimiter(requests_per_minute=60, user_agents=['agent-a'], sleep=lambda s: None)
    fetcher = RedditFetcher(rate_limiter=limiter, session=session, timeout=10)
    bad_goal = replace(wolves_goal, minute=10)

    results = make_resolver(fetcher).resolve_many([bad_goal, wolves_goal])

    assert list(results) == [wolves_goal.key]
    assert results[wolves_goal.key].url == 'https://streamff.com/v/good'
    assert cache.get(bad_goal.key) is None


def test_resolve_many_cancelled(make_resolver, cache, clock, wolves_goal):
    """Test that cancelling returns cached links without searching."""
    cache.set(GoalLink(match_id=wolves_goal.match_id, minute=5, url='https://streamff.com/v/cached',
                       fetched_at=clock()))
    cancel = threading.Event()
    cancel.set()
    fetcher = FakeFetcher()

    results = make_resolver(fetcher).resolve_many(
        [replace(wolves_goal, minute=5), wolves_goal], cancel_event=cancel
    )

    assert list(results) == [GoalLinkKey(wolves_goal.match_id, 5)]
    assert fetcher.queries == []


def test_lookup(make_resolver, cache, clock, wolves_goal):
    """Test the rendering accessor."""
    cache.set(GoalLink(match_id=1, minute=5, url='https://streamff.com/v/a', fetched_at=clock()))
    cache.set_not_found(1, 6)
    resolver = make_resolver(FakeFetcher())

    assert resolver.lookup(1, 5) == 'https://streamff.com/v/a'
    assert resolver.lookup(1, 6) is None
    assert resolver.lookup(1, 7) is None
    assert [link.minute for link in resolver.cached_links(1)] == [5]

    resolver.clear_cache()
    assert resolver.lookup(1, 5) is None


@pytest.mark.parametrize("kwargs", [
    {'max_attempts': 0},
    {'batch_size': 0},
])
def test_invalid_configuration(cache, kwargs):
    """Test that impossible retry and batch settings are rejected."""
    with pytest.raises(ValueError):
        GoalLinkResolver(cache, FakeFetcher(), **kwargs)
