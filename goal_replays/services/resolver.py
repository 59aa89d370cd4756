"""Resolution of goals to Reddit replay links."""

import threading
import time
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Type
from goal_replays.config import (
    BATCH_DELAY,
    BATCH_SIZE,
    GOAL_LINKS_FILE,
    MAX_SEARCH_ATTEMPTS,
    RETRY_BASE_DELAY,
    SEARCH_RESULT_LIMIT,
)
from goal_replays.exceptions import (
    BlockedError,
    PersistenceError,
    ReplaySearchError,
    ResolutionCancelled,
    SearchError,
)
from goal_replays.models import GoalInfo, GoalLink, GoalLinkKey, SearchResult
from goal_replays.services.link_cache import GoalLinkCache
from goal_replays.services.reddit_service import Fetcher, create_reddit_fetcher
from goal_replays.utils.logger import app_logger
from goal_replays.utils.persistence import JsonFileStorage
from goal_replays.utils.score_utils import find_best_match


def dedupe_by_url(results: Iterable[SearchResult]) -> List[SearchResult]:
    """Drop results whose media URL was already seen, keeping the first."""
    seen = set()
    unique = []
    for result in results:
        if result.url in seen:
            continue
        seen.add(result.url)
        unique.append(result)
    return unique


class GoalLinkResolver:
    """Finds replay links for goals, using the cache before searching Reddit.

    A search runs two queries at most: both teams plus the minute, then the
    scoring team plus the minute if the first found nothing good enough.
    Completed searches are cached whether or not a link was found; failed
    searches are not, so a later call can try again.
    """

    def __init__(
        self,
        cache: GoalLinkCache,
        fetcher: Fetcher,
        max_attempts: int = MAX_SEARCH_ATTEMPTS,
        retry_base_delay: float = RETRY_BASE_DELAY,
        retryable_errors: Tuple[Type[SearchError], ...] = (),
        batch_size: int = BATCH_SIZE,
        batch_delay: float = BATCH_DELAY,
        search_limit: int = SEARCH_RESULT_LIMIT,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")

        self.cache = cache
        self.fetcher = fetcher
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self.retryable_errors = tuple(retryable_errors)
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.search_limit = search_limit
        self._sleep = sleep
        self._clock = clock

    def _remaining(self, cancel_event: Optional[threading.Event], deadline: Optional[float]) -> Optional[float]:
        """Seconds left before the deadline, raising if already cancelled."""
        if cancel_event is not None and cancel_event.is_set():
            raise ResolutionCancelled("Resolution cancelled by caller")
        if deadline is None:
            return None
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise ResolutionCancelled("Resolution deadline passed")
        return remaining

    def _pause(self, delay: float, cancel_event: Optional[threading.Event], deadline: Optional[float]) -> None:
        remaining = self._remaining(cancel_event, deadline)
        if remaining is not None and delay > remaining:
            raise ResolutionCancelled(f"Waiting {delay:.0f}s would pass the resolution deadline")
        if cancel_event is not None:
            if cancel_event.wait(delay):
                raise ResolutionCancelled("Resolution cancelled by caller")
        else:
            self._sleep(delay)

    def _search(
        self,
        query: str,
        goal: GoalInfo,
        cancel_event: Optional[threading.Event],
        deadline: Optional[float]
    ) -> List[SearchResult]:
        remaining = self._remaining(cancel_event, deadline)
        app_logger.info(f"Reddit search query: '{query}' for goal {goal.match_id}:{goal.minute}")
        results = self.fetcher.search(
            query,
            self.search_limit,
            goal.match_time,
            cancel_event=cancel_event,
            timeout=remaining
        )
        app_logger.info(f"Reddit search returned {len(results)} results for '{query}'")
        return results

    def _search_once(
        self,
        goal: GoalInfo,
        cancel_event: Optional[threading.Event],
        deadline: Optional[float]
    ) -> Optional[SearchResult]:
        """Run the query strategies for one goal and return the best match."""
        # Strategy 1: both teams + minute
        query = f"{goal.home_team} {goal.away_team} {goal.minute}'"
        first_results = self._search(query, goal, cancel_event, deadline)
        match = find_best_match(first_results, goal)
        if match:
            return match

        # Strategy 2: scoring team + minute, scored together with strategy 1
        query = f"{goal.scoring_team} {goal.minute}'"
        second_results = self._search(query, goal, cancel_event, deadline)
        return find_best_match(dedupe_by_url(first_results + second_results), goal)

    def _search_for_goal(
        self,
        goal: GoalInfo,
        cancel_event: Optional[threading.Event],
        deadline: Optional[float]
    ) -> Optional[SearchResult]:
        """Search with bounded retries.

        Blocks are never retried. Other errors are retried only when listed in
        retryable_errors; attempt n waits n * retry_base_delay first.
        """
        for attempt in range(self.max_attempts):
            if attempt > 0:
                delay = attempt * self.retry_base_delay
                app_logger.info(
                    f"Retrying goal {goal.match_id}:{goal.minute} in {delay:.0f}s "
                    f"(attempt {attempt + 1}/{self.max_attempts})"
                )
                self._pause(delay, cancel_event, deadline)

            try:
                return self._search_once(goal, cancel_event, deadline)
            except BlockedError:
                app_logger.warning(f"[BLOCKED] Reddit blocking goal {goal.match_id}:{goal.minute}: giving up immediately")
                raise
            except SearchError as e:
                if isinstance(e, self.retryable_errors) and attempt < self.max_attempts - 1:
                    app_logger.warning(f"Search failed for goal {goal.match_id}:{goal.minute}: {e}")
                    continue
                raise

    def _store(self, link: GoalLink) -> None:
        try:
            self.cache.set(link)
        except PersistenceError as e:
            app_logger.error(f"[CACHE] {e}")

    def resolve(
        self,
        goal: GoalInfo,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None
    ) -> Optional[GoalLink]:
        """Return the replay link for a goal, searching Reddit on a cache miss.

        Args:
            goal (GoalInfo): Goal to resolve
            cancel_event (threading.Event, optional): Set to abort the search
            timeout (float, optional): Seconds allowed for the whole search

        Returns:
            GoalLink: The replay link, or None if no replay was found (now or
                on a cached earlier search)

        Raises:
            BlockedError: Reddit is blocking requests; nothing was cached
            NetworkError, ParseError: The search failed; nothing was cached
            ResolutionCancelled: Cancelled or out of time; nothing was cached
        """
        cached = self.cache.get(goal.key)
        if cached is not None:
            if cached.is_not_found:
                app_logger.debug(f"[CACHE] Goal {goal.match_id}:{goal.minute} previously not found")
                return None
            app_logger.debug(f"[CACHE] Goal {goal.match_id}:{goal.minute} -> {cached.url}")
            return cached

        deadline = self._clock() + timeout if timeout is not None else None
        match = self._search_for_goal(goal, cancel_event, deadline)

        if match is None:
            app_logger.info(f"No replay found for goal {goal.match_id}:{goal.minute} ({goal.home_team} vs {goal.away_team})")
            try:
                self.cache.set_not_found(goal.match_id, goal.minute)
            except PersistenceError as e:
                app_logger.error(f"[CACHE] {e}")
            return None

        link = GoalLink(
            match_id=goal.match_id,
            minute=goal.minute,
            url=match.url,
            title=match.title,
            post_url=match.post_url,
            fetched_at=self.cache.now()
        )
        app_logger.info(f"Found goal link for {goal.match_id}:{goal.minute}: {link.url}")
        self._store(link)
        return link

    def resolve_many(
        self,
        goals: Iterable[GoalInfo],
        cancel_event: Optional[threading.Event] = None
    ) -> Dict[GoalLinkKey, GoalLink]:
        """Resolve several goals, pacing searches in small batches.

        Duplicate keys are searched once and cached outcomes are served
        directly. Goals that end up not found, fail, or are blocked are left
        out of the result. Cancelling returns what was resolved so far.

        Returns:
            dict: Found links keyed by (match_id, minute)
        """
        results: Dict[GoalLinkKey, GoalLink] = {}
        seen = set()
        uncached: List[GoalInfo] = []

        for goal in goals:
            key = goal.key
            if key in seen:
                continue
            seen.add(key)

            cached = self.cache.get(key)
            if cached is not None:
                if not cached.is_not_found:
                    results[key] = cached
                continue

            uncached.append(goal)

        app_logger.info(f"Resolving {len(uncached)} uncached goals ({len(results)} served from cache)")

        for start in range(0, len(uncached), self.batch_size):
            try:
                if start > 0:
                    self._pause(self.batch_delay, cancel_event, None)

                for goal in uncached[start:start + self.batch_size]:
                    try:
                        link = self.resolve(goal, cancel_event=cancel_event)
                    except ResolutionCancelled:
                        raise
                    except ReplaySearchError as e:
                        app_logger.warning(f"[SKIP] Goal {goal.match_id}:{goal.minute}: {e}")
                        continue
                    if link is not None:
                        results[goal.key] = link
            except ResolutionCancelled:
                app_logger.info(f"Batch resolution cancelled with {len(results)} links resolved")
                break

        return results

    def lookup(self, match_id: int, minute: int) -> Optional[str]:
        """Return the cached replay URL for a goal, without searching."""
        link = self.cache.get(GoalLinkKey(match_id, minute))
        if link is None or link.is_not_found:
            return None
        return link.url

    def cached_links(self, match_id: int) -> List[GoalLink]:
        """Return every cached replay link for a match."""
        return self.cache.get_all(match_id)

    def clear_cache(self) -> None:
        """Forget every cached result."""
        self.cache.clear()


def create_resolver() -> GoalLinkResolver:
    """Create a resolver backed by the per-user cache file and Reddit."""
    cache = GoalLinkCache(JsonFileStorage(GOAL_LINKS_FILE))
    return GoalLinkResolver(cache, create_reddit_fetcher())
