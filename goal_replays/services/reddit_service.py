"""Reddit service for searching r/soccer goal clips."""

import json
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
import requests
from goal_replays.config import REDDIT_HTTP_TIMEOUT
from goal_replays.config.reddit import (
    MEDIA_FLAIR,
    REDDIT_BASE_URL,
    SEARCH_URL,
    SEARCH_WINDOW_AFTER_HOURS,
    SEARCH_WINDOW_BEFORE_HOURS,
)
from goal_replays.exceptions import BlockedError, NetworkError, ParseError
from goal_replays.models import SearchResult
from goal_replays.services.rate_limiter import RateLimiter
from goal_replays.utils.logger import search_logger
from goal_replays.utils.response_utils import detect_block


class Fetcher(ABC):
    """Source of search results for goal clip queries."""

    @abstractmethod
    def search(
        self,
        query: str,
        limit: int,
        match_time: Optional[datetime],
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None
    ) -> List[SearchResult]:
        """Search for Media posts matching query around match_time.

        Raises:
            NetworkError, ParseError, BlockedError
        """


def search_window(match_time: Optional[datetime]) -> Tuple[int, int]:
    """Return the (start, end) epoch seconds searched around a match."""
    anchor = match_time or datetime.now(timezone.utc)
    if anchor.tzinfo is None:
        anchor = anchor.replace(tzinfo=timezone.utc)
    start = anchor - timedelta(hours=SEARCH_WINDOW_BEFORE_HOURS)
    end = anchor + timedelta(hours=SEARCH_WINDOW_AFTER_HOURS)
    return int(start.timestamp()), int(end.timestamp())


def build_search_params(query: str, limit: int, match_time: Optional[datetime]) -> Dict[str, Any]:
    """Build query string parameters for a flair- and time-restricted r/soccer search.

    Reddit's search accepts flair:NAME and timestamp:START..END inside q.
    """
    start, end = search_window(match_time)
    return {
        'q': f"{query} flair:{MEDIA_FLAIR} timestamp:{start}..{end}",
        'restrict_sr': 'on',
        'sort': 'relevance',
        'limit': limit
    }


def _reddit_video_url(media: Optional[Dict[str, Any]]) -> Optional[str]:
    if not isinstance(media, dict):
        return None
    reddit_video = media.get('reddit_video')
    if isinstance(reddit_video, dict):
        return reddit_video.get('fallback_url') or None
    return None


def post_to_search_result(post: Dict[str, Any]) -> SearchResult:
    """Convert a post from Reddit's listing JSON to a SearchResult.

    A hosted Reddit video takes precedence over the post's link URL.
    """
    media_url = (
        _reddit_video_url(post.get('secure_media'))
        or _reddit_video_url(post.get('media'))
        or post.get('url')
        or ''
    )

    return SearchResult(
        title=post.get('title') or '',
        url=media_url,
        post_url=f"{REDDIT_BASE_URL}{post.get('permalink') or ''}",
        flair=post.get('link_flair_text') or '',
        created_at=datetime.fromtimestamp(int(post.get('created_utc') or 0), tz=timezone.utc),
        score=int(post.get('score') or 0)
    )


def parse_search_response(body: str) -> List[SearchResult]:
    """Parse a search listing, keeping only Media flaired posts.

    Raises:
        ParseError: If the body is not a Reddit listing
    """
    try:
        payload = json.loads(body)
        children = payload['data']['children']
        posts = [child['data'] for child in children]
        results = [post_to_search_result(post) for post in posts]
    except (ValueError, KeyError, TypeError, AttributeError, OverflowError, OSError) as e:
        raise ParseError(
            f"Failed to parse Reddit search response: {e}",
            details={'body': body[:200]}
        ) from e

    return [result for result in results if result.flair == MEDIA_FLAIR]


class RedditFetcher(Fetcher):
    """Searches r/soccer through Reddit's public JSON endpoint (no auth)."""

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None,
        timeout: float = REDDIT_HTTP_TIMEOUT
    ):
        self.rate_limiter = rate_limiter or RateLimiter()
        self.session = session or requests.Session()
        self.timeout = timeout

    def _blocked(self, reason: str, query: str, status_code: int) -> BlockedError:
        self.rate_limiter.record_block()
        search_logger.warning(f"[BLOCKED] Reddit is blocking requests for '{query}': {reason}")
        return BlockedError(
            f"Reddit is blocking requests (CAPTCHA/bot detection): {reason}",
            reason=reason,
            details={'query': query, 'status_code': status_code}
        )

    def search(
        self,
        query: str,
        limit: int,
        match_time: Optional[datetime],
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None
    ) -> List[SearchResult]:
        """Search r/soccer for Media posts matching query.

        Args:
            query (str): Free text, e.g. "Wolves West Ham 41'"
            limit (int): Maximum number of posts requested
            match_time (datetime, optional): Kick-off; results are limited to
                one day before to two days after
            cancel_event (threading.Event, optional): Aborts the rate limit wait
            timeout (float, optional): Seconds the caller can still spend

        Returns:
            list: Media flaired search results

        Raises:
            NetworkError: Transport failure or unexpected status
            ParseError: Body is not a search listing
            BlockedError: Reddit served a CAPTCHA, bot page or 429
        """
        waited = self.rate_limiter.wait(cancel_event=cancel_event, timeout=timeout)

        request_timeout = self.timeout
        if timeout is not None:
            request_timeout = max(0.1, min(self.timeout, timeout - waited))

        params = build_search_params(query, limit, match_time)
        headers = {'User-Agent': self.rate_limiter.next_user_agent()}
        search_logger.info(f"Searching r/soccer: {params['q']}")

        try:
            response = self.session.get(SEARCH_URL, params=params, headers=headers, timeout=request_timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Failed to fetch from Reddit: {e}", details={'query': query}) from e

        body = response.text

        if response.status_code == 429:
            raise self._blocked("HTTP 429 Too Many Requests", query, response.status_code)

        if response.status_code != 200:
            reason = detect_block(body)
            if reason:
                raise self._blocked(reason, query, response.status_code)
            raise NetworkError(
                f"Reddit API error: status {response.status_code}",
                status_code=response.status_code,
                details={'query': query, 'body': body[:200]}
            )

        # Post JSON carries fields like is_robot_indexable, so block phrases
        # are only looked for in bodies that are not a listing
        try:
            results = parse_search_response(body)
        except ParseError:
            reason = detect_block(body)
            if reason:
                raise self._blocked(reason, query, response.status_code)
            raise
        search_logger.info(f"Reddit search returned {len(results)} Media results for '{query}'")
        return results


def create_reddit_fetcher() -> RedditFetcher:
    """Create a Reddit fetcher with the configured rate limit and timeout."""
    return RedditFetcher()
