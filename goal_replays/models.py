"""Data classes shared by the cache, fetcher, scorer and resolver."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, NamedTuple, Optional

# Reserved url meaning "searched, nothing found"
NOT_FOUND_MARKER = '__NOT_FOUND__'


class GoalLinkKey(NamedTuple):
    """Cache identity of a goal: one entry per match and minute."""
    match_id: int
    minute: int


@dataclass(frozen=True)
class GoalInfo:
    """A scored goal to find a replay for."""
    match_id: int
    home_team: str
    away_team: str
    minute: int
    is_home_team: bool
    scorer_name: Optional[str] = None
    match_time: Optional[datetime] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None

    @property
    def key(self) -> GoalLinkKey:
        return GoalLinkKey(self.match_id, self.minute)

    @property
    def scoring_team(self) -> str:
        return self.home_team if self.is_home_team else self.away_team


@dataclass(frozen=True)
class GoalLink:
    """A resolved replay link, or a negative result when url is the marker."""
    match_id: int
    minute: int
    url: str
    fetched_at: datetime
    title: str = ''
    post_url: str = ''

    @property
    def key(self) -> GoalLinkKey:
        return GoalLinkKey(self.match_id, self.minute)

    @property
    def is_not_found(self) -> bool:
        return self.url == NOT_FOUND_MARKER

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the on-disk record shape."""
        return {
            'match_id': self.match_id,
            'minute': self.minute,
            'url': self.url,
            'title': self.title,
            'post_url': self.post_url,
            'fetched_at': self.fetched_at.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GoalLink':
        """Build a link from an on-disk record.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed
        """
        fetched_at = datetime.fromisoformat(data['fetched_at'])
        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=timezone.utc)

        return cls(
            match_id=int(data['match_id']),
            minute=int(data['minute']),
            url=str(data['url']),
            title=data.get('title') or '',
            post_url=data.get('post_url') or '',
            fetched_at=fetched_at
        )


def is_not_found(link: Optional[GoalLink]) -> bool:
    """Return True if the link is a cached "not found" marker."""
    return link is not None and link.is_not_found


@dataclass(frozen=True)
class SearchResult:
    """A Media post returned by a Reddit search."""
    title: str
    url: str
    post_url: str
    flair: str
    created_at: datetime
    score: int = 0
