"""Find and cache Reddit replay clips for football goals."""

from goal_replays.exceptions import (
    BlockedError,
    NetworkError,
    ParseError,
    PersistenceError,
    ReplaySearchError,
    ResolutionCancelled,
    SearchError,
)
from goal_replays.models import (
    NOT_FOUND_MARKER,
    GoalInfo,
    GoalLink,
    GoalLinkKey,
    SearchResult,
    is_not_found,
)
from goal_replays.services.link_cache import GoalLinkCache
from goal_replays.services.resolver import GoalLinkResolver, create_resolver

__all__ = [
    'BlockedError',
    'GoalInfo',
    'GoalLink',
    'GoalLinkCache',
    'GoalLinkKey',
    'GoalLinkResolver',
    'NOT_FOUND_MARKER',
    'NetworkError',
    'ParseError',
    'PersistenceError',
    'ReplaySearchError',
    'ResolutionCancelled',
    'SearchError',
    'SearchResult',
    'create_resolver',
    'is_not_found',
]
