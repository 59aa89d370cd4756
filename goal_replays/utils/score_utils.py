"""Utilities for matching Reddit goal posts to goals.

Goal clip titles on r/soccer follow a loose convention, e.g.:
    "Wolves [3] - 0 West Ham - Mateus Mane 41'"
    "Manchester United [2] - 1 Liverpool - Marcus Rashford 67'"
    "Barcelona 0 - [1] Real Madrid - Vinicius Jr 90+2'"
"""

import re
import unicodedata
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Iterable, Optional
from goal_replays.config.filters import team_suffixes
from goal_replays.models import GoalInfo, SearchResult
from goal_replays.utils.logger import app_logger

# Lowest total score accepted as a match
MIN_MATCH_SCORE = 20

TEAM_POINTS = 10
MINUTE_POINTS = 25
SCORER_POINTS = 15
RECENCY_POINTS = 5
MAX_POPULARITY_POINTS = 5

# Posts outside this window around kick-off are ignored
WINDOW_BEFORE = timedelta(hours=24)
WINDOW_AFTER = timedelta(hours=48)

# Posts inside this window earn RECENCY_POINTS
CLOSE_WINDOW_BEFORE = timedelta(hours=6)
CLOSE_WINDOW_AFTER = timedelta(hours=12)


class MatchConfidence(IntEnum):
    """How confident we are that a post shows a given goal."""
    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3


def fold_accents(text: str) -> str:
    """Remove accents, e.g. "Mané" -> "Mane"."""
    return ''.join(c for c in unicodedata.normalize('NFKD', text)
                   if not unicodedata.combining(c))


def normalize_title(title: str) -> str:
    """Lowercase and accent-fold a post title for name matching."""
    return fold_accents(title).lower()


def normalize_team_name(name: str) -> str:
    """Normalize team name by removing common suffixes and punctuation.

    Handles cases like:
    - "West Ham United" -> "west ham"
    - "Brighton & Hove Albion" -> "brighton hove albion"
    - "Atlético Madrid" -> "atletico madrid"

    Args:
        name (str): Team name to normalize

    Returns:
        str: Normalized team name
    """
    name = fold_accents(name).lower().strip()

    for suffix in team_suffixes:
        if name.endswith(suffix):
            name = name[:-len(suffix)]

    name = re.sub(r'[^a-z0-9\s]', '', name)
    return ' '.join(name.split())


def normalize_player_name(name: str) -> str:
    """Normalize player name for matching.

    Handles cases like:
    - "Mateus Mané" -> "mateus mane"
    - "N'Golo Kanté" -> "ngolo kante"
    - "Smith-Rowe" -> "smithrowe"

    Args:
        name (str): Player name to normalize

    Returns:
        str: Normalized name
    """
    name = fold_accents(name).lower()
    name = re.sub(r'[^a-z\s]', '', name)
    return ' '.join(name.split())


def contains_team_name(title: str, team_norm: str) -> bool:
    """Check if a normalized title contains a normalized team name.

    Multi-word names also match on any significant word (4+ characters),
    so "nottingham forest" matches a title that only says "Forest".
    """
    if not team_norm:
        return False

    if team_norm in title:
        return True

    words = team_norm.split()
    if len(words) > 1:
        for word in words:
            if len(word) >= 4 and word in title:
                return True

    return False


def contains_player_name(title: str, name_norm: str) -> bool:
    """Check if a normalized title contains a player's full or last name."""
    if not name_norm:
        return False

    if name_norm in title:
        return True

    last_name = name_norm.split()[-1]
    return len(last_name) >= 3 and last_name in title


def build_minute_pattern(minute: int) -> re.Pattern:
    """Create a regex matching a minute as 41, 41', 41+2 or 41+2'."""
    return re.compile(rf"\b{minute}(?:\+\d+)?'?\b")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def score_result(result: SearchResult, goal: GoalInfo) -> Optional[int]:
    """Score how well a search result matches a goal.

    Args:
        result (SearchResult): Candidate post
        goal (GoalInfo): Goal being searched for

    Returns:
        int: Additive score, or None if the post is outside the match window
            or names neither team
    """
    title = normalize_title(result.title)
    score = 0

    if goal.match_time is not None:
        match_time = _as_utc(goal.match_time)
        posted = _as_utc(result.created_at)
        if posted < match_time - WINDOW_BEFORE or posted > match_time + WINDOW_AFTER:
            return None
        if match_time - CLOSE_WINDOW_BEFORE <= posted <= match_time + CLOSE_WINDOW_AFTER:
            score += RECENCY_POINTS

    home_found = contains_team_name(title, normalize_team_name(goal.home_team))
    away_found = contains_team_name(title, normalize_team_name(goal.away_team))
    if not home_found and not away_found:
        return None

    if home_found:
        score += TEAM_POINTS
    if away_found:
        score += TEAM_POINTS

    if build_minute_pattern(goal.minute).search(result.title):
        score += MINUTE_POINTS

    if goal.scorer_name and contains_player_name(title, normalize_player_name(goal.scorer_name)):
        score += SCORER_POINTS

    # Upvotes only break near-ties
    score += max(0, min(result.score // 100, MAX_POPULARITY_POINTS))

    return score


def find_best_match(results: Iterable[SearchResult], goal: GoalInfo) -> Optional[SearchResult]:
    """Find the search result that best matches a goal.

    The highest score wins; on a tie the earlier result is kept. Nothing
    scoring below MIN_MATCH_SCORE is accepted.

    Args:
        results: Candidate posts, in search order
        goal (GoalInfo): Goal being searched for

    Returns:
        SearchResult: Best match, or None if no candidate is good enough
    """
    best_match = None
    best_score = 0

    for result in results:
        score = score_result(result, goal)
        if score is None:
            app_logger.debug(f"[SKIP] Not a match for {goal.home_team} vs {goal.away_team}: {result.title}")
            continue

        app_logger.debug(f"Score {score} for: {result.title}")
        if score > best_score:
            best_score = score
            best_match = result

    if best_score < MIN_MATCH_SCORE:
        return None

    app_logger.debug(
        f"Best match ({best_score}, {calculate_confidence(best_match, goal).name}): {best_match.title}"
    )
    return best_match


def calculate_confidence(result: SearchResult, goal: GoalInfo) -> MatchConfidence:
    """Coarse confidence from team and minute signals, for logging only."""
    title = normalize_title(result.title)
    has_home = contains_team_name(title, normalize_team_name(goal.home_team))
    has_away = contains_team_name(title, normalize_team_name(goal.away_team))
    has_minute = bool(build_minute_pattern(goal.minute).search(result.title))

    if has_home and has_away and has_minute:
        return MatchConfidence.HIGH
    if (has_home or has_away) and has_minute:
        return MatchConfidence.MEDIUM
    if has_home or has_away:
        return MatchConfidence.LOW
    return MatchConfidence.NONE
