"""Reddit search configuration."""

from goal_replays.config import USER_AGENT

SEARCH_URL = 'https://www.reddit.com/r/soccer/search.json'
REDDIT_BASE_URL = 'https://www.reddit.com'

# Only posts with this flair carry goal clips
MEDIA_FLAIR = 'Media'

# Search window around kick-off, in hours
SEARCH_WINDOW_BEFORE_HOURS = 24
SEARCH_WINDOW_AFTER_HOURS = 48

# A block seen within this many minutes doubles the request interval
BLOCK_BACKOFF_MINUTES = 10

# Rotated on every request
USER_AGENTS = [
    'goal-replays:v1.0.0 (by /u/goal_replays_app)',
    'python:goal-replays:v1.0.0 (by /u/goal_replays_app)',
]

if USER_AGENT and USER_AGENT not in USER_AGENTS:
    USER_AGENTS.insert(0, USER_AGENT)
