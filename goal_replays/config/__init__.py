"""Configuration module for goal replay resolution."""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Optional descriptive user agent, placed first in the rotation
USER_AGENT = os.getenv('USER_AGENT')

# Reddit search pacing
REDDIT_REQUESTS_PER_MINUTE = int(os.getenv('REDDIT_REQUESTS_PER_MINUTE', '5'))
REDDIT_HTTP_TIMEOUT = float(os.getenv('REDDIT_HTTP_TIMEOUT', '10'))
SEARCH_RESULT_LIMIT = int(os.getenv('SEARCH_RESULT_LIMIT', '15'))

# Retry policy for a single goal search
MAX_SEARCH_ATTEMPTS = int(os.getenv('MAX_SEARCH_ATTEMPTS', '2'))
RETRY_BASE_DELAY = float(os.getenv('RETRY_BASE_DELAY', '60'))

# Batch resolution pacing
BATCH_SIZE = int(os.getenv('BATCH_SIZE', '3'))
BATCH_DELAY = float(os.getenv('BATCH_DELAY', '5'))

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# Console output goes to stderr; the host application owns stdout
LOG_CONSOLE_LEVEL = os.getenv('LOG_CONSOLE_LEVEL', 'WARNING').upper()


def _default_config_dir() -> str:
    """Per-user configuration directory (XDG on Linux, ~/.config elsewhere)."""
    xdg_config = os.getenv('XDG_CONFIG_HOME')
    if xdg_config:
        return os.path.join(xdg_config, 'goal-replays')
    return os.path.join(os.path.expanduser('~'), '.config', 'goal-replays')


# Base directories for data storage
CONFIG_DIR = os.getenv('GOAL_REPLAYS_CONFIG_DIR') or _default_config_dir()
LOG_DIR = os.getenv('GOAL_REPLAYS_LOG_DIR') or os.path.join(CONFIG_DIR, 'logs')

# File path for the goal link cache
GOAL_LINKS_FILE = os.path.join(CONFIG_DIR, 'goal_links.json')
