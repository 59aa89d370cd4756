"""Logging utilities for goal replay resolution."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from goal_replays.config import LOG_CONSOLE_LEVEL, LOG_DIR, LOG_LEVEL

def setup_logger(name, log_file, level=LOG_LEVEL, console_level=LOG_CONSOLE_LEVEL, max_bytes=10*1024*1024, backup_count=5):
    """Set up a logger with file and console handlers.

    Args:
        name (str): Name of the logger
        log_file (str): Path to the log file, relative to LOG_DIR
        level (int | str): Logging level for the log file
        console_level (int | str): Logging level for stderr
        max_bytes (int): Maximum size of log file before rotation
        backup_count (int): Number of backup files to keep

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Importing twice must not double every line
    if logger.handlers:
        return logger

    # Create logs directory if it doesn't exist
    os.makedirs(LOG_DIR, exist_ok=True)

    # Create formatters
    file_formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%H:%M:%S'
    )

    # Create file handler with absolute path
    log_path = os.path.join(LOG_DIR, log_file)
    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )
    file_handler.setFormatter(file_formatter)
    file_handler.setLevel(level)

    # Create console handler
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(console_formatter)
    console_handler.setLevel(console_level)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger

# Main application logger (cache and resolution)
app_logger = setup_logger('goal_replays', 'goal_replays.log')

# Logger for Reddit search traffic
search_logger = setup_logger('reddit_search', 'reddit_search.log')
