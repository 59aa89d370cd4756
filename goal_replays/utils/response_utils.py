"""Classification of raw Reddit response bodies."""

from typing import Optional
from bs4 import BeautifulSoup
from goal_replays.config.filters import block_indicators, html_markers


def looks_like_html(body: str) -> bool:
    """Check if a response body is an HTML page.

    Args:
        body (str): Raw response body

    Returns:
        bool: True if the body carries an HTML document marker
    """
    body_lower = body.lower()
    return any(marker in body_lower for marker in html_markers)


def html_page_title(body: str) -> Optional[str]:
    """Return the <title> of an HTML page, if it has one."""
    soup = BeautifulSoup(body, 'html.parser')
    if soup.title and soup.title.string:
        return soup.title.string.strip()
    return None


def detect_block(body: str) -> Optional[str]:
    """Detect if Reddit is serving a CAPTCHA, bot detection or throttling page.

    Only meaningful for bodies that did not parse as a search listing: post
    JSON has fields such as is_robot_indexable and titles may say "blocked".

    Args:
        body (str): Raw response body from a search request

    Returns:
        str: Short reason describing the block, or None if the body looks usable
    """
    body_lower = body.lower()
    for indicator in block_indicators:
        if indicator in body_lower:
            return f"response mentions '{indicator}'"

    if looks_like_html(body):
        title = html_page_title(body)
        if title:
            return f"HTML page instead of JSON: {title}"
        return "HTML page instead of JSON"

    return None
