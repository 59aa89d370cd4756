"""Filter configurations for goal matching and block detection."""

# Trailing words stripped from team names before matching
team_suffixes = [
    ' fc',
    ' cf',
    ' sc',
    ' afc',
    ' united',
    ' city'
]

# Phrases Reddit uses on its bot detection and throttling pages
block_indicators = [
    'prove your humanity',
    'captcha',
    'robot',
    'automated',
    'blocked',
    'rate limit',
    'too many requests'
]

# Markers of an HTML page served where JSON was expected
html_markers = [
    '<html',
    '<!doctype html'
]
