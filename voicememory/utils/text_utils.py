"""
Text utilities shared by ingestion, learning and retrieval.
"""

import hashlib
import re

URL_PATTERN = re.compile(r'https?://\S+')
HASHTAG_PATTERN = re.compile(r'#\w+')
MENTION_PATTERN = re.compile(r'@\w+')
WHITESPACE_PATTERN = re.compile(r'\s+')


def clean_text(text: str) -> str:
    """Strip URLs, hashtags and @-mentions, then collapse whitespace.

    Args:
        text: Raw post or message text

    Returns:
        Cleaned single-line text
    """
    text = URL_PATTERN.sub('', text)
    text = HASHTAG_PATTERN.sub('', text)
    text = MENTION_PATTERN.sub('', text)
    return WHITESPACE_PATTERN.sub(' ', text).strip()


def truncate(text: str, limit: int) -> str:
    """Return at most ``limit`` characters of text."""
    return text[:limit] if text else ''


def snippet(text: str, limit: int) -> str:
    """Truncate text for display, marking the cut with an ellipsis."""
    if not text:
        return ''
    return text[:limit] + '...' if len(text) > limit else text


def word_count(text: str) -> int:
    return len(text.split())


def normalize_for_hash(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace so near-identical phrases collide."""
    text = re.sub(r'[^\w\s]', ' ', text.lower())
    return WHITESPACE_PATTERN.sub(' ', text).strip()


def content_hash(text: str, length: int = 16) -> str:
    """Deterministic short hash of normalised text, used for content-addressed ids."""
    digest = hashlib.sha1(normalize_for_hash(text).encode('utf-8')).hexdigest()
    return digest[:length]
