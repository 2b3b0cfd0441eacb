"""Text normalizer for vkwatch keyword matching.

Canonicalizes raw comment/post text and keyword words into a single form so
that "same word, different encoding" never causes a missed or spurious match.
Both the keyword and the haystack must pass through ``normalize`` before they
are compared.
"""

import re
from typing import Any

# Regex patterns compiled once at module level
_NON_BREAKING_SPACE_PATTERN = re.compile('\u00a0')
_INVISIBLE_SPACE_PATTERN = re.compile('[\u2000-\u200f\u2028\u2029\u202f\u205f\u3000]')
_SOFT_HYPHEN_PATTERN = re.compile('\u00ad')
_WHITESPACE_PATTERN = re.compile(r'\s+')

YO = 'ё'
YE = 'е'


def normalize(text: Any) -> str:
    """Normalize raw text into a matching-safe form.

    Processing steps:
    1. Lowercase
    2. Replace non-breaking and invisible/exotic spaces with a plain space
    3. Strip soft hyphens
    4. Fold "ё" to "е"
    5. Collapse whitespace runs and trim

    The function is idempotent and total: ``None`` or an empty string yields
    ``""`` and non-string input is coerced with ``str()``.
    """
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)
    if not text:
        return ""

    text = text.lower()
    text = _replace_exotic_spaces(text)
    text = _SOFT_HYPHEN_PATTERN.sub('', text)
    text = text.replace(YO, YE)
    return _normalize_whitespace(text)


def _replace_exotic_spaces(text: str) -> str:
    """Turn NBSP and zero-width/typographic separators into plain spaces."""
    text = _NON_BREAKING_SPACE_PATTERN.sub(' ', text)
    return _INVISIBLE_SPACE_PATTERN.sub(' ', text)


def _normalize_whitespace(text: str) -> str:
    """Collapse multiple whitespace characters into single spaces and strip."""
    return _WHITESPACE_PATTERN.sub(' ', text).strip()
