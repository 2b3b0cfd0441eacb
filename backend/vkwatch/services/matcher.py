"""Boundary-aware keyword matcher for vkwatch.

Compiles keyword definitions into regex matchers and evaluates them against
comment text and parent-post text. Boundaries are expressed with explicit
look-arounds over a word-character class that covers Latin and Cyrillic
letters; the regex word-boundary escape is not used for non-ASCII text.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterable, Optional, Union

from .normalizer import YE, YO, normalize

logger = logging.getLogger(__name__)

WORD_CHARS_PATTERN = r'[a-zA-Z0-9_\u0400-\u04FF]'
_WORD_CHAR = re.compile(WORD_CHARS_PATTERN)
_YE_CLASS = f'[{YE}{YO}]'


@dataclass(frozen=True)
class KeywordDefinition:
    """The parts of a keyword that affect matching."""
    id: int
    word: str
    is_phrase: bool = False
    category: Optional[str] = None


@dataclass(frozen=True)
class KeywordMatcher:
    """A compiled keyword pattern bound to its keyword id."""
    keyword_id: int
    normalized_word: str
    is_phrase: bool
    pattern: re.Pattern

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None

    def __call__(self, text: str) -> bool:
        return self.matches(text)


@dataclass
class MatchSets:
    """Keyword ids matched per source channel."""
    from_comment: set[int] = field(default_factory=set)
    from_post: set[int] = field(default_factory=set)


def build_pattern(normalized_word: str, is_phrase: bool) -> str:
    """Build the regex source for an already-normalized keyword word.

    - Metacharacters are escaped, then every "е" becomes ``[её]``.
    - A leading word character requires no word character right before it.
    - Phrases ending with a word character also require no word character
      right after it. Single-token keywords have no trailing boundary, so
      they match as a prefix of a longer token.
    """
    escaped = re.escape(normalized_word).replace(YE, _YE_CLASS)

    boundary_start = ''
    if _WORD_CHAR.match(normalized_word[0]):
        boundary_start = f'(?<!{WORD_CHARS_PATTERN})'

    boundary_end = ''
    if is_phrase and _WORD_CHAR.match(normalized_word[-1]):
        boundary_end = f'(?!{WORD_CHARS_PATTERN})'

    return f'{boundary_start}{escaped}{boundary_end}'


@lru_cache(maxsize=4096)
def _compile(normalized_word: str, is_phrase: bool) -> re.Pattern:
    return re.compile(build_pattern(normalized_word, is_phrase), re.IGNORECASE)


def build_matcher(keyword: KeywordDefinition) -> Optional[KeywordMatcher]:
    """Compile a keyword into a matcher.

    Returns None when the keyword normalizes to an empty string or its
    pattern cannot be compiled; the latter is logged as a warning.
    """
    normalized_word = normalize(keyword.word)
    if not normalized_word:
        return None

    try:
        pattern = _compile(normalized_word, bool(keyword.is_phrase))
    except re.error:
        logger.warning("Skipping keyword %s: invalid pattern for %r", keyword.id, keyword.word)
        return None

    return KeywordMatcher(
        keyword_id=keyword.id,
        normalized_word=normalized_word,
        is_phrase=bool(keyword.is_phrase),
        pattern=pattern,
    )


def build_matchers(keywords: Iterable[KeywordDefinition]) -> list[KeywordMatcher]:
    """Compile every usable keyword, dropping the ones that yield no matcher."""
    matchers: list[KeywordMatcher] = []
    for keyword in keywords:
        matcher = build_matcher(keyword)
        if matcher is not None:
            matchers.append(matcher)
    return matchers


def find_matching_keyword_ids(
    text: Optional[str],
    matchers: Iterable[KeywordMatcher],
) -> set[int]:
    """Return the ids of all matchers that hit the normalized *text*."""
    normalized_text = normalize(text)
    if not normalized_text:
        return set()

    matched: set[int] = set()
    for matcher in matchers:
        try:
            if matcher.matches(normalized_text):
                matched.add(matcher.keyword_id)
        except Exception:
            logger.warning("Keyword %s failed to evaluate, skipping", matcher.keyword_id, exc_info=True)
    return matched


def compute_matches(
    keywords: Iterable[Union[KeywordDefinition, KeywordMatcher]],
    comment_text: Optional[str],
    post_text: Optional[str],
) -> MatchSets:
    """Compute which keywords match a comment's own text and its post's text.

    The two sides are evaluated independently; a keyword may be present in
    both sets since they are stored under different match sources.
    """
    matchers = [
        k if isinstance(k, KeywordMatcher) else build_matcher(k)
        for k in keywords
    ]
    matchers = [m for m in matchers if m is not None]

    return MatchSets(
        from_comment=find_matching_keyword_ids(comment_text, matchers),
        from_post=find_matching_keyword_ids(post_text, matchers),
    )
