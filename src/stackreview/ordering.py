# src/stackreview/ordering.py
"""
Sequence Order Resolution
=========================

Infers the display position of an image from its filename.

Matchers are tried in a fixed priority order and the first one that
matches wins:

1. img_<digits>
2. image_<digits>
3. <digits>.<ext>       (ext = any recognized image suffix)
4. scan_<digits>
5. slice_<digits>
6. _<digits>.

All patterns are case-insensitive and unanchored. When nothing matches,
the code point of the (lowercased) first character is used. That fallback
is a weak deterministic tiebreaker, NOT an alphabetical sort.

New filename conventions are added by appending a matcher to the chain;
existing matchers are never edited.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Pattern, Tuple, Union

from .config import IMAGE_SUFFIXES

logger = logging.getLogger(__name__)


class OrderingMethod(str, Enum):
    """
    Provenance for an inferred order key.

    Displayed next to each extracted image so reviewers can see why it
    landed where it did.
    """
    IMG = "IMG"                              # img_001.jpg
    IMAGE = "IMAGE"                          # image_001.png
    NUMERIC_STEM = "NUMERIC_STEM"            # 001.jpg
    SCAN = "SCAN"                            # scan_001.jpg
    SLICE = "SLICE"                          # slice_001.jpg
    UNDERSCORE_NUMBER = "UNDERSCORE_NUMBER"  # anything_001.jpg
    FIRST_CHARACTER = "FIRST_CHARACTER"      # fallback


@dataclass(frozen=True)
class OrderKey:
    """Resolved order key plus the method that produced it."""
    value: int
    method: Union[OrderingMethod, str]

    @property
    def is_fallback(self) -> bool:
        return self.method == OrderingMethod.FIRST_CHARACTER


@dataclass(frozen=True)
class PatternMatcher:
    """
    One link of the resolution chain.

    The pattern's first capture group must be a run of digits.
    """
    method: Union[OrderingMethod, str]
    pattern: Pattern[str]

    @classmethod
    def compile(cls, method: Union[OrderingMethod, str], regex: str) -> 'PatternMatcher':
        return cls(method=method, pattern=re.compile(regex, re.IGNORECASE))

    def match(self, filename: str) -> Optional[int]:
        found = self.pattern.search(filename)
        if found is None:
            return None
        return int(found.group(1))


def numeric_stem_regex(suffixes: Iterable[str]) -> str:
    """`(digits).(ext)` regex whose extension alternation covers the given suffixes."""
    extensions = sorted({s.lower().lstrip('.') for s in suffixes}, key=len, reverse=True)
    return r'(\d+)\.(?:' + '|'.join(re.escape(ext) for ext in extensions) + ')'


def build_default_matchers(suffixes: Iterable[str] = IMAGE_SUFFIXES) -> Tuple[PatternMatcher, ...]:
    """The built-in chain, with `<digits>.<ext>` matching the given suffixes."""
    return (
        PatternMatcher.compile(OrderingMethod.IMG, r'img_(\d+)'),
        PatternMatcher.compile(OrderingMethod.IMAGE, r'image_(\d+)'),
        PatternMatcher.compile(OrderingMethod.NUMERIC_STEM, numeric_stem_regex(suffixes)),
        PatternMatcher.compile(OrderingMethod.SCAN, r'scan_(\d+)'),
        PatternMatcher.compile(OrderingMethod.SLICE, r'slice_(\d+)'),
        PatternMatcher.compile(OrderingMethod.UNDERSCORE_NUMBER, r'_(\d+)\.'),
    )


DEFAULT_MATCHERS: Tuple[PatternMatcher, ...] = build_default_matchers()


def first_character_key(filename: str) -> int:
    """Fallback key: code point of the lowercased first character (0 if empty)."""
    if not filename:
        return 0
    return ord(filename.lower()[0])


class SequenceOrderResolver:
    """
    Prioritized chain of filename matchers.

    Never raises: every filename resolves to an integer.
    """

    def __init__(self, matchers: Optional[Iterable[PatternMatcher]] = None):
        self.matchers: Tuple[PatternMatcher, ...] = (
            tuple(matchers) if matchers is not None else DEFAULT_MATCHERS
        )

    @classmethod
    def for_suffixes(cls, suffixes: Iterable[str]) -> 'SequenceOrderResolver':
        """Default chain with `<digits>.<ext>` matching a custom suffix set."""
        return cls(build_default_matchers(suffixes))

    def with_matcher(self, matcher: PatternMatcher) -> 'SequenceOrderResolver':
        """Return a resolver with matcher appended at the lowest priority."""
        return SequenceOrderResolver(self.matchers + (matcher,))

    def resolve_key(self, filename: str) -> OrderKey:
        for matcher in self.matchers:
            value = matcher.match(filename)
            if value is not None:
                return OrderKey(value=value, method=matcher.method)

        logger.debug(f"No numbering pattern in {filename!r}; using first-character fallback")
        return OrderKey(
            value=first_character_key(filename),
            method=OrderingMethod.FIRST_CHARACTER,
        )

    def resolve(self, filename: str) -> int:
        return self.resolve_key(filename).value

    __call__ = resolve


_default_resolver = SequenceOrderResolver()


def resolve_order(filename: str) -> int:
    """Resolve filename with the default matcher chain."""
    return _default_resolver.resolve(filename)


# ═══════════════════════════════════════════════════════════════════════════════
# PROVENANCE DISPLAY HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def get_ordering_label(method: Union[OrderingMethod, str]) -> Tuple[str, str]:
    """
    Get human-readable label and icon for an ordering method.

    Returns:
        Tuple of (icon, description)
    """
    labels = {
        OrderingMethod.IMG: ("✅", "Order: img_<n> numbering"),
        OrderingMethod.IMAGE: ("✅", "Order: image_<n> numbering"),
        OrderingMethod.NUMERIC_STEM: ("✅", "Order: numeric filename"),
        OrderingMethod.SCAN: ("✅", "Order: scan_<n> numbering"),
        OrderingMethod.SLICE: ("✅", "Order: slice_<n> numbering"),
        OrderingMethod.UNDERSCORE_NUMBER: ("ℹ️", "Order: trailing _<n> number"),
        OrderingMethod.FIRST_CHARACTER: ("⚠️", "Order: first character (fallback)"),
    }
    if method in labels:
        return labels[OrderingMethod(method)]
    return ("ℹ️", f"Order: {method}")
