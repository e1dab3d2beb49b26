"""
cleaner.py - Line Normalization, Comment Stripping and Syntax Validation

First stage of every compilation: turn raw source text into rule lines, then
throw away what can never be a rule.

Key Operations:
    1. Split a document on newlines, trim each line, drop blank lines
    2. Append the result to the run's accumulator in fixed-size batches
    3. Remove comment and header lines (# ! [)
    4. Keep only lines that look like a host or rule:
       contains a dot, contains no whitespace, longer than 3 characters

Validation is a sanity heuristic, not a rule-syntax parser. It exists to
reject HTML error pages, prose and truncated garbage that slipped past the
fetcher's content checks.
"""
from __future__ import annotations

import io
import re
from itertools import islice
from typing import Final, Iterable, Iterator

#: Lines appended to the shared accumulator per extend() call
BATCH_SIZE: Final[int] = 10_000

#: Comment/header markers: "# hosts comment", "! ABP comment", "[Adblock Plus 2.0]"
COMMENT_PREFIXES: Final[tuple[str, ...]] = ("#", "!", "[")

#: Shortest line the validator accepts is MIN_RULE_LENGTH + 1 characters
MIN_RULE_LENGTH: Final[int] = 3

WHITESPACE_PATTERN: Final[re.Pattern[str]] = re.compile(r"\s")


# =============================================================================
# NORMALIZATION
# =============================================================================

def normalize_document(text: str) -> Iterator[str]:
    """
    Yield the trimmed, non-empty lines of a document in input order.

    Splits on "\\n" only; a trailing "\\r" is removed by trimming.

    Example:
        >>> list(normalize_document("a.com\\r\\n\\n  b.com  \\n"))
        ['a.com', 'b.com']
    """
    for raw in io.StringIO(text):
        line = raw.strip()
        if line:
            yield line


def extend_batched(
    accumulator: list[str],
    lines: Iterable[str],
    batch_size: int = BATCH_SIZE,
) -> int:
    """
    Append lines to the accumulator in batches of ``batch_size``.

    Consumes ``lines`` lazily so only one batch is held outside the
    accumulator at a time.

    Returns:
        Number of lines appended
    """
    if batch_size < 1:
        raise ValueError("batch_size must be positive")
    iterator = iter(lines)
    added = 0
    while True:
        batch = list(islice(iterator, batch_size))
        if not batch:
            return added
        accumulator.extend(batch)
        added += len(batch)


# =============================================================================
# FILTER STAGES
# =============================================================================

def is_comment(line: str) -> bool:
    """
    Check if a trimmed line is a comment or list header.

    Example:
        >>> is_comment("# This is a comment")
        True
        >>> is_comment("[Adblock Plus 2.0]")
        True
        >>> is_comment("||example.com^")
        False
    """
    return line.startswith(COMMENT_PREFIXES)


def is_valid_rule(line: str) -> bool:
    """
    Heuristic syntax check for a host or rule line.

    Example:
        >>> is_valid_rule("||ads.example.com^")
        True
        >>> is_valid_rule("0.0.0.0 ads.example.com")  # whitespace
        False
        >>> is_valid_rule("a.b")  # too short
        False
    """
    return (
        len(line) > MIN_RULE_LENGTH
        and "." in line
        and WHITESPACE_PATTERN.search(line) is None
    )


def strip_comments(lines: list[str]) -> list[str]:
    """Drop comment and header lines, preserving order."""
    return [line for line in lines if not is_comment(line)]


def validate_rules(lines: list[str]) -> list[str]:
    """Keep only lines passing is_valid_rule(), preserving order."""
    return [line for line in lines if is_valid_rule(line)]
