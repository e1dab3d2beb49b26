"""
errors.py - Exception taxonomy for the blocklist compiler

Every failure inside a compilation run is fatal to that run only. The
scheduler counts it, the published artifact stays untouched.

Hierarchy:
    BlocklistError
    ├── ConfigError
    ├── FetchError
    │   ├── InvalidScheme, FetchTimeout, UpstreamStatus,
    │   ├── UnexpectedContentType, EmptyDocument, ConnectionFailed
    │   └── SourceFetchError      (wraps the first failing source)
    ├── PipelineError
    │   └── NoRulesAfterCommentStrip, NoRulesAfterValidation,
    │       SuspiciouslyFewRules, OutputTooSmall
    ├── PublishError
    │   └── PathTraversal, WriteFailure, SizeMismatch
    ├── CompilationTimeout
    ├── CompilationCancelled
    └── InvalidSchedule
"""
from __future__ import annotations


class BlocklistError(Exception):
    """Base class for all errors raised by the blocklist package."""


class ConfigError(BlocklistError):
    """Configuration file is missing, malformed or fails schema validation."""


# =============================================================================
# FETCH
# =============================================================================

class FetchError(BlocklistError):
    """A remote source could not be retrieved."""

    def __init__(self, url: str, message: str):
        super().__init__(f"{message} ({url})")
        self.url = url


class InvalidScheme(FetchError):
    def __init__(self, url: str):
        super().__init__(url, "Only HTTPS URLs are allowed")


class FetchTimeout(FetchError):
    def __init__(self, url: str, timeout: float):
        super().__init__(url, f"Request timed out after {timeout:g}s")
        self.timeout = timeout


class UpstreamStatus(FetchError):
    def __init__(self, url: str, code: int, reason: str | None = None):
        detail = f"HTTP {code}" + (f": {reason}" if reason else "")
        super().__init__(url, detail)
        self.code = code


class UnexpectedContentType(FetchError):
    def __init__(self, url: str, content_type: str):
        super().__init__(url, f"Invalid content type '{content_type}', expected text")
        self.content_type = content_type


class EmptyDocument(FetchError):
    def __init__(self, url: str):
        super().__init__(url, "Empty or whitespace-only response")


class ConnectionFailed(FetchError):
    """Transport-level failure: DNS, TLS handshake, connection reset."""


class SourceFetchError(FetchError):
    """Wraps the first source failure of a run with its position and name."""

    def __init__(self, index: int, total: int, name: str, cause: FetchError):
        self.index = index
        self.total = total
        self.name = name
        self.cause = cause
        super().__init__(
            cause.url,
            f"Compilation failed at source {index}/{total}: {name}. Error: {cause}",
        )


# =============================================================================
# PIPELINE
# =============================================================================

class PipelineError(BlocklistError):
    """Filtering produced an unusable rule set; upstream content likely changed."""


class NoRulesAfterCommentStrip(PipelineError):
    def __init__(self):
        super().__init__("No valid rules remaining after removing comments")


class NoRulesAfterValidation(PipelineError):
    def __init__(self):
        super().__init__("No valid rules remaining after validation")


class SuspiciouslyFewRules(PipelineError):
    def __init__(self, count: int, minimum: int):
        super().__init__(
            f"Only {count} rules remaining, which seems too low (minimum {minimum})"
        )
        self.count = count
        self.minimum = minimum


class OutputTooSmall(PipelineError):
    def __init__(self, size: int, minimum: int):
        super().__init__(f"Output too small ({size} bytes, minimum {minimum})")
        self.size = size
        self.minimum = minimum


# =============================================================================
# PUBLISH
# =============================================================================

class PublishError(BlocklistError):
    """The artifact could not be atomically published."""


class PathTraversal(PublishError):
    def __init__(self, path: object, root: object):
        super().__init__(f"Path traversal attempt detected: {path} is outside {root}")
        self.path = path
        self.root = root


class WriteFailure(PublishError):
    pass


class SizeMismatch(PublishError):
    def __init__(self, expected: int, actual: int):
        super().__init__(f"File size mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


# =============================================================================
# RUN CONTROL
# =============================================================================

class CompilationTimeout(BlocklistError):
    def __init__(self, timeout: float, state: object = None):
        where = f" during {state}" if state is not None else ""
        super().__init__(f"Compilation exceeded {timeout:g}s{where}")
        self.timeout = timeout
        self.state = state


class CompilationCancelled(BlocklistError):
    """Stop was requested between pipeline stages."""


class InvalidSchedule(BlocklistError):
    def __init__(self, expression: str):
        super().__init__(f"Invalid cron expression: {expression!r}")
        self.expression = expression
