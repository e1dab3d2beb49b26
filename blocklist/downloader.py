"""
downloader.py - Constrained HTTPS fetcher for remote filter lists

Retrieves one remote document per call. Every source is untrusted, so each
request is held to the same discipline:

    1. HTTPS only, checked before any network I/O and again on every
       redirect hop (at most MAX_REDIRECTS)
    2. One GET with a fixed User-Agent, bounded by a total timeout
    3. Non-2xx status is a failure
    4. Content-Type must be textual
    5. Body must contain something other than whitespace

There are no retries and no cache fallback here. A failing source fails the
whole compilation run (see compiler.py); the scheduler decides what happens
next.
"""
from __future__ import annotations

import asyncio
import sys
from typing import Final, NamedTuple
from urllib.parse import urljoin

import aiohttp

from blocklist import __version__
from blocklist.config import DEFAULT_FETCH_TIMEOUT
from blocklist.errors import (
    ConnectionFailed,
    EmptyDocument,
    FetchTimeout,
    InvalidScheme,
    UnexpectedContentType,
    UpstreamStatus,
)
from blocklist.log import get_logger

logger = get_logger(__name__)

USER_AGENT: Final[str] = (
    f"blocklist-compiler/{__version__} aiohttp/{aiohttp.__version__} "
    f"Python/{sys.version.split()[0]}"
)

#: Redirect hops followed per fetch, each checked for https
MAX_REDIRECTS: Final[int] = 5
REDIRECT_STATUSES: Final[frozenset[int]] = frozenset({301, 302, 303, 307, 308})

#: application/* types that are certainly not a text rule list
BINARY_APPLICATION_TYPES: Final[frozenset[str]] = frozenset({
    "application/zip",
    "application/gzip",
    "application/x-gzip",
    "application/x-tar",
    "application/x-bzip2",
    "application/x-7z-compressed",
    "application/x-rar-compressed",
    "application/vnd.rar",
    "application/pdf",
    "application/wasm",
    "application/x-msdownload",
})


class RawDocument(NamedTuple):
    """Text fetched for one source. Discarded once split into lines."""
    url: str
    text: str
    content_type: str | None


def is_textual(content_type: str | None) -> bool:
    """
    Check whether a Content-Type header value may carry a text rule list.

    A missing header is given the benefit of the doubt.

    Example:
        >>> is_textual("text/plain; charset=utf-8")
        True
        >>> is_textual("application/octet-stream")
        True
        >>> is_textual("image/png")
        False
    """
    if not content_type:
        return True
    mimetype = content_type.split(";", 1)[0].strip().lower()
    if mimetype.startswith("text/"):
        return True
    if mimetype.startswith("application/"):
        return mimetype not in BINARY_APPLICATION_TYPES
    return False


def _is_https(url: str) -> bool:
    return url.lower().startswith("https://")


def open_session() -> aiohttp.ClientSession:
    """Create the HTTP session used for one compilation run."""
    return aiohttp.ClientSession()


async def fetch_document(
    session: aiohttp.ClientSession,
    url: str,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
) -> RawDocument:
    """
    Fetch a single remote document.

    Args:
        session: Open client session (carries the User-Agent)
        url: Source URL, must be https://
        timeout: Total seconds allowed for connect + headers + body

    Returns:
        RawDocument with the decoded body

    Raises:
        InvalidScheme: URL, or a redirect target, is not https (that hop
            is never requested)
        FetchTimeout: The request did not finish in time
        UpstreamStatus: Non-2xx response
        UnexpectedContentType: Binary payload
        EmptyDocument: Empty or whitespace-only body
        ConnectionFailed: Any other transport error
    """
    if not _is_https(url):
        raise InvalidScheme(url)

    current = url
    try:
        for _ in range(MAX_REDIRECTS + 1):
            async with session.get(
                current,
                headers={"User-Agent": USER_AGENT},
                timeout=aiohttp.ClientTimeout(total=timeout),
                allow_redirects=False,
            ) as response:
                if response.status in REDIRECT_STATUSES:
                    location = response.headers.get("Location")
                    if not location:
                        raise UpstreamStatus(url, response.status, "Redirect without Location")
                    # Every hop must stay on TLS, not just the configured URL
                    current = urljoin(current, location)
                    if not _is_https(current):
                        raise InvalidScheme(current)
                    logger.debug("Following redirect %s -> %s", url, current)
                    continue

                if not 200 <= response.status < 300:
                    raise UpstreamStatus(url, response.status, response.reason)

                content_type = response.headers.get("Content-Type")
                if not is_textual(content_type):
                    raise UnexpectedContentType(url, content_type or "")

                body = await response.read()
                charset = response.charset or "utf-8"
                break
        else:
            raise ConnectionFailed(url, f"Too many redirects (more than {MAX_REDIRECTS})")
    except asyncio.TimeoutError as e:
        raise FetchTimeout(url, timeout) from e
    except aiohttp.ClientError as e:
        raise ConnectionFailed(url, f"Failed to fetch: {e}") from e

    try:
        text = body.decode(charset, errors="replace")
    except LookupError:
        # Unknown charset label from the server
        text = body.decode("utf-8", errors="replace")

    if not text.strip():
        raise EmptyDocument(url)

    logger.debug("Fetched %s (%d bytes, %s)", url, len(body), content_type or "no content type")
    return RawDocument(url, text, content_type)
