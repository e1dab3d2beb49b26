"""Shared fixtures and fakes for the blocklist test-suite.

Network access is replaced by FakeSession (aiohttp surface used by
downloader.fetch_document) and FakeFetcher (the compiler's fetch callable).
"""

# pylint: disable=missing-function-docstring
from __future__ import annotations

import asyncio
import json
from pathlib import Path

from pytest import fixture

from blocklist.config import CompilationConfig, Settings, parse_config
from blocklist.downloader import RawDocument
from blocklist.errors import FetchError


def rule_lines(count: int, prefix: str = "ads") -> str:
    """Document with ``count`` distinct valid domains."""
    return "".join(f"{prefix}{i}.example.com\n" for i in range(count))


def make_config_dict(urls: list[str], **extra) -> dict:
    data = {
        "name": "Test Blocklist",
        "description": "Merged test list",
        "sources": [
            {"name": f"S{i}", "type": "adblock", "source": url}
            for i, url in enumerate(urls, start=1)
        ],
    }
    data.update(extra)
    return data


def make_config(urls: list[str], **extra) -> CompilationConfig:
    return parse_config(make_config_dict(urls, **extra))


class FakeResponse:
    """Minimal stand-in for aiohttp.ClientResponse used as async context."""

    def __init__(
        self,
        body: bytes = b"",
        status: int = 200,
        headers: dict | None = None,
        charset: str | None = "utf-8",
        reason: str = "OK",
    ):
        self.body = body
        self.status = status
        self.headers = {"Content-Type": "text/plain; charset=utf-8"} if headers is None else headers
        self.charset = charset
        self.reason = reason

    async def read(self) -> bytes:
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Records GET calls; returns canned responses in order or raises a canned error.

    The last response is repeated once the others are used up.
    """

    def __init__(
        self,
        response: FakeResponse | list[FakeResponse] | None = None,
        error: BaseException | None = None,
    ):
        if isinstance(response, list):
            self.responses = list(response)
        else:
            self.responses = [response or FakeResponse(b"example.com\n")]
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


def redirect(location: str | None, status: int = 302) -> FakeResponse:
    headers = {} if location is None else {"Location": location}
    return FakeResponse(b"", status=status, headers=headers, reason="Found")


class FakeFetcher:
    """Compiler fetcher serving documents (or errors) keyed by URL."""

    def __init__(self, documents: dict[str, str | BaseException], delay: float = 0.0):
        self.documents = documents
        self.delay = delay
        self.calls: list[str] = []

    async def __call__(self, url: str, timeout: float) -> RawDocument:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.documents[url]
        if isinstance(result, BaseException):
            raise result
        if not result.strip():
            raise FetchError(url, "Empty or whitespace-only response")
        return RawDocument(url, result, "text/plain")


@fixture
def config_file(tmp_path: Path):
    """Write a config.json built from source URLs and return its path."""

    def _write(urls: list[str], **extra) -> Path:
        path = tmp_path / "config.json"
        path.write_text(json.dumps(make_config_dict(urls, **extra)), encoding="utf-8")
        return path

    return _write


@fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        schedule="0 0 * * *",
        config_path=tmp_path / "config.json",
        output_path=Path("blocklist.txt"),
        fetch_timeout=1.0,
        compile_timeout=5.0,
        min_rules=1,
        min_output_bytes=0,
        max_failures=3,
    )
