"""
compiler.py - Blocklist compilation run

Entry point of the pipeline. One call to BlocklistCompiler.compile() turns a
CompilationConfig into a published artifact or raises without touching the
previously published one.

RUN STATES:

    IDLE → VALIDATING_CONFIG → FETCHING_SOURCES ⇄ NORMALIZING → FILTERING
         → FORMATTING → PUBLISHING → DONE

    FAILED is reachable from every state. Fetching and normalizing alternate
    once per source so each raw document can be dropped as soon as it has
    been split into lines.

FAIL-FAST FETCHING:
    Enabled sources are fetched one at a time in declared order. The first
    failure aborts the run with SourceFetchError carrying the source's
    position and name. A merged list missing one source is never published:
    freshness and completeness are preferred over availability, the old
    artifact keeps being served.

TIMEOUTS:
    Each fetch has its own timeout (downloader.py). The whole run from
    validation through formatting is additionally bounded by
    ``compile_timeout``; publishing only starts after that deadline was met
    and is never interrupted halfway.

OUTPUT FORMAT:
    ! Title: <name>
    ! Last updated: <UTC ISO-8601>
    ! Description: <description>
    ! Homepage / License / Version  (only when configured)
    ! Source count: <n>
    ! Rule count: <n>
    ! Compilation time: <n>ms
    !
    <one rule per line, final newline>
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Awaitable, Callable, Sequence

from blocklist.cleaner import extend_batched, normalize_document
from blocklist.config import (
    DEFAULT_COMPILE_TIMEOUT,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_MIN_OUTPUT_BYTES,
    DEFAULT_MIN_RULES,
    CompilationConfig,
    SourceSpec,
)
from blocklist.downloader import RawDocument, fetch_document, open_session
from blocklist.errors import (
    BlocklistError,
    CompilationCancelled,
    CompilationTimeout,
    ConfigError,
    FetchError,
    OutputTooSmall,
    SourceFetchError,
)
from blocklist.log import get_logger
from blocklist.pipeline import RuleFilterPipeline
from blocklist.store import ArtifactStore

logger = get_logger(__name__)

#: async (url, timeout_seconds) -> RawDocument
Fetcher = Callable[[str, float], Awaitable[RawDocument]]


class CompilerState(str, Enum):
    IDLE = "idle"
    VALIDATING_CONFIG = "validating_config"
    FETCHING_SOURCES = "fetching_sources"
    NORMALIZING = "normalizing"
    FILTERING = "filtering"
    FORMATTING = "formatting"
    PUBLISHING = "publishing"
    DONE = "done"
    FAILED = "failed"


# ============================================================================
# DATA STRUCTURES
# ============================================================================

def _single_line(value: str) -> str:
    """Collapse line breaks so a metadata value stays inside its ! line."""
    return " ".join(part.strip() for part in value.splitlines() if part.strip())


@dataclass(frozen=True)
class ArtifactHeader:
    """Metadata written as ! comments at the top of the artifact."""
    title: str
    description: str
    source_count: int
    rule_count: int
    compiled_at: datetime
    elapsed_ms: int
    homepage: str | None = None
    license: str | None = None
    version: str | None = None

    def lines(self) -> list[str]:
        timestamp = self.compiled_at.astimezone(timezone.utc).isoformat(timespec="milliseconds")
        lines = [
            f"! Title: {_single_line(self.title)}",
            f"! Last updated: {timestamp.replace('+00:00', 'Z')}",
            f"! Description: {_single_line(self.description)}",
        ]
        if self.homepage:
            lines.append(f"! Homepage: {_single_line(self.homepage)}")
        if self.license:
            lines.append(f"! License: {_single_line(self.license)}")
        if self.version:
            lines.append(f"! Version: {_single_line(self.version)}")
        lines += [
            f"! Source count: {self.source_count}",
            f"! Rule count: {self.rule_count}",
            f"! Compilation time: {self.elapsed_ms}ms",
            "!",
        ]
        return lines


@dataclass(frozen=True)
class CompiledArtifact:
    """One compilation result: header metadata plus ordered rules."""
    header: ArtifactHeader
    rules: tuple[str, ...]

    def render(self) -> str:
        return "\n".join([*self.header.lines(), *self.rules]) + "\n"


# ============================================================================
# COMPILER
# ============================================================================

class BlocklistCompiler:
    """
    Orchestrates fetch → normalize → filter → format → publish.

    Args:
        store: Destination of the published artifact
        fetch_timeout: Seconds allowed per source
        compile_timeout: Seconds allowed from validation through formatting
        min_rules: Fewest rules a publishable artifact may contain
        min_output_bytes: Smallest publishable artifact size
        fetcher: Replacement for the aiohttp fetcher (tests, proxies)
        stop_event: Cooperative cancellation flag checked between stages
    """

    def __init__(
        self,
        store: ArtifactStore,
        *,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        compile_timeout: float = DEFAULT_COMPILE_TIMEOUT,
        min_rules: int = DEFAULT_MIN_RULES,
        min_output_bytes: int = DEFAULT_MIN_OUTPUT_BYTES,
        fetcher: Fetcher | None = None,
        stop_event: asyncio.Event | None = None,
    ):
        self.store = store
        self.fetch_timeout = fetch_timeout
        self.compile_timeout = compile_timeout
        self.min_rules = min_rules
        self.min_output_bytes = min_output_bytes
        self.stop_event = stop_event or asyncio.Event()
        self._fetcher = fetcher
        self._state = CompilerState.IDLE

    @property
    def state(self) -> CompilerState:
        return self._state

    def _set_state(self, state: CompilerState) -> None:
        logger.debug("Compiler state: %s -> %s", self._state.value, state.value)
        self._state = state

    def _checkpoint(self) -> None:
        if self.stop_event.is_set():
            raise CompilationCancelled(f"Stop requested during {self._state.value}")

    async def compile(self, config: CompilationConfig) -> CompiledArtifact:
        """
        Run one full compilation and publish the result.

        Raises:
            ConfigError: No enabled sources
            SourceFetchError: First failing source (wraps the FetchError)
            PipelineError: Filtering guards tripped
            PublishError: Artifact could not be replaced
            CompilationTimeout: Run exceeded compile_timeout
            CompilationCancelled: stop_event was set
        """
        logger.info("Starting blocklist compilation: %s", config.title)
        started = time.monotonic()
        self._set_state(CompilerState.IDLE)

        try:
            try:
                artifact, content = await asyncio.wait_for(
                    self._build(config, started), timeout=self.compile_timeout
                )
            except asyncio.TimeoutError as e:
                raise CompilationTimeout(self.compile_timeout, self._state.value) from e

            self._checkpoint()
            self._set_state(CompilerState.PUBLISHING)
            await self.store.atomic_publish(content)
        except BlocklistError as e:
            logger.error("Compilation failed during %s: %s", self._state.value, e)
            self._set_state(CompilerState.FAILED)
            raise
        except BaseException:
            self._set_state(CompilerState.FAILED)
            raise

        self._set_state(CompilerState.DONE)
        logger.info(
            "Compilation completed in %dms: %d rules from %d sources",
            (time.monotonic() - started) * 1000,
            artifact.header.rule_count,
            artifact.header.source_count,
        )
        return artifact

    async def _build(
        self, config: CompilationConfig, started: float
    ) -> tuple[CompiledArtifact, str]:
        self._set_state(CompilerState.VALIDATING_CONFIG)
        sources = config.enabled_sources
        if not sources:
            raise ConfigError("No enabled sources in configuration")
        logger.info(
            "Found %d enabled sources out of %d total", len(sources), len(config.sources)
        )

        lines = await self._fetch_sources(sources)
        self._checkpoint()

        self._set_state(CompilerState.FILTERING)
        pipeline = RuleFilterPipeline(config.transformations, min_rules=self.min_rules)
        rules = pipeline.run(lines)
        del lines
        self._checkpoint()

        self._set_state(CompilerState.FORMATTING)
        header = ArtifactHeader(
            title=config.title,
            description=config.description,
            homepage=config.homepage,
            license=config.license,
            version=config.version,
            source_count=len(sources),
            rule_count=len(rules),
            compiled_at=datetime.now(timezone.utc),
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        artifact = CompiledArtifact(header, tuple(rules))
        content = artifact.render()

        size = len(content.encode("utf-8"))
        if size < self.min_output_bytes:
            raise OutputTooSmall(size, self.min_output_bytes)
        return artifact, content

    async def _fetch_sources(self, sources: Sequence[SourceSpec]) -> list[str]:
        if self._fetcher is not None:
            return await self._collect(sources, self._fetcher)
        async with open_session() as session:
            return await self._collect(sources, partial(fetch_document, session))

    async def _collect(self, sources: Sequence[SourceSpec], fetch: Fetcher) -> list[str]:
        """Fetch sources in order, appending their normalized lines to one list."""
        all_rules: list[str] = []
        total = len(sources)

        for index, source in enumerate(sources, start=1):
            self._checkpoint()
            self._set_state(CompilerState.FETCHING_SOURCES)
            logger.info("Fetching source %d/%d: %s (%s)", index, total, source.name, source.url)

            fetch_start = time.monotonic()
            try:
                document = await fetch(source.url, self.fetch_timeout)
            except FetchError as e:
                logger.error(
                    "Failed to fetch source %d/%d %s from %s: %s",
                    index, total, source.name, source.url, e,
                )
                raise SourceFetchError(index, total, source.name, e) from e

            self._set_state(CompilerState.NORMALIZING)
            added = extend_batched(all_rules, normalize_document(document.text))
            del document
            logger.info(
                "Fetched %s in %dms: %d lines (%d collected so far)",
                source.name, (time.monotonic() - fetch_start) * 1000, added, len(all_rules),
            )

        return all_rules
