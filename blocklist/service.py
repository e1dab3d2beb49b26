"""
service.py - Refresh/serve coordination

Ties configuration, compiler, store and scheduler together and exposes the
small interface the HTTP layer needs:

    read_current_artifact()  content + last-modified of the published file
    trigger_refresh()        run one compilation now (single-flight)
    is_healthy()             artifact exists and the last run did not fail

Startup:
    1. Load the configuration. A ConfigError here is fatal to the process.
    2. No artifact yet, or the artifact is older than ``updateInterval``:
       schedule an immediate compilation in the background.
    3. Start the cron loop.

Every run reloads the configuration file, so edits are picked up on the next
refresh; a broken edit only fails that run.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import NamedTuple

from blocklist.compiler import BlocklistCompiler, CompiledArtifact, Fetcher
from blocklist.config import CompilationConfig, Settings, load_config
from blocklist.log import get_logger
from blocklist.scheduler import RunOutcome, Scheduler, SchedulerState
from blocklist.store import ArtifactStore

logger = get_logger(__name__)


class ArtifactSnapshot(NamedTuple):
    content: str
    last_modified: datetime


class BlocklistService:
    """
    Owns one compiler/store/scheduler trio built from Settings.

    Args:
        settings: Runtime knobs
        fetcher: Replacement fetcher handed to the compiler
        state: Scheduler state to continue from
    """

    def __init__(
        self,
        settings: Settings,
        *,
        fetcher: Fetcher | None = None,
        state: SchedulerState | None = None,
        root: str | None = None,
    ):
        self.settings = settings
        self.stop_event = asyncio.Event()
        self.store = ArtifactStore(settings.output_path, root=root)
        self.compiler = BlocklistCompiler(
            self.store,
            fetch_timeout=settings.fetch_timeout,
            compile_timeout=settings.compile_timeout,
            min_rules=settings.min_rules,
            min_output_bytes=settings.min_output_bytes,
            fetcher=fetcher,
            stop_event=self.stop_event,
        )
        self.scheduler = Scheduler(
            self.compile_once,
            settings.schedule,
            max_failures=settings.max_failures,
            state=state,
        )
        self.config: CompilationConfig | None = None

    async def compile_once(self) -> CompiledArtifact:
        """Reload the configuration and run one compilation."""
        self.config = load_config(self.settings.config_path)
        return await self.compiler.compile(self.config)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def needs_initial_compile(self, config: CompilationConfig) -> bool:
        meta = self.store.current_meta()
        if not meta.exists:
            logger.info("Blocklist doesn't exist, running initial compilation...")
            return True
        age = (datetime.now(timezone.utc) - meta.last_modified).total_seconds()
        if age > config.update_interval:
            logger.info(
                "Blocklist is older than %d seconds (age %d). Recompiling...",
                config.update_interval, age,
            )
            return True
        logger.info("Using existing blocklist (age: %d seconds)", age)
        return False

    async def start(self) -> asyncio.Task:
        """
        Validate configuration and start the scheduler.

        Raises:
            ConfigError: The configuration cannot be loaded
        """
        self.config = load_config(self.settings.config_path)
        logger.info(
            "Loaded configuration %r with %d sources (update interval %ds)",
            self.config.title, len(self.config.sources), self.config.update_interval,
        )
        self.stop_event.clear()
        return self.scheduler.start(run_immediately=self.needs_initial_compile(self.config))

    async def shutdown(self, drain_timeout: float | None = None) -> None:
        """Request a cooperative stop and drain any in-flight compilation."""
        logger.info("Shutting down...")
        self.stop_event.set()
        if drain_timeout is None:
            await self.scheduler.stop()
        else:
            await self.scheduler.stop(drain_timeout)

    # ------------------------------------------------------------------
    # Serving interface
    # ------------------------------------------------------------------

    def read_current_artifact(self) -> ArtifactSnapshot | None:
        snapshot = self.store.read()
        if snapshot is None:
            return None
        return ArtifactSnapshot(*snapshot)

    async def trigger_refresh(self) -> RunOutcome:
        return await self.scheduler.run_now()

    def is_healthy(self) -> bool:
        if not self.store.current_meta().exists:
            return False
        return self.scheduler.state.last_outcome is not RunOutcome.FAILURE
