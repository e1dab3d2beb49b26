"""
blocklist package - Scheduled AdGuard blocklist compiler

Modules:
    config: Configuration schema loading and runtime settings
    downloader: Constrained HTTPS fetcher for remote filter lists
    cleaner: Line normalization, comment stripping and syntax validation
    pruning: Deduplication and hosts-to-ABP compression
    pipeline: Ordered rule filter pipeline with sanity guards
    compiler: Fetch -> normalize -> filter -> format -> publish orchestration
    store: Atomic publishing of the compiled artifact
    scheduler: Cron-driven refresh loop with failure backoff
    service: Read/refresh/health interface for the serving component
"""

__version__ = "1.0.0"
