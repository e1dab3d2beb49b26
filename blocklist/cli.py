#!/usr/bin/env python3
"""
cli.py - Command line entry point

Usage:
    python -m blocklist compile      [--config config.json] [--output adguard-blocklist.txt]
    python -m blocklist run          [--schedule "0 0 * * *"]
    python -m blocklist check-config [--config config.json]

Every option falls back to the matching environment variable (CRON_SCHEDULE,
CONFIG_PATH, OUTPUT_PATH, FETCH_TIMEOUT, COMPILE_TIMEOUT, MIN_RULES,
MIN_OUTPUT_BYTES, MAX_FAILURES, LOG_FILE) and then to the built-in default.
"""
from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from dataclasses import replace
from pathlib import Path

from blocklist import __version__
from blocklist.compiler import BlocklistCompiler, CompiledArtifact
from blocklist.config import Settings, load_config
from blocklist.errors import BlocklistError, ConfigError, InvalidSchedule
from blocklist.log import configure_logging
from blocklist.service import BlocklistService
from blocklist.store import ArtifactStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blocklist", description="Compile and refresh a merged AdGuard blocklist"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", type=Path, help="Also log to this file (rotated)")
    parser.add_argument("--config", type=Path, help="Path to config.json")

    sub = parser.add_subparsers(dest="command", required=True)

    compile_cmd = sub.add_parser("compile", help="Compile and publish once")
    run_cmd = sub.add_parser("run", help="Compile on a cron schedule until stopped")
    sub.add_parser("check-config", help="Validate the configuration file and exit")

    for cmd in (compile_cmd, run_cmd):
        cmd.add_argument("--output", type=Path, help="Published artifact path")
        cmd.add_argument("--fetch-timeout", type=float, help="Seconds per source")
        cmd.add_argument("--compile-timeout", type=float, help="Seconds per whole run")
        cmd.add_argument("--min-rules", type=int, help="Fewest rules allowed in output")
    run_cmd.add_argument("--schedule", help="Cron expression")
    run_cmd.add_argument("--max-failures", type=int, help="Consecutive failures before halting")
    return parser


def resolve_settings(args: argparse.Namespace) -> Settings:
    """Overlay command line options on environment-derived settings."""
    settings = Settings.from_env()
    overrides = {
        "config_path": args.config,
        "log_file": args.log_file,
        "output_path": getattr(args, "output", None),
        "fetch_timeout": getattr(args, "fetch_timeout", None),
        "compile_timeout": getattr(args, "compile_timeout", None),
        "min_rules": getattr(args, "min_rules", None),
        "schedule": getattr(args, "schedule", None),
        "max_failures": getattr(args, "max_failures", None),
    }
    return replace(settings, **{k: v for k, v in overrides.items() if v is not None})


def print_summary(artifact: CompiledArtifact, output: Path) -> None:
    """Print formatted summary of a one-shot compilation."""
    header = artifact.header
    print("\n" + "=" * 60)
    print("📊 COMPILATION SUMMARY")
    print("=" * 60)
    print(f"\n📝 List:     {header.title}")
    print(f"📁 Sources:  {header.source_count}")
    print(f"📈 Rules:    {header.rule_count:,}")
    print(f"⏱️  Time:     {header.elapsed_ms:,}ms")
    print(f"💾 Output:   {output}")


async def _compile(settings: Settings) -> int:
    config = load_config(settings.config_path)
    store = ArtifactStore(settings.output_path)
    compiler = BlocklistCompiler(
        store,
        fetch_timeout=settings.fetch_timeout,
        compile_timeout=settings.compile_timeout,
        min_rules=settings.min_rules,
        min_output_bytes=settings.min_output_bytes,
    )
    artifact = await compiler.compile(config)
    print_summary(artifact, store.path)
    return 0


async def _run(settings: Settings) -> int:
    service = BlocklistService(settings)
    await service.start()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            pass

    try:
        await stop.wait()
    finally:
        await service.shutdown()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = resolve_settings(args)
        configure_logging(verbose=args.verbose, log_file=settings.log_file)

        if args.command == "check-config":
            config = load_config(settings.config_path)
            print(f"✅ {settings.config_path}: {config.title} "
                  f"({len(config.enabled_sources)}/{len(config.sources)} sources enabled)")
            return 0
        if args.command == "compile":
            return asyncio.run(_compile(settings))
        return asyncio.run(_run(settings))

    except ConfigError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        return 1
    except InvalidSchedule as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    except BlocklistError as e:
        print(f"❌ Compilation failed: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
