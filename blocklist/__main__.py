"""Module entrypoint to run the CLI with `python -m blocklist`."""

from blocklist.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
