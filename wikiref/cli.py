import argparse
import asyncio
import json
import sys
from typing import Optional

from wikiref.config import ResolveConfig
from wikiref.core.errors import ValidationError
from wikiref.core.logging import get_logger, set_log_level
from wikiref.core.references import ReferencePipeline

_log = get_logger("cli")


def _read_input(path: Optional[str]) -> str:
    if not path or path == "-":
        return sys.stdin.read()
    with open(path, encoding="utf-8") as f:
        return f.read()


async def resolve_async(args: argparse.Namespace) -> int:
    text = _read_input(args.file)
    async with ReferencePipeline.from_env() as pipeline:
        base_url = args.base_url or pipeline.source.config.sanitized_base_url
        config = ResolveConfig(
            base_url=base_url,
            debounce=False,
            batching=not args.sequential,
            caching=not args.no_cache,
        )
        result = await pipeline.resolve_text(text, config)
        sys.stdout.write(result)
        if not result.endswith("\n"):
            sys.stdout.write("\n")
        if args.stats:
            print(json.dumps(pipeline.get_statistics(), indent=2), file=sys.stderr)
    return 0


async def check_async(args: argparse.Namespace) -> int:
    async with ReferencePipeline.from_env() as pipeline:
        ok = await pipeline.source.test_connection()
    print("Connection OK" if ok else "Connection failed")
    return 0 if ok else 1


def main(argv: Optional[list[str]] = None) -> int:

    parser = argparse.ArgumentParser(
        prog="wikiref",
        description="Replace Confluence links in text with the content of the linked pages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  wikiref resolve notes.md            # Print notes.md with links expanded
  cat notes.md | wikiref resolve      # Read from stdin
  wikiref resolve notes.md --stats    # Also print statistics to stderr
  wikiref check                       # Test connection and credentials
""",
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    resolve_parser = subparsers.add_parser("resolve", help="Resolve links in a file or stdin")
    resolve_parser.add_argument("file", nargs="?", default="-", help="Input file, '-' for stdin")
    resolve_parser.add_argument("--base-url", default=None, help="Override CONFLUENCE_BASE_URL for link matching")
    resolve_parser.add_argument("--sequential", action="store_true", help="Fetch links one at a time")
    resolve_parser.add_argument("--no-cache", action="store_true", help="Bypass the content cache")
    resolve_parser.add_argument("--stats", action="store_true", help="Print statistics as JSON to stderr")

    subparsers.add_parser("check", help="Test the Confluence connection")

    args = parser.parse_args(argv)
    if args.log_level:
        set_log_level(args.log_level)

    if args.command is None:
        parser.print_help()
        return 2

    try:
        if args.command == "check":
            return asyncio.run(check_async(args))
        return asyncio.run(resolve_async(args))
    except ValidationError as e:
        _log.error("Invalid configuration", field=e.field, error=e.message)
        print(f"Error: {e.message}", file=sys.stderr)
        return 2
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
