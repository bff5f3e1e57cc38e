"""Entry point: python -m pgbindgen

Introspects a PostgreSQL database and writes the generated bindings module
to --output, or to stdout.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .codegen import write_output
from .config import load_settings
from .diagnostics import CatalogConnectionError
from .pipeline import run


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    settings = load_settings()
    parser = argparse.ArgumentParser(
        prog="pgbindgen",
        description="Generate typed asyncpg bindings from a PostgreSQL catalog",
    )
    parser.add_argument("--dsn", default=settings.dsn,
                        help="PostgreSQL connection string (env: PGBINDGEN_DSN)")
    parser.add_argument("-o", "--output", type=Path, default=settings.output,
                        help="Output file; stdout when omitted (env: PGBINDGEN_OUTPUT)")
    parser.add_argument("--equivalences", type=Path, default=settings.equivalences,
                        help="Built-in type equivalence table (env: PGBINDGEN_EQUIVALENCES)")
    parser.add_argument("--timeout", type=float, default=settings.connect_timeout,
                        help="Connection timeout in seconds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        result = asyncio.run(run(args.dsn, args.equivalences, timeout=args.timeout))
    except CatalogConnectionError as exc:
        logging.getLogger("pgbindgen").error("%s", exc)
        return 1

    write_output(result.code, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
