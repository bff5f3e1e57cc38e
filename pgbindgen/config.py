"""Configuration management for pgbindgen.

Loads defaults from environment variables using python-dotenv; command line
options override them.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_DSN = "postgresql://postgres@localhost:5432/postgres"


class Settings:
    """Generator settings loaded from environment variables."""

    def __init__(self) -> None:
        self.dsn = os.getenv("PGBINDGEN_DSN", DEFAULT_DSN)

        output = os.getenv("PGBINDGEN_OUTPUT", "")
        self.output: Path | None = Path(output) if output else None

        equivalences = os.getenv("PGBINDGEN_EQUIVALENCES", "")
        self.equivalences: Path | None = Path(equivalences) if equivalences else None

        self.connect_timeout = float(os.getenv("PGBINDGEN_CONNECT_TIMEOUT", "30"))


def load_settings() -> Settings:
    """Load .env, then read settings from the environment."""
    load_dotenv()
    return Settings()
