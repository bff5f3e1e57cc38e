"""Render templates and write generated output.

Takes the context from context_builder and produces the bindings module text.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, TextIO

import jinja2

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"
TEMPLATE_NAME = "bindings.py.j2"


def _docsafe(value: str) -> str:
    """Escape text for use inside a triple-quoted docstring."""
    return str(value).replace("\\", "\\\\").replace('"', '\\"')


def make_environment() -> jinja2.Environment:
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
        autoescape=False,
        undefined=jinja2.StrictUndefined,
    )
    env.filters["pyrepr"] = repr
    env.filters["docsafe"] = _docsafe
    return env


def generate(context: dict[str, Any]) -> str:
    """Render the bindings template to Python source text."""
    template = make_environment().get_template(TEMPLATE_NAME)
    return template.render(**context)


def write_output(code: str, output: Path | None = None, stream: TextIO | None = None) -> None:
    """Write generated code to a file, or to stdout when no path is given."""
    if output is None:
        (stream or sys.stdout).write(code)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(code)
    logger.info("Generated %s", output)
