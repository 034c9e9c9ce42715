"""Helpers for running native binaries and laying out their output."""

from __future__ import annotations

import logging
import subprocess
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


def run_command(
    command: List[str],
    check: bool = True,
    capture_output: bool = False,
    input: Optional[str] = None,
) -> subprocess.CompletedProcess:
    """Run an argument list (never through a shell).

    With ``check`` a non-zero exit becomes a RuntimeError carrying the
    command line and the first stderr line, which is what the menu shows.
    """
    logger.debug("Running %s", command)
    result = subprocess.run(command, input=input, capture_output=capture_output, text=True, check=False)
    if result.returncode and check:
        detail = (result.stderr or "").strip().splitlines()
        reason = f": {detail[0]}" if detail else ""
        raise RuntimeError(f"'{' '.join(command)}' exited with status {result.returncode}{reason}")
    return result


def privileged(command: List[str], use_sudo: bool) -> List[str]:
    return ["sudo", *command] if use_sudo else list(command)


def format_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    columns = list(zip(headers, *rows))
    widths = [max(len(str(cell)) for cell in column) for column in columns]

    def line(cells: Sequence[str]) -> str:
        return " | ".join(str(cell).ljust(width) for cell, width in zip(cells, widths)).rstrip()

    rule = "-+-".join("-" * width for width in widths)
    return "\n".join([line(headers), rule, *(line(row) for row in rows)])


def usage_bar(pct: float, width: int = 20) -> str:
    filled = round(width * min(max(pct, 0.0), 100.0) / 100)
    return "[" + "#" * filled + "." * (width - filled) + "]"
