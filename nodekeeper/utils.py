"""Shared helpers for the plain-text input files.

The wallet list and the proxy list are both one entry per line; blank lines
and ``#`` comments are ignored.
"""

import logging
import os
from typing import List

logger = logging.getLogger(__name__)


def read_lines(filepath: str) -> List[str]:
    """Read the non-empty, non-comment lines of a text file.

    Args:
        filepath: Path to the file.

    Returns:
        Stripped lines in file order, or an empty list if the file does
        not exist.
    """
    if not os.path.exists(filepath):
        logger.warning("File not found: %s", filepath)
        return []

    with open(filepath, "r", encoding="utf-8") as fh:
        lines = [line.strip() for line in fh.readlines()]
    return [line for line in lines if line and not line.startswith("#")]


def append_line(filepath: str, line: str) -> None:
    """Append a single line to *filepath*, creating its directory if needed."""
    dirpath = os.path.dirname(filepath)
    if dirpath:
        os.makedirs(dirpath, exist_ok=True)
    with open(filepath, "a", encoding="utf-8") as fh:
        fh.write(f"{line}\n")
    logger.info("Data saved to %s", filepath)
