"""
Model output normalization.
"""

import re
from typing import List

# Commas used as stylistic separators and asterisk emphasis markers
DECORATION_PATTERN = re.compile(r"[,*]")


def normalize_output(raw: str) -> List[str]:
    """
    Turn raw model output into the ordered lines sent to the caller.

    Trims surrounding whitespace, strips decoration characters, then splits
    on newlines. Output that is empty after trimming yields no lines.
    """
    text = DECORATION_PATTERN.sub("", raw.strip())
    if not text:
        return []
    return text.split("\n")


def reassemble(lines: List[str]) -> str:
    """The full reply text as persisted: the lines joined by newlines."""
    return "\n".join(lines)
