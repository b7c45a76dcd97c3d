"""Detection of fatal claude CLI errors in raw stream output."""

from __future__ import annotations

import re
from typing import Optional, Sequence

from config import DEFAULT_ERROR_PATTERNS


class ErrorScanner:
    """Matches accumulated output against an ordered list of fatal error patterns.

    Callers pass the whole output seen so far rather than the latest chunk,
    since an error message can be split across pipe reads.
    """

    def __init__(self, patterns: Sequence[str] = DEFAULT_ERROR_PATTERNS) -> None:
        self._patterns = [re.compile(p) for p in patterns]

    @property
    def patterns(self) -> list[str]:
        return [p.pattern for p in self._patterns]

    def scan(self, raw_output: str) -> Optional[str]:
        """Return the first pattern found in ``raw_output``, or ``None``."""
        for pattern in self._patterns:
            if pattern.search(raw_output):
                return pattern.pattern
        return None
