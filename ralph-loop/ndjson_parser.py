"""Incremental NDJSON decoding for claude --output-format stream-json.

Output arrives from the CLI in arbitrary pipe-sized chunks. The decoder keeps
only the unterminated tail between calls, so it can be driven chunk by chunk
for as long as the process runs.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

RecordCallback = Callable[[Any], None]


def parse_stream_chunk(buffer: str, chunk: str, on_record: RecordCallback) -> str:
    """Decode every complete line in ``buffer + chunk`` and return the remainder.

    The final segment after the last newline is never parsed here, even when
    empty; callers prepend it to the next chunk. Each decoded value is passed
    to ``on_record`` in arrival order. Lines that fail to decode are dropped.
    """
    lines = (buffer + chunk).split("\n")
    remaining = lines.pop()

    for line in lines:
        if not line.strip():
            continue
        try:
            record = json.loads(line)
        except (ValueError, RecursionError):
            # ValueError covers JSONDecodeError and the int digit limit
            logger.debug("Dropping unparseable NDJSON line: %s", line[:200])
            continue
        on_record(record)

    return remaining
