"""Shared test helpers for the Ralph loop test suite.

Fixtures are in conftest.py. This module contains non-fixture helpers
(NDJSON record builders, a chunked Popen mock) used across multiple test files.
"""

import io
import json
from typing import Iterable, Optional

COMPLETE = "<promise>COMPLETE</promise>"


# --- NDJSON record builders ---

def init_record(session_id: str = "sess-1") -> dict:
    return {"type": "system", "subtype": "init", "session_id": session_id}


def assistant_record(*blocks: dict) -> dict:
    return {
        "type": "assistant",
        "message": {"role": "assistant", "content": list(blocks)},
    }


def text_block(text: str) -> dict:
    return {"type": "text", "text": text}


def tool_use_block(name: str, tool_input: dict) -> dict:
    return {"type": "tool_use", "id": "tu_1", "name": name, "input": tool_input}


def tool_result_block(content) -> dict:
    return {"type": "tool_result", "tool_use_id": "tu_1", "content": content}


def user_record(*blocks: dict) -> dict:
    return {"type": "user", "message": {"role": "user", "content": list(blocks)}}


def result_record(
    subtype: str = "success", turns: int = 1, cost: Optional[float] = 0.01
) -> dict:
    record = {"type": "result", "subtype": subtype, "num_turns": turns}
    if cost is not None:
        record["total_cost_usd"] = cost
    return record


def build_ndjson_stream(records: Iterable[dict]) -> str:
    """Serialize records one per line, newline-terminated, like the claude CLI."""
    return "".join(json.dumps(r) + "\n" for r in records)


def build_session_stream(final_text: str, session_id: str = "sess-1") -> str:
    """A realistic single-turn session whose last assistant message is ``final_text``."""
    return build_ndjson_stream([
        init_record(session_id),
        assistant_record(
            text_block("Looking at the code."),
            tool_use_block("Read", {"file_path": "/tmp/app.py"}),
        ),
        user_record(tool_result_block("print('hello')")),
        assistant_record(text_block(final_text)),
        result_record(),
    ])


def split_every(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


# --- Popen mock streaming chunked output ---

class ChunkedReader:
    """Binary pipe stand-in whose ``read1`` hands back one preset chunk per call."""

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._chunks = list(chunks)
        self.reads = 0

    def read1(self, size: int = -1) -> bytes:
        self.reads += 1
        if not self._chunks:
            return b""
        return self._chunks.pop(0)


class RecordingStdin(io.BytesIO):
    """BytesIO that remembers what was written before close()."""

    def __init__(self) -> None:
        super().__init__()
        self.written = b""
        self.was_closed = False

    def close(self) -> None:
        self.written = self.getvalue()
        self.was_closed = True
        super().close()


class MockPopen:
    """Mock subprocess.Popen yielding preset stdout/stderr chunks.

    Used for testing IterationController, which reads stdout with read1().
    """

    def __init__(
        self,
        stdout_chunks: Iterable[bytes] = (),
        stderr_chunks: Iterable[bytes] = (),
        returncode: int = 0,
        args=None,
        kwargs=None,
    ) -> None:
        self.stdin = RecordingStdin()
        self.stdout = ChunkedReader(stdout_chunks)
        self.stderr = ChunkedReader(stderr_chunks)
        self.returncode = returncode
        self.pid = 99999
        self.args = args
        self.kwargs = kwargs or {}
        self.wait_calls = 0

    def wait(self, timeout: float | None = None) -> int:
        self.wait_calls += 1
        return self.returncode

    def kill(self) -> None:
        pass


def make_popen_factory(
    streams: Iterable[str | list[bytes]],
    stderr: Iterable[bytes] = (),
    spawned: Optional[list] = None,
):
    """Create a side_effect for subprocess.Popen returning one MockPopen per call.

    Each entry of ``streams`` is either the full stdout text of that session
    (delivered as one chunk) or a list of raw byte chunks.
    """
    remaining = list(streams)

    def factory(*args, **kwargs):
        stream = remaining.pop(0)
        chunks = [stream.encode("utf-8")] if isinstance(stream, str) else stream
        proc = MockPopen(chunks, list(stderr), args=args[0] if args else None, kwargs=kwargs)
        if spawned is not None:
            spawned.append(proc)
        return proc

    return factory
