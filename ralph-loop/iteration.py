"""Single claude session lifecycle: spawn, stream, detect errors, resolve outcome."""

from __future__ import annotations

import codecs
import logging
import os
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, TextIO

from config import RunnerConfig
from error_scanner import ErrorScanner
from message_formatter import extract_assistant_text, format_stream_message
from ndjson_parser import parse_stream_chunk

logger = logging.getLogger(__name__)

CHUNK_SIZE = 65536


class IterationState(Enum):
    SPAWNING = "spawning"
    STREAMING = "streaming"
    KILLING = "killing"
    CLOSED = "closed"


@dataclass(frozen=True)
class IterationOutcome:
    """Result of one claude session.

    ``success`` is False when the session could not start or hit a fatal
    error; ``complete`` is True only when the final assistant message was the
    completion marker.
    """

    success: bool
    complete: bool


def _process_group_kwargs() -> dict:
    """Popen kwargs that put the child (and its descendants) in a fresh group."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


class IterationController:
    """Drives one claude process from spawn to exit.

    All per-iteration stream state (raw output, decoder remainder, last
    assistant text) lives on the instance; a new controller is built for each
    iteration.
    """

    def __init__(
        self,
        config: RunnerConfig,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        self.config = config
        self._stdout = stdout if stdout is not None else sys.stdout
        self._stderr = stderr if stderr is not None else sys.stderr
        self._scanner = ErrorScanner(config.patterns.error_patterns)
        self._proc: Optional[subprocess.Popen] = None

        self.state = IterationState.SPAWNING
        self.raw_output = ""
        self.buffer = ""
        self.last_assistant_text = ""
        self.error_pattern: Optional[str] = None

    @property
    def error_detected(self) -> bool:
        return self.error_pattern is not None

    def run(self) -> IterationOutcome:
        """Run the session to completion. Never raises for process failures."""
        try:
            prompt = Path(self.config.prompt_file).read_bytes()
        except OSError as e:
            logger.error("Cannot read prompt file %s: %s", self.config.prompt_file, e)
            return self._close(success=False)

        args = self.config.claude.build_command()
        logger.debug("Spawning: %s", " ".join(args))

        try:
            proc = subprocess.Popen(
                args,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                **_process_group_kwargs(),
            )
        except OSError as e:
            logger.error("Failed to start %s: %s", args[0], e)
            return self._close(success=False)

        self._proc = proc
        logger.debug("Claude PID: %d", proc.pid)

        stderr_thread = threading.Thread(
            target=self._forward_stderr, args=(proc.stderr,), daemon=True
        )
        stderr_thread.start()

        self._send_prompt(proc.stdin, prompt)
        self.state = IterationState.STREAMING

        try:
            self._read_stdout(proc.stdout)
        except BaseException as e:
            logger.warning(
                "Streaming aborted (%s), terminating claude process tree",
                type(e).__name__,
            )
            self._abort(proc)
            raise

        returncode = proc.wait()
        stderr_thread.join(timeout=5)
        logger.debug("Claude exited with code %s", returncode)

        if self.error_detected:
            return self._close(success=False)

        complete = (
            self.last_assistant_text.strip() == self.config.patterns.completion_marker
        )
        return self._close(success=True, complete=complete)

    def handle_output(self, text: str) -> None:
        """Process one decoded stdout chunk.

        The error scan runs before any parsing. Once an error has been seen,
        later chunks are drained without being looked at, so the process
        group is signalled at most once.
        """
        if self.state is not IterationState.STREAMING:
            return

        self.raw_output += text
        matched = self._scanner.scan(self.raw_output)
        if matched is not None:
            self.error_pattern = matched
            self.state = IterationState.KILLING
            logger.warning("Claude error detected (%s), killing process tree...", matched)
            self._kill_process_group()
            return

        self.buffer = parse_stream_chunk(self.buffer, text, self._on_record)

    def _on_record(self, record: Any) -> None:
        formatted = format_stream_message(record)
        if formatted:
            self._stdout.write(formatted)
            self._stdout.flush()

        text = extract_assistant_text(record)
        if text is not None:
            self.last_assistant_text = text

    def _send_prompt(self, stdin, prompt: bytes) -> None:
        try:
            stdin.write(prompt)
        except (BrokenPipeError, ConnectionResetError, OSError) as e:
            logger.warning("Failed to write prompt to claude stdin: %s", e)
        finally:
            try:
                stdin.close()
            except OSError:
                pass  # Child already gone; close() flushing into a dead pipe

    def _read_stdout(self, stdout) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = stdout.read1(CHUNK_SIZE)
            if not data:
                break
            self.handle_output(decoder.decode(data))
        tail = decoder.decode(b"", final=True)
        if tail:
            self.handle_output(tail)

    def _forward_stderr(self, pipe) -> None:
        """Copy claude's stderr to ours as it arrives (background thread)."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = pipe.read1(CHUNK_SIZE)
                if not data:
                    break
                text = decoder.decode(data)
                if text:
                    self._stderr.write(text)
                    self._stderr.flush()
        except (OSError, ValueError):
            pass  # Pipe closed underneath us at process exit

    def _kill_process_group(self) -> None:
        """Terminate claude and every process it spawned.

        Failure (typically because the process already exited) is logged and
        otherwise ignored.
        """
        if self._proc is None:
            return
        pid = self._proc.pid
        if sys.platform == "win32":
            try:
                result = subprocess.run(
                    ["taskkill", "/F", "/PID", str(pid), "/T"],
                    capture_output=True, text=True, timeout=10,
                )
                if result.returncode != 0:
                    logger.debug(
                        "taskkill PID %d failed (rc=%d): %s",
                        pid, result.returncode, result.stderr[:200],
                    )
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.debug("taskkill PID %d exception: %s", pid, e)
            return

        try:
            os.killpg(pid, signal.SIGTERM)
        except (ProcessLookupError, PermissionError) as e:
            logger.debug("killpg %d failed: %s", pid, e)

    def _abort(self, proc: subprocess.Popen) -> None:
        """Kill and reap the child after streaming failed in our process."""
        if self.state is not IterationState.KILLING:
            self.state = IterationState.KILLING
            self._kill_process_group()
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            logger.debug("Claude PID %d still running after SIGTERM", proc.pid)
        self.state = IterationState.CLOSED

    def _close(self, success: bool, complete: bool = False) -> IterationOutcome:
        self.state = IterationState.CLOSED
        return IterationOutcome(success=success, complete=complete)
