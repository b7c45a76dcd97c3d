"""Ralph loop driver: re-run claude on a fixed prompt until it reports completion.

Each iteration spawns one ``claude --print --output-format stream-json``
session, streams the prompt file into it and watches the NDJSON output. The
loop stops as soon as the final assistant message of a session is the
completion marker, or after the iteration budget is spent.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Optional, Sequence, TextIO

from config import RunnerConfig, SecurityConfig, apply_overrides, load_config
from iteration import IterationController, IterationOutcome
from log_setup import setup_logging

logger = logging.getLogger(__name__)

# Exit codes
EXIT_COMPLETE = 0
EXIT_MAX_ITERATIONS = 1
EXIT_USAGE = 1


class LoopDriver:
    """Runs iterations strictly one after another, up to the configured budget."""

    def __init__(
        self,
        config: RunnerConfig,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        self.config = config
        self._stdout = stdout
        self._stderr = stderr
        self.outcomes: list[IterationOutcome] = []

    def run(self) -> int:
        """Execute the main loop. Returns exit code."""
        max_iterations = self.config.limits.max_iterations
        logger.info("🚀 Starting Ralph")
        logger.info("Prompt: %s", self.config.prompt_file)
        logger.info("Max iterations: %d", max_iterations)

        for i in range(1, max_iterations + 1):
            logger.info("═══ Iteration %d / %d ═══", i, max_iterations)

            controller = IterationController(
                self.config, stdout=self._stdout, stderr=self._stderr
            )
            outcome = controller.run()
            self.outcomes.append(outcome)

            if outcome.complete:
                logger.info("✅ Done! Completion marker received in iteration %d", i)
                self._log_summary()
                return EXIT_COMPLETE

            if not outcome.success:
                logger.warning("Iteration %d ended abnormally, retrying", i)

            if i < max_iterations:
                delay = self.config.limits.retry_delay_seconds
                logger.debug("Waiting %.1fs before next iteration", delay)
                time.sleep(delay)

        logger.warning("⚠️ Max iterations reached (%d)", max_iterations)
        self._log_summary()
        return EXIT_MAX_ITERATIONS

    def _log_summary(self) -> None:
        failed = sum(1 for o in self.outcomes if not o.success)
        logger.info(
            "Iterations run: %d (%d ended abnormally)", len(self.outcomes), failed
        )


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser whose usage errors exit with EXIT_USAGE."""

    def error(self, message: str) -> None:
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="ralph-loop",
        description="Re-run claude on a fixed prompt until it signals completion",
    )
    parser.add_argument(
        "--iterations", type=_positive_int, default=None,
        help="Max loop iterations (default: 50)",
    )
    parser.add_argument(
        "--prompt", default=None, metavar="FILE",
        help="Prompt file piped to claude each iteration (default: prompt.md next to this script)",
    )
    parser.add_argument("--config", default=None, help="Path to config.json")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--json-log", action="store_true", help="Output structured JSON logs")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    config_result = load_config(args.config)
    security = config_result.data.security if config_result.success else SecurityConfig()
    setup_logging(
        verbose=args.verbose,
        json_log=args.json_log,
        redact_patterns=security.log_redact_patterns,
    )

    if not config_result.success:
        logger.error("Config error: %s", config_result.error)
        sys.exit(EXIT_USAGE)

    config_result = apply_overrides(
        config_result.data,
        max_iterations=args.iterations,
        prompt_file=args.prompt,
    )
    if not config_result.success:
        logger.error("Config error: %s", config_result.error)
        sys.exit(EXIT_USAGE)
    config = config_result.data

    if not config.prompt_file.is_file():
        logger.error("Prompt file not found: %s", config.prompt_file)
        sys.exit(EXIT_USAGE)

    try:
        exit_code = LoopDriver(config).run()
    except KeyboardInterrupt:
        logger.warning("Interrupted.")
        sys.exit(EXIT_USAGE)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
