"""
Centralized logging configuration for Aetheria.

Call setup_logging() once at startup (from the CLI entry point).  Every
source module then gets its own logger via:

    import logging
    logger = logging.getLogger(__name__)

The terminal belongs to the story, so the CLI sends records to a log file
in the data directory and only mirrors them to stderr in debug mode.

Level mapping:
  DEBUG   – gated no-ops, tier attempts, snapshot sizes
  INFO    – turns, tier selection, narration and capture lifecycle
  WARNING – fallbacks, swallowed persistence errors, dropped output fields
  ERROR   – failed generations, failed background tasks
"""

import logging
import sys
from pathlib import Path

LOG_FORMAT = "[%(name)s] %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "google_genai",
    "anthropic",
    "faster_whisper",
    "websockets",
)


def setup_logging(level: str = "INFO", log_file: Path | None = None, console: bool = True) -> None:
    """Configure the root logger and quiet noisy third-party loggers.

    Args:
        level: Root level name; unknown names fall back to INFO.
        log_file: Also write records here (parent directory is created).
        console: Emit records on stderr.
    """
    handlers: list[logging.Handler] = []
    if console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(stream)
    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
            handlers.append(file_handler)
        except OSError as e:
            print(f"Could not open log file {log_file}: {e}", file=sys.stderr)
    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
