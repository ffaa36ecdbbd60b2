"""Logging setup for kt.

Two streams:
- ``local-YYYY-MM-DD.log``: the ``kt`` logger hierarchy (every module logs
  through ``logging.getLogger(__name__)``)
- ``lifecycle-events-YYYY-MM-DD.log``: one line per lifecycle event
  (stale sweep, compaction, digest) for auditing what the engine changed
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from kt.utils import get_kt_home

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _log_dir() -> Path:
    log_dir = get_kt_home() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def setup_kt_logging(level: str = "INFO") -> logging.Logger:
    """Configure the ``kt`` logger with a dated file handler.

    DEBUG also echoes to the console. Unknown levels fall back to INFO.
    Safe to call repeatedly.
    """
    level_name = (level or "INFO").upper()
    if level_name not in _VALID_LEVELS:
        level_name = "INFO"

    logger = logging.getLogger("kt")
    logger.setLevel(getattr(logging, level_name))

    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        file_handler = logging.FileHandler(_log_dir() / f"local-{_today()}.log")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )
    if level_name == "DEBUG" and not has_console:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console)

    return logger


def log_lifecycle_event(event_type: str, details: str) -> None:
    """Append one line to today's lifecycle event log.

    The event log is an audit trail; failing to write it never fails the
    operation that produced the event.
    """
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        path = _log_dir() / f"lifecycle-events-{_today()}.log"
        with open(path, "a", encoding="utf-8") as f:
            f.write(f"{timestamp} | {event_type} | {details}\n")
    except OSError as e:
        logging.getLogger(__name__).warning(f"Could not write lifecycle event {event_type}: {e}")


def log_stale(staled: int, skipped: int, namespace: Optional[str] = None) -> None:
    log_lifecycle_event("stale", f"namespace={namespace or '*'} staled={staled} skipped={skipped}")


def log_compaction(summary_id: str, compacted_ids: list, namespace: str) -> None:
    members = ",".join(compacted_ids)
    log_lifecycle_event(
        "compact", f"namespace={namespace} summary={summary_id} members={members}"
    )


def log_digest(namespace: str, status: str, node_count: int) -> None:
    log_lifecycle_event("digest", f"namespace={namespace} status={status} nodes={node_count}")
