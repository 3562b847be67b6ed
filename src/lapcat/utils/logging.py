"""Centralized logging configuration for lapcat.

Usage in any module:
    from lapcat.utils.logging import get_logger
    logger = get_logger(__name__)
    logger.info("Parsing page %d", number)
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

_CONFIGURED = False

LOG_DIR = Path(__file__).resolve().parents[3] / "logs"
LOG_FILE = LOG_DIR / "lapcat.log"


class SafeStreamHandler(logging.StreamHandler):
    """StreamHandler that degrades unencodable characters instead of failing.

    Product titles carry Cyrillic and symbols like "₴" that narrow consoles reject.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            stream = self.stream
            encoding = getattr(stream, "encoding", None) or "utf-8"
            try:
                stream.write(msg + self.terminator)
            except UnicodeEncodeError:
                safe_msg = msg.encode(encoding, errors="backslashreplace").decode(
                    encoding, errors="backslashreplace"
                )
                stream.write(safe_msg + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
) -> None:
    """Configure the ``lapcat`` logger (console + file).

    Only the first call takes effect. Crawl runs spawn hundreds of tasks
    that all log through children of this logger.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return
    _CONFIGURED = True

    root = logging.getLogger("lapcat")
    root.setLevel(logging.DEBUG)  # handlers filter

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = SafeStreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(fmt)
    root.addHandler(console)

    target = log_file or LOG_FILE
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(target, encoding="utf-8", delay=True)
        fh.setLevel(logging.DEBUG)  # matched-composition lines are debug
        fh.setFormatter(fmt)
        root.addHandler(fh)
    except OSError:
        # read-only checkout: console only
        pass


def set_level(level: int) -> None:
    """Adjust console verbosity after setup (``--verbose`` / ``--quiet``)."""
    setup_logging()
    for handler in logging.getLogger("lapcat").handlers:
        if isinstance(handler, SafeStreamHandler):
            handler.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Return a logger, configuring the ``lapcat`` hierarchy on first use."""
    setup_logging()
    return logging.getLogger(name)
