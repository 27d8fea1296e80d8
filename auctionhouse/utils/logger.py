"""
Logging for auctionhouse.

Modules log through `get_logger("<subsystem>")`, a child of the
`auctionhouse` logger. A colored console handler on stderr is installed on
first use, so command output on stdout stays clean. The CLI calls
`setup_logging` to switch to debug output or add a log file.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog

ROOT_LOGGER = "auctionhouse"
LOG_FILE = "auctionhouse.log"

LEVEL_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

# Per-request server logs, shown only in debug mode
CHATTY_LOGGERS = ("uvicorn.access",)


class AuctionLogger:
    """Owns the handlers attached to the `auctionhouse` logger"""

    _configured = False

    @classmethod
    def configure(cls, level: int = logging.INFO, log_file: Optional[Path] = None) -> None:
        """
        Install console (and optionally file) handlers, replacing earlier ones.

        Args:
            level: Level for auctionhouse loggers
            log_file: Also append plain-text records here
        """
        root = logging.getLogger(ROOT_LOGGER)
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        root.setLevel(level)

        console = colorlog.StreamHandler(sys.stderr)
        console.setFormatter(colorlog.ColoredFormatter(
            "%(log_color)s%(asctime)s %(levelname)-8s%(reset)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
            log_colors=LEVEL_COLORS,
        ))
        root.addHandler(console)

        if log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(
                "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            ))
            root.addHandler(file_handler)

        for name in CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

        cls._configured = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        if not cls._configured:
            cls.configure()
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def get_logger(name: str) -> logging.Logger:
    """Logger for a subsystem, e.g. 'service', 'scheduler', 'storage'"""
    return AuctionLogger.get_logger(name)


def setup_logging(debug: bool = False, log_dir: Optional[Union[str, Path]] = None) -> None:
    """Reconfigure from CLI settings; `log_dir` adds auctionhouse.log under it."""
    AuctionLogger.configure(
        level=logging.DEBUG if debug else logging.INFO,
        log_file=Path(log_dir) / LOG_FILE if log_dir else None,
    )
