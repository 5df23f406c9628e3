"""
Logging configuration for dbjournal - readable, colour-coded output.

JournalLogger wraps the standard library logger with START/OK prefixes and
per-table tags so a run across many tables stays easy to follow, and mirrors
everything into a log file for later inspection.
"""
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import colorama

# Initialize colorama for cross-platform color support
colorama.init()

LOG_DIR_ENV = "DBJOURNAL_LOG_DIR"

# Level for loggers created after set_global_level()
_global_level = logging.INFO


class ColorFormatter(logging.Formatter):
    """Custom formatter with colors"""

    COLORS = {
        "INFO": colorama.Fore.BLUE,
        "WARNING": colorama.Fore.YELLOW,
        "ERROR": colorama.Fore.RED,
        "DEBUG": colorama.Fore.BLUE,
        "START": colorama.Fore.BLUE,
        "OK": colorama.Fore.GREEN,
    }

    def format(self, record):
        # dbjournal.table.orders -> [orders]
        if record.name.startswith("dbjournal.table."):
            table_name = record.name.replace("dbjournal.table.", "")
            white = colorama.Fore.WHITE
            reset = colorama.Style.RESET_ALL
            record.table_name = f"{white}[{table_name}]{reset} "
        else:
            record.table_name = ""

        if record.levelname in self.COLORS:
            color = self.COLORS[record.levelname]
            record.levelname = f"{color}{record.levelname}{colorama.Style.RESET_ALL}"

        if hasattr(record, "color_prefix"):
            color = self.COLORS.get(record.color_prefix, "")
            record.msg = f"{color}{record.msg}{colorama.Style.RESET_ALL}"

        return super().format(record)


class JournalLogger:
    """
    Central logging class for dbjournal.

    Writes to stdout and to `logs/dbjournal.log` under the current directory
    (or under `$DBJOURNAL_LOG_DIR` when set). Handlers are attached once per
    logger name.
    """

    class Style:
        """ANSI color codes for paths"""

        CYAN = colorama.Fore.CYAN
        GREEN = colorama.Fore.GREEN
        YELLOW = colorama.Fore.YELLOW
        RED = colorama.Fore.RED
        RESET = colorama.Style.RESET_ALL

    ENTRIES_TEMPLATE = "Journaled {:,} entries in {:.1f}ms ({:,} inserts, {:,} updates)"

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.style = self.Style()

        if not self.logger.handlers:
            self.logger.setLevel(_global_level)

            log_dir = Path(os.environ.get(LOG_DIR_ENV) or Path.cwd() / "logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            formatter = ColorFormatter(
                "%(asctime)s  %(table_name)s%(message)s", datefmt="%H:%M:%S"
            )

            file_handler = logging.FileHandler(
                log_dir / "dbjournal.log", encoding="utf-8"
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)

            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(logging.DEBUG)
            console_handler.setFormatter(formatter)

            self.logger.addHandler(file_handler)
            self.logger.addHandler(console_handler)

            # Prevent logs from being passed to root logger
            self.logger.propagate = False

    def set_level(self, level: int) -> None:
        """Change the level of this logger."""
        self.logger.setLevel(level)

    def info(self, msg: str, color_prefix: Optional[str] = None) -> None:
        """Log info message with optional color prefix"""
        extra = {"color_prefix": color_prefix} if color_prefix else None
        self.logger.info(msg, extra=extra)

    def start(self, msg: str) -> None:
        """Log start message"""
        self.info(f"START {msg}", color_prefix="START")

    def success(self, msg: str) -> None:
        """Log success message in green"""
        self.info(f"OK {msg}", color_prefix="OK")

    def error(self, msg: str) -> None:
        """Log error message in red"""
        self.logger.error(msg)

    def warning(self, msg: str) -> None:
        """Log warning message in yellow"""
        self.logger.warning(msg)

    def debug(self, msg: str) -> None:
        """Log debug message"""
        self.logger.debug(msg)

    def path(self, path: str, color: Optional[str] = None) -> str:
        """Format a path with color"""
        if not color:
            color = self.style.CYAN
        return f"{color}{path}{self.style.RESET}"


def get_logger(name: str) -> JournalLogger:
    """Get a configured logger instance."""
    return JournalLogger(name)


def set_global_level(level: int) -> None:
    """Set the level of every dbjournal logger, present and future."""
    global _global_level
    _global_level = level
    for name in list(logging.root.manager.loggerDict):
        if name == "dbjournal" or name.startswith("dbjournal."):
            logging.getLogger(name).setLevel(level)
