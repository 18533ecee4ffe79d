"""
Centralized Logger with Rich Console
====================================
Console output goes through rich, every record is also written to a per-run
rotating log file under logs/.

Usage:
    from src.shared.system.logging import Logger

    Logger.info("[MONITOR] Position in range")
    Logger.success("[SWAP] Swap confirmed")
    Logger.warning("[RELAY] Tip floor unavailable, using defaults")
    Logger.error("[BUNDLE] Bundle dropped")
    Logger.section("Position Monitor")
"""

import os
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Tuple

from rich.console import Console
from rich.text import Text

LOG_DIR = os.environ.get(
    "METEOR_KEEPER_LOG_DIR",
    os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(__file__)))), "logs"),
)
os.makedirs(LOG_DIR, exist_ok=True)

# One log file per run
_run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
log_file = os.path.join(LOG_DIR, f"keeper_{_run_id}.log")

handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8")
formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
handler.setFormatter(formatter)

file_logger = logging.getLogger("MeteorKeeper")
file_logger.setLevel(logging.DEBUG)
file_logger.addHandler(handler)


# =============================================================================
# SOURCE ICONS
# =============================================================================

SOURCE_ICONS = {
    "SYSTEM": "🛸",
    "MONITOR": "🔭",
    "SWAP": "🔄",
    "BUNDLE": "📦",
    "RELAY": "📡",
    "RPC": "🔗",
    "METEORA": "☄️",
    "PRICE": "💲",
    "RETRY": "🔁",
    "EXIT": "🚪",
    "WALLET": "🔑",
    "CLI": "⌨️",
}

LEVEL_STYLES = {
    "DEBUG": "dim",
    "INFO": "cyan",
    "SUCCESS": "green bold",
    "WARNING": "yellow",
    "ERROR": "red bold",
    "CRITICAL": "red bold reverse",
}

LEVEL_ORDER = ["DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]

_console = Console()


# =============================================================================
# LOGGER CLASS
# =============================================================================

class Logger:
    """
    Static logger used across the engine.

    Messages may start with a [SOURCE] tag which selects the console icon
    and is kept in the file record.
    """

    _silent_mode = False
    _console_level = "INFO"

    @staticmethod
    def _timestamp() -> str:
        """HH:MM:SS.ms"""
        now = datetime.now()
        return f"{now.strftime('%H:%M:%S')}.{now.microsecond // 1000:03d}"

    @staticmethod
    def _parse_source(message: str) -> Tuple[str, str]:
        """Extract [SOURCE] tag from message if present."""
        stripped = message.strip()
        if stripped.startswith("[") and "]" in stripped:
            tag_end = stripped.index("]")
            source = stripped[1:tag_end].upper()
            if 0 < len(source) < 15:
                return source, stripped[tag_end + 1:].strip()
        return "SYSTEM", message

    @staticmethod
    def _format_console(level: str, message: str, source: str) -> None:
        if Logger._silent_mode:
            return
        if LEVEL_ORDER.index(level) < LEVEL_ORDER.index(Logger._console_level):
            return

        icon = SOURCE_ICONS.get(source, "")
        line = Text()
        line.append(f"{Logger._timestamp()} ", style="dim")
        line.append(f"| {level[:8].ljust(8)} ", style=LEVEL_STYLES.get(level, "white"))
        line.append(f"| {source[:10].ljust(10)} | ", style="dim")
        line.append(f"{icon} {message}" if icon else message)
        _console.print(line)

    @staticmethod
    def _log_to_file(level: int, message: str, source: str) -> None:
        file_logger.log(level, f"[{source}] {message}")

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    @staticmethod
    def info(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("INFO", msg, source)
        Logger._log_to_file(logging.INFO, msg, source)

    @staticmethod
    def success(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("SUCCESS", msg, source)
        Logger._log_to_file(logging.INFO, f"✅ {msg}", source)

    @staticmethod
    def warning(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("WARNING", msg, source)
        Logger._log_to_file(logging.WARNING, msg, source)

    @staticmethod
    def error(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("ERROR", msg, source)
        Logger._log_to_file(logging.ERROR, msg, source)

    @staticmethod
    def debug(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("DEBUG", msg, source)
        Logger._log_to_file(logging.DEBUG, msg, source)

    @staticmethod
    def critical(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("CRITICAL", f"🛑 {msg}", source)
        Logger._log_to_file(logging.CRITICAL, f"🛑 {msg}", source)

    @staticmethod
    def section(title: str) -> None:
        """Print a section header."""
        if not Logger._silent_mode:
            _console.print()
            _console.rule(f"[bold magenta]{title}[/]", style="dim")
        Logger._log_to_file(logging.INFO, f"=== {title} ===", "SYSTEM")

    @staticmethod
    def set_level(level: str) -> None:
        """Minimum level shown on the console. The file always gets DEBUG."""
        level = level.upper()
        if level == "WARN":
            level = "WARNING"
        if level not in LEVEL_ORDER:
            raise ValueError(f"Unknown log level: {level}")
        Logger._console_level = level

    @staticmethod
    def set_silent(silent: bool) -> None:
        """Enable/disable console output."""
        Logger._silent_mode = silent
