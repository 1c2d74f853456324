"""
Centralized Logger with Rich Console
====================================
Every orchestrator component logs through this static class.

Usage:
    from src.shared.system.logging import Logger

    Logger.info("[POOL] Classified pool")
    Logger.success("[CONFIRM] Transaction confirmed")
    Logger.warning("Something concerning")
    Logger.error("Something broke")
"""

import os
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler

from rich.console import Console
from rich.text import Text

LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(__file__)))), "logs")
if not os.path.exists(LOG_DIR):
    os.makedirs(LOG_DIR)

# One file per run
_run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
log_file = os.path.join(LOG_DIR, f"liquidity_{_run_id}.log")

handler = RotatingFileHandler(log_file, maxBytes=5*1024*1024, backupCount=3, encoding='utf-8')
formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', datefmt='%Y-%m-%d %H:%M:%S')
handler.setFormatter(formatter)

file_logger = logging.getLogger("RiftLiquidity")
file_logger.setLevel(logging.DEBUG)
file_logger.addHandler(handler)


# =============================================================================
# SOURCE ICONS (for visual scanning)
# =============================================================================

SOURCE_ICONS = {
    "SYSTEM": "🛸",
    "POOL": "🏊",
    "QUOTE": "🧮",
    "PLAN": "🗺️",
    "EXEC": "🚀",
    "CONFIRM": "⏳",
    "WITHDRAW": "📤",
    "LEDGER": "💵",
    "CACHE": "🗄️",
    "JITO": "📦",
    "RPC": "📡",
    "ORACLE": "🔮",
}

_console = Console()

LEVEL_STYLES = {
    "INFO": "cyan",
    "SUCCESS": "green bold",
    "WARNING": "yellow",
    "ERROR": "red bold",
    "DEBUG": "dim",
}


# =============================================================================
# LOGGER CLASS
# =============================================================================

class Logger:
    """
    Centralized logger with Rich console output.

    - Color-coded console lines
    - File logging with rotation
    - Source-based icon prefixes parsed from a leading [TAG]
    """

    @staticmethod
    def _timestamp() -> str:
        """High-precision timestamp (HH:MM:SS.ms)."""
        now = datetime.now()
        return f"{now.strftime('%H:%M:%S')}.{now.microsecond // 1000:03d}"

    @staticmethod
    def _parse_source(message: str) -> tuple:
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
        from config.settings import Settings
        if getattr(Settings, "SILENT_MODE", False):
            return

        icon = SOURCE_ICONS.get(source.upper(), "")
        msg_with_icon = f"{icon} {message}" if icon else message

        line = Text()
        line.append(f"{Logger._timestamp()} ", style="dim")
        line.append(f"| {level[:8].ljust(8)} ", style=LEVEL_STYLES.get(level, "white"))
        line.append(f"| {source[:10].ljust(10)} | ", style="dim")
        line.append(msg_with_icon)
        _console.print(line)

    @staticmethod
    def _log_to_file(level: str, message: str, source: str = "") -> None:
        full_msg = f"[{source}] {message}" if source else message
        file_logger.log(getattr(logging, level, logging.INFO), full_msg)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    @staticmethod
    def info(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("INFO", msg, source)
        Logger._log_to_file("INFO", msg, source)

    @staticmethod
    def success(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("SUCCESS", msg, source)
        Logger._log_to_file("INFO", f"✅ {msg}", source)

    @staticmethod
    def warning(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("WARNING", msg, source)
        Logger._log_to_file("WARNING", msg, source)

    @staticmethod
    def error(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("ERROR", msg, source)
        Logger._log_to_file("ERROR", msg, source)

    @staticmethod
    def debug(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._log_to_file("DEBUG", msg, source)

