"""Logging configuration for partylink.

The interactive TUI runs in an alternate screen buffer; any writes to stdout/stderr
(e.g., Loguru's default sink) will briefly "flash" in the terminal above the UI.
To avoid that, console logging is disabled by default and logs go to a file.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from loguru import logger

from partylink.utils.config import LoggingConfig


def setup_logging(config: LoggingConfig | None = None, *, console: bool = False) -> None:
    """Configure Loguru sinks for the current process.

    Args:
        config: Logging settings; defaults are used when omitted
        console: Also log to stderr (CLI use; never while the TUI is running)
    """
    # Allow developers to opt out while debugging.
    if os.getenv("PARTYLINK_DISABLE_LOG_RECONFIG") == "1":
        return

    config = config or LoggingConfig()
    level = os.getenv("PARTYLINK_LOG_LEVEL", config.level).upper()
    keep_console = console or os.getenv("PARTYLINK_CONSOLE_LOGS") == "1"

    logger.remove()

    target = Path(config.file)
    target.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        str(target),
        level=level,
        rotation=config.rotation,
        retention=config.retention,
        compression="zip",
    )

    if keep_console:
        logger.add(sys.stderr, level=level)
