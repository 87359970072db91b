from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional


def configure_logging(
    log_path: Optional[str] = None,
    level: int = logging.INFO,
    also_console: bool = True,
) -> Optional[str]:
    """Configure root logging for the application.

    Console output by default; a file handler is added when ``log_path`` is
    given. Calling this again is a no-op apart from the level.

    Returns the log file path in use, if any.
    """

    logger = logging.getLogger()
    logger.setLevel(level)

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(logger, "_patchstream_configured", False):
        return getattr(logger, "_patchstream_log_path", None)

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    handlers: list[logging.Handler] = []

    chosen_path = None
    if log_path:
        try:
            Path(log_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(Path(log_path).expanduser())
            file_handler.setFormatter(fmt)
            handlers.append(file_handler)
            chosen_path = log_path
        except OSError as e:
            # Keep console logging even if the file is not writable.
            also_console = True
            logging.getLogger(__name__).warning("Cannot open log file %s: %s", log_path, e)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        handlers.append(console)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_patchstream_configured", True)
    setattr(logger, "_patchstream_log_path", chosen_path)

    logging.getLogger(__name__).info("Logging initialized (file=%s)", chosen_path or "-")
    return chosen_path
