import logging
import os
from typing import Optional

LOGGER_NAME = "spotycli"
DEFAULT_LOG_FILE = os.path.join("data", "spotycli.log")

_logger = logging.getLogger(LOGGER_NAME)


def setup_logging(
    log_file: Optional[str] = DEFAULT_LOG_FILE,
    level: str = "INFO",
    *,
    console: bool = True,
) -> logging.Logger:
    """Configure the root logger.

    The player screen owns the terminal while it runs, so it calls this with
    console=False and everything goes to the log file only.
    """

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    if log_file:
        if os.path.dirname(log_file):
            os.makedirs(os.path.dirname(log_file), exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s"))
        root.addHandler(file_handler)

    if console:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(stream_handler)

    # httpx logs every request at INFO, including query strings.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return _logger


def log_info(message: str) -> None:
    _logger.info(message)


def log_success(message: str) -> None:
    _logger.info(f"✅ {message}")


def log_warning(message: str) -> None:
    _logger.warning(f"⚠️ {message}")


def log_error(message: str) -> None:
    _logger.error(f"❌ {message}")
