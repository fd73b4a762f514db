import logging
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog

from .paths import get_logs_dir


# Ensure the debug handler ONLY gets DEBUG messages from relay_core
class RelayDebugFilter(logging.Filter):
    def filter(self, record):
        return record.levelno == logging.DEBUG and record.name.startswith("relay_core")


def configure_logging(root: Optional[Union[Path, str]] = None) -> Path:
    """
    Attach the console and file handlers to the root logger.

    Returns the log directory in use.
    """
    log_dir = get_logs_dir(root)

    # Console: colored, INFO and above
    console_handler = colorlog.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s%(message)s",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
    )

    file_format = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    info_file_handler = logging.FileHandler(log_dir / "relay.log", encoding="utf-8")
    info_file_handler.setLevel(logging.INFO)
    info_file_handler.setFormatter(file_format)

    debug_file_handler = logging.FileHandler(log_dir / "relay_debug.log", encoding="utf-8")
    debug_file_handler.setLevel(logging.DEBUG)
    debug_file_handler.setFormatter(file_format)
    debug_file_handler.addFilter(RelayDebugFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(info_file_handler)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(debug_file_handler)

    # Silence noisy loggers by setting their level higher than root
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return log_dir
