import logging
import sys
from typing import Optional


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None, verbose: bool = False):
    """
    Setup logging for the application.

    ``verbose`` lowers the level to at least INFO so provider request details are emitted.
    """
    logger = logging.getLogger("galdr")
    logger.setLevel(min(level, logging.INFO) if verbose else level)

    # Prevent adding handlers if they already exist
    if not logger.handlers:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

        # Console handler
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        # File handler if log_file is provided
        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def get_logger(name: str):
    """
    Get a logger with the given name under the 'galdr' namespace.
    """
    if name == "galdr" or name.startswith("galdr."):
        return logging.getLogger(name)
    return logging.getLogger(f"galdr.{name}")
