# shared logger for the service
import logging
import os
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

def setup_logger(name: str = "pocket_pilot") -> logging.Logger:
    """
    Configure the service-wide logger once.
    Level is read from LOG_LEVEL (default INFO).
    """
    _logger = logging.getLogger(name)
    if _logger.handlers:
        return _logger

    _logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    # uvicorn installs its own root handlers, avoid duplicate lines
    _logger.propagate = False

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    _logger.addHandler(stream_handler)
    return _logger

logger = setup_logger()
