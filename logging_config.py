"""
Logging configuration for the flash-arbitrage CLI.

Usage:
    import logging_config
    logging_config.setup()
"""

import logging
import sys

APP_NAMESPACES = ("flash_arbitrage", "dex", "__main__")


def _own_handlers_only():
    """
    Stop application loggers that carry their own handler from also
    propagating to the root handler (one line per record).
    """
    for name, logger in logging.root.manager.loggerDict.items():
        if not isinstance(logger, logging.Logger):
            continue
        if name.split(".")[0] in APP_NAMESPACES and logger.handlers:
            logger.propagate = False


def setup(level=logging.INFO):
    """
    Configure logging for cleaner, more readable output.

    - Suppresses verbose HTTP request logs from uvicorn
    - Quiets web3 and urllib3 request chatter
    - Uses shorter timestamp format (HH:MM:SS instead of full datetime)
    """

    # Root logger - minimal format
    root = logging.getLogger()
    root.setLevel(level)

    # Clear existing handlers
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s", datefmt="%H:%M:%S"
    )
    console.setFormatter(formatter)
    root.addHandler(console)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)  # Hide HTTP requests
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("fastapi").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    # Application loggers follow the requested level
    for namespace in APP_NAMESPACES:
        logging.getLogger(namespace).setLevel(level)
    for name, logger in logging.root.manager.loggerDict.items():
        if isinstance(logger, logging.Logger) and name.split(".")[0] in APP_NAMESPACES:
            logger.setLevel(level)

    _own_handlers_only()


def setup_debug():
    """
    Verbose logging for debugging.
    Shows everything including HTTP requests.
    """
    setup(level=logging.DEBUG)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
