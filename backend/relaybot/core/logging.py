import logging
import sys
from relaybot.core.config import get_settings

def setup_logging():
    """Configure logging for the application."""
    settings = get_settings()

    # Create logger
    logger = logging.getLogger("relaybot")
    logger.setLevel(settings.log_level.upper())

    # Create console handler
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(settings.log_level.upper())

    # Create formatter
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    handler.setFormatter(formatter)

    # Add handler to logger
    if not logger.handlers:
        logger.addHandler(handler)

    return logger

def get_logger(name: str):
    """Get a logger instance with the given name."""
    # Ensure the parent 'relaybot' logger is configured
    setup_logging()
    return logging.getLogger(f"relaybot.{name}")


def describe_http_error(error: Exception) -> str:
    """
    Render an HTTP failure as a single log line.

    Status errors read ``Error <status> <reason>: <METHOD> <path>`` with the
    backend's own ``error`` field appended when the body carries one.
    """
    response = getattr(error, "response", None)
    request = getattr(error, "request", None) if response is not None else None
    if response is None or request is None:
        return f"{type(error).__name__}: {error}"

    line = f"Error {response.status_code} {response.reason_phrase}: {request.method} {request.url.path}"
    try:
        detail = response.json().get("error")
    except Exception:
        detail = None
    if detail:
        line += f": {detail}"
    return line
