import logging
import os
import sys

# Configure a single application logger
log_format = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format=log_format,
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Get a single logger for the chat service; components log through children of it
logger = logging.getLogger("chat")

def get_logger(component: str) -> logging.Logger:
    """Return a child of the chat logger, e.g. ``chat.hub``"""
    return logger.getChild(component)

__all__ = ["logger", "get_logger"]
