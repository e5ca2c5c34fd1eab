import os
import sys
from dotenv import load_dotenv
from fastapi.security import OAuth2PasswordBearer
from typing import Dict, Any, Tuple, Type

# Load environment variables
load_dotenv()

class ConfigError(Exception):
    """Exception raised for missing or invalid configuration values"""
    pass

class Settings:
    # Format: (default_value, type); a None default means the variable is required
    CONFIG_DEFAULTS: Dict[str, Tuple[Any, Type]] = {
        "DATABASE_URL": (None, str),
        "DATABASE_NAME": (None, str),
        "JWT_SECRET_KEY": (None, str),
        "JWT_ALGORITHM": ("HS256", str),
        "JWT_ACCESS_TOKEN_EXPIRE_MINUTES": (15 * 60, int),
        # Database pool settings
        "DB_MAX_POOL_SIZE": (10, int),
        "DB_MAX_RECONNECT_ATTEMPTS": (5, int),
        "DB_RECONNECT_DELAY": (5, int),  # seconds
        "DB_SERVER_SELECTION_TIMEOUT_MS": (5000, int),
        "DB_CONNECT_TIMEOUT_MS": (5000, int),
        # Chat settings
        "CHAT_MESSAGE_PAGE_SIZE": (50, int),
        "CHAT_SUBSCRIPTION_QUEUE_SIZE": (100, int),
        "CHAT_UNKNOWN_USER_LABEL": ("Unknown", str),
    }

    # Lower bounds for numeric settings; a queue of size 0 would be unbounded
    MINIMUMS: Dict[str, int] = {
        "JWT_ACCESS_TOKEN_EXPIRE_MINUTES": 1,
        "DB_MAX_POOL_SIZE": 1,
        "DB_MAX_RECONNECT_ATTEMPTS": 1,
        "DB_RECONNECT_DELAY": 0,
        "CHAT_MESSAGE_PAGE_SIZE": 1,
        "CHAT_SUBSCRIPTION_QUEUE_SIZE": 1,
    }

    def __init__(self):
        self.values = {}
        self._load_config()

    def _load_config(self):
        missing = [
            key for key, (default_value, _) in self.CONFIG_DEFAULTS.items()
            if default_value is None and not os.getenv(key, "").strip()
        ]
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

        for key, (default_value, type_) in self.CONFIG_DEFAULTS.items():
            value = os.getenv(key)
            if value is None or value == "":
                self.values[key] = default_value
                continue
            try:
                self.values[key] = type_(value.strip())
            except ValueError as e:
                raise ConfigError(f"Invalid value for {key}: {str(e)}")

        for key, minimum in self.MINIMUMS.items():
            if self.values[key] < minimum:
                raise ConfigError(f"{key} must be at least {minimum}, got {self.values[key]}")

    def __getattr__(self, name):
        if name in self.values:
            return self.values[name]
        raise AttributeError(f"'{self.__class__.__name__}' object has no attribute '{name}'")

try:
    settings = Settings()

    # Tokens are issued by the marketplace auth service; the chat only verifies them.
    # A missing header is reported as Unauthenticated by the dependency, not here.
    oauth2_scheme_optional = OAuth2PasswordBearer(tokenUrl="auth/token", auto_error=False)

    DATABASE_URL = settings.DATABASE_URL
    DATABASE_NAME = settings.DATABASE_NAME
    JWT_SECRET_KEY = settings.JWT_SECRET_KEY
    JWT_ALGORITHM = settings.JWT_ALGORITHM
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES = settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES

    # Database pool settings
    DB_MAX_POOL_SIZE = settings.DB_MAX_POOL_SIZE
    DB_MAX_RECONNECT_ATTEMPTS = settings.DB_MAX_RECONNECT_ATTEMPTS
    DB_RECONNECT_DELAY = settings.DB_RECONNECT_DELAY
    DB_SERVER_SELECTION_TIMEOUT_MS = settings.DB_SERVER_SELECTION_TIMEOUT_MS
    DB_CONNECT_TIMEOUT_MS = settings.DB_CONNECT_TIMEOUT_MS

    # Chat settings
    CHAT_MESSAGE_PAGE_SIZE = settings.CHAT_MESSAGE_PAGE_SIZE
    CHAT_SUBSCRIPTION_QUEUE_SIZE = settings.CHAT_SUBSCRIPTION_QUEUE_SIZE
    CHAT_UNKNOWN_USER_LABEL = settings.CHAT_UNKNOWN_USER_LABEL

except ConfigError as e:
    print(f"Configuration Error: {e}")
    sys.exit(1)
