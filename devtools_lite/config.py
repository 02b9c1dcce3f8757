"""Configuration management for devtools_lite.

Supports multiple configuration sources with precedence:
Explicit overrides > Environment variables > Config file > Defaults

Usage:
    >>> config = Configuration()
    >>> config.load_from_file("~/.cdprc")
    >>> config.load_from_env()
    >>> config.merge(chrome_port=9333)
    >>> print(config.endpoint)
    http://localhost:9333
"""

import os
import json
import logging
from pathlib import Path

from .logging_setup import setup_logging
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "~/.cdprc"


class Configuration:
    """Configuration manager with layered precedence.

    Precedence order (highest to lowest):
    1. Explicit overrides (via merge method)
    2. Environment variables (CDP_* prefix)
    3. Config file (~/.cdprc JSON)
    4. Default values

    Attributes:
        chrome_host: Chrome remote debugging host (default: "localhost")
        chrome_port: Chrome remote debugging port (default: 9222)
        timeout: Connection and command timeout in seconds (default: 5.0)
        max_retries: Connection attempts before giving up (default: 3)
        retry_delay: Seconds between connection attempts (default: 1.0)
        max_size: Maximum WebSocket message size in bytes (default: 2MB)
        queue_size: Capacity of the inbound event queue (default: 1024)
        log_level: Logging level (default: "INFO")
        log_format: Log output format "text" or "json" (default: "text")
    """

    DEFAULTS = {
        "chrome_host": "localhost",
        "chrome_port": 9222,
        "timeout": 5.0,
        "max_retries": 3,
        "retry_delay": 1.0,
        "max_size": 2_097_152,  # 2MB
        "queue_size": 1024,
        "log_level": "INFO",
        "log_format": "text",
    }

    ENV_MAPPINGS = {
        "CDP_CHROME_HOST": ("chrome_host", str),
        "CDP_CHROME_PORT": ("chrome_port", int),
        "CDP_TIMEOUT": ("timeout", float),
        "CDP_MAX_RETRIES": ("max_retries", int),
        "CDP_RETRY_DELAY": ("retry_delay", float),
        "CDP_MAX_SIZE": ("max_size", int),
        "CDP_QUEUE_SIZE": ("queue_size", int),
        "CDP_LOG_LEVEL": ("log_level", str),
        "CDP_LOG_FORMAT": ("log_format", str),
    }

    def __init__(self):
        self.chrome_host: str = self.DEFAULTS["chrome_host"]
        self.chrome_port: int = self.DEFAULTS["chrome_port"]
        self.timeout: float = self.DEFAULTS["timeout"]
        self.max_retries: int = self.DEFAULTS["max_retries"]
        self.retry_delay: float = self.DEFAULTS["retry_delay"]
        self.max_size: int = self.DEFAULTS["max_size"]
        self.queue_size: int = self.DEFAULTS["queue_size"]
        self.log_level: str = self.DEFAULTS["log_level"]
        self.log_format: str = self.DEFAULTS["log_format"]

    @classmethod
    def load_default(cls) -> "Configuration":
        """Defaults, then ~/.cdprc, then CDP_* environment variables."""
        config = cls()
        config.load_from_file(DEFAULT_CONFIG_FILE)
        config.load_from_env()
        return config

    @property
    def endpoint(self) -> str:
        """HTTP debugging endpoint built from host and port."""
        return f"http://{self.chrome_host}:{self.chrome_port}"

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_retries,
            retry_delay=self.retry_delay,
            timeout=self.timeout,
        )

    def setup_logging(self, quiet: bool = False, verbose: bool = False) -> None:
        """Install root log handlers using log_format and log_level."""
        setup_logging(
            format_type=self.log_format, level=self.log_level, quiet=quiet, verbose=verbose
        )

    def load_from_file(self, file_path: str) -> None:
        """Load configuration from JSON file.

        Note:
            Invalid JSON or missing file is silently ignored with warning log.
            Partial configs are merged with existing values.
        """
        path = Path(file_path).expanduser()

        if not path.exists():
            logger.debug(f"Config file not found: {path}")
            return

        try:
            with open(path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in config file {path}: {e}")
            return
        except OSError as e:
            logger.warning(f"Error loading config file {path}: {e}")
            return

        if not isinstance(data, dict):
            logger.warning(f"Config file {path} must contain a JSON object")
            return

        self._merge_dict(data)
        logger.info(f"Loaded configuration from {path}")

    def load_from_env(self) -> None:
        """Load configuration from CDP_* environment variables.

        Invalid values are ignored with warning log.
        """
        for env_var, (attr_name, type_converter) in self.ENV_MAPPINGS.items():
            value = os.getenv(env_var)
            if value is not None:
                try:
                    converted_value = type_converter(value)
                    setattr(self, attr_name, converted_value)
                    logger.debug(f"Loaded {attr_name}={converted_value} from {env_var}")
                except (ValueError, TypeError) as e:
                    logger.warning(f"Invalid value for {env_var}: {value} ({e})")

    def merge(self, **kwargs) -> None:
        """Merge explicit overrides into configuration (highest precedence).

        Example:
            >>> config.merge(chrome_port=9333, timeout=15.0)
        """
        self._merge_dict(kwargs)

    def _merge_dict(self, data: dict) -> None:
        for key, value in data.items():
            if key in self.DEFAULTS and value is not None:
                setattr(self, key, value)
                logger.debug(f"Set {key}={value}")

    def to_dict(self) -> dict:
        return {key: getattr(self, key) for key in self.DEFAULTS}

    def __repr__(self) -> str:
        return f"Configuration({self.to_dict()})"
