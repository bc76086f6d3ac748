"""Configuration management for Revoc.

Loads configuration from environment variables and .env file.
Supports both local development and container deployments.
"""

import os
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from revoc.utils.exceptions import ConfigurationError

N = TypeVar("N", int, float)


# Keys read from the process environment when no .env file is present
KNOWN_KEYS = [
    "LOG_LEVEL", "LOG_DIR",
    "REVOC_DB_PATH",
    "OPENAI_API_KEY", "OPENAI_MODEL", "TRANSCRIPTION_MODEL",
    "EXTRACTION_TIMEOUT", "ASSISTANT_TIMEOUT",
    "FREQUENT_CONTACTS_LIMIT", "DEFAULT_CONVERSATION_TITLE",
]

DEFAULTS = {
    "log_level": "INFO",
    "log_dir": "logs",
    "openai_model": "gpt-4o",
    "transcription_model": "whisper-1",
    "extraction_timeout": "20",
    "assistant_timeout": "60",
    "frequent_contacts_limit": "4",
    "default_conversation_title": "New Conversation",
}


def find_env_file() -> Optional[Path]:
    """Find the .env file by searching up the directory tree.

    Starts from the directory containing this file and stops at the first
    directory that looks like a project root (pyproject.toml or .git).

    Returns:
        Path to .env file if found, None otherwise
    """
    current_dir = Path(__file__).parent.resolve()

    for parent in [current_dir] + list(current_dir.parents):
        env_path = parent / ".env"
        if env_path.is_file():
            return env_path
        if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
            break

    return None


class Config:
    """Configuration manager that loads from .env file and environment variables.

    Environment variables take precedence over .env file values.
    Attribute access is case-insensitive for convenience, and falls back
    to the built-in defaults for keys that have one.
    """

    def __init__(self, env_file: Optional[str] = None):
        """Initialize configuration.

        Args:
            env_file: Optional path to .env file. If not provided, will search
                      for .env file in parent directories.
        """
        self._attributes: dict[str, str] = {}

        if env_file:
            env_path = Path(env_file)
            if not env_path.is_absolute():
                env_path = Path(__file__).parent / env_file
        else:
            env_path = find_env_file()

        if env_path and env_path.is_file():
            self._load_env_file(env_path)
        else:
            self._load_from_environ()

    def _load_env_file(self, path: Path) -> None:
        """Load configuration from .env file.

        Args:
            path: Path to the .env file
        """
        with open(path, "r", encoding="utf-8") as file:
            for line in file:
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue

                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip().strip('"').strip("'")

                if key not in os.environ:
                    os.environ[key] = value

                self._attributes[key] = os.environ.get(key, value)
                self._attributes[key.lower()] = os.environ.get(key, value)

    def _load_from_environ(self) -> None:
        """Load configuration from environment variables only."""
        for key in KNOWN_KEYS:
            value = os.environ.get(key)
            if value:
                self._attributes[key] = value
                self._attributes[key.lower()] = value

    def __getattr__(self, name: str) -> str:
        """Get configuration value by attribute name.

        Args:
            name: Configuration key (case-insensitive)

        Returns:
            Configuration value as string

        Raises:
            AttributeError: If configuration key is not found
        """
        if name.startswith("_"):
            raise AttributeError(f"'Config' object has no attribute '{name}'")

        if name in self._attributes:
            return self._attributes[name]
        if name.lower() in self._attributes:
            return self._attributes[name.lower()]

        # Environment is re-read on every miss so tests and late exports win
        env_value = os.environ.get(name) or os.environ.get(name.upper())
        if env_value:
            return env_value

        if name.lower() in DEFAULTS:
            return DEFAULTS[name.lower()]

        raise AttributeError(f"'Config' object has no attribute '{name}'")

    def get(self, name: str, default: Any = None) -> Any:
        """Get configuration value with optional default.

        Args:
            name: Configuration key (case-insensitive)
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        try:
            return getattr(self, name)
        except AttributeError:
            return default

    def _number(self, key: str, cast: Callable[[str], N], minimum: N) -> N:
        raw = self.get(key)
        try:
            value = cast(raw)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{key} must be a number, got {raw!r}", {"config_key": key})
        if value < minimum:
            raise ConfigurationError(f"{key} must be at least {minimum}, got {value}", {"config_key": key})
        return value

    @property
    def extraction_timeout(self) -> float:
        """Seconds before entity extraction counts as failed."""
        return self._number("EXTRACTION_TIMEOUT", float, 0.0)

    @property
    def assistant_timeout(self) -> float:
        """Seconds before the assistant reply counts as failed."""
        return self._number("ASSISTANT_TIMEOUT", float, 0.0)

    @property
    def frequent_contacts_limit(self) -> int:
        return self._number("FREQUENT_CONTACTS_LIMIT", int, 0)

    @property
    def log_file(self) -> Path:
        return Path(self.log_dir) / "app.log"


config = Config()
