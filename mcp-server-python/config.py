"""
Configuration module for the JobBoard MCP Server.

Provides centralized configuration management with support for:
- Environment variables
- Default values
- Path resolution
- Logging configuration
- Identity of the current user
- Retry policy for the stats ledger
"""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from models.identity import Identity

# Load environment variables from .env file at project root
# config.py is in mcp-server-python/, so .env is in parent directory
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=_env_path)


def _parse_int(env_var: str, default: int, minimum: int) -> int:
    """Parse an integer from env, falling back to default when invalid."""
    value = os.getenv(env_var)
    if value is None or not value.strip():
        return default
    try:
        return max(minimum, int(value))
    except ValueError:
        return default


def _parse_float(env_var: str, default: float, minimum: float) -> float:
    """Parse a float from env, falling back to default when invalid."""
    value = os.getenv(env_var)
    if value is None or not value.strip():
        return default
    try:
        return max(minimum, float(value))
    except ValueError:
        return default


class Config:
    """
    Configuration class for MCP server settings.

    Supports configuration via environment variables (and .env file) with sensible defaults.
    All paths are resolved relative to the repository root.
    """

    def __init__(self):
        """Initialize configuration from environment variables and defaults."""
        # Repository root detection
        self._repo_root = self._find_repo_root()

        # Database configuration
        self.db_path = self._resolve_db_path()
        self.busy_timeout_seconds = _parse_float("JOBBOARD_BUSY_TIMEOUT_SECONDS", 5.0, 0.0)

        # Logging configuration
        self.log_level = os.getenv("JOBBOARD_LOG_LEVEL", "INFO").upper()
        self.log_file = self._resolve_log_path()

        # Server configuration
        self.server_name = os.getenv("JOBBOARD_SERVER_NAME", "jobboard-mcp-server")

        # Identity provider: the authenticated user for this server process
        user_id = os.getenv("JOBBOARD_USER_ID", "").strip()
        self.user_id: Optional[str] = user_id or None

        # Stats ledger compare-and-set retry policy
        self.ledger_max_attempts = _parse_int("JOBBOARD_LEDGER_MAX_ATTEMPTS", 5, 1)
        self.ledger_retry_backoff_ms = _parse_int("JOBBOARD_LEDGER_RETRY_BACKOFF_MS", 10, 0)

    def _find_repo_root(self) -> Path:
        """
        Find the repository root directory.

        Looks for the parent directory containing the mcp-server-python folder.

        Returns:
            Path to repository root
        """
        current_file = Path(__file__).resolve()
        # config.py is in mcp-server-python/, so parent is repo root
        return current_file.parent.parent

    def _resolve_db_path(self) -> Path:
        """
        Resolve the database path from environment or default.

        Resolution order:
        1. JOBBOARD_DB environment variable (absolute or relative)
        2. JOBBOARD_ROOT/data/board/jobboard.db
        3. Default: <repo_root>/data/board/jobboard.db

        Returns:
            Resolved absolute Path to database
        """
        db_env = os.getenv("JOBBOARD_DB")
        if db_env:
            db_path = Path(db_env)
            if db_path.is_absolute():
                return db_path
            else:
                # Relative to repo root
                return self._repo_root / db_path

        root_env = os.getenv("JOBBOARD_ROOT")
        if root_env:
            return Path(root_env) / "data" / "board" / "jobboard.db"

        return self._repo_root / "data" / "board" / "jobboard.db"

    def _resolve_log_path(self) -> Optional[Path]:
        """
        Resolve the log file path from environment.

        If JOBBOARD_LOG_FILE is set, logs will be written to that file.
        Otherwise, logs go to stderr only.

        Returns:
            Path to log file, or None for stderr-only logging
        """
        log_env = os.getenv("JOBBOARD_LOG_FILE")
        if not log_env:
            return None

        log_path = Path(log_env)
        if log_path.is_absolute():
            return log_path
        else:
            return self._repo_root / log_path

    def setup_logging(self):
        """
        Configure logging based on configuration settings.

        Sets up logging to stderr and optionally to a file.
        Log level is controlled by JOBBOARD_LOG_LEVEL.
        """
        numeric_level = getattr(logging, self.log_level, logging.INFO)

        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        )

        root_logger = logging.getLogger()
        root_logger.setLevel(numeric_level)

        # Remove existing handlers to avoid duplicates
        root_logger.handlers.clear()

        # Always add stderr handler
        stderr_handler = logging.StreamHandler()
        stderr_handler.setLevel(numeric_level)
        stderr_handler.setFormatter(formatter)
        root_logger.addHandler(stderr_handler)

        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(self.log_file)
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

            logging.info(f"Logging to file: {self.log_file}")

        logging.info(f"Log level set to: {self.log_level}")
        logging.info(f"Repository root: {self._repo_root}")
        logging.info(f"Database path: {self.db_path}")

    def get_db_path_str(self) -> str:
        """
        Get database path as string for use in tool handlers.

        Returns:
            Database path as string
        """
        return str(self.db_path)

    def get_identity(self) -> Identity:
        """Identity of the configured user (anonymous when unset)."""
        return Identity(user_id=self.user_id)

    def validate(self) -> list[str]:
        """
        Validate configuration and return any warnings.

        Returns:
            List of warning messages (empty if all valid)
        """
        warnings = []

        if self.user_id is None:
            warnings.append(
                "JOBBOARD_USER_ID is not set. "
                "The server will start but every tool call will be rejected as FORBIDDEN."
            )

        if self.log_file:
            log_dir = self.log_file.parent
            if not log_dir.exists():
                try:
                    log_dir.mkdir(parents=True, exist_ok=True)
                except Exception as e:
                    warnings.append(f"Cannot create log directory {log_dir}: {e}")
            elif not os.access(log_dir, os.W_OK):
                warnings.append(f"Log directory not writable: {log_dir}")

        return warnings


# Global configuration instance
config = Config()


def get_config() -> Config:
    """
    Get the global configuration instance.

    Returns:
        Global Config instance
    """
    return config
