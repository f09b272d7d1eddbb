"""
Utility functions for the Patch Watcher pipeline.

This module provides:
- Central logging configuration and the per-run log handler
- Settings loading and validation from environment variables
- Safe text file writing
"""

import logging
import os
import shutil
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional


# Name of the application logger; module loggers are children of it
APP_LOGGER_NAME = "patch_watcher"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Settings defaults
DEFAULT_CURRENT_VERSION = "13.0"
DEFAULT_SMTP_PORT = 25
DEFAULT_EMAIL_SUBJECT = "Patch Watcher Log"
DEFAULT_LOG_DIR = "logs"
DEFAULT_FETCH_TIMEOUT = 30

REQUIRED_SETTINGS = [
    "PATCH_MAX_VERSION",
    "PATCH_UPDATE_PAGE",
    "SMTP_HOST",
    "EMAIL_FROM",
    "EMAIL_TO",
]


class ConfigurationError(ValueError):
    """Raised when a required setting is missing or malformed."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []


@dataclass
class Settings:
    """
    All configuration values for one patch check.

    Attributes:
        max_version: Ceiling used to reject implausible version candidates.
        update_page: URL of the vendor documentation page.
        current_version: Locally installed patch version.
        mail_server: SMTP host used to mail the run log.
        email_from: Sender address for the run log mail.
        email_to: Recipient address for the run log mail.
        email_cc: Optional carbon-copy address.
        email_subject: Subject line for the run log mail.
        mail_port: SMTP port.
        mail_user: Optional SMTP user name.
        mail_password: Optional SMTP password.
        debug: Always mail and save the run log when True.
        open_browser: Open the update page when a newer patch is found.
        log_dir: Directory the run log is saved into.
        fetch_timeout: Timeout in seconds for fetching the update page.
        dry_run: Log the mail instead of sending it.
    """
    max_version: Decimal
    update_page: str
    current_version: Decimal
    mail_server: str
    email_from: str
    email_to: str
    email_cc: str = ""
    email_subject: str = DEFAULT_EMAIL_SUBJECT
    mail_port: int = DEFAULT_SMTP_PORT
    mail_user: Optional[str] = None
    mail_password: Optional[str] = None
    debug: bool = False
    open_browser: bool = False
    log_dir: str = DEFAULT_LOG_DIR
    fetch_timeout: int = DEFAULT_FETCH_TIMEOUT
    dry_run: bool = False

    @property
    def has_mail_credentials(self) -> bool:
        return bool(self.mail_user and self.mail_password)


class RunLog(logging.Handler):
    """
    Logging handler that records every message of a single run.

    The recorded text is what gets mailed and saved at the end of a run.
    """

    def __init__(self, level: int = logging.DEBUG):
        super().__init__(level)
        self.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        self.lines: List[str] = []
        self.error_count = 0

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.lines.append(self.format(record))
        except Exception:
            self.handleError(record)
            return
        if record.levelno >= logging.ERROR:
            self.error_count += 1

    def has_errors(self) -> bool:
        """Return True if anything at ERROR level or above was logged."""
        return self.error_count > 0

    def get_text(self) -> str:
        return "\n".join(self.lines)

    def save(self, directory: str = DEFAULT_LOG_DIR) -> Optional[str]:
        """
        Save the recorded log to a timestamped file in the given directory.

        Args:
            directory: Directory to write the log file into.

        Returns:
            Path of the written file, or None if the write failed.
        """
        filename = f"patch_watcher_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        filepath = str(Path(directory) / filename)

        if safe_write_text(filepath, self.get_text() + "\n"):
            return filepath
        return None


def setup_logging(level: str = "INFO", run_log: Optional[RunLog] = None) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to INFO.
        run_log: Optional RunLog handler to attach to the application logger.

    Returns:
        Configured logger instance.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    logger = logging.getLogger(APP_LOGGER_NAME)
    logger.setLevel(log_level)

    if run_log is not None and run_log not in logger.handlers:
        logger.addHandler(run_log)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Name for the logger, typically the module name.

    Returns:
        Logger instance configured as a child of the main application logger.
    """
    return logging.getLogger(f"{APP_LOGGER_NAME}.{name}")


def safe_write_text(filepath: str, text: str) -> bool:
    """
    Safely write text to a file using atomic write operation.

    Uses a temporary file and rename to prevent a half-written file
    if the write operation is interrupted.

    Args:
        filepath: Path to the file.
        text: Text content to write.

    Returns:
        True if write was successful, False otherwise.
    """
    logger = get_logger("utils")

    try:
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            suffix=".log",
            prefix="patch_watcher_",
            dir=path.parent
        )

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)

            shutil.move(temp_path, filepath)
            logger.debug(f"Successfully wrote {filepath}")
            return True

        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    except PermissionError as e:
        logger.error(f"Permission denied writing {filepath}: {e}")
        return False
    except OSError as e:
        logger.error(f"Unexpected error writing {filepath}: {e}")
        return False


def get_env_var(name: str, required: bool = True, default: Optional[str] = None) -> Optional[str]:
    """
    Get an environment variable with optional requirement enforcement.

    Args:
        name: Name of the environment variable.
        required: If True, raises ConfigurationError when variable is not set.
                  Defaults to True.
        default: Default value if variable is not set and not required.

    Returns:
        Value of the environment variable or default.

    Raises:
        ConfigurationError: If required=True and the variable is not set.
    """
    value = os.environ.get(name)

    if value is None or value.strip() == "":
        if required:
            raise ConfigurationError(
                f"Required environment variable '{name}' is not set",
                missing=[name]
            )
        return default

    return value.strip()


def parse_bool(value: Optional[str]) -> bool:
    """Interpret true/1/yes (any case) as True."""
    if value is None:
        return False
    return value.strip().lower() in ("true", "1", "yes")


def find_missing_settings() -> List[str]:
    """Return the names of required environment variables that are not set."""
    missing = []

    for var in REQUIRED_SETTINGS:
        value = os.environ.get(var)
        if not value or value.strip() == "":
            missing.append(var)

    return missing


def _parse_decimal_setting(name: str, value: str) -> Decimal:
    try:
        number = Decimal(value)
    except InvalidOperation:
        raise ConfigurationError(f"{name} must be a decimal number, got: {value}")

    if not number.is_finite():
        raise ConfigurationError(f"{name} must be a finite decimal number, got: {value}")

    return number


def _parse_int_setting(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a valid integer, got: {value}")


def load_settings() -> Settings:
    """
    Load all settings from environment variables.

    Every missing required variable is logged before failing, so a single
    run reports the full list.

    Returns:
        Populated Settings instance.

    Raises:
        ConfigurationError: If a required setting is missing or malformed.
    """
    logger = get_logger("utils")

    missing = find_missing_settings()
    if missing:
        for name in missing:
            logger.error(
                f"Error retrieving core {name} configuration setting; "
                "application cannot start."
            )
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}",
            missing=missing
        )

    settings = Settings(
        max_version=_parse_decimal_setting(
            "PATCH_MAX_VERSION", get_env_var("PATCH_MAX_VERSION") or ""
        ),
        update_page=get_env_var("PATCH_UPDATE_PAGE") or "",
        current_version=_parse_decimal_setting(
            "PATCH_CURRENT_VERSION",
            get_env_var("PATCH_CURRENT_VERSION", required=False,
                        default=DEFAULT_CURRENT_VERSION) or DEFAULT_CURRENT_VERSION
        ),
        mail_server=get_env_var("SMTP_HOST") or "",
        email_from=get_env_var("EMAIL_FROM") or "",
        email_to=get_env_var("EMAIL_TO") or "",
        email_cc=get_env_var("EMAIL_CC", required=False, default="") or "",
        email_subject=get_env_var(
            "EMAIL_SUBJECT", required=False, default=DEFAULT_EMAIL_SUBJECT
        ) or DEFAULT_EMAIL_SUBJECT,
        mail_port=_parse_int_setting(
            "SMTP_PORT",
            get_env_var("SMTP_PORT", required=False, default=str(DEFAULT_SMTP_PORT)) or ""
        ),
        mail_user=get_env_var("SMTP_USER", required=False),
        mail_password=get_env_var("SMTP_PASSWORD", required=False),
        debug=parse_bool(os.environ.get("DEBUG")),
        open_browser=parse_bool(os.environ.get("OPEN_BROWSER")),
        log_dir=get_env_var("LOG_DIR", required=False, default=DEFAULT_LOG_DIR) or DEFAULT_LOG_DIR,
        fetch_timeout=_parse_int_setting(
            "FETCH_TIMEOUT",
            get_env_var("FETCH_TIMEOUT", required=False, default=str(DEFAULT_FETCH_TIMEOUT)) or ""
        ),
        dry_run=parse_bool(os.environ.get("DRY_RUN")),
    )

    logger.debug(
        f"Loaded settings: page={settings.update_page}, max={settings.max_version}, "
        f"current={settings.current_version}, debug={settings.debug}"
    )

    return settings
