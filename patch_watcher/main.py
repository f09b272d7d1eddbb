#!/usr/bin/env python3
"""
Main orchestration module for the Patch Watcher pipeline.

This module coordinates a single patch check:
settings → fetch → extract → compare → notify

The run log is mailed and saved whenever debugging is enabled or an error
was logged during the run.
"""

import logging
import os
import sys

from patch_watcher.compare import Anomaly, UpdateAvailable, compare_versions
from patch_watcher.extract import extract_latest_version
from patch_watcher.fetch import FetchError, fetch_update_page
from patch_watcher.notify import (
    format_outcome_message,
    open_update_page,
    send_log_email,
    should_mail_log,
)
from patch_watcher.utils import (
    APP_LOGGER_NAME,
    DEFAULT_LOG_DIR,
    ConfigurationError,
    RunLog,
    Settings,
    get_logger,
    load_settings,
    setup_logging,
)


# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_ENV_ERROR = 2
EXIT_NOT_FOUND = 3
EXIT_ANOMALY = 4


def run_check(settings: Settings) -> int:
    """
    Execute one patch check.

    Stages:
    1. Fetch the update page
    2. Extract the latest patch version
    3. Compare with the installed version and report

    Args:
        settings: Loaded settings.

    Returns:
        Exit code (0 for up to date or update available, non-zero otherwise).
    """
    logger = get_logger("main")

    logger.info("[Stage 1/3] Fetching update page...")
    try:
        page_text = fetch_update_page(settings.update_page, timeout=settings.fetch_timeout)
    except FetchError as e:
        logger.error(f"Patch check aborted: {e}")
        print(f"Error: {e}")
        return EXIT_FAILURE

    logger.info("[Stage 2/3] Extracting latest patch version...")
    latest = extract_latest_version(page_text, settings.max_version)

    if latest is None:
        logger.error(f"Could not determine latest patch version from {settings.update_page}")
        print("Error: could not determine the latest patch version")
        return EXIT_NOT_FOUND

    logger.info("[Stage 3/3] Comparing patch versions...")
    outcome = compare_versions(settings.current_version, latest, link=settings.update_page)

    print(format_outcome_message(outcome))

    if isinstance(outcome, UpdateAvailable) and settings.open_browser:
        open_update_page(outcome.link)

    if isinstance(outcome, Anomaly):
        return EXIT_ANOMALY

    return EXIT_SUCCESS


def main() -> int:
    """
    Main entry point for Patch Watcher.

    Sets up logging, loads settings, runs the check, and delivers the run
    log when needed.

    Returns:
        Exit code for the process.
    """
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()

    run_log = RunLog()
    setup_logging(log_level, run_log)
    logger = get_logger("main")

    logger.info("Starting Patch Watcher...")

    try:
        try:
            settings = load_settings()
        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            print("Error in getting config")
            run_log.save(os.environ.get("LOG_DIR", "").strip() or DEFAULT_LOG_DIR)
            return EXIT_ENV_ERROR

        if settings.dry_run:
            logger.info("Running in DRY RUN mode - the run log will not be mailed")

        try:
            exit_code = run_check(settings)

        except KeyboardInterrupt:
            logger.warning("Patch check interrupted by user")
            exit_code = EXIT_FAILURE

        except Exception as e:
            logger.exception(f"Unexpected error during patch check: {e}")
            print(f"Error: {e}")
            exit_code = EXIT_FAILURE

        if should_mail_log(settings, run_log):
            send_log_email(run_log.get_text(), settings, dry_run=settings.dry_run)
            saved = run_log.save(settings.log_dir)
            if saved:
                logger.info(f"Run log saved to {saved}")

        return exit_code

    finally:
        logging.getLogger(APP_LOGGER_NAME).removeHandler(run_log)


if __name__ == "__main__":
    sys.exit(main())
