"""
Notify module for the Patch Watcher pipeline.

This module handles everything the user sees after a check:
- A console message describing the outcome
- Mailing the run log via SMTP (optional TLS and authentication)
- Opening the update page in the default browser
"""

import smtplib
import ssl
import webbrowser
from datetime import datetime
from email.message import EmailMessage
from typing import List, Optional

from patch_watcher.compare import Anomaly, CheckOutcome, UpdateAvailable, UpToDate
from patch_watcher.utils import RunLog, Settings, get_logger


# Module logger
logger = get_logger("notify")

SMTP_TIMEOUT = 30  # seconds


class EmailNotificationError(Exception):
    """Custom exception for email notification errors."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


def format_outcome_message(outcome: CheckOutcome) -> str:
    """
    Format the message shown to the user for a check outcome.

    Args:
        outcome: Result of the version comparison.

    Returns:
        Human readable message.
    """
    if isinstance(outcome, UpdateAvailable):
        lines = [f"Newer version #{outcome.latest} available"]
        if outcome.link:
            lines.append(f"Update page: {outcome.link}")
        return "\n".join(lines)

    if isinstance(outcome, UpToDate):
        return f"Currently using patch #{outcome.version}"

    if isinstance(outcome, Anomaly):
        return f"Current patch #{outcome.current} is newer than latest #{outcome.latest}"

    raise TypeError(f"Unknown outcome type: {type(outcome).__name__}")


def should_mail_log(settings: Settings, run_log: RunLog) -> bool:
    """The run log is mailed and saved when debugging or after an error."""
    return settings.debug or run_log.has_errors()


def get_recipients(settings: Settings) -> List[str]:
    """Return all addresses the run log is delivered to."""
    recipients = [settings.email_to]
    if settings.email_cc:
        recipients.append(settings.email_cc)
    return recipients


def build_log_email(log_text: str, settings: Settings) -> EmailMessage:
    """
    Build the run log email message.

    Args:
        log_text: Full text of the run log.
        settings: Loaded settings holding the mail addresses and subject.

    Returns:
        Ready to send EmailMessage.
    """
    msg = EmailMessage()
    msg["Subject"] = settings.email_subject
    msg["From"] = settings.email_from
    msg["To"] = settings.email_to
    if settings.email_cc:
        msg["Cc"] = settings.email_cc
    msg["Date"] = datetime.utcnow().strftime("%a, %d %b %Y %H:%M:%S +0000")

    msg.set_content(log_text or "(empty log)")

    return msg


def _deliver(msg: EmailMessage, settings: Settings) -> None:
    """
    Hand the message to the SMTP server.

    Port 465 uses implicit SSL; any other port starts plain and upgrades
    with STARTTLS when credentials are configured.

    Raises:
        EmailNotificationError: If the server rejects or drops the message.
    """
    ssl_context = ssl.create_default_context()
    host, port = settings.mail_server, settings.mail_port

    try:
        if port == 465:
            logger.debug("Using SMTP_SSL (implicit TLS) for port 465")
            with smtplib.SMTP_SSL(host, port, timeout=SMTP_TIMEOUT, context=ssl_context) as server:
                if settings.has_mail_credentials:
                    server.login(settings.mail_user, settings.mail_password)
                server.send_message(msg)
        else:
            logger.debug(f"Using SMTP for port {port}")
            with smtplib.SMTP(host, port, timeout=SMTP_TIMEOUT) as server:
                if settings.has_mail_credentials:
                    server.starttls(context=ssl_context)
                    server.login(settings.mail_user, settings.mail_password)
                server.send_message(msg)

    except smtplib.SMTPAuthenticationError as e:
        raise EmailNotificationError(f"SMTP authentication failed: {e}", e)
    except smtplib.SMTPConnectError as e:
        raise EmailNotificationError(f"Failed to connect to SMTP server: {e}", e)
    except smtplib.SMTPException as e:
        raise EmailNotificationError(f"SMTP error while sending email: {e}", e)
    except ssl.SSLError as e:
        raise EmailNotificationError(f"SSL/TLS error while sending email: {e}", e)
    except (TimeoutError, OSError) as e:
        raise EmailNotificationError(f"Connection error while sending email: {e}", e)


def send_log_email(log_text: str, settings: Settings, dry_run: bool = False) -> bool:
    """
    Mail the run log to the configured recipients.

    Args:
        log_text: Full text of the run log.
        settings: Loaded settings.
        dry_run: If True, don't actually send the email, just log.

    Returns:
        True if the email was sent (or would have been in dry run),
        False otherwise.

    Note:
        This function fails gracefully - it logs errors but does not raise,
        so a mail problem never changes the result of the check.
    """
    recipients = get_recipients(settings)
    msg = build_log_email(log_text, settings)

    if dry_run:
        logger.info(f"[DRY RUN] Would send log to: {', '.join(recipients)}")
        logger.info(f"[DRY RUN] Subject: {settings.email_subject}")
        return True

    logger.info(f"Mailing run log via {settings.mail_server}:{settings.mail_port} to {', '.join(recipients)}")

    try:
        _deliver(msg, settings)
    except EmailNotificationError as e:
        # Logged as a warning so it does not mark the run as failed
        logger.warning(str(e))
        return False

    logger.info("Run log mailed successfully")
    return True


def open_update_page(url: str) -> bool:
    """
    Open the update page in the user's default browser.

    Args:
        url: Update page URL.

    Returns:
        True if a browser was launched.
    """
    if not url:
        logger.warning("No update page to open")
        return False

    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as e:
        logger.warning(f"Could not open {url}: {e}")
        return False

    if opened:
        logger.info(f"Opened update page: {url}")
    else:
        logger.warning(f"No browser available to open {url}")

    return opened
