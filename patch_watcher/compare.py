"""
Compare module for the Patch Watcher pipeline.

This module compares the installed patch version with the latest version
found on the update page. All comparisons use decimal values, so "13.0"
and "13.00" are the same version.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from patch_watcher.utils import get_logger


# Module logger
logger = get_logger("compare")

STATUS_UP_TO_DATE = "up_to_date"
STATUS_UPDATE_AVAILABLE = "update_available"
STATUS_ANOMALY = "anomaly"


@dataclass(frozen=True)
class UpToDate:
    """The installed patch is the latest one."""
    version: Decimal

    status = STATUS_UP_TO_DATE


@dataclass(frozen=True)
class UpdateAvailable:
    """
    A newer patch is available.

    Attributes:
        current: Installed patch version.
        latest: Latest patch version found on the update page.
        link: URL of the update page.
    """
    current: Decimal
    latest: Decimal
    link: str = ""

    status = STATUS_UPDATE_AVAILABLE


@dataclass(frozen=True)
class Anomaly:
    """The installed patch is newer than the latest one found."""
    current: Decimal
    latest: Decimal

    status = STATUS_ANOMALY


CheckOutcome = Union[UpToDate, UpdateAvailable, Anomaly]


def compare_versions(current: Decimal, latest: Decimal, link: str = "") -> CheckOutcome:
    """
    Decide the outcome of a patch check.

    Args:
        current: Installed patch version.
        latest: Latest patch version found on the update page.
        link: Update page URL, carried on UpdateAvailable.

    Returns:
        UpdateAvailable, UpToDate, or Anomaly.
    """
    if current < latest:
        logger.info(f"Newer patch available: {current} -> {latest}")
        return UpdateAvailable(current=current, latest=latest, link=link)

    if current == latest:
        logger.info(f"Patch {current} is up to date")
        return UpToDate(version=current)

    # Only reachable with a bad ceiling or a misread page
    logger.error(f"Current patch {current} newer than latest {latest}")
    return Anomaly(current=current, latest=latest)
