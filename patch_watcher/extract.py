"""
Extract module for the Patch Watcher pipeline.

This module finds the latest patch version in the raw text of the vendor
documentation page. The page is not parsed as markup: it is split on
single spaces and scanned for tokens starting with "Documentation". The
version sits in the token just before the marker, after a fixed
four-character prefix.

The first marker on the page belongs to the instructions and never holds
a version, so it is always skipped.
"""

import re
from decimal import Decimal
from typing import List, Optional

from patch_watcher.utils import get_logger


# Module logger
logger = get_logger("extract")

MARKER = "Documentation"

# Characters preceding the version digits in the token before the marker
CANDIDATE_PREFIX_LENGTH = 4

# Plain signed decimal: no exponent, no digit separators, no NaN or infinity
PLAIN_DECIMAL_PATTERN = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)\s*$", re.ASCII)


class ExtractionParseError(Exception):
    """Raised when a single marker occurrence does not yield a usable version."""

    def __init__(self, message: str, token_index: int):
        super().__init__(message)
        self.token_index = token_index


def tokenize(page_text: str) -> List[str]:
    """
    Split page text into tokens on the space character.

    Tabs and newlines are not boundaries; they stay inside tokens.
    """
    return page_text.split(" ")


def is_marker(token: str) -> bool:
    """Return True if the token starts with the marker, ignoring case."""
    return token.lower().startswith(MARKER.lower())


def candidate_before(tokens: List[str], index: int) -> str:
    """
    Return the raw version candidate preceding the marker at the given index.

    Args:
        tokens: Token sequence of the page.
        index: Index of the marker token.

    Returns:
        The preceding token without its four-character prefix.

    Raises:
        ExtractionParseError: If there is no preceding token, or it is too
                              short to hold anything after the prefix.

    The scan in extract_latest_version never passes index 0, since a
    marker there is always the skipped first occurrence. The check stays
    so a negative index cannot wrap around to the last token.
    """
    if index <= 0:
        raise ExtractionParseError(
            f"Marker at token {index} has no preceding token", index
        )

    previous = tokens[index - 1]
    if len(previous) <= CANDIDATE_PREFIX_LENGTH:
        raise ExtractionParseError(
            f"Token '{previous}' before marker at token {index} is too short "
            f"to contain a version",
            index
        )

    return previous[CANDIDATE_PREFIX_LENGTH:]


def parse_candidate(raw: str, token_index: int = -1) -> Decimal:
    """
    Parse a raw candidate string as a decimal version.

    Args:
        raw: Candidate text taken from the page.
        token_index: Index of the marker, for error reporting.

    Returns:
        The parsed version.

    Raises:
        ExtractionParseError: If the text is not a plain decimal number.
    """
    if not PLAIN_DECIMAL_PATTERN.match(raw):
        raise ExtractionParseError(
            f"Candidate '{raw}' at token {token_index} is not a decimal number",
            token_index
        )

    return Decimal(raw)


def within_ceiling(version: Decimal, max_allowed_version: Decimal) -> bool:
    """
    Check a candidate against the configured ceiling.

    Any version below the next major version is allowed, so a ceiling of
    13.0 accepts 13.4 but rejects 14.0.
    """
    return version < max_allowed_version + 1


def extract_latest_version(page_text: str, max_allowed_version: Decimal) -> Optional[Decimal]:
    """
    Extract the latest patch version from the page text.

    Scans tokens left to right. The first marker is skipped; each later
    marker is evaluated on its own, and a bad candidate only skips that
    occurrence. The first candidate that parses and is under the ceiling
    is returned without looking any further.

    Args:
        page_text: Raw text of the documentation page.
        max_allowed_version: Configured version ceiling.

    Returns:
        The extracted version, or None if no occurrence was usable.
    """
    if not page_text:
        logger.warning("Empty page text, nothing to extract")
        return None

    tokens = tokenize(page_text)
    logger.debug(f"Scanning {len(tokens)} token(s) for '{MARKER}'")

    ignored_first = False

    for index, token in enumerate(tokens):
        if not is_marker(token):
            continue

        if not ignored_first:
            ignored_first = True
            logger.debug(f"Ignoring first '{MARKER}' occurrence at token {index}")
            continue

        try:
            version = parse_candidate(candidate_before(tokens, index), index)
        except ExtractionParseError as e:
            logger.error(f"Skipping occurrence: {e}")
            continue

        if within_ceiling(version, max_allowed_version):
            logger.info(f"Found latest patch version {version} at token {index}")
            return version

        logger.debug(
            f"Candidate {version} at token {index} is not below "
            f"{max_allowed_version + 1}, skipping"
        )

    logger.info("No patch version found on page")
    return None
