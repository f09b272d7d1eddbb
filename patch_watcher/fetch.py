"""
Fetch module for the Patch Watcher pipeline.

Downloads the vendor documentation page in one bounded request. Retries
are disabled on the session; any failure becomes a FetchError for the
caller to report.
"""

from typing import Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from patch_watcher.utils import get_logger


# Module logger
logger = get_logger("fetch")

DEFAULT_TIMEOUT = 30  # seconds
DEFAULT_USER_AGENT = "PatchWatcher/1.0 (+https://www.oracle.com/)"


class FetchError(Exception):
    """Raised when the update page cannot be retrieved or came back empty."""

    def __init__(self, message: str, url: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


def create_session() -> requests.Session:
    """
    Build the session used for the page download.

    Returns:
        Session whose adapters never retry.
    """
    session = requests.Session()

    no_retries = Retry(total=0, raise_on_status=False)
    for prefix in ("http://", "https://"):
        session.mount(prefix, HTTPAdapter(max_retries=no_retries))

    session.headers.update({
        "User-Agent": DEFAULT_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
    })

    return session


def validate_url(url: str) -> bool:
    """Return True for http(s) URLs that name a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_page_loaded(html: Optional[str]) -> bool:
    """
    Check that a downloaded document has any visible text at all.

    The whole document is inspected, not just <body>: the tag is optional
    in HTML5 and html.parser does not invent it. Only used as a sanity
    check on the download; version extraction works on the raw text.
    """
    if not html or not html.strip():
        return False

    soup = BeautifulSoup(html, "html.parser")
    return bool(soup.get_text(strip=True))


def _download(url: str, session: requests.Session, timeout: int) -> str:
    try:
        response = session.get(url, timeout=timeout)
    except requests.exceptions.Timeout:
        raise FetchError(f"Timed out after {timeout}s fetching {url}", url=url)
    except requests.exceptions.ConnectionError as e:
        raise FetchError(f"Connection error fetching {url}: {e}", url=url)
    except requests.exceptions.RequestException as e:
        raise FetchError(f"Request for {url} failed: {e}", url=url)

    if response.status_code != 200:
        raise FetchError(
            f"HTTP {response.status_code} fetching {url}",
            url=url,
            status_code=response.status_code
        )

    return response.text


def fetch_update_page(url: str, timeout: int = DEFAULT_TIMEOUT) -> str:
    """
    Fetch the full text of the update page.

    Args:
        url: URL of the vendor documentation page.
        timeout: Request timeout in seconds.

    Returns:
        The page text.

    Raises:
        FetchError: If the URL is invalid, the request fails or times out,
                    the server answers with anything but 200, or the
                    document holds no text.
    """
    if not validate_url(url):
        message = f"Invalid update page URL: {url!r}"
        logger.error(message)
        raise FetchError(message, url=url)

    logger.info(f"Fetching update page: {url}")

    session = create_session()
    try:
        page_text = _download(url, session, timeout)
    except FetchError as e:
        logger.error(str(e))
        raise
    finally:
        session.close()

    if not is_page_loaded(page_text):
        message = f"Page at {url} came back without any content"
        logger.error(message)
        raise FetchError(message, url=url, status_code=200)

    logger.info(f"Fetched {url} ({len(page_text)} characters)")
    return page_text
