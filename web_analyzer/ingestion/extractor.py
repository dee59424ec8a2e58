import ipaddress
import logging
import re
from typing import Union
from urllib.parse import urlsplit, urlunsplit

import requests
from bs4 import BeautifulSoup

from ..config import MAX_RESPONSE_BYTES, REQUEST_TIMEOUT, USER_AGENT
from ..errors import (
    FetchError,
    FetchTimeoutError,
    PageForbiddenError,
    PageNotFoundError,
    ValidationError,
)
from ..models import WebContent

logger = logging.getLogger(__name__)

MAX_EXTRACTED_CHARS = 10000
MIN_CONTENT_CHARS = 100
NO_TITLE = "No title"

# Elements that never hold the main content
NON_CONTENT_SELECTORS = (
    "script",
    "style",
    "nav",
    "header",
    "footer",
    "aside",
    ".advertisement",
    ".ads",
    ".sidebar",
)

# Main-content containers, highest priority first
CONTENT_SELECTORS = (
    "main",
    "article",
    ".content",
    ".main-content",
    ".post-content",
    ".entry-content",
    "#content",
    "#main",
)

_CHUNK_SIZE = 64 * 1024

# Dot-separated labels of letters, digits and inner hyphens (IPv4 fits too)
_HOST_LABEL = r"[^\W_](?:[\w-]{0,61}[^\W_])?"
_HOSTNAME_RE = re.compile(rf"{_HOST_LABEL}(?:\.{_HOST_LABEL})*\.?")


def _is_valid_host(hostname: str) -> bool:
    if ":" in hostname:
        try:
            ipaddress.IPv6Address(hostname)
        except ValueError:
            return False
        return True
    return _HOSTNAME_RE.fullmatch(hostname) is not None


def validate_url(url: str) -> str:
    """Check that *url* is an absolute http(s) URL and return its canonical form.

    Raises ValidationError for anything else.
    """
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("URL is required")

    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
        port = parts.port
    except ValueError as e:
        raise ValidationError(f"Invalid URL format: {url}") from e

    scheme = parts.scheme.lower()
    if scheme not in ("http", "https"):
        raise ValidationError("URL must use HTTP or HTTPS protocol")
    if not hostname or not _is_valid_host(hostname):
        raise ValidationError(f"Invalid URL format: {url}")

    netloc = hostname
    if ":" in hostname:  # IPv6 literal
        netloc = f"[{hostname}]"
    if port is not None:
        netloc = f"{netloc}:{port}"
    if parts.username:
        userinfo = parts.username
        if parts.password:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"

    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, parts.fragment))


def fetch_page(url: str) -> bytes:
    """Download *url* and return the raw body.

    The request is bounded by REQUEST_TIMEOUT and the body by
    MAX_RESPONSE_BYTES. Raises FetchTimeoutError, PageNotFoundError,
    PageForbiddenError or FetchError.
    """
    try:
        response = requests.get(
            url,
            timeout=REQUEST_TIMEOUT,
            headers={"User-Agent": USER_AGENT},
            stream=True,
        )
    except requests.exceptions.Timeout as e:
        raise FetchTimeoutError("Request timeout exceeded") from e
    except requests.exceptions.RequestException as e:
        raise FetchError(f"Error fetching page: {e}") from e

    try:
        if response.status_code == 404:
            raise PageNotFoundError("Page not found (404)")
        if response.status_code == 403:
            raise PageForbiddenError("Access forbidden (403)")
        if not 200 <= response.status_code < 300:
            raise FetchError(f"Error fetching page: HTTP {response.status_code}")

        declared = response.headers.get("Content-Length")
        if declared and declared.isdigit() and int(declared) > MAX_RESPONSE_BYTES:
            raise FetchError(f"Page exceeds maximum size of {MAX_RESPONSE_BYTES} bytes")

        body = bytearray()
        for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
            body.extend(chunk)
            if len(body) > MAX_RESPONSE_BYTES:
                raise FetchError(f"Page exceeds maximum size of {MAX_RESPONSE_BYTES} bytes")
        return bytes(body)
    except requests.exceptions.Timeout as e:
        raise FetchTimeoutError("Request timeout exceeded") from e
    except requests.exceptions.RequestException as e:
        raise FetchError(f"Error fetching page: {e}") from e
    finally:
        response.close()


def extract_title(soup: BeautifulSoup) -> str:
    """First non-empty of <title>, the first <h1>, else "No title"."""
    for tag in (soup.title, soup.find("h1")):
        if tag is not None:
            text = tag.get_text(" ", strip=True)
            if text:
                return text
    return NO_TITLE


def extract_main_content(soup: BeautifulSoup) -> str:
    """Pick the main body text of the page.

    Strips non-content elements, then walks CONTENT_SELECTORS in priority
    order and keeps the first one with more than MIN_CONTENT_CHARS of text.
    Falls back to the whole body. Mutates *soup*.
    """
    for element in soup.select(", ".join(NON_CONTENT_SELECTORS)):
        element.decompose()

    for selector in CONTENT_SELECTORS:
        matches = soup.select(selector)
        if not matches:
            continue
        text = " ".join(el.get_text(" ") for el in matches).strip()
        if len(text) > MIN_CONTENT_CHARS:
            logger.debug("Main content matched selector %r (%d chars)", selector, len(text))
            return clean_text(text)

    body = soup.body or soup
    return clean_text(body.get_text(" "))


def clean_text(text: str) -> str:
    """Collapse whitespace (spaces, tabs, newlines) and cap the length."""
    text = re.sub(r"\s+", " ", text)
    return text.strip()[:MAX_EXTRACTED_CHARS]


def parse_html(html: Union[str, bytes], url: str) -> WebContent:
    """Build WebContent from already-downloaded markup."""
    soup = BeautifulSoup(html, "html.parser")

    # Title first: the <h1> fallback may live inside a <header> we strip below
    title = extract_title(soup)
    content = extract_main_content(soup)

    return WebContent(title=title, content=content, url=url)


def extract_web_content(url: str) -> WebContent:
    """Validate, fetch and extract a page.

    Raises ValidationError for a bad URL and FetchError (or a subclass) when
    the page cannot be downloaded.
    """
    valid_url = validate_url(url)
    logger.info("Fetching %s", valid_url)
    html = fetch_page(valid_url)
    web_content = parse_html(html, valid_url)
    logger.info(
        "Extracted %d chars from %s (title: %s)",
        len(web_content.content), valid_url, web_content.title,
    )
    return web_content
