"""URL helpers for ingestion: validation, domain, and content-type classification."""

import re
from urllib.parse import unquote, urlparse

import httpx

from magpie.models.content import ContentType

VIDEO_HOST_MARKERS = ("youtube.com", "youtu.be", "vimeo.com", "bilibili.com")

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg")


def is_valid_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host that httpx can request."""
    try:
        parsed = urlparse(url.strip())
        httpx.URL(url.strip())
    except (ValueError, httpx.InvalidURL):
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def extract_domain(url: str) -> str:
    """Return the URL host without a leading ``www.``, or ``unknown``."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        host = None
    if not host:
        return "unknown"
    return re.sub(r"^www\.", "", host)


def classify_content_type(url: str) -> ContentType:
    """Classify a URL by pattern alone, without fetching it."""
    url_lower = url.lower()
    if any(marker in url_lower for marker in VIDEO_HOST_MARKERS):
        return ContentType.VIDEO

    try:
        path = urlparse(url_lower).path
    except ValueError:
        path = url_lower
    if path.endswith(".pdf"):
        return ContentType.PDF
    if path.endswith(IMAGE_EXTENSIONS):
        return ContentType.IMAGE
    return ContentType.ARTICLE


def filename_from_url(url: str) -> str:
    """Last non-empty path segment, URL-decoded."""
    try:
        path = urlparse(url).path
    except ValueError:
        return ""
    segments = [s for s in path.split("/") if s]
    return unquote(segments[-1]) if segments else ""


def title_from_url(url: str) -> str:
    """Derive a readable title from the URL path, falling back to the domain.

    ``https://example.com/blog/my-first-post.html`` -> ``my first post``
    """
    name = filename_from_url(url)
    name = re.sub(r"\.[A-Za-z0-9]{1,5}$", "", name)
    name = " ".join(re.split(r"[-_+\s]+", name)).strip()
    return name or extract_domain(url)
