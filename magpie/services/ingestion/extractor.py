"""Content extractor: fetch a URL and normalize it into ScrapedContent.

Body text is chosen by an ordered list of extraction rules; the first rule
that yields non-trivial text wins. Metadata (title, description, author,
dates, ...) is read opportunistically from meta tags and never fails the
extraction.
"""

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import httpx
from bs4 import BeautifulSoup
from readability import Document

from magpie.models.content import ContentType, ScrapedContent
from magpie.services.http_client import get_shared_client, page_headers
from magpie.services.ingestion.urls import (
    classify_content_type,
    extract_domain,
    filename_from_url,
)

logger = logging.getLogger(__name__)

SCRAPE_TIMEOUT = 10.0
DEFAULT_MAX_CONTENT_LENGTH = 8000

# Minimum text length (characters) for a selector match to count
MIN_CONTENT_LENGTH = 200

NO_DESCRIPTION = "No description available"
FETCH_FAILED_DESCRIPTION = "Page content could not be fetched"
ELLIPSIS = "..."

SENTENCE_ENDINGS = ".!?。！？"

CJK_RE = re.compile(r"[\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff]")

BOILERPLATE_SELECTOR = (
    "script, style, noscript, iframe, template, nav, header, footer, aside, "
    ".sidebar, .navigation, .menu, .ads, .advertisement, .comments, .social-share"
)


class ExtractionError(Exception):
    """Error while extracting content from a URL."""

    pass


class FetchError(ExtractionError):
    """Network failure or non-2xx response while fetching a URL."""

    pass


class ParseError(ExtractionError):
    """The fetched body could not be parsed as markup at all."""

    pass


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def clean_text(text: str | None) -> str:
    """Collapse all whitespace runs to single spaces."""
    if not text:
        return ""
    return " ".join(text.split())


def truncate_content(text: str, max_length: int) -> str:
    """Truncate to max_length, preferring the last sentence boundary.

    A boundary only counts when it falls after 80% of max_length; otherwise
    the text is hard-cut and an ellipsis appended.
    """
    if len(text) <= max_length:
        return text

    truncated = text[:max_length]
    boundary = max(truncated.rfind(ch) for ch in SENTENCE_ENDINGS)
    if boundary > max_length * 0.8:
        return truncated[: boundary + 1]
    return truncated.rstrip() + ELLIPSIS


def count_words(text: str) -> int:
    """Count words: each CJK ideograph is one word, other runs split on whitespace."""
    if not text:
        return 0
    cjk_count = len(CJK_RE.findall(text))
    rest = CJK_RE.sub(" ", text)
    rest = re.sub(r"[^\w\s]", " ", rest)
    return cjk_count + len(rest.split())


def _element_text(element) -> str:
    return clean_text(element.get_text(separator=" "))


# ---------------------------------------------------------------------------
# Extraction rules
# ---------------------------------------------------------------------------

ExtractionRule = Callable[[BeautifulSoup], str | None]


@dataclass(frozen=True)
class SelectorRule:
    """Text of the first element matching a CSS selector, if long enough."""

    selector: str
    min_length: int = MIN_CONTENT_LENGTH

    def __call__(self, soup: BeautifulSoup) -> str | None:
        element = soup.select_one(self.selector)
        if element is None:
            return None
        text = _element_text(element)
        if len(text) > self.min_length:
            return text
        return None


@dataclass(frozen=True)
class ReadabilityRule:
    """Main content as identified by Mozilla's Readability algorithm."""

    min_length: int = MIN_CONTENT_LENGTH

    def __call__(self, soup: BeautifulSoup) -> str | None:
        try:
            summary_html = Document(str(soup)).summary(html_partial=True)
        except Exception as e:
            logger.debug("Readability failed: %s", e)
            return None
        text = _element_text(BeautifulSoup(summary_html, "lxml"))
        if len(text) > self.min_length:
            return text
        return None


@dataclass(frozen=True)
class BodyRule:
    """Whole body text; boilerplate regions are already stripped."""

    def __call__(self, soup: BeautifulSoup) -> str | None:
        root = soup.body or soup
        return _element_text(root) or None


ARTICLE_RULES: tuple[ExtractionRule, ...] = (
    SelectorRule("article"),
    SelectorRule(".post-content"),
    SelectorRule(".entry-content"),
    SelectorRule(".content"),
    SelectorRule(".main-content"),
    SelectorRule(".article-content"),
    SelectorRule(".post-body"),
    SelectorRule(".entry"),
    SelectorRule(".post"),
    SelectorRule("main"),
    SelectorRule("#content"),
    SelectorRule("#main"),
    SelectorRule(".article"),
    SelectorRule(".blog-post"),
    SelectorRule('[role="main"]'),
    SelectorRule(".page-content"),
    ReadabilityRule(),
    BodyRule(),
)

# Per-platform description containers; any non-empty text is accepted
VIDEO_RULES: dict[str, tuple[ExtractionRule, ...]] = {
    "youtube": (
        SelectorRule("#meta-contents #description-text", min_length=0),
        SelectorRule('[data-testid="video-description"]', min_length=0),
        SelectorRule(".video-description", min_length=0),
    ),
    "youtu.be": (
        SelectorRule('[data-testid="video-description"]', min_length=0),
        SelectorRule(".video-description", min_length=0),
    ),
    "bilibili": (
        SelectorRule(".video-desc .intro", min_length=0),
        SelectorRule(".video-info .desc", min_length=0),
    ),
    "vimeo": (SelectorRule(".clip_details-description", min_length=0),),
}


def first_match(rules: Sequence[ExtractionRule], soup: BeautifulSoup) -> str | None:
    """Run rules in order and return the first non-empty result."""
    for rule in rules:
        text = rule(soup)
        if text:
            logger.debug("Content matched %r (%d chars)", rule, len(text))
            return text
    return None


def video_rules_for(url: str) -> tuple[ExtractionRule, ...]:
    url_lower = url.lower()
    for marker, rules in VIDEO_RULES.items():
        if marker in url_lower:
            return rules
    return ()


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


def _meta(soup: BeautifulSoup, *, prop: str | None = None, name: str | None = None) -> str:
    attrs = {"property": prop} if prop else {"name": name}
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return ""
    return clean_text(tag.get("content"))


def _selector_text(soup: BeautifulSoup, selector: str) -> str:
    element = soup.select_one(selector)
    return _element_text(element) if element is not None else ""


def _first(*candidates: str) -> str:
    for candidate in candidates:
        if candidate:
            return candidate
    return ""


def extract_title(soup: BeautifulSoup) -> str:
    title_tag = soup.find("title")
    return _first(
        _meta(soup, prop="og:title"),
        _meta(soup, name="twitter:title"),
        _element_text(title_tag) if title_tag else "",
        _selector_text(soup, "h1"),
    )


def extract_description(soup: BeautifulSoup) -> str:
    return _first(
        _meta(soup, prop="og:description"),
        _meta(soup, name="twitter:description"),
        _meta(soup, name="description"),
        _meta(soup, prop="description"),
    )


def extract_author(soup: BeautifulSoup) -> str | None:
    author = _first(
        _meta(soup, name="author"),
        _meta(soup, prop="article:author"),
        _selector_text(soup, ".author"),
        _selector_text(soup, ".byline"),
        _selector_text(soup, '[rel="author"]'),
    )
    return author or None


def parse_date(value: str) -> str | None:
    """Normalize an ISO-8601 or RFC 2822 date to ISO-8601 UTC."""
    value = value.strip()
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        try:
            dt = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def extract_publish_date(soup: BeautifulSoup) -> str | None:
    time_tag = soup.find("time", attrs={"datetime": True})
    date_str = _first(
        _meta(soup, prop="article:published_time"),
        _meta(soup, name="publishdate"),
        clean_text(time_tag.get("datetime")) if time_tag else "",
        _selector_text(soup, ".date"),
        _selector_text(soup, ".published"),
    )
    return parse_date(date_str) if date_str else None


def extract_site_name(soup: BeautifulSoup) -> str | None:
    return _first(_meta(soup, prop="og:site_name"), _meta(soup, name="application-name")) or None


def normalize_language(value: str | None) -> str | None:
    """``en-US`` -> ``en``; anything not starting with two letters -> None."""
    if not value:
        return None
    match = re.match(r"^([A-Za-z]{2})(?:[-_]|$)", value.strip())
    return match.group(1).lower() if match else None


def extract_language(soup: BeautifulSoup) -> str | None:
    html_tag = soup.find("html")
    lang = html_tag.get("lang") if html_tag else None
    if not lang:
        tag = soup.find("meta", attrs={"http-equiv": re.compile("^content-language$", re.I)})
        lang = tag.get("content") if tag else None
    return normalize_language(lang)


def extract_keyword_tags(soup: BeautifulSoup) -> list[str] | None:
    keywords = _meta(soup, name="keywords")
    if keywords:
        tags = [clean_text(k) for k in keywords.split(",")]
    else:
        tags = [_element_text(el) for el in soup.select(".tag, .category, .label")]
    tags = [t for t in tags if t]
    return tags or None


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


class ContentExtractor:
    """Fetch a URL and produce a normalized ScrapedContent record."""

    def __init__(
        self,
        max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH,
        timeout: float = SCRAPE_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.max_content_length = max_content_length
        self.timeout = timeout
        self._client = client

    async def extract(self, url: str) -> ScrapedContent:
        """Fetch and extract ``url``.

        Raises:
            FetchError: On network failure, timeout, or a non-2xx status.
            ParseError: If the body is markup-typed but contains no markup.
        """
        content_type = classify_content_type(url)
        logger.info("Extracting %s (%s)", url[:120], content_type.value)

        response = await self._fetch(url)
        media_type = response.headers.get("content-type", "").lower()
        if media_type and "html" not in media_type and "xml" not in media_type:
            logger.info("Non-markup response (%s) for %s", media_type, url[:80])
            return self.from_url(url, content_type)

        soup = self._parse(response.text, url)
        return self.from_soup(url, content_type, soup)

    async def _fetch(self, url: str) -> httpx.Response:
        client = self._client or get_shared_client()
        try:
            response = await client.get(
                url,
                timeout=self.timeout,
                follow_redirects=True,
                headers=page_headers(),
            )
        except httpx.TimeoutException as e:
            raise FetchError(f"Request timeout after {self.timeout:g}s") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(f"Request failed: {e}") from e

        if not response.is_success:
            raise FetchError(f"HTTP {response.status_code}: {response.reason_phrase}")
        return response

    @staticmethod
    def _parse(html: str, url: str) -> BeautifulSoup:
        try:
            soup = BeautifulSoup(html, "lxml")
        except Exception as e:
            raise ParseError(f"Could not parse markup from {url}: {e}") from e
        if soup.find() is None:
            raise ParseError(f"No markup found in response from {url}")
        return soup

    def from_soup(
        self, url: str, content_type: ContentType, soup: BeautifulSoup
    ) -> ScrapedContent:
        """Build ScrapedContent from parsed markup (no network access)."""
        domain = extract_domain(url)
        title = extract_title(soup)
        description = extract_description(soup)

        # Metadata first: boilerplate stripping removes bylines and tag lists
        author = extract_author(soup)
        publish_date = extract_publish_date(soup)
        site_name = extract_site_name(soup)
        language = extract_language(soup)
        tags = extract_keyword_tags(soup)

        for element in soup.select(BOILERPLATE_SELECTOR):
            element.decompose()

        if content_type == ContentType.ARTICLE:
            raw = first_match(ARTICLE_RULES, soup) or description
        elif content_type == ContentType.VIDEO:
            raw = first_match(video_rules_for(url), soup) or description
        else:
            title = title or self._file_title(url, content_type)
            description = description or self._sentinel_description(content_type)
            raw = description

        content = truncate_content(clean_text(raw), self.max_content_length)
        return ScrapedContent(
            url=url,
            content_type=content_type,
            title=title or domain,
            description=description or NO_DESCRIPTION,
            content=content,
            domain=domain,
            word_count=count_words(content),
            author=author,
            publish_date=publish_date,
            site_name=site_name,
            language=language,
            tags=tags,
        )

    def from_url(self, url: str, content_type: ContentType) -> ScrapedContent:
        """Build ScrapedContent for a body that is not markup (PDF, image, ...)."""
        description = self._sentinel_description(content_type)
        return ScrapedContent(
            url=url,
            content_type=content_type,
            title=self._file_title(url, content_type) or extract_domain(url),
            description=description,
            content=description,
            domain=extract_domain(url),
            word_count=count_words(description),
        )

    @staticmethod
    def _file_title(url: str, content_type: ContentType) -> str:
        name = filename_from_url(url)
        if content_type == ContentType.PDF:
            return re.sub(r"\.pdf$", "", name, flags=re.I) or "PDF Document"
        if content_type == ContentType.IMAGE:
            return name or "Image"
        return name

    @staticmethod
    def _sentinel_description(content_type: ContentType) -> str:
        if content_type == ContentType.PDF:
            return "PDF document"
        if content_type == ContentType.IMAGE:
            return "Image content"
        return NO_DESCRIPTION
