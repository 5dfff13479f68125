"""AI content analysis producing summary, category, tags, and reading time.

The analyzer is fail-soft: whatever the text-generation service does (time
out, refuse, return prose or broken JSON), ``analyze`` resolves to a fully
validated ``AIAnalysisResult``, falling back to keyword heuristics for any
field the model did not provide.
"""

import json
import logging
import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from magpie.config import resolve_fallback_category
from magpie.models.content import AIAnalysisResult, ScrapedContent
from magpie.services.ingestion.extractor import (
    FETCH_FAILED_DESCRIPTION,
    NO_DESCRIPTION,
    truncate_content,
)
from magpie.services.llm import ModelError, TextGenerator
from magpie.services.tags import clean_tags

logger = logging.getLogger(__name__)

DEFAULT_PROMPT_TEMPLATE = (
    "Analyze the following web page and return a structured summary as JSON.\n"
    "\n"
    "Page:\n"
    "- URL: {url}\n"
    "- Title: {title}\n"
    "- Content type: {contentType}\n"
    "- Original description: {description}\n"
    "- Main content: {content}\n"
    "\n"
    "Respond with valid JSON in this exact format:\n"
    "{\n"
    '  "summary": "A concise 2-3 sentence summary, in the same language as '
    'the content",\n'
    '  "category": "Exactly one of: {categories}",\n'
    '  "tags": ["3-5 specific, relevant tags"],\n'
    '  "language": "Detected language code (zh, en, ja, ...)",\n'
    '  "sentiment": "positive, neutral, or negative",\n'
    '  "readingTime": 5\n'
    "}\n"
    "\n"
    "Rules:\n"
    "- The summary should be short and informative, leading with the core point\n"
    "- category must be chosen strictly from the list above\n"
    "- Tags should help someone find this page again\n"
    "- readingTime is an integer number of minutes, at 200-300 words per minute\n"
    "- Return only the JSON object, with no other text\n"
    "\n"
    "{instructions}"
)

# Characters of page content sent to the model
PROMPT_CONTENT_LENGTH = 3000

MAX_SUMMARY_LENGTH = 500
WORDS_PER_MINUTE = 225
MAX_READING_TIME = 60

VALID_LANGUAGES = ("en", "zh", "ja", "ko", "es", "fr", "de", "ru", "ar", "hi")
VALID_SENTIMENTS = ("positive", "neutral", "negative")

PLACEHOLDER_DESCRIPTIONS = {NO_DESCRIPTION, FETCH_FAILED_DESCRIPTION}

CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "技术": [
        "technology", "programming", "software", "code", "api", "framework",
        "dev", "tech", "技术", "编程", "软件", "代码", "开发",
    ],
    "设计": ["design", "ui", "ux", "visual", "graphic", "figma", "设计", "界面", "视觉"],
    "产品": [
        "product", "startup", "business", "company", "marketing", "strategy",
        "产品", "商业", "创业", "营销",
    ],
    "工具": ["tool", "app", "software", "utility", "plugin", "extension", "工具", "应用", "插件"],
}

# Matched as plain substrings of the lowercased URL
URL_KEYWORDS: dict[str, list[str]] = {
    "技术": ["tech", "programming", "software", "github", "dev", "code", "api", "framework"],
    "设计": ["design", "ui", "ux", "figma", "dribbble", "behance"],
    "产品": ["product", "startup", "business", "pm", "strategy"],
    "工具": ["tool", "app", "software", "extension", "plugin", "utility"],
}

# English category names that share a keyword table with the defaults
CATEGORY_ALIASES = {
    "tech": "技术",
    "technology": "技术",
    "design": "设计",
    "product": "产品",
    "tool": "工具",
    "tools": "工具",
}

STOPWORDS = {
    "the", "and", "for", "are", "but", "not", "you", "all", "can", "had",
    "was", "one", "our", "has", "have", "this", "that", "with", "they",
    "will", "been", "said", "each", "which", "their", "time", "from",
}

CJK_IDEOGRAPH_RE = re.compile(r"[\u4e00-\u9fff]")
KANA_RE = re.compile(r"[\u3040-\u309f\u30a0-\u30ff]")
HANGUL_RE = re.compile(r"[\uac00-\ud7af]")


class ResponseParseError(Exception):
    """Model output could not be turned into a JSON object."""

    pass


@dataclass
class AnalysisOutcome:
    """Validated result plus how it was produced."""

    result: AIAnalysisResult
    failed: bool = False
    error: str | None = None


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


def render_prompt(
    template: str,
    content: ScrapedContent,
    categories: list[str],
    instructions: str = "",
    content_length: int = PROMPT_CONTENT_LENGTH,
) -> str:
    """Substitute placeholders by plain replacement.

    Templates may contain literal JSON braces, so ``str.format`` is not used.
    """
    values = {
        "{url}": content.url,
        "{title}": content.title or "No title",
        "{contentType}": content.content_type.value,
        "{description}": content.description or "No description",
        "{content}": truncate_content(content.content, content_length),
        "{categories}": ", ".join(categories),
        "{instructions}": instructions.strip(),
    }
    prompt = template
    for placeholder, value in values.items():
        prompt = prompt.replace(placeholder, value)
    return prompt.strip()


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def parse_direct(text: str) -> dict[str, Any] | None:
    """The whole response is a JSON object."""
    return _loads_object(text.strip())


def parse_braced_block(text: str) -> dict[str, Any] | None:
    """A JSON object surrounded by other text."""
    match = re.search(r"\{[\s\S]*\}", text)
    return _loads_object(match.group(0)) if match else None


def parse_fenced_block(text: str) -> dict[str, Any] | None:
    """A JSON object inside a Markdown code fence."""
    match = re.search(r"```(?:json)?\s*([\s\S]*?)```", text, re.IGNORECASE)
    return _loads_object(match.group(1).strip()) if match else None


RESPONSE_PARSERS: tuple[Callable[[str], dict[str, Any] | None], ...] = (
    parse_direct,
    parse_braced_block,
    parse_fenced_block,
)


def parse_model_response(text: str) -> dict[str, Any]:
    """Try each parser in order; raise ResponseParseError if none succeeds."""
    for parser in RESPONSE_PARSERS:
        data = parser(text)
        if data is not None:
            logger.debug("Model response parsed by %s", parser.__name__)
            return data
    raise ResponseParseError(f"No JSON object in model response ({len(text)} chars)")


def is_plain_prose(text: str) -> bool:
    """Prose the model returned instead of JSON, usable as a summary."""
    return "{" not in text and len(text.strip()) > 10


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------


def _keyword_table_key(category: str) -> str | None:
    if category in CATEGORY_KEYWORDS:
        return category
    return CATEGORY_ALIASES.get(category.strip().lower())


def _matches_keyword(text: str, keyword: str) -> bool:
    if CJK_IDEOGRAPH_RE.search(keyword):
        return keyword in text
    return re.search(rf"\b{re.escape(keyword)}\b", text, re.IGNORECASE) is not None


def guess_category_from_content(
    title: str, description: str, categories: list[str], fallback: str
) -> str:
    text = f"{title} {description}".lower()
    for category in categories:
        key = _keyword_table_key(category)
        if category == fallback or key is None:
            continue
        if any(_matches_keyword(text, kw) for kw in CATEGORY_KEYWORDS[key]):
            return category
    return fallback


def guess_category_from_url(url: str, categories: list[str], fallback: str) -> str:
    url_lower = url.lower()
    for category in categories:
        key = _keyword_table_key(category)
        if category == fallback or key is None:
            continue
        if any(kw in url_lower for kw in URL_KEYWORDS[key]):
            return category
    return fallback


def extract_basic_tags(title: str, description: str, limit: int = 5) -> list[str]:
    """First unique non-stopword tokens of length 3-20 from title + description."""
    text = f"{title} {description}".lower()
    tags: list[str] = []
    for word in re.findall(r"\b\w{3,}\b", text, re.ASCII):
        if word in STOPWORDS or len(word) > 20 or word in tags:
            continue
        tags.append(word)
        if len(tags) == limit:
            break
    return tags


def detect_language(text: str) -> str:
    """Pick zh/ja/ko by character-block density, else en."""
    if not text:
        return "en"
    total = len(text)
    if len(CJK_IDEOGRAPH_RE.findall(text)) / total > 0.3:
        return "zh"
    if len(KANA_RE.findall(text)) / total > 0.3:
        return "ja"
    if len(HANGUL_RE.findall(text)) / total > 0.3:
        return "ko"
    return "en"


def estimate_reading_time(word_count: int) -> int:
    return max(1, math.ceil(word_count / WORDS_PER_MINUTE))


def _usable_description(content: ScrapedContent) -> str:
    if content.description in PLACEHOLDER_DESCRIPTIONS:
        return ""
    return content.description


def fallback_analysis(
    content: ScrapedContent, categories: list[str], fallback: str
) -> dict[str, Any]:
    """Heuristic analysis used when model output is unavailable."""
    description = _usable_description(content)
    category = guess_category_from_content(content.title, description, categories, fallback)
    if category == fallback:
        category = guess_category_from_url(content.url, categories, fallback)

    return {
        "summary": description or content.title or "Content analysis not available",
        "category": category,
        "tags": extract_basic_tags(content.title, description),
        "language": content.language or detect_language(f"{content.title} {description}"),
        "sentiment": "neutral",
        "readingTime": estimate_reading_time(content.word_count),
    }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _sanitize_text(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()[:MAX_SUMMARY_LENGTH].rstrip()


def _validate_category(value: Any, categories: list[str], fallback: str) -> str:
    if isinstance(value, str):
        candidate = value.strip()
        if candidate in categories or candidate == fallback:
            return candidate
        for category in categories:
            if category.lower() == candidate.lower():
                return category
    return fallback


def _validate_language(value: Any) -> str:
    if isinstance(value, str):
        lang = value.strip().lower()[:2]
        if lang in VALID_LANGUAGES:
            return lang
    return "en"


def _validate_reading_time(value: Any, word_count: int) -> int:
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            value = None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if 0 < value <= MAX_READING_TIME:
            return max(1, math.ceil(value))
    return estimate_reading_time(word_count)


def validate_analysis(
    raw: dict[str, Any] | AIAnalysisResult,
    content: ScrapedContent,
    categories: list[str],
    fallback: str | None = None,
) -> AIAnalysisResult:
    """Project arbitrary analysis output onto the valid domain of every field.

    Applying this to its own output returns an equal result.
    """
    if isinstance(raw, AIAnalysisResult):
        raw = raw.model_dump(by_alias=True)
    fallback = fallback or resolve_fallback_category(categories)

    summary = (
        _sanitize_text(raw.get("summary"))
        or _sanitize_text(_usable_description(content))
        or "Content summary not available"
    )
    tags = raw.get("tags")
    sentiment = raw.get("sentiment")
    reading_time = raw.get("readingTime", raw.get("reading_time"))

    return AIAnalysisResult(
        summary=summary,
        category=_validate_category(raw.get("category"), categories, fallback),
        tags=clean_tags(tags, lowercase=True) if isinstance(tags, list) else [],
        language=_validate_language(raw.get("language") or content.language),
        sentiment=sentiment if sentiment in VALID_SENTIMENTS else "neutral",
        reading_time=_validate_reading_time(reading_time, content.word_count),
    )


def _fill_missing(data: dict[str, Any], heuristics: dict[str, Any]) -> dict[str, Any]:
    """Use heuristic values for fields the model left out entirely."""
    merged = dict(data)
    if not isinstance(merged.get("category"), str) or not merged["category"].strip():
        merged["category"] = heuristics["category"]
    if not isinstance(merged.get("tags"), list):
        merged["tags"] = heuristics["tags"]
    if not merged.get("language"):
        merged["language"] = heuristics["language"]
    return merged


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------


class ContentAnalyzer:
    """Summarize and classify scraped content with a text-generation model."""

    def __init__(
        self,
        generator: TextGenerator | None,
        prompt_template: str | None = None,
        content_length: int = PROMPT_CONTENT_LENGTH,
    ) -> None:
        self.generator = generator
        self.prompt_template = prompt_template or DEFAULT_PROMPT_TEMPLATE
        self.content_length = content_length

    async def analyze(
        self,
        content: ScrapedContent,
        categories: list[str],
        instructions: str = "",
        fallback_category: str | None = None,
    ) -> AIAnalysisResult:
        outcome = await self.analyze_with_outcome(
            content, categories, instructions, fallback_category
        )
        return outcome.result

    async def analyze_with_outcome(
        self,
        content: ScrapedContent,
        categories: list[str],
        instructions: str = "",
        fallback_category: str | None = None,
    ) -> AnalysisOutcome:
        """Analyze content; never raises.

        ``failed`` is set whenever the result came from heuristics alone.
        """
        fallback = fallback_category or resolve_fallback_category(categories)
        heuristics = fallback_analysis(content, categories, fallback)

        def _degraded(reason: str) -> AnalysisOutcome:
            result = validate_analysis(heuristics, content, categories, fallback)
            return AnalysisOutcome(result=result, failed=True, error=reason)

        if self.generator is None:
            return _degraded("AI service not configured")

        prompt = render_prompt(
            self.prompt_template, content, categories, instructions, self.content_length
        )
        try:
            response_text = await self.generator.generate(prompt)
        except ModelError as e:
            logger.warning("Model call failed for %s: %s", content.url[:80], e)
            return _degraded(str(e))
        except Exception as e:
            logger.exception("Unexpected model error for %s", content.url[:80])
            return _degraded(f"Unexpected model error: {e}")

        response_text = (response_text or "").strip()
        if not response_text:
            logger.warning("Empty model response for %s", content.url[:80])
            return _degraded("Empty response from AI service")

        try:
            data = parse_model_response(response_text)
        except ResponseParseError as e:
            if is_plain_prose(response_text):
                logger.info("Model returned prose for %s; using it as summary", content.url[:80])
                prose = dict(heuristics, summary=response_text)
                result = validate_analysis(prose, content, categories, fallback)
                return AnalysisOutcome(result=result, error="Model returned non-JSON text")
            logger.warning("Unparsable model response for %s: %s", content.url[:80], e)
            return _degraded(str(e))

        result = validate_analysis(_fill_missing(data, heuristics), content, categories, fallback)
        return AnalysisOutcome(result=result)
