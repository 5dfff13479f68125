"""Tests for model response parsing, validation, and heuristic fallback."""

import json

import pytest

from magpie.config import OTHER_CATEGORY
from magpie.models.content import AIAnalysisResult, ContentType, ScrapedContent
from magpie.services.ingestion.analyzer import (
    DEFAULT_PROMPT_TEMPLATE,
    MAX_SUMMARY_LENGTH,
    ContentAnalyzer,
    ResponseParseError,
    detect_language,
    estimate_reading_time,
    extract_basic_tags,
    fallback_analysis,
    guess_category_from_content,
    guess_category_from_url,
    is_plain_prose,
    parse_braced_block,
    parse_direct,
    parse_fenced_block,
    parse_model_response,
    render_prompt,
    validate_analysis,
)
from magpie.services.llm import ModelTimeoutError, ModelUnavailableError

CATEGORIES = ["技术", "设计", "产品", "工具", OTHER_CATEGORY]

MODEL_JSON = {
    "summary": "A practical guide to structured logging.",
    "category": "技术",
    "tags": ["Logging", "observability", "logging"],
    "language": "en",
    "sentiment": "positive",
    "readingTime": 4,
}


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


class TestResponseParsers:
    def test_parse_direct(self):
        assert parse_direct(json.dumps(MODEL_JSON)) == MODEL_JSON

    def test_parse_direct_rejects_non_object(self):
        assert parse_direct("[1, 2, 3]") is None

    def test_parse_braced_block_with_surrounding_text(self):
        text = f"Sure! Here you go: {json.dumps(MODEL_JSON)} Hope that helps."
        assert parse_braced_block(text) == MODEL_JSON

    def test_parse_fenced_block(self):
        text = f"```json\n{json.dumps(MODEL_JSON)}\n```"
        assert parse_fenced_block(text) == MODEL_JSON

    def test_parse_fenced_block_without_language(self):
        text = f"```\n{json.dumps(MODEL_JSON)}\n```"
        assert parse_fenced_block(text) == MODEL_JSON

    def test_parse_model_response_tries_each_parser(self):
        text = f"Result:\n```json\n{json.dumps(MODEL_JSON)}\n```"
        assert parse_model_response(text) == MODEL_JSON

    def test_parse_model_response_raises_when_nothing_parses(self):
        with pytest.raises(ResponseParseError):
            parse_model_response('{"summary": "unterminated')

    def test_is_plain_prose(self):
        assert is_plain_prose("This page explains how to bake bread.")
        assert not is_plain_prose("short")
        assert not is_plain_prose('{"summary": broken')


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


class TestRenderPrompt:
    def test_substitutes_all_placeholders(self, article_content):
        prompt = render_prompt(
            DEFAULT_PROMPT_TEMPLATE, article_content, CATEGORIES, instructions="Answer in Chinese"
        )
        assert article_content.url in prompt
        assert article_content.title in prompt
        assert "article" in prompt
        assert ", ".join(CATEGORIES) in prompt
        assert "Answer in Chinese" in prompt
        assert "{content}" not in prompt
        # Literal JSON braces survive
        assert '"summary"' in prompt

    def test_truncates_content(self, article_content):
        template = "{content}"
        prompt = render_prompt(template, article_content, CATEGORIES, content_length=50)
        assert len(prompt) <= 53

    def test_placeholder_defaults_for_missing_fields(self):
        content = ScrapedContent(url="https://example.com", content_type=ContentType.ARTICLE)
        prompt = render_prompt("{title}|{description}", content, CATEGORIES)
        assert prompt == "No title|No description"


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------


class TestHeuristics:
    def test_category_from_english_keywords(self):
        assert (
            guess_category_from_content("A new Python framework", "", CATEGORIES, OTHER_CATEGORY)
            == "技术"
        )

    def test_category_from_chinese_keywords(self):
        assert guess_category_from_content("界面设计指南", "", CATEGORIES, OTHER_CATEGORY) == "设计"

    def test_category_keywords_match_whole_words(self):
        # "ui" inside "building" is not a design keyword match
        assert (
            guess_category_from_content("Building houses", "", CATEGORIES, OTHER_CATEGORY)
            == OTHER_CATEGORY
        )

    def test_category_from_url(self):
        assert (
            guess_category_from_url("https://dribbble.com/shots/1", CATEGORIES, OTHER_CATEGORY)
            == "设计"
        )

    def test_category_from_url_defaults_to_fallback(self):
        assert (
            guess_category_from_url("https://example.com/walks", CATEGORIES, OTHER_CATEGORY)
            == OTHER_CATEGORY
        )

    def test_english_category_names_use_keyword_tables(self):
        categories = ["Tech", "Design", "Other"]
        assert guess_category_from_content("Figma tips", "", categories, "Other") == "Design"

    def test_extract_basic_tags(self):
        tags = extract_basic_tags("The Rust compiler and the borrow checker", "Rust rust memory")
        assert tags == ["rust", "compiler", "borrow", "checker", "memory"]

    def test_extract_basic_tags_skips_long_words(self):
        assert extract_basic_tags("a" * 21 + " valid", "") == ["valid"]

    def test_detect_language(self):
        assert detect_language("这是一篇关于编程的文章") == "zh"
        assert detect_language("これはテストです") == "ja"
        assert detect_language("안녕하세요 세계") == "ko"
        assert detect_language("Plain English text") == "en"
        assert detect_language("") == "en"

    def test_estimate_reading_time(self):
        assert estimate_reading_time(0) == 1
        assert estimate_reading_time(225) == 1
        assert estimate_reading_time(226) == 2

    def test_fallback_analysis_ignores_placeholder_description(self):
        content = ScrapedContent(
            url="https://example.com/x",
            content_type=ContentType.ARTICLE,
            title="Quiet evening",
            description="Page content could not be fetched",
        )
        result = fallback_analysis(content, CATEGORIES, OTHER_CATEGORY)
        assert result["summary"] == "Quiet evening"
        assert result["tags"] == ["quiet", "evening"]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidateAnalysis:
    def test_sanitizes_every_field(self, article_content):
        raw = {
            "summary": "  " + "s" * 600,
            "category": "unknown category",
            "tags": ["  AI ", "ai", "", "x" * 51] + [f"t{i}" for i in range(20)],
            "language": "english",
            "sentiment": "ecstatic",
            "readingTime": 500,
        }
        result = validate_analysis(raw, article_content, CATEGORIES)

        assert len(result.summary) == MAX_SUMMARY_LENGTH
        assert result.category == OTHER_CATEGORY
        assert len(result.tags) == 10
        assert result.tags[0] == "ai"
        assert all(1 <= len(t) <= 50 and t == t.lower() for t in result.tags)
        assert result.language == "en"
        assert result.sentiment == "neutral"
        assert result.reading_time == 2  # ceil(280 / 225)

    def test_category_matches_case_insensitively(self, article_content):
        result = validate_analysis(
            {"summary": "x", "category": "design"}, article_content, ["Tech", "Design", "Other"]
        )
        assert result.category == "Design"

    def test_reading_time_accepts_numeric_strings_and_ceils(self, article_content):
        result = validate_analysis({"summary": "x", "readingTime": "3.2"}, article_content, CATEGORIES)
        assert result.reading_time == 4

    def test_missing_summary_uses_description(self, article_content):
        result = validate_analysis({}, article_content, CATEGORIES)
        assert result.summary == article_content.description

    def test_is_idempotent(self, article_content):
        raw = {
            "summary": "  Trailing spaces   ",
            "category": "设计",
            "tags": ["UX", "ux", "Figma"],
            "language": "zh-CN",
            "sentiment": "positive",
            "readingTime": 7.5,
        }
        once = validate_analysis(raw, article_content, CATEGORIES)
        twice = validate_analysis(once, article_content, CATEGORIES)
        assert once == twice

    def test_idempotent_for_long_reading_estimates(self):
        content = ScrapedContent(
            url="https://example.com/book",
            content_type=ContentType.ARTICLE,
            word_count=50_000,
        )
        once = validate_analysis({"summary": "A book"}, content, CATEGORIES)
        assert once.reading_time > 60
        assert validate_analysis(once, content, CATEGORIES) == once


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------


class TestContentAnalyzer:
    @pytest.mark.asyncio
    async def test_fenced_model_json_is_used(self, article_content, fake_generator):
        generator = fake_generator(response=f"```json\n{json.dumps(MODEL_JSON)}\n```")
        outcome = await ContentAnalyzer(generator).analyze_with_outcome(article_content, CATEGORIES)

        assert outcome.failed is False
        assert outcome.error is None
        assert outcome.result == AIAnalysisResult(
            summary="A practical guide to structured logging.",
            category="技术",
            tags=["logging", "observability"],
            language="en",
            sentiment="positive",
            reading_time=4,
        )
        assert article_content.url in generator.prompts[0]

    @pytest.mark.asyncio
    async def test_network_error_falls_back_to_heuristics(self, article_content, fake_generator):
        generator = fake_generator(error=ModelUnavailableError("connection refused"))
        outcome = await ContentAnalyzer(generator).analyze_with_outcome(
            article_content, CATEGORIES, fallback_category=OTHER_CATEGORY
        )

        assert outcome.failed is True
        assert "connection refused" in outcome.error
        assert outcome.result.category == OTHER_CATEGORY
        assert outcome.result.tags == extract_basic_tags(
            article_content.title, article_content.description
        )

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, article_content, fake_generator):
        generator = fake_generator(error=ModelTimeoutError("timed out"))
        outcome = await ContentAnalyzer(generator).analyze_with_outcome(article_content, CATEGORIES)
        assert outcome.failed is True
        assert outcome.result.category in CATEGORIES

    @pytest.mark.asyncio
    async def test_unexpected_error_falls_back(self, article_content, fake_generator):
        generator = fake_generator(error=RuntimeError("boom"))
        outcome = await ContentAnalyzer(generator).analyze_with_outcome(article_content, CATEGORIES)
        assert outcome.failed is True
        assert outcome.result.reading_time >= 1

    @pytest.mark.asyncio
    async def test_no_generator_uses_heuristics(self, article_content):
        outcome = await ContentAnalyzer(None).analyze_with_outcome(article_content, CATEGORIES)
        assert outcome.failed is True
        assert outcome.error == "AI service not configured"
        assert outcome.result.summary == article_content.description

    @pytest.mark.asyncio
    async def test_empty_response_falls_back(self, article_content, fake_generator):
        outcome = await ContentAnalyzer(fake_generator(response="   ")).analyze_with_outcome(
            article_content, CATEGORIES
        )
        assert outcome.failed is True

    @pytest.mark.asyncio
    async def test_prose_response_becomes_summary(self, article_content, fake_generator):
        prose = "This page describes a calm routine of walking along a river."
        outcome = await ContentAnalyzer(fake_generator(response=prose)).analyze_with_outcome(
            article_content, CATEGORIES
        )
        assert outcome.failed is False
        assert outcome.result.summary == prose
        assert outcome.result.category == OTHER_CATEGORY

    @pytest.mark.asyncio
    async def test_broken_json_with_braces_uses_full_fallback(self, article_content, fake_generator):
        outcome = await ContentAnalyzer(
            fake_generator(response='{"summary": "cut off mid')
        ).analyze_with_outcome(article_content, CATEGORIES)
        assert outcome.failed is True
        assert outcome.result.summary == article_content.description

    @pytest.mark.asyncio
    async def test_partial_json_fills_missing_fields(self, article_content, fake_generator):
        response = json.dumps({"summary": "Only a summary here."})
        outcome = await ContentAnalyzer(fake_generator(response=response)).analyze_with_outcome(
            article_content, CATEGORIES
        )
        assert outcome.failed is False
        assert outcome.result.summary == "Only a summary here."
        assert outcome.result.tags == extract_basic_tags(
            article_content.title, article_content.description
        )

    @pytest.mark.asyncio
    async def test_custom_template_and_instructions(self, article_content, fake_generator):
        generator = fake_generator(response=json.dumps(MODEL_JSON))
        analyzer = ContentAnalyzer(generator, prompt_template="Summarize {url}. {instructions}")
        await analyzer.analyze(article_content, CATEGORIES, instructions="Be brief.")
        assert generator.prompts == [f"Summarize {article_content.url}. Be brief."]

    @pytest.mark.asyncio
    async def test_category_always_in_category_list(self, article_content, fake_generator):
        for category in ["技术", "Nonsense", "", None, 42]:
            response = json.dumps({"summary": "s", "category": category})
            result = await ContentAnalyzer(fake_generator(response=response)).analyze(
                article_content, CATEGORIES
            )
            assert result.category in CATEGORIES
