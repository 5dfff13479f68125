"""Scraped content and AI analysis models."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContentType(str, Enum):
    """Kind of resource a URL points at."""

    ARTICLE = "article"
    VIDEO = "video"
    PDF = "pdf"
    IMAGE = "image"


Sentiment = Literal["positive", "neutral", "negative"]


class ScrapedContent(CamelModel):
    """Normalized result of fetching and extracting a URL."""

    url: str
    content_type: ContentType
    title: str = ""
    description: str = ""
    content: str = ""
    domain: str = ""
    word_count: int = Field(default=0, ge=0)
    author: str | None = None
    publish_date: str | None = None  # ISO-8601
    site_name: str | None = None
    language: str | None = None  # ISO 639-1
    tags: list[str] | None = None


class AIAnalysisResult(CamelModel):
    """Validated analysis of a piece of content."""

    summary: str
    category: str
    tags: list[str] = []
    language: str = "en"
    sentiment: Sentiment = "neutral"
    reading_time: int = Field(default=1, ge=1)
