"""Link record and link API models."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import Field, computed_field, field_validator

from magpie.models.content import CamelModel, ContentType
from magpie.services.tags import parse_tags


class LinkStatus(str, Enum):
    PENDING = "pending"
    PUBLISHED = "published"
    DELETED = "deleted"


class Link(CamelModel):
    """Persisted link record.

    ``user_*`` fields are set by a human (or copied from the AI fields when
    confirmation is skipped) and always win over the ``ai_*`` fields in the
    ``final_*`` view.
    """

    id: str
    url: str
    domain: str
    title: str = ""
    content_type: ContentType = ContentType.ARTICLE
    original_description: str = ""
    original_content: str = ""
    word_count: int = 0

    ai_summary: str = ""
    ai_category: str = ""
    ai_tags: list[str] = []
    ai_reading_time: int | None = None
    ai_language: str | None = None
    ai_sentiment: str | None = None
    ai_analysis_failed: bool = False
    ai_error: str | None = None
    scraping_failed: bool = False

    user_description: str | None = None
    user_category: str | None = None
    user_tags: list[str] | None = None

    status: LinkStatus = LinkStatus.PENDING
    created_at: datetime
    updated_at: datetime
    published_at: datetime | None = None

    @computed_field
    @property
    def final_description(self) -> str:
        return self.user_description or self.ai_summary

    @computed_field
    @property
    def final_category(self) -> str:
        return self.user_category or self.ai_category

    @computed_field
    @property
    def final_tags(self) -> list[str]:
        return self.user_tags if self.user_tags is not None else self.ai_tags


class AddLinkRequest(CamelModel):
    """Body of ``POST /links`` and ``POST /links/add/stream``."""

    url: str = Field(..., min_length=1, max_length=2048)
    skip_confirm: bool = False
    category: str | None = Field(None, max_length=100)
    tags: list[str] | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tag_string(cls, value: Any) -> Any:
        """Accept the extension's comma-separated form as well as a list."""
        if isinstance(value, str):
            return parse_tags(value)
        return value


class AddLinkResponse(CamelModel):
    """Final record view returned after ingestion."""

    id: str
    url: str
    title: str
    description: str
    category: str
    tags: list[str]
    status: LinkStatus
    reading_time: int | None = None
    scraping_failed: bool = False
    ai_analysis_failed: bool = False
    confirm_url: str | None = None

    @classmethod
    def from_link(cls, link: Link, confirm_url: str | None = None) -> "AddLinkResponse":
        return cls(
            id=link.id,
            url=link.url,
            title=link.title,
            description=link.final_description,
            category=link.final_category,
            tags=link.final_tags,
            status=link.status,
            reading_time=link.ai_reading_time,
            scraping_failed=link.scraping_failed,
            ai_analysis_failed=link.ai_analysis_failed,
            confirm_url=confirm_url if link.status == LinkStatus.PENDING else None,
        )


class PendingLinkResponse(CamelModel):
    """AI-derived fields of a pending link, for human review."""

    id: str
    url: str
    domain: str
    title: str
    original_description: str
    ai_summary: str
    ai_category: str
    ai_tags: list[str]
    ai_reading_time: int | None = None
    user_description: str | None = None
    user_category: str | None = None
    user_tags: list[str] | None = None
    scraping_failed: bool = False
    ai_analysis_failed: bool = False
    created_at: datetime

    @classmethod
    def from_link(cls, link: Link) -> "PendingLinkResponse":
        return cls(**link.model_dump(include=set(cls.model_fields)))


class ConfirmLinkRequest(CamelModel):
    """User edits submitted when confirming a pending link."""

    title: str | None = Field(None, max_length=200)
    description: str = Field(..., min_length=1, max_length=1000)
    category: str | None = Field(None, min_length=1, max_length=100)
    tags: list[str] | None = None
    reading_time: int | None = Field(None, ge=1, le=600)
    publish: bool = True

    @field_validator("tags")
    @classmethod
    def _limit_tag_length(cls, value: list[str] | None) -> list[str] | None:
        if value is not None and any(len(tag) > 50 for tag in value):
            raise ValueError("Tags must be at most 50 characters")
        return value


class ConfirmLinkResponse(CamelModel):
    id: str
    status: LinkStatus
    published_at: datetime | None = None


class ProgressEvent(CamelModel):
    """One step notification emitted during ingestion."""

    stage: Literal["fetching", "analyzing", "completed", "error"]
    message: str
    data: dict[str, Any] | None = None
    error: str | None = None
