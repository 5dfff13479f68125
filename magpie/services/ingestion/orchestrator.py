"""Link ingestion orchestrator: extract, analyze, assemble, store.

One call to ``ingest`` runs one submission through
``fetching -> analyzing -> completed``. Extraction and analysis failures
degrade (``scraping_failed`` / ``ai_analysis_failed`` on the record) instead
of aborting; only an invalid URL or a store failure ends in ``error``.
"""

import logging
from datetime import datetime, timezone

from magpie.config import Settings, get_settings
from magpie.models.content import ScrapedContent
from magpie.models.link import (
    AddLinkRequest,
    AddLinkResponse,
    Link,
    LinkStatus,
    ProgressEvent,
)
from magpie.services.ingestion.analyzer import AnalysisOutcome, ContentAnalyzer
from magpie.services.ingestion.extractor import (
    FETCH_FAILED_DESCRIPTION,
    ContentExtractor,
    ExtractionError,
)
from magpie.services.ingestion.progress import ProgressChannel
from magpie.services.ingestion.urls import (
    classify_content_type,
    extract_domain,
    is_valid_url,
    title_from_url,
)
from magpie.services.link_storage import LinkStore, StoreError, new_link_id
from magpie.services.llm import create_text_generator
from magpie.services.tags import clean_tags

logger = logging.getLogger(__name__)


class InvalidURLError(Exception):
    """Submitted URL is not an absolute http(s) URL."""

    pass


def synthesize_content(url: str) -> ScrapedContent:
    """Minimal content for a URL whose page could not be fetched or parsed."""
    return ScrapedContent(
        url=url,
        content_type=classify_content_type(url),
        title=title_from_url(url),
        description=FETCH_FAILED_DESCRIPTION,
        content="",
        domain=extract_domain(url),
        word_count=0,
    )


def build_link(
    request: AddLinkRequest,
    content: ScrapedContent,
    outcome: AnalysisOutcome,
    scraping_failed: bool,
    now: datetime | None = None,
) -> Link:
    """Assemble the record to persist from the two stage results."""
    now = now or datetime.now(timezone.utc)
    analysis = outcome.result
    user_tags = clean_tags(request.tags) if request.tags else None

    if request.skip_confirm:
        status = LinkStatus.PUBLISHED
        user_description = analysis.summary
        user_category = request.category or analysis.category
        user_tags = user_tags or list(analysis.tags)
    else:
        status = LinkStatus.PENDING
        user_description = None
        user_category = request.category or None

    return Link(
        id=new_link_id(),
        url=request.url,
        domain=content.domain or extract_domain(request.url),
        title=content.title or title_from_url(request.url),
        content_type=content.content_type,
        original_description=content.description,
        original_content=content.content,
        word_count=content.word_count,
        ai_summary=analysis.summary,
        ai_category=analysis.category,
        ai_tags=list(analysis.tags),
        ai_reading_time=analysis.reading_time,
        ai_language=analysis.language,
        ai_sentiment=analysis.sentiment,
        ai_analysis_failed=outcome.failed,
        ai_error=outcome.error,
        scraping_failed=scraping_failed,
        user_description=user_description,
        user_category=user_category,
        user_tags=user_tags,
        status=status,
        created_at=now,
        updated_at=now,
        published_at=now if status == LinkStatus.PUBLISHED else None,
    )


class IngestionOrchestrator:
    """Run single-URL submissions through the ingestion pipeline."""

    def __init__(
        self,
        extractor: ContentExtractor,
        analyzer: ContentAnalyzer,
        store: LinkStore,
        settings: Settings | None = None,
    ) -> None:
        self.extractor = extractor
        self.analyzer = analyzer
        self.store = store
        self.settings = settings or get_settings()

    def confirm_url(self, link_id: str) -> str:
        return f"{self.settings.public_base_url.rstrip('/')}/confirm/{link_id}"

    async def ingest(
        self, request: AddLinkRequest, progress: ProgressChannel | None = None
    ) -> Link:
        """Ingest one URL, reporting each stage to ``progress``.

        The progress channel is closed when this returns or raises.

        Raises:
            InvalidURLError: If the URL is not an absolute http(s) URL.
            StoreError: If the record could not be persisted.
        """

        def emit(stage: str, message: str, data: dict | None = None, error: str | None = None):
            if progress is not None:
                progress.emit(ProgressEvent(stage=stage, message=message, data=data, error=error))

        try:
            if not is_valid_url(request.url):
                raise InvalidURLError(f"Invalid URL: {request.url!r}")

            emit("fetching", "Fetching page content...")
            content, scraping_failed = await self._extract(request.url)
            if scraping_failed:
                emit(
                    "fetching",
                    "Page could not be fetched; continuing with URL details",
                    data={"title": content.title, "scrapingFailed": True},
                )
            else:
                emit(
                    "fetching",
                    "Page content fetched",
                    data={"title": content.title, "wordCount": content.word_count},
                )

            emit("analyzing", "Analyzing content...")
            outcome = await self.analyzer.analyze_with_outcome(
                content,
                self.settings.categories,
                instructions=self.settings.ai_user_instructions,
                fallback_category=self.settings.fallback_category,
            )
            emit(
                "analyzing",
                "Basic analysis used" if outcome.failed else "AI analysis complete",
                data={
                    "summary": outcome.result.summary,
                    "category": outcome.result.category,
                    "tags": outcome.result.tags,
                    "aiAnalysisFailed": outcome.failed,
                },
            )

            link = build_link(request, content, outcome, scraping_failed)
            try:
                await self.store.save(link)
            except StoreError:
                raise
            except Exception as e:
                raise StoreError(f"Failed to save link: {e}") from e

            logger.info(
                "Ingested %s as %s (%s, scraping_failed=%s, ai_failed=%s)",
                request.url[:80],
                link.id,
                link.status.value,
                link.scraping_failed,
                link.ai_analysis_failed,
            )
            response = AddLinkResponse.from_link(link, confirm_url=self.confirm_url(link.id))
            emit(
                "completed",
                "Link published" if link.status == LinkStatus.PUBLISHED else "Link saved; awaiting confirmation",
                data=response.model_dump(mode="json", by_alias=True, exclude_none=True),
            )
            return link

        except InvalidURLError as e:
            logger.warning("Rejected submission: %s", e)
            emit("error", "Invalid URL", error=str(e))
            raise
        except StoreError as e:
            logger.exception("Store write failed for %s", request.url[:80])
            emit("error", "Failed to save link", error=str(e))
            raise
        except Exception as e:
            logger.exception("Ingestion failed for %s", request.url[:80])
            emit("error", "Ingestion failed", error=str(e))
            raise
        finally:
            if progress is not None:
                progress.close()

    async def _extract(self, url: str) -> tuple[ScrapedContent, bool]:
        try:
            return await self.extractor.extract(url), False
        except ExtractionError as e:
            logger.warning("Extraction failed for %s: %s", url[:80], e)
            return synthesize_content(url), True


def create_orchestrator(store: LinkStore, settings: Settings | None = None) -> IngestionOrchestrator:
    """Build an orchestrator wired to the configured extractor and model."""
    settings = settings or get_settings()
    extractor = ContentExtractor(
        max_content_length=settings.max_content_length,
        timeout=settings.scrape_timeout,
    )
    analyzer = ContentAnalyzer(
        generator=create_text_generator(settings),
        prompt_template=settings.ai_prompt_template or None,
        content_length=settings.prompt_content_length,
    )
    return IngestionOrchestrator(extractor, analyzer, store, settings)
