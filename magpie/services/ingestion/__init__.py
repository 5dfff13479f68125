"""Ingestion services for extracting, analyzing, and storing submitted links."""

from magpie.services.ingestion.analyzer import (
    AnalysisOutcome,
    ContentAnalyzer,
    ResponseParseError,
)
from magpie.services.ingestion.confirmation import (
    InvalidCategoryError,
    LinkNotFoundError,
    confirm_link,
    load_pending,
)
from magpie.services.ingestion.extractor import (
    ContentExtractor,
    ExtractionError,
    FetchError,
    ParseError,
)
from magpie.services.ingestion.orchestrator import (
    IngestionOrchestrator,
    InvalidURLError,
    create_orchestrator,
)
from magpie.services.ingestion.progress import ProgressChannel

__all__ = [
    "AnalysisOutcome",
    "ContentAnalyzer",
    "ContentExtractor",
    "ExtractionError",
    "FetchError",
    "IngestionOrchestrator",
    "InvalidCategoryError",
    "InvalidURLError",
    "LinkNotFoundError",
    "ParseError",
    "ProgressChannel",
    "ResponseParseError",
    "confirm_link",
    "create_orchestrator",
    "load_pending",
]
