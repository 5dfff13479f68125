"""Link submission and confirmation endpoints."""

import asyncio
import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import StreamingResponse

from magpie.config import get_settings
from magpie.models.link import (
    AddLinkRequest,
    AddLinkResponse,
    ConfirmLinkRequest,
    ConfirmLinkResponse,
    PendingLinkResponse,
)
from magpie.services.ingestion.confirmation import (
    InvalidCategoryError,
    LinkNotFoundError,
    confirm_link,
    load_pending,
)
from magpie.services.ingestion.orchestrator import (
    IngestionOrchestrator,
    InvalidURLError,
    create_orchestrator,
)
from magpie.services.ingestion.progress import ProgressChannel
from magpie.services.link_storage import LinkStore, StoreError, get_link_store

logger = logging.getLogger(__name__)

# Streamed ingestions outlive their request; hold references until done
_background_tasks: set[asyncio.Task] = set()


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


async def require_api_token(authorization: str | None = Header(default=None)) -> None:
    """Check ``Authorization: Bearer <token>`` when an API token is configured."""
    token = get_settings().api_token
    if not token:
        return
    if authorization != f"Bearer {token}":
        raise _error(401, "UNAUTHORIZED", "Missing or invalid API token")


def get_store() -> LinkStore:
    return get_link_store()


def get_orchestrator(store: LinkStore = Depends(get_store)) -> IngestionOrchestrator:
    return create_orchestrator(store)


router = APIRouter(
    prefix="/links",
    tags=["links"],
    dependencies=[Depends(require_api_token)],
)


@router.post("", response_model=AddLinkResponse, status_code=201)
async def add_link(
    body: AddLinkRequest,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """Ingest a link and return the stored record in one response."""
    try:
        link = await orchestrator.ingest(body)
    except InvalidURLError as e:
        raise _error(400, "INVALID_URL", str(e))
    except StoreError as e:
        raise _error(500, "STORE_ERROR", str(e))
    return AddLinkResponse.from_link(link, confirm_url=orchestrator.confirm_url(link.id))


async def _run_ingestion(
    orchestrator: IngestionOrchestrator, body: AddLinkRequest, channel: ProgressChannel
) -> None:
    try:
        await orchestrator.ingest(body, progress=channel)
    except (InvalidURLError, StoreError):
        # Already reported on the channel and logged
        pass
    except Exception:
        logger.exception("Streamed ingestion crashed for %s", body.url[:80])


@router.post("/add/stream")
async def add_link_stream(
    body: AddLinkRequest,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """Ingest a link, streaming progress events as Server-Sent Events."""
    channel = ProgressChannel()
    task = asyncio.create_task(_run_ingestion(orchestrator, body, channel))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    async def event_stream():
        try:
            async for event in channel:
                payload = event.model_dump_json(by_alias=True, exclude_none=True)
                yield f"data: {payload}\n\n"
        finally:
            # Client may have gone away; ingestion keeps running
            channel.detach()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{link_id}/pending", response_model=PendingLinkResponse)
async def get_pending_link(link_id: str, store: LinkStore = Depends(get_store)):
    """Get a pending link's AI-derived fields for review."""
    try:
        link = await load_pending(store, link_id)
    except LinkNotFoundError as e:
        raise _error(404, "NOT_FOUND", str(e))
    except StoreError as e:
        raise _error(500, "STORE_ERROR", str(e))
    return PendingLinkResponse.from_link(link)


@router.post("/{link_id}/confirm", response_model=ConfirmLinkResponse)
async def confirm_pending_link(
    link_id: str,
    edits: ConfirmLinkRequest,
    store: LinkStore = Depends(get_store),
):
    """Apply user edits to a pending link and publish it."""
    try:
        link = await confirm_link(store, link_id, edits, get_settings().categories)
    except LinkNotFoundError as e:
        raise _error(404, "NOT_FOUND", str(e))
    except InvalidCategoryError as e:
        raise _error(400, "INVALID_CATEGORY", str(e))
    except StoreError as e:
        raise _error(500, "STORE_ERROR", str(e))
    return ConfirmLinkResponse(id=link.id, status=link.status, published_at=link.published_at)
