"""Confirmation of pending links: review AI output, apply edits, publish."""

import logging
from datetime import datetime, timezone

from magpie.models.link import ConfirmLinkRequest, Link, LinkStatus
from magpie.services.link_storage import LinkStore
from magpie.services.tags import clean_tags

logger = logging.getLogger(__name__)


class LinkNotFoundError(Exception):
    """No pending link with the requested id."""

    pass


class InvalidCategoryError(Exception):
    """Submitted category is not in the active category set."""

    pass


async def load_pending(store: LinkStore, link_id: str) -> Link:
    """Fetch a link that is still awaiting confirmation.

    Raises:
        LinkNotFoundError: If the link is missing or no longer pending.
    """
    link = await store.get(link_id)
    if link is None or link.status != LinkStatus.PENDING:
        raise LinkNotFoundError(f"Pending link not found: {link_id}")
    return link


def apply_edits(
    link: Link,
    edits: ConfirmLinkRequest,
    categories: list[str],
    now: datetime | None = None,
) -> Link:
    """Return a copy of ``link`` with the user's edits in the user fields."""
    if edits.category is not None and edits.category not in categories:
        raise InvalidCategoryError(f"Unknown category: {edits.category}")

    now = now or datetime.now(timezone.utc)
    updates = {
        "user_description": edits.description.strip(),
        "user_category": edits.category or link.final_category,
        "user_tags": clean_tags(edits.tags) if edits.tags is not None else list(link.final_tags),
        "updated_at": now,
    }
    if edits.title and edits.title.strip():
        updates["title"] = edits.title.strip()
    if edits.reading_time is not None:
        updates["ai_reading_time"] = edits.reading_time
    if edits.publish:
        updates["status"] = LinkStatus.PUBLISHED
        updates["published_at"] = now
    return link.model_copy(update=updates)


async def confirm_link(
    store: LinkStore,
    link_id: str,
    edits: ConfirmLinkRequest,
    categories: list[str],
) -> Link:
    """Apply user edits to a pending link and publish it if requested.

    Raises:
        LinkNotFoundError: If no pending link has this id.
        InvalidCategoryError: If ``edits.category`` is not an active category.
        StoreError: If the updated record could not be saved.
    """
    link = await load_pending(store, link_id)
    updated = apply_edits(link, edits, categories)
    await store.save(updated)
    logger.info("Confirmed link %s (%s)", link_id, updated.status.value)
    return updated
