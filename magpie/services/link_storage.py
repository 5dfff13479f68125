"""Link persistence in Azure Blob Storage or an in-process memory store.

Each link is one JSON blob named ``links/{id}.json``. The store only needs to
save and load single records; listing and search belong to the browsing API.
"""

import asyncio
import logging
import re
import uuid
from typing import Protocol

from azure.core.exceptions import HttpResponseError, ResourceNotFoundError
from azure.identity import DefaultAzureCredential, ManagedIdentityCredential
from azure.storage.blob import ContainerClient, ContentSettings

from magpie.config import get_settings
from magpie.models.link import Link

logger = logging.getLogger(__name__)

_SAFE_PATH_SEGMENT_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._-]*$")

LINK_PREFIX = "links/"


class StoreError(Exception):
    """The link store failed to read or write a record."""

    pass


def validate_blob_path_segment(segment: str) -> str:
    """Validate a user-supplied blob path segment.

    Rejects inputs containing path traversal sequences (..), slashes,
    backslashes, or other unsafe characters. Returns the segment unchanged
    if valid; raises ValueError otherwise.
    """
    if not segment or ".." in segment or not _SAFE_PATH_SEGMENT_RE.match(segment):
        raise ValueError(f"Invalid blob path segment: {segment!r}")
    return segment


def new_link_id() -> str:
    return uuid.uuid4().hex[:16]


class LinkStore(Protocol):
    async def save(self, link: Link) -> Link: ...

    async def get(self, link_id: str) -> Link | None: ...

    def check_connectivity(self) -> bool: ...


class InMemoryLinkStore:
    """Process-local store for development and tests."""

    def __init__(self) -> None:
        self._links: dict[str, Link] = {}
        self._lock = asyncio.Lock()

    async def save(self, link: Link) -> Link:
        async with self._lock:
            self._links[link.id] = link.model_copy(deep=True)
        return link

    async def get(self, link_id: str) -> Link | None:
        link = self._links.get(link_id)
        return link.model_copy(deep=True) if link else None

    def check_connectivity(self) -> bool:
        return True


class BlobLinkStore:
    """Store links as JSON blobs in an Azure Storage container."""

    def __init__(self, container_client: ContainerClient) -> None:
        self._client = container_client

    @staticmethod
    def _blob_name(link_id: str) -> str:
        return f"{LINK_PREFIX}{validate_blob_path_segment(link_id)}.json"

    async def save(self, link: Link) -> Link:
        try:
            blob = self._client.get_blob_client(self._blob_name(link.id))
            blob.upload_blob(
                link.model_dump_json(by_alias=True, indent=2),
                overwrite=True,
                content_settings=ContentSettings(content_type="application/json"),
            )
        except HttpResponseError as e:
            logger.warning("Azure API error writing link %s: %s", link.id, e.message)
            raise StoreError(f"Failed to write link {link.id}: {e.message}") from e
        except Exception as e:
            logger.error("Unexpected error writing link %s: %s", link.id, e)
            raise StoreError(f"Failed to write link {link.id}: {e}") from e
        return link

    async def get(self, link_id: str) -> Link | None:
        try:
            blob = self._client.get_blob_client(self._blob_name(link_id))
        except ValueError:
            return None
        try:
            data = blob.download_blob().readall()
            return Link.model_validate_json(data)
        except ResourceNotFoundError:
            return None
        except HttpResponseError as e:
            logger.warning("Azure API error reading link %s: %s", link_id, e.message)
            raise StoreError(f"Failed to read link {link_id}: {e.message}") from e

    def check_connectivity(self) -> bool:
        """Lightweight storage connectivity check (lists 1 blob)."""
        try:
            next(self._client.list_blobs(name_starts_with=LINK_PREFIX, results_per_page=1).__iter__())
            return True
        except StopIteration:
            # Empty container still means connected
            return True
        except Exception:
            return False


def create_container_client() -> ContainerClient:
    """Create a ContainerClient for the configured links container."""
    settings = get_settings()
    account_url = f"https://{settings.azure_storage_account}.blob.core.windows.net"
    if settings.managed_identity_client_id:
        credential = ManagedIdentityCredential(client_id=settings.managed_identity_client_id)
    else:
        credential = DefaultAzureCredential()
    return ContainerClient(
        account_url=account_url,
        container_name=settings.azure_storage_container,
        credential=credential,
    )


# Lazy singleton, lives for the process lifetime
_store: LinkStore | None = None


def get_link_store() -> LinkStore:
    """Return the configured link store (lazy singleton)."""
    global _store
    if _store is None:
        settings = get_settings()
        if settings.link_store == "blob":
            _store = BlobLinkStore(create_container_client())
        else:
            _store = InMemoryLinkStore()
        logger.info("Using %s link store", type(_store).__name__)
    return _store
