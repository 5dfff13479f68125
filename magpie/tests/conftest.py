"""Shared fixtures for magpie tests."""

import pytest

from magpie.models.content import ContentType, ScrapedContent


@pytest.fixture(autouse=True)
def _reset_global_state():
    """Reset all module-level singletons and caches between tests."""
    yield

    # 1. Settings LRU cache
    from magpie.config import get_settings

    get_settings.cache_clear()

    # 2. Link store singleton
    import magpie.services.link_storage as storage_mod

    storage_mod._store = None

    # 3. HTTP client singleton
    import magpie.services.http_client as http_mod

    http_mod._client = None

    # 4. Health check cache
    import magpie.main as main_mod

    main_mod._health_cache = None


@pytest.fixture
def mock_settings(monkeypatch):
    """Provide a Settings object with safe test defaults."""
    from magpie.config import Settings, get_settings

    test_settings = Settings(
        public_base_url="https://magpie.test",
        api_token="",
        openai_api_key="",
        link_store="memory",
        azure_storage_account="teststorage",
        azure_storage_container="test-links",
        managed_identity_client_id="test-client-id",
    )

    get_settings.cache_clear()
    monkeypatch.setattr("magpie.config.get_settings", lambda: test_settings)

    # Patch get_settings in all modules that import it directly
    # (from magpie.config import get_settings creates a local binding that
    # the magpie.config monkeypatch above does not affect)
    for mod_path in [
        "magpie.services.llm",
        "magpie.services.link_storage",
        "magpie.services.ingestion.orchestrator",
        "magpie.routers.links",
        "magpie.main",
    ]:
        monkeypatch.setattr(f"{mod_path}.get_settings", lambda: test_settings)

    return test_settings


@pytest.fixture
def article_content():
    """Scraped content for an ordinary article with no category keywords."""
    return ScrapedContent(
        url="https://example.com/notes/morning-walks",
        content_type=ContentType.ARTICLE,
        title="Morning walks by the river",
        description="Notes on morning walks along the river bank",
        content="We walked along the river every morning. " * 40,
        domain="example.com",
        word_count=280,
    )


class FakeGenerator:
    """TextGenerator returning a canned response or raising an error."""

    def __init__(self, response: str = "", error: Exception | None = None):
        self.response = response
        self.error = error
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def fake_generator():
    return FakeGenerator
