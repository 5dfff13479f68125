"""Tests for the add_link command-line script."""

import pytest

from magpie.services.ingestion.analyzer import ContentAnalyzer
from magpie.services.ingestion.orchestrator import IngestionOrchestrator
from magpie.services.link_storage import InMemoryLinkStore


class FakeExtractor:
    def __init__(self, content):
        self.content = content

    async def extract(self, url):
        return self.content


@pytest.mark.asyncio
async def test_invalid_url_exits_nonzero(mock_settings, capsys):
    from scripts.add_link import main

    assert await main(["notaurl"]) == 1
    assert "[error] Invalid URL" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_prints_events_and_final_record(mock_settings, mocker, capsys, article_content):
    from scripts.add_link import main

    store = InMemoryLinkStore()
    orchestrator = IngestionOrchestrator(
        FakeExtractor(article_content), ContentAnalyzer(None), store, mock_settings
    )
    mocker.patch("scripts.add_link.create_orchestrator", return_value=orchestrator)

    code = await main([article_content.url, "--skip-confirm", "--tags", "walks, rivers"])

    out = capsys.readouterr().out
    assert code == 0
    assert "[fetching] Fetching page content..." in out
    assert "[completed] Link published" in out
    assert "tags: ['walks', 'rivers']" in out
