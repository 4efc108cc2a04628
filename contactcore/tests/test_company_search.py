"""Tests for the debounced employer search."""

import asyncio

import pytest

from ..company_search import CompanySearch


@pytest.mark.asyncio
async def test_only_latest_text_is_queried(client, fake_dealcloud):
    search = CompanySearch(client, delay=0.05)

    first = search.schedule("Ac")
    await asyncio.sleep(0.01)
    search.schedule("Gamma")
    results = await search.results()

    assert [c.CompanyName for c in results] == ["Gamma Capital"]
    assert first.cancelled()
    assert len(fake_dealcloud.queries("company")) == 1
    assert fake_dealcloud.queries("company")[0]["limit"] == 10
    assert search.loading is False


@pytest.mark.asyncio
async def test_blank_text_clears_without_query(client, fake_dealcloud):
    search = CompanySearch(client, delay=0)
    search.schedule("Acme")
    assert [c.EntryId for c in await search.results()] == [101]

    assert search.schedule("   ") is None
    assert await search.results() == []
    assert len(fake_dealcloud.queries("company")) == 1


@pytest.mark.asyncio
async def test_failure_gives_empty_results(client, fake_dealcloud):
    fake_dealcloud.query_status = 500
    search = CompanySearch(client, delay=0)

    search.schedule("Acme")

    assert await search.results() == []
    assert search.loading is False


@pytest.mark.asyncio
async def test_results_without_search(client):
    assert await CompanySearch(client).results() == []
