"""
Unit tests for transcore/translation/registry.py: parsing, retry and caching.
"""

import asyncio

import httpx
import pytest

from transcore.translation.exceptions import RegistryUnavailableError
from transcore.translation.registry import Registry, RegistryClient, parse_registry

REGISTRY_URL = "https://registry.example.com/registry.json"


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_client(handler, sleep=None, **kwargs):
    return RegistryClient(
        url=REGISTRY_URL,
        base_url="https://fallback.example.com",
        max_attempts=kwargs.pop("max_attempts", 3),
        backoff=kwargs.pop("backoff", 1.0),
        timeout=5,
        transport=httpx.MockTransport(handler),
        sleep=sleep or RecordingSleep(),
    )


# ---------------------------------------------------------------------------
# parse_registry
# ---------------------------------------------------------------------------

class TestParseRegistry:
    def test_pairs_and_base_url(self, registry_document):
        registry = parse_registry(registry_document)

        assert registry.pairs == {"ja": ["en"], "en": ["de", "ja"], "de": ["en"]}
        assert registry.base_url == "https://models.example.com"
        assert len(registry) == 4
        assert registry.has_pair("ja", "en")
        assert not registry.has_pair("ja", "de")
        assert len(registry.descriptors("ja", "en")) == 2

    def test_missing_models(self):
        with pytest.raises(RegistryUnavailableError, match='missing "models"'):
            parse_registry({"baseUrl": "https://x"})

    def test_not_an_object(self):
        with pytest.raises(RegistryUnavailableError):
            parse_registry(["ja-en"])

    def test_malformed_keys_and_empty_entries_skipped(self):
        registry = parse_registry({
            "models": {
                "ja-en": [{"files": {}}],
                "jaen": [{"files": {}}],
                "ja-en-x": [{"files": {}}],
                "-en": [{"files": {}}],
                "de-fr": [],
            }
        }, default_base_url="https://fallback.example.com/")

        assert registry.pairs == {"ja": ["en"]}
        assert registry.base_url == "https://fallback.example.com"

    def test_empty_models(self):
        registry = parse_registry({"models": {}})
        assert registry.is_empty
        assert registry.targets("ja") == []


# ---------------------------------------------------------------------------
# RegistryClient
# ---------------------------------------------------------------------------

class TestRegistryClient:
    @pytest.mark.asyncio
    async def test_fetch_and_cache(self, registry_document):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=registry_document)

        client = make_client(handler)
        first = await client.fetch_registry()
        second = await client.fetch_registry()

        assert first is second
        assert first.has_pair("en", "de")
        assert client.is_cached
        assert len(requests) == 1
        assert requests[0].headers["accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_retry_with_linear_backoff(self, registry_document):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=registry_document)

        sleep = RecordingSleep()
        client = make_client(handler, sleep=sleep)
        registry = await client.fetch_registry()

        assert len(attempts) == 3
        assert sleep.delays == [1.0, 2.0]
        assert registry.fetch_failed is False
        assert registry.has_pair("ja", "en")

    @pytest.mark.asyncio
    async def test_all_attempts_fail(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        sleep = RecordingSleep()
        client = make_client(handler, sleep=sleep)
        registry = await client.fetch_registry()

        assert isinstance(registry, Registry)
        assert registry.is_empty
        assert registry.fetch_failed is True
        assert "connection refused" in registry.error
        assert len(attempts) == 3
        assert sleep.delays == [1.0, 2.0]
        assert not client.is_cached

    @pytest.mark.asyncio
    async def test_invalid_json_is_retried(self, registry_document):
        responses = [
            httpx.Response(200, content=b"<html>not json</html>"),
            httpx.Response(200, json={"nope": True}),
            httpx.Response(200, json=registry_document),
        ]

        client = make_client(lambda request: responses.pop(0))
        registry = await client.fetch_registry()

        assert not responses
        assert registry.has_pair("de", "en")

    @pytest.mark.asyncio
    async def test_empty_registry_not_cached(self, registry_document):
        responses = [
            httpx.Response(200, json={"models": {}}),
            httpx.Response(200, json=registry_document),
        ]

        client = make_client(lambda request: responses.pop(0))

        empty = await client.fetch_registry()
        assert empty.is_empty
        assert empty.fetch_failed is False
        assert not client.is_cached

        full = await client.fetch_registry()
        assert full.has_pair("ja", "en")
        assert client.is_cached

    @pytest.mark.asyncio
    async def test_clear_cache_refetches(self, registry_document):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=registry_document)

        client = make_client(handler)
        await client.fetch_registry()

        client.clear_cache()
        client.clear_cache()
        assert not client.is_cached

        await client.fetch_registry()
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_clear_cache_without_fetch(self):
        client = make_client(lambda request: httpx.Response(500))
        client.clear_cache()
        assert not client.is_cached

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fetch(self, registry_document):
        calls = []
        release = asyncio.Event()

        class SlowTransport(httpx.AsyncBaseTransport):
            async def handle_async_request(self, request):
                calls.append(request)
                await release.wait()
                return httpx.Response(200, json=registry_document)

        client = RegistryClient(
            url=REGISTRY_URL,
            max_attempts=1,
            transport=SlowTransport(),
            sleep=RecordingSleep(),
        )

        tasks = [asyncio.ensure_future(client.fetch_registry()) for _ in range(5)]
        for _ in range(10):
            await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks)

        assert len(calls) == 1
        assert all(result is results[0] for result in results)

    @pytest.mark.asyncio
    async def test_clear_during_fetch_discards_stale_result(self, registry_document):
        release = asyncio.Event()

        class SlowTransport(httpx.AsyncBaseTransport):
            async def handle_async_request(self, request):
                await release.wait()
                return httpx.Response(200, json=registry_document)

        client = RegistryClient(
            url=REGISTRY_URL,
            max_attempts=1,
            transport=SlowTransport(),
            sleep=RecordingSleep(),
        )

        task = asyncio.ensure_future(client.fetch_registry())
        await asyncio.sleep(0)
        client.clear_cache()
        release.set()
        registry = await task

        assert registry.has_pair("ja", "en")
        assert not client.is_cached
