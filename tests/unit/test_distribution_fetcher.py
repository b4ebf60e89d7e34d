"""
Unit tests for the online version index and distribution downloads.

HTTP is served by httpx.MockTransport; nothing leaves the process.

Tests cover:
- Version index parsing and filtering
- Download, checksum verification and extraction
- Not-found and transport failures
- Reuse of already extracted distributions
"""

import hashlib

import httpx
import pytest

from dbaas.dbms_env.config import RegistryConfig
from dbaas.dbms_env.constants import DISTRIBUTION_ARCHIVE_EXTENSION, DISTRIBUTION_PLATFORM
from dbaas.dbms_env.distributions.cache import DistributionOrigin, read_distribution_info
from dbaas.dbms_env.distributions.fetcher import DistributionFetcher
from dbaas.dbms_env.errors import IntegrityError, NotFoundError, TransportError

INDEX_URL = "https://dist.example.com/versions.json"


def dist_url(version, edition="enterprise"):
    return f"https://dist.example.com/neo4j-{edition}-{version}-{DISTRIBUTION_PLATFORM}{DISTRIBUTION_ARCHIVE_EXTENSION}"


def index_entry(version, edition="enterprise", sha256=None):
    entry = {"version": version, "edition": edition, "dist": {DISTRIBUTION_PLATFORM: dist_url(version, edition)}}
    if sha256 is not None:
        entry["sha256"] = {DISTRIBUTION_PLATFORM: sha256}
    return entry


class FakeOrigin:
    """Serves a version index and archives; records every request."""

    def __init__(self, index, archives=None):
        self.index = index
        self.archives = archives or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url == INDEX_URL:
            return httpx.Response(200, json=self.index)
        if url in self.archives:
            return httpx.Response(200, content=self.archives[url])
        return httpx.Response(404)


def make_fetcher(origin):
    client = httpx.AsyncClient(transport=httpx.MockTransport(origin))
    return DistributionFetcher(RegistryConfig(versions_url=INDEX_URL), client=client)


class TestFetchVersions:
    """Tests for DistributionFetcher.fetch_versions()."""

    @pytest.mark.asyncio
    async def test_filters_edition_platform_and_invalid_versions(self):
        origin = FakeOrigin(
            {
                "versions": [
                    index_entry("4.0.4"),
                    index_entry("4.1.0", edition="community"),
                    index_entry("4.2"),
                    {"version": "4.3.0", "edition": "enterprise", "dist": {"other-os": "https://x"}},
                    "garbage",
                ]
            }
        )
        fetcher = make_fetcher(origin)

        records = await fetcher.fetch_versions()

        assert [r.version for r in records] == ["4.0.4"]
        assert records[0].origin == DistributionOrigin.ONLINE
        assert records[0].url == dist_url("4.0.4")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def fail(request):
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = DistributionFetcher(
            RegistryConfig(versions_url=INDEX_URL),
            client=httpx.AsyncClient(transport=httpx.MockTransport(fail)),
        )

        with pytest.raises(TransportError) as exc_info:
            await fetcher.fetch_versions()

        assert exc_info.value.url == INDEX_URL

    @pytest.mark.asyncio
    async def test_server_error(self):
        fetcher = DistributionFetcher(
            RegistryConfig(versions_url=INDEX_URL),
            client=httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503))),
        )

        with pytest.raises(TransportError):
            await fetcher.fetch_versions()

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        fetcher = DistributionFetcher(
            RegistryConfig(versions_url=INDEX_URL),
            client=httpx.AsyncClient(
                transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"<html>"))
            ),
        )

        with pytest.raises(TransportError):
            await fetcher.fetch_versions()


class TestDownload:
    """Tests for DistributionFetcher.download()."""

    @pytest.mark.asyncio
    async def test_download_and_extract(self, tmp_path, make_archive_bytes):
        data = make_archive_bytes(version="4.0.4")
        digest = hashlib.sha256(data).hexdigest()
        origin = FakeOrigin({"versions": [index_entry("4.0.4", sha256=digest)]}, {dist_url("4.0.4"): data})
        fetcher = make_fetcher(origin)
        cache_root = tmp_path / "cache"

        path = await fetcher.download("4.0.4", cache_root)

        assert path == cache_root / "neo4j-enterprise-4.0.4"
        assert read_distribution_info(path).version == "4.0.4"
        assert (cache_root / fetcher.archive_name("4.0.4")).is_file()
        assert not list(cache_root.glob("*.part"))
        assert not list(cache_root.glob(".extract-*"))

    @pytest.mark.asyncio
    async def test_download_without_published_checksum(self, tmp_path, make_archive_bytes):
        data = make_archive_bytes(version="4.0.4")
        origin = FakeOrigin({"versions": [index_entry("4.0.4")]}, {dist_url("4.0.4"): data})

        path = await make_fetcher(origin).download("4.0.4", tmp_path)

        assert read_distribution_info(path).version == "4.0.4"

    @pytest.mark.asyncio
    async def test_checksum_mismatch_removes_archive(self, tmp_path, make_archive_bytes):
        data = make_archive_bytes(version="4.0.4")
        origin = FakeOrigin({"versions": [index_entry("4.0.4", sha256="0" * 64)]}, {dist_url("4.0.4"): data})
        fetcher = make_fetcher(origin)

        with pytest.raises(IntegrityError) as exc_info:
            await fetcher.download("4.0.4", tmp_path)

        assert exc_info.value.expected == "0" * 64
        assert exc_info.value.actual == hashlib.sha256(data).hexdigest()
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_version_not_in_index(self, tmp_path):
        fetcher = make_fetcher(FakeOrigin({"versions": [index_entry("4.1.0")]}))

        with pytest.raises(NotFoundError, match="Unable to find the requested version: 4.0.4 online"):
            await fetcher.download("4.0.4", tmp_path)

    @pytest.mark.asyncio
    async def test_archive_missing_at_origin(self, tmp_path):
        fetcher = make_fetcher(FakeOrigin({"versions": [index_entry("4.0.4")]}))

        with pytest.raises(NotFoundError):
            await fetcher.download("4.0.4", tmp_path)

        assert not list(tmp_path.glob("*.part"))

    @pytest.mark.asyncio
    async def test_reuses_extracted_distribution(self, tmp_path, make_distribution):
        make_distribution(version="4.0.4", root=tmp_path / "neo4j-enterprise-4.0.4")
        origin = FakeOrigin({"versions": []})

        path = await make_fetcher(origin).download("4.0.4", tmp_path)

        assert path == tmp_path / "neo4j-enterprise-4.0.4"
        assert origin.requests == []

    @pytest.mark.asyncio
    async def test_archive_without_top_level_directory(self, tmp_path, make_archive_bytes):
        data = make_archive_bytes(version="4.0.4", top_level=".")
        origin = FakeOrigin({"versions": [index_entry("4.0.4")]}, {dist_url("4.0.4"): data})

        path = await make_fetcher(origin).download("4.0.4", tmp_path)

        assert path == tmp_path / "neo4j-enterprise-4.0.4"
        assert read_distribution_info(path).version == "4.0.4"

    @pytest.mark.asyncio
    async def test_close_keeps_injected_client(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(FakeOrigin({"versions": []})))
        fetcher = DistributionFetcher(RegistryConfig(versions_url=INDEX_URL), client=client)

        await fetcher.close()

        assert not client.is_closed
        await client.aclose()
