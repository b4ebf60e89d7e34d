"""
Integration tests for LocalEnvironment.

Real filesystem, real fake-distribution processes; HTTP is served by
httpx.MockTransport.

Tests cover:
- Version specifier validation (empty, invalid, URL, out of range)
- Install from archive, directory, cache and online download
- Start / status / stop cycles
- Uninstall
- Access tokens through a local account
"""

import sys
import uuid
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from dbaas.dbms_env.accounts import AuthToken, create_account
from dbaas.dbms_env.config import RegistryConfig
from dbaas.dbms_env.constants import DISTRIBUTION_ARCHIVE_EXTENSION, DISTRIBUTION_PLATFORM
from dbaas.dbms_env.dbms import DbmsStatus
from dbaas.dbms_env.environments import LocalEnvironment
from dbaas.dbms_env.errors import InvalidArgumentError, NotFoundError, NotSupportedError

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="fake distributions use POSIX shell scripts")

INDEX_URL = "https://dist.example.com/versions.json"


def dist_url(version, edition="enterprise"):
    return f"https://dist.example.com/neo4j-{edition}-{version}-{DISTRIBUTION_PLATFORM}{DISTRIBUTION_ARCHIVE_EXTENSION}"


class FakeOrigin:
    """Distribution index and archives; records every request."""

    def __init__(self, archives=None):
        self.archives = archives or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url == INDEX_URL:
            versions = [
                {"version": version, "edition": "enterprise", "dist": {DISTRIBUTION_PLATFORM: dist_url(version)}}
                for version in self.archives
            ]
            return httpx.Response(200, json={"versions": versions})
        for version, data in self.archives.items():
            if url == dist_url(version):
                return httpx.Response(200, content=data)
        return httpx.Response(404)


def offline(request):
    raise httpx.ConnectError("network disabled in this test", request=request)


class TestLocalEnvironment:
    """Integration tests for LocalEnvironment."""

    @pytest.fixture
    def origin(self):
        return FakeOrigin()

    @pytest.fixture
    def env(self, env_config, origin, stop_leftovers):
        client = httpx.AsyncClient(transport=httpx.MockTransport(origin))
        return LocalEnvironment(env_config, RegistryConfig(versions_url=INDEX_URL), http_client=client)

    @pytest.fixture
    def offline_env(self, env_config, stop_leftovers):
        client = httpx.AsyncClient(transport=httpx.MockTransport(offline))
        return LocalEnvironment(env_config, RegistryConfig(versions_url=INDEX_URL), http_client=client)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("spec", ["", "   "])
    async def test_empty_version(self, env, spec):
        with pytest.raises(InvalidArgumentError, match="Version must be specified"):
            await env.install_dbms("movies", "pw", spec)

    @pytest.mark.asyncio
    async def test_invalid_version(self, env, tmp_path):
        with pytest.raises(InvalidArgumentError, match="not valid semver, url or path"):
            await env.install_dbms("movies", "pw", str(tmp_path / "nothing-here"))

    @pytest.mark.asyncio
    async def test_directory_that_is_not_a_distribution(self, env, tmp_path):
        (tmp_path / "empty").mkdir()

        with pytest.raises(InvalidArgumentError):
            await env.install_dbms("movies", "pw", str(tmp_path / "empty"))

    @pytest.mark.asyncio
    async def test_url_not_supported(self, env, origin):
        with pytest.raises(NotSupportedError):
            await env.install_dbms("movies", "pw", dist_url("4.0.4"))

        assert origin.requests == []

    @pytest.mark.asyncio
    async def test_version_out_of_range(self, env, origin):
        with pytest.raises(NotSupportedError):
            await env.install_dbms("movies", "pw", "3.5.0")

        assert origin.requests == []

    @pytest.mark.asyncio
    async def test_version_not_found_online(self, env):
        with pytest.raises(NotFoundError, match="Unable to find the requested version: 4.0.4 online"):
            await env.install_dbms("movies", "pw", "4.0.4")

    @pytest.mark.asyncio
    async def test_empty_name(self, env, make_archive):
        with pytest.raises(InvalidArgumentError):
            await env.install_dbms(" ", "pw", str(make_archive()))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "   "])
    async def test_empty_name_checked_before_resolving(self, env, origin, make_archive_bytes, name):
        origin.archives["4.0.4"] = make_archive_bytes(version="4.0.4")

        with pytest.raises(InvalidArgumentError, match="DBMS name must be specified"):
            await env.install_dbms(name, "pw", "4.0.4")

        assert origin.requests == []
        assert env.list_dbmss() == []

    @pytest.mark.asyncio
    async def test_same_archive_twice(self, env, make_archive):
        archive = str(make_archive(version="4.0.4"))

        first = await env.install_dbms("one", "pw", archive)
        second = await env.install_dbms("two", "pw", archive)

        assert first != second
        assert uuid.UUID(first).version == 4
        assert uuid.UUID(second).version == 4
        assert env.get_dbms(first).version == env.get_dbms(second).version == "4.0.4"

        results = await env.status_dbmss([first, second])
        assert [r.status for r in results] == [DbmsStatus.NOT_RUNNING, DbmsStatus.NOT_RUNNING]

    @pytest.mark.asyncio
    async def test_install_from_directory(self, env, make_distribution):
        source = make_distribution(version="4.1.0")

        dbms_id = await env.install_dbms("movies", "pw", str(source))

        assert env.get_dbms(dbms_id).version == "4.1.0"
        assert (source / "bin" / "neo4j").is_file()

    @pytest.mark.asyncio
    async def test_cached_version_needs_no_network(self, offline_env, env_config, make_distribution):
        make_distribution(version="4.0.4", root=env_config.distributions_root / "neo4j-enterprise-4.0.4")
        make_distribution(version="4.0.9", edition="community", root=env_config.distributions_root / "neo4j-community-4.0.9")

        dbms_id = await offline_env.install_dbms("movies", "pw", "4.0")

        info = offline_env.get_dbms(dbms_id)
        assert info.version == "4.0.4"
        assert info.edition == "enterprise"

    @pytest.mark.asyncio
    async def test_cache_miss_downloads_and_rediscovers(self, env, origin, make_archive_bytes):
        origin.archives["4.0.4"] = make_archive_bytes(version="4.0.4")
        origin.archives["4.0.7"] = make_archive_bytes(version="4.0.7")
        discover = AsyncMock(wraps=env.distributions.discover)

        with patch.object(env.distributions, "discover", discover):
            dbms_id = await env.install_dbms("movies", "pw", "~4.0.0")

        assert env.get_dbms(dbms_id).version == "4.0.7"
        assert discover.await_count == 2
        assert [str(r.url) for r in origin.requests][-1] == dist_url("4.0.7")
        assert dist_url("4.0.4") not in [str(r.url) for r in origin.requests]

    @pytest.mark.asyncio
    async def test_downloaded_version_is_reused(self, env, origin, make_archive_bytes):
        origin.archives["4.0.4"] = make_archive_bytes(version="4.0.4")

        await env.install_dbms("one", "pw", "4.0.4")
        origin.requests.clear()
        await env.install_dbms("two", "pw", "4.0.4")

        assert origin.requests == []
        assert len(env.list_dbmss()) == 2

    @pytest.mark.asyncio
    async def test_lifecycle(self, env, make_archive):
        dbms_id = await env.install_dbms("movies", "pw", str(make_archive()))

        for _ in range(2):
            (started,) = await env.start_dbmss([dbms_id])
            assert started.status == DbmsStatus.RUNNING

            (status,) = await env.status_dbmss([dbms_id])
            assert status.status == DbmsStatus.RUNNING

            (stopped,) = await env.stop_dbmss([dbms_id])
            assert stopped.status == DbmsStatus.NOT_RUNNING

            (status,) = await env.status_dbmss([dbms_id])
            assert status.status == DbmsStatus.NOT_RUNNING

    @pytest.mark.asyncio
    async def test_uninstall_running_instance(self, env, env_config, make_archive):
        dbms_id = await env.install_dbms("movies", "pw", str(make_archive()))
        await env.start_dbmss([dbms_id])

        await env.uninstall_dbms(dbms_id)

        assert not (env_config.install_root / f"dbms-{dbms_id}").exists()
        assert env.list_dbmss() == []
        (result,) = await env.status_dbmss([dbms_id])
        assert isinstance(result.error, NotFoundError)

    @pytest.mark.asyncio
    async def test_uninstall_unknown(self, env):
        with pytest.raises(NotFoundError):
            await env.uninstall_dbms("missing")

    @pytest.mark.asyncio
    async def test_account_access_token(self, env, env_config, make_archive):
        dbms_id = await env.install_dbms("movies", "pw", str(make_archive()))
        account = create_account(env_config, environment=env)

        token = await account.create_access_token("graph-app", dbms_id, AuthToken("neo4j", "pw"))

        assert account.verify_access_token(token)["dbmsId"] == dbms_id
        (status,) = await account.status_dbmss([dbms_id])
        assert status.status == DbmsStatus.NOT_RUNNING
