"""
Shared fixtures: fake distributions, archives and environment configs.

A fake distribution looks like a real one to dbms-env:

    <root>/lib/<product>-kernel-<version>.jar
    <root>/lib/<product>-enterprise-<version>.jar     (enterprise only)
    <root>/bin/<product>                              start | stop | status
    <root>/bin/<product>-admin                        set-initial-password
    <root>/conf/<product>.conf

The control script "runs" the server as a background sleep tracked by a
pid file under <root>/run.
"""

import io
import os
import shutil
import stat
import tarfile
from pathlib import Path

import pytest

from dbaas.dbms_env.config import EnvironmentConfig

CONTROL_SCRIPT = """#!/bin/sh
HOME_DIR="$(cd "$(dirname "$0")/.." && pwd)"
PID_FILE="$HOME_DIR/run/server.pid"

is_running() {
    [ -f "$PID_FILE" ] && kill -0 "$(cat "$PID_FILE")" 2>/dev/null
}

case "$1" in
    start)
        if is_running; then
            echo "Neo4j is already running (pid $(cat "$PID_FILE"))."
            exit 0
        fi
        mkdir -p "$HOME_DIR/run"
        nohup sleep 600 >/dev/null 2>&1 &
        echo $! > "$PID_FILE"
        echo "Started neo4j (pid $!)."
        ;;
    stop)
        if is_running; then
            kill "$(cat "$PID_FILE")"
        fi
        rm -f "$PID_FILE"
        echo "Stopping Neo4j.. stopped."
        ;;
    status)
        if is_running; then
            echo "Neo4j is running at pid $(cat "$PID_FILE")"
            exit 0
        fi
        echo "Neo4j is not running"
        exit 3
        ;;
    *)
        echo "Usage: neo4j {start|stop|status}"
        exit 1
        ;;
esac
"""

ADMIN_SCRIPT = """#!/bin/sh
HOME_DIR="$(cd "$(dirname "$0")/.." && pwd)"

case "$1" in
    set-initial-password)
        if [ -z "$2" ]; then
            echo "Password must not be empty"
            exit 1
        fi
        mkdir -p "$HOME_DIR/data/dbms"
        printf '%s' "$2" > "$HOME_DIR/data/dbms/auth"
        echo "Changed password for user 'neo4j'."
        ;;
    *)
        echo "Unknown command: $1"
        exit 1
        ;;
esac
"""


def _write_executable(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def build_distribution(
    root: Path,
    version: str = "4.0.4",
    edition: str = "enterprise",
    product: str = "neo4j",
    control_script: str = CONTROL_SCRIPT,
    admin_script: str | None = ADMIN_SCRIPT,
) -> Path:
    root = Path(root)
    lib = root / "lib"
    lib.mkdir(parents=True, exist_ok=True)
    (lib / f"{product}-kernel-{version}.jar").write_bytes(b"PK")
    (lib / f"{product}-cypher-{version}.jar").write_bytes(b"PK")
    if edition == "enterprise":
        (lib / f"{product}-enterprise-{version}.jar").write_bytes(b"PK")

    (root / "conf").mkdir(exist_ok=True)
    (root / "conf" / f"{product}.conf").write_text("dbms.default_listen_address=127.0.0.1\n")

    _write_executable(root / "bin" / product, control_script)
    if admin_script is not None:
        _write_executable(root / "bin" / f"{product}-admin", admin_script)
    return root


def build_archive(source_dir: Path, archive: Path) -> Path:
    """tar.gz archive with source_dir as its single top-level directory."""
    archive.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive, "w:gz") as tf:
        tf.add(source_dir, arcname=source_dir.name)
    return archive


def archive_bytes(source_dir: Path, top_level: str | None = None) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tf:
        tf.add(source_dir, arcname=top_level or source_dir.name)
    return buffer.getvalue()


@pytest.fixture
def make_distribution(tmp_path):
    """Factory: build a fake distribution directory under tmp_path/dists."""

    def factory(version="4.0.4", edition="enterprise", name=None, root=None, **kwargs):
        root = root or tmp_path / "dists" / (name or f"neo4j-{edition}-{version}")
        return build_distribution(root, version=version, edition=edition, **kwargs)

    return factory


@pytest.fixture
def make_archive(tmp_path, make_distribution):
    """Factory: build a fake distribution archive under tmp_path/archives."""

    def factory(version="4.0.4", edition="enterprise", **kwargs):
        dist = make_distribution(version=version, edition=edition, **kwargs)
        archive = tmp_path / "archives" / f"neo4j-{edition}-{version}-unix.tar.gz"
        build_archive(dist, archive)
        shutil.rmtree(dist)
        return archive

    return factory


@pytest.fixture
def env_config(tmp_path):
    """Environment config rooted in tmp_path."""
    return EnvironmentConfig(
        id="test",
        user="tester",
        data_home=str(tmp_path / "data"),
        cache_home=str(tmp_path / "cache"),
    )


@pytest.fixture
def stop_leftovers(env_config):
    """Kill fake servers left running by a failed test."""
    yield
    install_root = env_config.install_root
    if not install_root.is_dir():
        return
    for pid_file in install_root.glob("*/run/server.pid"):
        try:
            os.kill(int(pid_file.read_text().strip()), 15)
        except (OSError, ValueError):
            pass


@pytest.fixture
def make_archive_bytes(make_distribution):
    """Factory: gzipped tarball bytes of a fake distribution (for mocked downloads)."""

    def factory(version="4.0.4", edition="enterprise", top_level=None, **kwargs):
        dist = make_distribution(version=version, edition=edition, **kwargs)
        data = archive_bytes(dist, top_level=top_level)
        shutil.rmtree(dist)
        return data

    return factory
