"""Shared fixtures: plugin archives on disk and fake HTTP responses."""

import io
import zipfile
from pathlib import Path
from types import MappingProxyType
from typing import Optional

import pytest
import yaml

from repository import PlatformInfo, ProviderResolution
from resolver.config import DepoConfig


def jar_bytes(name: Optional[str] = None, depend=None, softdepend=None, provides=None,
              manifest: Optional[str] = None) -> bytes:
    """Return the bytes of a zip archive carrying a plugin.yml."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        if manifest is None and name is not None:
            doc = {"name": name, "version": "1.0.0", "main": f"com.example.{name}"}
            if depend is not None:
                doc["depend"] = list(depend)
            if softdepend is not None:
                doc["softdepend"] = list(softdepend)
            if provides is not None:
                doc["provides"] = list(provides)
            manifest = yaml.safe_dump(doc)
        if manifest is not None:
            zf.writestr("plugin.yml", manifest)
        zf.writestr("com/example/Main.class", b"\xca\xfe\xba\xbe")
    return buf.getvalue()


def write_jar(directory: Path, file_name: str, **kwargs) -> Path:
    path = Path(directory) / file_name
    path.write_bytes(jar_bytes(**kwargs))
    return path


class FakeResponse:
    """Minimal stand-in for a streaming requests.Response."""

    def __init__(self, status_code=200, body=b"", headers=None, chunk=4096):
        self.status_code = status_code
        self.body = body
        self.headers = dict(headers or {})
        self.chunk = chunk
        self.closed = False

    def iter_content(self, chunk_size=None):
        size = self.chunk or chunk_size
        for i in range(0, len(self.body), size):
            yield self.body[i:i + size]

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


PLATFORM = PlatformInfo(engine="paper", loader="paper", game_version="1.20.1")


def make_config(plugins_dir: Path, **overrides) -> DepoConfig:
    """Build a DepoConfig snapshot for tests; mapping kwargs are frozen."""
    for key in ("overrides", "aliases", "checksums", "version_constraints", "categories"):
        if key in overrides:
            overrides[key] = MappingProxyType(dict(overrides[key]))
    if "repository_priority" in overrides:
        overrides["repository_priority"] = tuple(overrides["repository_priority"])
    overrides.setdefault("platform", PLATFORM)
    overrides.setdefault("data_dir", Path(plugins_dir) / "Depo")
    return DepoConfig(plugins_dir=Path(plugins_dir), **overrides)


class StubProvider:
    """Provider double returning a fixed URL and recording calls."""

    def __init__(self, key: str, url: Optional[str] = None):
        self.key = key
        self.url = url
        self.calls = []

    def resolve(self, project, platform, constraint=None):
        self.calls.append((project, platform, constraint))
        if self.url is None:
            return None
        return ProviderResolution(url=self.url, suggested_file_name=f"{project}.jar")


@pytest.fixture
def plugins_dir(tmp_path):
    d = tmp_path / "plugins"
    d.mkdir()
    return d
