# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides cache roots in temp directories, a private value-type registry and
graph-shaped sample values with back references.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from artifactcache.cache.blob_store import BlobStore
from artifactcache.cache.codec import RecordCodec, TypeRegistry
from artifactcache.cache.facade import Cache
from artifactcache.cache.metadata_store import MetadataStore


# === Sample value types ===


@dataclass(eq=False)
class Scope:
    """Symbol table; ``owner`` points back at the tree that holds it."""

    names: dict[str, "Ident"] = field(default_factory=dict)
    owner: "SyntaxTree | None" = None


@dataclass(eq=False)
class Ident:
    name: str
    scope: Scope | None = None


@dataclass(eq=False)
class SyntaxTree:
    package: str
    idents: list[Ident] = field(default_factory=list)
    scope: Scope | None = None


class FileInfo:
    """Plain class (no dataclass) with a ``__dict__``."""

    def __init__(self, types: dict[str, str], externals: list[str]) -> None:
        self.types = types
        self.externals = externals


def build_tree() -> SyntaxTree:
    tree = SyntaxTree(package="demo")
    scope = Scope(owner=tree)
    tree.scope = scope
    for name in ("Open", "Close"):
        ident = Ident(name=name, scope=scope)
        scope.names[name] = ident
        tree.idents.append(ident)
    return tree


# === FIXTURES ===


@pytest.fixture
def registry() -> TypeRegistry:
    reg = TypeRegistry(version=1)
    reg.register(Scope, name="scope")
    reg.register(Ident, name="ident")
    reg.register(SyntaxTree, name="tree")
    reg.register(FileInfo, name="file_info")
    return reg


@pytest.fixture
def codec(registry: TypeRegistry) -> RecordCodec:
    return RecordCodec(registry)


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def blob_store(cache_root: Path) -> BlobStore:
    return BlobStore(cache_root)


@pytest.fixture
def metadata_store(cache_root: Path, codec: RecordCodec) -> MetadataStore:
    return MetadataStore(cache_root, codec=codec)


@pytest.fixture
def cache(cache_root: Path, registry: TypeRegistry) -> Cache:
    return Cache(cache_root, registry=registry)


@pytest.fixture
def out_dir(tmp_path: Path) -> Path:
    path = tmp_path / "out"
    path.mkdir()
    return path


@pytest.fixture
def sample_tree() -> SyntaxTree:
    return build_tree()


@pytest.fixture
def sample_info() -> FileInfo:
    return FileInfo(types={"Reader": "interface"}, externals=["runtime_open"])
