# src/cache/codec.py — v2
"""Record codec with shared-reference support.

Records are stored as a JSON document::

    {
      "format": "artifactcache.record",
      "version": 2,
      "registry_version": 1,
      "root": <value>,
      "arena": [<node>, ...]
    }

Scalars (None, bool, int, float, str) are written inline. ``bytes`` and
``datetime`` are inline tagged values, and members of a registered ``Enum``
are written inline as their tag and value. Lists, tuples, dicts, sets,
frozensets and registered objects are arena nodes: the first occurrence is
encoded into the arena and every occurrence is written as ``{"$ref": n}``.
The identity table makes shared sub-graphs and cycles (e.g. a symbol table
pointing back into the tree that owns it) round-trip without recursion
blow-up or duplicate copies.

Value types beyond the built-ins must be registered in a TypeRegistry before
encoding or decoding. The registry is versioned and can be frozen once
start-up registration is done.
"""

from __future__ import annotations

import base64
import dataclasses
import json
import logging
from collections.abc import Callable, Iterator
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

from artifactcache.cache.errors import RegistryError, SerializationError

logger = logging.getLogger(__name__)

FORMAT_NAME = "artifactcache.record"
CODEC_VERSION = 2

_SCALARS = (type(None), bool, int, float, str)

# Mutable containers are filled after every object, so dict keys and set
# members that hash an object see a complete instance.
_CONTAINER_FILL_ORDER = ("list", "set", "dict")

# Placeholder for tuple and frozenset nodes until their items are decoded.
_UNBUILT = object()

T = TypeVar("T", bound=type)


class TypeRegistry:
    """Explicit registry of value kinds that may appear inside a record.

    Each registered class is stored under a tag name. Instances are encoded
    as their field mapping (dataclass fields, else ``__dict__``) and rebuilt
    with ``cls.__new__`` followed by direct attribute assignment, so
    ``__init__`` is never called on decode. ``Enum`` classes are the
    exception: their members are encoded by value and looked up again on
    decode.
    """

    def __init__(self, version: int = 1) -> None:
        self._version = version
        self._by_name: dict[str, type] = {}
        self._by_type: dict[type, str] = {}
        self._frozen = False

    @property
    def version(self) -> int:
        return self._version

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def names(self) -> list[str]:
        """Sorted registered tag names."""
        return sorted(self._by_name)

    def register(self, cls: T | None = None, *, name: str | None = None) -> Any:
        """Register ``cls`` under ``name`` (default: qualified class name).

        Usable directly (``registry.register(Node)``) or as a decorator
        (``@registry.register`` / ``@registry.register(name="node")``).
        Registering the same class under the same name again is a no-op.
        """
        if cls is None:
            def decorator(target: T) -> T:
                return self.register(target, name=name)

            return decorator

        if self._frozen:
            raise RegistryError(
                "registry.register", f"registry is frozen, cannot add {cls.__qualname__}"
            )
        if not isinstance(cls, type) or cls in _SCALARS:
            raise RegistryError("registry.register", f"not a registrable class: {cls!r}")

        tag = name or f"{cls.__module__}.{cls.__qualname__}"
        existing = self._by_name.get(tag)
        if existing is not None and existing is not cls:
            raise RegistryError(
                "registry.register", f"tag {tag!r} already bound to {existing.__qualname__}"
            )
        previous = self._by_type.get(cls)
        if previous is not None and previous != tag:
            raise RegistryError(
                "registry.register", f"{cls.__qualname__} already registered as {previous!r}"
            )

        self._by_name[tag] = cls
        self._by_type[cls] = tag
        logger.debug("Registered value type %s as %s", cls.__qualname__, tag)
        return cls

    def freeze(self) -> None:
        """Make the registry read-only."""
        self._frozen = True

    def tag_of(self, cls: type) -> str | None:
        return self._by_type.get(cls)

    def class_of(self, tag: str) -> type | None:
        return self._by_name.get(tag)


default_registry = TypeRegistry()


def register_value_type(
    cls: T | None = None, *, name: str | None = None
) -> T | Callable[[T], T]:
    """Register a value type in the process-wide default registry."""
    return default_registry.register(cls, name=name)


class RecordCodec:
    """Encode and decode records against one TypeRegistry."""

    def __init__(self, registry: TypeRegistry | None = None) -> None:
        self.registry = registry or default_registry

    def dumps(self, record: dict[str, Any]) -> bytes:
        """Serialize ``record`` to UTF-8 JSON bytes."""
        encoder = _Encoder(self.registry)
        root = encoder.encode(record)
        document = {
            "format": FORMAT_NAME,
            "version": CODEC_VERSION,
            "registry_version": self.registry.version,
            "root": root,
            "arena": encoder.arena,
        }
        try:
            return json.dumps(document, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise SerializationError("json.encode", str(exc)) from exc

    def loads(self, payload: bytes) -> dict[str, Any]:
        """Rebuild a record from bytes produced by ``dumps``."""
        try:
            document = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise SerializationError("json.decode", str(exc)) from exc

        if not isinstance(document, dict) or document.get("format") != FORMAT_NAME:
            raise SerializationError("codec.decode", "not a record document")
        if document.get("version") != CODEC_VERSION:
            raise SerializationError(
                "codec.decode", f"unsupported codec version {document.get('version')!r}"
            )
        if document.get("registry_version") != self.registry.version:
            raise SerializationError(
                "codec.decode",
                f"registry version {document.get('registry_version')!r} "
                f"!= {self.registry.version}",
            )

        try:
            decoder = _Decoder(self.registry, document.get("arena", []))
            record = decoder.decode(document.get("root"))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise SerializationError("codec.decode", f"malformed record: {exc!r}") from exc
        if not isinstance(record, dict):
            raise SerializationError("codec.decode", "record root is not a mapping")
        return record


class _Encoder:
    def __init__(self, registry: TypeRegistry) -> None:
        self._registry = registry
        self._slots: dict[int, int] = {}
        # Holds encoded objects so their id() cannot be reused mid-encode.
        self._pinned: list[Any] = []
        self.arena: list[dict[str, Any]] = []

    def encode(self, value: Any) -> Any:
        kind = type(value)
        if kind in _SCALARS:
            return value
        if kind is bytes:
            return {"$bytes": base64.b64encode(value).decode("ascii")}
        if kind is datetime:
            return {"$datetime": value.isoformat()}
        if isinstance(value, Enum):
            return {"$enum": [self._tag(kind), self.encode(value.value)]}

        slot = self._slots.get(id(value))
        if slot is not None:
            return {"$ref": slot}

        if kind in (list, tuple, set, frozenset):
            node = self._allocate(value, kind.__name__)
            node["items"] = [self.encode(v) for v in value]
        elif kind is dict:
            node = self._allocate(value, "dict")
            node["items"] = [[self.encode(k), self.encode(v)] for k, v in value.items()]
        else:
            tag = self._tag(kind)
            node = self._allocate(value, "object")
            node["type"] = tag
            node["fields"] = {name: self.encode(v) for name, v in _object_fields(value).items()}

        return {"$ref": self._slots[id(value)]}

    def _tag(self, kind: type) -> str:
        tag = self._registry.tag_of(kind)
        if tag is None:
            raise SerializationError(
                "codec.encode", f"unregistered value type {kind.__module__}.{kind.__qualname__}"
            )
        return tag

    def _allocate(self, value: Any, kind: str) -> dict[str, Any]:
        node: dict[str, Any] = {"kind": kind}
        self._slots[id(value)] = len(self.arena)
        self._pinned.append(value)
        self.arena.append(node)
        return node


class _Decoder:
    """Two-phase decoder: allocate every arena node, then fill.

    Objects are filled children first (an object after every object it
    reaches), so a frozenset or dict key built while filling a parent only
    hashes complete instances. Hashable objects on a reference cycle with
    each other cannot all be complete before they are hashed; such records
    fail to decode. Tuples and frozensets are built on first use and then
    shared like any other node.
    """

    def __init__(self, registry: TypeRegistry, arena: list[dict[str, Any]]) -> None:
        self._registry = registry
        self._arena = arena
        self._shells: list[Any] = [self._allocate(i, node) for i, node in enumerate(arena)]
        self._building: set[int] = set()

    def decode(self, root: Any) -> Any:
        for index in self._object_order():
            self._fill(index, self._arena[index])
        for kind in _CONTAINER_FILL_ORDER:
            for index, node in enumerate(self._arena):
                if node["kind"] == kind:
                    self._fill(index, node)
        return self.value(root)

    def value(self, encoded: Any) -> Any:
        if type(encoded) in _SCALARS:
            return encoded
        if type(encoded) is list:
            raise SerializationError("codec.decode", "bare list outside arena")
        if not isinstance(encoded, dict) or len(encoded) != 1:
            raise SerializationError("codec.decode", f"malformed value {encoded!r:.80}")

        (tag, payload), = encoded.items()
        if tag == "$ref":
            index = self._check_ref(payload)
            shell = self._shells[index]
            if shell is _UNBUILT:
                shell = self._build(index)
            return shell
        if tag == "$bytes":
            return base64.b64decode(payload)
        if tag == "$datetime":
            return datetime.fromisoformat(payload)
        if tag == "$enum":
            name, member_value = payload
            cls = self._registry.class_of(name)
            if cls is None or not issubclass(cls, Enum):
                raise SerializationError("codec.decode", f"unregistered enum type {name!r}")
            return cls(self.value(member_value))
        raise SerializationError("codec.decode", f"unknown value tag {tag!r}")

    def _check_ref(self, index: Any) -> int:
        if type(index) is not int or not 0 <= index < len(self._shells):
            raise SerializationError("codec.decode", f"dangling reference {index!r}")
        return index

    def _allocate(self, index: int, node: dict[str, Any]) -> Any:
        kind = node.get("kind")
        if kind == "list":
            return []
        if kind == "dict":
            return {}
        if kind == "set":
            return set()
        if kind in ("tuple", "frozenset"):
            return _UNBUILT
        if kind == "object":
            cls = self._registry.class_of(node.get("type", ""))
            if cls is None:
                raise SerializationError(
                    "codec.decode", f"unregistered value type {node.get('type')!r}"
                )
            return cls.__new__(cls)
        raise SerializationError("codec.decode", f"unknown arena node kind {kind!r} at {index}")

    def _build(self, index: int) -> Any:
        if index in self._building:
            raise SerializationError("codec.decode", f"immutable node {index} contains itself")
        self._building.add(index)
        node = self._arena[index]
        items = [self.value(v) for v in node["items"]]
        self._building.discard(index)
        built = tuple(items) if node["kind"] == "tuple" else frozenset(items)
        self._shells[index] = built
        return built

    def _children(self, index: int) -> Iterator[int]:
        node = self._arena[index]
        kind = node["kind"]
        if kind == "object":
            encoded = list(node["fields"].values())
        elif kind == "dict":
            encoded = [part for pair in node["items"] for part in pair]
        else:
            encoded = node["items"]
        for item in encoded:
            for ref in _refs(item):
                yield self._check_ref(ref)

    def _object_order(self) -> list[int]:
        """Object node indices in post-order over the reference graph."""
        order: list[int] = []
        # 0 = unseen, 1 = on the stack, 2 = done
        state = [0] * len(self._arena)
        for start in range(len(self._arena)):
            if state[start]:
                continue
            state[start] = 1
            stack = [(start, self._children(start))]
            while stack:
                index, children = stack[-1]
                child = next(children, None)
                if child is None:
                    stack.pop()
                    state[index] = 2
                    if self._arena[index]["kind"] == "object":
                        order.append(index)
                elif state[child] == 0:
                    state[child] = 1
                    stack.append((child, self._children(child)))
        return order

    def _fill(self, index: int, node: dict[str, Any]) -> None:
        shell = self._shells[index]
        kind = node["kind"]
        if kind == "list":
            shell.extend(self.value(v) for v in node["items"])
        elif kind == "set":
            shell.update(self.value(v) for v in node["items"])
        elif kind == "dict":
            for key, value in node["items"]:
                try:
                    shell[self.value(key)] = self.value(value)
                except TypeError as exc:
                    raise SerializationError("codec.decode", f"unhashable key: {exc}") from exc
        else:
            for name, value in node["fields"].items():
                object.__setattr__(shell, name, self.value(value))


def _refs(encoded: Any) -> Iterator[Any]:
    """Arena indices referenced directly by an encoded value."""
    if isinstance(encoded, dict) and len(encoded) == 1:
        (tag, payload), = encoded.items()
        if tag == "$ref":
            yield payload
        elif tag == "$enum":
            yield from _refs(payload[1])


def _object_fields(value: Any) -> dict[str, Any]:
    if dataclasses.is_dataclass(value):
        return {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
    try:
        return dict(vars(value))
    except TypeError as exc:
        raise SerializationError(
            "codec.encode", f"{type(value).__qualname__} has no field mapping"
        ) from exc
