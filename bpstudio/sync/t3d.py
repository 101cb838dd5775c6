"""A lenient, observable object tree for Unreal T3D blueprint text.

T3D is the clipboard format of the Blueprint editor::

    Begin Object Class=/Script/BlueprintGraph.K2Node_Event Name="K2Node_Event_0"
       NodePosX=0
       CustomProperties Pin (PinId=...,PinName="then",...)
    End Object

The tree keeps every line it does not understand verbatim, closes blocks
left open at end of input, and never rejects a document. It is a
structural view for editing, not a validator. Edits made through the tree
API notify subscribers, which is how the sync controller learns about
structural changes.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import StrEnum
from typing import Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

BEGIN = "Begin Object"
END = "End Object"
INDENT = "   "

_PROPERTY_RE = re.compile(r"^([A-Za-z_][\w.]*(?:\(\d+\))?)=(.*)$")
_HEADER_ATTR_RE = re.compile(r'(\w+)=("[^"]*"|\S+)')


class MutationKind(StrEnum):
    """What part of the tree changed."""

    PROPERTY = "property"
    ATTRIBUTE = "attribute"
    STRUCTURE = "structure"
    BATCH = "batch"


class T3DMutation(BaseModel):
    """Notification delivered to tree subscribers after a change."""

    kind: MutationKind
    target: str = Field(default="", description="Name of the changed object")
    key: str = Field(default="", description="Property key, for property changes")
    count: int = Field(default=1, ge=1, description="Changes folded into this notification")


Entry = Union["T3DObject", str]


class T3DObject:
    """One ``Begin Object ... End Object`` block.

    ``entries`` holds property lines (as raw strings) and nested objects
    in document order.
    """

    def __init__(self, header: str = "") -> None:
        self._header = header.strip()
        self._entries: list[Entry] = []
        self.parent: T3DObject | None = None

    # ── Header ────────────────────────────────────────────────

    @property
    def header(self) -> str:
        """Everything after ``Begin Object`` on the opening line."""
        return self._header

    @header.setter
    def header(self, value: str) -> None:
        self._header = value.strip()
        self._emit(MutationKind.ATTRIBUTE)

    @property
    def attributes(self) -> dict[str, str]:
        """Header ``Key=Value`` pairs, quotes removed."""
        return {k: v.strip('"') for k, v in _HEADER_ATTR_RE.findall(self._header)}

    @property
    def name(self) -> str:
        return self.attributes.get("Name", "")

    @property
    def object_class(self) -> str:
        return self.attributes.get("Class", "")

    # ── Entries ───────────────────────────────────────────────

    @property
    def entries(self) -> tuple[Entry, ...]:
        return tuple(self._entries)

    @property
    def children(self) -> list[T3DObject]:
        return [e for e in self._entries if isinstance(e, T3DObject)]

    @property
    def properties(self) -> list[tuple[str, str]]:
        """``(key, value)`` for every ``Key=Value`` line, in order."""
        pairs = []
        for entry in self._entries:
            if isinstance(entry, str) and (match := _PROPERTY_RE.match(entry)):
                pairs.append((match.group(1), match.group(2)))
        return pairs

    @property
    def pins(self) -> list[str]:
        """Raw ``CustomProperties Pin (...)`` lines."""
        return [
            e for e in self._entries
            if isinstance(e, str) and e.startswith("CustomProperties Pin")
        ]

    def get_property(self, key: str, default: str | None = None) -> str | None:
        for k, v in self.properties:
            if k == key:
                return v
        return default

    def set_property(self, key: str, value: object) -> None:
        """Replace the first ``key=`` line, or append one."""
        line = f"{key}={value}"
        for i, entry in enumerate(self._entries):
            if isinstance(entry, str) and _property_key(entry) == key:
                if entry == line:
                    return
                self._entries[i] = line
                break
        else:
            self._entries.append(line)
        self._emit(MutationKind.PROPERTY, key)

    def remove_property(self, key: str) -> bool:
        for i, entry in enumerate(self._entries):
            if isinstance(entry, str) and _property_key(entry) == key:
                del self._entries[i]
                self._emit(MutationKind.PROPERTY, key)
                return True
        return False

    def add_line(self, line: str) -> None:
        """Append an arbitrary body line (e.g. a pin definition)."""
        self._entries.append(line.strip())
        self._emit(MutationKind.STRUCTURE)

    def add_object(self, obj: T3DObject) -> T3DObject:
        """Nest ``obj`` at the end of this block."""
        self._attach(obj)
        self._emit(MutationKind.STRUCTURE)
        return obj

    def remove_object(self, obj: T3DObject) -> None:
        """Detach a nested object.

        Raises:
            ValueError: If ``obj`` is not a direct child.
        """
        for i, entry in enumerate(self._entries):
            if entry is obj:
                del self._entries[i]
                obj.parent = None
                self._emit(MutationKind.STRUCTURE)
                return
        raise ValueError(f"{obj.name or 'object'} is not a child of {self.name or 'graph'}")

    def move(self, x: int, y: int) -> None:
        """Set the node position as one change."""
        with self._batch():
            self.set_property("NodePosX", x)
            self.set_property("NodePosY", y)

    def find(self, name: str) -> T3DObject | None:
        """Depth-first search for an object by ``Name``."""
        for child in self.children:
            if child.name == name:
                return child
            found = child.find(name)
            if found is not None:
                return found
        return None

    def walk(self) -> Iterator[T3DObject]:
        """Yield every nested object, depth first."""
        for child in self.children:
            yield child
            yield from child.walk()

    # ── Serialization ─────────────────────────────────────────

    def lines(self, depth: int = 0) -> list[str]:
        pad = INDENT * depth
        out = [f"{pad}{BEGIN} {self._header}".rstrip()]
        out.extend(_entry_lines(self._entries, depth + 1))
        out.append(f"{pad}{END}")
        return out

    # ── Internals ─────────────────────────────────────────────

    def _attach(self, obj: T3DObject) -> None:
        if obj.parent is not None:
            obj.parent.remove_object(obj)
        obj.parent = self
        self._entries.append(obj)

    def _root(self) -> T3DObject:
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    def _emit(self, kind: MutationKind, key: str = "") -> None:
        root = self._root()
        if isinstance(root, T3DGraph):
            root._notify(T3DMutation(kind=kind, target=self.name, key=key))

    @contextmanager
    def _batch(self) -> Iterator[None]:
        root = self._root()
        if isinstance(root, T3DGraph):
            with root.batch():
                yield
        else:
            yield

    def __repr__(self) -> str:
        return f"T3DObject(name={self.name!r}, class={self.object_class!r})"


class T3DGraph(T3DObject):
    """Root of a parsed document; owns the subscriber list."""

    def __init__(self) -> None:
        super().__init__()
        self._subscribers: list[Callable[[T3DMutation], None]] = []
        self._batch_depth = 0
        self._batched: list[T3DMutation] = []
        self._disposed = False

    @property
    def name(self) -> str:
        return ""

    @property
    def disposed(self) -> bool:
        return self._disposed

    def subscribe(self, callback: Callable[[T3DMutation], None]) -> Callable[[], None]:
        """Register a mutation callback; returns its unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            self._subscribers = [cb for cb in self._subscribers if cb is not callback]

        return unsubscribe

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Fold every change made inside the block into one notification."""
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._batched:
                folded, self._batched = self._batched, []
                last = folded[-1]
                self._notify(T3DMutation(
                    kind=MutationKind.BATCH if len(folded) > 1 else last.kind,
                    target=last.target,
                    key=last.key,
                    count=len(folded),
                ))

    def dispose(self) -> None:
        """Drop subscribers and refuse further edits."""
        self._subscribers.clear()
        self._disposed = True

    def to_text(self) -> str:
        """Serialize the whole document as canonically indented T3D.

        Raises:
            RuntimeError: If the graph has been disposed.
        """
        self._check_alive()
        return "\n".join(_entry_lines(self._entries, 0))

    def lines(self, depth: int = 0) -> list[str]:
        return _entry_lines(self._entries, depth)

    def _notify(self, mutation: T3DMutation) -> None:
        self._check_alive()
        if self._batch_depth:
            self._batched.append(mutation)
            return
        for callback in list(self._subscribers):
            try:
                callback(mutation)
            except Exception:
                logger.exception("Mutation subscriber failed for %s", mutation.kind)

    def _check_alive(self) -> None:
        if self._disposed:
            raise RuntimeError("Blueprint graph has been destroyed")


def _property_key(line: str) -> str | None:
    match = _PROPERTY_RE.match(line)
    return match.group(1) if match else None


def _entry_lines(entries: list[Entry], depth: int) -> list[str]:
    out: list[str] = []
    for entry in entries:
        if isinstance(entry, T3DObject):
            out.extend(entry.lines(depth))
        else:
            out.append(f"{INDENT * depth}{entry}")
    return out


def _is_begin(line: str) -> bool:
    return line == BEGIN or line.startswith(BEGIN + " ")


def parse_t3d(text: str) -> T3DGraph:
    """Parse T3D text into a graph. Never raises on malformed input.

    Blank lines are dropped and indentation is normalized; blocks still
    open at end of input are closed.
    """
    graph = T3DGraph()
    stack: list[T3DObject] = [graph]
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        if _is_begin(line):
            obj = T3DObject(line[len(BEGIN):])
            stack[-1]._attach(obj)
            stack.append(obj)
        elif line == END and len(stack) > 1:
            stack.pop()
        else:
            stack[-1]._entries.append(line)
    if len(stack) > 1:
        logger.debug("Closed %d unterminated object block(s)", len(stack) - 1)
    return graph


class T3DDocument:
    """StructuralDocument implementation backed by :class:`T3DGraph`."""

    def construct(self, text: str) -> T3DGraph:
        return parse_t3d(text)

    def serialize(self, handle: T3DGraph) -> str:
        return handle.to_text()

    def on_mutation(
        self, handle: T3DGraph, callback: Callable[[T3DMutation], None]
    ) -> Callable[[], None]:
        return handle.subscribe(callback)

    def destroy(self, handle: T3DGraph) -> None:
        handle.dispose()
