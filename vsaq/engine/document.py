"""
Questionnaire document model.

A template's JSON content parses into a ``Document``: an immutable arena of
typed items.  Every item gets an integer *handle* (its pre-order position);
containers hold tuples of child handles instead of nested objects, so nodes
are addressed directly and never through string paths.

Item variants:
    block       text, cond, items[]
    info        text, cond
    tip         id, text, severity, why, name, warn, cond
    spacer      —
    line / box  id, text, required, placeholder, cond
    check       id, text, required, cond
    yesno       id, text, required, cond, yes[], no[]
    radio       id, text, choices [{value, text}], required, cond
    radiogroup  id, text, choices [{id: label}], defaultChoice, required, cond
    checkgroup  same shape as radiogroup

Anything else parses to ``UnknownItem`` (raw payload kept) so that templates
written for a newer renderer still load.

Usage:
    from vsaq.engine.document import parse, serialize

    doc = parse(template.content)
    for handle in doc.walk():
        item = doc.node(handle)
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, ClassVar, Iterator

from vsaq.core.exceptions import MalformedDocument

ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

# Item types that hold an answer and count towards progress.
ANSWERABLE_TYPES = frozenset({"line", "box", "check", "yesno", "radio"})

TIP_SEVERITIES = ("critical", "high", "medium")

# Legacy VSAQ templates carry the item list under "questionnaire".
_ITEM_KEYS = ("items", "questionnaire")

_LINE_COMMENT = re.compile(r"^\s*//.*$", re.MULTILINE)
_BLOCK_COMMENT = re.compile(r"^\s*/\*.*?\*/", re.MULTILINE | re.DOTALL)


# ═════════════════════════════════════════════════════════════════════════════
# Item variants
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Choice:
    """One option of a ``radio`` item (value stored, text displayed)."""
    value: str
    text: str = ""


@dataclass(frozen=True)
class GroupChoice:
    """One option of a radiogroup/checkgroup, written as ``{id: label}``."""
    id: str
    label: str = ""


@dataclass(frozen=True)
class Block:
    item_type: ClassVar[str] = "block"
    handle: int
    text: str = ""
    cond: Any = None
    items: tuple[int, ...] = ()


@dataclass(frozen=True)
class Info:
    item_type: ClassVar[str] = "info"
    handle: int
    text: str = ""
    cond: Any = None


@dataclass(frozen=True)
class Tip:
    item_type: ClassVar[str] = "tip"
    handle: int
    id: str = ""
    text: str = ""
    severity: str | None = None
    why: str | None = None
    name: str | None = None
    warn: bool = False
    cond: Any = None


@dataclass(frozen=True)
class Spacer:
    item_type: ClassVar[str] = "spacer"
    handle: int


@dataclass(frozen=True)
class Line:
    item_type: ClassVar[str] = "line"
    handle: int
    id: str = ""
    text: str = ""
    required: bool = False
    placeholder: str | None = None
    cond: Any = None


@dataclass(frozen=True)
class Box:
    item_type: ClassVar[str] = "box"
    handle: int
    id: str = ""
    text: str = ""
    required: bool = False
    placeholder: str | None = None
    cond: Any = None


@dataclass(frozen=True)
class Check:
    item_type: ClassVar[str] = "check"
    handle: int
    id: str = ""
    text: str = ""
    required: bool = False
    cond: Any = None


@dataclass(frozen=True)
class YesNo:
    item_type: ClassVar[str] = "yesno"
    handle: int
    id: str = ""
    text: str = ""
    required: bool = False
    cond: Any = None
    yes: tuple[int, ...] = ()
    no: tuple[int, ...] = ()


@dataclass(frozen=True)
class Radio:
    item_type: ClassVar[str] = "radio"
    handle: int
    id: str = ""
    text: str = ""
    choices: tuple[Choice, ...] = ()
    required: bool = False
    cond: Any = None


@dataclass(frozen=True)
class RadioGroup:
    item_type: ClassVar[str] = "radiogroup"
    handle: int
    id: str = ""
    text: str = ""
    choices: tuple[GroupChoice, ...] = ()
    default_choice: str | None = None
    required: bool = False
    cond: Any = None


@dataclass(frozen=True)
class CheckGroup:
    item_type: ClassVar[str] = "checkgroup"
    handle: int
    id: str = ""
    text: str = ""
    choices: tuple[GroupChoice, ...] = ()
    default_choice: str | None = None
    required: bool = False
    cond: Any = None


@dataclass(frozen=True)
class UnknownItem:
    """Item of a type this renderer does not know; rendered as a no-op."""
    handle: int
    item_type: str = ""
    raw: Any = None

    @property
    def id(self) -> str:
        return self.raw.get("id", "") if isinstance(self.raw, dict) else ""


Item = (
    Block | Info | Tip | Spacer | Line | Box | Check | YesNo | Radio
    | RadioGroup | CheckGroup | UnknownItem
)

_CONTAINERS = (Block, YesNo)


# ═════════════════════════════════════════════════════════════════════════════
# Document
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Document:
    """Immutable questionnaire tree stored as an arena of items.

    ``nodes[h]`` is the item with handle ``h``; ``parents[h]`` is the handle
    of its container (``None`` for top-level items).  Handles follow
    document pre-order, which is also the on-screen order.
    """

    version: int
    roots: tuple[int, ...]
    nodes: tuple[Item, ...]
    parents: tuple[int | None, ...]

    def node(self, handle: int) -> Item:
        return self.nodes[handle]

    def parent(self, handle: int) -> int | None:
        return self.parents[handle]

    def children(self, handle: int) -> tuple[int, ...]:
        """All child handles of a container, ``yes`` before ``no`` for yesno."""
        item = self.nodes[handle]
        if isinstance(item, Block):
            return item.items
        if isinstance(item, YesNo):
            return item.yes + item.no
        return ()

    def walk(self, handles: tuple[int, ...] | None = None) -> Iterator[int]:
        """Yield every handle in pre-order, descending into all branches."""
        for handle in self.roots if handles is None else handles:
            yield handle
            yield from self.walk(self.children(handle))

    def find(self, item_id: str) -> Item | None:
        """Return the first item (pre-order) carrying ``item_id``."""
        for item in self.nodes:
            if item_id and getattr(item, "id", "") == item_id:
                return item
        return None

    def answerable_ids(self) -> list[str]:
        """Ids of every item that counts towards progress, in document order."""
        return [
            self.nodes[h].id for h in self.walk()
            if self.nodes[h].item_type in ANSWERABLE_TYPES and self.nodes[h].id
        ]


# ═════════════════════════════════════════════════════════════════════════════
# Parsing
# ═════════════════════════════════════════════════════════════════════════════


def _strip_comments(text: str) -> str:
    """Drop JavaScript-style comments that start a line.

    Only whole-line comments are removed; ``//`` inside a value such as a URL
    is left alone.
    """
    text = _BLOCK_COMMENT.sub("", text)
    return _LINE_COMMENT.sub("", text)


def _decode(raw: str | bytes | dict) -> dict:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedDocument("Invalid UTF-8") from exc
    if not isinstance(raw, str):
        raise MalformedDocument(f"Unsupported document type: {type(raw).__name__}")
    try:
        payload = json.loads(_strip_comments(raw))
    except json.JSONDecodeError as exc:
        raise MalformedDocument(f"Invalid JSON: {exc.msg} (line {exc.lineno})") from exc
    if not isinstance(payload, dict):
        raise MalformedDocument("Document root must be a JSON object")
    return payload


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _optional_text(value: Any) -> str | None:
    return None if value is None else _text(value)


class _ArenaBuilder:
    """Collects items in pre-order while assigning handles."""

    def __init__(self):
        self.nodes: list[Item | None] = []
        self.parents: list[int | None] = []

    def build_list(self, raw_items: Any, parent: int | None) -> tuple[int, ...]:
        if raw_items is None:
            return ()
        if not isinstance(raw_items, list):
            raise MalformedDocument("Item children must be a JSON array")
        return tuple(self.build(raw, parent) for raw in raw_items)

    def build(self, raw: Any, parent: int | None) -> int:
        handle = len(self.nodes)
        # Reserve the slot first so children receive later handles.
        self.nodes.append(None)
        self.parents.append(parent)
        self.nodes[handle] = self._make(handle, raw)
        return handle

    def _make(self, handle: int, raw: Any) -> Item:
        if not isinstance(raw, dict):
            return UnknownItem(handle=handle, item_type="", raw=raw)

        item_type = raw.get("type")
        cond = raw.get("cond")
        common = {
            "id": _text(raw.get("id")),
            "text": _text(raw.get("text")),
            "required": bool(raw.get("required", False)),
            "cond": cond,
        }

        if item_type == "block":
            return Block(
                handle=handle,
                text=common["text"],
                cond=cond,
                items=self.build_list(raw.get("items"), handle),
            )
        if item_type == "info":
            return Info(handle=handle, text=common["text"], cond=cond)
        if item_type == "tip":
            return Tip(
                handle=handle,
                id=common["id"],
                text=common["text"],
                severity=_optional_text(raw.get("severity")),
                why=_optional_text(raw.get("why")),
                name=_optional_text(raw.get("name")),
                warn=bool(raw.get("warn", False)),
                cond=cond,
            )
        if item_type == "spacer":
            return Spacer(handle=handle)
        if item_type == "line":
            return Line(handle=handle, placeholder=_optional_text(raw.get("placeholder")), **common)
        if item_type == "box":
            return Box(handle=handle, placeholder=_optional_text(raw.get("placeholder")), **common)
        if item_type == "check":
            return Check(handle=handle, **common)
        if item_type == "yesno":
            return YesNo(
                handle=handle,
                yes=self.build_list(raw.get("yes"), handle),
                no=self.build_list(raw.get("no"), handle),
                **common,
            )
        if item_type == "radio":
            return Radio(handle=handle, choices=_radio_choices(raw.get("choices")), **common)
        if item_type in ("radiogroup", "checkgroup"):
            cls = RadioGroup if item_type == "radiogroup" else CheckGroup
            return cls(
                handle=handle,
                choices=_group_choices(raw.get("choices")),
                default_choice=_optional_text(raw.get("defaultChoice")),
                **common,
            )
        return UnknownItem(handle=handle, item_type=_text(item_type), raw=raw)


def _radio_choices(raw: Any) -> tuple[Choice, ...]:
    if not isinstance(raw, list):
        return ()
    choices = []
    for entry in raw:
        if isinstance(entry, dict):
            value = _text(entry.get("value"))
            choices.append(Choice(value=value, text=_text(entry.get("text", value))))
        elif entry is not None:
            choices.append(Choice(value=_text(entry), text=_text(entry)))
    return tuple(choices)


def _group_choices(raw: Any) -> tuple[GroupChoice, ...]:
    if not isinstance(raw, list):
        return ()
    choices = []
    for entry in raw:
        if isinstance(entry, dict):
            choices.extend(GroupChoice(id=_text(k), label=_text(v)) for k, v in entry.items())
    return tuple(choices)


def parse(raw: str | bytes | dict) -> Document:
    """Parse template content into a ``Document``.

    Raises:
        MalformedDocument: invalid JSON, non-object root, or no
            ``items``/``questionnaire`` array.
    """
    payload = _decode(raw)
    key = next((k for k in _ITEM_KEYS if k in payload), None)
    if key is None:
        raise MalformedDocument("Document must contain an 'items' or 'questionnaire' array")
    if not isinstance(payload[key], list):
        raise MalformedDocument(f"'{key}' must be a JSON array")

    version = payload.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int):
        raise MalformedDocument("'version' must be an integer")

    builder = _ArenaBuilder()
    roots = builder.build_list(payload[key], None)
    return Document(
        version=version,
        roots=roots,
        nodes=tuple(builder.nodes),
        parents=tuple(builder.parents),
    )


def from_items(items: list[dict], version: int = 1) -> Document:
    """Build a document from already-decoded item dicts."""
    return parse({"version": version, "items": items})


# ═════════════════════════════════════════════════════════════════════════════
# Serialisation
# ═════════════════════════════════════════════════════════════════════════════


def _put(out: dict, key: str, value: Any) -> None:
    """Set ``key`` only when ``value`` carries information."""
    if value is None or value is False or value == "":
        return
    out[key] = value


def item_to_raw(document: Document, handle: int) -> Any:
    """Return the JSON-ready form of one item, including its subtree."""
    item = document.node(handle)
    if isinstance(item, UnknownItem):
        return item.raw

    out: dict[str, Any] = {"type": item.item_type}
    match item:
        case Block():
            _put(out, "text", item.text)
            _put(out, "cond", item.cond)
            out["items"] = [item_to_raw(document, h) for h in item.items]
        case Info():
            _put(out, "text", item.text)
            _put(out, "cond", item.cond)
        case Tip():
            _put(out, "id", item.id)
            _put(out, "text", item.text)
            _put(out, "severity", item.severity)
            _put(out, "why", item.why)
            _put(out, "name", item.name)
            _put(out, "warn", item.warn)
            _put(out, "cond", item.cond)
        case Spacer():
            pass
        case Line() | Box() | Check():
            _put(out, "id", item.id)
            _put(out, "text", item.text)
            _put(out, "required", item.required)
            _put(out, "placeholder", getattr(item, "placeholder", None))
            _put(out, "cond", item.cond)
        case YesNo():
            _put(out, "id", item.id)
            _put(out, "text", item.text)
            _put(out, "required", item.required)
            _put(out, "cond", item.cond)
            if item.yes:
                out["yes"] = [item_to_raw(document, h) for h in item.yes]
            if item.no:
                out["no"] = [item_to_raw(document, h) for h in item.no]
        case Radio():
            _put(out, "id", item.id)
            _put(out, "text", item.text)
            out["choices"] = [{"value": c.value, "text": c.text} for c in item.choices]
            _put(out, "required", item.required)
            _put(out, "cond", item.cond)
        case RadioGroup() | CheckGroup():
            _put(out, "id", item.id)
            _put(out, "text", item.text)
            out["choices"] = [{c.id: c.label} for c in item.choices]
            _put(out, "defaultChoice", item.default_choice)
            _put(out, "required", item.required)
            _put(out, "cond", item.cond)
    return out


def to_raw(document: Document) -> dict:
    return {
        "version": document.version,
        "items": [item_to_raw(document, h) for h in document.roots],
    }


def serialize(document: Document, indent: int | None = None) -> str:
    return json.dumps(to_raw(document), indent=indent, ensure_ascii=False)
