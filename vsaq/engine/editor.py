"""
Template authoring session.

``EditorSession`` is the working copy an administrator edits before saving a
template.  It keeps its own mutable arena: every item gets a stable integer
handle when added, containers keep ordered child-handle lists per slot
(``items`` for blocks and the top level, ``yes``/``no`` for yesno items), and
the current selection is a handle.  Nothing here is module-global; each
editing context owns one session.

Usage:
    session = EditorSession.from_document(parse(template.content))
    h = session.add_item(session.default_item("yesno"))
    session.add_item(session.default_item("line"), parent=h, slot="yes")
    issues = session.validate()
    content = session.to_json()
"""

from __future__ import annotations

import copy
import itertools
import logging
from typing import Any

from vsaq.core.exceptions import NotFoundError, ValidationError
from vsaq.engine.document import Document, item_to_raw, parse, serialize
from vsaq.engine.validation import ValidationIssue, validate

logger = logging.getLogger(__name__)

ROOT = None

# Slots each container type exposes for children.
CHILD_SLOTS = {
    "block": ("items",),
    "yesno": ("yes", "no"),
}

_CHILD_KEYS = ("items", "yes", "no")

_DEFAULT_ITEMS = {
    "block": {"type": "block", "text": "New Section"},
    "info": {"type": "info", "text": "Information text here"},
    "tip": {"type": "tip", "text": "Warning text", "warn": True, "severity": "medium"},
    "spacer": {"type": "spacer"},
    "line": {"type": "line", "text": "Question text"},
    "box": {"type": "box", "text": "Question text"},
    "check": {"type": "check", "text": "Checkbox label"},
    "radio": {"type": "radio", "text": "Radio label", "choices": []},
    "radiogroup": {"type": "radiogroup", "text": "Question text", "choices": []},
    "checkgroup": {"type": "checkgroup", "choices": []},
    "yesno": {"type": "yesno", "text": "Question text"},
}


class EditorSession:
    """Mutable authoring state for one template."""

    def __init__(self, version: int = 1):
        self.version = version
        self.selected: int | None = None
        self.dirty = False
        self._attrs: dict[int, dict[str, Any]] = {}
        self._slots: dict[tuple[int | None, str], list[int]] = {(ROOT, "items"): []}
        self._location: dict[int, tuple[int | None, str]] = {}
        self._handles = itertools.count()

    @classmethod
    def from_document(cls, document: Document) -> EditorSession:
        session = cls(version=document.version)
        for handle in document.roots:
            raw = copy.deepcopy(item_to_raw(document, handle))
            if isinstance(raw, dict):
                session._insert(raw, ROOT, "items", None)
        session.dirty = False
        return session

    # ── Queries ──────────────────────────────────────────────────────────

    def __contains__(self, handle: int) -> bool:
        return handle in self._attrs

    def item(self, handle: int) -> dict[str, Any]:
        """Return a copy of an item's own attributes (children excluded)."""
        return copy.deepcopy(self._require(handle))

    def children(self, parent: int | None = ROOT, slot: str = "items") -> list[int]:
        return list(self._slots.get((parent, slot), []))

    def location(self, handle: int) -> tuple[int | None, str, int]:
        """Return ``(parent, slot, position)`` of an item."""
        self._require(handle)
        parent, slot = self._location[handle]
        return parent, slot, self._slots[(parent, slot)].index(handle)

    def handle_of(self, item_id: str) -> int:
        """Handle of the first item, in document order, carrying ``item_id``."""
        for root in self._slots[(ROOT, "items")]:
            for handle in self._subtree(root):
                if self._attrs[handle].get("id") == item_id:
                    return handle
        raise NotFoundError(resource="Item", resource_id=item_id)

    def used_ids(self) -> set[str]:
        ids = set()
        for attrs in self._attrs.values():
            if attrs.get("id"):
                ids.add(attrs["id"])
            if attrs.get("type") == "checkgroup":
                for choice in attrs.get("choices") or []:
                    if isinstance(choice, dict):
                        ids.update(choice.keys())
        return ids

    def generate_id(self, prefix: str = "q") -> str:
        """First free ``<prefix>_<n>`` id, n counting from 1."""
        used = self.used_ids()
        for n in itertools.count(1):
            candidate = f"{prefix}_{n}"
            if candidate not in used:
                return candidate

    def default_item(self, item_type: str) -> dict[str, Any]:
        """Starter payload for a new item of ``item_type`` with a fresh id."""
        if item_type not in _DEFAULT_ITEMS:
            raise ValidationError(f"Unknown item type '{item_type}'", details={"type": item_type})
        raw = copy.deepcopy(_DEFAULT_ITEMS[item_type])
        if item_type == "tip":
            raw["id"] = self.generate_id("tip")
        elif item_type not in ("block", "info", "spacer"):
            raw["id"] = self.generate_id("q")
        return raw

    # ── Mutations ────────────────────────────────────────────────────────

    def add_item(
        self,
        raw: dict[str, Any],
        parent: int | None = ROOT,
        slot: str = "items",
        position: int | None = None,
    ) -> int:
        """Insert ``raw`` (with any nested children) and return its handle."""
        if not isinstance(raw, dict):
            raise ValidationError("Item must be a JSON object")
        self._check_slot(parent, slot)
        handle = self._insert(copy.deepcopy(raw), parent, slot, position)
        self.dirty = True
        return handle

    def update_item(self, handle: int, **attrs: Any) -> None:
        """Replace scalar attributes; ``None`` or ``""`` removes the key."""
        current = self._require(handle)
        for key, value in attrs.items():
            if key in _CHILD_KEYS:
                raise ValidationError(f"'{key}' children are edited through add/move/remove")
            if key == "type" and value != current.get("type"):
                raise ValidationError("An item's type cannot be changed")
            if value is None or value == "":
                current.pop(key, None)
            else:
                current[key] = copy.deepcopy(value)
        self.dirty = True

    def remove_item(self, handle: int) -> None:
        """Delete an item together with its subtree."""
        self._require(handle)
        parent, slot = self._location[handle]
        self._slots[(parent, slot)].remove(handle)
        for doomed in list(self._subtree(handle)):
            self._attrs.pop(doomed, None)
            self._location.pop(doomed, None)
            for child_slot in _CHILD_KEYS:
                self._slots.pop((doomed, child_slot), None)
            if self.selected == doomed:
                self.selected = None
        self.dirty = True

    def move_item(
        self,
        handle: int,
        parent: int | None = ROOT,
        slot: str = "items",
        position: int | None = None,
    ) -> None:
        """Re-home an item (and subtree) under ``parent``/``slot``."""
        self._require(handle)
        self._check_slot(parent, slot)
        if parent is not None and parent in set(self._subtree(handle)):
            raise ValidationError("An item cannot be moved inside itself")

        old_parent, old_slot = self._location[handle]
        self._slots[(old_parent, old_slot)].remove(handle)
        siblings = self._slots.setdefault((parent, slot), [])
        siblings.insert(len(siblings) if position is None else position, handle)
        self._location[handle] = (parent, slot)
        self.dirty = True

    def select(self, handle: int | None) -> None:
        if handle is not None:
            self._require(handle)
        self.selected = handle

    # ── Output ───────────────────────────────────────────────────────────

    def to_raw(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "items": [self._raw_subtree(h) for h in self._slots[(ROOT, "items")]],
        }

    def to_document(self) -> Document:
        return parse(self.to_raw())

    def to_json(self, indent: int | None = 2) -> str:
        return serialize(self.to_document(), indent=indent)

    def validate(self) -> list[ValidationIssue]:
        return validate(self.to_document())

    # ── Internals ────────────────────────────────────────────────────────

    def _require(self, handle: int) -> dict[str, Any]:
        attrs = self._attrs.get(handle)
        if attrs is None:
            raise NotFoundError(resource="Item", resource_id=handle)
        return attrs

    def _check_slot(self, parent: int | None, slot: str) -> None:
        if parent is ROOT:
            if slot != "items":
                raise ValidationError(f"Top-level items live in 'items', not '{slot}'")
            return
        item_type = self._require(parent).get("type")
        if slot not in CHILD_SLOTS.get(item_type, ()):
            raise ValidationError(f"A {item_type} item has no '{slot}' children")

    def _insert(self, raw: dict[str, Any], parent: int | None, slot: str, position: int | None) -> int:
        handle = next(self._handles)
        slots = CHILD_SLOTS.get(raw.get("type"), ())
        # unknown types keep their nested payload untouched
        children = {key: raw.pop(key) for key in slots if key in raw}
        self._attrs[handle] = raw
        self._location[handle] = (parent, slot)
        siblings = self._slots.setdefault((parent, slot), [])
        siblings.insert(len(siblings) if position is None else position, handle)

        for child_slot in slots:
            self._slots[(handle, child_slot)] = []
            for child in children.get(child_slot) or []:
                if isinstance(child, dict):
                    self._insert(child, handle, child_slot, None)
        return handle

    def _subtree(self, handle: int):
        yield handle
        for slot in CHILD_SLOTS.get(self._attrs[handle].get("type"), ()):
            for child in self._slots.get((handle, slot), []):
                yield from self._subtree(child)

    def _raw_subtree(self, handle: int) -> dict[str, Any]:
        raw = copy.deepcopy(self._attrs[handle])
        item_type = raw.get("type")
        for slot in CHILD_SLOTS.get(item_type, ()):
            children = self._slots.get((handle, slot), [])
            if children or slot == "items":
                raw[slot] = [self._raw_subtree(h) for h in children]
        return raw
