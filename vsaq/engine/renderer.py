"""
Questionnaire renderer / walker.

``render()`` walks a ``Document`` in pre-order and builds a ``Presentation``:
the tree of *mounted* nodes a respondent currently sees, each carrying the
result of its visibility condition.  A yesno item mounts its ``yes`` branch
only when its answer is exactly "yes" and its ``no`` branch only when it is
exactly "no".

After every answer change the caller runs ``recompute_visibility()``, which
re-evaluates conditions in place and mounts/unmounts yesno branches whose
answer changed, leaving every other subtree untouched.  ``progress()`` then
counts answered items over the visible, mounted answerable ones.

Hidden or unmounted items keep their answers; the renderer never clears or
rewrites the answer map, and never mutates the Document.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping

from vsaq.engine.conditions import evaluate
from vsaq.engine.document import (
    ANSWERABLE_TYPES,
    Block,
    Box,
    Check,
    CheckGroup,
    Document,
    Info,
    Item,
    Line,
    Radio,
    RadioGroup,
    Spacer,
    Tip,
    UnknownItem,
    YesNo,
)

logger = logging.getLogger(__name__)

YES = "yes"
NO = "no"


def is_answered(value: Any) -> bool:
    """An answer counts when it is neither missing nor the empty string."""
    return value is not None and value != ""


def flatten_answers(records: Mapping[str, Any]) -> dict[str, Any]:
    """Turn ``{qid: {value, version, updated_at}}`` into ``{qid: value}``."""
    flat = {}
    for question_id, record in records.items():
        flat[question_id] = record.get("value") if isinstance(record, dict) else record
    return flat


def _branch_for(item: YesNo, answers: Mapping[str, Any]) -> str | None:
    value = answers.get(item.id) if item.id else None
    if isinstance(value, str) and value in (YES, NO):
        return value
    return None


@dataclass
class Progress:
    answered: int
    total: int

    @property
    def percent(self) -> int:
        if self.total == 0:
            return 0
        # Half-up rounding: 12.5 -> 13.
        return int(math.floor(100 * self.answered / self.total + 0.5))

    def to_dict(self) -> dict:
        return {"answered": self.answered, "total": self.total, "percent": self.percent}


@dataclass
class RenderedNode:
    """One mounted item of the presentation."""
    handle: int
    item: Item
    depth: int
    visible: bool = True
    branch: str | None = None
    children: list[RenderedNode] = field(default_factory=list)

    @property
    def item_type(self) -> str:
        return self.item.item_type

    @property
    def item_id(self) -> str:
        return getattr(self.item, "id", "") or ""

    @property
    def is_answerable(self) -> bool:
        return self.item_type in ANSWERABLE_TYPES and bool(self.item_id)

    def subtree(self) -> Iterator[RenderedNode]:
        yield self
        for child in self.children:
            yield from child.subtree()

    def to_dict(self, answers: Mapping[str, Any]) -> dict:
        item = self.item
        out: dict[str, Any] = {
            "handle": self.handle,
            "type": self.item_type,
            "depth": self.depth,
            "visible": self.visible,
        }
        if self.item_id:
            out["id"] = self.item_id

        match item:
            case Block() | Info():
                out["text"] = item.text
            case Tip():
                out.update({
                    "text": item.text,
                    "severity": item.severity or "medium",
                    "why": item.why,
                    "name": item.name,
                    "warn": item.warn,
                })
            case Spacer():
                pass
            case Line() | Box():
                out.update({
                    "text": item.text,
                    "required": item.required,
                    "placeholder": item.placeholder,
                    "value": answers.get(item.id, ""),
                })
            case Check():
                out.update({
                    "text": item.text,
                    "required": item.required,
                    "checked": answers.get(item.id) == YES,
                    "value": answers.get(item.id, ""),
                })
            case YesNo():
                out.update({
                    "text": item.text,
                    "required": item.required,
                    "value": answers.get(item.id, ""),
                    "branch": self.branch,
                })
            case Radio():
                current = answers.get(item.id)
                out.update({
                    "text": item.text,
                    "required": item.required,
                    "value": current if current is not None else "",
                    "options": [
                        {"value": c.value, "text": c.text or c.value, "selected": current == c.value}
                        for c in item.choices
                    ],
                })
            case RadioGroup():
                current = answers.get(item.id)
                selected = current if is_answered(current) else item.default_choice
                out.update({
                    "text": item.text,
                    "required": item.required,
                    "value": selected or "",
                    "options": [
                        {"id": c.id, "label": c.label, "selected": selected == c.id}
                        for c in item.choices
                    ],
                })
            case CheckGroup():
                any_answered = any(is_answered(answers.get(c.id)) for c in item.choices)
                out.update({
                    "text": item.text,
                    "required": item.required,
                    "options": [
                        {
                            "id": c.id,
                            "label": c.label,
                            "checked": (
                                answers.get(c.id) == YES if any_answered
                                else item.default_choice == c.id
                            ),
                        }
                        for c in item.choices
                    ],
                })
            case UnknownItem():
                out["type"] = item.item_type or "unknown"
                out["supported"] = False

        if self.children:
            out["children"] = [child.to_dict(answers) for child in self.children]
        return out


class Presentation:
    """Mounted view of a document for one answer state.

    Holds only derived state; the Document it was rendered from is shared
    and read-only.
    """

    def __init__(self, document: Document, roots: list[RenderedNode]):
        self.document = document
        self.roots = roots
        self._index: dict[int, RenderedNode] = {}
        self.reindex()

    def reindex(self) -> None:
        self._index = {node.handle: node for node in self.iter_nodes()}

    def iter_nodes(self, visible_only: bool = False) -> Iterator[RenderedNode]:
        """Pre-order over mounted nodes; ``visible_only`` prunes hidden subtrees."""
        stack = list(reversed(self.roots))
        while stack:
            node = stack.pop()
            if visible_only and not node.visible:
                continue
            yield node
            stack.extend(reversed(node.children))

    def node(self, handle: int) -> RenderedNode | None:
        return self._index.get(handle)

    def is_mounted(self, handle: int) -> bool:
        return handle in self._index

    def is_visible(self, handle: int) -> bool:
        """True when the item is mounted and neither it nor an ancestor is hidden."""
        if handle not in self._index:
            return False
        current: int | None = handle
        while current is not None:
            rendered = self._index.get(current)
            if rendered is None or not rendered.visible:
                return False
            current = self.document.parent(current)
        return True

    def visible_answerable(self) -> list[RenderedNode]:
        return [n for n in self.iter_nodes(visible_only=True) if n.is_answerable]

    def visible_ids(self) -> list[str]:
        return [n.item_id for n in self.visible_answerable()]

    def to_dict(self, answers: Mapping[str, Any]) -> dict:
        return {
            "version": self.document.version,
            "items": [node.to_dict(answers) for node in self.roots],
            "progress": progress(self, answers).to_dict(),
        }


# ═════════════════════════════════════════════════════════════════════════════
# Public API
# ═════════════════════════════════════════════════════════════════════════════


def _mount(document: Document, handle: int, answers: Mapping[str, Any], depth: int) -> RenderedNode:
    item = document.node(handle)
    node = RenderedNode(
        handle=handle,
        item=item,
        depth=depth,
        visible=evaluate(getattr(item, "cond", None), answers),
    )
    match item:
        case Block():
            node.children = [_mount(document, h, answers, depth + 1) for h in item.items]
        case YesNo():
            node.branch = _branch_for(item, answers)
            node.children = _mount_branch(document, item, node.branch, answers, depth + 1)
        case _:
            pass
    return node


def _mount_branch(
    document: Document,
    item: YesNo,
    branch: str | None,
    answers: Mapping[str, Any],
    depth: int,
) -> list[RenderedNode]:
    if branch == YES:
        handles = item.yes
    elif branch == NO:
        handles = item.no
    else:
        return []
    return [_mount(document, h, answers, depth) for h in handles]


def render(document: Document, answers: Mapping[str, Any]) -> Presentation:
    """Build the presentation of ``document`` for the given answers."""
    roots = [_mount(document, h, answers, 0) for h in document.roots]
    return Presentation(document, roots)


def _refresh(
    presentation: Presentation,
    node: RenderedNode,
    answers: Mapping[str, Any],
    changed: set[int],
) -> None:
    visible = evaluate(getattr(node.item, "cond", None), answers)
    if visible != node.visible:
        node.visible = visible
        changed.add(node.handle)

    if isinstance(node.item, YesNo):
        wanted = _branch_for(node.item, answers)
        if wanted != node.branch:
            for child in node.children:
                changed.update(n.handle for n in child.subtree())
            node.branch = wanted
            node.children = _mount_branch(
                presentation.document, node.item, wanted, answers, node.depth + 1,
            )
            for child in node.children:
                changed.update(n.handle for n in child.subtree())
            # Freshly mounted nodes were evaluated against the current answers.
            return

    for child in node.children:
        _refresh(presentation, child, answers, changed)


def recompute_visibility(presentation: Presentation, answers: Mapping[str, Any]) -> set[int]:
    """Bring ``presentation`` up to date with ``answers`` in place.

    Returns the handles whose visibility flipped or that were mounted or
    unmounted.
    """
    changed: set[int] = set()
    for root in presentation.roots:
        _refresh(presentation, root, answers, changed)
    if changed:
        presentation.reindex()
        logger.debug("Visibility recomputed: %d node(s) changed", len(changed))
    return changed


def progress(presentation: Presentation, answers: Mapping[str, Any]) -> Progress:
    """Answered / total over visible, mounted answerable items."""
    visible = presentation.visible_answerable()
    answered = sum(1 for node in visible if is_answered(answers.get(node.item_id)))
    return Progress(answered=answered, total=len(visible))
