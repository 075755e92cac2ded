"""
Template validation — static checks run before a template is saved.

Checks, over the whole tree (block items, yesno yes/no branches):
    DUPLICATE_ID        an id used by more than one item (reported once)
    INVALID_ID_FORMAT   id outside [A-Za-z0-9_-]
    MISSING_ID          line, box, check, yesno or group item without an id
    MISSING_CHOICES     radiogroup or checkgroup with no choices
    MISSING_TYPE        item with no "type"

Checkgroup choice ids are answer keys, so they join the uniqueness and
charset checks.  Radiogroup choice ids are stored as values under the group
id and are not checked; radio and tip items may omit their id.

The document is never modified; callers reject the save when the returned
list is non-empty.
"""

from __future__ import annotations

from dataclasses import dataclass

from vsaq.engine.document import (
    ID_PATTERN,
    Block,
    Box,
    Check,
    CheckGroup,
    Document,
    Info,
    Line,
    Radio,
    RadioGroup,
    Spacer,
    Tip,
    UnknownItem,
    YesNo,
)

DUPLICATE_ID = "DUPLICATE_ID"
INVALID_ID_FORMAT = "INVALID_ID_FORMAT"
MISSING_ID = "MISSING_ID"
MISSING_CHOICES = "MISSING_CHOICES"
MISSING_TYPE = "MISSING_TYPE"


@dataclass(frozen=True)
class ValidationIssue:
    """Single template validation finding."""
    code: str
    message: str
    item_id: str | None = None
    handle: int | None = None

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "item_id": self.item_id,
            "handle": self.handle,
        }


class _IdRegistry:
    def __init__(self):
        self.seen: set[str] = set()
        self.reported: set[str] = set()

    def claim(self, item_id: str, handle: int, issues: list[ValidationIssue]) -> None:
        if item_id in self.seen:
            if item_id not in self.reported:
                self.reported.add(item_id)
                issues.append(ValidationIssue(
                    DUPLICATE_ID, f"Duplicate ID: {item_id}", item_id=item_id, handle=handle,
                ))
            return
        self.seen.add(item_id)


def _check_format(item_id: str, handle: int, issues: list[ValidationIssue]) -> None:
    if not ID_PATTERN.match(item_id):
        issues.append(ValidationIssue(
            INVALID_ID_FORMAT,
            f'Invalid ID "{item_id}": only letters, numbers, underscore and hyphen allowed',
            item_id=item_id,
            handle=handle,
        ))


def _require_id(item, issues: list[ValidationIssue]) -> None:
    if not item.id:
        issues.append(ValidationIssue(
            MISSING_ID, f"{item.item_type} item #{item.handle}: ID is required", handle=item.handle,
        ))


def validate(document: Document) -> list[ValidationIssue]:
    """Return every validation issue found in ``document`` (document order)."""
    issues: list[ValidationIssue] = []
    ids = _IdRegistry()

    for handle in document.walk():
        item = document.node(handle)
        item_id = getattr(item, "id", "")
        if item_id:
            ids.claim(item_id, handle, issues)
            _check_format(item_id, handle, issues)

        match item:
            case Line() | Box() | Check() | YesNo():
                _require_id(item, issues)
            case RadioGroup() | CheckGroup():
                _require_id(item, issues)
                if not item.choices:
                    issues.append(ValidationIssue(
                        MISSING_CHOICES,
                        f"{item.item_type} item #{handle}: at least one choice required",
                        item_id=item.id or None,
                        handle=handle,
                    ))
                if isinstance(item, CheckGroup):
                    for choice in item.choices:
                        if choice.id:
                            ids.claim(choice.id, handle, issues)
                        _check_format(choice.id, handle, issues)
            case UnknownItem():
                if not item.item_type:
                    issues.append(ValidationIssue(
                        MISSING_TYPE, f"Item #{handle}: missing type", handle=handle,
                    ))
            case Block() | Info() | Spacer() | Radio() | Tip():
                pass

    return issues


def is_valid(document: Document) -> bool:
    return not validate(document)
