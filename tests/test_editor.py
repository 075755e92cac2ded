"""
Authoring session tests — explicit editor state instead of module globals.
"""

import json

import pytest

from vsaq.core.exceptions import NotFoundError, ValidationError
from vsaq.engine.document import parse, serialize, to_raw
from vsaq.engine.editor import ROOT, EditorSession
from vsaq.engine.validation import DUPLICATE_ID

from conftest import simple_content


@pytest.fixture()
def editor():
    return EditorSession.from_document(parse(simple_content()))


def test_from_document_round_trips(editor):
    assert not editor.dirty
    assert to_raw(editor.to_document()) == to_raw(parse(simple_content()))


def test_from_document_leaves_document_untouched():
    nested = {"type": "line", "id": "a", "text": "A"}
    doc = parse({"items": [
        {"type": "section", "items": [nested]},
        {"type": "block", "text": "B", "items": [{"type": "future", "yes": [nested]}]},
    ]})
    before = serialize(doc)

    session = EditorSession.from_document(doc)

    assert serialize(doc) == before
    section, block = session.children()
    assert session.item(section) == {"type": "section", "items": [nested]}
    raw = session.to_raw()
    assert raw["items"][0] == {"type": "section", "items": [nested]}
    assert raw["items"][1]["items"] == [{"type": "future", "yes": [nested]}]


def test_sessions_are_independent():
    first, second = EditorSession(), EditorSession()
    h = first.add_item({"type": "info", "text": "only here"})
    first.select(h)
    assert second.children() == []
    assert second.selected is None


def test_default_items_get_fresh_ids(editor):
    assert editor.default_item("line")["id"] == "q_1"
    editor.add_item(editor.default_item("line"))
    assert editor.default_item("box")["id"] == "q_2"
    assert editor.default_item("tip")["id"] == "tip_1"
    assert "id" not in editor.default_item("block")
    assert "id" not in editor.default_item("spacer")


def test_default_item_unknown_type(editor):
    with pytest.raises(ValidationError):
        editor.default_item("matrix")


def test_add_into_yes_branch(editor):
    yesno = editor.children()[0]
    h = editor.add_item({"type": "box", "id": "evidence", "text": "Evidence"}, parent=yesno, slot="yes")
    assert editor.location(h) == (yesno, "yes", 1)
    raw = editor.to_raw()
    assert [c["id"] for c in raw["items"][0]["yes"]] == ["detail", "evidence"]
    assert editor.dirty


def test_add_at_position(editor):
    h = editor.add_item({"type": "info", "text": "Intro"}, position=0)
    assert editor.children()[0] == h


def test_bad_slot_rejected(editor):
    detail = editor.children(editor.children()[0], "yes")[0]
    with pytest.raises(ValidationError):
        editor.add_item({"type": "line", "id": "x"}, parent=detail, slot="items")
    with pytest.raises(ValidationError):
        editor.add_item({"type": "line", "id": "x"}, parent=ROOT, slot="yes")


def test_update_item(editor):
    yesno = editor.children()[0]
    editor.update_item(yesno, text="Security team?", required=True)
    editor.update_item(yesno, required=None)
    item = editor.item(yesno)
    assert item["text"] == "Security team?"
    assert "required" not in item


def test_update_refuses_children_and_type_change(editor):
    yesno = editor.children()[0]
    with pytest.raises(ValidationError):
        editor.update_item(yesno, yes=[])
    with pytest.raises(ValidationError):
        editor.update_item(yesno, type="line")


def test_item_returns_copy(editor):
    yesno = editor.children()[0]
    editor.item(yesno)["text"] = "mutated"
    assert editor.item(yesno)["text"] != "mutated"


def test_remove_subtree_clears_selection(editor):
    yesno = editor.children()[0]
    detail = editor.children(yesno, "yes")[0]
    editor.select(detail)
    editor.remove_item(yesno)
    assert editor.children() == []
    assert detail not in editor
    assert editor.selected is None
    with pytest.raises(NotFoundError):
        editor.item(detail)


def test_move_between_slots(editor):
    yesno = editor.children()[0]
    detail = editor.children(yesno, "yes")[0]
    editor.move_item(detail, parent=yesno, slot="no")
    raw = editor.to_raw()["items"][0]
    assert "yes" not in raw
    assert raw["no"][0]["id"] == "detail"


def test_move_into_own_subtree_refused(editor):
    block = editor.add_item({"type": "block", "items": [{"type": "block"}]})
    inner = editor.children(block)[0]
    with pytest.raises(ValidationError):
        editor.move_item(block, parent=inner)


def test_validate_and_to_json(editor):
    editor.add_item({"type": "line", "id": "detail"})
    assert [i.code for i in editor.validate()] == [DUPLICATE_ID]
    payload = json.loads(editor.to_json())
    assert payload["version"] == 1
    assert len(payload["items"]) == 2


def test_unknown_handle(editor):
    with pytest.raises(NotFoundError):
        editor.select(999)
