"""
Template validation engine tests.
"""

from vsaq.engine.document import from_items, parse
from vsaq.engine.validation import (
    DUPLICATE_ID,
    INVALID_ID_FORMAT,
    MISSING_CHOICES,
    MISSING_ID,
    MISSING_TYPE,
    is_valid,
    validate,
)

from conftest import simple_content


def _codes(items):
    return [issue.code for issue in validate(from_items(items))]


def test_valid_document_has_no_issues():
    doc = parse(simple_content())
    assert validate(doc) == []
    assert is_valid(doc)


def test_duplicate_across_branches_reported_once():
    issues = validate(from_items([
        {"type": "yesno", "id": "dup",
         "yes": [{"type": "line", "id": "dup"}],
         "no": [{"type": "box", "id": "dup"}]},
    ]))
    assert [i.code for i in issues] == [DUPLICATE_ID]
    assert issues[0].item_id == "dup"
    assert issues[0].to_dict()["handle"] == 1


def test_invalid_id_format():
    assert _codes([{"type": "line", "id": "has space"}]) == [INVALID_ID_FORMAT]
    assert _codes([{"type": "line", "id": "ok_id-2"}]) == []


def test_missing_id_for_answerable_items():
    assert _codes([
        {"type": "line"}, {"type": "yesno"}, {"type": "checkgroup", "choices": [{"a": "A"}]},
    ]) == [MISSING_ID, MISSING_ID, MISSING_ID]


def test_radio_and_tip_may_omit_id():
    assert _codes([
        {"type": "radio", "text": "Pick", "choices": [{"value": "a", "text": "A"}]},
        {"type": "tip", "text": "Rotate keys yearly"},
    ]) == []


def test_containers_and_display_items_need_no_id():
    assert _codes([
        {"type": "block", "items": [{"type": "info", "text": "hi"}, {"type": "spacer"}]},
    ]) == []


def test_group_without_choices():
    assert _codes([{"type": "radiogroup", "id": "rg", "choices": []}]) == [MISSING_CHOICES]
    assert _codes([{"type": "checkgroup", "id": "cg"}]) == [MISSING_CHOICES]


def test_checkgroup_choice_ids_join_uniqueness():
    assert _codes([
        {"type": "line", "id": "soc2"},
        {"type": "checkgroup", "id": "certs", "choices": [{"soc2": "SOC 2"}]},
    ]) == [DUPLICATE_ID]
    # radiogroup choices are values under the group id
    assert _codes([
        {"type": "line", "id": "daily"},
        {"type": "radiogroup", "id": "freq", "choices": [{"daily": "Daily"}]},
    ]) == []


def test_choice_id_charset_only_for_checkgroup():
    assert _codes([{"type": "checkgroup", "id": "cg", "choices": [{"bad id": "x"}]}]) == [INVALID_ID_FORMAT]
    assert _codes([{"type": "radiogroup", "id": "rg", "choices": [{"bad id": "x"}]}]) == []


def test_missing_type_vs_unknown_type():
    assert _codes([{"id": "x", "text": "no type"}]) == [MISSING_TYPE]
    assert _codes([{"type": "matrix", "id": "m"}]) == []


def test_nested_block_items_are_traversed():
    codes = _codes([
        {"type": "block", "items": [
            {"type": "block", "items": [{"type": "check", "id": "a"}, {"type": "check", "id": "a"}]},
        ]},
    ])
    assert codes == [DUPLICATE_ID]
