"""
Visibility condition evaluator.

Condition forms accepted in an item's ``cond``:
    "q1/yes"                        q1 == "yes"
    {"and": [c1, c2, ...]}          every
    {"or":  [c1, c2, ...]}          some
    {"not": c}                      negation
    {"q1": "yes"}                   q1 == "yes"

For the bare map form only the first non-operator key is tested; further
keys are ignored rather than combined.
An operator whose operand is null, false, "" or 0 is treated as absent.

Evaluation is pure: the answer map is only read, and nothing is cached.
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping

_OPERATORS = ("and", "or", "not")


def _strict_equals(left: Any, right: Any) -> bool:
    # bool is a subclass of int; True must not match 1.
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    if isinstance(left, (int, float)) and isinstance(right, str):
        return False
    if isinstance(left, str) and isinstance(right, (int, float)):
        return False
    return left == right


def _has_operand(condition: dict, op: str) -> bool:
    # null, false, "" and 0 operands count as absent
    operand = condition.get(op)
    if operand is None or operand is False or operand == "":
        return False
    return not (type(operand) in (int, float) and operand == 0)


def _equals_answer(answers: Mapping[str, Any], item_id: Any, value: Any) -> bool:
    if not isinstance(item_id, str) or item_id not in answers:
        return False
    return _strict_equals(answers[item_id], value)


def evaluate(condition: Any, answers: Mapping[str, Any]) -> bool:
    """Return True when an item guarded by ``condition`` should be visible."""
    if condition is None:
        return True

    if isinstance(condition, str):
        item_id, sep, value = condition.partition("/")
        if not sep:
            return False
        return _equals_answer(answers, item_id, value)

    if not isinstance(condition, dict):
        return False

    if _has_operand(condition, "and"):
        operands = condition["and"]
        if not isinstance(operands, list):
            return False
        return all(evaluate(c, answers) for c in operands)

    if _has_operand(condition, "or"):
        operands = condition["or"]
        if not isinstance(operands, list):
            return False
        return any(evaluate(c, answers) for c in operands)

    if _has_operand(condition, "not"):
        return not evaluate(condition["not"], answers)

    for key, value in condition.items():
        if key not in _OPERATORS:
            return _equals_answer(answers, key, value)

    return True


def referenced_ids(condition: Any) -> Iterator[str]:
    """Yield the answer ids ``condition`` can read, in evaluation order."""
    if isinstance(condition, str):
        item_id, sep, _ = condition.partition("/")
        if sep:
            yield item_id
    elif isinstance(condition, dict):
        for op in _OPERATORS:
            if _has_operand(condition, op):
                operands = condition[op]
                if op == "not":
                    yield from referenced_ids(operands)
                elif isinstance(operands, list):
                    for operand in operands:
                        yield from referenced_ids(operand)
                return
        first = next((key for key in condition if key not in _OPERATORS), None)
        if isinstance(first, str):
            yield first
