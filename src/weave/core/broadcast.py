"""Elementwise combinators over nested Python lists.

Values are scalars or (possibly nested) lists. Broadcasting follows the
familiar numpy outcome: a lower-rank operand gains leading axes of extent 1
until the ranks agree, and an extent of 1 then stretches to match the other
side. Anything else raises :class:`ShapeMismatch`.
"""

from __future__ import annotations

from typing import Any, Callable, List

from .exceptions import ShapeMismatch

BinaryFn = Callable[[Any, Any], Any]


def get_rank(value: Any) -> int:
    rank = 0
    while isinstance(value, (list, tuple)):
        rank += 1
        if not value:
            break
        value = value[0]
    return rank


def shape_of(value: Any) -> List[int]:
    shape: List[int] = []
    while isinstance(value, (list, tuple)):
        shape.append(len(value))
        if not value:
            break
        value = value[0]
    return shape


def flatten(value: Any) -> List[Any]:
    if not isinstance(value, (list, tuple)):
        return [value]
    flat: List[Any] = []
    for item in value:
        if isinstance(item, (list, tuple)):
            flat.extend(flatten(item))
        else:
            flat.append(item)
    return flat


def all_true(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return all(all_true(item) for item in value)
    return bool(value)


def map_elementwise(value: Any, fn: Callable[[Any], Any]) -> Any:
    if isinstance(value, (list, tuple)):
        return [map_elementwise(item, fn) for item in value]
    return fn(value)


def binary_op(a: Any, b: Any, op: BinaryFn) -> Any:
    """Combine two concrete values elementwise with broadcasting."""
    rank_a = get_rank(a)
    rank_b = get_rank(b)
    if rank_a == 0 and rank_b == 0:
        return op(a, b)
    if rank_a == 0:
        return constant_op(b, a, op, switch=True)
    if rank_b == 0:
        return constant_op(a, b, op)
    return vector_op(a, b, op)


def vector_op(a: Any, b: Any, op: BinaryFn) -> Any:
    rank_a = get_rank(a)
    rank_b = get_rank(b)
    if rank_b == 0:
        return constant_op(a, b, op)
    if rank_a == 0:
        return constant_op(b, a, op, switch=True)
    # promote the lower-rank side with a leading axis of extent 1
    if rank_a < rank_b:
        return vector_op([a], b, op)
    if rank_a > rank_b:
        return vector_op(a, [b], op)

    length = _broadcast_length(a, b)
    result = []
    for index in range(length):
        x = _pick(a, index)
        y = _pick(b, index)
        if isinstance(x, (list, tuple)):
            result.append(vector_op(x, y, op))
        elif isinstance(y, (list, tuple)):
            result.append(constant_op(y, x, op, switch=True))
        else:
            result.append(op(x, y))
    return result


def constant_op(vector: Any, constant: Any, op: BinaryFn, switch: bool = False) -> Any:
    """Combine ``vector`` with a scalar, or a list applied positionally.

    ``switch`` puts ``constant`` on the left-hand side of ``op``.
    """
    if not isinstance(vector, (list, tuple)):
        return op(constant, vector) if switch else op(vector, constant)
    is_list = isinstance(constant, (list, tuple))
    if is_list and len(constant) not in (1, len(vector)):
        raise ShapeMismatch(
            "incompatible tensor shapes used during op",
            shapes=[shape_of(vector), shape_of(constant)],
        )
    result = []
    for index, item in enumerate(vector):
        c = _pick(constant, index) if is_list else constant
        if isinstance(item, (list, tuple)):
            result.append(constant_op(item, c, op, switch))
        elif isinstance(c, (list, tuple)):
            result.append(constant_op(c, item, op, not switch))
        else:
            result.append(op(c, item) if switch else op(item, c))
    return result


def three_way_op(pred: Any, a: Any, b: Any, op: Callable[[Any, Any, Any], Any]) -> Any:
    """Elementwise ternary combinator; all three operands must already conform."""
    if not isinstance(pred, (list, tuple)):
        return op(pred, a, b)
    if (
        not isinstance(a, (list, tuple))
        or not isinstance(b, (list, tuple))
        or len(a) != len(pred)
        or len(b) != len(pred)
    ):
        raise ShapeMismatch(
            "operands must match the predicate shape",
            shapes=[shape_of(pred), shape_of(a), shape_of(b)],
        )
    return [three_way_op(p, x, y, op) for p, x, y in zip(pred, a, b)]


def _broadcast_length(a: Any, b: Any) -> int:
    len_a, len_b = len(a), len(b)
    if len_a == len_b or len_b == 1:
        return len_a
    if len_a == 1:
        return len_b
    raise ShapeMismatch(
        "incompatible tensor shapes used during op",
        shapes=[shape_of(a), shape_of(b)],
    )


def _pick(seq: Any, index: int) -> Any:
    return seq[0] if len(seq) == 1 else seq[index]
