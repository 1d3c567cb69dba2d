import math
import operator
from functools import reduce
from typing import Any, Callable, List, Optional, Sequence

import numpy as np

from .broadcast import flatten, get_rank, shape_of
from .dtypes import DataType, cast_dtype, is_floating, is_integer, one_of, zero_of
from .exceptions import ShapeMismatch, UnsupportedReductionAxis

Fold = Callable[[List[Any]], Any]

SUPPORTED_REDUCTION_AXES = (0, 1)


# Scalar functions ----------------------------------------------------------------


def divide(t: Any, u: Any) -> Any:
    if _is_int(t) and _is_int(u):
        return t // u
    if u == 0:
        if t == 0 or (isinstance(t, float) and math.isnan(t)):
            return math.nan
        return math.copysign(math.inf, t) * math.copysign(1.0, u)
    return t / u


def power(t: Any, u: Any) -> Any:
    try:
        result = t**u
    except ZeroDivisionError:
        # zero to a negative power
        return -math.inf if _odd_power_of_negative_zero(t, u) else math.inf
    except OverflowError:
        return -math.inf if t < 0 and _is_odd_integer(u) else math.inf
    if isinstance(result, complex):
        return math.nan
    return result


def _is_odd_integer(u: Any) -> bool:
    return float(u).is_integer() and int(u) % 2 == 1


def _odd_power_of_negative_zero(t: Any, u: Any) -> bool:
    return math.copysign(1.0, t) < 0 and _is_odd_integer(u)


def safe_log(t: Any) -> float:
    if t < 0:
        return math.nan
    if t == 0:
        return -math.inf
    return math.log(t)


def safe_sqrt(t: Any) -> float:
    if t < 0:
        return math.nan
    return math.sqrt(t)


def safe_exp(t: Any) -> float:
    try:
        return math.exp(t)
    except OverflowError:
        return math.inf


def _nan_outside_domain(fn: Callable[[Any], float]) -> Callable[[Any], float]:
    def guarded(t: Any) -> float:
        try:
            return fn(t)
        except ValueError:
            return math.nan

    guarded.__name__ = fn.__name__
    return guarded


safe_sin = _nan_outside_domain(math.sin)
safe_cos = _nan_outside_domain(math.cos)
safe_tan = _nan_outside_domain(math.tan)


def secant(t: Any) -> float:
    cosine = safe_cos(t)
    if cosine == 0:
        return math.inf
    return 1.0 / cosine


def sign(t: Any) -> int:
    if t == 0 or (isinstance(t, float) and math.isnan(t)):
        return 0
    return -1 if t < 0 else 1


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# Construction ---------------------------------------------------------------------


def generate_vector(shape: Any, generator: Callable[[], Any]) -> Any:
    dims = _as_dims(shape)
    if not dims:
        return generator()
    return [generate_vector(dims[1:], generator) for _ in range(dims[0])]


def fill(shape: Any, value: Any) -> Any:
    return generate_vector(shape, lambda: value)


def eye(rows: int, columns: Optional[int], dtype: Any) -> List[List[Any]]:
    columns = rows if columns is None else columns
    on, off = one_of(dtype), zero_of(dtype)
    return [[on if row == col else off for col in range(int(columns))] for row in range(int(rows))]


def sample_uniform(shape: Any, minval: float, maxval: float, rng: np.random.Generator) -> Any:
    return rng.uniform(minval, maxval, size=tuple(_as_dims(shape))).tolist()


def sample_normal(shape: Any, mean: float, stddev: float, rng: np.random.Generator) -> Any:
    return rng.normal(mean, stddev, size=tuple(_as_dims(shape))).tolist()


def _as_dims(shape: Any) -> List[int]:
    if shape is None:
        return []
    if isinstance(shape, (list, tuple)):
        return [int(dim) for dim in shape]
    return [int(shape)]


# Reduction ------------------------------------------------------------------------


def make_fold(kind: str, dtype: Any) -> Fold:
    """Build the fold used by ``reduce_sum``/``reduce_mean``/``reduce_prod``.

    Empty input folds to the dtype-correct identity: 0 for sums and means,
    1 for products (floats for floating dtypes).
    """
    floating = is_floating(dtype)
    zero = 0.0 if floating else 0
    one = 1.0 if floating else 1

    if kind == "sum":
        return lambda values: reduce(operator.add, values) if values else zero
    if kind == "prod":
        return lambda values: reduce(operator.mul, values) if values else one
    if kind == "mean":

        def _mean(values: List[Any]) -> Any:
            if not values:
                return zero
            total = reduce(operator.add, values)
            if is_integer(dtype):
                return total // len(values)
            return total / len(values)

        return _mean
    raise ValueError(f"unknown reduction {kind!r}")


def reduction(value: Any, axis: Any, fold: Fold, keepdims: bool = False) -> Any:
    if isinstance(axis, (list, tuple)):
        axes = {_check_axis(x) for x in axis}
        for x in sorted(axes, reverse=True):
            value = reduce_axis(value, x, fold, keepdims)
        return value
    return reduce_axis(value, axis, fold, keepdims)


def reduce_axis(value: Any, axis: Optional[int], fold: Fold, keepdims: bool = False) -> Any:
    rank = get_rank(value)
    if axis is None:
        result = fold(flatten(value)) if rank else value
        if keepdims:
            for _ in range(rank):
                result = [result]
        return result
    axis = _check_axis(axis)
    if axis >= rank:
        raise ShapeMismatch(f"cannot reduce along axis {axis} of a rank {rank} value")
    if axis == 0:
        reduced = _reduce_outer(value, fold)
        return [reduced] if keepdims else reduced
    rows = [_reduce_outer(row, fold) for row in value]
    return [[row] for row in rows] if keepdims else rows


def _check_axis(axis: Any) -> int:
    if isinstance(axis, bool) or axis not in SUPPORTED_REDUCTION_AXES:
        raise UnsupportedReductionAxis(axis)
    return int(axis)


def _reduce_outer(value: Any, fold: Fold) -> Any:
    if not value or not isinstance(value[0], (list, tuple)):
        return fold(list(value))
    width = _uniform_width(value)
    return [_reduce_outer([row[col] for row in value], fold) for col in range(width)]


def _uniform_width(rows: Sequence[Any]) -> int:
    width = len(rows[0])
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) != width:
            raise ShapeMismatch("ragged nested value", shapes=[shape_of(rows[0]), shape_of(row)])
    return width


def argmax(value: Any, axis: int = 0) -> Any:
    rank = get_rank(value)
    if rank == 0:
        raise ShapeMismatch("argmax needs a value of rank >= 1")
    if axis < 0:
        axis += rank
    if not 0 <= axis < rank:
        raise ShapeMismatch(f"argmax axis {axis} out of range for rank {rank}")
    return _argmax(value, axis)


def _argmax(value: Any, axis: int) -> Any:
    if axis > 0:
        return [_argmax(row, axis - 1) for row in value]
    if not value:
        raise ShapeMismatch("argmax of an empty sequence")
    if isinstance(value[0], (list, tuple)):
        width = _uniform_width(value)
        return [_argmax([row[col] for row in value], 0) for col in range(width)]
    best = 0
    for index in range(1, len(value)):
        if value[index] > value[best]:
            best = index
    return best


# Layout ---------------------------------------------------------------------------


def transpose(value: Any) -> Any:
    rank = get_rank(value)
    if rank < 2:
        return value
    if rank > 2:
        raise ShapeMismatch("transpose only swaps the axes of rank 2 values", shapes=[shape_of(value)])
    width = _uniform_width(value)
    return [[row[col] for row in value] for col in range(width)]


def slice_tensor(value: Any, begin: Sequence[int], size: Sequence[int]) -> Any:
    begin = list(begin)
    size = list(size)
    if len(begin) != len(size):
        raise ShapeMismatch(
            f"start index and size not of the same shape {len(begin)} != {len(size)}"
        )
    return _slice(value, begin, size)


def _slice(value: Any, begin: List[int], size: List[int]) -> Any:
    if not begin:
        return value
    if not isinstance(value, (list, tuple)):
        raise ShapeMismatch("slice has more axes than the value")
    start = int(begin[0])
    stop = len(value) if size[0] == -1 else start + int(size[0])
    if start < 0 or stop < start or stop > len(value):
        raise ShapeMismatch(f"slice [{start}:{stop}] out of bounds for extent {len(value)}")
    return [_slice(item, begin[1:], size[1:]) for item in value[start:stop]]


def concat(values: Sequence[Any], axis: int = 0) -> Any:
    values = list(values)
    if not values:
        return []
    combined = values[0]
    rank = get_rank(combined)
    if axis < 0:
        axis += rank
    if not 0 <= axis < rank:
        raise ShapeMismatch(f"concat axis {axis} out of range for rank {rank}")
    for value in values[1:]:
        combined = _concat_pair(combined, value, axis)
    return combined


def _concat_pair(a: Any, b: Any, axis: int) -> Any:
    if not isinstance(a, (list, tuple)) or not isinstance(b, (list, tuple)):
        raise ShapeMismatch("cannot concatenate scalars")
    if axis == 0:
        return list(a) + list(b)
    if len(a) != len(b):
        raise ShapeMismatch("concat operands disagree off the join axis", shapes=[shape_of(a), shape_of(b)])
    return [_concat_pair(x, y, axis - 1) for x, y in zip(a, b)]


def fix_inferred_elements(shape: Sequence[int], total_size: int) -> List[int]:
    shape = [int(dim) for dim in shape]
    if shape.count(-1) > 1:
        raise ShapeMismatch(f"at most one dimension can be inferred, got {shape}")
    known = 1
    for dim in shape:
        if dim != -1:
            known *= dim
    if -1 in shape:
        if known == 0 or total_size % known:
            raise ShapeMismatch(f"cannot infer a dimension of {shape} for {total_size} elements")
        shape = [total_size // known if dim == -1 else dim for dim in shape]
    elif known != total_size:
        raise ShapeMismatch(f"reshape dimension mismatch: {shape} holds {known} elements, got {total_size}")
    return shape


def reshape(value: Any, new_shape: Sequence[int]) -> Any:
    flat = flatten(value)
    new_shape = list(new_shape)
    if not new_shape:
        if len(flat) != 1:
            raise ShapeMismatch(f"cannot reshape {len(flat)} elements to a scalar")
        return flat[0]
    return _reshape_flat(flat, fix_inferred_elements(new_shape, len(flat)))


def _reshape_flat(flat: List[Any], shape: List[int]) -> Any:
    if len(shape) == 1:
        return list(flat)
    rows = shape[0]
    step = len(flat) // rows if rows else 0
    return [_reshape_flat(flat[i * step : (i + 1) * step], shape[1:]) for i in range(rows)]


def pad(value: Any, paddings: Sequence[Sequence[int]], fill_value: Any) -> Any:
    shape = shape_of(value)
    paddings = [list(pair) for pair in paddings]
    if len(paddings) != len(shape):
        raise ShapeMismatch(f"expected {len(shape)} padding pairs, got {len(paddings)}")
    for pair in paddings:
        if len(pair) != 2:
            raise ShapeMismatch(f"padding {pair} needs to have two elements [before, after]")
        if pair[0] < 0 or pair[1] < 0:
            raise ShapeMismatch(f"padding {pair} must be non-negative")
    if not paddings:
        return value
    padded_shape = [dim + before + after for dim, (before, after) in zip(shape, paddings)]
    return _pad(value, paddings, padded_shape, fill_value)


def _pad(value: Any, paddings: List[List[int]], padded_shape: List[int], fill_value: Any) -> Any:
    before, after = paddings[0]
    if len(paddings) == 1:
        return [fill_value] * before + list(value) + [fill_value] * after
    body = [_pad(item, paddings[1:], padded_shape[1:], fill_value) for item in value]
    head = [fill(padded_shape[1:], fill_value) for _ in range(before)]
    tail = [fill(padded_shape[1:], fill_value) for _ in range(after)]
    return head + body + tail


# Linear algebra -------------------------------------------------------------------


def matmul(
    a: Any,
    b: Any,
    *,
    transpose_a: bool = False,
    transpose_b: bool = False,
    dtype: Any = DataType.FLOAT32,
) -> List[List[Any]]:
    rank_a, rank_b = get_rank(a), get_rank(b)
    if rank_a not in (0, 2) or rank_b not in (0, 2) or rank_a == rank_b == 0:
        raise ShapeMismatch(
            f"matmul operands must be rank 2 (got rank {rank_a} and {rank_b})",
            shapes=[shape_of(a), shape_of(b)],
        )
    if transpose_a:
        a = transpose(a)
    if transpose_b:
        b = transpose(b)
    # a scalar stands for a constant matrix that lines up with the other operand
    if rank_a == 0:
        a = _constant_matrix(a, b, dtype)
    if rank_b == 0:
        b = _constant_matrix(b, a, dtype)

    inner = len(a[0]) if a else 0
    if inner != len(b):
        raise ShapeMismatch(
            f"incompatible shape sizes for matrix multiplication ({inner} != {len(b)})",
            shapes=[shape_of(a), shape_of(b)],
        )
    columns = len(b[0]) if b else 0
    return [
        [sum(row[k] * b[k][col] for k in range(inner)) for col in range(columns)]
        for row in a
    ]


def _constant_matrix(scalar: Any, other: Any, dtype: Any) -> Any:
    value = cast_dtype(scalar, DataType.INT32 if is_integer(dtype) else DataType.FLOAT32)
    return fill(list(reversed(shape_of(other))), value)
