import operator

import numpy as np
import pytest

from weave.core import builtins
from weave.core.broadcast import binary_op
from weave.core.dtypes import DataType

hypothesis = pytest.importorskip("hypothesis")
from hypothesis import given  # noqa: E402
from hypothesis import strategies as st  # noqa: E402


@st.composite
def broadcastable_shapes(draw):
    # full shape of rank 1-3, sizes 1..4; each side may drop leading axes or squeeze to 1
    base = draw(st.lists(st.integers(min_value=1, max_value=4), min_size=1, max_size=3))
    drop = draw(st.integers(min_value=0, max_value=len(base) - 1))
    shape_a = [1 if draw(st.booleans()) else dim for dim in base]
    shape_b = [1 if draw(st.booleans()) else dim for dim in base[drop:]]
    if draw(st.booleans()):
        shape_a, shape_b = shape_b, shape_a
    return shape_a, shape_b


def _array(shape, offset=0):
    return (np.arange(int(np.prod(shape))) + offset).reshape(shape)


@pytest.mark.parametrize("op", [operator.add, operator.sub, operator.mul])
@given(broadcastable_shapes())
def test_binary_op_matches_numpy_broadcasting(op, shapes):
    shape_a, shape_b = shapes
    a = _array(shape_a)
    b = _array(shape_b, offset=5)
    assert binary_op(a.tolist(), b.tolist(), op) == op(a, b).tolist()


@given(
    st.lists(st.integers(min_value=1, max_value=4), min_size=2, max_size=2),
    st.sampled_from([0, 1, [0, 1]]),
    st.booleans(),
)
def test_reduce_sum_matches_numpy(shape, axis, keepdims):
    value = _array(shape)
    fold = builtins.make_fold("sum", DataType.INT32)
    expected = np.sum(value, axis=tuple(axis) if isinstance(axis, list) else axis, keepdims=keepdims)
    assert builtins.reduction(value.tolist(), axis, fold, keepdims) == expected.tolist()


@given(st.lists(st.integers(min_value=1, max_value=3), min_size=1, max_size=3))
def test_reshape_matches_numpy(shape):
    flat = list(range(int(np.prod(shape))))
    assert builtins.reshape(flat, shape) == np.reshape(flat, shape).tolist()
    assert builtins.reshape(builtins.reshape(flat, shape), [-1]) == flat
