import pytest

from weave import DataType, Graph, OpTag, TensorShape


def test_names_are_unique_within_a_graph(graph):
    first = graph.constant(1.0, name="x")
    second = graph.constant(2.0, name="x")
    third = graph.constant(3.0, name="x")
    assert (first.name, second.name, third.name) == ("x", "x_1", "x_2")
    assert graph.get_node("x_1") is second
    assert len(graph) == 3


def test_default_names_follow_node_kind(graph):
    const = graph.constant(1)
    var = graph.variable(2)
    ph = graph.placeholder()
    op = graph.operation("add", const, var)
    assert const.name == "Const"
    assert var.name == "Variable"
    assert ph.name == "Placeholder"
    assert op.name == "add"
    assert [node.name for node in graph] == ["Const", "Variable", "Placeholder", "add"]


def test_graphs_do_not_share_names():
    a, b = Graph(), Graph()
    assert a.constant(1).name == b.constant(1).name == "Const"


def test_unknown_name_lookup(graph):
    with pytest.raises(KeyError):
        graph.get_node("missing")


def test_constant_infers_dtype_and_shape(graph):
    node = graph.constant([[1, 2, 3], [4, 5, 6]])
    assert node.data_type is DataType.INT32
    assert node.shape == TensorShape((2, 3))
    assert node.rank == 2
    assert node.is_const


def test_flat_value_is_reshaped_to_declared_shape(graph):
    node = graph.constant([1, 2, 3, 4, 5, 6], shape=[2, 3])
    assert node.value == [[1, 2, 3], [4, 5, 6]]


def test_scalar_value_fills_declared_shape(graph):
    node = graph.constant(7, DataType.FLOAT32, shape=[2, 2])
    assert node.value == [[7.0, 7.0], [7.0, 7.0]]


def test_constant_value_is_cast(graph):
    assert graph.constant([1, 2], DataType.FLOAT64).value == [1.0, 2.0]


def test_operation_checks_arity(graph):
    a = graph.constant(1)
    with pytest.raises(ValueError):
        graph.operation("add", a)
    with pytest.raises(ValueError):
        graph.operation(OpTag.NEGATE, a, a)


def test_operation_dtype_inference(graph):
    a = graph.constant([1.0, 2.0])
    b = graph.constant([1.0, 3.0])
    assert graph.operation("less", a, b).data_type is DataType.BOOLEAN
    assert graph.operation("argmax", a).data_type is DataType.INT32
    assert graph.operation("add", a, b).data_type is DataType.FLOAT32
    assert graph.operation("cast", a, dtype="int16").data_type is DataType.INT16


def test_operation_options_and_static_shape(graph):
    op = graph.operation("zeros", dtype="int32", static_shape=[2, 2], name="z")
    assert op.operation is OpTag.ZEROS
    assert op.options == {}
    assert op.shape.dims == (2, 2)
    reshape = graph.operation("reshape", graph.constant([1, 2]), shape=[2, 1])
    assert reshape.options == {"shape": [2, 1]}


def test_source_points_at_caller(graph):
    node = graph.constant(1)
    assert node.source is not None
    assert "test_graph.py" in node.source


def test_to_math_renders_expression(graph):
    x = graph.placeholder(name="x")
    y = graph.variable(2.0, name="y")
    op = graph.operation("mul", graph.operation("add", x, y), graph.constant(3.0))
    assert op.to_math() == "mul(add, Const)"
    assert graph.operation("add", x, y).to_math() == "add(x, y)"
    assert graph.constant([1, 2]).to_math() == [1, 2]


def test_breakpoint_setter_is_chainable(graph):
    node = graph.constant(1)
    assert node.set_breakpoint(print) is node
    assert node.breakpoint is print


def test_unknown_shape():
    shape = TensorShape.of(None)
    assert shape.rank is None
    assert not shape.is_fully_defined
    assert str(TensorShape.of([2, None])) == "(2, ?)"


def test_to_math_name_only_stops_at_the_node(graph):
    x = graph.placeholder(name="x")
    inner = graph.operation("add", x, x, name="inner")
    outer = graph.operation("negate", inner)
    assert inner.to_math(name_only=True) == "inner"
    assert outer.to_math() == "negate(inner)"
    assert outer.to_math(max_depth=0) == outer.name


def test_constructors_default_to_float32(graph):
    dims = graph.constant([2])
    assert graph.operation("zeros", dims).data_type is DataType.FLOAT32
    assert graph.operation("eye", graph.constant(2)).data_type is DataType.FLOAT32
    assert graph.operation("random_uniform", shape=[2]).data_type is DataType.FLOAT32
    assert graph.operation("ones", dims, dtype="int32").data_type is DataType.INT32


def test_assign_casts_to_the_variable_dtype(graph):
    counter = graph.variable(3, name="counter")
    assert counter.assign(4.7) == 4
    assert counter.value == 4 and isinstance(counter.value, int)
    weights = graph.variable([0.0, 0.0])
    assert weights.assign([1, True]) == [1.0, 1.0]
