import logging

import pytest

from weave import (
    DataType,
    EvaluationError,
    Evaluator,
    ExecutionConfig,
    ExecutionContext,
    Graph,
    MissingPlaceholder,
    Operation,
    OpTag,
    ShapeMismatch,
    UninitializedVariable,
    UnknownOperation,
    evaluate,
    is_symbolic,
)


def test_plain_tensor_resolves_to_value(graph):
    node = graph.constant([[1, 2], [3, 4]])
    assert evaluate(node) == [[1, 2], [3, 4]]


def test_tensor_holding_another_node_resolves_through_it(graph):
    inner = graph.constant([1.0, 2.0])
    outer = graph.tensor(inner)
    mixed = graph.tensor([inner, graph.constant([3.0, 4.0])])
    assert evaluate(outer) == [1.0, 2.0]
    assert evaluate(mixed) == [[1.0, 2.0], [3.0, 4.0]]


def test_run_maps_over_sequences(graph):
    a = graph.constant(1)
    b = graph.operation("add", a, graph.constant(2))
    assert Evaluator().run([a, [b]]) == [1, [3]]
    assert evaluate([a, b]) == [1, 3]


def test_complete_eval_is_idempotent(graph):
    node = graph.operation("mul", graph.constant([1.5, 2.0]), graph.constant(2.0))
    evaluator = Evaluator()
    once = evaluator.complete_eval(node)
    assert evaluator.complete_eval(once) == once == [3.0, 4.0]


def test_shared_operand_is_computed_once(graph):
    calls = []
    shared = graph.operation("add", graph.constant(1), graph.constant(2))
    shared.set_breakpoint(lambda node, a, b, result: calls.append(result))
    left = graph.operation("mul", shared, graph.constant(10))
    right = graph.operation("sub", shared, graph.constant(1))
    total = graph.operation("add", left, right)
    evaluator = Evaluator()
    assert evaluator.complete_eval(total) == 32
    assert calls == [3]
    assert evaluator.memo[shared] == 3


def test_equally_named_nodes_of_different_graphs_are_kept_apart():
    first, second = Graph(), Graph()
    a, b = first.constant(1), second.constant(2)
    assert a.name == b.name
    assert evaluate([a, b]) == [1, 2]
    total = evaluate([first.operation("add", a, a), second.operation("add", b, b)])
    assert total == [2, 4]


def test_memo_table_belongs_to_one_run(graph):
    calls = []
    node = graph.operation("add", graph.constant(1), graph.constant(2))
    node.set_breakpoint(lambda *args: calls.append(args[-1]))
    evaluate(node)
    evaluate(node)
    assert calls == [3, 3]


def test_breakpoint_sees_concrete_operands_and_does_not_change_result(graph):
    seen = {}

    def hook(node, a, b, result):
        seen.update(node=node, a=a, b=b, result=result)
        return "ignored"

    x = graph.placeholder(DataType.FLOAT32, name="x")
    node = graph.operation("add", x, graph.constant([1.0, 1.0]))
    node.set_breakpoint(hook)
    assert evaluate(node, {"x": [1.0, 2.0]}) == [2.0, 3.0]
    assert seen == {"node": node, "a": [1.0, 2.0], "b": [1.0, 1.0], "result": [2.0, 3.0]}


def test_placeholder_binding_by_name_or_node(graph):
    x = graph.placeholder(DataType.FLOAT32, name="x")
    doubled = graph.operation("mul", x, graph.constant(2.0))
    assert evaluate(doubled, {"x": [1.0, 2.0]}) == [2.0, 4.0]
    assert evaluate(doubled, {x: 3.0}) == 6.0


def test_placeholder_binding_is_cast_to_its_dtype(graph):
    x = graph.placeholder(DataType.INT32, name="x")
    assert evaluate(x, {"x": [2.7, -1.2]}) == [2, -1]


def test_missing_placeholder(graph):
    x = graph.placeholder(name="x")
    with pytest.raises(MissingPlaceholder) as err:
        evaluate(x)
    assert "missing placeholder x" in str(err.value)

    op = graph.operation("negate", x)
    with pytest.raises(EvaluationError) as err:
        evaluate(op)
    assert isinstance(err.value.wrapped, MissingPlaceholder)


def test_uninitialized_variable(graph):
    var = graph.variable(name="w")
    with pytest.raises(UninitializedVariable):
        evaluate(var)


def test_variable_reads_are_recorded_in_context(graph):
    var = graph.variable([1, 2], name="w")
    op = graph.operation("add", var, var)
    context = ExecutionContext.create()
    evaluator = Evaluator(context)
    assert evaluator.complete_eval(op) == [2, 4]
    assert [read.name for read in context.reads] == ["w", "w"]
    assert context.variables_read() == ["w"]
    assert evaluator.reads is context.reads


def test_assign_add_is_visible_in_the_same_run_and_persists(graph):
    var = graph.variable(3, name="v")
    update = graph.operation("assign_add", var, graph.constant(5))
    group = graph.operation("flow_group", [update, var])
    assert evaluate(group) == [8, 8]
    assert var.value == 8
    assert evaluate(var) == 8
    assert evaluate(graph.operation("assign_add", var, graph.constant(5))) == 13


def test_retained_node_evaluates_to_itself(graph):
    node = graph.constant(1)
    evaluator = Evaluator(ExecutionContext.create(retain=[node]))
    assert evaluator.run(node) is node


def test_symbolic_operand_defers_to_lazy_operation(graph):
    x = graph.placeholder(DataType.FLOAT32, name="x")
    y = graph.operation("add", x, graph.constant([1.0, 2.0]))
    lazy = evaluate(y, retain=[x])
    assert isinstance(lazy, Operation)
    assert lazy is not y
    assert lazy.operation is OpTag.ADD
    assert lazy.inputs[0] is x
    assert lazy.name in graph
    assert is_symbolic(lazy)
    assert evaluate(lazy, {"x": [10.0, 20.0]}) == [11.0, 22.0]


def test_deferral_propagates_through_unary_kernels(graph):
    x = graph.placeholder(DataType.FLOAT32, name="x")
    y = graph.operation("negate", graph.operation("square", x))
    lazy = evaluate(y, retain=[x])
    assert isinstance(lazy, Operation)
    assert lazy.operation is OpTag.NEGATE
    assert evaluate(lazy, {"x": 3.0}) == -9.0


def test_unknown_operation_is_reported(graph):
    op = Operation(graph, "frobnicate", graph.constant(1))
    with pytest.raises(EvaluationError) as err:
        evaluate(op)
    assert isinstance(err.value.wrapped, UnknownOperation)


def test_evaluation_error_carries_node_context(graph):
    bad = graph.operation("reshape", graph.constant([1, 2, 3]), shape=[2, 2], name="bad_reshape")
    with pytest.raises(EvaluationError) as err:
        evaluate(bad)
    error = err.value
    assert error.node_name == "bad_reshape"
    assert error.expression == "reshape(Const)"
    assert "test_evaluator.py" in error.source
    assert isinstance(error.wrapped, ShapeMismatch)
    assert error.__cause__ is error.wrapped
    assert "while evaluating bad_reshape" in str(error)


def test_evaluation_error_is_not_wrapped_twice(graph):
    bad = graph.operation("reshape", graph.constant([1, 2, 3]), shape=[2, 2], name="inner")
    outer = graph.operation("add", bad, graph.constant(1), name="outer")
    with pytest.raises(EvaluationError) as err:
        evaluate(outer)
    assert err.value.node_name == "inner"
    assert isinstance(err.value.wrapped, ShapeMismatch)


def test_gradients_are_not_evaluated_here(graph):
    op = graph.operation("gradients", graph.constant(1.0))
    with pytest.raises(EvaluationError) as err:
        evaluate(op)
    assert isinstance(err.value.wrapped, NotImplementedError)


def test_every_operation_has_a_kernel():
    assert set(Evaluator.kernels()) == set(OpTag)


def test_config_validation():
    assert ExecutionConfig(seed="3").normalized().seed == 3
    with pytest.raises(ValueError):
        Evaluator(config=ExecutionConfig(max_iters=0))


def test_print_logs_and_returns_operand(graph, caplog):
    value = graph.constant([1, 2])
    printed = graph.operation("print", value, value, message="value is")
    with caplog.at_level(logging.INFO, logger="weave.core.evaluator"):
        assert evaluate(printed) == [1, 2]
    assert "value is [1, 2]" in caplog.text
    assert Evaluator().run(printed) is value


def test_log_values_emits_debug_records(graph, caplog):
    op = graph.operation("add", graph.constant(1), graph.constant(2), name="total")
    with caplog.at_level(logging.DEBUG, logger="weave.core.evaluator"):
        evaluate(op, config=ExecutionConfig(log_values=True))
    assert "total = 3" in caplog.text


def test_evaluate_accepts_existing_context(graph):
    x = graph.placeholder(name="x")
    context = ExecutionContext.create({"x": 1.0})
    op = graph.operation("add", x, graph.placeholder(name="y"))
    assert evaluate(op, {"y": 2.0}, context=context) == 3.0
    assert context.bindings == {"x": 1.0, "y": 2.0}
