"""Fit a two-feature linear model with hand-written gradient steps."""

import logging

from weave import DataType, Graph, evaluate

logging.basicConfig(level=logging.INFO, format="%(message)s")

graph = Graph()
X = graph.placeholder(DataType.FLOAT32, [3, 2], name="X")
target = graph.constant([[1.0], [2.0], [3.0]], name="target")
W = graph.variable([[0.0], [0.0]], name="W")
bias = graph.constant(0.1, name="bias")

prediction = graph.operation("add", graph.operation("matmul", X, W), bias, name="prediction")
residual = graph.operation("sub", prediction, target, name="residual")
loss = graph.operation("reduce_mean", graph.operation("square", residual), name="loss")

# d(loss)/dW = 2/n * X^T (XW + b - t)
grad = graph.operation(
    "mul",
    graph.operation("matmul", X, residual, transpose_a=True),
    graph.constant(2.0 / 3.0),
    name="grad",
)
update = graph.operation("assign_sub", W, graph.operation("mul", grad, graph.constant(0.01)))
step = graph.operation("flow_group", [loss, update], name="step")

features = [[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]]
losses = []
for epoch in range(25):
    current, _ = evaluate(step, {X: features})
    losses.append(current)

report = graph.operation("print", loss, W, message="weights after training:")
evaluate(report, {X: features})

# predictions at or below 2.0 are zeroed
active = graph.operation("greater", prediction, graph.constant(2.0))
clipped = graph.operation("where", prediction, graph.operation("zeros_like", prediction), pred=active)
print("clipped predictions:", evaluate(clipped, {X: features}))

print(f"loss {losses[0]:.4f} -> {losses[-1]:.4f}")
assert losses[-1] < losses[0]
