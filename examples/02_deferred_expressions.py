"""Build a partially evaluated expression and finish it later."""

from weave import Graph, evaluate

graph = Graph()
x = graph.placeholder(name="x")
scaled = graph.operation("mul", x, graph.constant(2.0))
shifted = graph.operation("add", scaled, graph.operation("reduce_sum", graph.constant([1.0, 2.0])))

# x stays symbolic, everything that does not depend on it is folded
partial = evaluate(shifted, retain=[x])
print("partial:", partial.to_math())

print("x = 4:", evaluate(partial, {"x": 4.0}))
print("x = [1, 2]:", evaluate(partial, {"x": [1.0, 2.0]}))
