from __future__ import annotations

import logging
import math
import operator
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

import numpy as np

from . import builtins
from .broadcast import (
    all_true,
    binary_op,
    get_rank,
    map_elementwise,
    shape_of,
    three_way_op,
)
from .context import ExecutionContext
from .dtypes import DataType, cast_dtype, one_of, zero_of
from .exceptions import EvaluationError, UnknownOperation, UninitializedVariable
from .ir import Node, Operation, OpTag, Placeholder, PlainTensor, Variable

logger = logging.getLogger(__name__)

Kernel = Callable[["Evaluator", Operation, Any, Any, ExecutionContext], Any]

_BINARY_FUNCS: Dict[OpTag, Callable[[Any, Any], Any]] = {
    OpTag.ADD: operator.add,
    OpTag.SUB: operator.sub,
    OpTag.MUL: operator.mul,
    OpTag.POW: builtins.power,
    OpTag.DIV: builtins.divide,
    OpTag.MAX: max,
    OpTag.EQUAL: operator.eq,
    OpTag.NOT_EQUAL: operator.ne,
    OpTag.LESS: operator.lt,
    OpTag.GREATER: operator.gt,
    OpTag.LESS_EQUAL: operator.le,
    OpTag.GREATER_EQUAL: operator.ge,
}

_UNARY_FUNCS: Dict[OpTag, Callable[[Any], Any]] = {
    OpTag.NEGATE: operator.neg,
    OpTag.ABS: abs,
    OpTag.TANH: math.tanh,
    OpTag.TAN: builtins.safe_tan,
    OpTag.SEC: builtins.secant,
    OpTag.SIN: builtins.safe_sin,
    OpTag.COS: builtins.safe_cos,
    OpTag.LOG: builtins.safe_log,
    OpTag.EXP: builtins.safe_exp,
    OpTag.SQRT: builtins.safe_sqrt,
    OpTag.SQUARE: lambda t: t * t,
    OpTag.SIGN: builtins.sign,
}

_REDUCTIONS = {
    OpTag.REDUCE_SUM: "sum",
    OpTag.REDUCE_MEAN: "mean",
    OpTag.REDUCE_PROD: "prod",
}


@dataclass(frozen=True)
class ExecutionConfig:
    """
    Switches for a single evaluation run.

    * ``max_iters`` caps the fixed-point loop in :meth:`Evaluator.complete_eval`.
    * ``seed`` seeds the random kernels that do not carry their own ``seed`` option.
    * ``log_values`` emits every computed operation result at DEBUG level.
    """

    max_iters: int = 32
    seed: Optional[int] = None
    log_values: bool = False

    def normalized(self) -> "ExecutionConfig":
        max_iters = int(self.max_iters)
        if max_iters <= 0:
            raise ValueError("max_iters must be positive")
        seed = self.seed
        if seed is not None:
            seed = int(seed)
        return replace(self, max_iters=max_iters, seed=seed, log_values=bool(self.log_values))


def is_symbolic(value: Any) -> bool:
    if isinstance(value, Node):
        return True
    if isinstance(value, (list, tuple)):
        return any(is_symbolic(item) for item in value)
    return False


def _kernel(*tags: OpTag):
    def decorate(fn):
        fn._weave_tags = tags
        return fn

    return decorate


class Evaluator:
    """Tree-walking interpreter that reduces graph nodes to nested lists.

    One evaluator corresponds to one evaluation run: its memo table maps node
    objects to computed results and is discarded with the evaluator. Variables
    are never memoized so that reads observe assignments made earlier in the
    same run.
    """

    _kernels: Dict[OpTag, Kernel] = {}

    def __init__(
        self,
        context: Optional[ExecutionContext] = None,
        config: Optional[ExecutionConfig] = None,
    ):
        self.context = context or ExecutionContext()
        self.config = (config or ExecutionConfig()).normalized()
        self.memo: Dict[Node, Any] = {}
        self._rng: Optional[np.random.Generator] = None

    @property
    def retain(self):
        return self.context.retain

    @property
    def reads(self):
        return self.context.reads

    @classmethod
    def kernels(cls) -> Dict[OpTag, Kernel]:
        return dict(cls._kernels)

    # Public API ----------------------------------------------------------------
    def run(self, node: Any, context: Optional[ExecutionContext] = None) -> Any:
        ctx = context or self.context
        if isinstance(node, (list, tuple)):
            return [self.run(item, ctx) for item in node]
        if not isinstance(node, Node):
            return node
        if ctx.retains(node):
            return node
        if isinstance(node, Operation):
            return self._eval_operation(node, ctx)
        if isinstance(node, Variable):
            return self._eval_variable(node, ctx)
        if isinstance(node, Placeholder):
            return self._resolve_placeholder(node, ctx)
        return self._eval_tensor(node, ctx)

    def complete_eval(self, node: Any, context: Optional[ExecutionContext] = None) -> Any:
        """Force ``node`` to a concrete value.

        Runs ``node`` until the result is no longer a graph node or stops
        changing. Lists holding nodes are completed element by element.
        """
        ctx = context or self.context
        value = node
        for _ in range(self.config.max_iters):
            previous = value
            value = self.run(value, ctx)
            if isinstance(value, list) and is_symbolic(value):
                value = [self.complete_eval(item, ctx) for item in value]
            if value is previous or not isinstance(value, Node):
                return value
        logger.debug("complete_eval stopped after %d iterations on %s", self.config.max_iters, value)
        return value

    # Node kinds ----------------------------------------------------------------
    def _eval_operation(self, node: Operation, ctx: ExecutionContext) -> Any:
        if node in self.memo:
            return self.memo[node]
        try:
            a = self._resolve_placeholder(node.operand(0), ctx)
            b = self._resolve_placeholder(node.operand(1), ctx)
            kernel = self._kernel_for(node.operation)
            result = kernel(self, node, a, b, ctx)
            if node.breakpoint is not None:
                node.breakpoint(
                    node,
                    self.complete_eval(a, ctx),
                    self.complete_eval(b, ctx),
                    self.complete_eval(result, ctx),
                )
        except EvaluationError:
            raise
        except Exception as exc:
            raise EvaluationError(
                exc,
                node_name=node.name,
                expression=node.to_math(),
                source=node.source,
            ) from exc
        self.memo[node] = result
        if self.config.log_values:
            logger.debug("%s = %r", node.name, result)
        return result

    def _eval_variable(self, node: Variable, ctx: ExecutionContext) -> Any:
        if node.value is None:
            raise UninitializedVariable(node.name)
        value = self.run(node.value, ctx)
        ctx.record_read(node.name, value)
        return value

    def _eval_tensor(self, node: Node, ctx: ExecutionContext) -> Any:
        if node in self.memo:
            return self.memo[node]
        result = self.run(node.value, ctx)
        self.memo[node] = result
        return result

    def _resolve_placeholder(self, item: Any, ctx: ExecutionContext) -> Any:
        if item is None or ctx.retains(item):
            return item
        if isinstance(item, Placeholder):
            return cast_dtype(ctx.lookup(item), item.data_type)
        return item

    @classmethod
    def _kernel_for(cls, tag: Any) -> Kernel:
        kernel = cls._kernels.get(tag) if isinstance(tag, OpTag) else None
        if kernel is None:
            raise UnknownOperation(tag)
        return kernel

    # Elementwise helpers -------------------------------------------------------
    def _elementwise(self, node: Operation, a: Any, b: Any, ctx: ExecutionContext, fn) -> Any:
        eval_a = self.complete_eval(a, ctx)
        eval_b = self.complete_eval(b, ctx)
        if is_symbolic(eval_a) or is_symbolic(eval_b):
            return self._defer(node, eval_a, eval_b)
        return binary_op(eval_a, eval_b, fn)

    def _unary(self, node: Operation, a: Any, ctx: ExecutionContext, fn) -> Any:
        eval_a = self.complete_eval(a, ctx)
        if is_symbolic(eval_a):
            return self._defer(node, eval_a)
        return map_elementwise(eval_a, fn)

    def _defer(self, node: Operation, *operands: Any) -> Operation:
        graph = node.graph
        inputs = []
        for operand in operands:
            if isinstance(operand, Node):
                inputs.append(operand)
            else:
                inputs.append(PlainTensor(graph, operand, DataType.UNKNOWN))
        lazy = Operation(
            graph,
            node.operation,
            *inputs,
            options=node.options,
            data_type=node.data_type,
            shape=node.shape,
        )
        # the lazy expression resolves to itself for the rest of this run
        self.memo[lazy] = lazy
        logger.debug("deferring %s as %s", node.name, lazy.to_math())
        return lazy

    def _option(self, node: Operation, key: str, ctx: ExecutionContext, default: Any = None) -> Any:
        if key not in node.options:
            return default
        return self.complete_eval(node.options[key], ctx)

    def _random(self, node: Operation, ctx: ExecutionContext) -> np.random.Generator:
        seed = self._option(node, "seed", ctx)
        if seed is not None:
            return np.random.default_rng(int(seed))
        if self._rng is None:
            self._rng = np.random.default_rng(self.config.seed)
        return self._rng

    # Kernels -------------------------------------------------------------------
    @_kernel(*_BINARY_FUNCS)
    def _op_binary(self, node, a, b, ctx):
        return self._elementwise(node, a, b, ctx, _BINARY_FUNCS[node.operation])

    @_kernel(*_UNARY_FUNCS)
    def _op_unary(self, node, a, b, ctx):
        return self._unary(node, a, ctx, _UNARY_FUNCS[node.operation])

    @_kernel(OpTag.CAST)
    def _op_cast(self, node, a, b, ctx):
        return self._unary(node, a, ctx, lambda t: cast_dtype(t, node.data_type))

    @_kernel(OpTag.ARGMAX)
    def _op_argmax(self, node, a, b, ctx):
        value = self.complete_eval(a, ctx)
        axis = self._option(node, "axis", ctx, 0)
        return cast_dtype(builtins.argmax(value, 0 if axis is None else int(axis)), node.data_type)

    @_kernel(OpTag.INDEX)
    def _op_index(self, node, a, b, ctx):
        value = self.complete_eval(a, ctx)
        index = self.complete_eval(b, ctx)
        return value[index]

    @_kernel(OpTag.SLICE)
    def _op_slice(self, node, a, b, ctx):
        value = self.complete_eval(a, ctx)
        begin = self.complete_eval(b, ctx)
        size = self._option(node, "size", ctx)
        return builtins.slice_tensor(value, begin, size)

    @_kernel(OpTag.CONCAT)
    def _op_concat(self, node, a, b, ctx):
        values = self.complete_eval(a, ctx)
        axis = self._option(node, "axis", ctx, 0)
        return builtins.concat(values, int(axis))

    @_kernel(*_REDUCTIONS)
    def _op_reduce(self, node, a, b, ctx):
        value = self.complete_eval(a, ctx)
        fold = builtins.make_fold(_REDUCTIONS[node.operation], node.data_type)
        axis = self._option(node, "axis", ctx)
        keepdims = bool(self._option(node, "keepdims", ctx, False))
        return builtins.reduction(value, axis, fold, keepdims)

    @_kernel(OpTag.TRANSPOSE)
    def _op_transpose(self, node, a, b, ctx):
        return builtins.transpose(self.complete_eval(a, ctx))

    @_kernel(OpTag.EYE)
    def _op_eye(self, node, a, b, ctx):
        rows = self.complete_eval(a, ctx)
        columns = self.complete_eval(b, ctx) if b is not None else None
        return builtins.eye(rows, columns, node.data_type)

    @_kernel(OpTag.ZEROS, OpTag.ONES, OpTag.ZEROS_LIKE, OpTag.ONES_LIKE)
    def _op_fill(self, node, a, b, ctx):
        if node.operation in (OpTag.ZEROS_LIKE, OpTag.ONES_LIKE):
            shape = shape_of(self.complete_eval(a, ctx))
        elif a is not None:
            shape = self.complete_eval(a, ctx)
        elif node.shape.is_fully_defined:
            shape = node.shape.as_list()
        else:
            shape = []
        if node.operation in (OpTag.ZEROS, OpTag.ZEROS_LIKE):
            value = zero_of(node.data_type)
        else:
            value = one_of(node.data_type)
        return builtins.fill(shape, value)

    @_kernel(OpTag.SHAPE)
    def _op_shape(self, node, a, b, ctx):
        shape = shape_of(self.complete_eval(a, ctx))
        out_type = node.options.get("out_type")
        return cast_dtype(shape, out_type) if out_type is not None else shape

    @_kernel(OpTag.RANK)
    def _op_rank(self, node, a, b, ctx):
        return get_rank(self.complete_eval(a, ctx))

    @_kernel(OpTag.MATMUL)
    def _op_matmul(self, node, a, b, ctx):
        return builtins.matmul(
            self.complete_eval(a, ctx),
            self.complete_eval(b, ctx),
            transpose_a=bool(node.options.get("transpose_a")),
            transpose_b=bool(node.options.get("transpose_b")),
            dtype=node.data_type,
        )

    @_kernel(OpTag.RESHAPE)
    def _op_reshape(self, node, a, b, ctx):
        value = self.complete_eval(a, ctx)
        if b is not None:
            new_shape = self.complete_eval(b, ctx)
        else:
            new_shape = self._option(node, "shape", ctx)
        if new_shape is None:
            raise ValueError("reshape needs a target shape")
        if isinstance(new_shape, int):
            new_shape = [new_shape]
        return builtins.reshape(value, new_shape)

    @_kernel(OpTag.PAD)
    def _op_pad(self, node, a, b, ctx):
        value = self.complete_eval(a, ctx)
        paddings = self._option(node, "paddings", ctx)
        if paddings is None:
            raise ValueError("pad needs a 'paddings' option")
        fill_value = self._option(node, "constant_values", ctx, zero_of(node.data_type))
        return builtins.pad(value, paddings, cast_dtype(fill_value, node.data_type))

    @_kernel(OpTag.WHERE)
    def _op_where(self, node, a, b, ctx):
        pred = self._option(node, "pred", ctx)
        return three_way_op(
            pred,
            self.complete_eval(a, ctx),
            self.complete_eval(b, ctx),
            lambda p, x, y: x if p else y,
        )

    @_kernel(OpTag.COND)
    def _op_cond(self, node, a, b, ctx):
        pred = self._option(node, "pred", ctx)
        return self.complete_eval(a if all_true(pred) else b, ctx)

    @_kernel(OpTag.ASSIGN, OpTag.ASSIGN_ADD, OpTag.ASSIGN_SUB)
    def _op_assign(self, node, a, b, ctx):
        target = node.inputs[0]
        if not isinstance(target, Variable):
            raise TypeError(f"{node.operation} needs a variable, got {target!r}")
        value = self.complete_eval(b, ctx)
        if node.operation is OpTag.ASSIGN_ADD:
            value = binary_op(self.complete_eval(target, ctx), value, operator.add)
        elif node.operation is OpTag.ASSIGN_SUB:
            value = binary_op(self.complete_eval(target, ctx), value, operator.sub)
        return target.assign(value)

    @_kernel(OpTag.FLOW_GROUP)
    def _op_flow_group(self, node, a, b, ctx):
        return [self.run(item, ctx) for item in a]

    @_kernel(OpTag.IDENTITY, OpTag.STOP_GRADIENT)
    def _op_identity(self, node, a, b, ctx):
        return self.complete_eval(a, ctx)

    @_kernel(OpTag.PRINT)
    def _op_print(self, node, a, b, ctx):
        value = self.complete_eval(b if b is not None else a, ctx)
        logger.info("%s %s", node.options.get("message", ""), value)
        return a

    @_kernel(OpTag.RANDOM_UNIFORM)
    def _op_random_uniform(self, node, a, b, ctx):
        shape = self._option(node, "shape", ctx, [])
        minval = self._option(node, "minval", ctx, 0)
        maxval = self._option(node, "maxval", ctx, 1)
        sample = builtins.sample_uniform(shape, minval, maxval, self._random(node, ctx))
        return cast_dtype(sample, node.data_type)

    @_kernel(OpTag.RANDOM_NORMAL)
    def _op_random_normal(self, node, a, b, ctx):
        shape = self._option(node, "shape", ctx, [])
        mean = self._option(node, "mean", ctx, 0.0)
        stddev = self._option(node, "stddev", ctx, 1.0)
        sample = builtins.sample_normal(shape, mean, stddev, self._random(node, ctx))
        return cast_dtype(sample, node.data_type)

    @_kernel(OpTag.GRADIENTS)
    def _op_gradients(self, node, a, b, ctx):
        raise NotImplementedError(
            "gradients are not computed by the evaluator; build them with a differentiation pass first"
        )


def _collect_kernels() -> Dict[OpTag, Kernel]:
    table: Dict[OpTag, Kernel] = {}
    for attr in vars(Evaluator).values():
        for tag in getattr(attr, "_weave_tags", ()):
            table[tag] = attr
    missing = sorted(str(tag) for tag in OpTag if tag not in table)
    if missing:
        raise RuntimeError(f"operations without a kernel: {', '.join(missing)}")
    return table


Evaluator._kernels = _collect_kernels()


def evaluate(
    fetches: Any,
    feed_dict: Optional[Mapping[Any, Any]] = None,
    *,
    retain: Iterable[Node] = (),
    config: Optional[ExecutionConfig] = None,
    context: Optional[ExecutionContext] = None,
) -> Any:
    """Evaluate ``fetches`` (a node or a list of nodes) to concrete values."""
    ctx = context or ExecutionContext.create(feed_dict, retain)
    if context is not None:
        for key, value in (feed_dict or {}).items():
            ctx.bind(key, value)
        ctx.retain.update(retain)
    evaluator = Evaluator(ctx, config)
    return evaluator.complete_eval(fetches)
