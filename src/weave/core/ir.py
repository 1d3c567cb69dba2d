from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Sequence, Tuple

from .dtypes import DataType, cast_dtype, detect_type

if TYPE_CHECKING:
    from .graph import Graph

Breakpoint = Callable[["Node", Any, Any, Any], Any]


class OpTag(str, Enum):
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    POW = "pow"
    DIV = "div"
    MAX = "max"
    NEGATE = "negate"
    EQUAL = "equal"
    NOT_EQUAL = "not_equal"
    LESS = "less"
    GREATER = "greater"
    LESS_EQUAL = "less_equal"
    GREATER_EQUAL = "greater_equal"
    ABS = "abs"
    TANH = "tanh"
    TAN = "tan"
    SEC = "sec"
    SIN = "sin"
    COS = "cos"
    LOG = "log"
    EXP = "exp"
    SQRT = "sqrt"
    SQUARE = "square"
    SIGN = "sign"
    CAST = "cast"
    ARGMAX = "argmax"
    INDEX = "index"
    SLICE = "slice"
    CONCAT = "concat"
    REDUCE_SUM = "reduce_sum"
    REDUCE_MEAN = "reduce_mean"
    REDUCE_PROD = "reduce_prod"
    TRANSPOSE = "transpose"
    EYE = "eye"
    ZEROS = "zeros"
    ONES = "ones"
    ZEROS_LIKE = "zeros_like"
    ONES_LIKE = "ones_like"
    SHAPE = "shape"
    RANK = "rank"
    MATMUL = "matmul"
    RESHAPE = "reshape"
    PAD = "pad"
    WHERE = "where"
    COND = "cond"
    ASSIGN = "assign"
    ASSIGN_ADD = "assign_add"
    ASSIGN_SUB = "assign_sub"
    FLOW_GROUP = "flow_group"
    IDENTITY = "identity"
    STOP_GRADIENT = "stop_gradient"
    PRINT = "print"
    RANDOM_UNIFORM = "random_uniform"
    RANDOM_NORMAL = "random_normal"
    GRADIENTS = "gradients"

    def __str__(self) -> str:
        return self.value


BINARY_OPS = frozenset(
    {
        OpTag.ADD,
        OpTag.SUB,
        OpTag.MUL,
        OpTag.POW,
        OpTag.DIV,
        OpTag.MAX,
    }
)
COMPARISON_OPS = frozenset(
    {
        OpTag.EQUAL,
        OpTag.NOT_EQUAL,
        OpTag.LESS,
        OpTag.GREATER,
        OpTag.LESS_EQUAL,
        OpTag.GREATER_EQUAL,
    }
)
UNARY_OPS = frozenset(
    {
        OpTag.NEGATE,
        OpTag.ABS,
        OpTag.TANH,
        OpTag.TAN,
        OpTag.SEC,
        OpTag.SIN,
        OpTag.COS,
        OpTag.LOG,
        OpTag.EXP,
        OpTag.SQRT,
        OpTag.SQUARE,
        OpTag.SIGN,
        OpTag.CAST,
    }
)
CONSTRUCTOR_OPS = frozenset(
    {
        OpTag.EYE,
        OpTag.ZEROS,
        OpTag.ONES,
        OpTag.RANDOM_UNIFORM,
        OpTag.RANDOM_NORMAL,
    }
)

# (min, max) operand count per tag
ARITY: Dict[OpTag, Tuple[int, int]] = {tag: (2, 2) for tag in BINARY_OPS | COMPARISON_OPS}
ARITY.update({tag: (1, 1) for tag in UNARY_OPS})
ARITY.update(
    {
        OpTag.ARGMAX: (1, 1),
        OpTag.INDEX: (2, 2),
        OpTag.SLICE: (2, 2),
        OpTag.CONCAT: (1, 1),
        OpTag.REDUCE_SUM: (1, 1),
        OpTag.REDUCE_MEAN: (1, 1),
        OpTag.REDUCE_PROD: (1, 1),
        OpTag.TRANSPOSE: (1, 1),
        OpTag.EYE: (1, 2),
        OpTag.ZEROS: (0, 1),
        OpTag.ONES: (0, 1),
        OpTag.ZEROS_LIKE: (1, 1),
        OpTag.ONES_LIKE: (1, 1),
        OpTag.SHAPE: (1, 1),
        OpTag.RANK: (1, 1),
        OpTag.MATMUL: (2, 2),
        OpTag.RESHAPE: (1, 2),
        OpTag.PAD: (1, 1),
        OpTag.WHERE: (2, 2),
        OpTag.COND: (2, 2),
        OpTag.ASSIGN: (2, 2),
        OpTag.ASSIGN_ADD: (2, 2),
        OpTag.ASSIGN_SUB: (2, 2),
        OpTag.FLOW_GROUP: (1, 1),
        OpTag.IDENTITY: (1, 1),
        OpTag.STOP_GRADIENT: (1, 1),
        OpTag.PRINT: (1, 2),
        OpTag.RANDOM_UNIFORM: (0, 0),
        OpTag.RANDOM_NORMAL: (0, 0),
        OpTag.GRADIENTS: (0, 2),
    }
)


@dataclass(frozen=True)
class TensorShape:
    dims: Optional[Tuple[Optional[int], ...]] = None

    @classmethod
    def of(cls, shape: Any) -> "TensorShape":
        if isinstance(shape, TensorShape):
            return shape
        if shape is None:
            return cls(None)
        if isinstance(shape, int):
            return cls((shape,))
        return cls(tuple(None if dim is None else int(dim) for dim in shape))

    @property
    def rank(self) -> Optional[int]:
        return None if self.dims is None else len(self.dims)

    @property
    def is_fully_defined(self) -> bool:
        return self.dims is not None and all(dim is not None for dim in self.dims)

    def as_list(self) -> list:
        if self.dims is None:
            raise ValueError("as_list() is not defined on an unknown shape")
        return list(self.dims)

    def __str__(self) -> str:
        if self.dims is None:
            return "<unknown>"
        return "(" + ", ".join("?" if dim is None else str(dim) for dim in self.dims) + ")"


class Node:
    """A vertex of a computation graph.

    Nodes are registered with their ``graph`` on construction and keep a
    non-owning reference back to it. ``name`` is unique within the graph.
    Evaluation memoizes by node identity, so equally named nodes of
    different graphs never share a result. ``shape`` and ``data_type``
    never change after construction.
    """

    kind = "tensor"

    def __init__(
        self,
        graph: "Graph",
        data_type: Any = None,
        shape: Any = None,
        *,
        name: Optional[str] = None,
        is_const: bool = False,
    ):
        from .graph import capture_source

        self.data_type: DataType = DataType.coerce(data_type or DataType.FLOAT32)
        self.shape: TensorShape = TensorShape.of(shape)
        self.value: Any = None
        self.is_const = bool(is_const)
        self.breakpoint: Optional[Breakpoint] = None
        self.source: Optional[str] = capture_source()
        self.graph = graph
        self.name: str = graph.add_node(self, name)

    @property
    def rank(self) -> Optional[int]:
        return self.shape.rank

    @property
    def dtype(self) -> DataType:
        return self.data_type

    def set_breakpoint(self, callback: Optional[Breakpoint]) -> "Node":
        self.breakpoint = callback
        return self

    def to_math(self, name_only: bool = False, max_depth: int = 99) -> Any:
        if max_depth <= 0 or name_only or self.value is None:
            return self.name
        if isinstance(self.value, list):
            return [_math(item, name_only, max_depth - 1) for item in self.value]
        if isinstance(self.value, Node):
            return self.value.to_math(name_only, max_depth - 1)
        return self.value if self.is_const else self.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, dtype={self.data_type}, shape={self.shape})"

    def __str__(self) -> str:
        return self.name


class PlainTensor(Node):
    def __init__(
        self,
        graph: "Graph",
        value: Any,
        data_type: Any = None,
        shape: Any = None,
        *,
        name: Optional[str] = None,
        is_const: bool = True,
    ):
        dtype = data_type or _value_dtype(value)
        super().__init__(graph, dtype, shape if shape is not None else _static_shape(value), name=name, is_const=is_const)
        self.value = _prepare_value(value, self.data_type, self.shape)


class Variable(Node):
    kind = "variable"

    def __init__(
        self,
        graph: "Graph",
        value: Any = None,
        data_type: Any = None,
        shape: Any = None,
        *,
        name: Optional[str] = None,
    ):
        dtype = data_type or (_value_dtype(value) if value is not None else None)
        if shape is None and value is not None:
            shape = _static_shape(value)
        super().__init__(graph, dtype, shape, name=name)
        if value is not None:
            self.value = _prepare_value(value, self.data_type, self.shape)

    def assign(self, value: Any) -> Any:
        """Store ``value`` cast to this variable's dtype and return it."""
        self.value = cast_dtype(value, self.data_type)
        return self.value


class Placeholder(Node):
    kind = "placeholder"


class Operation(Node):
    kind = "operation"

    def __init__(
        self,
        graph: "Graph",
        operation: Any,
        *inputs: Any,
        options: Optional[Dict[str, Any]] = None,
        data_type: Any = None,
        shape: Any = None,
        name: Optional[str] = None,
    ):
        try:
            tag = OpTag(operation)
        except ValueError:
            tag = operation
        self.operation = tag
        self.inputs: Tuple[Any, ...] = tuple(inputs)
        self.options: Dict[str, Any] = dict(options or {})
        arity = ARITY.get(tag) if isinstance(tag, OpTag) else None
        if arity is not None:
            low, high = arity
            if not low <= len(self.inputs) <= high:
                raise ValueError(
                    f"{tag} expects {low}..{high} operands, got {len(self.inputs)}"
                )
        super().__init__(
            graph,
            data_type or _infer_op_dtype(tag, self.inputs, self.options),
            shape,
            name=name or str(tag),
        )

    @property
    def items(self) -> Tuple[Any, ...]:
        return self.inputs

    def operand(self, index: int) -> Any:
        return self.inputs[index] if index < len(self.inputs) else None

    def to_math(self, name_only: bool = False, max_depth: int = 99) -> Any:
        if max_depth <= 0 or name_only:
            return self.name
        args = ", ".join(str(_math(item, True, max_depth - 1)) for item in self.inputs)
        return f"{self.operation}({args})"


def _math(item: Any, name_only: bool, max_depth: int) -> Any:
    if isinstance(item, Node):
        return item.to_math(name_only, max_depth)
    if isinstance(item, (list, tuple)):
        return [_math(sub, name_only, max_depth) for sub in item]
    return item


def _contains_node(value: Any) -> bool:
    if isinstance(value, Node):
        return True
    if isinstance(value, (list, tuple)):
        return any(_contains_node(item) for item in value)
    return False


def _value_dtype(value: Any) -> DataType:
    if isinstance(value, Node):
        return value.data_type
    if isinstance(value, (list, tuple)) and value and isinstance(value[0], Node):
        return value[0].data_type
    return detect_type(value)


def _static_shape(value: Any) -> Optional[Sequence[int]]:
    from .broadcast import shape_of

    if value is None or _contains_node(value):
        return None
    return shape_of(value)


def _prepare_value(value: Any, dtype: DataType, shape: TensorShape) -> Any:
    from .builtins import generate_vector, reshape

    dims = shape.dims
    if isinstance(value, (list, tuple)):
        value = list(value)
        if (
            dims is not None
            and len(dims) >= 2
            and shape.is_fully_defined
            and value
            and not isinstance(value[0], (list, tuple))
            and not _contains_node(value)
        ):
            value = reshape(value, list(dims))
        return cast_dtype(value, dtype)
    if isinstance(value, Node):
        return value
    scalar = cast_dtype(value, dtype)
    if dims and shape.is_fully_defined:
        return generate_vector(list(dims), lambda: scalar)
    return scalar


def _infer_op_dtype(tag: Any, inputs: Sequence[Any], options: Dict[str, Any]) -> DataType:
    if tag in COMPARISON_OPS:
        return DataType.BOOLEAN
    if tag in (OpTag.ARGMAX, OpTag.SHAPE, OpTag.RANK):
        return DataType.INT32
    if "dtype" in options:
        return DataType.coerce(options["dtype"])
    # constructor operands are shapes and counts, not data
    if tag in CONSTRUCTOR_OPS:
        return DataType.FLOAT32
    for item in inputs:
        if isinstance(item, Node):
            return item.data_type
        if isinstance(item, (list, tuple)):
            for sub in item:
                if isinstance(sub, Node):
                    return sub.data_type
    return DataType.FLOAT32
