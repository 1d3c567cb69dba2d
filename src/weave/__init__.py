from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _load_version

from .core.context import ExecutionContext, VariableRead
from .core.dtypes import DataType, cast_dtype
from .core.evaluator import Evaluator, ExecutionConfig, evaluate, is_symbolic
from .core.exceptions import (
    EvaluationError,
    MissingPlaceholder,
    ShapeMismatch,
    UninitializedVariable,
    UnknownOperation,
    UnsupportedReductionAxis,
    WeaveError,
)
from .core.graph import Graph
from .core.ir import Node, Operation, OpTag, Placeholder, PlainTensor, TensorShape, Variable

try:
    __version__ = _load_version("weave-graph")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "Graph",
    "Node",
    "PlainTensor",
    "Operation",
    "Variable",
    "Placeholder",
    "OpTag",
    "TensorShape",
    "DataType",
    "cast_dtype",
    "Evaluator",
    "ExecutionConfig",
    "ExecutionContext",
    "VariableRead",
    "evaluate",
    "is_symbolic",
    "WeaveError",
    "EvaluationError",
    "MissingPlaceholder",
    "ShapeMismatch",
    "UninitializedVariable",
    "UnknownOperation",
    "UnsupportedReductionAxis",
    "__version__",
]
