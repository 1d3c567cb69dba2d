from __future__ import annotations

from typing import Any, Optional, Sequence


class WeaveError(Exception):
    """Base class for Weave-specific exceptions."""


class UnknownOperation(WeaveError, ValueError):
    def __init__(self, operation: Any):
        super().__init__(f"unknown operation {operation!r}")
        self.operation = operation


class UninitializedVariable(WeaveError, RuntimeError):
    def __init__(self, name: str):
        super().__init__(f"variable {name} not initialized")
        self.name = name


class MissingPlaceholder(WeaveError, KeyError):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"missing placeholder {self.name}"


class ShapeMismatch(WeaveError, ValueError):
    def __init__(self, message: str, *, shapes: Optional[Sequence[Any]] = None):
        detail = _format_shapes(shapes)
        super().__init__(f"{message}{detail}")
        self.shapes = list(shapes) if shapes is not None else None


class UnsupportedReductionAxis(WeaveError, NotImplementedError):
    def __init__(self, axis: Any):
        super().__init__(f"reduction along axis {axis!r} is not supported (only axes 0 and 1)")
        self.axis = axis


class EvaluationError(WeaveError, RuntimeError):
    """Failure raised while evaluating an operation node.

    Carries enough context to locate the node in the user's graph: its
    ``node_name``, the symbolic ``expression`` it stands for and the
    ``source`` location where it was created. The original exception is kept
    as ``wrapped`` (and as ``__cause__``).
    """

    def __init__(
        self,
        wrapped: BaseException,
        *,
        node_name: str,
        expression: Any = None,
        source: Optional[str] = None,
    ):
        location = f" defined at {source}" if source else ""
        super().__init__(
            f"error {wrapped} while evaluating {node_name} : {expression}{location}"
        )
        self.wrapped = wrapped
        self.node_name = node_name
        self.expression = expression
        self.source = source


def _format_shapes(shapes: Optional[Sequence[Any]]) -> str:
    if not shapes:
        return ""
    rendered = " vs ".join(str(list(shape)) for shape in shapes)
    return f" ({rendered})"
