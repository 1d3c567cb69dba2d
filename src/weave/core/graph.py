from __future__ import annotations

import os
import traceback
from typing import Any, Dict, Iterator, Optional

from .ir import Node, Operation, Placeholder, PlainTensor, Variable

_PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

_DEFAULT_BASENAMES = {
    "tensor": "Tensor",
    "variable": "Variable",
    "placeholder": "Placeholder",
    "operation": "Op",
}


def capture_source() -> Optional[str]:
    """Return ``file:line`` of the innermost caller outside the package."""
    for frame in reversed(traceback.extract_stack()):
        filename = os.path.abspath(frame.filename)
        if filename.startswith(_PACKAGE_DIR + os.sep):
            continue
        return f"{frame.filename}:{frame.lineno}"
    return None


class Graph:
    """Arena owning every node created against it, addressed by name."""

    def __init__(self) -> None:
        self.nodes: Dict[str, Node] = {}
        self._counters: Dict[str, int] = {}

    def add_node(self, node: Node, name: Optional[str] = None) -> str:
        base = name or self._default_name(node)
        unique = base
        while unique in self.nodes:
            count = self._counters.get(base, 0) + 1
            self._counters[base] = count
            unique = f"{base}_{count}"
        self.nodes[unique] = node
        return unique

    def get_node(self, name: str) -> Node:
        try:
            return self.nodes[name]
        except KeyError:
            raise KeyError(f"no node named {name!r} in graph") from None

    def __contains__(self, name: object) -> bool:
        return name in self.nodes

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes.values())

    def __len__(self) -> int:
        return len(self.nodes)

    # Node registration ----------------------------------------------------------
    def constant(self, value: Any, dtype: Any = None, shape: Any = None, *, name: Optional[str] = None) -> PlainTensor:
        return PlainTensor(self, value, dtype, shape, name=name, is_const=True)

    def tensor(self, value: Any, dtype: Any = None, shape: Any = None, *, name: Optional[str] = None) -> PlainTensor:
        return PlainTensor(self, value, dtype, shape, name=name, is_const=False)

    def variable(self, value: Any = None, dtype: Any = None, shape: Any = None, *, name: Optional[str] = None) -> Variable:
        return Variable(self, value, dtype, shape, name=name)

    def placeholder(self, dtype: Any = None, shape: Any = None, *, name: Optional[str] = None) -> Placeholder:
        return Placeholder(self, dtype, shape, name=name)

    def operation(
        self,
        operation: Any,
        *inputs: Any,
        dtype: Any = None,
        name: Optional[str] = None,
        static_shape: Any = None,
        **options: Any,
    ) -> Operation:
        return Operation(
            self,
            operation,
            *inputs,
            options=options,
            data_type=dtype,
            shape=static_shape,
            name=name,
        )

    @staticmethod
    def _default_name(node: Node) -> str:
        if isinstance(node, PlainTensor) and node.is_const:
            return "Const"
        return _DEFAULT_BASENAMES.get(node.kind, "Tensor")
