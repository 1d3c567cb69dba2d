from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from .exceptions import MissingPlaceholder
from .ir import Node


@dataclass(frozen=True)
class VariableRead:
    name: str
    value: Any


@dataclass
class ExecutionContext:
    """Inputs supplied by the caller for one evaluation.

    ``bindings`` maps placeholder names to their values; placeholder nodes are
    accepted as keys too. Nodes in ``retain`` evaluate to themselves. ``reads``
    collects every variable read performed while evaluating with this context.
    """

    bindings: Dict[str, Any] = field(default_factory=dict)
    retain: Set[Node] = field(default_factory=set)
    reads: List[VariableRead] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        feed_dict: Optional[Mapping[Any, Any]] = None,
        retain: Optional[Iterable[Node]] = None,
    ) -> "ExecutionContext":
        bindings = {_binding_key(key): value for key, value in (feed_dict or {}).items()}
        return cls(bindings=bindings, retain=set(retain or ()))

    def bind(self, key: Any, value: Any) -> None:
        self.bindings[_binding_key(key)] = value

    def lookup(self, placeholder: Node) -> Any:
        value = self.bindings.get(placeholder.name)
        if value is None:
            raise MissingPlaceholder(placeholder.name)
        return value

    def retains(self, node: Any) -> bool:
        return isinstance(node, Node) and node in self.retain

    def record_read(self, name: str, value: Any) -> None:
        self.reads.append(VariableRead(name, value))

    def variables_read(self) -> List[str]:
        return list(dict.fromkeys(read.name for read in self.reads))


def _binding_key(key: Any) -> str:
    if isinstance(key, Node):
        return key.name
    return str(key)
