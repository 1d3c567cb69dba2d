"""Core runtime modules for Weave."""

__all__ = [
    "broadcast",
    "builtins",
    "context",
    "dtypes",
    "evaluator",
    "exceptions",
    "graph",
    "ir",
]
