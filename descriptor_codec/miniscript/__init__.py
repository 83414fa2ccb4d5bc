from . import errors, fragments, parsing
from .fragments import Node
from .parsing import miniscript_from_str

__all__ = [
    "errors",
    "fragments",
    "miniscript_from_str",
    "parsing",
    "Node",
]
