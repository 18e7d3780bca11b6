"""
Host interop for Caju scripts.

`$some.namespace` statements register a Python module (or an attribute of
one) with a PythonHost; later lookups that no script variable satisfies are
resolved against the registered namespaces, most recent first. Exceptions
raised by host code are translated into the script error taxonomy.
"""

import importlib
from typing import Any, Dict, List, Tuple

from caju.caju_errors import (
    ScriptError, ScriptTypeError, ScriptArithmeticError, ScriptNameError, HostError
)


def wrap_host_error(exc: BaseException) -> ScriptError:
    """Translates an exception raised by host code into a ScriptError."""
    match exc:
        case ScriptError():
            return exc
        case ZeroDivisionError():
            return ScriptArithmeticError(str(exc))
        case TypeError():
            return ScriptTypeError(str(exc))
        case AttributeError() | ImportError() | NameError():
            return ScriptNameError(str(exc))
        case _:
            return HostError(f"{type(exc).__name__}: {exc}")


class PythonHost:
    """Resolves imported namespaces and dotted member paths to Python objects."""

    def __init__(self):
        self.namespaces: List[str] = []
        self.modules: Dict[str, Any] = {}

    def import_namespace(self, path: str) -> Any:
        obj = self._import(path)
        if path in self.namespaces:
            self.namespaces.remove(path)
        self.namespaces.insert(0, path)
        self.modules[path] = obj
        return obj

    def _import(self, path: str) -> Any:
        parts = path.split(".")
        # Longest importable module prefix, then attributes for the rest.
        for i in range(len(parts), 0, -1):
            module_name = ".".join(parts[:i])
            try:
                obj = importlib.import_module(module_name)
            except ImportError:
                continue
            return self.member(obj, ".".join(parts[i:]))
        raise ScriptNameError(f"Cannot import namespace '{path}'")

    def member(self, obj: Any, path: str) -> Any:
        for attr in filter(None, path.split(".")):
            try:
                obj = getattr(obj, attr)
            except AttributeError:
                raise ScriptNameError(f"'{type(obj).__name__}' has no member '{attr}'")
        return obj

    def resolve(self, name: str) -> Tuple[bool, Any]:
        """Returns (found, object) for `name` against the imported namespaces."""
        head, _, rest = name.partition(".")
        for ns in self.namespaces:
            obj = self.modules[ns]
            if name == ns:
                return True, obj
            if name.startswith(ns + "."):
                return True, self.member(obj, name[len(ns) + 1:])
            if head == ns.rsplit(".", 1)[-1]:
                return True, self.member(obj, rest)
            if hasattr(obj, head):
                return True, self.member(getattr(obj, head), rest)
        return False, None
