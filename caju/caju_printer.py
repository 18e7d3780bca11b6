"""
A pretty-printer for Caju values.
"""
from decimal import Decimal

from caju.caju_datatypes import Value, Kind, ScriptFunction
from caju.caju_syntax import Syntax


class Printer:
    """Formats Caju values (and their host forms) as Caju source literals."""

    def __init__(self, syntax=None):
        self.syntax = syntax or Syntax.default()
        self._handlers = self._create_handlers()

    def pformat(self, obj):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        fn = getattr(obj, 'script_function', None)
        if isinstance(fn, ScriptFunction):
            return lambda o: self._pformat_function(o.script_function)
        # Default to Python's repr for host objects
        return repr

    def _create_handlers(self):
        return {
            Value: self._pformat_value,
            str: self._pformat_str,
            bool: self._pformat_bool,
            int: self._pformat_primitive,
            float: self._pformat_primitive,
            Decimal: self._pformat_decimal,
            type(None): self._pformat_none,
            ScriptFunction: self._pformat_function,
        }

    def _pformat_value(self, value: Value):
        if value.kind is Kind.NULL:
            return self._pformat_none(None)
        return self.pformat(value.payload)

    def _pformat_primitive(self, obj):
        return str(obj)

    def _pformat_decimal(self, obj):
        return format(obj, "f")

    def _pformat_bool(self, obj):
        booleans = self.syntax.table["booleans"]
        return str(booleans["true"] if obj else booleans["false"])

    def _pformat_none(self, obj):
        return self.syntax.symbol("null")

    def _pformat_str(self, obj):
        escaped = obj.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n").replace("\t", "\\t")
        return f'"{escaped}"'

    def _pformat_function(self, fn: ScriptFunction):
        marker = self.syntax.symbol("function")
        return f"{fn.name}({', '.join(fn.params)}) {marker} ... {marker}"
