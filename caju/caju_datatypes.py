"""
Defines the core data types for the Caju runtime.

Value is the dynamic, immutable result of evaluating an element. Context is
the chained variable scope. ScriptFunction is the callable produced by a
function definition. Host objects take part in script arithmetic through
the Operable protocol.
"""

import collections.abc
import decimal
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Protocol, runtime_checkable, TYPE_CHECKING

from caju.caju_errors import ScriptArithmeticError, ScriptTypeError, UnsupportedOperationError

if TYPE_CHECKING:
    from caju.caju_elements import Element
    from caju.caju_syntax import Syntax

INTEGER_MIN = -(2 ** 63)
INTEGER_MAX = 2 ** 63 - 1

# plus/subtract/multiply on Decimals are exact up to this many digits; division rounds.
EXACT_CONTEXT = decimal.Context(prec=1000, traps=[decimal.InvalidOperation, decimal.DivisionByZero])
DIVISION_CONTEXT = decimal.Context(prec=34, traps=[decimal.InvalidOperation, decimal.DivisionByZero])

ARITHMETIC_OPERATIONS = ("plus", "subtract", "multiply", "divide", "module")


class Kind(Enum):
    NULL = "Null"
    BOOLEAN = "Boolean"
    INTEGER = "Integer"
    DECIMAL = "Decimal"
    STRING = "String"
    HOST = "HostReference"
    FUNCTION = "Function"


class Flag(Enum):
    IF = "if"
    LOOP = "loop"
    RETURN = "return"


@runtime_checkable
class Operable(Protocol):
    """Arithmetic capability a host type implements to be usable with script operators.

    Each method receives the right-hand operand converted to its host form
    and returns a new host object.
    """

    def plus(self, other: Any) -> Any: ...
    def subtract(self, other: Any) -> Any: ...
    def multiply(self, other: Any) -> Any: ...
    def divide(self, other: Any) -> Any: ...
    def module(self, other: Any) -> Any: ...


# =================================================================
# Value
# =================================================================

class Value:
    """A dynamically typed script value.

    Values are never mutated: every operation, including flagging a value as
    a return signal, produces a new instance.
    """

    __slots__ = ("kind", "payload", "flags")

    def __init__(self, kind: Kind, payload: Any = None, flags: FrozenSet[Flag] = frozenset()):
        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "payload", payload)
        object.__setattr__(self, "flags", frozenset(flags))

    def __setattr__(self, name, value):
        raise AttributeError("Value is immutable")

    # --- constructors ---

    @classmethod
    def null(cls) -> 'Value':
        return NULL

    @classmethod
    def boolean(cls, flag: bool) -> 'Value':
        return TRUE if flag else FALSE

    @classmethod
    def integer(cls, number: int) -> 'Value':
        """An Integer, or an exact Decimal when `number` leaves the Integer range."""
        if INTEGER_MIN <= number <= INTEGER_MAX:
            return cls(Kind.INTEGER, int(number))
        return cls(Kind.DECIMAL, Decimal(number))

    @classmethod
    def decimal(cls, number) -> 'Value':
        return cls(Kind.DECIMAL, number if isinstance(number, Decimal) else Decimal(str(number)))

    @classmethod
    def string(cls, text: str) -> 'Value':
        return cls(Kind.STRING, str(text))

    @classmethod
    def host(cls, obj: Any) -> 'Value':
        return cls(Kind.HOST, obj)

    @classmethod
    def function(cls, fn: 'ScriptFunction') -> 'Value':
        return cls(Kind.FUNCTION, fn)

    @classmethod
    def from_host(cls, obj: Any) -> 'Value':
        """Marshals a host object into a Value."""
        match obj:
            case Value():
                return obj
            case None:
                return NULL
            case bool():
                return cls.boolean(obj)
            case int():
                return cls.integer(obj)
            case Decimal():
                return cls.decimal(obj)
            case float():
                return cls.decimal(repr(obj))
            case str():
                return cls.string(obj)
            case ScriptFunction():
                return cls.function(obj)
            case _ if isinstance(getattr(obj, "script_function", None), ScriptFunction):
                # A script function that went out to the host comes back unwrapped.
                return cls.function(obj.script_function)
            case _:
                return cls.host(obj)

    def to_host(self) -> Any:
        """Unmarshals back to the host's native equivalent."""
        if self.kind is Kind.NULL:
            return None
        return self.payload

    # --- flags ---

    def with_flag(self, flag: Flag) -> 'Value':
        return Value(self.kind, self.payload, self.flags | {flag})

    def without_flags(self) -> 'Value':
        if not self.flags:
            return self
        return Value(self.kind, self.payload)

    def has_flag(self, flag: Flag) -> bool:
        return flag in self.flags

    @property
    def is_return(self) -> bool:
        return Flag.RETURN in self.flags

    @property
    def is_numeric(self) -> bool:
        return self.kind in (Kind.INTEGER, Kind.DECIMAL)

    # --- conversions ---

    def text(self) -> str:
        """The textual form used for concatenation and string fallbacks."""
        match self.kind:
            case Kind.NULL:
                return "null"
            case Kind.BOOLEAN:
                return "true" if self.payload else "false"
            case Kind.DECIMAL:
                return format(self.payload, "f")
            case Kind.FUNCTION:
                return f"<function {self.payload.name}>"
            case _:
                return str(self.payload)

    def truthy(self) -> bool:
        """Boolean as is; Integer only when greater than zero; others parse their text."""
        if self.kind is Kind.BOOLEAN:
            return self.payload
        if self.kind is Kind.INTEGER:
            return self.payload > 0
        return self.text().strip().lower() == "true"

    # --- protocol ---

    def __eq__(self, other):
        if not isinstance(other, Value):
            return NotImplemented
        return equals(self, other)

    # Cross-kind equality falls back to text, so no hash can agree with it.
    __hash__ = None

    def __repr__(self) -> str:
        flags = f", flags={sorted(f.value for f in self.flags)}" if self.flags else ""
        return f"Value({self.kind.value}, {self.payload!r}{flags})"


NULL = Value(Kind.NULL)
TRUE = Value(Kind.BOOLEAN, True)
FALSE = Value(Kind.BOOLEAN, False)


# =================================================================
# Arithmetic and comparison
# =================================================================

def _as_decimal(value: Value) -> Decimal:
    return value.payload if value.kind is Kind.DECIMAL else Decimal(value.payload)


def _numeric(op: str, left: Value, right: Value) -> Value:
    if op in ("divide", "module") and right.payload == 0:
        verb = "Division" if op == "divide" else "Modulo"
        raise ScriptArithmeticError(f"{verb} by zero")

    if left.kind is Kind.INTEGER and right.kind is Kind.INTEGER:
        a, b = left.payload, right.payload
        match op:
            case "plus":
                return Value.integer(a + b)
            case "subtract":
                return Value.integer(a - b)
            case "multiply":
                return Value.integer(a * b)
            case "divide":
                if a % b == 0:
                    return Value.integer(a // b)
                return Value.decimal(DIVISION_CONTEXT.divide(Decimal(a), Decimal(b)))
            case "module":
                # Sign follows the dividend.
                r = abs(a) % abs(b)
                return Value.integer(-r if a < 0 else r)

    a, b = _as_decimal(left), _as_decimal(right)
    match op:
        case "plus":
            result = EXACT_CONTEXT.add(a, b)
        case "subtract":
            result = EXACT_CONTEXT.subtract(a, b)
        case "multiply":
            result = EXACT_CONTEXT.multiply(a, b)
        case "divide":
            result = DIVISION_CONTEXT.divide(a, b)
        case _:
            result = EXACT_CONTEXT.remainder(a, b)
    return Value.decimal(result)


def arithmetic(op: str, left: Value, right: Value,
               to_host: Optional[Callable[[Value], Any]] = None) -> Value:
    """Applies one of plus/subtract/multiply/divide/module to two Values.

    `to_host` converts the right operand before it reaches a host object's
    Operable method; it defaults to `Value.to_host`.
    """
    if op not in ARITHMETIC_OPERATIONS:
        raise ValueError(f"Unknown arithmetic operation: {op}")

    if left.is_numeric and right.is_numeric:
        return _numeric(op, left, right)

    if left.kind is Kind.STRING or right.kind is Kind.STRING:
        if op == "plus":
            return Value.string(left.text() + right.text())
        raise ScriptTypeError(
            f"Operator '{op}' is not defined for {left.kind.value} and {right.kind.value}"
        )

    if left.kind is Kind.HOST:
        obj = left.payload
        if not isinstance(obj, Operable):
            raise UnsupportedOperationError(
                f"{type(obj).__name__} does not support '{op}'"
            )
        other = to_host(right) if to_host is not None else right.to_host()
        match op:
            case "plus":
                result = obj.plus(other)
            case "subtract":
                result = obj.subtract(other)
            case "multiply":
                result = obj.multiply(other)
            case "divide":
                result = obj.divide(other)
            case _:
                result = obj.module(other)
        return Value.host(result)

    raise ScriptTypeError(
        f"Operator '{op}' is not defined for {left.kind.value} and {right.kind.value}"
    )


def negate(value: Value) -> Value:
    if value.kind is Kind.INTEGER:
        return Value.integer(-value.payload)
    if value.kind is Kind.DECIMAL:
        return Value.decimal(-value.payload)
    raise ScriptTypeError(f"Cannot negate a {value.kind.value}")


def equals(left: Value, right: Value) -> bool:
    if left.is_numeric and right.is_numeric:
        return left.payload == right.payload
    if left.kind is Kind.NULL or right.kind is Kind.NULL:
        return left.kind is right.kind
    if left.kind is Kind.HOST and right.kind is Kind.HOST:
        if left.payload is right.payload:
            return True
        return bool(left.payload == right.payload)
    if left.kind is Kind.FUNCTION or right.kind is Kind.FUNCTION:
        return left.payload is right.payload
    if left.kind is right.kind:
        return left.payload == right.payload
    return left.text() == right.text()


def compare(op: str, left: Value, right: Value) -> Value:
    """Evaluates a comparison operation to a Boolean Value."""
    if op == "equal":
        return Value.boolean(equals(left, right))
    if op == "not_equal":
        return Value.boolean(not equals(left, right))

    if left.is_numeric and right.is_numeric:
        a, b = left.payload, right.payload
    elif left.kind is Kind.STRING and right.kind is Kind.STRING:
        a, b = left.payload, right.payload
    else:
        raise ScriptTypeError(
            f"Cannot order {left.kind.value} and {right.kind.value}"
        )
    match op:
        case "less":
            return Value.boolean(a < b)
        case "greater":
            return Value.boolean(a > b)
        case "less_equal":
            return Value.boolean(a <= b)
        case "greater_equal":
            return Value.boolean(a >= b)
    raise ValueError(f"Unknown comparison operation: {op}")


# =================================================================
# Callables
# =================================================================

class ScriptFunction:
    """A function defined in script code, closed over its defining Context."""

    def __init__(self, name: str, params: List[str], body: List['Element'], closure: 'Context'):
        self.name = name
        self.params = list(params)
        self.body = body
        self.closure = closure

    @property
    def arity(self) -> int:
        return len(self.params)

    def __repr__(self) -> str:
        return f"<function {self.name}({', '.join(self.params)})>"


# =================================================================
# Context
# =================================================================

class Context:
    """A chained variable scope.

    Lookup walks from this scope outward to the root. Names carrying the
    global marker always resolve against the root scope.
    """

    def __init__(self, parent: Optional['Context'] = None, name: str = "root",
                 syntax: Optional['Syntax'] = None):
        self.bindings: Dict[str, Value] = {}
        self.parent = parent
        self.name = name
        if syntax is None and parent is not None:
            syntax = parent.syntax
        self.syntax = syntax

    @property
    def root(self) -> 'Context':
        ctx = self
        while ctx.parent is not None:
            ctx = ctx.parent
        return ctx

    def _route(self, name: str):
        """Returns (scope to start from, bare name) for a possibly global-marked name."""
        if self.syntax is not None:
            is_global, bare = self.syntax.strip_global(name)
            if is_global:
                return self.root, bare
        return self, name

    def find_owner(self, key: str) -> Optional['Context']:
        ctx = self
        while ctx is not None:
            if key in ctx.bindings:
                return ctx
            ctx = ctx.parent
        return None

    def lookup(self, name: str) -> Optional[Value]:
        """The bound Value, or None when the name is bound nowhere in the chain."""
        start, key = self._route(name)
        owner = start.find_owner(key)
        if owner is None:
            return None
        return owner.bindings[key]

    def assign(self, name: str, value: Value) -> Value:
        """Binds in this scope, or in the root scope for global-marked names."""
        target, key = self._route(name)
        target.bindings[key] = value
        return value

    define = assign

    def push(self, name: str = "block") -> 'Context':
        return Context(parent=self, name=name)

    def pop(self) -> Optional['Context']:
        return self.parent

    def __getitem__(self, key: str) -> Value:
        value = self.lookup(key)
        if value is None:
            raise KeyError(f"'{key}'")
        return value

    def __setitem__(self, key: str, value: Value):
        self.assign(key, value)

    def __contains__(self, key: str) -> bool:
        return self.lookup(key) is not None

    def get(self, key: str, default: Any = None) -> Any:
        value = self.lookup(key)
        return default if value is None else value

    def keys(self) -> collections.abc.KeysView:
        return self.bindings.keys()

    def __repr__(self) -> str:
        return f"<Context {self.name} {sorted(self.bindings)}>"
