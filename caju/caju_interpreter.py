"""
The Caju execution engine.

A recursive tree walker: every element is executed against a Context and
yields a Value, or None for statements that produce nothing (definitions,
imports, a conditional with no matching branch). A `~` return does not
raise; it flags its Value, and conditionals and loops hand a flagged Value
straight up until a function-call boundary strips the flag.
"""

import os
import sys
from typing import Any, Dict, List, Optional, Sequence

from caju.caju_syntax import Syntax
from caju.caju_host import PythonHost, wrap_host_error
from caju.caju_errors import ScriptError, ScriptTypeError, ScriptNameError, ArgumentError
from caju.caju_datatypes import (
    Value, Kind, Flag, Context, ScriptFunction, NULL, TRUE, FALSE,
    arithmetic, compare, negate
)
from caju.caju_elements import (
    LineDetail, Element, Block, Literal, Reference, Operation, Negation, FunctionCall,
    Expression, Assignment, Return, Import, Conditional, Loop, FunctionDef
)


class Evaluator:
    """Executes element trees. One instance serves one evaluation at a time."""

    def __init__(self, syntax: Optional[Syntax] = None, host: Optional[PythonHost] = None):
        self.syntax = syntax or Syntax.default()
        self.host = host or PythonHost()
        # The line currently executing; stamped onto errors raised below it.
        self.running_line: Optional[LineDetail] = None
        self.current_node: Optional[Element] = None
        self.call_stack: List[Dict[str, Any]] = []
        # Snapshot of the stack and line at the innermost failure, for error reports.
        self.error: Optional[BaseException] = None
        self.error_stack: Optional[List[Dict[str, Any]]] = None
        self.error_line: Optional[LineDetail] = None
        self.side_effects: List[Dict] = []

    def _dbg(self, *parts):
        if os.environ.get("CAJU_DEBUG"):
            try:
                print("[DBG]", *parts, file=sys.stderr)
            except Exception:
                pass

    def _push_frame(self, name: str, args: Sequence[Value], line: Optional[LineDetail]):
        self.call_stack.append({'name': name, 'args': list(args), 'call_site': line})

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def _record_failure(self, error: BaseException):
        if self.error is not error:
            self.error = error
            self.error_stack = list(self.call_stack)
            self.error_line = self.running_line

    def reset_errors(self):
        self.error = None
        self.error_stack = None
        self.error_line = None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run(self, block: Block, context: Context) -> Optional[Value]:
        """Runs a script unit and returns its last produced value."""
        result = None
        for element in block.children:
            value = self.execute(element, context)
            if value is None or value.has_flag(Flag.IF) or value.has_flag(Flag.LOOP):
                continue
            result = value
        return result.without_flags() if result is not None else None

    def execute(self, element: Element, context: Context) -> Optional[Value]:
        self.running_line = element.line
        self.current_node = element
        try:
            return self._execute(element, context)
        except ScriptError as e:
            raise e.stamp(self.running_line)

    def call_function(self, fn: ScriptFunction, args: Sequence[Value],
                      call_site: Optional[LineDetail] = None) -> Value:
        """Invokes a script function with already evaluated arguments."""
        if len(args) != fn.arity:
            raise ArgumentError(
                f"Function '{fn.name}' expects {fn.arity} argument(s), got {len(args)}"
            )
        scope = fn.closure.push(fn.name)
        for param, arg in zip(fn.params, args):
            scope.define(param, arg.without_flags())

        saved_line = self.running_line
        self._push_frame(fn.name, args, call_site)
        self._dbg("call", fn.name, args)
        result = NULL
        try:
            for child in fn.body:
                value = self.execute(child, scope)
                if value is not None and value.is_return:
                    result = value.without_flags()
                    break
        except Exception as e:
            self._record_failure(e)
            raise
        finally:
            self._pop_frame()
            self.running_line = saved_line
        return result

    def invoke(self, fn: ScriptFunction, host_args: Sequence[Any]) -> Any:
        """Calls a script function with host arguments and returns a host result."""
        if not self.call_stack:
            self.reset_errors()
        result = self.call_function(fn, [Value.from_host(a) for a in host_args])
        return self.to_host(result)

    def to_host(self, value: Optional[Value]) -> Any:
        """Unmarshals a Value; script functions become ScriptCallables."""
        if value is None:
            return None
        if value.kind is Kind.FUNCTION:
            return ScriptCallable(self, value.payload)
        return value.to_host()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _execute(self, element: Element, context: Context) -> Optional[Value]:
        match element:
            case Literal():
                return element.value
            case Reference():
                return self._reference(element.name, context)
            case Operation(family="logical"):
                return self._logical(element, context)
            case Operation(family="comparison"):
                left = self.execute(element.left, context)
                right = self.execute(element.right, context)
                return compare(element.op, left, right)
            case Operation():
                left = self.execute(element.left, context)
                right = self.execute(element.right, context)
                return self._host_guard(arithmetic, element.op, left, right, self.to_host)
            case Negation():
                return negate(self.execute(element.operand, context))
            case FunctionCall():
                return self._call(element, context)
            case Expression():
                return self.execute(element.expr, context)
            case Assignment():
                value = self.execute(element.expr, context).without_flags()
                self._dbg("assign", element.name, value)
                return context.assign(element.name, value)
            case Return():
                value = self.execute(element.expr, context) if element.expr is not None else NULL
                return value.with_flag(Flag.RETURN)
            case Conditional():
                return self._conditional(element, context)
            case Loop():
                return self._loop(element, context)
            case FunctionDef():
                _, bare = self.syntax.strip_global(element.name)
                fn = ScriptFunction(bare, list(element.params), list(element.body), context)
                context.assign(element.name, Value.function(fn))
                return None
            case Import():
                self._host_guard(self.host.import_namespace, element.target)
                return None
            case Block():
                return self._body(element.children, context)
            case _:
                raise TypeError(f"Cannot execute element: {element!r}")

    def _host_guard(self, fn, *args):
        """Calls into host code, translating foreign exceptions into script errors."""
        try:
            return fn(*args)
        except (ScriptError, RecursionError):
            raise
        except Exception as e:
            raise wrap_host_error(e) from e

    # ------------------------------------------------------------------
    # Control flow
    # ------------------------------------------------------------------

    def _body(self, children: Sequence[Element], context: Context) -> Optional[Value]:
        """Runs children in order, handing a return-flagged value straight back."""
        last = None
        for child in children:
            value = self.execute(child, context)
            if value is not None and value.is_return:
                return value
            last = value
        return last

    def _branch(self, children: Sequence[Element], context: Context) -> Value:
        """Runs a conditional branch.

        The first child whose value carries a flag (a nested conditional or
        loop that ran, or a return) ends the branch and becomes its value.
        """
        for child in children:
            value = self.execute(child, context)
            if value is not None and value.flags:
                return value
        return TRUE.with_flag(Flag.IF)

    def _conditional(self, element: Conditional, context: Context) -> Optional[Value]:
        for branch in element.branches:
            if self.execute(branch.condition, context).truthy():
                return self._branch(branch.body, context)
        if element.otherwise is not None:
            return self._branch(element.otherwise, context)
        return None

    def _loop(self, element: Loop, context: Context) -> Value:
        while self.execute(element.condition, context).truthy():
            for child in element.body:
                value = self.execute(child, context)
                if value is not None and value.is_return:
                    return value
        return TRUE.with_flag(Flag.LOOP)

    def _logical(self, element: Operation, context: Context) -> Value:
        left = self.execute(element.left, context).truthy()
        if element.op == "and" and not left:
            return FALSE
        if element.op == "or" and left:
            return TRUE
        return Value.boolean(self.execute(element.right, context).truthy())

    # ------------------------------------------------------------------
    # Names and calls
    # ------------------------------------------------------------------

    def _reference(self, name: str, context: Context) -> Value:
        value = context.lookup(name)
        if value is not None:
            return value
        is_global, bare = self.syntax.strip_global(name)
        scope = context.root if is_global else context
        head, _, rest = bare.partition(".")
        if rest:
            holder = scope.lookup(head)
            if holder is not None:
                return Value.from_host(self._host_guard(self._member, holder, rest))
        found, obj = self._host_guard(self.host.resolve, bare)
        # Unbound names read as null.
        return Value.from_host(obj) if found else NULL

    def _member(self, holder: Value, path: str) -> Any:
        if holder.kind in (Kind.NULL, Kind.FUNCTION):
            raise ScriptTypeError(f"{holder.kind.value} has no member '{path}'")
        return self.host.member(holder.to_host(), path)

    def _resolve_callable(self, name: str, context: Context) -> Any:
        value = context.lookup(name)
        if value is not None:
            if value.kind is Kind.FUNCTION:
                return value.payload
            if value.kind is Kind.HOST and callable(value.payload):
                return value.payload
            raise ScriptTypeError(f"'{name}' is not a function")

        is_global, bare = self.syntax.strip_global(name)
        scope = context.root if is_global else context
        head, _, rest = bare.partition(".")
        holder = scope.lookup(head) if rest else None
        if holder is not None:
            obj = self._host_guard(self._member, holder, rest)
        else:
            found, obj = self._host_guard(self.host.resolve, bare)
            if not found:
                raise ScriptNameError(f"Function '{bare}' is not defined")
        if not callable(obj):
            raise ScriptTypeError(f"'{bare}' is not a function")
        return obj

    def _call(self, element: FunctionCall, context: Context) -> Value:
        target = self._resolve_callable(element.name, context)
        args = [self.execute(arg, context).without_flags() for arg in element.args]
        self.running_line = element.line
        if isinstance(target, ScriptFunction):
            return self.call_function(target, args, element.line)

        self._push_frame(element.name, args, element.line)
        try:
            result = self._host_guard(target, *[self.to_host(a) for a in args])
        except Exception as e:
            self._record_failure(e)
            raise
        finally:
            self._pop_frame()
        return Value.from_host(result)


class ScriptCallable:
    """A script function handed to the host as a plain Python callable."""

    def __init__(self, evaluator: Evaluator, fn: ScriptFunction):
        self.evaluator = evaluator
        self.script_function = fn
        self.__name__ = fn.name

    def __call__(self, *args):
        return self.evaluator.invoke(self.script_function, args)

    def __repr__(self) -> str:
        return f"<script function {self.script_function.name}>"
