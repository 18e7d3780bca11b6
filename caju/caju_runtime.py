# caju_runtime.py

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from caju.caju_syntax import Syntax
from caju.caju_parser import CajuParser
from caju.caju_interpreter import Evaluator
from caju.caju_host import PythonHost
from caju.caju_printer import Printer
from caju.caju_errors import ScriptError, ScriptNameError
from caju.caju_elements import Block
from caju.caju_datatypes import Value, Kind, Context, ScriptFunction


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Dict] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message with its line number if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and self.error_token.get('line') is not None:
            line = self.error_token['line']
            if not msg.startswith("Error on line "):
                return f"Error on line {line}: {msg}"
        return msg


class ScriptInterface:
    """Forwards attribute calls to script functions of the same name.

    `runner.get_interface("area", "perimeter").area(2)` invokes the script
    function `area`. With no names given, any public attribute forwards.
    """

    def __init__(self, runner: 'ScriptRunner', names=()):
        self._runner = runner
        self._names = tuple(names)

    def __getattr__(self, name: str):
        if name.startswith("_") or (self._names and name not in self._names):
            raise AttributeError(name)

        def forward(*args):
            return self._runner.invoke_function(name, *args)
        forward.__name__ = name
        return forward

    def __repr__(self) -> str:
        return f"<ScriptInterface {list(self._names)}>"


class ScriptRunner:
    """Parses and executes Caju code against a persistent root scope."""

    def __init__(self, syntax: Optional[Syntax] = None, host: Optional[PythonHost] = None,
                 source_dir: Optional[str] = None, http_config: Optional[Dict] = None):
        self.syntax = syntax or Syntax.default()
        self.host = host or PythonHost()
        self.source_dir = source_dir  # anchors relative include locators
        self.http_config = http_config
        self.root_scope = Context(name="root", syntax=self.syntax)
        self.evaluator = Evaluator(self.syntax, self.host)
        self.printer = Printer(self.syntax)
        self._install_builtins()

    def _install_builtins(self):
        self.root_scope.assign("print", Value.host(self._print))

    def _print(self, *args):
        message = " ".join(Value.from_host(a).text() for a in args)
        self.evaluator.side_effects.append({'topics': ['stdout'], 'message': message})

    @property
    def parser(self) -> CajuParser:
        return CajuParser(self.syntax, base_dir=self.source_dir, http_config=self.http_config)

    def parse(self, source: str, origin: Optional[str] = None) -> Block:
        return self.parser.parse(source, origin)

    # ------------------------------------------------------------------
    # Host binding surface
    # ------------------------------------------------------------------

    def _to_host(self, value: Optional[Value]) -> Any:
        return self.evaluator.to_host(value)

    def set(self, name: str, host_value: Any):
        """Binds a host value in the root scope."""
        self.root_scope.assign(name, Value.from_host(host_value))

    def get(self, name: str) -> Any:
        """Reads a binding back in its host form; unbound names read as None."""
        return self._to_host(self.root_scope.lookup(name))

    def eval(self, source: str) -> Any:
        """Runs a script unit and returns its last value. Script errors propagate."""
        if not self.evaluator.call_stack:
            self.evaluator.reset_errors()
        block = self.parse(source)
        return self._to_host(self.evaluator.run(block, self.root_scope))

    def call(self, fn: ScriptFunction, *args) -> Any:
        """Calls a script function with host arguments.

        Safe to use from a host callable while a script is running; the
        outer frames stay on the stack.
        """
        return self.evaluator.invoke(fn, args)

    def invoke_function(self, name: str, *args) -> Any:
        """Calls a script function by name with host arguments."""
        value = self.root_scope.lookup(name)
        if value is None or value.kind is not Kind.FUNCTION:
            raise ScriptNameError(f"Function '{name}' is not defined")
        return self.call(value.payload, *args)

    def get_interface(self, *names: str) -> ScriptInterface:
        return ScriptInterface(self, names)

    # ------------------------------------------------------------------
    # Structured execution
    # ------------------------------------------------------------------

    def handle_script(self, source_code: str) -> ExecutionResult:
        """Runs a script unit and reports the outcome without raising."""
        self.evaluator.side_effects = []
        if not self.evaluator.call_stack:
            self.evaluator.reset_errors()
            self.evaluator.running_line = None
        try:
            value = self.evaluator.run(self.parse(source_code), self.root_scope)
            return ExecutionResult(
                status='success',
                value=self._to_host(value),
                side_effects=self.evaluator.side_effects
            )
        except Exception as e:
            err_msg, err_token = self._format_runtime_error(e, source_code)
            self.evaluator.side_effects.append({'topics': ['stderr'], 'message': err_msg})
            return ExecutionResult(
                status='error',
                error_message=err_msg,
                error_token=err_token,
                side_effects=self.evaluator.side_effects
            )

    def _format_runtime_error(self, e: Exception, source: str) -> tuple[str, Optional[dict]]:
        match e:
            case ScriptError():
                msg = f"{e.kind}: {e.message}"
                line, text, origin = e.line, e.source_text, e.origin
            case RecursionError():
                msg = "RecursionError: maximum call depth exceeded"
                detail = self.evaluator.error_line or self.evaluator.running_line
                line, text, origin = (detail.number, detail.text, detail.origin) if detail else (None, None, None)
            case _:
                msg = f"InternalError: {e}"
                line, text, origin = None, None, None

        token = None
        if line is not None:
            token = {'line': line, 'text': text, 'origin': origin}
            if origin is None:
                context = self._source_context(source, line)
            else:
                context = f"> {line} | {text}\n  (in {origin})"
            if context:
                msg = f"{msg}\n{context}"

        st = self._format_stacktrace()
        if st:
            msg += "\n" + st
        return msg, token

    def _source_context(self, source: str, line: int, radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            out.append(f"{prefix} {str(i).rjust(width)} | {lines[i - 1]}")
        return "\n".join(out)

    def _format_stacktrace(self) -> str:
        stack = self.evaluator.error_stack
        if not stack:
            return ""
        frames = []
        for frame in stack:
            args = ", ".join(self.printer.pformat(a) for a in frame.get('args') or [])
            site = frame.get('call_site')
            where = f" at line {site.number}" if site is not None else ""
            frames.append(f"  {frame.get('name') or '<call>'}({args}){where}")
        return "Caju stacktrace:\n" + "\n".join(reversed(frames))
