"""
Script-level error taxonomy for the Caju runtime.

Every error raised while parsing or evaluating a script derives from
ScriptError and, where one exists, from the matching Python built-in so a
host can catch either `ScriptTypeError` or plain `TypeError`.
"""

from typing import Optional


class ScriptError(Exception):
    """Base class for failures that carry a script line for diagnostics."""

    kind = "ScriptError"

    def __init__(self, message: str, line: Optional[int] = None,
                 source_text: Optional[str] = None, origin: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.source_text = source_text
        self.origin = origin

    def stamp(self, detail) -> 'ScriptError':
        """Attach a LineDetail unless this error was already stamped."""
        if self.line is None and detail is not None:
            self.line = detail.number
            self.source_text = detail.text
            self.origin = detail.origin
        return self

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        return f"{self.message} (line {self.line})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, line={self.line!r})"


class ScriptSyntaxError(ScriptError, SyntaxError):
    kind = "SyntaxError"


class ScriptTypeError(ScriptError, TypeError):
    kind = "TypeError"


class ScriptArithmeticError(ScriptError, ZeroDivisionError):
    kind = "ArithmeticError"


class UnsupportedOperationError(ScriptError, TypeError):
    """Arithmetic requested on a host object without the Operable capability."""
    kind = "UnsupportedOperationError"


class ArgumentError(ScriptError, TypeError):
    kind = "ArgumentError"


class ScriptNameError(ScriptError, NameError):
    kind = "NameError"


class HostError(ScriptError):
    """A host callable raised something outside the script taxonomy."""
    kind = "HostError"
