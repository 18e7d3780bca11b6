from caju.caju_errors import (
    ScriptError, ScriptSyntaxError, ScriptTypeError, ScriptArithmeticError,
    UnsupportedOperationError, ArgumentError, ScriptNameError, HostError
)
from caju.caju_syntax import Syntax, SyntaxPosition
from caju.caju_datatypes import Value, Kind, Flag, Operable, Context, ScriptFunction
from caju.caju_parser import CajuParser
from caju.caju_interpreter import Evaluator, ScriptCallable
from caju.caju_host import PythonHost
from caju.caju_printer import Printer
from caju.caju_runtime import ScriptRunner, ExecutionResult, ScriptInterface

__version__ = "0.1.0"
