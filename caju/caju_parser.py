"""
Line-driven parser for Caju scripts.

Each physical line is split into statements, and every statement is matched
against the syntax's block markers before it is treated as a plain statement.
Block markers open and close frames on a stack; expressions inside
statements go through the koine expression grammar.
"""

import re
from typing import Callable, Dict, List, Optional, Tuple

import httpx

from caju.caju_syntax import Syntax, IDENTIFIER
from caju.caju_transformer import CajuTransformer, unescape
from caju.caju_file import read_script, origin_dir
from caju.caju_errors import ScriptSyntaxError
from caju.caju_elements import (
    LineDetail, Element, Block, Branch, Conditional, Loop, FunctionDef,
    FunctionCall, Return, Import, Assignment, Expression, Operation, Reference
)

_IDENTIFIER_RE = re.compile(IDENTIFIER)
_PARAM_SPLIT_RE = re.compile(r"[\s,]+")

_BLOCK_NAMES = {"loop": "loop", "if": "conditional", "function": "function"}


class _OpenBlock:
    """A block whose closing marker has not been seen yet."""

    def __init__(self, kind: str, line: LineDetail, condition: Optional[Element] = None,
                 name: Optional[str] = None, params: Tuple[str, ...] = ()):
        self.kind = kind
        self.line = line
        self.condition = condition
        self.name = name
        self.params = params
        self.children: List[Element] = []
        # Conditional only
        self.branch_line = line
        self.branches: List[Branch] = []
        self.otherwise: Optional[List[Element]] = None

    def add(self, element: Element):
        if self.otherwise is not None:
            self.otherwise.append(element)
        else:
            self.children.append(element)

    def next_branch(self, line: LineDetail, condition: Element):
        self.branches.append(Branch(self.branch_line, self.condition, tuple(self.children)))
        self.branch_line = line
        self.condition = condition
        self.children = []

    def start_else(self):
        self.branches.append(Branch(self.branch_line, self.condition, tuple(self.children)))
        self.children = []
        self.otherwise = []

    def close(self) -> Element:
        match self.kind:
            case "loop":
                return Loop(self.line, self.condition, tuple(self.children))
            case "function":
                return FunctionDef(self.line, self.name, self.params, tuple(self.children))
            case _:
                if self.otherwise is None:
                    self.branches.append(Branch(self.branch_line, self.condition, tuple(self.children)))
                    return Conditional(self.line, tuple(self.branches))
                return Conditional(self.line, tuple(self.branches), tuple(self.otherwise))


class _ParseState:
    def __init__(self, root_line: LineDetail):
        self.root: List[Element] = []
        self.stack: List[_OpenBlock] = []
        self.root_line = root_line

    def add(self, element: Element):
        if self.stack:
            self.stack[-1].add(element)
        else:
            self.root.append(element)


class CajuParser:
    """Turns Caju source text into a Block of elements."""

    def __init__(self, syntax: Optional[Syntax] = None, *, base_dir: Optional[str] = None,
                 http_config: Optional[Dict] = None, loader: Optional[Callable] = None):
        self.syntax = syntax or Syntax.default()
        self.transformer = CajuTransformer(self.syntax)
        self.base_dir = base_dir
        self.http_config = http_config
        self.loader = loader or read_script

    def parse(self, source: str, origin: Optional[str] = None) -> Block:
        first = source.splitlines()[0] if source.strip() else ""
        state = _ParseState(LineDetail(1, first, origin))
        including = (origin,) if origin else ()
        self._feed(state, source, origin, self.base_dir, including)
        if state.stack:
            block = state.stack[-1]
            raise self._error(f"Unclosed {_BLOCK_NAMES[block.kind]}", block.line)
        return Block(state.root_line, tuple(state.root))

    # ------------------------------------------------------------------

    def _error(self, message: str, line: LineDetail) -> ScriptSyntaxError:
        return ScriptSyntaxError(message, line.number, line.text, line.origin)

    def _feed(self, state: _ParseState, source: str, origin: Optional[str],
              base_dir: Optional[str], including: Tuple[str, ...]):
        for number, raw in enumerate(source.splitlines(), start=1):
            if not raw.strip() or self.syntax.is_comment(raw):
                continue
            line = LineDetail(number, raw, origin)
            for statement in self.syntax.split_statements(raw):
                statement = statement.strip()
                if statement:
                    self._statement(state, line, statement, base_dir, including)

    def _statement(self, state: _ParseState, line: LineDetail, text: str,
                   base_dir: Optional[str], including: Tuple[str, ...]):
        pos = self.syntax.find(text, "root")
        rule = pos.name if pos else "expression"
        g = pos.groups if pos else {}
        sym = self.syntax.symbol

        match rule:
            case "comment":
                return

            # One-line blocks expand into their multi-line form.
            case "inline_loop":
                parts = [f"{g['condition']} {sym('loop')}", g['body'], sym('loop')]
            case "inline_function":
                parts = [f"{g['header']} {sym('function')}", g['body'], sym('function')]
            case "inline_if":
                parts = [f"{g['condition']} {sym('if')}", g['then']]
                if g['otherwise'] is not None:
                    parts += [sym('else'), g['otherwise']]
                parts.append(sym('if'))

            case "loop_open":
                state.stack.append(_OpenBlock("loop", line, condition=self._expression(g['condition'], line)))
                return
            case "function_open":
                params = g['params'] if g['params'] is not None else (g['bare'] or "")
                state.stack.append(_OpenBlock(
                    "function", line, name=g['name'], params=self._params(params, line)
                ))
                return
            case "if_open":
                state.stack.append(_OpenBlock("if", line, condition=self._expression(g['condition'], line)))
                return
            case "else_if":
                block = self._expect_open("if", text, line, state)
                if block.otherwise is not None:
                    raise self._error(f"Else-if after the else branch of the conditional opened on line {block.line.number}", line)
                block.next_branch(line, self._expression(g['condition'], line))
                return
            case "else":
                block = self._expect_open("if", text, line, state)
                if block.otherwise is not None:
                    raise self._error(f"Duplicate else in the conditional opened on line {block.line.number}", line)
                block.start_else()
                return
            case "loop_close" | "function_close" | "if_close":
                kind = rule.split("_")[0]
                block = self._expect_open(kind, text, line, state)
                state.stack.pop()
                state.add(block.close())
                return

            case "return":
                if not any(b.kind == "function" for b in state.stack):
                    raise self._error("Return outside of a function body", line)
                expr = g['expression'].strip()
                state.add(Return(line, self._expression(expr, line) if expr else None))
                return
            case "import":
                target = g['target']
                if target[0] in ('"', "'"):
                    self._include(state, unescape(target[1:-1]), line, base_dir, including)
                else:
                    state.add(Import(line, target))
                return
            case "assignment":
                expr = self._expression(g['expression'], line)
                if g['operator']:
                    op = self.syntax.operator_name(g['operator'], "arithmetic")
                    expr = Operation(line, "arithmetic", op, Reference(line, g['name']), expr)
                state.add(Assignment(line, g['name'], expr))
                return
            case "bare_call":
                call = self._expression(f"{g['name']}({g['arguments']})", line)
                if not isinstance(call, FunctionCall):
                    raise self._error(f"Invalid call: {text}", line)
                state.add(Expression(line, call))
                return
            case _:
                state.add(Expression(line, self._expression(text, line)))
                return

        for part in parts:
            self._statement(state, line, part.strip(), base_dir, including)

    def _expect_open(self, kind: str, marker: str, line: LineDetail, state: _ParseState) -> _OpenBlock:
        if not state.stack:
            raise self._error(f"Unexpected '{marker}' with no open {_BLOCK_NAMES[kind]}", line)
        block = state.stack[-1]
        if block.kind != kind:
            raise self._error(
                f"Unexpected '{marker}': the {_BLOCK_NAMES[block.kind]} opened on line "
                f"{block.line.number} is still open", line
            )
        return block

    def _params(self, text: str, line: LineDetail) -> Tuple[str, ...]:
        params = tuple(p for p in _PARAM_SPLIT_RE.split(text.strip()) if p)
        for p in params:
            if not _IDENTIFIER_RE.fullmatch(p):
                raise self._error(f"Invalid parameter name: {p!r}", line)
        if len(set(params)) != len(params):
            raise self._error("Duplicate parameter name", line)
        return params

    def _expression(self, text: str, line: LineDetail) -> Element:
        text = text.strip()
        if not text:
            raise self._error("Missing expression", line)
        out = self.syntax.expression_parser.parse(text)
        if out.get('status') != 'success':
            raise self._error(f"Invalid expression '{text}': {out.get('message')}", line)
        return self.transformer.transform(out['ast'], line)

    def _include(self, state: _ParseState, locator: str, line: LineDetail,
                 base_dir: Optional[str], including: Tuple[str, ...]):
        try:
            source, origin = self.loader(locator, base_dir, self.http_config)
        except (OSError, UnicodeDecodeError, RuntimeError, httpx.HTTPError) as e:
            raise self._error(f"Cannot include {locator!r}: {e}", line)
        if origin in including:
            raise self._error(f"Circular include of {origin!r}", line)
        self._feed(state, source, origin, origin_dir(origin, base_dir), including + (origin,))
