"""
The Caju syntax matcher.

Recognizes statements, block markers and operators inside raw lines of
script text. Every symbol the language uses comes from a YAML symbol table,
so a host can swap `@` for `while` or `~` for `return` without touching the
parser. The same table drives the koine expression grammar.
"""

import copy
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from koine import Parser

_PACKAGE_DIR = Path(__file__).parent
DEFAULT_SYNTAX_PATH = _PACKAGE_DIR / "syntax.yaml"
EXPRESSION_GRAMMAR_PATH = _PACKAGE_DIR / "grammar" / "caju_expression.yaml"

IDENTIFIER = r"[A-Za-z_][A-Za-z0-9_]*"

# Operator families in the order an operator token is attributed to them.
OPERATOR_FAMILIES = ("comparison", "logical", "arithmetic")

_REQUIRED_SYMBOLS = (
    "comment", "statement_separator", "global_marker", "null", "import",
    "return", "loop", "function", "if", "else", "assign",
)


@dataclass(frozen=True)
class SyntaxPosition:
    """A recognized token or statement: rule name, span and captured parts."""
    name: str
    start: int
    end: int
    groups: Dict[str, Optional[str]] = field(default_factory=dict)


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_table(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


class Syntax:
    """A configurable recognizer for Caju statements and operators."""

    _default: Optional['Syntax'] = None

    def __init__(self, overrides: Optional[Dict[str, Any]] = None):
        table = _load_table(DEFAULT_SYNTAX_PATH)
        if overrides:
            table = _merge(table, overrides)
        self.table = table
        self._validate()
        self._operators = self._build_operator_table()
        self._operator_regex = re.compile("|".join(
            re.escape(sym) for sym in sorted(self._operators, key=len, reverse=True)
        ))
        self._statement_rules = self._build_statement_rules()
        self._expression_parser: Optional[Parser] = None

    @classmethod
    def from_file(cls, path) -> 'Syntax':
        """Builds a syntax from a (partial) YAML symbol table."""
        return cls(_load_table(Path(path)))

    @classmethod
    def default(cls) -> 'Syntax':
        if cls._default is None:
            cls._default = cls()
        return cls._default

    # ------------------------------------------------------------------
    # Symbol table
    # ------------------------------------------------------------------

    def _validate(self):
        for key in _REQUIRED_SYMBOLS:
            value = self.table.get(key)
            if not isinstance(value, str) or not value:
                raise ValueError(f"Syntax symbol '{key}' must be a non-empty string")
        for family in OPERATOR_FAMILIES:
            symbols = self.table.get(family)
            if not isinstance(symbols, dict) or not symbols:
                raise ValueError(f"Syntax table is missing the '{family}' operators")
        if self.table["else"] == self.table["if"]:
            raise ValueError("The else marker must differ from the conditional marker")

    def symbol(self, key: str) -> str:
        return self.table[key]

    @property
    def global_marker(self) -> str:
        return self.table["global_marker"]

    def _build_operator_table(self) -> Dict[str, Tuple[str, str]]:
        """Maps each operator symbol to (family, operation) for the first family that claims it."""
        table: Dict[str, Tuple[str, str]] = {}
        for family in OPERATOR_FAMILIES:
            for name, sym in self.table[family].items():
                table.setdefault(str(sym), (family, name))
        return table

    def operator_name(self, symbol: str, family: Optional[str] = None) -> Optional[str]:
        """Returns the operation name (`plus`, `less_equal`, ...) for a symbol."""
        if family is not None:
            for name, sym in self.table.get(family, {}).items():
                if sym == symbol:
                    return name
            return None
        entry = self._operators.get(symbol)
        return entry[1] if entry else None

    def boolean_value(self, text: str) -> bool:
        return text == str(self.table["booleans"]["true"])

    # ------------------------------------------------------------------
    # Masking and statement splitting
    # ------------------------------------------------------------------

    def mask(self, text: str) -> str:
        """Blanks the contents of string literals so markers inside them are ignored.

        Offsets are preserved; quote characters themselves are kept.
        """
        out = []
        quote = None
        escaped = False
        for ch in text:
            if quote is None:
                if ch in ('"', "'"):
                    quote = ch
                out.append(ch)
                continue
            if escaped:
                escaped = False
                out.append("_")
            elif ch == "\\":
                escaped = True
                out.append("_")
            elif ch == quote:
                quote = None
                out.append(ch)
            else:
                out.append("_")
        return "".join(out)

    def split_statements(self, line: str) -> List[str]:
        """Splits a physical line on the statement separator, outside string literals."""
        sep = self.table["statement_separator"]
        masked = self.mask(line)
        parts = []
        start = 0
        pos = masked.find(sep)
        while pos != -1:
            parts.append(line[start:pos])
            start = pos + len(sep)
            pos = masked.find(sep, start)
        parts.append(line[start:])
        return parts

    def is_comment(self, line: str) -> bool:
        return line.lstrip().startswith(self.table["comment"])

    # ------------------------------------------------------------------
    # Global marker
    # ------------------------------------------------------------------

    def global_position(self, name: str) -> int:
        """Offset just past the global marker, or -1 when `name` does not carry it."""
        marker = self.global_marker
        if name.startswith(marker) and len(name) > len(marker):
            return len(marker)
        return -1

    def strip_global(self, name: str) -> Tuple[bool, str]:
        pos = self.global_position(name)
        if pos == -1:
            return False, name
        return True, name[pos:]

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def _build_statement_rules(self) -> List[Tuple[str, 're.Pattern']]:
        e = re.escape
        t = self.table
        loop, func, cond, other = e(t["loop"]), e(t["function"]), e(t["if"]), e(t["else"])
        name = rf"(?:{e(t['global_marker'])})?{IDENTIFIER}"
        dotted = rf"{name}(?:\.{IDENTIFIER})*"
        arithmetic = "|".join(e(s) for s in sorted(t["arithmetic"].values(), key=len, reverse=True))
        operator_chars = {s[0] for s in self._operators} | {t["assign"][0], "(", ")", ","}
        not_operator = "".join(e(c) for c in sorted(operator_chars))

        def without(marker):
            return rf"(?:(?!{marker}).)"

        rules = [
            ("comment", rf"^\s*{e(t['comment'])}"),
            ("inline_loop", rf"^(?P<condition>{without(loop)}+?)\s*{loop}\s*(?P<body>\S.*?)\s*{loop}$"),
            ("inline_function", rf"^(?P<header>{without(func)}+?)\s*{func}\s*(?P<body>\S.*?)\s*{func}$"),
            ("inline_if", rf"^(?P<condition>{without(cond)}+?)\s*{cond}\s*(?P<then>(?!{cond})\S.*?)"
                          rf"\s*(?:{other}\s*(?P<otherwise>\S.*?)\s*)?{cond}$"),
            ("loop_close", rf"^{loop}$"),
            ("loop_open", rf"^(?P<condition>.+?)\s*{loop}$"),
            ("function_close", rf"^{func}$"),
            ("function_open", rf"^(?P<name>{name})\s*(?:\((?P<params>[^()]*)\)|(?P<bare>(?:\s+[^()]*?)?))\s*{func}$"),
            ("else", rf"^{other}$"),
            ("if_close", rf"^{cond}$"),
            ("else_if", rf"^{cond}\s*(?P<condition>.+?)\s*{cond}$"),
            ("if_open", rf"^(?P<condition>.+?)\s*{cond}$"),
            ("return", rf"^{e(t['return'])}\s*(?P<expression>.*)$"),
            ("import", rf"^{e(t['import'])}\s*(?P<target>\"[^\"]*\"|'[^']*'|{IDENTIFIER}(?:\.{IDENTIFIER})*)$"),
            ("assignment", rf"^(?P<name>{name})\s*(?P<operator>{arithmetic})?{e(t['assign'])}(?!{e(t['assign'])})\s*(?P<expression>.*)$"),
            ("bare_call", rf"^(?P<name>{dotted})\s+(?P<arguments>[^\s{not_operator}].*)$"),
        ]
        return [(rule_name, re.compile(pattern)) for rule_name, pattern in rules]

    def find(self, text: str, context: str = "root") -> Optional[SyntaxPosition]:
        """Returns the first recognized token of `text` in `context`, or None.

        In the "root" context `text` is a whole statement and the result names
        the statement rule that matched, with its captured parts sliced from
        the original text. In the "expression" context the result is the first
        operator token, longest symbol first.
        """
        masked = self.mask(text)
        if context == "root":
            for rule_name, regex in self._statement_rules:
                m = regex.match(masked)
                if m is None:
                    continue
                groups = {
                    key: (text[m.start(key):m.end(key)] if m.group(key) is not None else None)
                    for key in regex.groupindex
                }
                return SyntaxPosition(rule_name, m.start(), m.end(), groups)
            return None
        if context == "expression":
            m = self._operator_regex.search(masked)
            if m is None:
                return None
            family, op = self._operators[m.group(0)]
            return SyntaxPosition(op, m.start(), m.end(), {"symbol": m.group(0), "family": family})
        raise ValueError(f"Unknown syntax context: {context!r}")

    # ------------------------------------------------------------------
    # Expression grammar
    # ------------------------------------------------------------------

    @staticmethod
    def _leaf_choice(symbols) -> Dict[str, Any]:
        ordered = sorted({str(s) for s in symbols}, key=len, reverse=True)
        return {"ast": {"leaf": True}, "choice": [{"literal": s} for s in ordered]}

    def expression_grammar(self) -> Dict[str, Any]:
        """The koine grammar for expressions, with this table's symbols injected."""
        with open(EXPRESSION_GRAMMAR_PATH, "r", encoding="utf-8") as f:
            grammar = yaml.safe_load(f)
        t = self.table
        rules = grammar["rules"]
        rules["or_op"] = self._leaf_choice([t["logical"]["or"]])
        rules["and_op"] = self._leaf_choice([t["logical"]["and"]])
        rules["compare_op"] = self._leaf_choice(t["comparison"].values())
        rules["sum_op"] = self._leaf_choice([t["arithmetic"]["plus"], t["arithmetic"]["subtract"]])
        rules["product_op"] = self._leaf_choice(
            [t["arithmetic"]["multiply"], t["arithmetic"]["divide"], t["arithmetic"]["module"]]
        )
        rules["negative_op"] = {"ast": {"leaf": True}, "literal": t["arithmetic"]["subtract"]}
        rules["null_value"] = {"ast": {"leaf": True}, "literal": t["null"]}
        true, false = (re.escape(str(t["booleans"][k])) for k in ("true", "false"))
        rules["boolean"]["regex"] = rf"(?:{true}|{false})(?![A-Za-z0-9_])"
        rules["reference"]["regex"] = (
            rf"(?:{re.escape(t['global_marker'])})?{IDENTIFIER}(?:\.{IDENTIFIER})*"
        )
        return grammar

    @property
    def expression_parser(self) -> Parser:
        if self._expression_parser is None:
            self._expression_parser = Parser(self.expression_grammar())
        return self._expression_parser
