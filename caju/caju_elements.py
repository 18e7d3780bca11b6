"""
The executable element tree produced by the Caju parser.

Elements are frozen dataclasses: built once at parse time, compared
structurally, never mutated. Each carries the LineDetail of the source line
it came from so runtime failures can quote it.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from caju.caju_datatypes import Value


@dataclass(frozen=True)
class LineDetail:
    """1-based line number and exact text of one source line."""
    number: int
    text: str
    origin: Optional[str] = None

    def __str__(self) -> str:
        where = f"{self.origin}:" if self.origin else "line "
        return f"{where}{self.number}: {self.text.strip()}"


@dataclass(frozen=True)
class Element:
    line: LineDetail


# --- expression operands ---

@dataclass(frozen=True)
class Literal(Element):
    value: Value


@dataclass(frozen=True)
class Reference(Element):
    name: str


@dataclass(frozen=True)
class Operation(Element):
    """A binary operator application; `family` is arithmetic, comparison or logical."""
    family: str
    op: str
    left: Element
    right: Element


@dataclass(frozen=True)
class Negation(Element):
    operand: Element


@dataclass(frozen=True)
class FunctionCall(Element):
    name: str
    args: Tuple[Element, ...] = ()


# --- statements ---

@dataclass(frozen=True)
class Expression(Element):
    expr: Element


@dataclass(frozen=True)
class Assignment(Element):
    name: str
    expr: Element


@dataclass(frozen=True)
class Return(Element):
    expr: Optional[Element] = None


@dataclass(frozen=True)
class Import(Element):
    """A namespace import; textual includes are spliced at parse time."""
    target: str


# --- blocks ---

@dataclass(frozen=True)
class Block(Element):
    children: Tuple[Element, ...] = ()


@dataclass(frozen=True)
class Branch(Element):
    condition: Element
    body: Tuple[Element, ...] = ()


@dataclass(frozen=True)
class Conditional(Element):
    branches: Tuple[Branch, ...]
    otherwise: Optional[Tuple[Element, ...]] = None


@dataclass(frozen=True)
class Loop(Element):
    condition: Element
    body: Tuple[Element, ...] = ()


@dataclass(frozen=True)
class FunctionDef(Element):
    name: str
    params: Tuple[str, ...] = ()
    body: Tuple[Element, ...] = ()
