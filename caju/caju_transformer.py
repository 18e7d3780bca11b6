"""
Transforms the koine expression AST into Caju elements.
"""

from decimal import Decimal

from caju.caju_datatypes import Value, NULL
from caju.caju_elements import (
    LineDetail, Element, Literal, Reference, Operation, Negation, FunctionCall
)
from caju.caju_errors import ScriptSyntaxError

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0"}

# Grammar rule tag of an operator leaf -> operator family.
_OPERATOR_FAMILIES = {
    "or_op": "logical",
    "and_op": "logical",
    "compare_op": "comparison",
    "sum_op": "arithmetic",
    "product_op": "arithmetic",
}


def unescape(body: str) -> str:
    out = []
    chars = iter(body)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, "")
        out.append(_ESCAPES.get(nxt, nxt))
    return "".join(out)


class CajuTransformer:
    def __init__(self, syntax):
        self.syntax = syntax

    def transform(self, node: dict, line: LineDetail) -> Element:
        tag = node.get('tag')
        match tag:
            case 'binary_op':
                op_node = node['op']
                family = _OPERATOR_FAMILIES[op_node['tag']]
                op = self.syntax.operator_name(op_node['text'], family)
                return Operation(
                    line, family, op,
                    self.transform(node['left'], line),
                    self.transform(node['right'], line),
                )
            case 'negation':
                return Negation(line, self.transform(node['children']['operand'], line))
            case 'number':
                txt = node['text']
                if '.' in txt:
                    return Literal(line, Value.decimal(Decimal(txt)))
                # Exact ints; out-of-range literals become Decimal.
                return Literal(line, Value.integer(int(txt)))
            case 'string':
                return Literal(line, Value.string(unescape(node['text'][1:-1])))
            case 'null_value':
                return Literal(line, NULL)
            case 'boolean':
                return Literal(line, Value.boolean(self.syntax.boolean_value(node['text'])))
            case 'reference':
                return Reference(line, node['text'])
            case 'call':
                children = node['children']
                args = (children.get('args') or {}).get('children') or []
                return FunctionCall(
                    line,
                    children['target']['text'],
                    tuple(self.transform(a, line) for a in args),
                )
            case _:
                raise ScriptSyntaxError(
                    f"Unexpected expression node: {tag!r}", line.number, line.text, line.origin
                )
