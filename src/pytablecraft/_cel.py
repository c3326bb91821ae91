"""Textual filter expressions written in CEL.

Only a boolean filter subset is accepted: ``&&``, ``||``, parentheses,
comparisons between a field and a literal, ``in [...]``, null checks and the
``contains`` / ``startsWith`` / ``endsWith`` string methods. The result is
an ordinary filter tree, so it is subject to the same field whitelist as
structured filter groups.
"""

from __future__ import annotations

from typing import Any

from celpy.celparser import CELParseError, CELParser
from lark import Token, Tree
from lark.visitors import Interpreter

from pytablecraft._constants import MAX_FILTER_DEPTH
from pytablecraft._errors import ValidationError
from pytablecraft._utils import IDENTIFIER_RE, validate_no_null_bytes
from pytablecraft.config import (
    FilterCondition,
    FilterExpression,
    FilterGroup,
    GroupKind,
    Operator,
)

_parser = CELParser()

# Lark relation rule name -> filter operator
RELATION_OPERATORS: dict[str, Operator] = {
    "relation_eq": Operator.EQ,
    "relation_ne": Operator.NEQ,
    "relation_lt": Operator.LT,
    "relation_le": Operator.LTE,
    "relation_gt": Operator.GT,
    "relation_ge": Operator.GTE,
}

# Operator to use when the literal is on the left: 5 < total -> total > 5
_FLIPPED: dict[Operator, Operator] = {
    Operator.EQ: Operator.EQ,
    Operator.NEQ: Operator.NEQ,
    Operator.LT: Operator.GT,
    Operator.LTE: Operator.GTE,
    Operator.GT: Operator.LT,
    Operator.GTE: Operator.LTE,
}

STRING_METHODS: dict[str, Operator] = {
    "contains": Operator.CONTAINS,
    "startsWith": Operator.STARTS_WITH,
    "endsWith": Operator.ENDS_WITH,
}

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}

_MISSING = object()

_EXPECTED = "a supported CEL filter expression"


def _unsupported(detail: str) -> ValidationError:
    return ValidationError("where", _EXPECTED, None, detail)


def _strip_quotes(s: str) -> str:
    if s[:1] in ("r", "R"):
        s = s[1:]
    if s.startswith(('"""', "'''")):
        return s[3:-3]
    return s[1:-1]


def _process_escapes(s: str) -> str:
    out = []
    i = 0
    while i < len(s):
        if s[i] == "\\" and i + 1 < len(s) and s[i + 1] in _ESCAPES:
            out.append(_ESCAPES[s[i + 1]])
            i += 2
        else:
            out.append(s[i])
            i += 1
    return "".join(out)


def _token_value(token: Token) -> Any:
    text = str(token)
    match token.type:
        case "NULL_LIT":
            return None
        case "BOOL_LIT":
            return text.lower() == "true"
        case "INT_LIT":
            return int(text, 0)
        case "UINT_LIT":
            return int(text.rstrip("uU"), 0)
        case "FLOAT_LIT":
            return float(text)
        case "STRING_LIT" | "MLSTRING_LIT":
            raw = _strip_quotes(text)
            if not text.startswith(("r", "R")):
                raw = _process_escapes(raw)
            validate_no_null_bytes("where", raw)
            return raw
    raise _unsupported(f"unsupported literal token {token.type}")


def _unwrap(node: Tree | Token) -> Tree | Token:
    """Descend through single-child precedence wrappers."""
    while (
        isinstance(node, Tree)
        and len(node.children) == 1
        and node.data not in ("ident", "literal", "list_lit", "paren_expr")
    ):
        node = node.children[0]
    return node


def _literal(node: Tree | Token) -> Any:
    """Literal value of ``node``, or ``_MISSING`` if it is not a literal."""
    node = _unwrap(node)
    if not isinstance(node, Tree):
        return _MISSING
    if node.data == "literal" and node.children and isinstance(node.children[0], Token):
        return _token_value(node.children[0])
    if node.data == "unary" and len(node.children) == 2:
        op, operand = node.children
        if isinstance(op, Tree) and op.data == "unary_neg":
            value = _literal(operand)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return -value
    if node.data == "list_lit":
        items: list[Any] = []
        if node.children and isinstance(node.children[0], Tree):
            for child in node.children[0].children:
                value = _literal(child)
                if value is _MISSING:
                    raise _unsupported("list elements must be literals")
                items.append(value)
        return items
    return _MISSING


def _field_name(node: Tree | Token) -> str | None:
    """Dotted field name of an identifier or member chain, else None."""
    node = _unwrap(node)
    if not isinstance(node, Tree):
        return None
    if node.data == "ident" and node.children:
        name = str(node.children[0])
    elif node.data == "member_dot" and len(node.children) == 2:
        parent = _field_name(node.children[0])
        if parent is None:
            return None
        name = f"{parent}.{node.children[1]}"
    else:
        return None
    if not all(IDENTIFIER_RE.match(part) for part in name.split(".")):
        raise _unsupported(f"invalid field name {name!r}")
    return name


class FilterExpressionBuilder(Interpreter):
    """Turns a CEL parse tree into a filter tree."""

    def __init__(self) -> None:
        self._depth = 0

    def visit(self, tree: Tree) -> Any:
        if not isinstance(tree, Tree):
            raise _unsupported(f"unexpected token {tree!r}")
        self._depth += 1
        try:
            if self._depth > MAX_FILTER_DEPTH * 8:
                raise _unsupported("expression nesting too deep")
            return super().visit(tree)
        finally:
            self._depth -= 1

    def __default__(self, tree: Tree) -> Any:
        if len(tree.children) == 1:
            return self.visit(tree.children[0])
        raise _unsupported(f"unsupported {tree.data} expression")

    def expr(self, tree: Tree) -> FilterExpression:
        if len(tree.children) != 1:
            raise _unsupported("conditional expressions are not supported")
        return self.visit(tree.children[0])

    def _logical(self, tree: Tree, kind: GroupKind) -> FilterExpression:
        if len(tree.children) == 1:
            return self.visit(tree.children[0])
        children: list[FilterExpression] = []
        for child in tree.children:
            result = self.visit(child)
            if isinstance(result, FilterGroup) and result.kind == kind:
                children.extend(result.children)
            else:
                children.append(result)
        return FilterGroup(kind, tuple(children))

    def conditionalor(self, tree: Tree) -> FilterExpression:
        return self._logical(tree, GroupKind.OR)

    def conditionaland(self, tree: Tree) -> FilterExpression:
        return self._logical(tree, GroupKind.AND)

    def paren_expr(self, tree: Tree) -> FilterExpression:
        return self.visit(tree.children[0])

    def unary(self, tree: Tree) -> FilterExpression:
        if len(tree.children) == 1:
            return self.visit(tree.children[0])
        raise _unsupported("negation is not supported in filter expressions")

    def relation(self, tree: Tree) -> FilterExpression:
        if len(tree.children) == 1:
            return self.visit(tree.children[0])
        op_node, rhs = tree.children
        if not isinstance(op_node, Tree):
            raise _unsupported("unsupported relation")
        lhs = op_node.children[0]

        if op_node.data == "relation_in":
            field = _field_name(lhs)
            values = _literal(rhs)
            if field is None or not isinstance(values, list):
                raise _unsupported("'in' needs a field on the left and a list on the right")
            return FilterCondition(field, Operator.IN, values)

        op = RELATION_OPERATORS.get(op_node.data)
        if op is None:
            raise _unsupported(f"unsupported operator {op_node.data}")

        field, value = _field_name(lhs), _literal(rhs)
        if field is None or value is _MISSING:
            field, value = _field_name(rhs), _literal(lhs)
            op = _FLIPPED[op]
        if field is None or value is _MISSING:
            raise _unsupported("comparisons need one field and one literal")

        if value is None:
            if op == Operator.EQ:
                return FilterCondition(field, Operator.IS_NULL)
            if op == Operator.NEQ:
                return FilterCondition(field, Operator.IS_NOT_NULL)
            raise _unsupported("null can only be compared with == or !=")
        return FilterCondition(field, op, value)

    def member_dot_arg(self, tree: Tree) -> FilterExpression:
        obj = tree.children[0]
        method = str(tree.children[1])
        args = tree.children[2].children if len(tree.children) > 2 else []
        op = STRING_METHODS.get(method)
        if op is None:
            raise _unsupported(f"unsupported method {method!r}")
        field = _field_name(obj)
        if field is None or len(args) != 1:
            raise _unsupported(f"{method}() needs a field receiver and one argument")
        value = _literal(args[0])
        if not isinstance(value, str):
            raise _unsupported(f"{method}() needs a string literal argument")
        return FilterCondition(field, op, value)


def parse_filter_expression(text: str) -> FilterExpression:
    """Parse a CEL filter string into a filter tree.

    Raises:
        ValidationError: If the text is not valid CEL or uses unsupported syntax.
    """
    validate_no_null_bytes("where", text)
    try:
        tree = _parser.parse(text)
    except CELParseError as e:
        raise ValidationError(
            "where", _EXPECTED, text, f"CEL parse error: {e}"
        ) from e
    result = FilterExpressionBuilder().visit(tree)
    if not isinstance(result, (FilterCondition, FilterGroup)):
        raise _unsupported("expression does not evaluate to a filter")
    return result
