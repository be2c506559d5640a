"""
Rule Expressions - Tokenizer, recursive-descent parser and evaluator

Grammar (lowest to highest precedence):

    expr       := and_expr (("||" | "or") and_expr)*
    and_expr   := comparison (("&&" | "and") comparison)*
    comparison := additive (("==" | "!=" | "<" | "<=" | ">" | ">=") additive)?
    additive   := term (("+" | "-") term)*
    term       := unary (("*" | "/") unary)*
    unary      := ("!" | "not" | "-") unary | primary
    primary    := NUMBER | STRING | "true" | "false" | "null" | NAME | "(" expr ")"

Names resolve only against the flat context mapping handed to evaluate().
There is no call, attribute, index or type syntax, so an expression can
never reach anything outside that mapping.
"""
import re
from dataclasses import dataclass, replace
from enum import Enum
from functools import lru_cache
from typing import Any, List, Mapping, Optional, Tuple

from ..domain.errors import MalformedRuleExpression, RuleEvaluationFailure

DEFAULT_MAX_LENGTH = 1000
MAX_DEPTH = 64

KEYWORDS = {"true", "false", "null", "and", "or", "not"}


class TokenKind(str, Enum):
    NUMBER = "NUMBER"
    STRING = "STRING"
    NAME = "NAME"
    KEYWORD = "KEYWORD"
    OPERATOR = "OPERATOR"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    END = "END"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: Any
    position: int


# Longest operators first so "<=" wins over "<"
_OPERATORS = ("==", "!=", "<=", ">=", "&&", "||", "<", ">", "!", "+", "-", "*", "/")
_NUMBER_RE = re.compile(r"(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?", re.ASCII)
_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def tokenize(source: str) -> List[Token]:
    """Split an expression into tokens"""
    tokens: List[Token] = []
    pos = 0
    length = len(source)

    while pos < length:
        char = source[pos]

        if char.isspace():
            pos += 1
            continue

        if char == "(":
            tokens.append(Token(TokenKind.LPAREN, char, pos))
            pos += 1
            continue

        if char == ")":
            tokens.append(Token(TokenKind.RPAREN, char, pos))
            pos += 1
            continue

        if char in ("'", '"'):
            start = pos
            value, pos = _read_string(source, start)
            tokens.append(Token(TokenKind.STRING, value, start))
            continue

        match = _NUMBER_RE.match(source, pos)
        if match:
            text = match.group(0)
            if match.end() < length and (source[match.end()].isalnum() or source[match.end()] == "_"):
                raise MalformedRuleExpression(f"Invalid number literal '{text}{source[match.end()]}'", pos)
            is_integer = text.isdigit()
            tokens.append(Token(TokenKind.NUMBER, int(text) if is_integer else float(text), pos))
            pos = match.end()
            continue

        match = _NAME_RE.match(source, pos)
        if match:
            text = match.group(0)
            if text.lower() in KEYWORDS:
                tokens.append(Token(TokenKind.KEYWORD, text.lower(), pos))
            else:
                tokens.append(Token(TokenKind.NAME, text, pos))
            pos = match.end()
            continue

        for operator in _OPERATORS:
            if source.startswith(operator, pos):
                tokens.append(Token(TokenKind.OPERATOR, operator, pos))
                pos += len(operator)
                break
        else:
            raise MalformedRuleExpression(f"Unexpected character '{char}'", pos)

    tokens.append(Token(TokenKind.END, None, length))
    return tokens


def _read_string(source: str, start: int) -> Tuple[str, int]:
    """Read a quoted string; a doubled quote stands for itself"""
    quote = source[start]
    pos = start + 1
    chars: List[str] = []
    while pos < len(source):
        char = source[pos]
        if char == quote:
            if pos + 1 < len(source) and source[pos + 1] == quote:
                chars.append(quote)
                pos += 2
                continue
            return "".join(chars), pos + 1
        chars.append(char)
        pos += 1
    raise MalformedRuleExpression("Unterminated string literal", start)


# =============================================================================
# Syntax tree
# =============================================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _require_bool(value: Any, operator: str) -> bool:
    if not isinstance(value, bool):
        raise RuleEvaluationFailure(
            f"Operator '{operator}' needs a boolean, got {type(value).__name__}"
        )
    return value


@dataclass(frozen=True)
class Node:
    depth: int

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class Literal(Node):
    value: Any

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        return self.value


@dataclass(frozen=True)
class Variable(Node):
    name: str

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        if self.name not in context:
            raise RuleEvaluationFailure(f"Unknown variable '{self.name}'")
        return context[self.name]


@dataclass(frozen=True)
class Unary(Node):
    operator: str
    operand: Node

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        value = self.operand.evaluate(context)
        if self.operator == "!":
            return not _require_bool(value, "!")
        if not _is_number(value):
            raise RuleEvaluationFailure(f"Cannot negate {type(value).__name__}")
        return -value


@dataclass(frozen=True)
class Logical(Node):
    operator: str  # "&&" or "||"
    left: Node
    right: Node

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        left = _require_bool(self.left.evaluate(context), self.operator)
        if self.operator == "&&" and not left:
            return False
        if self.operator == "||" and left:
            return True
        return _require_bool(self.right.evaluate(context), self.operator)


@dataclass(frozen=True)
class Comparison(Node):
    operator: str
    left: Node
    right: Node

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        left = self.left.evaluate(context)
        right = self.right.evaluate(context)

        if self.operator in ("==", "!="):
            equal = _values_equal(left, right)
            return equal if self.operator == "==" else not equal

        comparable = (
            (_is_number(left) and _is_number(right))
            or (isinstance(left, str) and isinstance(right, str))
        )
        if not comparable:
            raise RuleEvaluationFailure(
                f"Cannot compare {type(left).__name__} {self.operator} {type(right).__name__}"
            )
        if self.operator == "<":
            return left < right
        if self.operator == "<=":
            return left <= right
        if self.operator == ">":
            return left > right
        return left >= right


def _values_equal(left: Any, right: Any) -> bool:
    if _is_number(left) and _is_number(right):
        return left == right
    if left is None or right is None:
        return left is right
    if type(left) is not type(right):
        return False
    return left == right


@dataclass(frozen=True)
class Arithmetic(Node):
    operator: str
    left: Node
    right: Node

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        left = self.left.evaluate(context)
        right = self.right.evaluate(context)
        if not (_is_number(left) and _is_number(right)):
            raise RuleEvaluationFailure(
                f"Arithmetic '{self.operator}' needs numbers, got "
                f"{type(left).__name__} and {type(right).__name__}"
            )
        if self.operator == "+":
            return left + right
        if self.operator == "-":
            return left - right
        if self.operator == "*":
            return left * right
        if right == 0:
            raise RuleEvaluationFailure("Division by zero")
        if isinstance(left, int) and isinstance(right, int):
            quotient = abs(left) // abs(right)
            return quotient if (left >= 0) == (right >= 0) else -quotient
        return left / right


# =============================================================================
# Parser
# =============================================================================

class Parser:
    """Recursive-descent parser over a token list"""

    def __init__(self, tokens: List[Token]):
        self._tokens = tokens
        self._index = 0
        self._nesting = 0

    @property
    def _current(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        if token.kind != TokenKind.END:
            self._index += 1
        return token

    def _match_operator(self, *operators: str) -> Optional[str]:
        """Consume and return a matching operator (keyword aliases included)"""
        token = self._current
        if token.kind == TokenKind.OPERATOR and token.value in operators:
            self._advance()
            return token.value
        if token.kind == TokenKind.KEYWORD:
            alias = {"and": "&&", "or": "||", "not": "!"}.get(token.value)
            if alias in operators:
                self._advance()
                return alias
        return None

    @staticmethod
    def _node_depth(*children: Node) -> int:
        depth = 1 + max(child.depth for child in children)
        if depth > MAX_DEPTH:
            raise MalformedRuleExpression(f"Expression nested deeper than {MAX_DEPTH} levels")
        return depth

    def _descend(self, position: int) -> None:
        # Bounded before recursing so nested input cannot exhaust the stack
        self._nesting += 1
        if self._nesting > MAX_DEPTH:
            raise MalformedRuleExpression(
                f"Expression nested deeper than {MAX_DEPTH} levels", position
            )

    def parse(self) -> Node:
        if self._current.kind == TokenKind.END:
            raise MalformedRuleExpression("Empty expression", 0)
        node = self._or()
        if self._current.kind != TokenKind.END:
            raise MalformedRuleExpression(
                f"Unexpected token '{self._current.value}'", self._current.position
            )
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._match_operator("||"):
            right = self._and()
            node = Logical(self._node_depth(node, right), "||", node, right)
        return node

    def _and(self) -> Node:
        node = self._comparison()
        while self._match_operator("&&"):
            right = self._comparison()
            node = Logical(self._node_depth(node, right), "&&", node, right)
        return node

    def _comparison(self) -> Node:
        node = self._additive()
        operator = self._match_operator("==", "!=", "<=", ">=", "<", ">")
        if operator:
            right = self._additive()
            node = Comparison(self._node_depth(node, right), operator, node, right)
            if self._match_operator("==", "!=", "<=", ">=", "<", ">"):
                raise MalformedRuleExpression(
                    "Comparisons cannot be chained", self._tokens[self._index - 1].position
                )
        return node

    def _additive(self) -> Node:
        node = self._term()
        while True:
            operator = self._match_operator("+", "-")
            if not operator:
                return node
            right = self._term()
            node = Arithmetic(self._node_depth(node, right), operator, node, right)

    def _term(self) -> Node:
        node = self._unary()
        while True:
            operator = self._match_operator("*", "/")
            if not operator:
                return node
            right = self._unary()
            node = Arithmetic(self._node_depth(node, right), operator, node, right)

    def _unary(self) -> Node:
        position = self._current.position
        operator = self._match_operator("!", "-")
        if operator:
            self._descend(position)
            operand = self._unary()
            self._nesting -= 1
            return Unary(self._node_depth(operand), operator, operand)
        return self._primary()

    def _primary(self) -> Node:
        token = self._advance()

        if token.kind in (TokenKind.NUMBER, TokenKind.STRING):
            return Literal(1, token.value)

        if token.kind == TokenKind.KEYWORD:
            if token.value == "true":
                return Literal(1, True)
            if token.value == "false":
                return Literal(1, False)
            if token.value == "null":
                return Literal(1, None)
            raise MalformedRuleExpression(f"Unexpected keyword '{token.value}'", token.position)

        if token.kind == TokenKind.NAME:
            return Variable(1, token.value)

        if token.kind == TokenKind.LPAREN:
            self._descend(token.position)
            node = self._or()
            self._nesting -= 1
            if self._current.kind != TokenKind.RPAREN:
                raise MalformedRuleExpression("Missing closing parenthesis", self._current.position)
            self._advance()
            # Parentheses count towards nesting depth
            return _with_depth(node, self._node_depth(node))

        if token.kind == TokenKind.END:
            raise MalformedRuleExpression("Unexpected end of expression", token.position)

        raise MalformedRuleExpression(f"Unexpected token '{token.value}'", token.position)


def _with_depth(node: Node, depth: int) -> Node:
    return replace(node, depth=depth)


@lru_cache(maxsize=1024)
def parse_expression(source: str, max_length: int = DEFAULT_MAX_LENGTH) -> Node:
    """
    Parse an expression into an evaluable syntax tree

    Results are memoized; syntax trees are immutable.

    Raises:
        MalformedRuleExpression: If the expression is too long or not valid syntax
    """
    if len(source) > max_length:
        raise MalformedRuleExpression(f"Expression longer than {max_length} characters")
    return Parser(tokenize(source)).parse()


def evaluate_expression(
    source: str,
    context: Mapping[str, Any],
    max_length: int = DEFAULT_MAX_LENGTH
) -> bool:
    """
    Parse and evaluate a boolean expression against a variable mapping

    Raises:
        MalformedRuleExpression: If parsing fails
        RuleEvaluationFailure: If evaluation fails or the result is not a boolean
    """
    result = parse_expression(source.strip(), max_length).evaluate(context)
    if not isinstance(result, bool):
        raise RuleEvaluationFailure(
            f"Expression evaluated to {type(result).__name__}, expected boolean"
        )
    return result
