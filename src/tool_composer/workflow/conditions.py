"""Condition expressions for gating workflow steps.

A condition is a tiny boolean language evaluated against the run's
variables::

    count > 5
    summary.status == "ok" and not flags.dry_run
    (items.length >= 1 or force) and mode !== 'off'

Bare operands are truthiness checks. The left side of a comparison is a
path (unless it is a literal); the right side is always a literal, and
unquoted text there is a raw string running up to the next "and", "or"
or ")". Expressions that fail to parse evaluate to False.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, List, Optional

from .paths import extract_value, is_truthy

logger = logging.getLogger(__name__)

# Longest operators first so "===" is never read as "==" followed by "="
COMPARISON_OPERATORS = ("===", "!==", "==", "!=", ">=", "<=", ">", "<")

_NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?$")
_WORD_PATTERN = re.compile(r"[^\s()=!<>\"']+")


class ConditionSyntaxError(ValueError):
    """Raised when a condition expression cannot be parsed."""

    def __init__(self, message: str, expression: str, position: int):
        super().__init__(f"{message} at position {position} in {expression!r}")
        self.expression = expression
        self.position = position


class TokenType(str, Enum):
    WORD = "word"
    NUMBER = "number"
    STRING = "string"
    TRUE = "true"
    FALSE = "false"
    NULL = "null"
    AND = "and"
    OR = "or"
    NOT = "not"
    LPAREN = "("
    RPAREN = ")"
    OPERATOR = "operator"
    END = "end"


_KEYWORDS = {
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
    "null": TokenType.NULL,
    "and": TokenType.AND,
    "or": TokenType.OR,
    "not": TokenType.NOT,
}

_LITERAL_TOKENS = (TokenType.NUMBER, TokenType.STRING, TokenType.TRUE, TokenType.FALSE, TokenType.NULL)
_RAW_STRING_STOPS = (TokenType.AND, TokenType.OR, TokenType.RPAREN, TokenType.OPERATOR, TokenType.END)


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: Any
    position: int


def tokenize(expression: str) -> List[Token]:
    """Split an expression into tokens, ending with an END token."""
    tokens: List[Token] = []
    pos = 0
    length = len(expression)

    while pos < length:
        char = expression[pos]

        if char.isspace():
            pos += 1
            continue

        if char in "()":
            tokens.append(Token(TokenType.LPAREN if char == "(" else TokenType.RPAREN, char, pos))
            pos += 1
            continue

        if char in "=!<>":
            for op in COMPARISON_OPERATORS:
                if expression.startswith(op, pos):
                    tokens.append(Token(TokenType.OPERATOR, op, pos))
                    pos += len(op)
                    break
            else:
                raise ConditionSyntaxError(f"Unknown operator {char!r}", expression, pos)
            continue

        if char in "\"'":
            value, end = _read_string(expression, pos)
            tokens.append(Token(TokenType.STRING, value, pos))
            pos = end
            continue

        match = _WORD_PATTERN.match(expression, pos)
        word = match.group(0)
        if _NUMBER_PATTERN.match(word):
            number = float(word) if "." in word else int(word)
            tokens.append(Token(TokenType.NUMBER, number, pos))
        elif word in _KEYWORDS:
            tokens.append(Token(_KEYWORDS[word], word, pos))
        else:
            tokens.append(Token(TokenType.WORD, word, pos))
        pos = match.end()

    tokens.append(Token(TokenType.END, None, length))
    return tokens


def _read_string(expression: str, start: int):
    quote = expression[start]
    chars = []
    pos = start + 1
    while pos < len(expression):
        char = expression[pos]
        if char == "\\" and pos + 1 < len(expression):
            chars.append(expression[pos + 1])
            pos += 2
            continue
        if char == quote:
            return "".join(chars), pos + 1
        chars.append(char)
        pos += 1
    raise ConditionSyntaxError("Unterminated string", expression, start)


# --- AST ---


class Node:
    def evaluate(self, variables: Dict[str, Any]) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class Literal(Node):
    value: Any

    def evaluate(self, variables):
        return self.value


@dataclass(frozen=True)
class PathRef(Node):
    path: str

    def evaluate(self, variables):
        # Bare "input" means the input variable here, not the whole map
        if self.path == "input":
            return variables.get("input")
        return extract_value(variables, self.path)


@dataclass(frozen=True)
class Comparison(Node):
    operator: str
    left: Node
    right: Node

    def evaluate(self, variables):
        return compare(self.operator, self.left.evaluate(variables), self.right.evaluate(variables))


@dataclass(frozen=True)
class Not(Node):
    operand: Node

    def evaluate(self, variables):
        return not is_truthy(self.operand.evaluate(variables))


@dataclass(frozen=True)
class And(Node):
    left: Node
    right: Node

    def evaluate(self, variables):
        return is_truthy(self.left.evaluate(variables)) and is_truthy(self.right.evaluate(variables))


@dataclass(frozen=True)
class Or(Node):
    left: Node
    right: Node

    def evaluate(self, variables):
        return is_truthy(self.left.evaluate(variables)) or is_truthy(self.right.evaluate(variables))


class _Parser:
    """Recursive-descent parser; precedence is not > and > or."""

    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = tokenize(expression)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _error(self, message: str) -> ConditionSyntaxError:
        return ConditionSyntaxError(message, self.expression, self.current.position)

    def parse(self) -> Node:
        if self.current.type == TokenType.END:
            raise self._error("Empty condition")
        node = self._parse_or()
        if self.current.type != TokenType.END:
            raise self._error(f"Unexpected token {self.current.value!r}")
        return node

    def _parse_or(self) -> Node:
        node = self._parse_and()
        while self.current.type == TokenType.OR:
            self._advance()
            node = Or(node, self._parse_and())
        return node

    def _parse_and(self) -> Node:
        node = self._parse_not()
        while self.current.type == TokenType.AND:
            self._advance()
            node = And(node, self._parse_not())
        return node

    def _parse_not(self) -> Node:
        if self.current.type == TokenType.NOT:
            self._advance()
            return Not(self._parse_not())
        if self.current.type == TokenType.LPAREN:
            self._advance()
            node = self._parse_or()
            if self.current.type != TokenType.RPAREN:
                raise self._error("Expected ')'")
            self._advance()
            return node
        return self._parse_comparison()

    def _parse_comparison(self) -> Node:
        token = self.current
        if token.type == TokenType.WORD:
            left: Node = PathRef(token.value)
        elif token.type in _LITERAL_TOKENS:
            left = Literal(_literal_value(token))
        else:
            raise self._error(f"Expected a path or literal, got {token.value!r}")
        self._advance()

        if self.current.type != TokenType.OPERATOR:
            return left

        operator = self._advance().value
        right_token = self.current
        if right_token.type in _LITERAL_TOKENS:
            right = Literal(_literal_value(right_token))
        elif right_token.type == TokenType.WORD:
            return Comparison(operator, left, Literal(self._read_raw_string()))
        else:
            raise self._error(f"Expected a value after {operator!r}")
        self._advance()
        return Comparison(operator, left, right)

    def _read_raw_string(self) -> str:
        """Unquoted text up to the next and/or/')'/operator, spacing kept."""
        start = self.current.position
        self._advance()
        while self.current.type not in _RAW_STRING_STOPS:
            self._advance()
        return self.expression[start:self.current.position].strip()


def _literal_value(token: Token) -> Any:
    if token.type == TokenType.TRUE:
        return True
    if token.type == TokenType.FALSE:
        return False
    if token.type == TokenType.NULL:
        return None
    return token.value


@lru_cache(maxsize=256)
def compile_condition(expression: str) -> Node:
    """Parse an expression into an AST (cached). Raises ConditionSyntaxError."""
    return _Parser(expression.strip()).parse()


def evaluate_condition(expression: str, variables: Dict[str, Any]) -> bool:
    """Evaluate ``expression`` against ``variables``; unparseable means False."""
    try:
        node = compile_condition(expression)
        return is_truthy(node.evaluate(variables))
    except (ConditionSyntaxError, RecursionError, ValueError) as e:
        logger.warning(f"Could not evaluate condition: {str(e)[:200] or type(e).__name__}")
        return False


# --- comparison semantics ---


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_number(value: Any) -> Optional[float]:
    """Numeric cast used by ordering operators; None when not castable."""
    if isinstance(value, bool):
        return float(value)
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return 0.0
        try:
            return float(stripped)
        except ValueError:
            return None
    return None


def _strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    return type(left) is type(right) and left == right


def _loose_equals(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if isinstance(left, (int, float)) or isinstance(right, (int, float)):
        left_num, right_num = to_number(left), to_number(right)
        if left_num is not None and right_num is not None:
            return left_num == right_num
        return False
    return left == right


def compare(operator: str, left: Any, right: Any) -> bool:
    if operator == "===":
        return _strict_equals(left, right)
    if operator == "!==":
        return not _strict_equals(left, right)
    if operator == "==":
        return _loose_equals(left, right)
    if operator == "!=":
        return not _loose_equals(left, right)

    left_num, right_num = to_number(left), to_number(right)
    if left_num is None or right_num is None:
        return False
    if operator == ">=":
        return left_num >= right_num
    if operator == "<=":
        return left_num <= right_num
    if operator == ">":
        return left_num > right_num
    if operator == "<":
        return left_num < right_num
    raise ValueError(f"Unknown comparison operator: {operator}")
