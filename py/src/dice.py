# Dicerolling.
# Lexer and recursive-descent parser for dice roll expressions.

import enum
import logging
import re
import typing

import dice_config
from dice_details import *

log = logging.getLogger(__name__)


class TokenKind(enum.Enum):
    INT = "INT"
    PLUS = "+"
    MINUS = "-"
    STAR = "*"
    SLASH = "/"
    CARET = "^"
    LPAREN = "("
    RPAREN = ")"
    D = "d"
    END = "END"


# fmt: off
TOKEN_SPEC = [
    ("INT",      r"[0-9]+"),                                  # Integer literal
    ("OP",       r"[()+\-*/^d]"),                             # Operators, parens, dice
    ("SKIP",     f"[{re.escape(dice_config.WHITESPACE)}]+"),  # Skip over whitespace
    ("MISMATCH", r"."),                                       # Any other character
]
TOKEN_PATTERN = re.compile(
    '|'.join(f"(?P<{pair[0]}>{pair[1]})" for pair in TOKEN_SPEC), re.DOTALL)
# fmt: on


class Token(typing.NamedTuple):
    kind: TokenKind
    position: int
    value: int | None = None


# Base for errors tied to a position in the source text.
class DiceFormatError(DiceRuntimeError):
    def __init__(self, message: str, position: int) -> None:
        super().__init__(message)
        self.position = position

    def __str__(self):
        return f"{self.message} (pos = {self.position})"


class LexerError(DiceFormatError):
    def __init__(self, position: int) -> None:
        super().__init__("Unrecognized character.", position)


class ParseError(DiceFormatError):
    pass


# Cut the input into tokens, ending with an END token.
def tokenize(source: str) -> list[Token]:
    tokens = []
    for item in TOKEN_PATTERN.finditer(source):
        # https://docs.python.org/3/library/re.html#writing-a-tokenizer
        kind = item.lastgroup
        value = item.group()
        if kind == "INT":
            tokens.append(Token(TokenKind.INT, item.start(), int(value)))
        elif kind == "OP":
            tokens.append(Token(TokenKind(value), item.start()))
        elif kind == "SKIP":
            continue
        else:
            raise LexerError(item.start())
    tokens.append(Token(TokenKind.END, len(source)))
    return tokens


# One method per grammar level, lowest precedence first:
#   expression := mul_div (('+' | '-') mul_div)*
#   mul_div    := pow (('*' | '/') pow)*
#   pow        := dice_int ('^' pow)?
#   dice_int   := int_parens ('d' int_parens)?
#   int_parens := signed_int | '(' expression ')'
#   signed_int := ['+' | '-'] INT
# Nodes are built as soon as their operands are, so mathematical errors surface
# during parsing.
class Parser:
    def __init__(self, tokens: list[Token], cache: EvaluationCache | None = None):
        self.token_list = tokens
        self.iter_pos = 0
        self.cache = cache if cache is not None else DEFAULT_CACHE

    def _current(self) -> Token:
        return self.token_list[self.iter_pos]

    def peek(self, offset: int = 1) -> Token:
        try:
            return self.token_list[self.iter_pos + offset]
        except IndexError:
            return self.token_list[-1]  # END

    def _next(self) -> Token:
        token = self._current()
        if token.kind != TokenKind.END:
            self.iter_pos += 1
        return token

    def advance(self, expected: TokenKind, message: str) -> Token:
        if self._current().kind != expected:
            raise ParseError(message, self._current().position)
        return self._next()

    # Parse the whole token list as one expression.
    def parse(self) -> Node:
        tree = self.expression()
        leftover = self._current()
        if leftover.kind != TokenKind.END:
            raise ParseError(
                f"Unexpected {leftover.kind.value} after a complete expression.",
                leftover.position,
            )
        return tree

    def expression(self) -> Node:
        left = self.mul_div()
        while True:
            kind = self._current().kind
            if kind == TokenKind.PLUS:
                self._next()
                left = Add(left, self.mul_div(), self.cache)
            elif kind == TokenKind.MINUS:
                self._next()
                left = Sub(left, self.mul_div(), self.cache)
            else:
                return left

    def mul_div(self) -> Node:
        left = self.pow()
        while True:
            kind = self._current().kind
            if kind == TokenKind.STAR:
                self._next()
                left = Mul(left, self.pow(), self.cache)
            elif kind == TokenKind.SLASH:
                self._next()
                left = Div(left, self.pow(), self.cache)
            else:
                return left

    # Right-recursive, so 3^3^3 is 3^(3^3).
    def pow(self) -> Node:
        base = self.dice_int()
        if self._current().kind != TokenKind.CARET:
            return base
        self._next()
        return Pow(base, self.pow(), self.cache)

    # A single `d` at most: 2d2d2 is ambiguous.
    def dice_int(self) -> Node:
        count = self.int_parens()
        if self._current().kind != TokenKind.D:
            return count
        self._next()
        faces = self.int_parens()
        # grammar first, so a chain isn't reported as a bad operand
        if self._current().kind == TokenKind.D:
            raise ParseError(
                "Dice rolls can't be chained. Write (2d2)d2 or 2d(2d2) instead of 2d2d2.",
                self._current().position,
            )
        return DiceRoll(count, faces, self.cache)

    def int_parens(self) -> Node:
        if self._current().kind == TokenKind.LPAREN:
            self._next()
            content = self.expression()
            self.advance(TokenKind.RPAREN, "Missing closing parenthesis.")
            return content
        return self.signed_int()

    # A sign only belongs to a literal when the literal directly follows it.
    def signed_int(self) -> Node:
        token = self._current()
        if token.kind == TokenKind.INT:
            self._next()
            return Integer(token.value, self.cache)  # type: ignore
        if token.kind in (TokenKind.PLUS, TokenKind.MINUS):
            literal = self.peek()
            if literal.kind == TokenKind.INT:
                self._next()
                self._next()
                if token.kind == TokenKind.MINUS:
                    return Integer(-literal.value, self.cache)  # type: ignore
                return Integer(literal.value, self.cache)  # type: ignore
        raise ParseError(
            "Expected an integer or an opening parenthesis.", token.position
        )


# Build the syntax tree for a dice expression.
def parse(formula: str, cache: EvaluationCache | None = None) -> Node:
    try:
        return Parser(tokenize(formula), cache).parse()
    except DiceRuntimeError as err:
        log.debug(f"Couldn't parse {formula!r}: {err}")
        raise


# Parse a dice expression and roll it once.
def roll(
    formula: str, roller: Roller | None = None, cache: EvaluationCache | None = None
) -> int:
    return parse(formula, cache).sample(roller)
