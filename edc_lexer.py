"""Tokenizer for the educational compiler's little language.

Forfeited into the public domain with NO WARRANTY. Read LICENSE for details.

The language has integer literals, identifiers, six keywords (`let`, `print`,
`if`, `else`, `for`, `to`), arithmetic, comparison and logical operators, and
a handful of punctuation marks. That's all.

Tokenizing is delegated to a Lark "basic" lexer built from the small grammar
in `_GRAMMAR`. Lark does the hard parts for us: longest-match scanning,
keeping keywords apart from identifiers that merely start with a keyword
(`letter` is an identifier), and line/column bookkeeping. This module then
repackages Lark's tokens as our own immutable `Token` records, which is what
the parser in `edc_parser` consumes.
"""

import dataclasses
import enum
import functools

import lark


class Kind(enum.Enum):
  """Kinds of tokens. Names match the terminal names in `_GRAMMAR`."""
  # Literals.
  INTEGER = 1
  IDENTIFIER = 2
  # Keywords.
  LET = 3
  PRINT = 4
  IF = 5
  ELSE = 6
  FOR = 7
  TO = 8
  # Arithmetic operators, and assignment.
  PLUS = 9
  MINUS = 10
  MULTIPLY = 11
  DIVIDE = 12
  MODULO = 13
  ASSIGN = 14
  # Comparison operators.
  LESS_THAN = 15
  GREATER_THAN = 16
  LESS_EQUAL = 17
  GREATER_EQUAL = 18
  EQUAL_EQUAL = 19
  NOT_EQUAL = 20
  # Logical operators.
  AND = 21
  OR = 22
  NOT = 23
  # Punctuation.
  LPAREN = 24
  RPAREN = 25
  LBRACE = 26
  RBRACE = 27
  SEMICOLON = 28
  # Special.
  END_OF_FILE = 29
  INVALID = 30


@dataclasses.dataclass(frozen=True)
class Token:
  """A token, with the position of its first character in the source.

  Attributes:
    kind: What sort of token this is.
    lexeme: Source text for the token. Empty for END_OF_FILE.
    line: 1-based line number.
    column: 1-based column number.
  """
  kind: Kind
  lexeme: str
  line: int
  column: int

  def __str__(self) -> str:
    return f"[{self.kind.name} '{self.lexeme}' ({self.line}:{self.column})]"


# Lark only keeps terminals that some rule uses, hence the `start` rule that
# accepts any sequence of them. We never actually parse with this grammar.
_GRAMMAR = r"""
    start: _token*
    _token: INTEGER | IDENTIFIER
          | LET | PRINT | IF | ELSE | FOR | TO
          | PLUS | MINUS | MULTIPLY | DIVIDE | MODULO | ASSIGN
          | LESS_THAN | GREATER_THAN | LESS_EQUAL | GREATER_EQUAL
          | EQUAL_EQUAL | NOT_EQUAL
          | AND | OR | NOT
          | LPAREN | RPAREN | LBRACE | RBRACE | SEMICOLON

    LET: "let"
    PRINT: "print"
    IF: "if"
    ELSE: "else"
    FOR: "for"
    TO: "to"

    INTEGER: /[0-9]+/
    IDENTIFIER: /[A-Za-z_][A-Za-z0-9_]*/

    PLUS: "+"
    MINUS: "-"
    MULTIPLY: "*"
    DIVIDE: "/"
    MODULO: "%"
    EQUAL_EQUAL: "=="
    ASSIGN: "="
    LESS_EQUAL: "<="
    LESS_THAN: "<"
    GREATER_EQUAL: ">="
    GREATER_THAN: ">"
    NOT_EQUAL: "!="
    NOT: "!"
    AND: "&&"
    OR: "||"

    LPAREN: "("
    RPAREN: ")"
    LBRACE: "{"
    RBRACE: "}"
    SEMICOLON: ";"

    WHITESPACE: /[ \t\r\n]+/
    %ignore WHITESPACE
"""


def tokenize(source_text: str) -> list[Token]:
  """Break source text into tokens.

  Args:
    source_text: Program source code.

  Returns:
    All tokens in `source_text` in order, always ending with a single
    END_OF_FILE token positioned just past the end of the text. If an
    unrecognised character is encountered, it becomes an INVALID token and
    tokenizing stops there (before the END_OF_FILE token), since the parser
    won't get any further than that anyway.
  """
  tokens: list[Token] = []
  try:
    for lark_token in _lexer().lex(source_text):
      tokens.append(Token(Kind[lark_token.type], str(lark_token),
                          lark_token.line, lark_token.column))
  except lark.exceptions.UnexpectedCharacters as e:
    tokens.append(Token(Kind.INVALID, source_text[e.pos_in_stream],
                        e.line, e.column))

  # The END_OF_FILE position mimics a cursor parked after the last character.
  line = source_text.count('\n') + 1
  column = len(source_text) - source_text.rfind('\n')
  tokens.append(Token(Kind.END_OF_FILE, '', line, column))
  return tokens


@functools.cache
def _lexer() -> lark.Lark:
  """Create/retrieve a singleton Lark lexer from the token grammar."""
  return lark.Lark(_GRAMMAR, parser='lalr', lexer='basic')
