"""Recursive-descent parser for the educational compiler's little language.

Forfeited into the public domain with NO WARRANTY. Read LICENSE for details.

The parser consumes the token list made by `edc_lexer.tokenize` and derives an
abstract syntax tree. Abstract syntax tree nodes are instances of the Python
dataclasses defined in the first half of this file; the second half is the
parser itself. Every node owns its children outright: there is no sharing and
there are no back-references, so a tree can be rebuilt piecemeal (see
`edc_optimiser`) with `dataclasses.replace`.

The grammar, from lowest to highest expression precedence:

   statement  -> "let" IDENT "=" expression ";"
               | "print" expression ";"
               | "if" expression "{" block "}" [ "else" "{" block "}" ]
               | "for" IDENT "=" expression "to" expression "{" block "}"
   block      -> statement*   (until "}" or end of input)
   expression -> logical
   logical    -> comparison ( ("&&" | "||") comparison )*
   comparison -> term ( ("<" | ">" | "<=" | ">=" | "==" | "!=") term )*
   term       -> factor ( ("+" | "-") factor )*
   factor     -> unary ( ("*" | "/" | "%") unary )*
   unary      -> "!" unary | primary
   primary    -> INTEGER | IDENT | "(" expression ")"

Each binary level folds left-associatively, including comparisons and logical
operators: `a < b < c` means `(a < b) < c`, and `a && b || c` means
`(a && b) || c`. That's how the language has always behaved, so it stays.

At the bottom of the module is some infrastructure for printing and
serialising syntax trees.
"""

import dataclasses
import enum

import edc_lexer

from typing import Any, Callable, Optional, Sequence, Union


def parse(tokens: Sequence[edc_lexer.Token]) -> list['Statement']:
  """Parse a token list into a list of top-level statements.

  Args:
    tokens: Tokens from `edc_lexer.tokenize`, ending with END_OF_FILE.

  Returns:
    The program's top-level statements, in order.

  Raises:
    ParseError: the first place where the tokens break the grammar. There is
        no error recovery.
  """
  return _Parser(tokens).program()


def parse_text(source_text: str) -> list['Statement']:
  """Tokenize and parse source text. See `parse`."""
  return parse(edc_lexer.tokenize(source_text))


class ParseError(Exception):
  """A grammar violation, located at the offending token.

  Attributes:
    message: What the parser expected.
    line: Line of the offending token.
    column: Column of the offending token.
  """
  message: str
  line: int
  column: int

  def __init__(self, message: str, line: int, column: int):
    super().__init__(f'{message} at line {line}, column {column}')
    self.message = message
    self.line = line
    self.column = column


### Generic AST node, for type checking.

@dataclasses.dataclass
class AstNode:
  """Base class for all syntax tree nodes."""


### Operators.

class BinaryOp(enum.Enum):
  """Arithmetic operators for BinaryOperation."""
  ADD = '+'
  SUBTRACT = '-'
  MULTIPLY = '*'
  DIVIDE = '/'
  MODULO = '%'

class ComparisonOp(enum.Enum):
  """Comparison operators for ComparisonExpression."""
  LT = '<'
  GT = '>'
  LE = '<='
  GE = '>='
  EQ = '=='
  NE = '!='

class LogicalOp(enum.Enum):
  """Logical operators for LogicalExpression."""
  AND = '&&'
  OR = '||'

class UnaryOp(enum.Enum):
  """Unary operators for UnaryExpression."""
  NOT = '!'


### Expressions.

@dataclasses.dataclass
class Expression(AstNode):
  """Base class for expressions. Every expression yields one integer."""

@dataclasses.dataclass
class IntegerLiteral(Expression):
  """Leaf node for integer literals."""
  value: int

@dataclasses.dataclass
class Variable(Expression):
  """Leaf node for variable references."""
  name: str
  line: int = 0
  column: int = 0

@dataclasses.dataclass
class BinaryOperation(Expression):
  """Node for arithmetic operations."""
  left: Expression
  op: BinaryOp
  right: Expression

@dataclasses.dataclass
class ComparisonExpression(Expression):
  """Node for comparisons. Yields 1 for true and 0 for false."""
  left: Expression
  op: ComparisonOp
  right: Expression

@dataclasses.dataclass
class LogicalExpression(Expression):
  """Node for logical operations. Both operands are always evaluated."""
  left: Expression
  op: LogicalOp
  right: Expression

@dataclasses.dataclass
class UnaryExpression(Expression):
  """Node for unary operations."""
  op: UnaryOp
  operand: Expression


### Statements.

@dataclasses.dataclass
class Statement(AstNode):
  """Base class for statements."""

@dataclasses.dataclass
class LetStatement(Statement):
  """Node for variable declarations. Position is the identifier's."""
  identifier: str
  expression: Expression
  line: int = 0
  column: int = 0

@dataclasses.dataclass
class PrintStatement(Statement):
  """Node for print statements."""
  expression: Expression

@dataclasses.dataclass
class IfStatement(Statement):
  """Node for if statements. `else_block` is empty if there was no else."""
  condition: Expression
  then_block: list[Statement]
  else_block: list[Statement] = dataclasses.field(default_factory=list)

@dataclasses.dataclass
class ForStatement(Statement):
  """Node for for loops, which count up by one to an inclusive bound.

  The position is the loop variable's.
  """
  variable: str
  start: Expression
  end: Expression
  body: list[Statement]
  line: int = 0
  column: int = 0


#################
#### PARSING ####
#################


# Token kinds to operators at each binary precedence level.
_LOGICAL_OPS = {
    edc_lexer.Kind.AND: LogicalOp.AND,
    edc_lexer.Kind.OR: LogicalOp.OR,
}
_COMPARISON_OPS = {
    edc_lexer.Kind.LESS_THAN: ComparisonOp.LT,
    edc_lexer.Kind.GREATER_THAN: ComparisonOp.GT,
    edc_lexer.Kind.LESS_EQUAL: ComparisonOp.LE,
    edc_lexer.Kind.GREATER_EQUAL: ComparisonOp.GE,
    edc_lexer.Kind.EQUAL_EQUAL: ComparisonOp.EQ,
    edc_lexer.Kind.NOT_EQUAL: ComparisonOp.NE,
}
_TERM_OPS = {
    edc_lexer.Kind.PLUS: BinaryOp.ADD,
    edc_lexer.Kind.MINUS: BinaryOp.SUBTRACT,
}
_FACTOR_OPS = {
    edc_lexer.Kind.MULTIPLY: BinaryOp.MULTIPLY,
    edc_lexer.Kind.DIVIDE: BinaryOp.DIVIDE,
    edc_lexer.Kind.MODULO: BinaryOp.MODULO,
}


class _Parser:
  """Parsing state: the tokens and a cursor into them.

  Methods named after grammar productions consume the tokens for that
  production and return the corresponding tree.
  """
  _tokens: Sequence[edc_lexer.Token]
  _current: int

  def __init__(self, tokens: Sequence[edc_lexer.Token]):
    if not tokens or tokens[-1].kind != edc_lexer.Kind.END_OF_FILE:
      raise ValueError('Token list must end with an END_OF_FILE token')
    self._tokens = tokens
    self._current = 0

  ### Cursor helpers.

  def _peek(self) -> edc_lexer.Token:
    return self._tokens[self._current]

  def _at_end(self) -> bool:
    return self._peek().kind == edc_lexer.Kind.END_OF_FILE

  def _advance(self) -> edc_lexer.Token:
    token = self._peek()
    if not self._at_end(): self._current += 1
    return token

  def _check(self, kind: edc_lexer.Kind) -> bool:
    return self._peek().kind == kind

  def _match(self, kind: edc_lexer.Kind) -> Optional[edc_lexer.Token]:
    """Consume and return the next token if it's a `kind`; else None."""
    return self._advance() if self._check(kind) else None

  def _expect(self, kind: edc_lexer.Kind, message: str) -> edc_lexer.Token:
    """Consume the next token, which must be a `kind`."""
    if self._check(kind): return self._advance()
    raise self._error(message)

  def _error(self, message: str) -> ParseError:
    """Make a ParseError located at the next token."""
    token = self._peek()
    if token.kind == edc_lexer.Kind.INVALID:
      message = f"Unexpected character '{token.lexeme}'"
    return ParseError(message, token.line, token.column)

  ### Statements.

  def program(self) -> list[Statement]:
    statements = []
    while not self._at_end():
      statements.append(self.statement())
    return statements

  def statement(self) -> Statement:
    if self._match(edc_lexer.Kind.LET): return self.let_statement()
    if self._match(edc_lexer.Kind.PRINT): return self.print_statement()
    if self._match(edc_lexer.Kind.IF): return self.if_statement()
    if self._match(edc_lexer.Kind.FOR): return self.for_statement()
    raise self._error('Expected statement (let, print, if, or for)')

  def let_statement(self) -> LetStatement:
    identifier = self._expect(
        edc_lexer.Kind.IDENTIFIER, "Expected variable name after 'let'")
    self._expect(edc_lexer.Kind.ASSIGN, "Expected '=' after variable name")
    expression = self.expression()
    self._expect(edc_lexer.Kind.SEMICOLON, "Expected ';' after expression")
    return LetStatement(identifier.lexeme, expression,
                        identifier.line, identifier.column)

  def print_statement(self) -> PrintStatement:
    expression = self.expression()
    self._expect(edc_lexer.Kind.SEMICOLON, "Expected ';' after expression")
    return PrintStatement(expression)

  def if_statement(self) -> IfStatement:
    condition = self.expression()
    then_block = self.braced_block()
    else_block = []
    if self._match(edc_lexer.Kind.ELSE):
      else_block = self.braced_block()
    return IfStatement(condition, then_block, else_block)

  def for_statement(self) -> ForStatement:
    variable = self._expect(
        edc_lexer.Kind.IDENTIFIER, "Expected loop variable name after 'for'")
    self._expect(edc_lexer.Kind.ASSIGN, "Expected '=' after variable name")
    start = self.expression()
    self._expect(edc_lexer.Kind.TO, "Expected 'to' in for loop")
    end = self.expression()
    body = self.braced_block()
    return ForStatement(variable.lexeme, start, end, body,
                        variable.line, variable.column)

  def braced_block(self) -> list[Statement]:
    self._expect(edc_lexer.Kind.LBRACE, "Expected '{' before block")
    statements = self.block()
    self._expect(edc_lexer.Kind.RBRACE, "Expected '}' after block")
    return statements

  def block(self) -> list[Statement]:
    statements = []
    while not (self._check(edc_lexer.Kind.RBRACE) or self._at_end()):
      statements.append(self.statement())
    return statements

  ### Expressions.

  def expression(self) -> Expression:
    return self.logical()

  def _left_fold(
      self,
      operand: Callable[[], Expression],
      ops: dict[edc_lexer.Kind, enum.Enum],
      node_type: type,
  ) -> Expression:
    """Parse `operand (op operand)*`, nesting earlier operations leftward."""
    expression = operand()
    while self._peek().kind in ops:
      op = ops[self._advance().kind]
      expression = node_type(expression, op, operand())
    return expression

  def logical(self) -> Expression:
    return self._left_fold(self.comparison, _LOGICAL_OPS, LogicalExpression)

  def comparison(self) -> Expression:
    return self._left_fold(self.term, _COMPARISON_OPS, ComparisonExpression)

  def term(self) -> Expression:
    return self._left_fold(self.factor, _TERM_OPS, BinaryOperation)

  def factor(self) -> Expression:
    return self._left_fold(self.unary, _FACTOR_OPS, BinaryOperation)

  def unary(self) -> Expression:
    if self._match(edc_lexer.Kind.NOT):
      return UnaryExpression(UnaryOp.NOT, self.unary())
    return self.primary()

  def primary(self) -> Expression:
    if token := self._match(edc_lexer.Kind.INTEGER):
      return IntegerLiteral(int(token.lexeme))
    if token := self._match(edc_lexer.Kind.IDENTIFIER):
      return Variable(token.lexeme, token.line, token.column)
    if self._match(edc_lexer.Kind.LPAREN):
      expression = self.expression()
      self._expect(edc_lexer.Kind.RPAREN, "Expected ')' after expression")
      return expression
    raise self._error('Expected expression')


#######################
#### ODDS AND ENDS ####
#######################


# Node types that take a different name in `asdict` output.
_TYPE_TAGS = {'Variable': 'Identifier'}


def asdict(ast: Union[AstNode, Sequence[AstNode]]) -> Any:
  """Make a JSON-ready structure of plain Python values from a syntax tree.

  Each node becomes a dict whose 'type' key holds a type tag (the node class
  name, except that `Variable` nodes are tagged 'Identifier') and whose other
  keys hold the node's fields. Operators become their source spellings.

  Args:
    ast: A syntax tree node, or a list of them.

  Returns:
    The structure described.
  """
  match ast:
    case list() | tuple():
      return [asdict(item) for item in ast]
    case enum.Enum():
      return ast.value
    case AstNode():
      type_name = type(ast).__name__
      result: dict[str, Any] = {'type': _TYPE_TAGS.get(type_name, type_name)}
      for field in dataclasses.fields(ast):
        result[field.name] = asdict(getattr(ast, field.name))
      return result
    case _:
      return ast


def pretty(ast: Union[AstNode, Sequence[AstNode]], indent: int = 0) -> list[str]:
  """Render a syntax tree as an indented listing, one line per entry.

  Recommended usage:
     print('\\n'.join(pretty(parse_text(my_code))))

  Args:
    ast: A syntax tree node, or a list of them.
    indent: Indentation level for the first line.

  Returns:
    Lines of text, without newlines.
  """
  pad = '  ' * indent
  match ast:
    case list() | tuple():
      return [line for node in ast for line in pretty(node, indent)]
    case IntegerLiteral(value=value):
      return [f'{pad}IntegerLiteral: {value}']
    case Variable(name=name):
      return [f'{pad}Variable: {name}']
    case (BinaryOperation(left=left, op=op, right=right) |
          ComparisonExpression(left=left, op=op, right=right) |
          LogicalExpression(left=left, op=op, right=right)):
      return ([f'{pad}{type(ast).__name__}: {op.value}',
               f'{pad}  left:'] + pretty(left, indent + 2) +
              [f'{pad}  right:'] + pretty(right, indent + 2))
    case UnaryExpression(op=op, operand=operand):
      return [f'{pad}UnaryExpression: {op.value}'] + pretty(operand, indent + 1)
    case LetStatement(identifier=identifier, expression=expression):
      return ([f'{pad}LetStatement', f'{pad}  identifier: {identifier}',
               f'{pad}  expression:'] + pretty(expression, indent + 2))
    case PrintStatement(expression=expression):
      return [f'{pad}PrintStatement', f'{pad}  expression:'] + pretty(
          expression, indent + 2)
    case IfStatement(condition=condition, then_block=then_block,
                     else_block=else_block):
      lines = ([f'{pad}IfStatement', f'{pad}  condition:'] +
               pretty(condition, indent + 2) +
               [f'{pad}  then:'] + pretty(then_block, indent + 2))
      if else_block:
        lines += [f'{pad}  else:'] + pretty(else_block, indent + 2)
      return lines
    case ForStatement(variable=variable, start=start, end=end, body=body):
      return ([f'{pad}ForStatement', f'{pad}  variable: {variable}',
               f'{pad}  start:'] + pretty(start, indent + 2) +
              [f'{pad}  end:'] + pretty(end, indent + 2) +
              [f'{pad}  body:'] + pretty(body, indent + 2))
    case _:
      raise _InternalError(f'Not a syntax tree node: {ast!r}')


class _InternalError(RuntimeError):
  """An uninformative exception for "this shouldn't happen" errors."""
