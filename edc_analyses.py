"""Validation of parsed programs.

Forfeited into the public domain with NO WARRANTY. Read LICENSE for details.

After parsing,

   validate

checks a program against a flat table of declared names, flagging uses of
undeclared variables and duplicate declarations. Unlike parse errors, these
problems are collected into a list rather than raised, and the caller decides
(see `edc_compiler`) to skip code generation if there are any.

The language has one global namespace. `let` declares a name; a `for` loop
declares its loop variable unless that name is already declared, in which
case the loop simply reuses it. Declarations take effect in program order, so
a name must be declared above its first use. Blocks don't introduce scopes:
a `let` inside an `if` declares its name for the rest of the program.
"""

import dataclasses
import warnings

import edc_descent
import edc_parser


@dataclasses.dataclass(frozen=True)
class ValidationError:
  """A single problem found by `validate`."""
  message: str
  line: int
  column: int

  def __str__(self) -> str:
    return f'{self.message} at line {self.line}, column {self.column}'


@dataclasses.dataclass
class Validation:
  """Outcome of `validate`.

  Attributes:
    ok: True iff there are no errors.
    errors: Every problem found, in program order.
  """
  ok: bool
  errors: list[ValidationError]


@dataclasses.dataclass(frozen=True)
class Declaration:
  """Where a name was declared."""
  line: int
  column: int


class UnusedVariableWarning(UserWarning):
  """A `let` variable is never read."""


def validate(statements: list[edc_parser.Statement]) -> Validation:
  """Check a program for undeclared variables and duplicate declarations.

  Args:
    statements: Top-level statements of a parsed program.

  Returns:
    A Validation listing all errors found. Also warns (with the `warnings`
    module) about `let` variables that are never read.
  """
  symbols: dict[str, Declaration] = {}
  errors: list[ValidationError] = []
  _check_block(statements, symbols, errors)

  # Warn about variables declared with `let` and never used anywhere. Loop
  # variables are exempt: `for i = 1 to 3 { print 0; }` is fine.
  used = {node.name for node in edc_descent.walk(statements)
          if isinstance(node, edc_parser.Variable)}
  for node in edc_descent.walk(statements):
    if isinstance(node, edc_parser.LetStatement) and (
        node.identifier not in used): warnings.warn(
        f"Variable '{node.identifier}' declared at line {node.line}, column "
        f'{node.column} is never used', UnusedVariableWarning)

  return Validation(ok=not errors, errors=errors)


def _check_block(
    statements: list[edc_parser.Statement],
    symbols: dict[str, Declaration],
    errors: list[ValidationError],
):
  """Check statements in order, updating `symbols` and `errors` as we go."""
  for statement in statements:
    match statement:
      case edc_parser.LetStatement(identifier=name, expression=expression):
        if name in symbols:
          original = symbols[name]
          errors.append(ValidationError(
              f"Variable '{name}' already declared at line {original.line}, "
              f'column {original.column}. Redeclaration attempt',
              statement.line, statement.column))
          continue  # Neither check the expression nor redeclare.
        _check_expression(expression, symbols, errors)
        symbols[name] = Declaration(statement.line, statement.column)

      case edc_parser.PrintStatement(expression=expression):
        _check_expression(expression, symbols, errors)

      case edc_parser.IfStatement():
        _check_expression(statement.condition, symbols, errors)
        _check_block(statement.then_block, symbols, errors)
        _check_block(statement.else_block, symbols, errors)

      case edc_parser.ForStatement():
        # The bounds can't see a loop variable that this loop introduces.
        _check_expression(statement.start, symbols, errors)
        _check_expression(statement.end, symbols, errors)
        symbols.setdefault(
            statement.variable, Declaration(statement.line, statement.column))
        _check_block(statement.body, symbols, errors)

      case _:
        raise _InternalError(f'Unexpected statement {statement!r}')


def _check_expression(
    expression: edc_parser.Expression,
    symbols: dict[str, Declaration],
    errors: list[ValidationError],
):
  """Flag each reference in `expression` to a name missing from `symbols`."""
  def callback(ast: edc_parser.AstNode, _):
    if isinstance(ast, edc_parser.Variable) and ast.name not in symbols:
      errors.append(ValidationError(
          f"Undefined variable '{ast.name}'", ast.line, ast.column))

  edc_descent.depth_first(callback, expression, None)


class _InternalError(Exception):
  """An exception type for any "this should never happen" situation."""
