"""Constant folding and constant propagation for syntax trees.

Forfeited into the public domain with NO WARRANTY. Read LICENSE for details.

`optimise` rewrites a validated program into an equivalent one in which:

   - Any operation whose operands are all integer literals is replaced by its
     result (constant folding), computed with the same arithmetic that the
     virtual machine uses (see `edc_bytecode.binary`).
   - A variable that is an operand of an operator is replaced by a literal if
     the variable was bound to that literal by a `let` that has definitely
     executed (constant propagation). A bare variable reference, as in
     `print x;`, is left as a load: substituting it would fold nothing.

Folding a division or modulo by a literal zero would change a runtime fault
into a compile-time one, so those operations are left alone (with a warning)
for the virtual machine to fault on.

Control flow limits propagation. What's learnt inside an `if` branch or a
`for` body stays there, since the branch may not run and the body may run
zero times. A `for` loop's variable changes on every iteration, so it's never
treated as a constant from the moment the loop stores its start value. Note
that the loop's end bound is re-evaluated on each iteration and therefore
sees the live loop variable.

The input tree is never modified. Unchanged subtrees may be shared between
the input and the output trees, but since neither is mutated afterward by
anything in this compiler, that's harmless.
"""

import dataclasses
import warnings

import edc_bytecode
import edc_descent
import edc_generator
import edc_parser

from typing import Sequence


class ConstantDivisionByZeroWarning(UserWarning):
  """A literal division or modulo by zero was left for the runtime."""


@dataclasses.dataclass
class _State:
  """Bookkeeping for one `optimise` call.

  Attributes:
    constants: Variables currently known to hold a particular value.
    count: Number of rewrites performed so far.
  """
  constants: dict[str, int] = dataclasses.field(default_factory=dict)
  count: int = 0


def optimise(
    statements: Sequence[edc_parser.Statement],
) -> tuple[list[edc_parser.Statement], int]:
  """Fold and propagate constants in a program.

  Args:
    statements: Top-level statements of a validated program.

  Returns:
    - [0] The optimised program.
    - [1] How many folds and propagations were carried out.
  """
  state = _State()
  optimised = _block(statements, state)
  return optimised, state.count


def _block(statements: Sequence[edc_parser.Statement],
           state: _State) -> list[edc_parser.Statement]:
  """Optimise statements in order, accumulating constants in `state`."""
  return [_statement(s, state) for s in statements]


def _nested_block(statements: Sequence[edc_parser.Statement],
                  state: _State) -> list[edc_parser.Statement]:
  """Like `_block`, but constants learnt inside are forgotten afterward."""
  inner = _State(dict(state.constants), state.count)
  optimised = _block(statements, inner)
  state.count = inner.count
  # Keep only what holds whether or not the block ran.
  state.constants = {name: value for name, value in state.constants.items()
                     if inner.constants.get(name) == value}
  return optimised


def _statement(statement: edc_parser.Statement,
               state: _State) -> edc_parser.Statement:
  match statement:
    case edc_parser.LetStatement(identifier=name):
      expression = _expression(statement.expression, state)
      if isinstance(expression, edc_parser.IntegerLiteral):
        state.constants[name] = expression.value
      elif (isinstance(expression, edc_parser.Variable) and
            expression.name in state.constants):
        state.constants[name] = state.constants[expression.name]
      else:
        state.constants.pop(name, None)
      return dataclasses.replace(statement, expression=expression)

    case edc_parser.PrintStatement():
      return dataclasses.replace(
          statement, expression=_expression(statement.expression, state))

    case edc_parser.IfStatement():
      condition = _expression(statement.condition, state)
      then_block = _nested_block(statement.then_block, state)
      else_block = _nested_block(statement.else_block, state)
      return edc_parser.IfStatement(condition, then_block, else_block)

    case edc_parser.ForStatement(variable=variable):
      start = _expression(statement.start, state)
      # Later iterations see whatever this loop and loops inside it stored.
      for name in {variable} | _loop_variables(statement.body):
        state.constants.pop(name, None)
      end = _expression(statement.end, state)
      body = _nested_block(statement.body, state)
      return dataclasses.replace(statement, start=start, end=end, body=body)

    case _:
      raise _InternalError(f'Unexpected statement {statement!r}')


def _loop_variables(statements: Sequence[edc_parser.Statement]) -> set[str]:
  """Names of all loop variables of `for` statements within `statements`."""
  return {node.variable for node in edc_descent.walk(statements)
          if isinstance(node, edc_parser.ForStatement)}


def _expression(expression: edc_parser.Expression, state: _State,
                operand: bool = False) -> edc_parser.Expression:
  """Optimise an expression. `operand` is true for operands of operators."""
  match expression:
    case edc_parser.IntegerLiteral():
      return expression

    case edc_parser.Variable(name=name):
      if operand and name in state.constants:
        state.count += 1
        return edc_parser.IntegerLiteral(state.constants[name])
      return expression

    case (edc_parser.BinaryOperation() | edc_parser.ComparisonExpression() |
          edc_parser.LogicalExpression()):
      left = _expression(expression.left, state, operand=True)
      right = _expression(expression.right, state, operand=True)
      if (isinstance(left, edc_parser.IntegerLiteral) and
          isinstance(right, edc_parser.IntegerLiteral)):
        opcode = edc_generator.OPCODES[expression.op]
        try:
          value = edc_bytecode.binary(opcode, left.value, right.value)
        except ZeroDivisionError:
          warnings.warn(
              f'Constant expression {left.value} {expression.op.value} '
              f'{right.value} divides by zero; leaving it for the runtime',
              ConstantDivisionByZeroWarning)
        else:
          state.count += 1
          return edc_parser.IntegerLiteral(value)
      return dataclasses.replace(expression, left=left, right=right)

    case edc_parser.UnaryExpression(op=edc_parser.UnaryOp.NOT):
      inner = _expression(expression.operand, state, operand=True)
      if isinstance(inner, edc_parser.IntegerLiteral):
        state.count += 1
        return edc_parser.IntegerLiteral(edc_bytecode.logical_not(inner.value))
      return dataclasses.replace(expression, operand=inner)

    case _:
      raise _InternalError(f'Unexpected expression {expression!r}')


class _InternalError(Exception):
  """An exception type for any "this should never happen" situation."""
