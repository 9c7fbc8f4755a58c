"""Utilities for recursive descent into syntax trees.

Forfeited into the public domain with NO WARRANTY. Read LICENSE for details.

`preorder` yields every node of a tree, parents before children and children
in field order (so a binary operation's left operand precedes its right, and
a block's statements come first to last). `depth_first` wraps that traversal
in a callback interface with early exit via `Stop`, and `walk` lists all the
nodes of a whole program.

Code in `edc_analyses` and `edc_optimiser` uses these helpers to look inside
trees. The code generator and the optimiser's rewriting descend by hand
instead, since they care about rebuilding the tree on the way back up.
"""

import dataclasses

import edc_parser

from typing import Callable, Generic, Iterator, Sequence, TypeVar


TState = TypeVar('TState')
TResult = TypeVar('TResult')


def preorder(ast: edc_parser.AstNode) -> Iterator[edc_parser.AstNode]:
  """Iterate over `ast` and all of its descendants, in depth-first pre-order."""
  pending = [ast]
  while pending:
    node = pending.pop()
    yield node
    pending.extend(reversed(children(node)))


class Stop(Exception, Generic[TResult]):
  """Raised by a `depth_first` callback to end the traversal early.

  Attributes:
    payload: Value for `depth_first` to return.
  """
  payload: TResult

  def __init__(self, payload: TResult):
    self.payload = payload


def depth_first(callback: Callable[[edc_parser.AstNode, TState], TResult],
                ast: edc_parser.AstNode, state: TState) -> TResult:
  """Call `callback` on each node of a syntax tree in `preorder` order.

  If a callback wishes to cancel the traversal, it can raise a Stop exception.
  The value passed within the Stop is returned to the caller of `depth_first`.
  Otherwise, the value returned by the final call to callback in the traversal
  is returned.

  Args:
    callback: Called for each node in the tree. The second argument is the
        `state` argument to this function.
    ast: Root of the syntax tree to traverse.
    state: State object to pass to all calls of `callback`.

  Returns:
    As described above.
  """
  result = None
  try:
    for node in preorder(ast):
      result = callback(node, state)
  except Stop as s:
    return s.payload
  return result  # type: ignore


### Utilities ###


def children(ast: edc_parser.AstNode) -> list[edc_parser.AstNode]:
  """Retrieve the child nodes of a syntax tree node, in field order."""
  kids: list[edc_parser.AstNode] = []
  for field in dataclasses.fields(ast):
    value = getattr(ast, field.name)
    if isinstance(value, list):
      kids.extend(value)
    elif isinstance(value, edc_parser.AstNode):
      kids.append(value)
  return kids


def walk(
    statements: Sequence[edc_parser.Statement],
) -> list[edc_parser.AstNode]:
  """List every node in a program, in depth-first pre-order."""
  return [node for statement in statements for node in preorder(statement)]
