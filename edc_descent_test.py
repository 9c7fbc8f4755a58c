"""Tests for the edc_descent module.

Forfeited into the public domain with NO WARRANTY. Read LICENSE for details.
"""

import unittest

import edc_descent
import edc_parser


# Source code used by all of the tests in this module. You'll want to check
# what the tests do before you change this code.
SOURCE_TEXT = """\
    let a = 3;
    let b = a * (a + 7);
    if a < b {
      print a;
      for i = 1 to b { print i % 2; }
    } else {
      print b - 1;
    }"""


def parse(source_text: str) -> edc_parser.IfStatement:
  """Parse SOURCE_TEXT-like code; return its final statement."""
  return edc_parser.parse_text(source_text)[-1]


class EdcDescentTest(unittest.TestCase):
  """Test harness for testing the edc_descent module."""

  def test_depth_first(self):
    """Basic operation of the depth-first traversal."""

    # This callback counts integer literals in a syntax tree. The count must
    # be boxed into a list so that we can mutate it.
    def callback(ast: edc_parser.AstNode, state: list[int]) -> int:
      if isinstance(ast, edc_parser.IntegerLiteral): state[0] += 1
      return state[0]

    ast = parse(SOURCE_TEXT)
    self.assertEqual(edc_descent.depth_first(callback, ast, [0]), 3)

  def test_depth_first_order(self):
    """Nodes are visited in pre-order, children in field order."""

    def callback(ast: edc_parser.AstNode, state: list[str]) -> None:
      match ast:
        case edc_parser.Variable(name=name): state.append(name)
        case edc_parser.IntegerLiteral(value=value): state.append(str(value))
        case _: state.append(type(ast).__name__)

    names: list[str] = []
    edc_descent.depth_first(callback, parse(SOURCE_TEXT), names)
    self.assertEqual(names, [
        'IfStatement', 'ComparisonExpression', 'a', 'b',
        'PrintStatement', 'a',
        'ForStatement', '1', 'b', 'PrintStatement', 'BinaryOperation', 'i', '2',
        'PrintStatement', 'BinaryOperation', 'b', '1'])

  def test_depth_first_stop(self):
    """Interruption of depth-first scanning with a Stop exception."""

    # Like the first callback, but stops at the first literal 2 and forces the
    # traversal to return the nonsense value -6.
    def callback(ast: edc_parser.AstNode, state: list[int]) -> int:
      if isinstance(ast, edc_parser.IntegerLiteral):
        state[0] += 1
        if ast.value == 2: raise edc_descent.Stop(-6)
      return state[0]

    state = [0]
    self.assertEqual(
        edc_descent.depth_first(callback, parse(SOURCE_TEXT), state), -6)
    self.assertEqual(state[0], 2)

  def test_preorder(self):
    """preorder() is lazy, so a caller can stop whenever it likes."""
    nodes = edc_descent.preorder(parse(SOURCE_TEXT))
    self.assertIsInstance(next(nodes), edc_parser.IfStatement)
    self.assertIsInstance(next(nodes), edc_parser.ComparisonExpression)
    loop = next(n for n in nodes if isinstance(n, edc_parser.ForStatement))
    self.assertEqual(loop.variable, 'i')

  def test_children(self):
    """Children come in field order, with blocks flattened."""
    statement = parse(SOURCE_TEXT)
    kids = edc_descent.children(statement)
    self.assertIs(kids[0], statement.condition)
    self.assertEqual(kids[1:], statement.then_block + statement.else_block)
    self.assertEqual(edc_descent.children(edc_parser.IntegerLiteral(1)), [])

  def test_walk(self):
    """walk() lists every node of a whole program."""
    statements = edc_parser.parse_text(SOURCE_TEXT)
    nodes = edc_descent.walk(statements)
    self.assertIs(nodes[0], statements[0])
    self.assertEqual(
        sum(isinstance(n, edc_parser.Variable) for n in nodes), 8)
    self.assertEqual(
        [n.identifier for n in nodes
         if isinstance(n, edc_parser.LetStatement)], ['a', 'b'])
