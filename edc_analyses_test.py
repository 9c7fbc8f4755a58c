"""Tests for the edc_analyses module.

Forfeited into the public domain with NO WARRANTY. Read LICENSE for details.
"""

import unittest
import warnings

import edc_analyses
import edc_parser


def validate(source_text: str) -> edc_analyses.Validation:
  """Parse and validate source text, ignoring warnings."""
  with warnings.catch_warnings():
    warnings.simplefilter('ignore', edc_analyses.UnusedVariableWarning)
    return edc_analyses.validate(edc_parser.parse_text(source_text))


def messages(source_text: str) -> list[str]:
  """Parse and validate source text, then list all the errors as text."""
  return [str(e) for e in validate(source_text).errors]


class EdcAnalysesTest(unittest.TestCase):
  """Test harness for testing the edc_analyses module."""

  def test_valid(self):
    """Programs with nothing wrong."""
    result = validate("""\
        let a = 5;
        let b = 10;
        if a < b { print 1; } else { print 0; }
        for i = a to b { let c = i * 2; print c; }
        print c + i;""")
    self.assertTrue(result.ok)
    self.assertEqual(result.errors, [])
    self.assertTrue(validate('').ok)

  def test_undefined(self):
    """Uses of variables that were never declared."""
    self.assertEqual(messages('print y;'),
                     ["Undefined variable 'y' at line 1, column 7"])
    # Each use is reported, in program order.
    self.assertEqual(messages('print y + z;\nif w { print y; }'), [
        "Undefined variable 'y' at line 1, column 7",
        "Undefined variable 'z' at line 1, column 11",
        "Undefined variable 'w' at line 2, column 4",
        "Undefined variable 'y' at line 2, column 14"])

  def test_declaration_order(self):
    """A variable must be declared above its first use."""
    self.assertEqual(messages('print x;\nlet x = 1;'),
                     ["Undefined variable 'x' at line 1, column 7"])
    self.assertEqual(messages('let x = x + 1;'),
                     ["Undefined variable 'x' at line 1, column 9"])

  def test_duplicate(self):
    """Redeclarations cite the original declaration."""
    self.assertEqual(messages('let x = 10;\nlet x = 20;'), [
        "Variable 'x' already declared at line 1, column 5. Redeclaration "
        'attempt at line 2, column 5'])
    # A duplicate's expression isn't checked.
    self.assertEqual(len(messages('let x = 1; let x = nope;')), 1)

  def test_no_block_scope(self):
    """Declarations inside blocks are visible for the rest of the program."""
    self.assertTrue(validate('if 1 { let x = 1; } print x;').ok)
    self.assertEqual(len(messages('if 1 { let x = 1; } else { let x = 2; }')), 1)

  def test_for_variables(self):
    """Loop variables are declared by their loops unless already declared."""
    self.assertTrue(validate('for i = 1 to 3 { print i; } print i;').ok)
    self.assertTrue(validate('let i = 0; for i = 1 to 3 { print i; }').ok)
    self.assertTrue(
        validate('for i = 1 to 2 { } for i = 1 to 3 { print i; }').ok)
    # The bounds can't refer to the loop variable the loop introduces.
    self.assertEqual(messages('for i = 1 to i { }'),
                     ["Undefined variable 'i' at line 1, column 14"])
    # Nor can a let after the loop redeclare it.
    self.assertEqual(len(messages('for i = 1 to 3 { } let i = 4;')), 1)

  def test_unused_warning(self):
    """Unused let variables provoke warnings; unused loop variables don't."""
    ast = edc_parser.parse_text('let lonely = 1; let used = 2; print used;')
    with self.assertWarnsRegex(edc_analyses.UnusedVariableWarning,
                               "'lonely' declared at line 1, column 5"):
      self.assertTrue(edc_analyses.validate(ast).ok)

    ast = edc_parser.parse_text('for i = 1 to 3 { print 0; }')
    with warnings.catch_warnings():
      warnings.simplefilter('error')
      self.assertTrue(edc_analyses.validate(ast).ok)
