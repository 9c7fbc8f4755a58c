"""Tests for the edc_compiler module.

Forfeited into the public domain with NO WARRANTY. Read LICENSE for details.
"""

import argparse
import io
import json
import random
import unittest
import warnings

import edc_analyses
import edc_bytecode
import edc_compiler
import edc_optimiser
import edc_parser
import edc_vm

from typing import Sequence


def flags(*args: str, source_text: str = '') -> argparse.Namespace:
  """Parse command-line arguments, with `source_text` as the source file."""
  namespace = edc_compiler._define_flags().parse_args([*args, '-'])
  namespace.source = io.StringIO(source_text)
  return namespace


def main(*args: str, source_text: str) -> tuple[int, str, str]:
  """Run the compiler's main program; return status, stdout, and stderr."""
  stdout, stderr = io.StringIO(), io.StringIO()
  with warnings.catch_warnings():
    warnings.simplefilter('ignore')
    status = edc_compiler.main(flags(*args, source_text=source_text),
                               stdout, stderr)
  return status, stdout.getvalue(), stderr.getvalue()


def evaluate(statements: Sequence[edc_parser.Statement]) -> list[int]:
  """Reference tree-walking interpreter, for comparison with compiled code."""
  variables: dict[str, int] = {}
  output: list[int] = []

  def expression(e: edc_parser.Expression) -> int:
    match e:
      case edc_parser.IntegerLiteral(value=value):
        return value
      case edc_parser.Variable(name=name):
        return variables[name]
      case edc_parser.UnaryExpression(operand=operand):
        return int(expression(operand) == 0)
    a, b = expression(e.left), expression(e.right)
    match e.op:
      case edc_parser.BinaryOp.ADD: return a + b
      case edc_parser.BinaryOp.SUBTRACT: return a - b
      case edc_parser.BinaryOp.MULTIPLY: return a * b
      case edc_parser.BinaryOp.DIVIDE:
        quotient = abs(a) // abs(b)
        return quotient if (a < 0) == (b < 0) else -quotient
      case edc_parser.BinaryOp.MODULO:
        return (abs(a) % abs(b)) * (-1 if a < 0 else 1)
      case edc_parser.ComparisonOp.LT: return int(a < b)
      case edc_parser.ComparisonOp.GT: return int(a > b)
      case edc_parser.ComparisonOp.LE: return int(a <= b)
      case edc_parser.ComparisonOp.GE: return int(a >= b)
      case edc_parser.ComparisonOp.EQ: return int(a == b)
      case edc_parser.ComparisonOp.NE: return int(a != b)
      case edc_parser.LogicalOp.AND: return int(bool(a) and bool(b))
      case edc_parser.LogicalOp.OR: return int(bool(a) or bool(b))
    raise AssertionError(f'Unknown expression {e!r}')

  def block(statements: Sequence[edc_parser.Statement]):
    for s in statements:
      match s:
        case edc_parser.LetStatement(identifier=name, expression=e):
          variables[name] = expression(e)
        case edc_parser.PrintStatement(expression=e):
          output.append(expression(e))
        case edc_parser.IfStatement():
          block(s.then_block if expression(s.condition) else s.else_block)
        case edc_parser.ForStatement(variable=variable):
          variables[variable] = expression(s.start)
          while variables[variable] <= expression(s.end):
            block(s.body)
            variables[variable] += 1

  block(statements)
  return output


class _ProgramMaker:
  """Makes random valid programs that use all of the language's features.

  Variables declared inside blocks are only used inside those blocks, since
  the blocks may not run. Every name is fresh, so no loop can reset the
  variable of a loop around it.
  """

  def __init__(self, seed: int):
    self._random = random.Random(seed)
    self._declared: list[str] = []
    self._names = 0

  def program(self) -> str:
    lines = [self.statement(0, 'let') for _ in range(3)]
    lines += [self.statement(0) for _ in range(6)]
    return '\n'.join(lines)

  def block(self, depth: int) -> str:
    visible = len(self._declared)
    statements = ' '.join(self.statement(depth) for _ in range(2))
    del self._declared[visible:]
    return statements

  def statement(self, depth: int, kind: str = '') -> str:
    kind = kind or self._random.choice(
        ['let', 'print', 'if', 'for'] if depth < 2 else ['let', 'print'])
    if kind == 'let':
      name = self._fresh('v')
      line = f'let {name} = {self.expression(2)};'
      self._declared.append(name)
      return line
    elif kind == 'print':
      return f'print {self.expression(3)};'
    elif kind == 'if':
      condition = self.expression(2)
      return (f'if {condition} {{ {self.block(depth + 1)} }} '
              f'else {{ {self.block(depth + 1)} }}')
    else:
      name = self._fresh('i')
      start = f'(0 - {self._random.randint(0, 2)})'
      end = f'{start} + ({self._random.randint(0, 4)} - 1)'
      self._declared.append(name)
      return f'for {name} = {start} to {end} {{ {self.block(depth + 1)} }}'

  def expression(self, depth: int) -> str:
    if depth == 0 or self._random.random() < 0.3:
      if not self._declared or self._random.random() < 0.5:
        return str(self._random.randint(0, 20))
      return self._random.choice(self._declared)
    op = self._random.choice(
        ['+', '-', '*', '/', '%', '<', '>', '<=', '>=', '==', '!=', '&&', '||',
         '!'])
    left = self.expression(depth - 1)
    if op == '!': return f'!({left})'
    if op in ('/', '%'):  # Keep divisors away from zero.
      return f'({left}) {op} (1 + {self._random.randint(0, 5)})'
    return f'({left}) {op} ({self.expression(depth - 1)})'

  def _fresh(self, prefix: str) -> str:
    self._names += 1
    return f'{prefix}{self._names}'


class EdcCompilerTest(unittest.TestCase):
  """Test harness for testing the edc_compiler module."""

  def test_scenario_folding(self):
    """A constant expression is folded; the variable is still loaded."""
    compilation = edc_compiler.compile('let x = 2 + 3 * 4; print x;')
    self.assertEqual(
        [str(i) for i in compilation.program],
        ['LOAD_CONST 14', 'STORE_VAR "x"', 'LOAD_VAR "x"', 'PRINT', 'HALT'])
    self.assertEqual(edc_compiler.run('let x = 2 + 3 * 4; print x;').output,
                     [14])

  def test_scenario_if(self):
    """The then block runs when its condition holds."""
    outcome = edc_compiler.run(
        'let a = 5; let b = 10; if a < b { print 1; } else { print 0; }')
    self.assertTrue(outcome.success)
    self.assertIsNone(outcome.stage)
    self.assertEqual(outcome.output, [1])

  def test_scenario_for(self):
    """A loop prints its variable's values in order."""
    self.assertEqual(edc_compiler.run('for i = 1 to 3 { print i; }').output,
                     [1, 2, 3])

  def test_scenario_undefined(self):
    """An undeclared variable stops compilation before code generation."""
    compilation = edc_compiler.compile('print y;')
    self.assertIsNone(compilation.program)
    self.assertFalse(compilation.validation.ok)
    outcome = edc_compiler.run('print y;')
    self.assertEqual(outcome.stage, 'semantic')
    self.assertEqual(outcome.errors,
                     ["Undefined variable 'y' at line 1, column 7"])

  def test_scenario_duplicate(self):
    """A redeclaration cites the original declaration."""
    with warnings.catch_warnings():
      warnings.simplefilter('ignore', edc_analyses.UnusedVariableWarning)
      outcome = edc_compiler.run('let x = 10; let x = 20;')
    self.assertEqual(outcome.stage, 'semantic')
    self.assertRegex(outcome.errors[0],
                     "Variable 'x' already declared at line 1, column 5")

  def test_scenario_division_by_zero(self):
    """A literal division by zero compiles, then faults at runtime."""
    with warnings.catch_warnings():
      warnings.simplefilter('ignore')
      compilation = edc_compiler.compile('let q = 10 / 0;')
      outcome = edc_compiler.run('let q = 10 / 0;')
    self.assertIn(edc_bytecode.Opcode.DIV,
                  [i.opcode for i in compilation.program])
    self.assertEqual(outcome.stage, 'runtime')
    self.assertEqual(outcome.errors, ['Division by zero'])
    self.assertIsInstance(outcome.fault, edc_vm.DivisionByZero)
    self.assertEqual(outcome.instruction_count, 2)

  def test_parse_error(self):
    """Parse errors propagate from compile() and are reported by run()."""
    with self.assertRaises(edc_parser.ParseError):
      edc_compiler.compile('print (1;')
    outcome = edc_compiler.run('print (1;')
    self.assertEqual(outcome.stage, 'parser')
    self.assertFalse(outcome.success)
    self.assertEqual(outcome.errors,
                     ["Expected ')' after expression at line 1, column 9"])

  def test_no_optimise(self):
    """Optimisation can be switched off."""
    compilation = edc_compiler.compile('print 1 + 2;', optimise=False)
    self.assertEqual(compilation.optimisations, 0)
    self.assertIs(compilation.optimised_ast, compilation.ast)
    self.assertEqual(len(compilation.program), 5)
    self.assertEqual(len(edc_compiler.compile('print 1 + 2;').program), 3)

  def test_matches_reference(self):
    """Compiled code, optimised or not, behaves like a tree-walker."""
    for seed in range(40):
      source_text = _ProgramMaker(seed).program()
      with warnings.catch_warnings():
        warnings.simplefilter('ignore')
        ast = edc_parser.parse_text(source_text)
        self.assertTrue(edc_analyses.validate(ast).ok, source_text)
        expected = evaluate(ast)
        self.assertEqual(evaluate(edc_optimiser.optimise(ast)[0]), expected,
                         source_text)
        for optimise in (True, False):
          outcome = edc_compiler.run(source_text, optimise)
          self.assertTrue(outcome.success, source_text)
          self.assertEqual(outcome.output, expected, source_text)

  def test_negative_loop_bounds(self):
    """Loops can count through negative values built by subtraction."""
    source_text = 'for i = (0 - 2) to (0 - 2) + (3 - 1) { print i; }'
    for optimise in (True, False):
      outcome = edc_compiler.run(source_text, optimise)
      self.assertTrue(outcome.success)
      self.assertEqual(outcome.output, [-2, -1, 0])

  def test_main_run(self):
    """Running a program from the command line."""
    self.assertEqual(main(source_text='for i = 1 to 2 { print i * 10; }'),
                     (0, '10\n20\n', ''))

  def test_main_errors(self):
    """Each kind of fault gives exit status 1 and a message."""
    status, stdout, stderr = main(source_text='print 1 +;')
    self.assertEqual((status, stdout), (1, ''))
    self.assertRegex(stderr, '^Parse error: Expected expression')

    status, _, stderr = main(source_text='print nope;')
    self.assertEqual(status, 1)
    self.assertRegex(stderr, "^Semantic error: Undefined variable 'nope'")

    status, stdout, stderr = main(source_text='print 1; print 1 % 0;')
    self.assertEqual((status, stdout), (1, '1\n'))
    self.assertRegex(stderr, '^Runtime error: Modulo by zero')

  def test_main_bytecode(self):
    """-S prints a listing and doesn't run the program."""
    status, stdout, _ = main('-S', source_text='print 2 * 3;')
    self.assertEqual(status, 0)
    self.assertEqual(stdout.splitlines(), [
        'Optimisations applied: 1',
        '   0: LOAD_CONST 6',
        '   1: PRINT',
        '   2: HALT'])
    _, stdout, _ = main('-S', '--no-optimise', source_text='print 2 * 3;')
    self.assertEqual(len(stdout.splitlines()), 5)

  def test_main_tokens_and_ast(self):
    """Intermediate products can be printed before running."""
    _, stdout, _ = main('--tokens', '--ast', '--no-optimise',
                        source_text='print 7;')
    self.assertEqual(stdout.splitlines(), [
        "[PRINT 'print' (1:1)]",
        "[INTEGER '7' (1:7)]",
        "[SEMICOLON ';' (1:8)]",
        "[END_OF_FILE '' (1:9)]",
        'PrintStatement',
        '  expression:',
        '    IntegerLiteral: 7',
        '7'])

  def test_main_tokens_on_parse_error(self):
    """Tokens are still printed when the program doesn't parse."""
    status, stdout, stderr = main('--tokens', source_text='print ;')
    self.assertEqual(status, 1)
    self.assertEqual(stdout.splitlines(), [
        "[PRINT 'print' (1:1)]",
        "[SEMICOLON ';' (1:7)]",
        "[END_OF_FILE '' (1:8)]"])
    self.assertRegex(stderr, '^Parse error: Expected expression')

  def test_main_trace(self):
    """Trace output is interleaved with program output."""
    _, stdout, _ = main('--trace', source_text='print 5;')
    self.assertEqual(stdout.splitlines(), [
        '',
        '=== VM Execution Trace ===',
        '[0] LOAD_CONST 5 | Stack: []',
        '[1] PRINT | Stack: [5]',
        '5',
        '[2] HALT | Stack: []',
        '=== Execution Complete ===',
        'Instructions executed: 2',
        ''])

  def test_main_json(self):
    """--json reports every stage in one document."""
    status, stdout, _ = main('--json', source_text='let x = 1 + 1; print x;')
    self.assertEqual(status, 0)
    report = json.loads(stdout)
    self.assertTrue(report['success'])
    self.assertIsNone(report['stage'])
    self.assertEqual(report['tokens'][0],
                     {'type': 'LET', 'value': 'let', 'line': 1, 'column': 1})
    self.assertEqual(report['ast'][0]['type'], 'LetStatement')
    self.assertEqual(report['optimizations'], 1)
    self.assertEqual(report['bytecode'][:2], [
        {'index': 0, 'opcode': 'LOAD_CONST', 'operand': 2},
        {'index': 1, 'opcode': 'STORE_VAR', 'variable': 'x'}])
    self.assertEqual(report['output'], '2\n')
    self.assertEqual(report['instructionsExecuted'], 4)

    status, stdout, _ = main('--json', source_text='print 1 +;')
    self.assertEqual(status, 1)
    report = json.loads(stdout)
    self.assertEqual(report['stage'], 'parser')
    self.assertEqual(report['errors'], [
        {'message': 'Expected expression', 'line': 1, 'column': 10}])
    self.assertNotIn('ast', report)

    status, stdout, _ = main('--json', source_text='print y;')
    report = json.loads(stdout)
    self.assertEqual((status, report['stage']), (1, 'semantic'))
    self.assertEqual(report['errors'][0]['column'], 7)
    self.assertNotIn('bytecode', report)

    status, stdout, _ = main('--json', source_text='print 1; print 1 / 0;')
    report = json.loads(stdout)
    self.assertEqual((status, report['stage']), (1, 'runtime'))
    self.assertEqual(report['errors'], [{'message': 'Division by zero',
                                         'pc': 4}])
    self.assertEqual(report['output'], '1\n')

  def test_main_version(self):
    """-v prints the version."""
    self.assertEqual(main('-v', source_text=''),
                     (0, edc_compiler.__version__ + '\n', ''))
