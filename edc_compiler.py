#!/usr/bin/python3
"""The educational compiler.

Forfeited into the public domain with NO WARRANTY. Read LICENSE for details.

This program compiles a tiny language of integer variables, `print`, `if` and
counting `for` loops into instructions for a stack machine, and then runs
those instructions. A complete program looks like this:

   let limit = 5;
   for i = 1 to limit {
     if i % 2 == 0 { print i; } else { print 0 - i; }
   }

Compilation passes through these stages, each in its own module:

   1. Tokenizing (`edc_lexer`)
   2. Parsing into a syntax tree (`edc_parser`)
   3. Validation of variable declarations (`edc_analyses`)
   4. Optional constant folding and propagation (`edc_optimiser`)
   5. Code generation (`edc_generator`, producing `edc_bytecode.Program`s)

after which the virtual machine in `edc_vm` executes the program.

The compiler is meant for showing how compilers work, so there are flags for
printing the products of the intermediate stages, a trace mode for the
virtual machine, and a --json flag that reports everything in one document for
consumption by other programs. To learn more, execute this program with the
-h flag.
"""

import argparse
import dataclasses
import json
import sys

import edc_analyses
import edc_bytecode
import edc_generator
import edc_lexer
import edc_optimiser
import edc_parser
import edc_vm

from typing import Any, Optional, TextIO


__version__ = 'edc educational compiler 0.1 circa October 2026'


def _define_flags():
  """Defines an `ArgumentParser` for command-line flags used by this program."""
  flags = argparse.ArgumentParser(
      description=(__version__),
      formatter_class=argparse.ArgumentDefaultsHelpFormatter)

  flags.add_argument('source', nargs='?', default='-',
                     help=('Program source code file to compile; omit to read '
                           'source from standard input'),
                     type=argparse.FileType('r'))

  flags.add_argument('-O', '--optimise',
                     default=True, action=argparse.BooleanOptionalAction,
                     help='Enable constant folding and propagation', type=bool)

  flags.add_argument('--tokens',
                     default=False, action=argparse.BooleanOptionalAction,
                     help='Print the token list before running', type=bool)

  flags.add_argument('--ast',
                     default=False, action=argparse.BooleanOptionalAction,
                     help='Print the (optimised) syntax tree before running',
                     type=bool)

  flags.add_argument('-S', '--bytecode',
                     default=False, action=argparse.BooleanOptionalAction,
                     help='Print the compiled program and exit without running',
                     type=bool)

  flags.add_argument('--trace',
                     default=False, action=argparse.BooleanOptionalAction,
                     help='Trace virtual machine execution', type=bool)

  flags.add_argument('--json',
                     default=False, action=argparse.BooleanOptionalAction,
                     help=('Report the products of all stages as a single JSON '
                           'document on standard output'), type=bool)

  flags.add_argument('-v', '--version',
                     default=False, action=argparse.BooleanOptionalAction,
                     help='Print version and exit', type=bool)

  return flags


################
#### DRIVER ####
################


@dataclasses.dataclass
class Compilation:
  """Products of the compiler's stages.

  Attributes:
    tokens: Tokens of the source text.
    ast: Syntax tree as parsed.
    validation: Result of validating `ast`.
    optimised_ast: Syntax tree after optimisation, or `ast` if optimisation
        was disabled. None if validation failed.
    optimisations: Number of optimiser rewrites.
    program: Compiled program, or None if validation failed.
  """
  tokens: list[edc_lexer.Token]
  ast: list[edc_parser.Statement]
  validation: edc_analyses.Validation
  optimised_ast: Optional[list[edc_parser.Statement]] = None
  optimisations: int = 0
  program: Optional[edc_bytecode.Program] = None


@dataclasses.dataclass
class Outcome:
  """What happened when `run` compiled and executed a program.

  Attributes:
    stage: Where processing stopped: 'parser', 'semantic', 'runtime', or None
        if the program ran to completion.
    errors: Descriptions of the problems that stopped processing, if any.
    compilation: Whatever compilation produced; None after a parse error.
    output: Values printed before execution finished or faulted.
    instruction_count: Instructions executed, excluding HALT.
    fault: The parse error or runtime fault, for the 'parser' and 'runtime'
        stages.
  """
  stage: Optional[str]
  errors: list[str] = dataclasses.field(default_factory=list)
  compilation: Optional[Compilation] = None
  output: list[int] = dataclasses.field(default_factory=list)
  instruction_count: int = 0
  fault: Optional[Exception] = None

  @property
  def success(self) -> bool:
    return self.stage is None


def compile(source_text: str, optimise: bool = True) -> Compilation:
  """Compile source text into a stack machine program.

  Args:
    source_text: Complete source code for the program to compile.
    optimise: Whether to fold and propagate constants before generating code.

  Returns:
    The products of all compilation stages. If validation found problems, the
    `program` field is None and `validation.errors` lists them.

  Raises:
    edc_parser.ParseError: the source text has a syntax error.
  """
  tokens = edc_lexer.tokenize(source_text)
  ast = edc_parser.parse(tokens)
  compilation = Compilation(tokens, ast, edc_analyses.validate(ast))
  if not compilation.validation.ok: return compilation

  if optimise:
    compilation.optimised_ast, compilation.optimisations = (
        edc_optimiser.optimise(ast))
  else:
    compilation.optimised_ast = ast
  compilation.program = edc_generator.program(compilation.optimised_ast)
  return compilation


def run(source_text: str, optimise: bool = True,
        vm: Optional[edc_vm.VirtualMachine] = None) -> Outcome:
  """Compile and execute source text, reporting rather than raising faults.

  Args:
    source_text: Complete source code for the program to run.
    optimise: Whether to fold and propagate constants before generating code.
    vm: Virtual machine to run the program on; a fresh untraced one if None.

  Returns:
    An Outcome describing how far processing got and what it produced.
  """
  try:
    compilation = compile(source_text, optimise)
  except edc_parser.ParseError as e:
    return Outcome('parser', [str(e)], fault=e)

  if compilation.program is None:
    return Outcome('semantic', [str(e) for e in compilation.validation.errors],
                   compilation)

  if vm is None: vm = edc_vm.VirtualMachine()
  try:
    report = vm.execute(compilation.program)
  except edc_vm.RuntimeFault as e:
    return Outcome('runtime', [e.message], compilation, e.output,
                   vm.instruction_count, e)
  return Outcome(None, [], compilation, report.output,
                 report.instruction_count)


def to_json(source_text: str, outcome: Outcome) -> dict[str, Any]:
  """Describe an Outcome as a JSON-ready dict.

  Args:
    source_text: Source text that `outcome` came from. Only used to recover
        the tokens when parsing failed.
    outcome: Result of `run`.

  Returns:
    A dict with the keys `success` and `stage`, and then `errors`, `tokens`,
    `ast`, `optimizations`, `bytecode`, `output` and `instructionsExecuted`
    for as far as processing got.
  """
  result: dict[str, Any] = {'success': outcome.success,
                            'stage': outcome.stage}

  if outcome.stage == 'parser':
    fault = outcome.fault
    assert isinstance(fault, edc_parser.ParseError)
    result['errors'] = [{'message': fault.message, 'line': fault.line,
                         'column': fault.column}]
    result['tokens'] = _tokens_json(edc_lexer.tokenize(source_text))
    return result

  compilation = outcome.compilation
  assert compilation is not None
  if outcome.stage == 'semantic':
    result['errors'] = [{'message': e.message, 'line': e.line,
                         'column': e.column}
                        for e in compilation.validation.errors]
  elif outcome.stage == 'runtime':
    fault = outcome.fault
    assert isinstance(fault, edc_vm.RuntimeFault)
    result['errors'] = [{'message': fault.message, 'pc': fault.pc}]

  result['tokens'] = _tokens_json(compilation.tokens)
  result['ast'] = edc_parser.asdict(compilation.ast)
  if compilation.program is None: return result

  result['optimizations'] = compilation.optimisations
  result['optimizedAst'] = edc_parser.asdict(compilation.optimised_ast)
  result['bytecode'] = _bytecode_json(compilation.program)
  result['output'] = ''.join(f'{value}\n' for value in outcome.output)
  result['instructionsExecuted'] = outcome.instruction_count
  return result


def _tokens_json(tokens: list[edc_lexer.Token]) -> list[dict[str, Any]]:
  return [{'type': t.kind.name, 'value': t.lexeme, 'line': t.line,
           'column': t.column} for t in tokens]


def _bytecode_json(program: edc_bytecode.Program) -> list[dict[str, Any]]:
  instructions = []
  for index, instruction in enumerate(program):
    entry: dict[str, Any] = {'index': index,
                             'opcode': instruction.opcode.name}
    if instruction.operand is not None: entry['operand'] = instruction.operand
    if instruction.name is not None: entry['variable'] = instruction.name
    instructions.append(entry)
  return instructions


######################
#### MAIN PROGRAM ####
######################


def main(FLAGS: argparse.Namespace, stdout: TextIO = sys.stdout,
         stderr: TextIO = sys.stderr) -> int:
  """For when the compiler is run as a standalone executable.

  Returns:
    An exit status: 0 on success, 1 if the program failed to compile or run.
  """
  if FLAGS.version:
    print(__version__, file=stdout)
    return 0

  source_text = FLAGS.source.read()
  if FLAGS.tokens and not FLAGS.json:
    print('\n'.join(str(t) for t in edc_lexer.tokenize(source_text)),
          file=stdout)

  if FLAGS.json:
    outcome = run(source_text, FLAGS.optimise)
    json.dump(to_json(source_text, outcome), stdout, indent=2)
    stdout.write('\n')
    return 0 if outcome.success else 1

  # Compile, printing intermediate products as requested.
  try:
    compilation = compile(source_text, FLAGS.optimise)
  except edc_parser.ParseError as e:
    print(f'Parse error: {e}', file=stderr)
    return 1

  if not compilation.validation.ok:
    for error in compilation.validation.errors:
      print(f'Semantic error: {error}', file=stderr)
    return 1
  assert compilation.program is not None

  if FLAGS.ast:
    print('\n'.join(edc_parser.pretty(compilation.optimised_ast)), file=stdout)
  if FLAGS.optimise and (FLAGS.ast or FLAGS.bytecode):
    print(f'Optimisations applied: {compilation.optimisations}', file=stdout)
  if FLAGS.bytecode:
    print('\n'.join(compilation.program.listing()), file=stdout)
    return 0

  # Run the program.
  vm = edc_vm.VirtualMachine(
      trace=FLAGS.trace, trace_file=stdout, output_file=stdout)
  try:
    vm.execute(compilation.program)
  except edc_vm.RuntimeFault as e:
    print(f'Runtime error: {e}', file=stderr)
    return 1
  return 0


def cli():
  """Parse command-line flags and call `main`; exit with its status."""
  FLAGS = _define_flags().parse_args()
  sys.exit(main(FLAGS))


if __name__ == '__main__':
  cli()
