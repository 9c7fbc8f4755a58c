"""A stack-based virtual machine for programs made by `edc_generator`.

Forfeited into the public domain with NO WARRANTY. Read LICENSE for details.

The machine has an operand stack of integers, a flat table of variable
bindings (a binding is created by the first STORE_VAR to a name), a program
counter, and a count of executed instructions. All four are reset at the
start of each `VirtualMachine.execute` call, so one machine can run many
programs one after the other (but not at the same time).

Execution starts at instruction 0 and ends at a HALT or when the program
counter leaves the program, whichever comes first. Jumps set the program
counter directly; every other instruction is followed by a step to the next
one. HALT doesn't count as an executed instruction, but jumps do.

Any of these stops execution with a `RuntimeFault`:

   - popping an empty stack (`StackUnderflow`),
   - loading a variable that was never stored (`UnboundVariable`),
   - dividing or taking a modulo by zero (`DivisionByZero`).

Trace mode prints the machine's state before each instruction in the form

   [pc] INSTRUCTION | Stack: [bottom, ..., top] | Vars: {name:value, ...}

where the `Vars` part is left out while no variables are bound. Variables are
listed in the order they were first stored.
"""

import dataclasses
import sys

import edc_bytecode

from typing import Optional, TextIO

Opcode = edc_bytecode.Opcode


@dataclasses.dataclass
class ExecutionReport:
  """What a successful `VirtualMachine.execute` call did.

  Attributes:
    output: Every value printed by PRINT, in order.
    instruction_count: How many instructions were executed, excluding HALT.
  """
  output: list[int]
  instruction_count: int


class RuntimeFault(RuntimeError):
  """A fatal error during execution.

  Attributes:
    message: Description of the fault.
    pc: Index of the faulting instruction.
    instruction: The faulting instruction.
    output: Values printed before the fault.
  """
  message: str
  pc: int
  instruction: edc_bytecode.Instruction
  output: list[int]

  def __init__(self, message: str, pc: int,
               instruction: edc_bytecode.Instruction, output: list[int]):
    super().__init__(f'{message} at instruction {pc} ({instruction})')
    self.message = message
    self.pc = pc
    self.instruction = instruction
    self.output = output


class StackUnderflow(RuntimeFault):
  """An instruction needed more values than the stack held."""


class UnboundVariable(RuntimeFault):
  """LOAD_VAR named a variable that hasn't been stored yet."""


class DivisionByZero(RuntimeFault):
  """DIV or MOD with a zero divisor."""


class _Underflow(Exception):
  """Raised by `VirtualMachine._pop`; converted to StackUnderflow."""


class VirtualMachine:
  """Executes `edc_bytecode.Program`s.

  Attributes:
    trace: Whether to print a trace of execution to `trace_file`.
    trace_file: Where trace text goes; None means standard output.
    output_file: If not None, printed values are also written here, one per
        line, as they're printed.
  """
  trace: bool
  trace_file: Optional[TextIO]
  output_file: Optional[TextIO]

  _stack: list[int]
  _variables: dict[str, int]
  _output: list[int]
  _instruction_count: int

  def __init__(self, trace: bool = False,
               trace_file: Optional[TextIO] = None,
               output_file: Optional[TextIO] = None):
    self.trace = trace
    self.trace_file = trace_file
    self.output_file = output_file
    self._reset()

  @property
  def instruction_count(self) -> int:
    """Instructions executed by the latest (or current) `execute` call."""
    return self._instruction_count

  @property
  def variables(self) -> dict[str, int]:
    """A copy of the variable bindings left by the latest `execute` call."""
    return dict(self._variables)

  def execute(self, program: edc_bytecode.Program) -> ExecutionReport:
    """Run a program to completion.

    Args:
      program: Program to run, usually from `edc_generator.program`.

    Returns:
      An ExecutionReport of the program's output and instruction count.

    Raises:
      RuntimeFault: in one of its subclassed forms, at the first instruction
          that can't be carried out.
      ValueError: `program` has not been finished.
    """
    if not program.finished:
      raise ValueError('Only finished programs can be executed')
    self._reset()
    self._print_trace('\n=== VM Execution Trace ===')

    pc = 0
    while 0 <= pc < len(program):
      instruction = program[pc]
      if self.trace: self._print_trace(self._trace_line(pc, instruction))
      if instruction.opcode == Opcode.HALT: break

      try:
        pc = self._step(pc, instruction)
      except _Underflow:
        raise StackUnderflow('Stack underflow', pc, instruction,
                             list(self._output))
      except ZeroDivisionError as e:
        raise DivisionByZero(str(e), pc, instruction, list(self._output))
      self._instruction_count += 1

    self._print_trace('=== Execution Complete ===')
    self._print_trace(f'Instructions executed: {self._instruction_count}\n')
    return ExecutionReport(list(self._output), self._instruction_count)

  def _step(self, pc: int, instruction: edc_bytecode.Instruction) -> int:
    """Carry out a single instruction; return the next program counter."""
    match instruction.opcode:
      case Opcode.LOAD_CONST:
        self._stack.append(instruction.operand)
      case Opcode.LOAD_VAR:
        if instruction.name not in self._variables:
          raise UnboundVariable(f"Variable '{instruction.name}' not found",
                                pc, instruction, list(self._output))
        self._stack.append(self._variables[instruction.name])
      case Opcode.STORE_VAR:
        self._variables[instruction.name] = self._pop()

      case opcode if opcode in edc_bytecode.BINARY_OPCODES:
        b = self._pop()
        a = self._pop()
        self._stack.append(edc_bytecode.binary(opcode, a, b))
      case Opcode.NOT:
        self._stack.append(edc_bytecode.logical_not(self._pop()))

      case Opcode.JUMP:
        return instruction.operand
      case Opcode.JUMP_IF_FALSE:
        return instruction.operand if self._pop() == 0 else pc + 1
      case Opcode.JUMP_IF_TRUE:
        return instruction.operand if self._pop() != 0 else pc + 1

      case Opcode.POP:
        self._pop()
      case Opcode.DUP:
        if not self._stack: raise _Underflow
        self._stack.append(self._stack[-1])
      case Opcode.PRINT:
        value = self._pop()
        self._output.append(value)
        if self.output_file is not None: print(value, file=self.output_file)

      case _:
        raise _InternalError(f'Unknown instruction {instruction}')

    return pc + 1

  def _pop(self) -> int:
    if not self._stack: raise _Underflow
    return self._stack.pop()

  def _reset(self):
    self._stack = []
    self._variables = {}
    self._output = []
    self._instruction_count = 0

  def _trace_line(self, pc: int,
                  instruction: edc_bytecode.Instruction) -> str:
    """Describe the machine's state as it's about to run `instruction`."""
    line = f'[{pc}] {instruction} | Stack: [{", ".join(map(str, self._stack))}]'
    if self._variables:
      bindings = ', '.join(f'{k}:{v}' for k, v in self._variables.items())
      line += f' | Vars: {{{bindings}}}'
    return line

  def _print_trace(self, text: str):
    if self.trace: print(text, file=self.trace_file or sys.stdout)


class _InternalError(Exception):
  """An exception type for any "this should never happen" situation."""
