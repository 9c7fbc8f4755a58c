"""Stack machine instructions and the program buffer that holds them.

Forfeited into the public domain with NO WARRANTY. Read LICENSE for details.

A `Program` is an indexable sequence of `Instruction`s. The code generator in
`edc_generator` builds one by appending instructions, and resolves forward
jumps by "backpatching": it emits a jump whose target is the UNRESOLVED
sentinel, carries on emitting code, then overwrites the sentinel once the
target address is known. That's the same two-step dance an assembler does to
resolve labels, except that here addresses are simply instruction indices.

Once generation is done, `Program.finish` checks that every jump was resolved
to an address within the program (an address equal to the program's length is
allowed and means "stop"), then freezes the program for the virtual machine in
`edc_vm` to execute.

Opcodes and their stack effects (b is the top of the stack, a beneath it):

   LOAD_CONST k        push k
   LOAD_VAR name       push the value bound to name
   STORE_VAR name      pop a value and bind name to it
   ADD SUB MUL DIV MOD pop b, a; push a op b
   CMP_LT CMP_GT CMP_LTE CMP_GTE CMP_EQ CMP_NEQ
                       pop b, a; push 1 if a op b else 0
   AND OR              pop b, a; push 1 if (a != 0) op (b != 0) else 0
   NOT                 pop a; push 1 if a == 0 else 0
   JUMP t              continue at t
   JUMP_IF_FALSE t     pop c; continue at t if c == 0
   JUMP_IF_TRUE t      pop c; continue at t if c != 0
   POP                 pop and discard
   DUP                 push a copy of the top value
   PRINT               pop a value and print it
   HALT                stop

This module also holds the integer arithmetic shared by the virtual machine
and by constant folding in `edc_optimiser`, so that the two can never
disagree.
"""

import dataclasses
import enum
import operator

from typing import Callable, Iterator, Optional


# Operand of a jump that hasn't been backpatched yet. Never a valid address.
UNRESOLVED = -1


class Opcode(enum.Enum):
  """Operations the virtual machine can execute."""
  LOAD_CONST = 1
  LOAD_VAR = 2
  STORE_VAR = 3
  ADD = 4
  SUB = 5
  MUL = 6
  DIV = 7
  MOD = 8
  CMP_LT = 9
  CMP_GT = 10
  CMP_LTE = 11
  CMP_GTE = 12
  CMP_EQ = 13
  CMP_NEQ = 14
  AND = 15
  OR = 16
  NOT = 17
  JUMP = 18
  JUMP_IF_FALSE = 19
  JUMP_IF_TRUE = 20
  POP = 21
  DUP = 22
  PRINT = 23
  HALT = 24


JUMPS = frozenset([Opcode.JUMP, Opcode.JUMP_IF_FALSE, Opcode.JUMP_IF_TRUE])
_INTEGER_OPERAND = JUMPS | {Opcode.LOAD_CONST}
_NAME_OPERAND = frozenset([Opcode.LOAD_VAR, Opcode.STORE_VAR])


@dataclasses.dataclass(frozen=True)
class Instruction:
  """A single instruction.

  Attributes:
    opcode: The operation.
    operand: Constant value for LOAD_CONST, or target address for jumps.
    name: Variable name for LOAD_VAR and STORE_VAR.
  """
  opcode: Opcode
  operand: Optional[int] = None
  name: Optional[str] = None

  def __str__(self) -> str:
    if self.opcode in _INTEGER_OPERAND:
      return f'{self.opcode.name} {self.operand}'
    elif self.opcode in _NAME_OPERAND:
      return f'{self.opcode.name} "{self.name}"'
    else:
      return self.opcode.name


class Program:
  """An append-and-backpatch instruction buffer.

  Supports `len()`, indexing, and iteration. While a Program is being built
  (see the module docstring), use `emit`, `emit_jump` and `backpatch`; after
  `finish`, it's read-only.
  """
  _instructions: list[Instruction]
  _finished: bool

  def __init__(self):
    self._instructions = []
    self._finished = False

  def __len__(self) -> int:
    return len(self._instructions)

  def __getitem__(self, index: int) -> Instruction:
    return self._instructions[index]

  def __iter__(self) -> Iterator[Instruction]:
    return iter(self._instructions)

  @property
  def finished(self) -> bool:
    return self._finished

  def emit(self, opcode: Opcode, operand: Optional[int] = None,
           name: Optional[str] = None) -> int:
    """Append an instruction, returning its index.

    Args:
      opcode: Operation for the new instruction.
      operand: Integer operand, required by LOAD_CONST and jumps.
      name: Variable name operand, required by LOAD_VAR and STORE_VAR.

    Returns:
      The index of the new instruction.

    Raises:
      ValueError: operands don't suit the opcode.
      RuntimeError: the program has already been finished.
    """
    self._check_not_finished()
    if (operand is not None) != (opcode in _INTEGER_OPERAND): raise ValueError(
        f'{opcode.name} got an unsuitable integer operand {operand!r}')
    if (name is not None) != (opcode in _NAME_OPERAND): raise ValueError(
        f'{opcode.name} got an unsuitable name operand {name!r}')
    self._instructions.append(Instruction(opcode, operand, name))
    return len(self._instructions) - 1

  def emit_jump(self, opcode: Opcode) -> int:
    """Append a jump with an unresolved target; return its index."""
    if opcode not in JUMPS: raise ValueError(f'{opcode.name} is not a jump')
    return self.emit(opcode, UNRESOLVED)

  def backpatch(self, index: int, target: int):
    """Resolve the target of the unresolved jump at `index`.

    Raises:
      ValueError: the instruction at `index` isn't a jump awaiting a target,
          perhaps because it's been backpatched already.
      RuntimeError: the program has already been finished.
    """
    self._check_not_finished()
    instruction = self._instructions[index]
    if instruction.opcode not in JUMPS or instruction.operand != UNRESOLVED:
      raise ValueError(
          f'Instruction {index} ({instruction}) is not an unresolved jump')
    if target < 0: raise ValueError(f'Invalid jump target {target}')
    self._instructions[index] = dataclasses.replace(instruction, operand=target)

  def finish(self) -> 'Program':
    """Check jump targets and freeze the program. Returns the program.

    Raises:
      ValueError: a jump is unresolved or points outside `[0, len(self)]`.
    """
    for index, instruction in enumerate(self._instructions):
      if instruction.opcode not in JUMPS: continue
      if instruction.operand == UNRESOLVED: raise ValueError(
          f'Jump at instruction {index} was never backpatched')
      if not 0 <= instruction.operand <= len(self): raise ValueError(
          f'Jump at instruction {index} targets {instruction.operand}, '
          f'outside a program of length {len(self)}')
    self._finished = True
    return self

  def listing(self) -> list[str]:
    """Render each instruction on its own line, prefixed by its index."""
    return [f'{index:4}: {instruction}'
            for index, instruction in enumerate(self._instructions)]

  def _check_not_finished(self):
    if self._finished:
      raise RuntimeError('Cannot modify a Program after finish()')


##################
### ARITHMETIC ###
##################


def _divide(a: int, b: int) -> int:
  """Integer division, truncating toward zero."""
  if b == 0: raise ZeroDivisionError('Division by zero')
  quotient = abs(a) // abs(b)
  return quotient if (a < 0) == (b < 0) else -quotient


def _modulo(a: int, b: int) -> int:
  """Remainder of `_divide`, which takes the sign of the dividend."""
  if b == 0: raise ZeroDivisionError('Modulo by zero')
  return a - b * _divide(a, b)


_BINARY: dict[Opcode, Callable[[int, int], int]] = {
    Opcode.ADD: operator.add,
    Opcode.SUB: operator.sub,
    Opcode.MUL: operator.mul,
    Opcode.DIV: _divide,
    Opcode.MOD: _modulo,
    Opcode.CMP_LT: lambda a, b: int(a < b),
    Opcode.CMP_GT: lambda a, b: int(a > b),
    Opcode.CMP_LTE: lambda a, b: int(a <= b),
    Opcode.CMP_GTE: lambda a, b: int(a >= b),
    Opcode.CMP_EQ: lambda a, b: int(a == b),
    Opcode.CMP_NEQ: lambda a, b: int(a != b),
    Opcode.AND: lambda a, b: int(a != 0 and b != 0),
    Opcode.OR: lambda a, b: int(a != 0 or b != 0),
}
BINARY_OPCODES = frozenset(_BINARY)


def binary(opcode: Opcode, a: int, b: int) -> int:
  """Compute `a opcode b` for any two-operand arithmetic/logic opcode.

  Raises:
    ZeroDivisionError: DIV or MOD with `b` equal to zero.
  """
  return _BINARY[opcode](a, b)


def logical_not(a: int) -> int:
  """The NOT opcode's computation."""
  return int(a == 0)
