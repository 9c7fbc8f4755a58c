"""Code generation: syntax trees to stack machine programs.

Forfeited into the public domain with NO WARRANTY. Read LICENSE for details.

The code generator appends instructions to an `edc_bytecode.Program` as it
recursively descends into the syntax tree. It assumes that the tree has passed
`edc_analyses.validate` and never re-checks variable declarations.

Two conventions hold everything together:

  - Code for an expression leaves exactly one new value on the stack.
  - Code for a statement leaves the stack as it found it.

Binary operations compile to code for the left operand, then code for the
right, then one opcode. The opcode pops the right operand first (b) and the
left operand second (a) and computes `a op b`, so operand order is preserved.

Control flow is lowered to conditional and unconditional jumps whose forward
targets are backpatched. A jump target is always the program length measured
right after emitting everything that should come before the target.

This module is organised into three sections: (1) the entry point for whole
programs, (2) functions that generate code for statements, and (3) functions
that generate code for expressions.
"""

import edc_bytecode
import edc_parser

from typing import Mapping, Sequence, Union

Opcode = edc_bytecode.Opcode


# Opcodes for the operators in expressions. Also used by `edc_optimiser` to
# fold constants exactly the way the virtual machine would compute them.
OPCODES: Mapping[Union[edc_parser.BinaryOp, edc_parser.ComparisonOp,
                       edc_parser.LogicalOp, edc_parser.UnaryOp], Opcode] = {
    edc_parser.BinaryOp.ADD: Opcode.ADD,
    edc_parser.BinaryOp.SUBTRACT: Opcode.SUB,
    edc_parser.BinaryOp.MULTIPLY: Opcode.MUL,
    edc_parser.BinaryOp.DIVIDE: Opcode.DIV,
    edc_parser.BinaryOp.MODULO: Opcode.MOD,
    edc_parser.ComparisonOp.LT: Opcode.CMP_LT,
    edc_parser.ComparisonOp.GT: Opcode.CMP_GT,
    edc_parser.ComparisonOp.LE: Opcode.CMP_LTE,
    edc_parser.ComparisonOp.GE: Opcode.CMP_GTE,
    edc_parser.ComparisonOp.EQ: Opcode.CMP_EQ,
    edc_parser.ComparisonOp.NE: Opcode.CMP_NEQ,
    edc_parser.LogicalOp.AND: Opcode.AND,
    edc_parser.LogicalOp.OR: Opcode.OR,
    edc_parser.UnaryOp.NOT: Opcode.NOT,
}


#########################
### PROGRAM STRUCTURE ###
#########################


def program(statements: Sequence[edc_parser.Statement]) -> edc_bytecode.Program:
  """Generate: for a whole program.

  Args:
    statements: Top-level statements of a validated (and perhaps optimised)
        program.

  Returns:
    A finished Program ending in HALT.
  """
  code = edc_bytecode.Program()
  sta_block(statements, code)
  code.emit(Opcode.HALT)
  return code.finish()


##################
### STATEMENTS ###
##################


def sta_block(statements: Sequence[edc_parser.Statement],
              code: edc_bytecode.Program):
  """Generate: for a sequence of statements, in order."""
  for statement in statements:
    sta_statement(statement, code)


def sta_statement(statement: edc_parser.Statement, code: edc_bytecode.Program):
  """Generate: for Statement AST nodes.

  Args:
    statement: Syntax tree for one statement.
    code: Program to append the statement's code to.
  """
  match statement:
    case edc_parser.LetStatement():
      sta_let(statement, code)
    case edc_parser.PrintStatement():
      sta_print(statement, code)
    case edc_parser.IfStatement():
      sta_if(statement, code)
    case edc_parser.ForStatement():
      sta_for(statement, code)
    case _:
      raise _UnexpectedParseTreeNode(statement)


def sta_let(statement: edc_parser.LetStatement, code: edc_bytecode.Program):
  """Generate: for LetStatement AST nodes."""
  exp_expression(statement.expression, code)
  code.emit(Opcode.STORE_VAR, name=statement.identifier)


def sta_print(statement: edc_parser.PrintStatement, code: edc_bytecode.Program):
  """Generate: for PrintStatement AST nodes."""
  exp_expression(statement.expression, code)
  code.emit(Opcode.PRINT)


def sta_if(statement: edc_parser.IfStatement, code: edc_bytecode.Program):
  """Generate: for IfStatement AST nodes.

  Layout, with the else parts present only if there's an else block:

         <condition>
         JUMP_IF_FALSE else_or_end
         <then block>
         JUMP end
     else_or_end:
         <else block>
     end:
  """
  exp_expression(statement.condition, code)
  skip_then = code.emit_jump(Opcode.JUMP_IF_FALSE)
  sta_block(statement.then_block, code)

  if statement.else_block:
    skip_else = code.emit_jump(Opcode.JUMP)
    code.backpatch(skip_then, len(code))  # Start of the else block.
    sta_block(statement.else_block, code)
    code.backpatch(skip_else, len(code))  # End of the whole statement.
  else:
    code.backpatch(skip_then, len(code))  # End of the whole statement.


def sta_for(statement: edc_parser.ForStatement, code: edc_bytecode.Program):
  """Generate: for ForStatement AST nodes.

  The loop counts up by one, and the end bound is inclusive and re-evaluated
  before every iteration. Layout:

         <start>
         STORE_VAR v
     top:
         LOAD_VAR v
         <end>
         CMP_LTE
         JUMP_IF_FALSE exit
         <body>
         LOAD_VAR v
         LOAD_CONST 1
         ADD
         STORE_VAR v
         JUMP top
     exit:
  """
  variable = statement.variable
  exp_expression(statement.start, code)
  code.emit(Opcode.STORE_VAR, name=variable)

  top = len(code)
  code.emit(Opcode.LOAD_VAR, name=variable)
  exp_expression(statement.end, code)
  code.emit(Opcode.CMP_LTE)
  exit_jump = code.emit_jump(Opcode.JUMP_IF_FALSE)

  sta_block(statement.body, code)

  code.emit(Opcode.LOAD_VAR, name=variable)
  code.emit(Opcode.LOAD_CONST, 1)
  code.emit(Opcode.ADD)
  code.emit(Opcode.STORE_VAR, name=variable)
  code.emit(Opcode.JUMP, top)
  code.backpatch(exit_jump, len(code))


###################
### EXPRESSIONS ###
###################


def exp_expression(expression: edc_parser.Expression,
                   code: edc_bytecode.Program):
  """Generate: for Expression AST nodes.

  Args:
    expression: Syntax tree for an expression.
    code: Program to append the expression's code to. The code will push
        exactly one value.
  """
  match expression:
    case edc_parser.IntegerLiteral(value=value):
      code.emit(Opcode.LOAD_CONST, value)
    case edc_parser.Variable(name=name):
      code.emit(Opcode.LOAD_VAR, name=name)
    case (edc_parser.BinaryOperation(left=left, op=op, right=right) |
          edc_parser.ComparisonExpression(left=left, op=op, right=right) |
          edc_parser.LogicalExpression(left=left, op=op, right=right)):
      exp_expression(left, code)
      exp_expression(right, code)
      code.emit(OPCODES[op])
    case edc_parser.UnaryExpression(op=op, operand=operand):
      exp_expression(operand, code)
      code.emit(OPCODES[op])
    case _:
      raise _UnexpectedParseTreeNode(expression)


class _InternalError(Exception):
  """An exception type for any "this should never happen" situation."""


class _UnexpectedParseTreeNode(_InternalError):
  """Found a syntax tree node we don't know how to handle."""
