# tests/conftest.py
"""
Shared builders and IR dump fixtures for the jniaudit test suite.

The builders construct :mod:`jniaudit.ir` objects directly so that each
test states exactly the call graph it needs; the ``*_SEXP`` constants are
complete IR dumps for the parser, driver and CLI tests.
"""

from typing import Iterable

import pytest

from jniaudit.ir import Function, Instruction, Program, Value

ENV_TYPE = "%struct.JNINativeInterface_**"
VM_TYPE = "%struct.JNIInvokeInterface_**"
TABLE_TYPE = "%struct.JNINativeInterface_*"

READ_ONLY = ("readonly", "nounwind")


# ═══════════════════════════════════════════════════════════════════════
#  Builders
# ═══════════════════════════════════════════════════════════════════════

def define(name: str, *insts: Instruction, attrs: Iterable[str] = READ_ONLY) -> Function:
    """A defined function; read-only unless *attrs* says otherwise."""
    return Function(name, True, list(insts), frozenset(attrs))


def declare(name: str, attrs: Iterable[str] = ()) -> Function:
    return Function.declare(name, attrs)


def call(callee, *args: Value, **kw) -> Instruction:
    return Instruction.call(callee, args, **kw)


def env_arg() -> Value:
    return Value.argument(ENV_TYPE, "%env")


def jni_call(signature: str = ENV_TYPE) -> Instruction:
    """An indirect call through the JNI table (callee unresolved)."""
    return Instruction.call(None, [Value.argument(signature, "%env")])


def jni_call_resolved(target: Function) -> Instruction:
    """A runtime call whose callee happens to be resolvable."""
    return Instruction.call(target, [env_arg()])


def ptr_offset(base_type: str = "i8*", offset: int = 3) -> Instruction:
    return Instruction.address(
        Value.local(base_type, "%p"), [Value.const_int("i64", offset)]
    )


def field_access(base_type: str = "%struct.Point*", field_index: int = 1) -> Instruction:
    return Instruction.address(
        Value.local(base_type, "%s"),
        [Value.const_int("i32", 0), Value.const_int("i32", field_index)],
    )


def jni_slot(index: int, base_type: str = TABLE_TYPE) -> Instruction:
    """``getelementptr %struct.JNINativeInterface_* %fns, i32 0, i32 index``"""
    return Instruction.address(
        Value.local(base_type, "%fns"),
        [Value.const_int("i32", 0), Value.const_int("i32", index)],
    )


def inttoptr() -> Instruction:
    return Instruction.cast("inttoptr", Value.local("i64", "%x"))


def ptrtoint() -> Instruction:
    return Instruction.cast("ptrtoint", Value.local("i8*", "%p"))


def bitcast() -> Instruction:
    return Instruction.cast("bitcast", Value.local("i8*", "%p"))


def load_global(name: str = "@counter", constant: bool = False) -> Instruction:
    return Instruction.generic(
        "load", [Value.global_var("i32*", name, constant=constant)]
    )


def ret() -> Instruction:
    return Instruction.generic("ret")


def program(*functions: Function) -> Program:
    return Program("test", functions)


# ═══════════════════════════════════════════════════════════════════════
#  IR dumps
# ═══════════════════════════════════════════════════════════════════════

MINIMAL_SEXP = '''
(module "minimal"
  (define "Java_Minimal_noop" (attrs readonly nounwind)
    (ret)))
'''

MIXED_SEXP = '''
(module "libmixed"
  (global "@counter" "i32*")
  (global "@table" "[4 x i32]*" constant)
  (declare "malloc" (attrs nounwind))
  (declare "free" (attrs nounwind))
  (define "helper_sum" (attrs readonly nounwind)
    (load (operands (global "@table")))
    (ret))
  (define "Java_Mixed_pure" (attrs readonly nounwind)
    (call (callee "helper_sum") (args (local "i32*" "%buf")))
    (ret))
  (define "Java_Mixed_alloc" (attrs nounwind)
    (call (callee "malloc") (args (const "i64" 16)))
    (ret))
  (define "Java_Mixed_offset" (attrs readonly nounwind)
    (getelementptr (base (arg "i32*" "%xs")) (indices (const "i64" 2)))
    (ret))
  (define "Java_Mixed_cast" (attrs readonly nounwind)
    (inttoptr (operands (arg "i64" "%handle")))
    (ret))
  (define "Java_Mixed_callback" (attrs readonly nounwind)
    (call (args (arg "%struct.JNINativeInterface_**" "%env")))
    (ret))
  (define "Java_Mixed_counter" (attrs readonly nounwind)
    (load (operands (global "i32*" "@counter")))
    (ret))
  (define "not_an_entry" (attrs nounwind)
    (ret)))
'''

# expected "all" rows for MIXED_SEXP, in definition order
MIXED_ROWS = [
    "Java_Mixed_pure 1 0 0 0",
    "Java_Mixed_alloc 0 0 0 1",
    "Java_Mixed_offset 1 1 0 0",
    "Java_Mixed_cast 1 0 1 0",
    "Java_Mixed_callback 0 0 0 0",
    "Java_Mixed_counter 0 0 0 0",
]

MALFORMED_SEXP = '''
(module "libbroken"
  (define "Java_Broken_untyped" (attrs readonly nounwind)
    (getelementptr (base (local)) (indices (const "i64" 1)))
    (ret))
  (define "Java_Broken_fine" (attrs readonly nounwind)
    (ret)))
'''

CYCLE_SEXP = '''
(module "libcycle"
  (define "Java_Cycle_entry" (attrs readonly nounwind)
    (call (callee "ping"))
    (ret))
  (define "ping" (attrs readonly nounwind)
    (call (callee "pong"))
    (ret))
  (define "pong" (attrs readonly nounwind)
    (call (callee "ping"))
    (ret)))
'''


@pytest.fixture
def mixed_dump(tmp_path):
    path = tmp_path / "libmixed.sexp"
    path.write_text(MIXED_SEXP, encoding="utf-8")
    return path


@pytest.fixture
def malformed_dump(tmp_path):
    path = tmp_path / "libbroken.sexp"
    path.write_text(MALFORMED_SEXP, encoding="utf-8")
    return path
