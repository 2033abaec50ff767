"""jniaudit/irparser.py – S-expression IR dump → :class:`~jniaudit.ir.Program`.

The front end that compiles native code is external; it hands the audit a
textual dump of the module in a small S-expression syntax, read here with
``sexpdata``.

Design principles
-----------------
* **Two passes** – all ``declare``/``define`` forms are registered first so
  that calls may refer to functions defined later in the file.
* **Head-symbol dispatch** – every value form ``(tag ...)`` is dispatched
  on ``tag`` to a dedicated ``_parse_<tag>`` helper.
* **Strict syntax, lenient types** – a malformed form is an
  :class:`~jniaudit.errors.IRParseError`; a value that merely lacks its
  type is accepted, and the audit reports it per function.

Surface syntax
--------------
::

    (module "libnative"
      (global "@counter" "i32*")                  ; optional
      (declare "malloc" (attrs nounwind))
      (define "Java_Foo_bar" (attrs readonly nounwind)
        (load (operands (global "i32*" "@counter")))
        (call (callee "malloc") (args (const "i64" 16)) (may-throw))
        (call (args (arg "%struct.JNINativeInterface_**" "%env")))
        (getelementptr (base (local "i8*" "%p")) (indices (const "i64" 3)))
        (inttoptr (operands (local "i64" "%x")))
        (ret)))

    ;; values
    (local T [name])   (arg T name)   (global T name [constant])
    (const T int)      (function T name)

    ;; instruction clauses
    (operands v ...)   (args v ...)   (callee "name")
    (base v)           (indices v ...)
    (may-throw)        (no-return)

A bare value form directly inside an instruction is an operand.  A call
without ``callee``, or whose callee names nothing in the module, is
unresolved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import sexpdata
from sexpdata import Symbol

from jniaudit.errors import IRParseError, MalformedIRError
from jniaudit.ir import (
    Function,
    Instruction,
    Opcode,
    Program,
    Type,
    Value,
    opcode_for,
    parse_type,
)

logger = logging.getLogger(__name__)

Sexp = Any  # Union[list, Symbol, str, int, float]


# ═══════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════

def _as_str(s: Sexp, what: str = "name") -> str:
    """Coerce *s* to a Python ``str`` – accepts Symbol or string literal."""
    if isinstance(s, Symbol):
        return s.value()
    if isinstance(s, str):
        return s
    raise IRParseError(f"expected {what}, got {type(s).__name__}: {s!r}")


def _head(s: Sexp) -> Optional[str]:
    """Head symbol name of ``(tag ...)``, or ``None`` for anything else."""
    if isinstance(s, list) and s and isinstance(s[0], Symbol):
        return s[0].value()
    return None


def _expect_form(s: Sexp, tag: str, min_len: int = 1) -> list:
    if _head(s) != tag:
        raise IRParseError(f"expected ({tag} ...), got {s!r}")
    if len(s) < min_len:
        raise IRParseError(
            f"({tag} ...) needs at least {min_len - 1} argument(s): {s!r}"
        )
    return s


def _as_type(s: Sexp) -> Type:
    try:
        return parse_type(_as_str(s, "type signature"))
    except MalformedIRError as exc:
        raise IRParseError(exc.message) from exc


# ═══════════════════════════════════════════════════════════════════════
#  Values
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class _Scope:
    """Module-level names visible while parsing bodies."""
    functions: Dict[str, Function] = field(default_factory=dict)
    globals: Dict[str, Tuple[Optional[Type], bool]] = field(default_factory=dict)


_VALUE_DISPATCH: Dict[str, Callable[[list, _Scope], Value]] = {}


def _register(tag: str):
    """Decorator: register a value parser under *tag*."""
    def deco(fn):
        _VALUE_DISPATCH[tag] = fn
        return fn
    return deco


def _optional_type(s: list, index: int) -> Optional[Type]:
    return _as_type(s[index]) if len(s) > index else None


def parse_value(s: Sexp, scope: _Scope) -> Value:
    tag = _head(s)
    parser = _VALUE_DISPATCH.get(tag) if tag else None
    if parser is None:
        raise IRParseError(f"unknown value form: {s!r}")
    return parser(s, scope)


@_register("local")
def _parse_local(s: list, scope: _Scope) -> Value:
    name = _as_str(s[2]) if len(s) > 2 else None
    return Value.local(_optional_type(s, 1), name)


@_register("arg")
def _parse_arg(s: list, scope: _Scope) -> Value:
    name = _as_str(s[2]) if len(s) > 2 else None
    return Value.argument(_optional_type(s, 1), name)


@_register("global")
def _parse_global(s: list, scope: _Scope) -> Value:
    # (global T name [constant]) or (global name) for a declared global
    if len(s) == 2:
        name = _as_str(s[1])
        if name not in scope.globals:
            raise IRParseError(f"untyped reference to undeclared global {name}")
        declared_type, constant = scope.globals[name]
        return Value.global_var(declared_type, name, constant=constant)
    _expect_form(s, "global", min_len=3)
    name = _as_str(s[2])
    constant = len(s) > 3 and _as_str(s[3]) == "constant"
    if not constant and name in scope.globals:
        constant = scope.globals[name][1]
    return Value.global_var(_as_type(s[1]), name, constant=constant)


@_register("const")
def _parse_const(s: list, scope: _Scope) -> Value:
    _expect_form(s, "const", min_len=3)
    raw = s[2]
    if not isinstance(raw, int) or isinstance(raw, bool):
        raise IRParseError(f"constant must be an integer: {s!r}")
    return Value.const_int(_as_type(s[1]), raw)


@_register("function")
def _parse_function_ref(s: list, scope: _Scope) -> Value:
    _expect_form(s, "function", min_len=3)
    return Value.function_ref(_as_type(s[1]), _as_str(s[2]))


# ═══════════════════════════════════════════════════════════════════════
#  Instructions
# ═══════════════════════════════════════════════════════════════════════

_CLAUSES = frozenset({
    "operands", "args", "callee", "base", "indices", "may-throw", "no-return",
})


def parse_instruction(s: Sexp, scope: _Scope) -> Instruction:
    mnemonic = _head(s)
    if mnemonic is None:
        raise IRParseError(f"expected an instruction form, got {s!r}")

    operands: List[Value] = []
    callee_name: Optional[str] = None
    base: Optional[Value] = None
    indices: Optional[List[Value]] = None
    may_throw = False
    may_return = True

    for item in s[1:]:
        tag = _head(item)
        if tag in _VALUE_DISPATCH:
            operands.append(parse_value(item, scope))
        elif tag in ("operands", "args"):
            operands.extend(parse_value(v, scope) for v in item[1:])
        elif tag == "callee":
            _expect_form(item, "callee", min_len=2)
            callee_name = _as_str(item[1])
        elif tag == "base":
            _expect_form(item, "base", min_len=2)
            base = parse_value(item[1], scope)
        elif tag == "indices":
            indices = [parse_value(v, scope) for v in item[1:]]
        elif tag == "may-throw":
            may_throw = True
        elif tag == "no-return":
            may_return = False
        else:
            raise IRParseError(
                f"unknown clause in ({mnemonic} ...): {item!r}; "
                f"expected a value or one of {sorted(_CLAUSES)}"
            )

    opcode = opcode_for(mnemonic)

    if opcode is Opcode.CALL:
        callee = None
        if callee_name is not None:
            callee = scope.functions.get(callee_name)
            if callee is None:
                logger.debug("call to unknown %s left unresolved", callee_name)
        return Instruction.call(
            callee, operands,
            may_throw=may_throw, may_return=may_return, mnemonic=mnemonic,
        )

    if callee_name is not None:
        raise IRParseError(f"(callee ...) is only valid on calls: {s!r}")

    if opcode is Opcode.ADDRESS:
        if base is None:
            if not operands:
                raise IRParseError(f"address computation without base: {s!r}")
            base, operands = operands[0], operands[1:]
        if indices is None:
            indices, operands = operands, []
        if operands:
            raise IRParseError(
                f"operands mixed with (base ...)/(indices ...): {s!r}")
        inst = Instruction.address(base, indices)
    elif opcode is Opcode.CAST:
        if len(operands) != 1:
            raise IRParseError(f"{mnemonic} takes exactly one operand: {s!r}")
        inst = Instruction.cast(mnemonic, operands[0])
    else:
        if base is not None or indices is not None:
            raise IRParseError(
                f"(base ...)/(indices ...) only valid on getelementptr: {s!r}")
        return Instruction.generic(
            mnemonic, operands, may_throw=may_throw, may_return=may_return)

    inst.may_throw = may_throw
    inst.may_return = may_return
    return inst


# ═══════════════════════════════════════════════════════════════════════
#  Module
# ═══════════════════════════════════════════════════════════════════════

def _split_header(form: list) -> Tuple[str, frozenset, list]:
    """``(define|declare NAME (attrs ...)? body...)`` → name, attrs, body."""
    name = _as_str(form[1], "function name")
    rest = list(form[2:])
    attrs: frozenset = frozenset()
    if rest and _head(rest[0]) == "attrs":
        attrs = frozenset(_as_str(a, "attribute") for a in rest[0][1:])
        rest = rest[1:]
    return name, attrs, rest


def parse_module(text: str, source: str = "<string>") -> Program:
    """Parse a complete IR dump."""
    try:
        raw = sexpdata.loads(text, nil=None, true=None, false=None)
    except Exception as e:
        raise IRParseError(f"malformed S-expression: {e}", source) from e

    try:
        form = _expect_form(raw, "module", min_len=1)
        items = list(form[1:])
        name = source
        if items and not isinstance(items[0], list):
            name = _as_str(items.pop(0), "module name")
    except IRParseError as exc:
        exc.context = exc.context or source
        raise

    program = Program(name)
    scope = _Scope()
    bodies: List[Tuple[Function, list]] = []

    # Pass 1: register every function and global.
    for item in items:
        tag = _head(item)
        try:
            if tag in ("define", "declare"):
                _expect_form(item, tag, min_len=2)
                fname, attrs, body = _split_header(item)
                if tag == "declare" and body:
                    raise IRParseError(f"declaration of {fname} has a body")
                fn = Function(fname, is_definition=(tag == "define"),
                              attributes=attrs)
                try:
                    program.add(fn)
                except ValueError as exc:
                    raise IRParseError(str(exc)) from exc
                scope.functions[fname] = fn
                if tag == "define":
                    bodies.append((fn, body))
            elif tag == "global":
                _expect_form(item, "global", min_len=3)
                gname = _as_str(item[1])
                constant = len(item) > 3 and _as_str(item[3]) == "constant"
                scope.globals[gname] = (_as_type(item[2]), constant)
            else:
                raise IRParseError(f"unknown module item: {item!r}")
        except IRParseError as exc:
            exc.context = exc.context or source
            raise

    # Pass 2: bodies.
    for fn, body in bodies:
        try:
            fn.instructions = [parse_instruction(i, scope) for i in body]
        except IRParseError as exc:
            exc.context = exc.context or f"{source}:{fn.name}"
            raise

    logger.info("loaded %s: %d functions (%d defined)", program.name,
                len(program), len(bodies))
    return program


def load_program(path: Union[str, Path]) -> Program:
    """Read and parse an IR dump file."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise IRParseError(f"cannot read IR dump: {exc}", str(p)) from exc
    return parse_module(text, source=str(p))


__all__ = [
    "parse_module",
    "parse_value",
    "parse_instruction",
    "load_program",
]
