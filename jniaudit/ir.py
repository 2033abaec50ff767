"""
jniaudit/ir.py
══════════════

The intermediate representation the audit reads.

The model is deliberately small: it carries exactly what the four
boundary analyses consult and nothing more.

  Program      functions keyed by unique name, in definition order
  Function     name, definition-vs-declaration flag, instructions, attributes
  Instruction  opcode tag + operands + opcode-specific fields
  Value        static type, value kind, optional name / integer constant
  Type         ``PointerType(pointee)`` or ``LeafType(signature)``

Types are rendered in LLVM's display form (``%struct.JNIEnv_*``,
``i8*``, ``[5 x i8]*``) and :func:`parse_type` reads that form back, which
is how the IR loader and the tests build them.

Nothing in the analysis mutates a :class:`Program`.  Function bodies are
filled once by whoever builds the program (the IR loader, or a test) and
are treated as frozen afterwards.
"""

from __future__ import annotations

import re
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import (
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
    Union,
)

from jniaudit.errors import MalformedIRError


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — TYPES
# ═════════════════════════════════════════════════════════════════════════

class Type:
    """Base class of the two type shapes the audit distinguishes."""

    @property
    def signature(self) -> str:
        raise NotImplementedError

    @property
    def is_pointer(self) -> bool:
        return False

    @property
    def depth(self) -> int:
        """Number of indirection levels above the leaf."""
        return 0

    def __str__(self) -> str:
        return self.signature


@dataclass(frozen=True)
class LeafType(Type):
    """A non-pointer type, identified by its display signature.

    ``is_aggregate`` is true for user-defined structured types (named or
    literal structs, classes, unions); scalars, vectors and arrays are not
    aggregates.
    """
    name: str
    is_aggregate: bool = False

    @property
    def signature(self) -> str:
        return self.name

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class PointerType(Type):
    """``pointee*``."""
    pointee: Type

    @property
    def signature(self) -> str:
        return self.pointee.signature + "*"

    @property
    def is_pointer(self) -> bool:
        return True

    @property
    def depth(self) -> int:
        return self.pointee.depth + 1

    def __str__(self) -> str:
        return self.signature


_AGGREGATE_PREFIXES = (
    "%struct.",
    "%class.",
    "%union.",
    '%"struct.',
    '%"class.',
    '%"union.',
)


def is_aggregate_signature(leaf: str) -> bool:
    """Does the leaf signature *leaf* denote a struct-like type?"""
    leaf = leaf.strip()
    if leaf.startswith(_AGGREGATE_PREFIXES):
        return True
    # Literal (anonymous) structs: { i32, i8* } and packed <{ ... }>
    return leaf.startswith("{") or leaf.startswith("<{")


_TRAILING_STARS = re.compile(r"(\*+)\s*$")


def parse_type(signature: str) -> Type:
    """Build a :class:`Type` from its LLVM display form.

    >>> parse_type("%struct.JNINativeInterface_**").depth
    2
    >>> parse_type("[5 x i8]*").pointee.is_aggregate
    False
    """
    text = signature.strip()
    if not text:
        raise MalformedIRError("empty type signature")
    depth = 0
    match = _TRAILING_STARS.search(text)
    if match is not None:
        depth = len(match.group(1))
        text = text[: match.start()].rstrip()
    if not text:
        raise MalformedIRError(f"type signature has no leaf: {signature!r}")
    result: Type = LeafType(text, is_aggregate_signature(text))
    for _ in range(depth):
        result = PointerType(result)
    return result


def pointer_to(pointee: Union[Type, str], depth: int = 1) -> Type:
    """Wrap *pointee* in *depth* levels of indirection."""
    result = parse_type(pointee) if isinstance(pointee, str) else pointee
    for _ in range(depth):
        result = PointerType(result)
    return result


def _coerce_type(t: Union[Type, str, None]) -> Optional[Type]:
    if t is None or isinstance(t, Type):
        return t
    return parse_type(t)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — VALUES
# ═════════════════════════════════════════════════════════════════════════

class ValueKind(Enum):
    LOCAL = "local"            # instruction result / SSA temporary
    ARGUMENT = "arg"
    CONSTANT = "const"
    GLOBAL = "global"          # global or static storage
    FUNCTION = "function"      # address of a function


@dataclass(frozen=True)
class Value:
    """An instruction operand.

    ``type`` is ``None`` only in malformed dumps; use :meth:`require_type`
    wherever the analysis cannot proceed without it.
    """
    kind: ValueKind
    type: Optional[Type]
    name: Optional[str] = None
    constant: Optional[int] = None
    is_mutable: bool = True

    # ── Factory methods ──────────────────────────────────────────────

    @classmethod
    def local(cls, t: Union[Type, str, None], name: Optional[str] = None) -> Value:
        return cls(kind=ValueKind.LOCAL, type=_coerce_type(t), name=name)

    @classmethod
    def argument(cls, t: Union[Type, str, None], name: Optional[str] = None) -> Value:
        return cls(kind=ValueKind.ARGUMENT, type=_coerce_type(t), name=name)

    @classmethod
    def global_var(
        cls,
        t: Union[Type, str, None],
        name: str,
        constant: bool = False,
    ) -> Value:
        return cls(
            kind=ValueKind.GLOBAL,
            type=_coerce_type(t),
            name=name,
            is_mutable=not constant,
        )

    @classmethod
    def const_int(cls, t: Union[Type, str, None], value: int) -> Value:
        return cls(
            kind=ValueKind.CONSTANT,
            type=_coerce_type(t),
            constant=value,
            is_mutable=False,
        )

    @classmethod
    def function_ref(cls, t: Union[Type, str, None], name: str) -> Value:
        return cls(
            kind=ValueKind.FUNCTION,
            type=_coerce_type(t),
            name=name,
            is_mutable=False,
        )

    # ── Queries ──────────────────────────────────────────────────────

    @property
    def is_mutable_global(self) -> bool:
        return self.kind is ValueKind.GLOBAL and self.is_mutable

    @property
    def is_zero(self) -> bool:
        return self.kind is ValueKind.CONSTANT and self.constant == 0

    def require_type(self) -> Type:
        if self.type is None:
            raise MalformedIRError(f"value {self} has no type information")
        return self.type

    def __str__(self) -> str:
        t = self.type.signature if self.type is not None else "<untyped>"
        if self.kind is ValueKind.CONSTANT:
            return f"{t} {self.constant}"
        if self.name:
            return f"{t} {self.name}"
        return t


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — INSTRUCTIONS
# ═════════════════════════════════════════════════════════════════════════

class Opcode(Enum):
    GENERIC = auto()
    CALL = auto()
    ADDRESS = auto()       # getelementptr
    CAST = auto()
    MEMORY = auto()


class CastKind(Enum):
    INT_TO_PTR = "inttoptr"
    PTR_TO_INT = "ptrtoint"
    OTHER = "other"


CALL_MNEMONICS: FrozenSet[str] = frozenset({"call", "invoke", "callbr"})
ADDRESS_MNEMONICS: FrozenSet[str] = frozenset({"getelementptr"})
CAST_MNEMONICS: FrozenSet[str] = frozenset({
    "inttoptr", "ptrtoint", "bitcast", "addrspacecast",
    "trunc", "zext", "sext", "fptrunc", "fpext",
    "fptoui", "fptosi", "uitofp", "sitofp",
})
MEMORY_MNEMONICS: FrozenSet[str] = frozenset({
    "load", "store", "alloca", "fence", "atomicrmw", "cmpxchg",
})


def opcode_for(mnemonic: str) -> Opcode:
    """Classify an LLVM instruction mnemonic."""
    if mnemonic in CALL_MNEMONICS:
        return Opcode.CALL
    if mnemonic in ADDRESS_MNEMONICS:
        return Opcode.ADDRESS
    if mnemonic in CAST_MNEMONICS:
        return Opcode.CAST
    if mnemonic in MEMORY_MNEMONICS:
        return Opcode.MEMORY
    return Opcode.GENERIC


def cast_kind_for(mnemonic: str) -> CastKind:
    if mnemonic == "inttoptr":
        return CastKind.INT_TO_PTR
    if mnemonic == "ptrtoint":
        return CastKind.PTR_TO_INT
    return CastKind.OTHER


@dataclass(eq=False)
class Instruction:
    """A single IR instruction.

    Opcode-specific fields:
      - ADDRESS: ``base`` and ``indices`` (also present in ``operands``)
      - CAST:    ``cast_kind``
      - CALL:    ``callee`` (``None`` when unresolved); arguments are the
                 ``operands``
    """
    opcode: Opcode
    mnemonic: str
    operands: Tuple[Value, ...] = ()
    may_throw: bool = False
    may_return: bool = True
    base: Optional[Value] = None
    indices: Tuple[Value, ...] = ()
    cast_kind: Optional[CastKind] = None
    callee: Optional["Function"] = field(default=None, repr=False)

    # ── Factory methods ──────────────────────────────────────────────

    @classmethod
    def call(
        cls,
        callee: Optional["Function"],
        args: Iterable[Value] = (),
        may_throw: bool = False,
        may_return: bool = True,
        mnemonic: str = "call",
    ) -> Instruction:
        return cls(
            opcode=Opcode.CALL,
            mnemonic=mnemonic,
            operands=tuple(args),
            may_throw=may_throw,
            may_return=may_return,
            callee=callee,
        )

    @classmethod
    def address(cls, base: Value, indices: Iterable[Value] = ()) -> Instruction:
        idx = tuple(indices)
        return cls(
            opcode=Opcode.ADDRESS,
            mnemonic="getelementptr",
            operands=(base,) + idx,
            base=base,
            indices=idx,
        )

    @classmethod
    def cast(cls, mnemonic: str, operand: Value) -> Instruction:
        return cls(
            opcode=Opcode.CAST,
            mnemonic=mnemonic,
            operands=(operand,),
            cast_kind=cast_kind_for(mnemonic),
        )

    @classmethod
    def generic(
        cls,
        mnemonic: str,
        operands: Iterable[Value] = (),
        may_throw: bool = False,
        may_return: bool = True,
    ) -> Instruction:
        """Any instruction other than calls, address computations and casts.

        Memory mnemonics (``load``, ``store``, ...) get :attr:`Opcode.MEMORY`.
        """
        opcode = opcode_for(mnemonic)
        if opcode not in (Opcode.GENERIC, Opcode.MEMORY):
            raise ValueError(
                f"{mnemonic!r} needs a dedicated constructor, not generic()"
            )
        return cls(
            opcode=opcode,
            mnemonic=mnemonic,
            operands=tuple(operands),
            may_throw=may_throw,
            may_return=may_return,
        )

    # ── Queries ──────────────────────────────────────────────────────

    @property
    def is_call(self) -> bool:
        return self.opcode is Opcode.CALL

    @property
    def first_arg(self) -> Optional[Value]:
        return self.operands[0] if self.operands else None

    @property
    def has_all_zero_indices(self) -> bool:
        return all(v.is_zero for v in self.indices)

    @property
    def callee_name(self) -> Optional[str]:
        return self.callee.name if self.callee is not None else None

    def __str__(self) -> str:
        parts = [self.mnemonic]
        if self.opcode is Opcode.CALL:
            parts.append(f"@{self.callee.name}" if self.callee else "<unresolved>")
        parts.extend(str(op) for op in self.operands)
        return " ".join(parts)


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — FUNCTIONS AND PROGRAMS
# ═════════════════════════════════════════════════════════════════════════

# LLVM attributes meaning "this function does not write memory".
READ_ONLY_ATTRIBUTES: FrozenSet[str] = frozenset({
    "readonly",
    "readnone",
    "memory(read)",
    "memory(none)",
})


@dataclass(eq=False)
class Function:
    """A function of the analysed program; identity is its ``name``."""
    name: str
    is_definition: bool = True
    instructions: List[Instruction] = field(default_factory=list, repr=False)
    attributes: FrozenSet[str] = frozenset()

    @classmethod
    def declare(cls, name: str, attributes: Iterable[str] = ()) -> Function:
        """A declaration without a body (external or eliminated function)."""
        return cls(name=name, is_definition=False,
                   attributes=frozenset(attributes))

    @property
    def only_reads_memory(self) -> bool:
        return bool(self.attributes & READ_ONLY_ATTRIBUTES)

    def calls(self) -> Iterator[Instruction]:
        return (i for i in self.instructions if i.is_call)

    def __repr__(self) -> str:
        kind = "define" if self.is_definition else "declare"
        return f"Function({self.name!r}, {kind}, {len(self.instructions)} insts)"


class Program:
    """All functions available to the analysis, keyed by unique name."""

    def __init__(self, name: str = "", functions: Iterable[Function] = ()) -> None:
        self.name = name
        self._functions: Dict[str, Function] = OrderedDict()
        for fn in functions:
            self.add(fn)

    def add(self, function: Function) -> Function:
        if function.name in self._functions:
            raise ValueError(f"duplicate function name: {function.name!r}")
        self._functions[function.name] = function
        return function

    def get(self, name: str) -> Optional[Function]:
        return self._functions.get(name)

    def functions(self) -> List[Function]:
        return list(self._functions.values())

    def entry_functions(self, prefix: str) -> List[Function]:
        """Defined functions whose names start with *prefix*, in order."""
        return [
            fn for fn in self._functions.values()
            if fn.is_definition and fn.name.startswith(prefix)
        ]

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def __iter__(self) -> Iterator[Function]:
        return iter(self._functions.values())

    def __len__(self) -> int:
        return len(self._functions)

    def __repr__(self) -> str:
        return f"Program({self.name!r}, {len(self)} functions)"


__all__ = [
    "Type",
    "LeafType",
    "PointerType",
    "parse_type",
    "pointer_to",
    "is_aggregate_signature",
    "ValueKind",
    "Value",
    "Opcode",
    "CastKind",
    "opcode_for",
    "cast_kind_for",
    "Instruction",
    "READ_ONLY_ATTRIBUTES",
    "Function",
    "Program",
]
