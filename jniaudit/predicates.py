"""
jniaudit/predicates.py
══════════════════════

The four boundary analyses, each expressed as a
:class:`~jniaudit.traversal.BoundaryPredicate` for the shared traversal.

  ┌──────────────────────┬──────────────────────────────┬──────────────────┐
  │ predicate            │ evidence                     │ runtime call     │
  ├──────────────────────┼──────────────────────────────┼──────────────────┤
  │ PurityPredicate      │ may write memory, touches a  │ impure           │
  │   (positive=impure)  │ mutable global, may throw or │                  │
  │                      │ not return                   │                  │
  │ PointerArithmetic..  │ non-zero offset from a       │ no evidence      │
  │                      │ pointer to non-struct data   │                  │
  │ TypeCastPredicate    │ inttoptr / ptrtoint          │ no evidence      │
  │ DynamicMemoryPred..  │ libc / C++ allocator call,   │ no evidence      │
  │                      │ JNI memory-management slot   │                  │
  └──────────────────────┴──────────────────────────────┴──────────────────┘

Every predicate answers "was evidence found?".  For purity that is the
*negation* of the human-facing label, hence :func:`is_impure` and the
derived :func:`is_pure`.
"""

from __future__ import annotations

from typing import ClassVar, Dict, Optional, Set, Type

from jniaudit.classify import is_jni_memory_slot, points_to_aggregate
from jniaudit.config import AnalysisKind, AuditConfig
from jniaudit.errors import MalformedIRError
from jniaudit.ir import CastKind, Function, Instruction, Opcode
from jniaudit.traversal import TraversalEngine, TraversalResult


class BasePredicate:
    """Shared plumbing: metadata, config, and the verdict sentences."""

    name: ClassVar[str] = "base"
    kind: ClassVar[AnalysisKind]
    description: ClassVar[str] = ""
    positive_text: ClassVar[str] = ""
    negative_text: ClassVar[str] = ""

    def __init__(self, config: Optional[AuditConfig] = None) -> None:
        self.config = config or AuditConfig()

    def function_test(self, function: Function) -> Optional[str]:
        return None

    def instruction_test(
        self, function: Function, inst: Instruction
    ) -> Optional[str]:
        return None

    def boundary_policy(
        self, function: Function, call: Instruction
    ) -> Optional[str]:
        return None

    def sentence(self, function_name: str, positive: bool) -> str:
        text = self.positive_text if positive else self.negative_text
        return f"{function_name} {text}"

    def run(
        self,
        function: Function,
        history: Optional[Set[str]] = None,
    ) -> TraversalResult:
        engine = TraversalEngine(
            self,
            cycle_policy=self.config.cycle_policy,
            boundary_signatures=self.config.boundary_signatures,
        )
        return engine.analyze(function, history)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} '{self.name}'>"


class PurityPredicate(BasePredicate):
    """Positive means *impure*."""

    name = "purity"
    kind = AnalysisKind.PURITY
    description = "Checks functional purity of boundary-entry functions"
    positive_text = "is impure"
    negative_text = "is pure"

    def function_test(self, function: Function) -> Optional[str]:
        if not function.only_reads_memory:
            return "may write memory"
        return None

    def instruction_test(
        self, function: Function, inst: Instruction
    ) -> Optional[str]:
        for op in inst.operands:
            if op.is_mutable_global:
                return f"uses mutable global {op.name}"
        if inst.may_throw:
            return "may throw"
        if not inst.may_return:
            return "may not return"
        return None

    def boundary_policy(
        self, function: Function, call: Instruction
    ) -> Optional[str]:
        # Anything can happen on the Java side.
        return "calls into the Java runtime"


class PointerArithmeticPredicate(BasePredicate):
    """Address computations with a real offset on non-struct pointers.

    ``s->field`` and ``&p[0]`` are field access; ``p + 3`` and ``buf[i]``
    on scalar or array-of-scalar storage are arithmetic.
    """

    name = "pointer-arithmetic"
    kind = AnalysisKind.POINTER_ARITHMETIC
    description = "Checks for pointer arithmetic in boundary-entry functions"
    positive_text = "has pointer arithmetic"
    negative_text = "has no pointer arithmetic"

    def instruction_test(
        self, function: Function, inst: Instruction
    ) -> Optional[str]:
        if inst.opcode is not Opcode.ADDRESS:
            return None
        if inst.base is None:
            raise MalformedIRError("address computation without a base pointer")
        if inst.has_all_zero_indices:
            return None
        base_type = inst.base.require_type()
        if points_to_aggregate(base_type):
            return None
        return f"pointer arithmetic on {base_type}"


class TypeCastPredicate(BasePredicate):
    """Casts that turn integers into pointers or pointers into integers."""

    name = "type-casts"
    kind = AnalysisKind.TYPE_CASTS
    description = "Checks for integer/pointer casts in boundary-entry functions"
    positive_text = "has typecasts"
    negative_text = "has no typecasts"

    def instruction_test(
        self, function: Function, inst: Instruction
    ) -> Optional[str]:
        if inst.opcode is not Opcode.CAST:
            return None
        if inst.cast_kind in (CastKind.INT_TO_PTR, CastKind.PTR_TO_INT):
            return f"{inst.cast_kind.value} cast"
        return None


class DynamicMemoryPredicate(BasePredicate):
    """Allocator calls and JNI memory-management table lookups.

    Calls through the runtime itself are assumed to manage memory
    correctly; only selecting one of the memory-managing table slots counts.
    """

    name = "dynamic-memory"
    kind = AnalysisKind.DYNAMIC_MEMORY
    description = "Checks for dynamic memory management in boundary-entry functions"
    positive_text = "has dynamic memory allocation"
    negative_text = "has no dynamic memory allocation"

    def instruction_test(
        self, function: Function, inst: Instruction
    ) -> Optional[str]:
        cfg = self.config
        if inst.is_call and inst.callee is not None:
            if inst.callee.name in cfg.allocator_symbols:
                return f"calls {inst.callee.name}"
        if inst.opcode is Opcode.ADDRESS and is_jni_memory_slot(
            inst, cfg.native_interface_signature, cfg.memory_slots
        ):
            return f"selects JNI slot {inst.indices[1].constant}"
        return None


PREDICATES: Dict[AnalysisKind, Type[BasePredicate]] = {
    AnalysisKind.PURITY: PurityPredicate,
    AnalysisKind.POINTER_ARITHMETIC: PointerArithmeticPredicate,
    AnalysisKind.TYPE_CASTS: TypeCastPredicate,
    AnalysisKind.DYNAMIC_MEMORY: DynamicMemoryPredicate,
}


def make_predicate(
    kind: AnalysisKind, config: Optional[AuditConfig] = None
) -> BasePredicate:
    return PREDICATES[kind](config)


# ── One-shot helpers: a fresh traversal (and history) per call ──────────

def is_impure(function: Function, config: Optional[AuditConfig] = None) -> bool:
    return PurityPredicate(config).run(function).positive


def is_pure(function: Function, config: Optional[AuditConfig] = None) -> bool:
    return not is_impure(function, config)


def has_pointer_arithmetic(
    function: Function, config: Optional[AuditConfig] = None
) -> bool:
    return PointerArithmeticPredicate(config).run(function).positive


def has_type_casts(
    function: Function, config: Optional[AuditConfig] = None
) -> bool:
    return TypeCastPredicate(config).run(function).positive


def has_dynamic_memory(
    function: Function, config: Optional[AuditConfig] = None
) -> bool:
    return DynamicMemoryPredicate(config).run(function).positive


__all__ = [
    "BasePredicate",
    "PurityPredicate",
    "PointerArithmeticPredicate",
    "TypeCastPredicate",
    "DynamicMemoryPredicate",
    "PREDICATES",
    "make_predicate",
    "is_impure",
    "is_pure",
    "has_pointer_arithmetic",
    "has_type_casts",
    "has_dynamic_memory",
]
