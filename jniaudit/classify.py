"""
jniaudit/classify.py
════════════════════

Structural questions the four boundary analyses ask about single IR
entities:

  is_boundary_call     does this call go into the Java runtime?
  points_to_aggregate  does this pointer (eventually) point to a struct?
  jni_slot_index       which JNI function-table slot does this address
                       computation select, if any?

Runtime calls are recognised by the rendered type of their first argument
(``JNIEnv*`` or ``JavaVM*``) rather than by a structured type check, so the
audit does not depend on the JDK's own headers being present in the IR.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from jniaudit.ir import Instruction, Opcode, Type, ValueKind
from jniaudit.runtime_table import (
    BOUNDARY_SIGNATURES,
    MEMORY_SLOT_INDICES,
    NATIVE_INTERFACE_SIGNATURE,
)

logger = logging.getLogger(__name__)


def is_boundary_call(
    call: Instruction,
    signatures: Iterable[str] = BOUNDARY_SIGNATURES,
) -> bool:
    """Is *call* a call through the JNI or invocation interface table?

    The first argument of every such call is the interface pointer
    itself, so its type signature contains one of *signatures*.  A call
    without arguments is never a runtime call.
    """
    first = call.first_arg
    if first is None:
        return False
    type_str = first.require_type().signature
    return any(sig in type_str for sig in signatures)


def points_to_aggregate(t: Type) -> bool:
    """Does *t* point to an aggregate, directly or through more pointers?

    ``%struct.S*`` and ``%struct.S**`` do; ``i8*``, ``[4 x i32]*`` and
    non-pointer types do not.
    """
    current = t
    while current.is_pointer:
        pointee = current.pointee  # type: ignore[attr-defined]
        if getattr(pointee, "is_aggregate", False):
            return True
        current = pointee
    return False


def jni_slot_index(
    inst: Instruction,
    signature: str = NATIVE_INTERFACE_SIGNATURE,
) -> Optional[int]:
    """Return the table slot selected by a JNI address computation.

    Matches ``getelementptr %struct.JNINativeInterface_* %t, i32 0, i32 N``
    and returns ``N``.  Anything else, including address computations on
    the table with fewer than two indices or a non-constant slot index,
    returns ``None``.
    """
    if inst.opcode is not Opcode.ADDRESS or inst.base is None:
        return None
    if signature not in inst.base.require_type().signature:
        return None
    if len(inst.indices) < 2:
        logger.debug("short JNI table address computation ignored: %s", inst)
        return None
    slot = inst.indices[1]
    if slot.kind is not ValueKind.CONSTANT or slot.constant is None:
        return None
    return slot.constant


def is_jni_memory_slot(
    inst: Instruction,
    signature: str = NATIVE_INTERFACE_SIGNATURE,
    slots: Iterable[int] = MEMORY_SLOT_INDICES,
) -> bool:
    index = jni_slot_index(inst, signature)
    return index is not None and index in frozenset(slots)


__all__ = [
    "is_boundary_call",
    "points_to_aggregate",
    "jni_slot_index",
    "is_jni_memory_slot",
]
