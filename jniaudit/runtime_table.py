"""
jniaudit/runtime_table.py
═════════════════════════

Fixed facts about the Java runtime's native interface.

The JNI function table (``struct JNINativeInterface_``) is a vtable whose
slot positions are fixed by the JNI specification; native code reaches a
runtime function by computing the address of its slot and loading the
function pointer from it.  The slots below are the ones that allocate or
release memory (or references) on behalf of native code.

The indices are defined by the runtime's ABI, not by anything present in
the IR, which is why the address computations that select them are
recognised by the rendered type of their base pointer.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Dict, FrozenSet, List, Optional, Tuple


# Rendered type signatures of the two interface tables.
NATIVE_INTERFACE_SIGNATURE = "%struct.JNINativeInterface_*"
INVOKE_INTERFACE_SIGNATURE = "%struct.JNIInvokeInterface_*"

BOUNDARY_SIGNATURES: Tuple[str, ...] = (
    NATIVE_INTERFACE_SIGNATURE,
    INVOKE_INTERFACE_SIGNATURE,
)

# Name prefix of native methods that the JVM binds and calls directly.
ENTRY_PREFIX = "Java_"

# C's malloc/calloc/realloc/free, then the Itanium-mangled C++
# operator new, new[], delete and delete[].
C_ALLOCATOR_SYMBOLS: Tuple[str, ...] = ("malloc", "calloc", "realloc", "free")
CXX_ALLOCATOR_SYMBOLS: Tuple[str, ...] = ("_Znwm", "_Znam", "_ZdlPv", "_ZdaPv")
ALLOCATOR_SYMBOLS: FrozenSet[str] = frozenset(
    C_ALLOCATOR_SYMBOLS + CXX_ALLOCATOR_SYMBOLS
)


class SlotRole(Enum):
    ACQUIRE = "acquire"
    RELEASE = "release"


class SlotFamily(Enum):
    LOCAL_FRAME = "local frame"
    GLOBAL_REF = "global reference"
    LOCAL_REF = "local reference"
    WEAK_GLOBAL_REF = "weak global reference"
    OBJECT = "object allocation"
    STRING_CHARS = "string characters"
    STRING_UTF_CHARS = "string UTF characters"
    STRING_CRITICAL = "string critical section"
    ARRAY_CRITICAL = "primitive array critical section"
    ARRAY_ELEMENTS = "array elements"


class JniSlot(IntEnum):
    """Memory-managing entries of the JNI function table, by slot index."""

    PushLocalFrame = 19
    PopLocalFrame = 20
    NewGlobalRef = 21
    DeleteGlobalRef = 22
    DeleteLocalRef = 23
    NewLocalRef = 25
    AllocObject = 27

    GetStringChars = 165
    ReleaseStringChars = 166
    GetStringUTFChars = 169
    ReleaseStringUTFChars = 170

    GetBooleanArrayElements = 183
    GetByteArrayElements = 184
    GetCharArrayElements = 185
    GetShortArrayElements = 186
    GetIntArrayElements = 187
    GetLongArrayElements = 188
    GetFloatArrayElements = 189
    GetDoubleArrayElements = 190
    ReleaseBooleanArrayElements = 191
    ReleaseByteArrayElements = 192
    ReleaseCharArrayElements = 193
    ReleaseShortArrayElements = 194
    ReleaseIntArrayElements = 195
    ReleaseLongArrayElements = 196
    ReleaseFloatArrayElements = 197
    ReleaseDoubleArrayElements = 198

    GetPrimitiveArrayCritical = 222
    ReleasePrimitiveArrayCritical = 223
    GetStringCritical = 224
    ReleaseStringCritical = 225
    NewWeakGlobalRef = 226
    DeleteWeakGlobalRef = 227

    @property
    def role(self) -> SlotRole:
        if self.name.startswith(("Release", "Delete", "Pop")):
            return SlotRole.RELEASE
        return SlotRole.ACQUIRE

    @property
    def family(self) -> SlotFamily:
        return _FAMILIES[self]

    @property
    def counterpart(self) -> Optional["JniSlot"]:
        """The slot that undoes this one (``None`` for AllocObject)."""
        return _COUNTERPARTS.get(self)


# (acquire, release, family)
_PAIRS: Tuple[Tuple[JniSlot, JniSlot, SlotFamily], ...] = (
    (JniSlot.PushLocalFrame, JniSlot.PopLocalFrame, SlotFamily.LOCAL_FRAME),
    (JniSlot.NewGlobalRef, JniSlot.DeleteGlobalRef, SlotFamily.GLOBAL_REF),
    (JniSlot.NewLocalRef, JniSlot.DeleteLocalRef, SlotFamily.LOCAL_REF),
    (JniSlot.NewWeakGlobalRef, JniSlot.DeleteWeakGlobalRef,
     SlotFamily.WEAK_GLOBAL_REF),
    (JniSlot.GetStringChars, JniSlot.ReleaseStringChars,
     SlotFamily.STRING_CHARS),
    (JniSlot.GetStringUTFChars, JniSlot.ReleaseStringUTFChars,
     SlotFamily.STRING_UTF_CHARS),
    (JniSlot.GetStringCritical, JniSlot.ReleaseStringCritical,
     SlotFamily.STRING_CRITICAL),
    (JniSlot.GetPrimitiveArrayCritical, JniSlot.ReleasePrimitiveArrayCritical,
     SlotFamily.ARRAY_CRITICAL),
) + tuple(
    # Get<Kind>ArrayElements (183..190) pairs with Release<Kind> (191..198)
    (JniSlot(i), JniSlot(i + 8), SlotFamily.ARRAY_ELEMENTS)
    for i in range(183, 191)
)

_FAMILIES: Dict[JniSlot, SlotFamily] = {JniSlot.AllocObject: SlotFamily.OBJECT}
_COUNTERPARTS: Dict[JniSlot, JniSlot] = {}
for _acquire, _release, _family in _PAIRS:
    _FAMILIES[_acquire] = _FAMILIES[_release] = _family
    _COUNTERPARTS[_acquire] = _release
    _COUNTERPARTS[_release] = _acquire
del _acquire, _release, _family


MEMORY_SLOT_INDICES: FrozenSet[int] = frozenset(int(s) for s in JniSlot)


def memory_slot(index: int) -> Optional[JniSlot]:
    """Return the memory-managing slot at *index*, or ``None``."""
    try:
        return JniSlot(index)
    except ValueError:
        return None


def slot_table() -> List[Tuple[int, str, str, str]]:
    """Rows ``(index, name, family, role)`` sorted by slot index."""
    return [
        (int(s), s.name, s.family.value, s.role.value)
        for s in sorted(JniSlot)
    ]


__all__ = [
    "NATIVE_INTERFACE_SIGNATURE",
    "INVOKE_INTERFACE_SIGNATURE",
    "BOUNDARY_SIGNATURES",
    "ENTRY_PREFIX",
    "C_ALLOCATOR_SYMBOLS",
    "CXX_ALLOCATOR_SYMBOLS",
    "ALLOCATOR_SYMBOLS",
    "SlotRole",
    "SlotFamily",
    "JniSlot",
    "MEMORY_SLOT_INDICES",
    "memory_slot",
    "slot_table",
]
