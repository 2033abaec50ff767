# tests/test_runtime_table.py
"""
Tests for the JNI runtime-operation table and allocator symbols.
"""

import pytest

from jniaudit.runtime_table import (
    ALLOCATOR_SYMBOLS,
    BOUNDARY_SIGNATURES,
    MEMORY_SLOT_INDICES,
    JniSlot,
    SlotFamily,
    SlotRole,
    memory_slot,
    slot_table,
)


class TestSlotIndices:

    def test_slot_count(self):
        assert len(MEMORY_SLOT_INDICES) == 33

    def test_exact_indices(self):
        expected = (
            {19, 20, 21, 22, 23, 25, 27, 165, 166, 169, 170}
            | set(range(183, 199))
            | set(range(222, 228))
        )
        assert MEMORY_SLOT_INDICES == expected

    @pytest.mark.parametrize("index", [0, 4, 24, 26, 28, 164, 199, 221, 228])
    def test_non_memory_slots(self, index):
        assert memory_slot(index) is None
        assert index not in MEMORY_SLOT_INDICES

    def test_lookup(self):
        assert memory_slot(169) is JniSlot.GetStringUTFChars


class TestSlotSemantics:

    def test_roles(self):
        assert JniSlot.NewGlobalRef.role is SlotRole.ACQUIRE
        assert JniSlot.DeleteGlobalRef.role is SlotRole.RELEASE
        assert JniSlot.PopLocalFrame.role is SlotRole.RELEASE
        assert JniSlot.AllocObject.role is SlotRole.ACQUIRE

    def test_counterparts_are_symmetric(self):
        for slot in JniSlot:
            other = slot.counterpart
            if other is not None:
                assert other.counterpart is slot
                assert other.family is slot.family
                assert other.role is not slot.role

    def test_array_elements_pairing(self):
        assert JniSlot.GetIntArrayElements.counterpart is JniSlot.ReleaseIntArrayElements
        assert JniSlot.GetIntArrayElements.family is SlotFamily.ARRAY_ELEMENTS

    def test_alloc_object_has_no_counterpart(self):
        assert JniSlot.AllocObject.counterpart is None
        assert JniSlot.AllocObject.family is SlotFamily.OBJECT

    def test_every_slot_has_a_family(self):
        for slot in JniSlot:
            assert isinstance(slot.family, SlotFamily)

    def test_table_rows_sorted(self):
        rows = slot_table()
        assert len(rows) == 33
        assert [r[0] for r in rows] == sorted(MEMORY_SLOT_INDICES)
        assert rows[0] == (19, "PushLocalFrame", "local frame", "acquire")


class TestSymbols:

    def test_allocators(self):
        assert ALLOCATOR_SYMBOLS == {
            "malloc", "calloc", "realloc", "free",
            "_Znwm", "_Znam", "_ZdlPv", "_ZdaPv",
        }

    def test_boundary_signatures(self):
        assert "%struct.JNINativeInterface_*" in BOUNDARY_SIGNATURES
        assert "%struct.JNIInvokeInterface_*" in BOUNDARY_SIGNATURES
