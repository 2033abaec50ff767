# tests/test_ir.py
"""
Tests for the IR model: type parsing, values, instructions, programs.
"""

import pytest

from jniaudit.errors import MalformedIRError
from jniaudit.ir import (
    CastKind,
    Function,
    Instruction,
    LeafType,
    Opcode,
    PointerType,
    Program,
    Value,
    ValueKind,
    is_aggregate_signature,
    opcode_for,
    parse_type,
    pointer_to,
)
from tests.conftest import declare, define, ptr_offset, ret


class TestParseType:

    def test_scalar(self):
        t = parse_type("i32")
        assert isinstance(t, LeafType)
        assert not t.is_pointer
        assert t.depth == 0
        assert t.signature == "i32"

    def test_pointer_depth(self):
        t = parse_type("%struct.JNINativeInterface_**")
        assert t.is_pointer
        assert t.depth == 2
        assert t.pointee.pointee == LeafType("%struct.JNINativeInterface_", True)

    def test_signature_round_trip(self):
        assert parse_type("%struct.JNIEnv_*").signature == "%struct.JNIEnv_*"

    def test_array_is_not_aggregate(self):
        t = parse_type("[5 x i8]*")
        assert t.pointee.is_aggregate is False

    def test_literal_struct_is_aggregate(self):
        assert parse_type("{ i32, i8* }*").pointee.is_aggregate

    def test_class_and_union_are_aggregates(self):
        assert is_aggregate_signature("%class.Foo")
        assert is_aggregate_signature("%union.U")
        assert not is_aggregate_signature("double")

    def test_whitespace_before_stars(self):
        assert parse_type("i8 *").depth == 1

    def test_empty_signature_rejected(self):
        with pytest.raises(MalformedIRError):
            parse_type("   ")

    def test_stars_only_rejected(self):
        with pytest.raises(MalformedIRError):
            parse_type("**")

    def test_pointer_to(self):
        t = pointer_to("i8", depth=2)
        assert t.signature == "i8**"
        assert isinstance(t, PointerType)


class TestValue:

    def test_global_mutability(self):
        assert Value.global_var("i32*", "@g").is_mutable_global
        assert not Value.global_var("i32*", "@g", constant=True).is_mutable_global

    def test_locals_are_not_globals(self):
        assert not Value.local("i32*", "%p").is_mutable_global

    def test_zero_constant(self):
        assert Value.const_int("i32", 0).is_zero
        assert not Value.const_int("i32", 1).is_zero
        assert not Value.local("i32", "%i").is_zero

    def test_require_type_missing(self):
        with pytest.raises(MalformedIRError):
            Value.local(None, "%x").require_type()

    def test_kind(self):
        assert Value.argument("i64", "%a").kind is ValueKind.ARGUMENT
        assert Value.function_ref("void ()*", "@f").kind is ValueKind.FUNCTION


class TestInstruction:

    @pytest.mark.parametrize("mnemonic,opcode", [
        ("call", Opcode.CALL),
        ("invoke", Opcode.CALL),
        ("getelementptr", Opcode.ADDRESS),
        ("bitcast", Opcode.CAST),
        ("store", Opcode.MEMORY),
        ("add", Opcode.GENERIC),
    ])
    def test_opcode_for(self, mnemonic, opcode):
        assert opcode_for(mnemonic) is opcode

    def test_address_keeps_base_in_operands(self):
        inst = ptr_offset("i8*", 4)
        assert inst.opcode is Opcode.ADDRESS
        assert inst.operands[0] is inst.base
        assert len(inst.indices) == 1

    def test_all_zero_indices(self):
        inst = Instruction.address(
            Value.local("i8*", "%p"),
            [Value.const_int("i64", 0), Value.const_int("i32", 0)],
        )
        assert inst.has_all_zero_indices

    def test_cast_kinds(self):
        v = Value.local("i64", "%x")
        assert Instruction.cast("inttoptr", v).cast_kind is CastKind.INT_TO_PTR
        assert Instruction.cast("ptrtoint", v).cast_kind is CastKind.PTR_TO_INT
        assert Instruction.cast("bitcast", v).cast_kind is CastKind.OTHER

    def test_generic_rejects_calls(self):
        with pytest.raises(ValueError):
            Instruction.generic("call")

    def test_call_first_arg(self):
        target = declare("malloc")
        inst = Instruction.call(target, [Value.const_int("i64", 8)])
        assert inst.is_call
        assert inst.first_arg.constant == 8
        assert inst.callee_name == "malloc"
        assert Instruction.call(None).first_arg is None

    def test_str(self):
        assert str(Instruction.call(None)) == "call <unresolved>"
        assert str(ptr_offset("i8*", 3)) == "getelementptr i8* %p i64 3"


class TestFunctionAndProgram:

    def test_only_reads_memory(self):
        assert define("f").only_reads_memory
        assert define("f", attrs=("memory(none)",)).only_reads_memory
        assert not define("f", attrs=("nounwind",)).only_reads_memory

    def test_declaration(self):
        fn = Function.declare("free", ["nounwind"])
        assert not fn.is_definition
        assert fn.instructions == []

    def test_calls(self):
        target = declare("g")
        fn = define("f", Instruction.call(target), ret())
        assert [c.callee for c in fn.calls()] == [target]

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError):
            Program("p", [define("f"), define("f")])

    def test_entry_functions_in_order(self):
        prog = Program("p", [
            define("Java_B_b"),
            define("helper"),
            declare("Java_Decl_only"),
            define("Java_A_a"),
        ])
        assert [f.name for f in prog.entry_functions("Java_")] == [
            "Java_B_b", "Java_A_a",
        ]

    def test_lookup(self):
        fn = define("f")
        prog = Program("p", [fn])
        assert prog.get("f") is fn
        assert "f" in prog
        assert prog.get("g") is None
        assert len(prog) == 1
