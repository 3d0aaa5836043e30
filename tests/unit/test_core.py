"""Tests for Scheme / Inverse registration, lifecycle and dispatch."""

import logging
import threading

import pytest

from shapeconv import (
    ANY, BOOL, COMPLEX64, FLOAT32, FLOAT64, INT, INT8, INT16, INT32, INT64, NIL_TYPE,
    STRING, UINT8, UINT64, Array, BuildError, ConversionError, FieldAccess,
    InvalidConversionError, Inverse, Kind, Map, Nil, Number, Pointer,
    RegistrationError, Scheme, Slice, Struct, Value, array_of, map_of, named,
    pointer_to, slice_of, struct_of,
)
from shapeconv import numeric
from shapeconv.kinds import NUMERIC_KINDS
from shapeconv.numeric import Nature
from shapeconv.typedesc import simple_type


def _tag(text):
    """Rule writing a constant string."""
    return lambda dst, src: dst.set(text)


def _extreme(k):
    """A value of numeric kind *k* that uses its full width."""
    d = numeric.DESCRIPTORS[k]
    if d.nature == Nature.UINT:
        return 2 ** (8 * d.size) - 1
    if d.nature == Nature.INT:
        return -2 ** (8 * d.size - 1)
    if d.nature == Nature.FLOAT:
        return 1.5
    return complex(1.5, -2.0)


class TestRegistration:
    """Test load / rule validation."""

    def test_none_rule(self):
        """A non-callable rule is rejected."""
        with pytest.raises(RegistrationError, match="non-function"):
            Scheme(STRING).load(INT, 5)

    def test_non_callable_counter_only(self):
        """A lone non-callable argument is rejected."""
        with pytest.raises(RegistrationError, match="non-function"):
            Scheme(STRING).load(INT)

    @pytest.mark.parametrize("fn", [
        lambda: None,
        lambda a: None,
        lambda a, b, c: None,
        lambda *, a, b: None,
    ])
    def test_wrong_arity(self, fn):
        """Rules must accept exactly (dst, src)."""
        with pytest.raises(RegistrationError, match="2 inputs"):
            Scheme(STRING).load(INT, fn)

    def test_defaulted_extra_parameter_allowed(self):
        """Extra parameters with defaults do not break the call shape."""
        Scheme(STRING).load(INT, lambda dst, src, extra=None: None)

    def test_bad_counter(self):
        """Counters must be types or generic markers."""
        with pytest.raises(RegistrationError, match="TypeDescriptor or generic marker"):
            Scheme(STRING).load("int", _tag("x"))

    def test_fixed_annotation_checked(self):
        """A TypeDescriptor annotation on the fixed side must match."""

        def rule(dst: INT, src: INT):
            pass

        with pytest.raises(RegistrationError, match="input #0"):
            Scheme(STRING).load(INT, rule)

    def test_counter_inferred_from_annotation(self):
        """Without an explicit counter the annotation supplies it."""
        scheme = Scheme(STRING)

        def int_rule(dst, src: INT):
            dst.set(f"int {src.data}")

        assert scheme.load(int_rule) is int_rule
        assert scheme.build().convert(3) == "int 3"

    def test_marker_inferred_from_annotation(self):
        """Generic markers work as annotations too."""
        scheme = Scheme(STRING)

        def any_number(dst, src: Number):
            dst.set(str(src.num_kind))

        scheme.load(any_number)
        assert scheme.build().convert(Value(INT16, 1)) == "int16"

    def test_uninferable(self):
        """Unannotated rules need an explicit counter."""
        with pytest.raises(RegistrationError, match="cannot infer"):
            Scheme(STRING).load(lambda dst, src: None)

    def test_decorator(self):
        """rule() registers and returns the function."""
        scheme = Scheme(STRING)

        @scheme.rule(BOOL)
        def fmt_bool(dst, src):
            dst.set("yes" if src.data else "no")

        assert callable(fmt_bool)
        assert scheme.build().convert(True) == "yes"

    def test_nil_on_inverse_rejected(self):
        """An Inverse has no nil counter-type."""
        with pytest.raises(RegistrationError, match="Nil"):
            Inverse(STRING).load(Nil, _tag("x"))

    def test_fixed_must_be_type(self):
        """The fixed side must be a TypeDescriptor."""
        with pytest.raises(TypeError):
            Scheme(str)


class TestLifecycle:
    """Test build and the open/built states."""

    def test_load_after_build(self, text_scheme):
        """A built scheme accepts no more rules."""
        text_scheme.build()
        assert text_scheme.built
        with pytest.raises(BuildError, match="already built"):
            text_scheme.load(BOOL, _tag("b"))

    def test_build_twice(self, text_scheme):
        """build() runs once."""
        text_scheme.build()
        with pytest.raises(BuildError):
            text_scheme.build()

    def test_empty_interface_scheme(self):
        """A scheme with no rules and no fixed layout cannot build."""
        with pytest.raises(BuildError, match="empty scheme"):
            Scheme(ANY).build()
        with pytest.raises(BuildError, match="empty inverse"):
            Inverse(ANY).build()

    def test_concrete_type_builds_with_implicit_rule(self):
        """A concrete fixed type always has its layout conversion."""
        conv = Scheme(STRING).build()
        name = named("Name", STRING)
        assert conv.convert(Value(name, "bob")) == "bob"

    def test_interface_scheme_with_rules(self):
        """Rules alone make a non-concrete scheme buildable."""
        scheme = Scheme(ANY)
        scheme.load(INT, lambda dst, src: dst.set(src.copy()))
        out = scheme.build().value(5)
        assert out.data == Value(INT, 5)

    def test_destination_type_checked(self, text_scheme):
        """The dispatcher only writes into its fixed type."""
        conv = text_scheme.build()
        with pytest.raises(TypeError, match="destination"):
            conv(Value(INT), 1)

    def test_reference_before_build(self, text_scheme):
        """Using a reference before build fails."""
        ref = text_scheme.reference()
        with pytest.raises(BuildError, match="before build"):
            ref(Value(STRING), 1)

    def test_engine_base_is_abstract(self):
        """The shared engine needs a direction before it can be built."""
        from shapeconv.core import _Engine

        with pytest.raises(TypeError):
            _Engine(STRING, 0)


class TestDispatch:
    """Test rule resolution order and caching."""

    def test_priority_specific_generic_basic(self):
        """specific beats generic beats basic."""
        my_int = named("MyInt", INT)
        your_int = named("YourInt", INT)

        scheme = Scheme(STRING)
        scheme.load(INT, _tag("basic"))
        scheme.load(Number, _tag("generic"))
        scheme.load(my_int, _tag("specific"))
        conv = scheme.build()

        assert conv.convert(Value(my_int, 1)) == "specific"
        assert conv.convert(Value(your_int, 1)) == "generic"
        assert conv.convert(Value(INT, 1)) == "basic"

    def test_basic_serves_layout_equivalents(self, point, size):
        """A basic struct rule serves every struct with the same layout."""
        scheme = Scheme(INT)
        scheme.load(struct_of(A=INT, B=INT), lambda dst, src: dst.set(src.data[0] + src.data[1]))
        conv = scheme.build()

        assert conv.convert(Value(point, [3, 4])) == 7
        assert conv.convert(Value(size, [10, 20])) == 30

    def test_basic_rule_sees_its_own_type(self, point):
        """The basic rule receives a value of the registered type."""
        seen = []
        basic = struct_of(A=INT, B=INT)
        scheme = Scheme(STRING)
        scheme.load(basic, lambda dst, src: seen.append(src.type))
        scheme.build()(Value(STRING), Value(point, [1, 2]))
        assert seen == [basic]

    def test_basic_rule_gets_a_copy(self, point):
        """Layout transfer copies array/struct data."""
        src = Value(point, [1, 2])
        scheme = Scheme(STRING)
        scheme.load(struct_of(A=INT, B=INT), lambda dst, s: s.data.__setitem__(0, 99))
        scheme.build()(Value(STRING), src)
        assert src.data == [1, 2]

    def test_later_registration_wins(self):
        """Loading the same key twice keeps the last rule."""
        scheme = Scheme(STRING)
        scheme.load(BOOL, _tag("first"))
        scheme.load(BOOL, _tag("second"))
        assert scheme.build().convert(True) == "second"

    def test_alias_registrations_share_a_slot(self):
        """INT and its fixed-width alias overwrite each other."""
        alias = simple_type(numeric.alias(Kind.INT))

        scheme = Scheme(STRING)
        scheme.load(alias, _tag("alias"))
        scheme.load(INT, _tag("int"))
        conv = scheme.build()
        assert conv.convert(Value(INT, 1)) == "int"
        assert conv.convert(Value(alias, 1)) == "int"

        scheme = Scheme(STRING)
        scheme.load(INT, _tag("int"))
        scheme.load(alias, _tag("alias"))
        conv = scheme.build()
        assert conv.convert(Value(INT, 1)) == "alias"
        assert conv.convert(Value(alias, 1)) == "alias"

    def test_invalid_is_cached_and_raised_each_time(self, text_scheme):
        """Unresolvable types are decided once and fail on every call."""
        conv = text_scheme.build()
        for _ in range(2):
            with pytest.raises(InvalidConversionError) as exc:
                conv.convert(Value(slice_of(BOOL)))
            assert exc.value.src_type == slice_of(BOOL)
            assert exc.value.dst_type == STRING
        assert conv.resolve(slice_of(BOOL)) is conv.resolve(slice_of(BOOL))

    def test_failure_is_isolated(self, text_scheme):
        """A failing type does not affect others."""
        conv = text_scheme.build()
        with pytest.raises(InvalidConversionError):
            conv.convert(True)
        assert conv.convert(1) == "1"

    def test_idempotent(self, text_scheme):
        """Repeated calls give identical results."""
        conv = text_scheme.build()
        assert [conv.convert(12) for _ in range(3)] == ["12"] * 3

    def test_nil_rule(self):
        """Untyped nil sources go to the Nil rule."""
        scheme = Scheme(STRING)
        scheme.load(Nil, _tag("nil"))
        conv = scheme.build()
        assert conv.convert(None) == "nil"
        assert conv.resolve(NIL_TYPE) is not None

    def test_nil_without_rule(self, text_scheme):
        """Without a Nil rule, nil is an invalid conversion."""
        with pytest.raises(InvalidConversionError):
            text_scheme.build().convert(None)

    def test_user_errors_propagate(self):
        """Exceptions from rules reach the caller unchanged."""

        def boom(dst, src):
            raise KeyError("mine")

        scheme = Scheme(STRING)
        scheme.load(INT, boom)
        with pytest.raises(KeyError, match="mine"):
            scheme.build().convert(1)

    def test_concurrent_dispatch(self):
        """Threads converting a fresh type agree and resolve it once."""
        scheme = Scheme(STRING)
        scheme.load(Number, lambda dst, src: dst.set(str(src.value())))
        calls = []
        original = scheme._resolve

        def counting(t):
            calls.append(t)
            return original(t)

        scheme._resolve = counting
        conv = scheme.build()

        n = 12
        barrier = threading.Barrier(n)
        out = [None] * n

        def worker(i):
            barrier.wait()
            out[i] = conv.convert(Value(INT32, i))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
        for th in threads:
            th.start()
        for th in threads:
            th.join()

        assert out == [str(i) for i in range(n)]
        assert calls == [INT32]

    def test_plain_int_overflow_rejected(self, text_scheme):
        """A plain int too large for int fails instead of wrapping."""
        conv = text_scheme.build()
        with pytest.raises(ConversionError, match="overflows int"):
            conv.convert(2 ** 64 + 5)
        assert conv.convert(7) == "7"


class TestNumericSubstitution:
    """Test synthesis of numeric bridges."""

    def test_scheme_picks_closest(self):
        """The lowest-cost lossless holder of the source wins."""
        scheme = Scheme(STRING)
        scheme.load(FLOAT64, _tag("float64"))
        scheme.load(INT64, _tag("int64"))
        conv = scheme.build()

        assert conv.convert(Value(INT8, 1)) == "int64"
        assert conv.convert(Value(FLOAT32, 1)) == "float64"
        assert conv.convert(Value(UINT8, 1)) == "int64"

    def test_scheme_no_viable_substitute(self):
        """Sources nothing can hold are invalid."""
        scheme = Scheme(STRING)
        scheme.load(FLOAT64, _tag("float64"))
        scheme.load(INT64, _tag("int64"))
        conv = scheme.build()
        with pytest.raises(InvalidConversionError):
            conv.convert(Value(UINT64, 1))

    def test_bridge_converts_value(self):
        """The substituted rule receives the converted value."""
        scheme = Scheme(STRING)
        scheme.load(FLOAT64, lambda dst, src: dst.set(repr(src.data)))
        assert scheme.build().convert(Value(INT8, -3)) == "-3.0"

    def test_bridge_registered_for_layout_equivalents(self):
        """Once synthesized, named types of the same kind reuse the bridge."""
        scheme = Scheme(STRING)
        scheme.load(FLOAT64, lambda dst, src: dst.set(repr(src.data)))
        conv = scheme.build()
        conv.convert(Value(INT8, 1))
        small = named("Small", INT8)
        assert conv.convert(Value(small, 2)) == "2.0"
        assert conv.resolve(small) is conv.resolve(INT8)

    def test_tie_breaks_to_lowest_kind(self):
        """Equal costs resolve to the lowest kind, whatever the load order."""
        assert numeric.rate(Kind.FLOAT64, Kind.UINT8) == numeric.rate(Kind.COMPLEX64, Kind.UINT8)

        scheme = Scheme(STRING)
        scheme.load(COMPLEX64, _tag("complex64"))
        scheme.load(FLOAT64, _tag("float64"))
        assert scheme.build().convert(Value(UINT8, 1)) == "float64"

    def test_inverse_substitution(self):
        """An Inverse widens the closest narrower rule into the destination."""
        inverse = Inverse(STRING)
        inverse.load(INT32, lambda dst, src: dst.set(int(src.data)))
        conv = inverse.build()

        assert conv.to(FLOAT64, "12") == 12.0
        assert conv.to(INT64, "-7") == -7
        with pytest.raises(InvalidConversionError) as exc:
            conv.to(INT16, "1")
        assert exc.value.src_type == STRING
        assert exc.value.dst_type == INT16

    def test_generic_beats_substitution(self):
        """A Number rule handles numerics before substitution is considered."""
        scheme = Scheme(STRING)
        scheme.load(FLOAT64, _tag("float64"))
        scheme.load(Number, _tag("number"))
        assert scheme.build().convert(Value(INT8, 1)) == "number"

    @pytest.mark.parametrize("dst", sorted(NUMERIC_KINDS), ids=str)
    @pytest.mark.parametrize("src", sorted(NUMERIC_KINDS), ids=str)
    def test_every_numeric_pair(self, dst, src):
        """Each pair converts exactly when the lattice allows it, without loss."""
        conv = Scheme(simple_type(dst)).build()
        sample = Value(simple_type(src), _extreme(src))

        if numeric.rate(dst, src) < 0 and numeric.alias(dst) != numeric.alias(src):
            with pytest.raises(InvalidConversionError):
                conv.convert(sample)
            return

        out = conv.convert(sample)
        assert out == sample.data

        if numeric.rate(src, dst) >= 0:
            back = Scheme(simple_type(src)).build()
            assert back.convert(Value(simple_type(dst), out)) == sample.data


class TestInverse:
    """Test Inverse-specific behaviour."""

    def test_raw_source_wrapped(self):
        """Raw data is taken as the fixed source type."""
        inverse = Inverse(STRING)
        inverse.load(INT, lambda dst, src: dst.set(len(src.data)))
        assert inverse.build().to(INT, "abcd") == 4

    def test_source_type_checked(self):
        """A Value of another type is rejected."""
        inverse = Inverse(STRING)
        inverse.load(INT, lambda dst, src: dst.set(0))
        with pytest.raises(TypeError, match="source"):
            inverse.build()(Value(INT), Value(INT, 1))

    def test_generic_map_allocated(self):
        """Map rules write into an allocated destination."""
        inverse = Inverse(STRING)
        inverse.load(Map, lambda dst, src: dst.set(src, len(src.data)))
        t = map_of(STRING, INT)
        assert inverse.build().to(t, "abc") == {"abc": 3}

    def test_generic_pointer_allocated(self):
        """Pointer rules can write through without allocating."""
        inverse = Inverse(STRING)
        inverse.load(Pointer, lambda dst, src: dst.set_elem(len(src.data)))
        out = inverse.build().to(pointer_to(INT), "ab")
        assert out == Value(INT, 2)

    def test_implicit_layout(self):
        """Layout-equivalent destinations get a plain transfer."""
        name = named("Name", STRING)
        conv = Inverse(STRING).build()
        out = conv.value(name, "x")
        assert out.type is name and out.data == "x"

    def test_basic_rule_retyped(self):
        """A basic rule serves named destinations with the same layout."""
        age = named("Age", INT8)
        inverse = Inverse(STRING)
        inverse.load(INT8, lambda dst, src: dst.set(len(src.data)))
        out = inverse.build().value(age, "abc")
        assert out.type is age and out.data == 3


class TestRecursion:
    """Test recursive conversion through references."""

    def test_slice_rule_recurses(self, text_scheme):
        """A Slice rule converts elements through the finished scheme."""
        ref = text_scheme.reference()

        def join(dst, src):
            parts = []
            for e in src:
                tmp = Value(STRING)
                ref(tmp, e)
                parts.append(tmp.data)
            dst.set("[" + ",".join(parts) + "]")

        text_scheme.load(Slice, join)
        conv = text_scheme.build()

        assert conv.convert(Value(slice_of(INT), [1, 2])) == "[1,2]"
        nested = slice_of(slice_of(INT))
        assert conv.convert(Value(nested, [[1, 2], [3]])) == "[[1,2],[3]]"

    def test_reference_exposes_dispatcher(self, text_scheme):
        """Attribute access is forwarded after build."""
        ref = text_scheme.reference()
        text_scheme.build()
        assert ref.convert(5) == "5"
        assert ref.type == STRING


class TestStructRules:
    """Test Struct rules and the field policy."""

    def test_field_policy_fixed_at_registration(self):
        """fields=ALL exposes unexported fields to the rule."""
        t = named("Secret", struct_of(Name=STRING, _pin=INT))

        def describe(dst, src):
            dst.set(",".join(f.name for f in src.fields()))

        exported = Scheme(STRING)
        exported.load(Struct, describe)
        assert exported.build().convert(Value(t, ["a", 1])) == "Name"

        everything = Scheme(STRING)
        everything.load(Struct, describe, fields=FieldAccess.ALL)
        assert everything.build().convert(Value(t, ["a", 1])) == "Name,_pin"

    def test_inverse_struct_fill(self):
        """An Inverse Struct rule fills fields by name."""
        t = named("Person", struct_of(Name=STRING, Age=INT))

        def fill(dst, src):
            name, age = src.data.split(":")
            dst.set_field("Name", name)
            dst.set_field("Age", int(age))

        inverse = Inverse(STRING)
        inverse.load(Struct, fill)
        assert inverse.build().to(t, "ann:30") == ["ann", 30]

    def test_scheme_handle_writes_stay_local(self, point):
        """Writes through a Scheme-side handle leave the caller's value alone."""

        def scramble(dst, src):
            src.set_field("X", 99)
            dst.set(sum(f.value().data for f in src.fields()))

        scheme = Scheme(INT)
        scheme.load(Struct, scramble)
        source = Value(point, [1, 2])

        assert scheme.build().convert(source) == 101
        assert source.data == [1, 2]

    def test_scheme_array_handle_writes_stay_local(self):
        """Array elements written by a rule do not reach the source."""

        def zero_first(dst, src):
            src.set(0, 0)
            dst.set(sum(e.data for e in src))

        scheme = Scheme(INT)
        scheme.load(Array, zero_first)
        source = Value(array_of(3, INT), [5, 6, 7])

        assert scheme.build().convert(source) == 13
        assert source.data == [5, 6, 7]


class TestLogging:
    """Test the debug records of resolution decisions."""

    def test_substitute_logged(self, caplog):
        """The chosen numeric substitute is reported once."""
        scheme = Scheme(STRING)
        scheme.load(FLOAT64, _tag("f"))
        conv = scheme.build()

        with caplog.at_level(logging.DEBUG, logger="shapeconv.core"):
            conv.convert(Value(INT8, 1))
            conv.convert(Value(INT8, 2))

        subs = [r for r in caplog.records if "substituted by" in r.getMessage()]
        assert len(subs) == 1
        assert "float64" in subs[0].getMessage()

    def test_build_logged(self, caplog):
        """build reports the registry sizes."""
        scheme = Scheme(STRING)
        scheme.load(INT, _tag("i"))
        with caplog.at_level(logging.DEBUG, logger="shapeconv.core"):
            scheme.build()
        assert any("built:" in r.getMessage() for r in caplog.records)
