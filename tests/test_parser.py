"""Tests for the FDSSL expression and declaration parsers."""

import pytest
from fdssl.parser.decl_parser import parse_module, parse_fdssl, UnknownShaderError
from fdssl.parser.lexer import ParseError
from fdssl.parser.ast_nodes import (
    Type, BOp, OpaqueType, Opaque, Stage, Linkage, Func, Body,
    Mut, Const, Update, Out, Branch, For,
    I, B, F, D, V2, V3, V4, Mat4, Ref, App, BinOp, AccessN, AccessI, Array,
    SComment, BComment, NOp,
)


def _body(src: str) -> list:
    """Parse ``src`` as the body of a throwaway function."""
    state = parse_module(f"t : Float = {{ {src} }}")
    return state.functions[0].body.exprs


def _expr(src: str):
    body = _body(src)
    assert len(body) == 2 and isinstance(body[1], NOp)
    return body[0]


class TestLiterals:
    def test_int(self):
        assert _expr("42") == I(42)

    def test_float(self):
        assert _expr("1.5") == F(1.5)

    def test_double(self):
        assert _expr("2.5lf") == D(2.5)

    def test_bool(self):
        assert _expr("true") == B(True)
        assert _expr("false") == B(False)

    def test_negative_literal(self):
        assert _expr("-3") == I(-3)
        assert _expr("-0.5") == F(-0.5)

    def test_vectors(self):
        assert _expr("vec2 1.0 2.0") == V2(F(1.0), F(2.0))
        assert _expr("vec3 1 2 3") == V3(I(1), I(2), I(3))
        assert _expr("vec4 a b c 1.0") == V4(Ref("a"), Ref("b"), Ref("c"), F(1.0))

    def test_vector_with_negative_component(self):
        assert _expr("vec2 -1 2") == V2(I(-1), I(2))

    def test_vector_components_are_full_expressions(self):
        assert _expr("vec2 a + 1 b") == V2(BinOp(BOp.ADD, Ref("a"), I(1)), Ref("b"))

    def test_vector_arity_is_enforced(self):
        with pytest.raises(ParseError) as exc:
            parse_module("t : Float = { vec3 1 2 }")
        assert (exc.value.line, exc.value.column) == (1, 24)

    def test_mat4(self):
        e = _expr("mat4 a b c d")
        assert isinstance(e, Mat4)
        assert e.columns == [Ref("a"), Ref("b"), Ref("c"), Ref("d")]

    def test_array(self):
        assert _expr("[1, 2, 3]") == Array([I(1), I(2), I(3)])


class TestNameForms:
    def test_call(self):
        assert _expr("f(a b)") == App("f", [Ref("a"), Ref("b")])

    def test_call_without_arguments(self):
        assert _expr("f()") == App("f", [])

    def test_nested_call(self):
        assert _expr("f(g(x) 1.0)") == App("f", [App("g", [Ref("x")]), F(1.0)])

    def test_index(self):
        assert _expr("xs[2]") == AccessI("xs", 2)

    def test_named_access(self):
        assert _expr("v[xy]") == AccessN("v", "xy")

    def test_dotted_access(self):
        assert _expr("v.xyz") == AccessN("v", "xyz")

    def test_ref(self):
        assert _expr("v") == Ref("v")

    def test_malformed_call_reports_position(self):
        with pytest.raises(ParseError) as exc:
            parse_module("t : Float = { f(a b }")
        assert exc.value.column == 21

    def test_malformed_index(self):
        with pytest.raises(ParseError):
            parse_module("t : Float = { xs[1.5] }")


class TestOperators:
    def test_mul_binds_tighter_than_sub(self):
        assert _expr("a - b * c") == BinOp(
            BOp.SUB, Ref("a"), BinOp(BOp.MUL, Ref("b"), Ref("c"))
        )

    def test_left_associative(self):
        assert _expr("a - b - c") == BinOp(
            BOp.SUB, BinOp(BOp.SUB, Ref("a"), Ref("b")), Ref("c")
        )

    def test_lt_nests_inside_eq(self):
        assert _expr("1 < 2 == true") == BinOp(
            BOp.EQ, BinOp(BOp.LT, I(1), I(2)), B(True)
        )

    def test_relational_levels_are_distinct(self):
        # '<' binds tighter than '<=', which binds tighter than '>'
        assert _expr("a <= b < c") == BinOp(
            BOp.LTE, Ref("a"), BinOp(BOp.LT, Ref("b"), Ref("c"))
        )
        assert _expr("a > b >= c") == BinOp(
            BOp.GT, Ref("a"), BinOp(BOp.GTE, Ref("b"), Ref("c"))
        )

    def test_neq_below_eq(self):
        assert _expr("a != b == c") == BinOp(
            BOp.NEQ, Ref("a"), BinOp(BOp.EQ, Ref("b"), Ref("c"))
        )

    def test_logical_operators_are_loosest(self):
        assert _expr("a < b && c || d") == BinOp(
            BOp.OR,
            BinOp(BOp.AND, BinOp(BOp.LT, Ref("a"), Ref("b")), Ref("c")),
            Ref("d"),
        )

    def test_modulo(self):
        assert _expr("a % 2") == BinOp(BOp.MOD, Ref("a"), I(2))

    def test_prefix_form(self):
        assert _expr("(+ x 1)") == BinOp(BOp.ADD, Ref("x"), I(1))
        assert _expr("(* (+ a b) c)") == BinOp(
            BOp.MUL, BinOp(BOp.ADD, Ref("a"), Ref("b")), Ref("c")
        )

    def test_grouping(self):
        assert _expr("(a - b) * c") == BinOp(
            BOp.MUL, BinOp(BOp.SUB, Ref("a"), Ref("b")), Ref("c")
        )

    def test_grouped_negative(self):
        assert _expr("(-1)") == I(-1)


class TestStatements:
    def test_empty_body(self):
        assert _body("") == [NOp()]

    def test_bindings(self):
        assert _body("mut Int x = 1 const Float y = 2.0 y") == [
            Mut(Type.INT, "x", I(1)),
            Const(Type.FLOAT, "y", F(2.0)),
            Ref("y"),
            NOp(),
        ]

    def test_set_and_out(self):
        assert _body("set x 2 out color c") == [
            Update("x", I(2)),
            Out("color", Ref("c")),
            NOp(),
        ]

    def test_bare_application_continues(self):
        assert _body("f(x) g(y) 1") == [
            App("f", [Ref("x")]),
            App("g", [Ref("y")]),
            I(1),
            NOp(),
        ]

    def test_branch(self):
        assert _body("if a < b then { 1 } else { set x 2 }") == [
            Branch(
                BinOp(BOp.LT, Ref("a"), Ref("b")),
                [I(1), NOp()],
                [Update("x", I(2)), NOp()],
            ),
            NOp(),
        ]

    def test_for(self):
        assert _body("for 5 do { set x (+ x 1) }") == [
            For(I(5), None, [Update("x", BinOp(BOp.ADD, Ref("x"), I(1))), NOp()]),
            NOp(),
        ]

    def test_for_with_named_counter(self):
        assert _body("for n as i do { set x i }") == [
            For(Ref("n"), "i", [Update("x", Ref("i")), NOp()]),
            NOp(),
        ]

    def test_comments_in_statement_position(self):
        assert _body("// first\n /* second */ 1.0") == [
            SComment(" first"),
            BComment(" second "),
            F(1.0),
            NOp(),
        ]

    def test_comments_inside_expressions_are_skipped(self):
        assert _body("mut Int x = /* c */ 1") == [Mut(Type.INT, "x", I(1)), NOp()]

    def test_binding_name_must_be_lowercase(self):
        with pytest.raises(ParseError) as exc:
            parse_module("t : Float = { mut Int X = 1 }")
        assert "lowercase" in str(exc.value)

    def test_unclosed_body(self):
        with pytest.raises(ParseError) as exc:
            parse_module("t : Float = { 1.0")
        assert "end of input" in str(exc.value)


class TestDeclarations:
    def test_uniform(self):
        state = parse_module("uniform Float time")
        assert state.uniforms == [Func("time", [], Type.FLOAT, Linkage.UNIFORM)]
        assert state.uniform_opaques() == [Opaque(OpaqueType.UNIFORM, Type.FLOAT, "time")]

    def test_function_signatures(self):
        state = parse_module("""
        add : (Float a, Float b) -> Float = { a + b }
        sq : Float x -> Float = { x * x }
        one : Float = { 1.0 }
        unit : () -> Vec2 = { vec2 0.0 0.0 }
        """)
        sigs = [(f.name, f.params, f.result) for f in state.functions]
        assert sigs == [
            ("add", [("a", Type.FLOAT), ("b", Type.FLOAT)], Type.FLOAT),
            ("sq", [("x", Type.FLOAT)], Type.FLOAT),
            ("one", [], Type.FLOAT),
            ("unit", [], Type.VEC2),
        ]

    def test_function_body_label(self):
        state = parse_module("\n  sq : Float x -> Float = { x * x }")
        body = state.functions[0].body
        assert isinstance(body, Body)
        assert body.label == "line 2, column 3"

    def test_shader(self):
        state = parse_module("vert v : Vec3 pos -> (Vec4 outpos, Vec2 uv) = { out outpos vec4 1.0 1.0 1.0 1.0 }")
        shader = state.lookup_shader("v")
        assert shader.stage is Stage.VERT
        assert shader.inputs == [Opaque(OpaqueType.VARYING, Type.VEC3, "pos")]
        assert shader.outputs == [
            Opaque(OpaqueType.VARYING, Type.VEC4, "outpos"),
            Opaque(OpaqueType.VARYING, Type.VEC2, "uv"),
        ]
        assert isinstance(shader.body[0], Out)
        assert isinstance(shader.body[-1], NOp)

    def test_shader_with_unit_side(self):
        state = parse_module("frag f : () -> Vec4 c = { out c vec4 1.0 0.0 0.0 1.0 }")
        assert state.lookup_shader("f").inputs == []

    def test_later_shader_shadows_earlier(self):
        state = parse_module("""
        frag f : () -> Float c = { out c 1.0 }
        frag f : () -> Float c = { out c 2.0 }
        """)
        assert state.lookup_shader("f").body[0] == Out("c", F(2.0))
        assert len(state.shaders) == 2

    def test_program(self):
        progs = parse_fdssl("""
        uniform Float time
        scale : Float x -> Float = { x * 2.0 }
        vert v : Vec3 pos -> Vec4 outpos = { out outpos vec4 pos[x] pos[y] pos[z] 1.0 }
        frag f : Vec4 c -> Vec4 outc = { out outc c }
        p : Prog = mkProg v f
        """)
        assert [name for name, _ in progs] == ["p"]
        prog = progs[0][1]
        assert prog.uniforms == [Opaque(OpaqueType.UNIFORM, Type.FLOAT, "time")]
        assert prog.attributes == [Opaque(OpaqueType.ATTRIBUTE, Type.VEC3, "pos")]
        assert prog.vertex.stage is Stage.VERT
        assert prog.fragment.inputs == [Opaque(OpaqueType.VARYING, Type.VEC4, "c")]
        assert [f.name for f in prog.functions] == ["scale"]

    def test_program_only_sees_earlier_uniforms(self):
        progs = parse_fdssl("""
        uniform Float a
        vert v : Vec3 pos -> Vec4 o = { out o vec4 1.0 1.0 1.0 1.0 }
        frag f : Vec4 o -> Vec4 c = { out c o }
        p : Prog = mkProg v f
        uniform Float b
        q : Prog = mkProg v f
        """)
        assert [u.name for u in progs[0][1].uniforms] == ["a"]
        assert [u.name for u in progs[1][1].uniforms] == ["a", "b"]

    def test_forward_reference_fails(self):
        with pytest.raises(UnknownShaderError) as exc:
            parse_fdssl("""
            p : Prog = mkProg v f
            vert v : Vec3 pos -> Vec4 o = { out o vec4 1.0 1.0 1.0 1.0 }
            frag f : Vec4 o -> Vec4 c = { out c o }
            """)
        assert exc.value.line == 2
        assert "unknown shader 'v'" in str(exc.value)

    def test_uppercase_declaration_name(self):
        with pytest.raises(ParseError):
            parse_module("uniform Float Time")

    def test_garbage_at_top_level(self):
        with pytest.raises(ParseError) as exc:
            parse_module("uniform Float time\n42")
        assert exc.value.line == 2
        assert "declaration" in exc.value.expected

    def test_determinism(self):
        src = """
        uniform Vec2 res
        vert v : Vec3 pos -> Vec4 o = { mut Float k = 2.0 out o vec4 pos[x] pos[y] k 1.0 }
        frag f : Vec4 o -> Vec4 c = { if o[x] > 0.5 then { out c o } else { out c vec4 0.0 0.0 0.0 1.0 } }
        p : Prog = mkProg v f
        """
        assert parse_fdssl(src) == parse_fdssl(src)
