"""GLSL emitter: renders FDSSL programs as vertex/fragment source text.

Each stage is emitted as: a fixed preamble, the global declarations
(uniforms, stage inputs, stage outputs), the user functions, and a
``main`` entry point wrapping the shader body.

Statements are rendered according to the form of their expression:
effects become terminated lines, values become ``return`` statements and
control structures render as blocks.
"""

from __future__ import annotations

from fdssl.parser.ast_nodes import (
    Expr, Form, Type, Opaque, Func, Body, Shader, Prog,
    Mut, Const, Update, Out, Branch, For,
    I, B, F, D, V2, V3, V4, Mat4, Ref, App, BinOp, AccessN, AccessI, Array,
    SComment, BComment, NOp,
)


class CodegenError(Exception):
    pass


_PREAMBLE = [
    "//",
    "// Generated by FDSSL",
    "//",
    "#ifdef GL_ES",
    "precision highp float;",
    "precision highp int;",
    "#endif",
]

_INDENT = "\t"

# Loops always run under a hard ceiling; the bound is checked inside.
_LOOP_CEILING = 10000
_DEFAULT_COUNTER = "fdssl_cntr"

_ARRAY_ELEMENTS = {
    I: "int",
    F: "float",
    D: "double",
    B: "bool",
    V2: "vec2",
    V3: "vec3",
    V4: "vec4",
}


def emit_program(prog: Prog) -> tuple[str, str]:
    """Render a program as ``(vertex_source, fragment_source)``."""
    vertex = GlslEmitter().emit_shader(
        prog.uniforms, prog.functions, prog.vertex, inputs=prog.attributes,
    )
    fragment = GlslEmitter().emit_shader(prog.uniforms, prog.functions, prog.fragment)
    return vertex, fragment


class GlslEmitter:
    """Generates GLSL for one stage at a time."""

    def __init__(self):
        self.lines: list[str] = []
        self._indent = 0
        self._where = ""

    def emit_shader(self, uniforms: list[Opaque], functions: list[Func],
                    shader: Shader, inputs: list[Opaque] | None = None) -> str:
        """Render one stage.

        ``inputs`` replaces the shader's own input declarations; programs
        use it to declare vertex inputs as attributes.
        """
        self.lines = []
        self._indent = 0

        for line in _PREAMBLE:
            self._line(line)
        self._line("")

        declarations = list(uniforms)
        declarations += shader.inputs if inputs is None else inputs
        declarations += shader.outputs
        for opaque in declarations:
            self._emit_opaque(opaque)
        if declarations:
            self._line("")

        for fn in functions:
            self._emit_function(fn)

        self._where = f"{shader.stage.value} entry point"
        self._line("void main() {")
        self._indent += 1
        self._emit_stmts(shader.body)
        self._indent -= 1
        self._line("}")

        return "\n".join(self.lines) + "\n"

    # --- Declarations ---

    def _emit_opaque(self, opaque: Opaque):
        self._where = f"declaration of '{opaque.name}'"
        self._line(f"{opaque.kind} {self._type(opaque.type)} {opaque.name};")

    def _emit_function(self, fn: Func):
        if not isinstance(fn.body, Body):
            raise CodegenError(f"'{fn.name}' is a {fn.body.value} binding, not a function")
        self._where = f"function '{fn.name}'"
        if fn.body.label:
            self._where += f" ({fn.body.label})"
        params = ", ".join(f"{self._type(t)} {name}" for name, t in fn.params)
        self._line(f"{self._type(fn.result)} {fn.name}({params}) {{")
        self._indent += 1
        self._emit_stmts(fn.body.exprs)
        self._indent -= 1
        self._line("}")
        self._line("")

    def _type(self, typ: Type) -> str:
        if typ is Type.ARRAY:
            raise self._error("Array type needs a sized array literal initializer")
        return typ.glsl

    # --- Statements ---

    def _emit_stmts(self, stmts: list[Expr]):
        for stmt in stmts:
            self._emit_stmt(stmt)

    def _emit_stmt(self, stmt: Expr):
        if not isinstance(stmt, Expr):
            raise self._error(f"unclassified node {stmt!r}")
        if stmt.form is Form.EFFECT:
            self._line(f"{self._emit_expr(stmt)};")
        elif stmt.form is Form.VALUE:
            self._line(f"return {self._emit_expr(stmt)};")
        else:
            self._emit_structural(stmt)

    def _emit_structural(self, stmt: Expr):
        if isinstance(stmt, NOp):
            return

        if isinstance(stmt, Branch):
            self._line(f"if ({self._emit_expr(stmt.condition)}) {{")
            self._indent += 1
            self._emit_stmts(stmt.then_body)
            self._indent -= 1
            self._line("} else {")
            self._indent += 1
            self._emit_stmts(stmt.else_body)
            self._indent -= 1
            self._line("}")

        elif isinstance(stmt, For):
            bound = self._emit_expr(stmt.bound)
            n = stmt.counter or _DEFAULT_COUNTER
            self._line(f"for (int {n} = 0; {n} < {_LOOP_CEILING}; {n}++) {{")
            self._indent += 1
            self._emit_stmts(stmt.body)
            self._line(f"if ({n} >= {bound}) {{ break; }}")
            self._indent -= 1
            self._line("}")

        elif isinstance(stmt, SComment):
            self._line(f"//{stmt.text}")

        elif isinstance(stmt, BComment):
            self._line(f"/*{stmt.text}*/")

        else:
            raise self._error(f"unclassified node {type(stmt).__name__}")

    # --- Expressions ---

    def _emit_expr(self, expr: Expr) -> str:
        if isinstance(expr, Mut):
            return self._binding(expr.type, expr.name, expr.value)

        elif isinstance(expr, Const):
            return "const " + self._binding(expr.type, expr.name, expr.value)

        elif isinstance(expr, (Update, Out)):
            return f"{expr.name} = {self._emit_expr(expr.value)}"

        elif isinstance(expr, I):
            return str(expr.value)

        elif isinstance(expr, B):
            return "true" if expr.value else "false"

        elif isinstance(expr, F):
            return self._float(expr.value)

        elif isinstance(expr, D):
            return self._float(expr.value) + "lf"

        elif isinstance(expr, (V2, V3, V4)):
            args = ", ".join(self._emit_expr(c) for c in expr.components)
            return f"vec{len(expr.components)}({args})"

        elif isinstance(expr, Mat4):
            raise self._error("mat4 values cannot be rendered")

        elif isinstance(expr, Ref):
            return expr.name

        elif isinstance(expr, App):
            args = ", ".join(self._emit_expr(a) for a in expr.args)
            return f"{expr.name}({args})"

        elif isinstance(expr, BinOp):
            left = self._operand(expr.left)
            right = self._operand(expr.right)
            return f"{left} {expr.op} {right}"

        elif isinstance(expr, AccessN):
            return f"{expr.name}.{expr.field}"

        elif isinstance(expr, AccessI):
            return f"{expr.name}[{expr.index}]"

        elif isinstance(expr, Array):
            items = ", ".join(self._emit_expr(item) for item in expr.items)
            return f"{self._element_type(expr)}[{len(expr.items)}]({items})"

        raise self._error(f"unclassified node {type(expr).__name__}")

    def _operand(self, expr: Expr) -> str:
        text = self._emit_expr(expr)
        if isinstance(expr, BinOp):
            return f"({text})"
        return text

    def _binding(self, typ: Type, name: str, value: Expr) -> str:
        if typ is Type.ARRAY:
            if not isinstance(value, Array):
                raise self._error(f"Array binding '{name}' needs an array literal initializer")
            element = self._element_type(value)
            return f"{element} {name}[{len(value.items)}] = {self._emit_expr(value)}"
        return f"{self._type(typ)} {name} = {self._emit_expr(value)}"

    def _element_type(self, array: Array) -> str:
        first = type(array.items[0])
        if first not in _ARRAY_ELEMENTS:
            raise self._error(
                f"cannot infer the element type of an array starting with {first.__name__}"
            )
        return _ARRAY_ELEMENTS[first]

    def _float(self, value: float) -> str:
        text = repr(value)
        if text in ("inf", "-inf", "nan"):
            raise self._error(f"float literal {text} has no GLSL spelling")
        return text

    # --- Output ---

    def _error(self, message: str) -> CodegenError:
        if self._where:
            message = f"{message} (in {self._where})"
        return CodegenError(message)

    def _line(self, text: str):
        if text:
            text = _INDENT * self._indent + text
        self.lines.append(text)
