"""Top-level declaration parser for FDSSL.

A source file is a sequence of declarations processed strictly in
textual order::

    uniform Float time
    scale : Float x -> Float = { x * 2.0 }
    vert move : Vec3 pos -> Vec4 outpos = { out outpos vec4 pos[x] pos[y] pos[z] 1.0 }
    frag paint : Vec4 c -> Vec4 outc = { out outc c }
    vert both : Vec3 pos -> Vec4 outc = paint . move
    main : Prog = mkProg move paint

Each declaration updates a ``ParserState``; a declaration can only refer
to shaders declared before it.
"""

from __future__ import annotations
from loguru import logger

from fdssl.analysis.symbols import Diagnostic, ParserState
from fdssl.expansion.composition import CompositionError, compose
from fdssl.parser.ast_nodes import (
    Body, Func, Linkage, Opaque, OpaqueType, Prog, Shader, Stage, Type,
)
from fdssl.parser.expr_parser import ExprParser
from fdssl.parser.lexer import ParseError, TokenStream


class UnknownShaderError(ParseError):
    """A composition or program names a shader that was never recorded."""


_STAGE_TOKENS = {"VERT": Stage.VERT, "FRAG": Stage.FRAG}


def parse_module(source: str) -> ParserState:
    """Parse FDSSL source text and return the accumulated symbol tables."""
    parser = DeclParser(TokenStream(source))
    return parser.parse()


def parse_fdssl(source: str) -> list[tuple[str, Prog]]:
    """Parse FDSSL source text into its named programs, in declaration order."""
    return parse_module(source).programs


class DeclParser(ExprParser):
    def __init__(self, stream: TokenStream, state: ParserState | None = None):
        super().__init__(stream)
        self.state = state if state is not None else ParserState()

    def parse(self) -> ParserState:
        while not self.ts.at_end():
            self.parse_declaration()
        return self.state

    def parse_declaration(self) -> None:
        if self.ts.at("UNIFORM"):
            self.parse_uniform()
        elif self.ts.at("VERT", "FRAG"):
            self.parse_shader()
        elif self.ts.at("NAME") and self.ts.at("COLON", offset=1) and self.ts.at("PROG", offset=2):
            self.parse_program()
        elif self.ts.at("NAME"):
            self.parse_function()
        else:
            raise self.ts.fail(expected=["declaration"])

    # --- Uniforms and functions ---

    def parse_uniform(self) -> None:
        self.ts.expect("UNIFORM")
        typ = self.parse_type()
        name = self.parse_lower_name()
        logger.debug(f"uniform {typ.value} {name}")
        self.state.add_uniform(Func(name, [], typ, Linkage.UNIFORM))

    def parse_function(self) -> None:
        loc = self.ts.location()
        name = self.parse_lower_name()
        self.ts.expect("COLON")
        params, result = self.parse_function_signature()
        logger.debug(f"function {name}: {params} -> {result.value}")
        self.ts.expect("EQUAL")
        body = self.parse_body()
        self.state.add_function(Func(name, params, result, Body(body, str(loc))))

    def parse_function_signature(self) -> tuple[list[tuple[str, Type]], Type]:
        """``(T a, T b) -> T``, ``T a -> T``, ``() -> T`` or a bare ``T``."""
        if self.ts.at("LPAR"):
            params = self.parse_param_list()
            self.ts.expect("ARROW")
            return params, self.parse_type()
        if self.ts.at("NAME", offset=1):
            params = [self.parse_param()]
            self.ts.expect("ARROW")
            return params, self.parse_type()
        return [], self.parse_type()

    def parse_param(self) -> tuple[str, Type]:
        typ = self.parse_type()
        return self.parse_lower_name(), typ

    def parse_param_list(self) -> list[tuple[str, Type]]:
        self.ts.expect("LPAR")
        if self.ts.accept("RPAR"):
            return []
        params = [self.parse_param()]
        while self.ts.accept("COMMA"):
            params.append(self.parse_param())
        self.ts.expect("RPAR")
        return params

    def parse_side(self) -> list[tuple[str, Type]]:
        """One side of a shader signature: a list, a single param or ``()``."""
        if self.ts.at("LPAR"):
            return self.parse_param_list()
        return [self.parse_param()]

    # --- Shaders ---

    def parse_shader(self) -> None:
        stage = _STAGE_TOKENS[self.ts.advance().type]
        name = self.parse_lower_name()
        self.ts.expect("COLON")
        inputs = [_varying(p) for p in self.parse_side()]
        self.ts.expect("ARROW")
        outputs = [_varying(p) for p in self.parse_side()]
        logger.debug(f"{stage.value} shader {name}: {_names(inputs)} -> {_names(outputs)}")
        self.ts.expect("EQUAL")

        if self.ts.at("NAME"):
            self._parse_composition(stage, name, inputs, outputs)
            return

        body = self.parse_body()
        self.state.add_shader(name, Shader(stage, inputs, outputs, body))

    def _parse_composition(self, stage: Stage, name: str,
                           inputs: list[Opaque], outputs: list[Opaque]) -> None:
        loc = self.ts.location()
        downstream = self._lookup_shader()
        self.ts.expect("DOT")
        upstream = self._lookup_shader()

        try:
            shader = compose(upstream, downstream)
        except CompositionError as e:
            diag = Diagnostic(f"composition '{name}' failed: {e}", loc)
            logger.warning(str(diag))
            self.state.add_diagnostic(diag, shader_name=name)
            return

        shader.stage = stage
        if (inputs, outputs) != (shader.inputs, shader.outputs):
            logger.warning(
                f"{loc}: shader '{name}' declares {_names(inputs)} -> {_names(outputs)} "
                f"but composes to {_names(shader.inputs)} -> {_names(shader.outputs)}"
            )
        self.state.add_shader(name, shader)

    def _lookup_shader(self) -> Shader:
        tok = self.ts.peek()
        name = self.parse_lower_name()
        shader = self.state.lookup_shader(name)
        if shader is None:
            message = f"unknown shader '{name}'"
            failure = self.state.failure_for(name)
            if failure is not None:
                message += f" ({failure})"
            raise UnknownShaderError(message, tok.line, tok.column)
        return shader

    # --- Programs ---

    def parse_program(self) -> None:
        name = self.parse_lower_name()
        self.ts.expect("COLON")
        self.ts.expect("PROG")
        self.ts.expect("EQUAL")
        self.ts.expect("MKPROG")
        vertex = self._lookup_shader()
        fragment = self._lookup_shader()

        if vertex.stage is not Stage.VERT:
            logger.warning(f"program '{name}': vertex slot holds a {vertex.stage.value} shader")
        if fragment.stage is not Stage.FRAG:
            logger.warning(f"program '{name}': fragment slot holds a {fragment.stage.value} shader")

        attributes = [o.requalify(OpaqueType.ATTRIBUTE) for o in vertex.inputs]
        prog = Prog(
            self.state.uniform_opaques(),
            attributes,
            vertex,
            fragment,
            list(self.state.functions),
        )
        logger.debug(f"program {name}: {len(prog.uniforms)} uniforms, {len(prog.functions)} functions")
        self.state.add_program(name, prog)


def _varying(param: tuple[str, Type]) -> Opaque:
    name, typ = param
    return Func(name, [], typ, Linkage.VARYING).as_opaque()


def _names(opaques: list[Opaque]) -> str:
    return "(" + ", ".join(f"{o.type.value} {o.name}" for o in opaques) + ")"
