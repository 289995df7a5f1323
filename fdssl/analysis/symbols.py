"""Symbol tables accumulated while parsing an FDSSL source."""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional

from fdssl.parser.ast_nodes import Func, Opaque, Prog, Shader, SourceLocation


@dataclass
class Diagnostic:
    """A recovered semantic failure, local to one declaration."""
    message: str
    loc: Optional[SourceLocation] = None

    def __str__(self):
        if self.loc is None:
            return self.message
        return f"{self.loc}: {self.message}"


class ParserState:
    """Uniforms, functions, shaders and programs in declaration order.

    Lookups scan most-recent-first, so a later declaration shadows an
    earlier one with the same name.
    """

    def __init__(self):
        self.uniforms: list[Func] = []
        self.functions: list[Func] = []
        self.shaders: list[tuple[str, Shader]] = []
        self.programs: list[tuple[str, Prog]] = []
        self.diagnostics: list[Diagnostic] = []
        self._failed_shaders: dict[str, Diagnostic] = {}

    def add_uniform(self, func: Func) -> None:
        self.uniforms.append(func)

    def add_function(self, func: Func) -> None:
        self.functions.append(func)

    def add_shader(self, name: str, shader: Shader) -> None:
        self._failed_shaders.pop(name, None)
        self.shaders.append((name, shader))

    def add_program(self, name: str, prog: Prog) -> None:
        self.programs.append((name, prog))

    def add_diagnostic(self, diag: Diagnostic, shader_name: Optional[str] = None) -> None:
        self.diagnostics.append(diag)
        if shader_name is not None:
            self._failed_shaders[shader_name] = diag

    def lookup_shader(self, name: str) -> Shader | None:
        for shader_name, shader in reversed(self.shaders):
            if shader_name == name:
                return shader
        return None

    def lookup_program(self, name: str) -> Prog | None:
        for prog_name, prog in reversed(self.programs):
            if prog_name == name:
                return prog
        return None

    def failure_for(self, name: str) -> Diagnostic | None:
        """The recorded failure that left ``name`` without a shader, if any."""
        return self._failed_shaders.get(name)

    def uniform_opaques(self) -> list[Opaque]:
        return [u.as_opaque() for u in self.uniforms]
