"""Top-level compiler orchestration."""

from __future__ import annotations
import dataclasses
import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from loguru import logger

from fdssl.codegen.glsl_emitter import emit_program
from fdssl.parser.decl_parser import parse_module


@dataclass
class CompiledProgram:
    name: str
    vertex: str
    fragment: str


def compile_source(source: str) -> list[CompiledProgram]:
    """Parse FDSSL source and render every program it declares.

    Either every program is rendered or an exception propagates; nothing
    is returned for a partially compiled source.
    """
    state = parse_module(source)
    compiled = []
    for name, prog in state.programs:
        logger.debug(f"emitting program {name}")
        vertex, fragment = emit_program(prog)
        compiled.append(CompiledProgram(name, vertex, fragment))
    return compiled


def compile_file(input_path: Path, output_dir: Path | None = None) -> list[Path]:
    """Compile a ``.fdssl`` file, writing ``<stem>.<program>.vert/.frag``."""
    source = input_path.read_text(encoding="utf-8")
    programs = compile_source(source)

    output_dir = output_dir or input_path.parent
    output_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for program in programs:
        for suffix, text in (("vert", program.vertex), ("frag", program.fragment)):
            out_path = output_dir / f"{input_path.stem}.{program.name}.{suffix}"
            out_path.write_text(text, encoding="utf-8")
            logger.info(f"wrote {out_path}")
            written.append(out_path)
    return written


def dump_ast(source: str) -> str:
    """Serialize the parsed symbol tables of a source as JSON."""
    state = parse_module(source)
    tables = {
        "uniforms": state.uniforms,
        "functions": state.functions,
        "shaders": [{"name": n, "shader": s} for n, s in state.shaders],
        "programs": [{"name": n, "program": p} for n, p in state.programs],
        "diagnostics": [str(d) for d in state.diagnostics],
    }
    return json.dumps(_ser(tables), indent=2)


def _ser(obj):
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        d = {"_type": type(obj).__name__}
        for f in dataclasses.fields(obj):
            d[f.name] = _ser(getattr(obj, f.name))
        return d
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: _ser(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_ser(x) for x in obj]
    return obj
