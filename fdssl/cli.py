"""Command-line interface for the FDSSL compiler."""

import argparse
import sys
from pathlib import Path

from loguru import logger


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="fdsslc",
        description="FDSSL shader compiler: compiles .fdssl files to GLSL vertex/fragment pairs",
    )
    parser.add_argument("input", nargs="?", help="Input .fdssl file")
    parser.add_argument(
        "-o", "--output-dir", type=Path, default=None,
        help="Output directory (default: same as input file)",
    )
    parser.add_argument(
        "--stdout", action="store_true",
        help="Print the generated GLSL instead of writing files",
    )
    parser.add_argument(
        "--dump-ast", action="store_true", help="Dump the parsed declarations and exit"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Trace parsing and composition"
    )
    parser.add_argument(
        "--version", action="version", version="fdsslc 0.1.0"
    )

    args = parser.parse_args(argv)

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "WARNING")

    if args.input is None:
        parser.print_help()
        sys.exit(0)

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: file not found: {input_path}", file=sys.stderr)
        sys.exit(1)

    from fdssl.codegen.glsl_emitter import CodegenError
    from fdssl.compiler import compile_file, compile_source, dump_ast
    from fdssl.parser.lexer import ParseError

    try:
        if args.dump_ast:
            print(dump_ast(input_path.read_text(encoding="utf-8")))
            return

        if args.stdout:
            for program in compile_source(input_path.read_text(encoding="utf-8")):
                print(f"// ---- {program.name}.vert ----")
                print(program.vertex)
                print(f"// ---- {program.name}.frag ----")
                print(program.fragment)
            return

        for path in compile_file(input_path, args.output_dir):
            print(f"Wrote {path}")
    except (ParseError, CodegenError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
