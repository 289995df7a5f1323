"""AST node definitions for FDSSL."""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Optional, Union


@dataclass
class SourceLocation:
    line: int
    column: int

    def __str__(self):
        return f"line {self.line}, column {self.column}"


# --- Types and operators ---

class Type(Enum):
    INT = "Int"
    BOOL = "Bool"
    FLOAT = "Float"
    VEC2 = "Vec2"
    VEC3 = "Vec3"
    VEC4 = "Vec4"
    MAT4 = "Mat4"
    ARRAY = "Array"

    @property
    def glsl(self) -> str:
        return _GLSL_TYPE_NAMES[self]


_GLSL_TYPE_NAMES = {
    Type.INT: "int",
    Type.BOOL: "bool",
    Type.FLOAT: "float",
    Type.VEC2: "vec2",
    Type.VEC3: "vec3",
    Type.VEC4: "vec4",
    Type.MAT4: "mat4",
    Type.ARRAY: "array",
}


class BOp(Enum):
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"
    AND = "&&"
    OR = "||"
    EQ = "=="
    NEQ = "!="
    GTE = ">="
    GT = ">"
    LTE = "<="
    LT = "<"
    BIT_AND = "&"
    BIT_OR = "|"
    BIT_XOR = "^"

    def __str__(self):
        return self.value


class OpaqueType(Enum):
    UNIFORM = "uniform"
    ATTRIBUTE = "attribute"
    VARYING = "varying"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class Opaque:
    kind: OpaqueType
    type: Type
    name: str

    def requalify(self, kind: OpaqueType) -> Opaque:
        return Opaque(kind, self.type, self.name)


class Stage(Enum):
    VERT = "vert"
    FRAG = "frag"


# --- Expressions ---

class Form(Enum):
    """How an expression renders when it stands as a statement."""
    EFFECT = "effect"          # terminated line
    VALUE = "value"            # lifted into an explicit return
    STRUCTURAL = "structural"  # renders as itself


class Expr:
    form: ClassVar[Form] = Form.STRUCTURAL


@dataclass
class Mut(Expr):
    form: ClassVar[Form] = Form.EFFECT
    type: Type
    name: str
    value: Expr


@dataclass
class Const(Expr):
    form: ClassVar[Form] = Form.EFFECT
    type: Type
    name: str
    value: Expr


@dataclass
class Update(Expr):
    form: ClassVar[Form] = Form.EFFECT
    name: str
    value: Expr


@dataclass
class Out(Expr):
    form: ClassVar[Form] = Form.EFFECT
    name: str
    value: Expr


@dataclass
class Branch(Expr):
    condition: Expr
    then_body: list[Expr]
    else_body: list[Expr]


@dataclass
class For(Expr):
    bound: Expr
    counter: Optional[str]
    body: list[Expr]


@dataclass
class I(Expr):
    form: ClassVar[Form] = Form.VALUE
    value: int


@dataclass
class B(Expr):
    form: ClassVar[Form] = Form.VALUE
    value: bool


@dataclass
class F(Expr):
    form: ClassVar[Form] = Form.VALUE
    value: float


@dataclass
class D(Expr):
    form: ClassVar[Form] = Form.VALUE
    value: float


@dataclass
class V2(Expr):
    form: ClassVar[Form] = Form.VALUE
    x: Expr
    y: Expr

    @property
    def components(self) -> list[Expr]:
        return [self.x, self.y]


@dataclass
class V3(Expr):
    form: ClassVar[Form] = Form.VALUE
    x: Expr
    y: Expr
    z: Expr

    @property
    def components(self) -> list[Expr]:
        return [self.x, self.y, self.z]


@dataclass
class V4(Expr):
    form: ClassVar[Form] = Form.VALUE
    x: Expr
    y: Expr
    z: Expr
    w: Expr

    @property
    def components(self) -> list[Expr]:
        return [self.x, self.y, self.z, self.w]


@dataclass
class Mat4(Expr):
    form: ClassVar[Form] = Form.VALUE
    columns: list[Expr]


@dataclass
class Ref(Expr):
    form: ClassVar[Form] = Form.VALUE
    name: str


@dataclass
class App(Expr):
    form: ClassVar[Form] = Form.EFFECT
    name: str
    args: list[Expr]


@dataclass
class BinOp(Expr):
    form: ClassVar[Form] = Form.VALUE
    op: BOp
    left: Expr
    right: Expr


@dataclass
class AccessN(Expr):
    form: ClassVar[Form] = Form.VALUE
    name: str
    field: str


@dataclass
class AccessI(Expr):
    form: ClassVar[Form] = Form.VALUE
    name: str
    index: int


@dataclass
class Array(Expr):
    form: ClassVar[Form] = Form.VALUE
    items: list[Expr]


@dataclass
class SComment(Expr):
    text: str


@dataclass
class BComment(Expr):
    text: str


@dataclass
class NOp(Expr):
    """End marker of a statement sequence."""


# --- Declarations ---

class Linkage(Enum):
    UNIFORM = "uniform"
    VARYING = "varying"


@dataclass
class Body:
    exprs: list[Expr]
    label: str = ""


@dataclass
class Func:
    name: str
    params: list[tuple[str, Type]]
    result: Type
    body: Union[Linkage, Body]

    def as_opaque(self) -> Opaque:
        if self.body is Linkage.UNIFORM:
            return Opaque(OpaqueType.UNIFORM, self.result, self.name)
        if self.body is Linkage.VARYING:
            return Opaque(OpaqueType.VARYING, self.result, self.name)
        raise ValueError(f"Function '{self.name}' has a body and is not a global binding")


@dataclass
class Shader:
    stage: Stage
    inputs: list[Opaque]
    outputs: list[Opaque]
    body: list[Expr]


@dataclass
class Prog:
    uniforms: list[Opaque]
    attributes: list[Opaque]
    vertex: Shader
    fragment: Shader
    functions: list[Func] = field(default_factory=list)


def walk_sequences(body: list[Expr]):
    """Yield every statement sequence nested in ``body``, ``body`` first."""
    yield body
    for stmt in body:
        if isinstance(stmt, Branch):
            yield from walk_sequences(stmt.then_body)
            yield from walk_sequences(stmt.else_body)
        elif isinstance(stmt, For):
            yield from walk_sequences(stmt.body)
