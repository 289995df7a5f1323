"""Recursive-descent parser for FDSSL expression bodies.

Bodies are juxtaposed statements with no separators, closed by ``}``.
Binary operators go through a precedence ladder in which every relational
operator has its own level::

    * / %   >   + -   >   <   >   <=   >   ==   >   !=   >   >=   >   >
            >   &   >   ^   >   |   >   &&   >   ||

All levels are left-associative.
"""

from __future__ import annotations
from lark import Token

from fdssl.parser.ast_nodes import (
    Expr, Type, BOp,
    Mut, Const, Update, Out, Branch, For,
    I, B, F, D, V2, V3, V4, Mat4, Ref, App, BinOp, AccessN, AccessI, Array,
    SComment, BComment, NOp,
)
from fdssl.parser.lexer import TokenStream, ParseError, describe


TYPE_TOKENS = {
    "INT_T": Type.INT,
    "BOOL_T": Type.BOOL,
    "FLOAT_T": Type.FLOAT,
    "VEC2_T": Type.VEC2,
    "VEC3_T": Type.VEC3,
    "VEC4_T": Type.VEC4,
    "MAT4_T": Type.MAT4,
    "ARRAY_T": Type.ARRAY,
}

# Tightest first.
_LEVELS: list[dict[str, BOp]] = [
    {"STAR": BOp.MUL, "SLASH": BOp.DIV, "PERCENT": BOp.MOD},
    {"PLUS": BOp.ADD, "MINUS": BOp.SUB},
    {"LT": BOp.LT},
    {"LTE": BOp.LTE},
    {"EQEQ": BOp.EQ},
    {"NEQ": BOp.NEQ},
    {"GTE": BOp.GTE},
    {"GT": BOp.GT},
    {"AMP": BOp.BIT_AND},
    {"CARET": BOp.BIT_XOR},
    {"PIPE": BOp.BIT_OR},
    {"ANDAND": BOp.AND},
    {"OROR": BOp.OR},
]

_OPERATOR_TOKENS: dict[str, BOp] = {}
for _level in _LEVELS:
    _OPERATOR_TOKENS.update(_level)

_VECTOR_ARITY = {"VEC2": (2, V2), "VEC3": (3, V3), "VEC4": (4, V4)}

_NUMBER_TOKENS = ("INT", "FLOAT", "DOUBLE")


def _comment_node(tok: Token) -> Expr:
    if tok.type == "LINE_COMMENT":
        return SComment(str(tok)[2:])
    return BComment(str(tok)[2:-2])


def _number(tok: Token, negate: bool = False) -> Expr:
    text = str(tok)
    if negate:
        text = "-" + text
    if tok.type == "DOUBLE":
        return D(float(text[:-2]))
    if tok.type == "FLOAT":
        return F(float(text))
    return I(int(text))


class ExprParser:
    """Parses statements and expressions from a shared token stream."""

    def __init__(self, stream: TokenStream):
        self.ts = stream

    # --- Shared pieces ---

    def parse_type(self) -> Type:
        tok = self.ts.peek()
        if tok is None or tok.type not in TYPE_TOKENS:
            raise self.ts.fail(expected=[describe(t) for t in TYPE_TOKENS])
        self.ts.advance()
        return TYPE_TOKENS[tok.type]

    def parse_lower_name(self) -> str:
        tok = self.ts.peek()
        if tok is None or tok.type != "NAME":
            raise self.ts.fail(expected=["name"])
        if not tok[0].islower():
            raise self.ts.fail(f"name '{tok}' must start with a lowercase letter")
        self.ts.advance()
        return str(tok)

    # --- Sequences and statements ---

    def parse_body(self) -> list[Expr]:
        """``{ statement* }`` as a sequence ending in ``NOp``."""
        self.ts.expect("LBRACE")
        body = self.parse_sequence()
        self.ts.expect("RBRACE")
        return body

    def parse_sequence(self) -> list[Expr]:
        stmts: list[Expr] = []
        while True:
            tok = self.ts.comment()
            if tok is not None:
                stmts.append(_comment_node(tok))
                continue
            # The closing brace is left for the caller.
            if self.ts.at("RBRACE"):
                stmts.append(NOp())
                return stmts
            stmts.append(self.parse_statement())

    def parse_statement(self) -> Expr:
        tok = self.ts.peek()
        kind = tok.type if tok is not None else None

        if kind in ("MUT", "CONST"):
            self.ts.advance()
            typ = self.parse_type()
            name = self.parse_lower_name()
            self.ts.expect("EQUAL")
            value = self.parse_expr()
            if kind == "MUT":
                return Mut(typ, name, value)
            return Const(typ, name, value)

        if kind == "SET":
            self.ts.advance()
            name = self.parse_lower_name()
            return Update(name, self.parse_expr())

        if kind == "OUT":
            self.ts.advance()
            name = self.parse_lower_name()
            return Out(name, self.parse_expr())

        if kind == "IF":
            self.ts.advance()
            cond = self.parse_expr()
            self.ts.expect("THEN")
            then_body = self.parse_body()
            self.ts.expect("ELSE")
            else_body = self.parse_body()
            return Branch(cond, then_body, else_body)

        if kind == "FOR":
            self.ts.advance()
            bound = self.parse_expr()
            counter = None
            if self.ts.accept("AS"):
                counter = self.parse_lower_name()
            self.ts.expect("DO")
            return For(bound, counter, self.parse_body())

        return self.parse_expr()

    # --- Expressions ---

    def parse_expr(self) -> Expr:
        return self._parse_level(len(_LEVELS) - 1)

    def _parse_level(self, level: int) -> Expr:
        if level < 0:
            return self.parse_primary()
        ops = _LEVELS[level]
        left = self._parse_level(level - 1)
        while True:
            tok = self.ts.peek()
            if tok is None or tok.type not in ops:
                return left
            self.ts.advance()
            right = self._parse_level(level - 1)
            left = BinOp(ops[tok.type], left, right)

    def parse_primary(self) -> Expr:
        tok = self.ts.peek()
        kind = tok.type if tok is not None else None

        if kind in _NUMBER_TOKENS:
            self.ts.advance()
            return _number(tok)
        if kind == "MINUS" and self.ts.at(*_NUMBER_TOKENS, offset=1):
            self.ts.advance()
            return _number(self.ts.advance(), negate=True)
        if kind == "TRUE":
            self.ts.advance()
            return B(True)
        if kind == "FALSE":
            self.ts.advance()
            return B(False)
        if kind in _VECTOR_ARITY:
            arity, ctor = _VECTOR_ARITY[kind]
            self.ts.advance()
            return ctor(*[self.parse_expr() for _ in range(arity)])
        if kind == "MAT4":
            self.ts.advance()
            return Mat4([self.parse_expr() for _ in range(4)])
        if kind == "LSQB":
            return self._parse_array()
        if kind == "NAME":
            return self._first_of(
                self._parse_call,
                self._parse_index,
                self._parse_named_access,
                self._parse_dotted_access,
                self._parse_ref,
            )
        if kind == "LPAR":
            return self._first_of(self._parse_prefix_op, self._parse_group)

        raise self.ts.fail(expected=["expression"])

    def _first_of(self, *alternatives) -> Expr:
        """Try each alternative in order, rewinding after each failure."""
        mark = self.ts.mark()
        for alternative in alternatives:
            try:
                return alternative()
            except ParseError:
                self.ts.reset(mark)
        raise self.ts.fail()

    def _parse_array(self) -> Expr:
        self.ts.expect("LSQB")
        items = [self.parse_expr()]
        while self.ts.accept("COMMA"):
            items.append(self.parse_expr())
        self.ts.expect("RSQB")
        return Array(items)

    def _parse_call(self) -> Expr:
        name = str(self.ts.expect("NAME"))
        self.ts.expect("LPAR")
        args = []
        while not self.ts.at("RPAR"):
            args.append(self.parse_expr())
        self.ts.expect("RPAR")
        return App(name, args)

    def _parse_index(self) -> Expr:
        name = str(self.ts.expect("NAME"))
        self.ts.expect("LSQB")
        index = int(self.ts.expect("INT"))
        self.ts.expect("RSQB")
        return AccessI(name, index)

    def _parse_named_access(self) -> Expr:
        name = str(self.ts.expect("NAME"))
        self.ts.expect("LSQB")
        field = str(self.ts.expect("NAME"))
        self.ts.expect("RSQB")
        return AccessN(name, field)

    def _parse_dotted_access(self) -> Expr:
        name = str(self.ts.expect("NAME"))
        self.ts.expect("DOT")
        field = str(self.ts.expect("NAME"))
        return AccessN(name, field)

    def _parse_ref(self) -> Expr:
        name = str(self.ts.expect("NAME"))
        if self.ts.at("LPAR", "LSQB"):
            raise self.ts.fail(expected=["expression"])
        return Ref(name)

    def _parse_prefix_op(self) -> Expr:
        self.ts.expect("LPAR")
        tok = self.ts.peek()
        if tok is None or tok.type not in _OPERATOR_TOKENS:
            raise self.ts.fail(expected=["operator"])
        self.ts.advance()
        left = self.parse_expr()
        right = self.parse_expr()
        self.ts.expect("RPAR")
        return BinOp(_OPERATOR_TOKENS[tok.type], left, right)

    def _parse_group(self) -> Expr:
        self.ts.expect("LPAR")
        inner = self.parse_expr()
        if self.ts.at("COMMA"):
            raise self.ts.fail(expected=["')'"])
        self.ts.expect("RPAR")
        return inner
