"""Shader composition.

``compose(a, b)`` chains two shaders into one pipeline shader: ``a`` runs
first and its outputs feed the inputs of ``b``. In source this is written
``b . a``.

Signals are routed by name and type. Every input of ``b`` needs an output
of ``a`` with the same name and type; outputs of ``a`` that ``b`` does not
read are kept as plain locals. The composed shader takes ``a``'s inputs and
produces ``b``'s outputs. Its body declares one zero-initialised local per
output of ``a``, runs ``a``'s body with ``out`` assignments turned into
assignments to those locals, then runs ``b``'s body reading its inputs from
them.
"""

from __future__ import annotations
from loguru import logger

from fdssl.parser.ast_nodes import (
    Expr, Type, Form, Opaque, Shader,
    Mut, Const, Update, Out, Branch, For,
    I, B, F, V2, V3, V4, Mat4, Ref, App, BinOp, AccessN, AccessI, Array, NOp,
    walk_sequences,
)


class CompositionError(Exception):
    pass


def compose(upstream: Shader, downstream: Shader) -> Shader:
    """Compose two shaders so that ``upstream`` feeds ``downstream``."""
    _check_routing(upstream, downstream)

    used = _collect_names(upstream) | _collect_names(downstream)
    taken = {o.name for o in upstream.inputs} | {o.name for o in downstream.outputs}

    # One local per upstream output.
    routed: dict[str, str] = {}
    for out in upstream.outputs:
        local = _fresh(out.name, taken, used)
        taken.add(local)
        routed[out.name] = local
    logger.debug(f"routing {routed}")

    prelude: list[Expr] = [
        Mut(out.type, routed[out.name], _zero(out.type)) for out in upstream.outputs
    ]

    # Upstream locals move only when they would capture a routed local or
    # a downstream output.
    clashes = set(routed.values()) | {o.name for o in downstream.outputs}
    first_renames = _local_renames(upstream.body, clashes, taken, used)
    # Reads of a name that is also an upstream input keep seeing the input.
    upstream_inputs = {o.name for o in upstream.inputs}
    reads = {k: v for k, v in routed.items() if k not in upstream_inputs}
    first = _Renamer(reads, first_renames, outs=routed).sequence(upstream.body)
    first = [stmt for stmt in first if stmt.form is not Form.VALUE and not isinstance(stmt, NOp)]
    for name in _declared_names(upstream.body):
        taken.add(first_renames.get(name, name))

    inputs = {o.name: routed[o.name] for o in downstream.inputs}
    second_renames = _local_renames(downstream.body, taken | set(inputs), taken, used)
    second = _Renamer(inputs, second_renames).sequence(downstream.body)

    return Shader(
        upstream.stage,
        list(upstream.inputs),
        list(downstream.outputs),
        prelude + first + second,
    )


def _check_routing(upstream: Shader, downstream: Shader) -> None:
    available = {o.name: o.type for o in upstream.outputs}
    unbound = [
        o for o in downstream.inputs
        if o.name not in available or available[o.name] is not o.type
    ]
    if unbound:
        missing = ", ".join(f"{o.type.value} {o.name}" for o in unbound)
        raise CompositionError(f"no matching output for input(s) {missing}")


def _zero(typ: Type) -> Expr:
    if typ is Type.INT:
        return I(0)
    if typ is Type.BOOL:
        return B(False)
    if typ is Type.FLOAT:
        return F(0.0)
    if typ is Type.VEC2:
        return V2(F(0.0), F(0.0))
    if typ is Type.VEC3:
        return V3(F(0.0), F(0.0), F(0.0))
    if typ is Type.VEC4:
        return V4(F(0.0), F(0.0), F(0.0), F(0.0))
    if typ is Type.MAT4:
        return Mat4([V4(F(0.0), F(0.0), F(0.0), F(0.0)) for _ in range(4)])
    raise CompositionError(f"cannot route a signal of type {typ.value}")


def _fresh(name: str, taken: set[str], used: set[str]) -> str:
    if name not in taken:
        return name
    n = 1
    while f"{name}_{n}" in taken or f"{name}_{n}" in used:
        n += 1
    return f"{name}_{n}"


def _local_renames(body: list[Expr], clashes: set[str],
                   taken: set[str], used: set[str]) -> dict[str, str]:
    renames = {}
    for name in sorted(_declared_names(body)):
        if name in clashes:
            fresh = _fresh(name, taken | {name}, used)
            taken.add(fresh)
            renames[name] = fresh
    return renames


def _declared_names(body: list[Expr]) -> set[str]:
    names = set()
    for seq in walk_sequences(body):
        for stmt in seq:
            if isinstance(stmt, (Mut, Const)):
                names.add(stmt.name)
            elif isinstance(stmt, For) and stmt.counter is not None:
                names.add(stmt.counter)
    return names


def _collect_names(shader: Shader) -> set[str]:
    names = {o.name for o in shader.inputs} | {o.name for o in shader.outputs}
    for seq in walk_sequences(shader.body):
        for stmt in seq:
            names |= _stmt_names(stmt)
    return names


def _stmt_names(expr: Expr) -> set[str]:
    if isinstance(expr, (Mut, Const)):
        return {expr.name} | _stmt_names(expr.value)
    if isinstance(expr, (Update, Out)):
        return {expr.name} | _stmt_names(expr.value)
    if isinstance(expr, Branch):
        return _stmt_names(expr.condition)
    if isinstance(expr, For):
        names = _stmt_names(expr.bound)
        if expr.counter is not None:
            names.add(expr.counter)
        return names
    if isinstance(expr, Ref):
        return {expr.name}
    if isinstance(expr, (AccessN, AccessI)):
        return {expr.name}
    if isinstance(expr, App):
        names = set()
        for arg in expr.args:
            names |= _stmt_names(arg)
        return names
    if isinstance(expr, BinOp):
        return _stmt_names(expr.left) | _stmt_names(expr.right)
    if isinstance(expr, (V2, V3, V4)):
        names = set()
        for c in expr.components:
            names |= _stmt_names(c)
        return names
    if isinstance(expr, (Mat4, Array)):
        names = set()
        for item in (expr.columns if isinstance(expr, Mat4) else expr.items):
            names |= _stmt_names(item)
        return names
    return set()


class _Renamer:
    """Rewrites names through a statement sequence.

    ``refs`` maps names that are read or assigned; ``decls`` maps local
    declarations that have to move out of the way; ``outs``, when given,
    turns ``out`` assignments into updates of the mapped locals. A declaration that
    shadows a mapped name ends that mapping for the rest of its sequence.
    """

    def __init__(self, refs: dict[str, str], decls: dict[str, str],
                 outs: dict[str, str] | None = None):
        self.refs = refs
        self.decls = decls
        self.outs = outs

    def sequence(self, body: list[Expr]) -> list[Expr]:
        saved = self.refs
        self.refs = dict(saved)
        try:
            return [self.statement(stmt) for stmt in body]
        finally:
            self.refs = saved

    def _declare(self, name: str) -> str:
        if name in self.decls:
            self.refs[name] = self.decls[name]
        else:
            self.refs.pop(name, None)
        return self.refs.get(name, name)

    def statement(self, stmt: Expr) -> Expr:
        if isinstance(stmt, Mut):
            value = self.expr(stmt.value)
            return Mut(stmt.type, self._declare(stmt.name), value)
        if isinstance(stmt, Const):
            value = self.expr(stmt.value)
            return Const(stmt.type, self._declare(stmt.name), value)
        if isinstance(stmt, Update):
            return Update(self.refs.get(stmt.name, stmt.name), self.expr(stmt.value))
        if isinstance(stmt, Out):
            if self.outs is not None and stmt.name in self.outs:
                return Update(self.outs[stmt.name], self.expr(stmt.value))
            return Out(stmt.name, self.expr(stmt.value))
        if isinstance(stmt, Branch):
            return Branch(
                self.expr(stmt.condition),
                self.sequence(stmt.then_body),
                self.sequence(stmt.else_body),
            )
        if isinstance(stmt, For):
            bound = self.expr(stmt.bound)
            saved = self.refs
            self.refs = dict(saved)
            try:
                counter = self._declare(stmt.counter) if stmt.counter is not None else None
                return For(bound, counter, self.sequence(stmt.body))
            finally:
                self.refs = saved
        return self.expr(stmt)

    def expr(self, expr: Expr) -> Expr:
        if isinstance(expr, Ref):
            return Ref(self.refs.get(expr.name, expr.name))
        if isinstance(expr, AccessN):
            return AccessN(self.refs.get(expr.name, expr.name), expr.field)
        if isinstance(expr, AccessI):
            return AccessI(self.refs.get(expr.name, expr.name), expr.index)
        if isinstance(expr, App):
            return App(expr.name, [self.expr(a) for a in expr.args])
        if isinstance(expr, BinOp):
            return BinOp(expr.op, self.expr(expr.left), self.expr(expr.right))
        if isinstance(expr, V2):
            return V2(self.expr(expr.x), self.expr(expr.y))
        if isinstance(expr, V3):
            return V3(self.expr(expr.x), self.expr(expr.y), self.expr(expr.z))
        if isinstance(expr, V4):
            return V4(self.expr(expr.x), self.expr(expr.y), self.expr(expr.z), self.expr(expr.w))
        if isinstance(expr, Mat4):
            return Mat4([self.expr(c) for c in expr.columns])
        if isinstance(expr, Array):
            return Array([self.expr(item) for item in expr.items])
        return expr
